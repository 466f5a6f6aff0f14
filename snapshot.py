from typing import Any

from constants import SNAPSHOT_NODE_FIELD


class NodeCounter:
    """The one view the engine has into a snapshot: how many top-level nodes it holds.

    Snapshots are otherwise opaque and stored verbatim. The count only feeds
    branch summaries shown to users and must never drive sync decisions.
    """

    def __init__(self, field: str = SNAPSHOT_NODE_FIELD):
        self.field = field

    def count(self, snapshot: Any) -> int:
        if not isinstance(snapshot, dict):
            return 0
        nodes = snapshot.get(self.field)
        if isinstance(nodes, (dict, list)):
            return len(nodes)
        return 0


default_counter = NodeCounter()
