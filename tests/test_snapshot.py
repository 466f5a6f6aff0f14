"""Tests for the node count used in branch summaries."""

import pytest

from snapshot import NodeCounter, default_counter


@pytest.mark.parametrize("snapshot, expected", [
    ({"nodeMap": {"a": 1, "b": 2}}, 2),
    ({"nodeMap": [{"id": "a"}]}, 1),
    ({"nodeMap": {}}, 0),
    ({"nodeMap": None}, 0),
    ({"nodeMap": "abc"}, 0),
    ({"other": {"a": 1}}, 0),
    (None, 0),
    ("opaque", 0),
])
def test_count_top_level_nodes(snapshot, expected):
    assert default_counter.count(snapshot) == expected


def test_only_top_level_is_counted():
    snapshot = {"nodeMap": {"root": {"children": {"x": {}, "y": {}}}}}

    assert default_counter.count(snapshot) == 1


def test_custom_field():
    counter = NodeCounter(field="nodes")

    assert counter.count({"nodes": {"a": 1}, "nodeMap": {"a": 1, "b": 2}}) == 1
