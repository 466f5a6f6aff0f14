import copy
import random
import string
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from pydantic import ValidationError
from pydantic.alias_generators import to_camel

from constants import (
    JOIN_POLICY,
    MAX_OPERATIONS,
    OPERATIONS_KEEP,
    COLOR_PALETTE_SIZE,
    DEFAULT_REGION,
    DEFAULT_ROOM_NAME,
    DEFAULT_ROOM_METHOD,
)
from errors import CollabError, InvalidPayload, MissingField, NotFound, AlreadyExists
from repository import RoomRepository
from schemas.collab import (
    ActiveUser,
    BranchSummary,
    CreateRoomRequest,
    CreateRoomResponse,
    GetUpdatesRequest,
    JoinRoomRequest,
    JoinRoomResponse,
    LeaveRoomRequest,
    LeaveRoomResponse,
    Operation,
    Room,
    RoomInfoRequest,
    RoomInfoResponse,
    RoomSummary,
    SendOperationRequest,
    UpdateBranchRequest,
    UpdateBranchResponse,
    UpdatesResponse,
    UserBranch,
)
from snapshot import NodeCounter, default_counter
from logging_config import get_logger

logger = get_logger(__name__)

JOIN_POLICIES = ("copy", "shared")

ACTIONS = {
    "create_room": CreateRoomRequest,
    "join_room": JoinRoomRequest,
    "leave_room": LeaveRoomRequest,
    "update_branch": UpdateBranchRequest,
    "send_operation": SendOperationRequest,
    "get_updates": GetUpdatesRequest,
    "get_room_info": RoomInfoRequest,
}

# Room fields owned by the engine, never taken from caller-supplied roomData
ENGINE_ROOM_FIELDS = {
    "id",
    "snapshot",
    "userBranches", "user_branches",
    "activeUsers", "active_users",
    "operations",
    "lastUpdated", "last_updated",
}
# Operation fields the engine assigns, overriding anything in the payload
ENGINE_OPERATION_FIELDS = {"id", "userId", "user_id", "userName", "user_name", "timestamp"}


def current_millis() -> int:
    return int(time.time() * 1000)


def generate_operation_id(timestamp: int) -> str:
    suffix = ''.join(random.choices(string.ascii_lowercase + string.digits, k=9))
    return f"op_{timestamp}_{suffix}"


def default_user_name(user_id: str) -> str:
    return f"User{user_id[:4]}"


def iso_from_millis(millis: int) -> str:
    return datetime.fromtimestamp(millis / 1000, tz=timezone.utc).isoformat()


class RoomSynchronizer:
    """Applies one state transition per call to a room held in the store.

    Every mutating call loads the whole room, changes it in memory and saves it
    back. Nothing is kept between calls, so any number of server processes can
    share one store.
    """

    def __init__(
        self,
        repository: RoomRepository,
        clock: Callable[[], int] = current_millis,
        id_factory: Callable[[int], str] = generate_operation_id,
        join_policy: str = JOIN_POLICY,
        max_operations: int = MAX_OPERATIONS,
        operations_keep: int = OPERATIONS_KEEP,
        rng: Optional[random.Random] = None,
        node_counter: NodeCounter = default_counter,
        palette_size: int = COLOR_PALETTE_SIZE,
        default_region: str = DEFAULT_REGION,
    ):
        if join_policy not in JOIN_POLICIES:
            raise ValueError(f"join_policy must be one of {JOIN_POLICIES}, got {join_policy!r}")
        if not 0 < operations_keep <= max_operations:
            raise ValueError("operations_keep must be between 1 and max_operations")
        self.repository = repository
        self.clock = clock
        self.id_factory = id_factory
        self.join_policy = join_policy
        self.max_operations = max_operations
        self.operations_keep = operations_keep
        self.rng = rng or random.Random()
        self.node_counter = node_counter
        self.palette_size = palette_size
        self.default_region = default_region

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _require(**fields):
        missing = [to_camel(name) for name, value in fields.items() if value is None or value == ""]
        if missing:
            raise MissingField(missing)

    @staticmethod
    def _validate(model, data: Any):
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise InvalidPayload(f"Expected a JSON object, got {type(data).__name__}")
        try:
            return model.model_validate(data)
        except ValidationError as e:
            details = "; ".join(f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors())
            raise InvalidPayload(f"Invalid payload: {details}") from e

    async def _load(self, room_id: str) -> Room:
        room = await self.repository.load(room_id)
        if room is None:
            logger.warning(f"Room {room_id} not found")
            raise NotFound(room_id)
        return room

    def _next_timestamp(self, room: Room) -> int:
        # Never go below the newest logged operation, even if the clock steps back
        now = self.clock()
        if room.operations:
            return max(now, room.operations[-1].timestamp)
        return now

    def _display_name(self, room: Room, user_id: str, user_name: Optional[str]) -> str:
        if user_name:
            return user_name
        branch = room.user_branches.get(user_id)
        if branch and branch.user_name:
            return branch.user_name
        user = room.find_user(user_id)
        if user and user.name:
            return user.name
        return default_user_name(user_id)

    def _new_active_user(self, user_id: str, user_name: Optional[str], user_data: Optional[Dict[str, Any]], now: int, is_host: bool) -> ActiveUser:
        fields = dict(user_data or {})
        fields["id"] = user_id
        fields.setdefault("name", user_name or default_user_name(user_id))
        fields.setdefault("color", self.rng.randrange(self.palette_size))
        fields.setdefault("region", self.default_region)
        fields.setdefault("joinedAt", iso_from_millis(now))
        fields.setdefault("isHost", is_host)
        return self._validate(ActiveUser, fields)

    def _append_operation(self, room: Room, user_id: str, user_name: Optional[str], operation: Dict[str, Any]) -> str:
        timestamp = self._next_timestamp(room)
        name = user_name or operation.get("userName") or self._display_name(room, user_id, None)
        fields = {k: v for k, v in operation.items() if k not in ENGINE_OPERATION_FIELDS}
        fields.update({
            "id": self.id_factory(timestamp),
            "userId": user_id,
            "userName": name,
            "timestamp": timestamp,
        })
        room.operations.append(self._validate(Operation, fields))

        if len(room.operations) > self.max_operations:
            logger.debug(f"Trimming operation log of room {room.id} from {len(room.operations)} to {self.operations_keep}")
            room.operations = room.operations[-self.operations_keep:]
        return fields["id"]

    def _summary(self, room: Room) -> RoomSummary:
        return RoomSummary(
            id=room.id,
            name=room.name or DEFAULT_ROOM_NAME,
            method=room.method or DEFAULT_ROOM_METHOD,
            created_by=room.created_by,
            created_by_name=room.created_by_name,
            active_users=room.active_users,
        )

    def _branch_summaries(self, room: Room, exclude: Optional[str] = None) -> list[BranchSummary]:
        return [
            BranchSummary(
                user_id=user_id,
                user_name=branch.user_name or default_user_name(user_id),
                last_updated=branch.last_updated,
                node_count=self.node_counter.count(branch.snapshot),
            )
            for user_id, branch in room.user_branches.items()
            if user_id != exclude
        ]

    # ------------------------------------------------------------------
    # transitions
    # ------------------------------------------------------------------

    async def create_room(self, room_id: str, room_data: Dict[str, Any], snapshot: Any, user_id: str, user_name: Optional[str] = None) -> CreateRoomResponse:
        self._require(room_id=room_id, room_data=room_data, user_id=user_id, snapshot=snapshot)
        if not isinstance(room_data, dict):
            raise InvalidPayload("roomData must be a JSON object")

        if await self.repository.load(room_id) is not None:
            logger.warning(f"Create room failed: Room {room_id} already exists")
            raise AlreadyExists(room_id)

        now = self.clock()
        metadata = {k: v for k, v in room_data.items() if k not in ENGINE_ROOM_FIELDS}
        room = self._validate(Room, {**metadata, "id": room_id})
        name = user_name or room.created_by_name or default_user_name(user_id)
        room.created_by = room.created_by or user_id
        room.created_by_name = room.created_by_name or name
        room.snapshot = copy.deepcopy(snapshot)
        if self.join_policy == "copy":
            room.user_branches = {
                user_id: UserBranch(snapshot=copy.deepcopy(snapshot), last_updated=now, user_name=name),
            }
        room.active_users = [self._new_active_user(user_id, name, None, now, is_host=True)]
        room.operations = []
        room.last_updated = now

        await self.repository.save(room_id, room)
        logger.info(f"Room {room_id} created by {user_id}: name={room.name}")
        return CreateRoomResponse(room_id=room_id)

    async def join_room(self, room_id: str, user_id: str, user_name: Optional[str] = None, user_data: Optional[Dict[str, Any]] = None) -> JoinRoomResponse:
        self._require(room_id=room_id, user_id=user_id)
        room = await self._load(room_id)
        now = self.clock()

        user = room.find_user(user_id)
        if user is None:
            user = self._new_active_user(user_id, user_name, user_data, now, is_host=False)
            room.active_users.append(user)
            logger.info(f"User {user_id} joined room {room_id} ({len(room.active_users)} active)")
        else:
            logger.info(f"User {user_id} re-joined room {room_id}")

        branch = None
        if self.join_policy == "copy":
            branch = UserBranch(
                snapshot=copy.deepcopy(room.snapshot),
                last_updated=now,
                user_name=user_name or user.name,
            )
            room.user_branches[user_id] = branch
        room.last_updated = now

        await self.repository.save(room_id, room)
        return JoinRoomResponse(room=self._summary(room), snapshot=room.snapshot, branch=branch)

    async def leave_room(self, room_id: str, user_id: str) -> LeaveRoomResponse:
        # Leaving always reports success so clients can clean up unconditionally
        try:
            self._require(room_id=room_id, user_id=user_id)
            room = await self.repository.load(room_id)
            if room is None:
                logger.debug(f"Leave room {room_id}: room already gone")
                return LeaveRoomResponse()

            remaining = [u for u in room.active_users if u.id != user_id]
            if len(remaining) == len(room.active_users):
                logger.debug(f"Leave room {room_id}: user {user_id} was not active")
                return LeaveRoomResponse()

            room.active_users = remaining
            room.last_updated = self.clock()
            if not remaining:
                await self.repository.delete(room_id)
                logger.info(f"Last user {user_id} left room {room_id}, room deleted")
            else:
                await self.repository.save(room_id, room)
                logger.info(f"User {user_id} left room {room_id} ({len(remaining)} active)")
        except CollabError as e:
            logger.warning(f"Ignoring failure while user {user_id} left room {room_id}: {e.kind}: {e.message}")
        except Exception as e:
            logger.error(f"Ignoring unexpected failure while user {user_id} left room {room_id}: {e}", exc_info=True)
        return LeaveRoomResponse()

    async def update_branch(self, room_id: str, user_id: str, snapshot: Any, operation: Optional[Dict[str, Any]] = None, user_name: Optional[str] = None) -> UpdateBranchResponse:
        self._require(room_id=room_id, user_id=user_id, snapshot=snapshot)
        room = await self._load(room_id)
        now = self.clock()

        if self.join_policy == "copy":
            branch = room.user_branches.get(user_id)
            if branch is None:
                branch = UserBranch(user_name=self._display_name(room, user_id, user_name))
                room.user_branches[user_id] = branch
            branch.snapshot = copy.deepcopy(snapshot)
            branch.last_updated = now
            if user_name:
                branch.user_name = user_name
        else:
            room.snapshot = copy.deepcopy(snapshot)

        operation_id = None
        if operation is not None:
            operation_id = self._append_operation(room, user_id, user_name, operation)
        room.last_updated = now

        await self.repository.save(room_id, room)
        logger.debug(f"Branch of {user_id} in room {room_id} updated, operation={operation_id}")
        return UpdateBranchResponse(operation_id=operation_id)

    async def send_operation(self, room_id: str, user_id: str, operation: Dict[str, Any], user_name: Optional[str] = None) -> UpdateBranchResponse:
        self._require(room_id=room_id, user_id=user_id, operation=operation)
        room = await self._load(room_id)

        operation_id = self._append_operation(room, user_id, user_name, operation)
        room.last_updated = self.clock()

        await self.repository.save(room_id, room)
        logger.debug(f"Operation {operation_id} from {user_id} logged in room {room_id}")
        return UpdateBranchResponse(operation_id=operation_id)

    async def get_updates(self, room_id: str, user_id: str, last_sync: Optional[int] = 0) -> UpdatesResponse:
        self._require(room_id=room_id, user_id=user_id)
        room = await self._load(room_id)
        last_sync = last_sync or 0

        updates = [op for op in room.operations if op.timestamp > last_sync and op.user_id != user_id]
        logger.debug(f"get_updates room={room_id} user={user_id} since={last_sync}: {len(updates)} updates")
        return UpdatesResponse(
            updates=updates,
            users=room.active_users,
            branches=self._branch_summaries(room, exclude=user_id),
            last_sync=self.clock(),
        )

    async def get_room_info(self, room_id: str) -> RoomInfoResponse:
        self._require(room_id=room_id)
        room = await self._load(room_id)
        return RoomInfoResponse(
            room=self._summary(room),
            branches=self._branch_summaries(room),
            snapshot=room.snapshot,
        )

    # ------------------------------------------------------------------
    # entry point for transports
    # ------------------------------------------------------------------

    async def dispatch(self, action: Optional[str], payload: Any):
        if not action:
            raise MissingField(["action"])
        request_model = ACTIONS.get(action)
        if request_model is None:
            raise InvalidPayload(f"Unknown action: {action}")

        try:
            request = self._validate(request_model, payload)
        except InvalidPayload as e:
            if action != "leave_room":
                raise
            logger.warning(f"Ignoring malformed leave_room payload: {e.message}")
            return LeaveRoomResponse()

        handler = getattr(self, action)
        return await handler(**request.model_dump())
