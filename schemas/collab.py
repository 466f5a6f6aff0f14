from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from constants import DEFAULT_ROOM_NAME, DEFAULT_ROOM_METHOD


class CamelModel(BaseModel):
    # Stored documents and HTTP payloads use camelCase, Python code uses snake_case
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json_dict(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


# ---------------------------------------------------------------------------
# Stored room document
# ---------------------------------------------------------------------------

class UserBranch(CamelModel):
    snapshot: Any = None
    last_updated: int = 0
    user_name: str = ""


class ActiveUser(CamelModel):
    model_config = ConfigDict(extra="allow")

    id: str
    name: str
    color: int = 0
    region: Optional[str] = None
    joined_at: str = ""
    is_host: bool = False


class Operation(CamelModel):
    """A logged client edit. Payload fields other than the ones below pass through untouched."""
    model_config = ConfigDict(extra="allow")

    id: str
    user_id: str
    user_name: Optional[str] = None
    timestamp: int


class Room(CamelModel):
    model_config = ConfigDict(extra="allow")

    id: Optional[str] = None
    name: Optional[str] = DEFAULT_ROOM_NAME
    method: Optional[str] = DEFAULT_ROOM_METHOD
    created_by: Optional[str] = None
    created_by_name: Optional[str] = None
    snapshot: Any = Field(default_factory=dict)
    user_branches: Dict[str, UserBranch] = Field(default_factory=dict)
    active_users: List[ActiveUser] = Field(default_factory=list)
    operations: List[Operation] = Field(default_factory=list)
    last_updated: int = 0

    def find_user(self, user_id: str) -> Optional[ActiveUser]:
        for user in self.active_users:
            if user.id == user_id:
                return user
        return None


# ---------------------------------------------------------------------------
# Requests. Every field is optional here so that absent fields are reported
# as MissingField by the synchronizer rather than as a validation error.
# ---------------------------------------------------------------------------

class RequestModel(CamelModel):
    model_config = ConfigDict(extra="ignore")


class CreateRoomRequest(RequestModel):
    room_id: Optional[str] = None
    room_data: Optional[Dict[str, Any]] = None
    snapshot: Any = None
    user_id: Optional[str] = None
    user_name: Optional[str] = None


class JoinRoomRequest(RequestModel):
    room_id: Optional[str] = None
    user_id: Optional[str] = None
    user_name: Optional[str] = None
    user_data: Optional[Dict[str, Any]] = None


class LeaveRoomRequest(RequestModel):
    room_id: Optional[str] = None
    user_id: Optional[str] = None


class UpdateBranchRequest(RequestModel):
    room_id: Optional[str] = None
    user_id: Optional[str] = None
    user_name: Optional[str] = None
    snapshot: Any = None
    operation: Optional[Dict[str, Any]] = None


class SendOperationRequest(RequestModel):
    room_id: Optional[str] = None
    user_id: Optional[str] = None
    user_name: Optional[str] = None
    operation: Optional[Dict[str, Any]] = None


class GetUpdatesRequest(RequestModel):
    room_id: Optional[str] = None
    user_id: Optional[str] = None
    last_sync: Optional[int] = 0

    @field_validator("last_sync", mode="before")
    @classmethod
    def blank_means_zero(cls, value):
        # lastSync= with no value is a first poll
        if value is None or value == "":
            return 0
        return value


class RoomInfoRequest(RequestModel):
    room_id: Optional[str] = None


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------

class RoomSummary(CamelModel):
    id: Optional[str] = None
    name: str
    method: str
    created_by: Optional[str] = None
    created_by_name: Optional[str] = None
    active_users: List[ActiveUser] = Field(default_factory=list)


class BranchSummary(CamelModel):
    user_id: str
    user_name: str
    last_updated: int
    node_count: int


class CreateRoomResponse(CamelModel):
    success: bool = True
    room_id: str
    message: str = "Room created"


class JoinRoomResponse(CamelModel):
    success: bool = True
    room: RoomSummary
    snapshot: Any = None
    branch: Optional[UserBranch] = None
    message: str = "Joined room"


class LeaveRoomResponse(CamelModel):
    success: bool = True


class UpdateBranchResponse(CamelModel):
    success: bool = True
    operation_id: Optional[str] = None


class UpdatesResponse(CamelModel):
    success: bool = True
    updates: List[Operation] = Field(default_factory=list)
    users: List[ActiveUser] = Field(default_factory=list)
    branches: List[BranchSummary] = Field(default_factory=list)
    last_sync: int


class RoomInfoResponse(CamelModel):
    success: bool = True
    room: RoomSummary
    branches: List[BranchSummary] = Field(default_factory=list)
    snapshot: Any = None
