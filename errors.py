from typing import Optional


class CollabError(Exception):
    """Base class for failures reported back to the caller as {"error", "code"}."""

    kind = "InternalError"
    status_code = 500

    def __init__(self, message: str, payload: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        # extra fields merged into the error response body
        self.payload = payload or {}

    def to_dict(self) -> dict:
        body = {"error": self.message, "code": self.kind}
        body.update(self.payload)
        return body


class MissingField(CollabError):
    kind = "MissingField"
    status_code = 400

    def __init__(self, fields: list[str]):
        self.fields = list(fields)
        super().__init__(f"Missing required field(s): {', '.join(self.fields)}")


class InvalidPayload(CollabError):
    kind = "InvalidPayload"
    status_code = 400


class NotFound(CollabError):
    kind = "NotFound"
    status_code = 404

    def __init__(self, room_id: str):
        self.room_id = room_id
        super().__init__(f"Room {room_id} not found")


class AlreadyExists(CollabError):
    kind = "AlreadyExists"
    status_code = 409

    def __init__(self, room_id: str):
        self.room_id = room_id
        super().__init__(f"Room {room_id} already exists")


class StoreUnavailable(CollabError):
    kind = "StoreUnavailable"
    status_code = 503
