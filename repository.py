import asyncio
import json
from typing import Optional

from pydantic import ValidationError

from constants import STORE_NAMESPACE, STORE_TIMEOUT_SECONDS
from errors import StoreUnavailable
from redis_keys import ROOM_KEY
from schemas.collab import Room
from logging_config import get_logger

logger = get_logger(__name__)


class RoomRepository:
    """Loads and stores whole Room documents, one JSON value per `room:<id>` key.

    There are no partial updates. Callers read the full room, mutate it in
    memory and write the full room back, so concurrent writers to the same
    room race and the last save wins.
    """

    def __init__(self, store, namespace: str = STORE_NAMESPACE, timeout: float = STORE_TIMEOUT_SECONDS):
        self.store = store
        self.namespace = namespace
        self.timeout = timeout

    @staticmethod
    def key_for(room_id: str) -> str:
        return ROOM_KEY.format(room_id=room_id)

    async def _call(self, operation: str, coro):
        try:
            return await asyncio.wait_for(coro, timeout=self.timeout)
        except asyncio.TimeoutError as e:
            logger.error(f"Store {operation} timed out after {self.timeout}s")
            raise StoreUnavailable(f"Store {operation} timed out after {self.timeout}s") from e

    async def load(self, room_id: str) -> Optional[Room]:
        key = self.key_for(room_id)
        raw = await self._call("get", self.store.get(self.namespace, key))
        if raw is None:
            logger.debug(f"Room {room_id} not found in store")
            return None
        try:
            return Room.model_validate(json.loads(raw))
        except (json.JSONDecodeError, TypeError, ValidationError) as e:
            logger.error(f"Stored document for room {room_id} is unreadable: {e}")
            raise StoreUnavailable(f"Stored document for room {room_id} is unreadable") from e

    async def save(self, room_id: str, room: Room):
        key = self.key_for(room_id)
        value = json.dumps(room.to_json_dict(), ensure_ascii=False, separators=(",", ":"))
        await self._call("put", self.store.put(self.namespace, key, value))
        logger.debug(f"Room {room_id} saved ({len(room.active_users)} users, {len(room.operations)} operations)")

    async def delete(self, room_id: str) -> bool:
        key = self.key_for(room_id)
        deleted = await self._call("delete", self.store.delete(self.namespace, key))
        logger.debug(f"Room {room_id} delete: existed={deleted}")
        return bool(deleted)
