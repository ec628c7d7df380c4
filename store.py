import threading
from abc import ABC, abstractmethod
from typing import Callable, Dict, Optional

from counters import AtomicCounter
from errors import RoomExpired, RoomNotFound
from logging_config import get_logger
from models import Room

logger = get_logger(__name__)


class MessageIds(ABC):
    """Hands out global message ids from inside a room transformation."""

    @abstractmethod
    def next_message_id(self) -> int:
        ...


# fn(room, ids) -> room unchanged (same object), a new Room, or None to delete it
RoomTransform = Callable[[Room, MessageIds], Optional[Room]]


class RoomStore(ABC):
    """
    Code -> Room mapping with per-code exclusive access.

    A room is expired when `now - last_activity > timeout`. Expired rooms are
    never handed out by `get`, are deleted by `mutate` when touched and by
    `sweep_expired` in bulk.
    """

    name = "abstract"

    def __init__(self, timeout: int):
        self.timeout = timeout

    @abstractmethod
    def is_live(self, code: str, now: int) -> bool:
        """True iff the room exists and is not expired. Never deletes anything."""

    @abstractmethod
    def create_unique(self, code: str, room: Room, now: int) -> bool:
        """Store `room` unless a live room already holds `code`. False means duplicate."""

    @abstractmethod
    def mutate(self, code: str, fn: RoomTransform, now: int) -> Optional[Room]:
        """
        Apply `fn` to the stored room and store the result.

        Raises RoomNotFound when no room holds `code` and RoomExpired (after
        deleting the room) when it is stale. A new room returned by `fn` is
        stored with `last_activity` bumped to `now`; returning the same object
        leaves the room untouched; returning None deletes it.
        """

    @abstractmethod
    def delete_if(self, code: str, predicate: Callable[[Room], bool]) -> bool:
        """Delete the room if it exists and `predicate(room)` holds, stale or not."""

    @abstractmethod
    def get(self, code: str, now: int) -> Optional[Room]:
        """The live room for `code`, or None. Never deletes anything."""

    @abstractmethod
    def sweep_expired(self, now: int) -> int:
        """Delete every expired room, returning how many were removed."""

    def bumped(self, previous: Room, updated: Room, now: int) -> Room:
        return updated.model_copy(update={"last_activity": max(now, previous.last_activity)})


class CounterMessageIds(MessageIds):
    def __init__(self, counter: AtomicCounter):
        self._counter = counter

    def next_message_id(self) -> int:
        return self._counter.next()


class MemoryRoomStore(RoomStore):
    """
    In-process store. Rooms are immutable snapshots held in a dict; writers
    replace a whole snapshot while holding the lock stripe of its code, so
    readers only ever see complete rooms and different codes rarely share a
    lock.
    """

    name = "memory"

    def __init__(self, timeout: int, stripes: int = 64):
        super().__init__(timeout)
        self._rooms: Dict[str, Room] = {}
        self._locks = [threading.Lock() for _ in range(stripes)]
        self._message_ids = CounterMessageIds(AtomicCounter())

    def _lock_for(self, code: str) -> threading.Lock:
        return self._locks[hash(code) % len(self._locks)]

    def is_live(self, code: str, now: int) -> bool:
        room = self._rooms.get(code)
        return room is not None and not room.is_expired(now, self.timeout)

    def create_unique(self, code: str, room: Room, now: int) -> bool:
        with self._lock_for(code):
            if self.is_live(code, now):
                logger.debug(f"Room code {code} is already taken")
                return False
            self._rooms[code] = room
        logger.info(f"Room {code} stored")
        return True

    def mutate(self, code: str, fn: RoomTransform, now: int) -> Optional[Room]:
        with self._lock_for(code):
            room = self._rooms.get(code)
            if room is None:
                raise RoomNotFound()
            if room.is_expired(now, self.timeout):
                del self._rooms[code]
                logger.info(f"Room {code} expired, deleted on access")
                raise RoomExpired()

            updated = fn(room, self._message_ids)
            if updated is None:
                del self._rooms[code]
                logger.info(f"Room {code} deleted")
                return None
            if updated is room:
                return room
            updated = self.bumped(room, updated, now)
            self._rooms[code] = updated
            return updated

    def delete_if(self, code: str, predicate: Callable[[Room], bool]) -> bool:
        with self._lock_for(code):
            room = self._rooms.get(code)
            if room is None or not predicate(room):
                return False
            del self._rooms[code]
        logger.info(f"Room {code} deleted")
        return True

    def get(self, code: str, now: int) -> Optional[Room]:
        room = self._rooms.get(code)
        if room is None or room.is_expired(now, self.timeout):
            return None
        return room

    def sweep_expired(self, now: int) -> int:
        removed = 0
        for code, room in self._rooms.copy().items():
            if not room.is_expired(now, self.timeout):
                continue
            with self._lock_for(code):
                current = self._rooms.get(code)
                # re-check under the lock, the room may have been touched since the copy
                if current is not None and current.is_expired(now, self.timeout):
                    del self._rooms[code]
                    removed += 1
        if removed:
            logger.info(f"Swept {removed} expired room(s)")
        return removed

    def __contains__(self, code: str) -> bool:
        return code in self._rooms

    def __len__(self):
        return len(self._rooms)
