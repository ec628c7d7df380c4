from typing import Callable, Optional

import redis

from constants import REDIS_HOST, REDIS_PASSWORD, REDIS_PORT
from errors import RoomExpired, RoomNotFound
from logging_config import get_logger
from models import Participant, Room
from redis_keys import (
    REDIS_DISPLAY_NAME_SEQ_KEY,
    REDIS_MESSAGE_SEQ_KEY,
    REDIS_ROOM_INDEX_KEY,
    REDIS_ROOM_KEY,
    REDIS_SESSION_INDEX_KEY,
    REDIS_SESSION_KEY,
)
from sessions import SessionRegistry
from store import MessageIds, RoomStore, RoomTransform

logger = get_logger(__name__)

NS_PER_MS = 1_000_000

_EXPIRED = object()


def connect_redis(host: str = REDIS_HOST, port: int = REDIS_PORT, password: Optional[str] = REDIS_PASSWORD) -> redis.Redis:
    try:
        client = redis.Redis(host=host, port=port, password=password, decode_responses=True)
        # Test connection
        client.ping()
        logger.info(f"Redis client connected successfully to {host}:{port}")
    except Exception as e:
        logger.error(f"Failed to connect to Redis at {host}:{port}: {e}", exc_info=True)
        raise
    return client


class RedisMessageIds(MessageIds):
    """
    Message ids read from the shared sequence key inside a WATCH block.

    The sequence key is only watched once a transformation actually asks for an
    id, so plain joins and leaves never conflict with messages sent elsewhere.
    The new sequence value is written in the same MULTI as the room, which is
    what keeps ids gap-free when a transaction is retried.
    """

    def __init__(self, pipe):
        self._pipe = pipe
        self._next = None

    def next_message_id(self) -> int:
        if self._next is None:
            self._pipe.watch(REDIS_MESSAGE_SEQ_KEY)
            current = self._pipe.get(REDIS_MESSAGE_SEQ_KEY)
            self._next = int(current) if current is not None else 0
        value = self._next
        self._next += 1
        return value

    def stage(self):
        if self._next is not None:
            self._pipe.set(REDIS_MESSAGE_SEQ_KEY, self._next)


class RedisRoomStore(RoomStore):
    """Rooms as JSON strings, mutated with optimistic WATCH/MULTI transactions."""

    name = "redis"

    def __init__(self, redis_client: redis.Redis, timeout: int):
        super().__init__(timeout)
        self.redis_client = redis_client
        self._key_ttl_ms = max(1, 2 * timeout // NS_PER_MS)
        logger.info(f"Initializing RedisRoomStore with room timeout {timeout // NS_PER_MS} ms")

    def _load(self, reader, code: str) -> Optional[Room]:
        raw = reader.get(REDIS_ROOM_KEY.format(code=code))
        if raw is None:
            return None
        return Room.model_validate_json(raw)

    def _stage_save(self, pipe, room: Room):
        pipe.set(REDIS_ROOM_KEY.format(code=room.code), room.model_dump_json(), px=self._key_ttl_ms)
        pipe.zadd(REDIS_ROOM_INDEX_KEY, {room.code: room.last_activity // NS_PER_MS})

    def _stage_delete(self, pipe, code: str):
        pipe.delete(REDIS_ROOM_KEY.format(code=code))
        pipe.zrem(REDIS_ROOM_INDEX_KEY, code)

    def is_live(self, code: str, now: int) -> bool:
        room = self._load(self.redis_client, code)
        return room is not None and not room.is_expired(now, self.timeout)

    def create_unique(self, code: str, room: Room, now: int) -> bool:
        key = REDIS_ROOM_KEY.format(code=code)

        def _insert(pipe):
            current = self._load(pipe, code)
            if current is not None and not current.is_expired(now, self.timeout):
                return False
            pipe.multi()
            self._stage_save(pipe, room)
            return True

        created = self.redis_client.transaction(_insert, key, value_from_callable=True)
        if created:
            logger.info(f"Room {code} stored")
        else:
            logger.debug(f"Room code {code} is already taken")
        return created

    def mutate(self, code: str, fn: RoomTransform, now: int) -> Optional[Room]:
        key = REDIS_ROOM_KEY.format(code=code)

        def _apply(pipe):
            room = self._load(pipe, code)
            if room is None:
                raise RoomNotFound()
            if room.is_expired(now, self.timeout):
                pipe.multi()
                self._stage_delete(pipe, code)
                return _EXPIRED
            ids = RedisMessageIds(pipe)
            updated = fn(room, ids)
            if updated is room:
                return room
            pipe.multi()
            if updated is None:
                self._stage_delete(pipe, code)
            else:
                updated = self.bumped(room, updated, now)
                self._stage_save(pipe, updated)
            ids.stage()
            return updated

        result = self.redis_client.transaction(_apply, key, value_from_callable=True)
        if result is _EXPIRED:
            logger.info(f"Room {code} expired, deleted on access")
            raise RoomExpired()
        if result is None:
            logger.info(f"Room {code} deleted")
        return result

    def delete_if(self, code: str, predicate: Callable[[Room], bool]) -> bool:
        key = REDIS_ROOM_KEY.format(code=code)

        def _delete(pipe):
            room = self._load(pipe, code)
            if room is None or not predicate(room):
                return False
            pipe.multi()
            self._stage_delete(pipe, code)
            return True

        deleted = self.redis_client.transaction(_delete, key, value_from_callable=True)
        if deleted:
            logger.info(f"Room {code} deleted")
        return deleted

    def get(self, code: str, now: int) -> Optional[Room]:
        room = self._load(self.redis_client, code)
        if room is None or room.is_expired(now, self.timeout):
            return None
        return room

    def _delete_if_stale(self, code: str, now: int) -> bool:
        key = REDIS_ROOM_KEY.format(code=code)

        def _sweep(pipe):
            room = self._load(pipe, code)
            if room is None:
                # key already gone through its TTL, drop the index entry
                pipe.multi()
                pipe.zrem(REDIS_ROOM_INDEX_KEY, code)
                return False
            if not room.is_expired(now, self.timeout):
                return False
            pipe.multi()
            self._stage_delete(pipe, code)
            return True

        return self.redis_client.transaction(_sweep, key, value_from_callable=True)

    def sweep_expired(self, now: int) -> int:
        cutoff_ms = (now - self.timeout) // NS_PER_MS
        candidates = self.redis_client.zrangebyscore(REDIS_ROOM_INDEX_KEY, "-inf", cutoff_ms)
        removed = sum(1 for code in candidates if self._delete_if_stale(code, now))
        if removed:
            logger.info(f"Swept {removed} expired room(s)")
        return removed


class RedisSessionRegistry(SessionRegistry):
    """Session id -> Participant records shared through Redis."""

    name = "redis"

    def __init__(self, redis_client: redis.Redis, ttl: int):
        self.redis_client = redis_client
        self._key_ttl_ms = max(1, 2 * ttl // NS_PER_MS)

    def resolve(self, session_id: str, caller_identity: str, now: int) -> Participant:
        key = REDIS_SESSION_KEY.format(session_id=session_id)
        raw = self.redis_client.get(key)
        if raw is not None:
            return Participant.model_validate_json(raw)

        number = self.redis_client.incr(REDIS_DISPLAY_NAME_SEQ_KEY)
        participant = Participant(
            session_id=session_id,
            caller_identity=caller_identity,
            display_name=f"User {number}",
            joined_at=now,
        )
        if self.redis_client.set(key, participant.model_dump_json(), nx=True, px=self._key_ttl_ms):
            self.redis_client.zadd(REDIS_SESSION_INDEX_KEY, {session_id: now // NS_PER_MS})
            logger.debug(f"Registered session {session_id} as {participant.display_name}")
            return participant

        # Another writer registered this id first; its record wins
        logger.debug(f"Session {session_id} registered concurrently, using existing record")
        return Participant.model_validate_json(self.redis_client.get(key))

    def get(self, session_id: str) -> Optional[Participant]:
        raw = self.redis_client.get(REDIS_SESSION_KEY.format(session_id=session_id))
        return Participant.model_validate_json(raw) if raw is not None else None

    def expire_older_than(self, ttl: int, now: int) -> int:
        cutoff_ms = (now - ttl) // NS_PER_MS
        candidates = self.redis_client.zrangebyscore(REDIS_SESSION_INDEX_KEY, "-inf", cutoff_ms)
        removed = 0
        for session_id in candidates:
            participant = self.get(session_id)
            if participant is not None and now - participant.joined_at <= ttl:
                continue
            pipe = self.redis_client.pipeline()
            pipe.delete(REDIS_SESSION_KEY.format(session_id=session_id))
            pipe.zrem(REDIS_SESSION_INDEX_KEY, session_id)
            pipe.execute()
            if participant is not None:
                removed += 1
        if removed:
            logger.info(f"Expired {removed} session(s)")
        return removed
