import time
from typing import Callable, Optional

from backend import RedisRoomStore, RedisSessionRegistry, connect_redis
from codegen import CodeGenerator, code_generator
from constants import (
    CODE_ALPHABET,
    MAX_CODE_ATTEMPTS,
    ROOM_CODE_LENGTH,
    ROOM_STORE_BACKEND,
    SESSION_ID_LENGTH,
    SESSION_TIMEOUT_NS,
)
from errors import CodeExhausted, EmptyMessage, MissingRoomCode, NotAMember, RoomExpired, RoomNotFound
from logging_config import get_logger
from models import Message, Room, RoomCreated, RoomJoined
from sessions import MemorySessionRegistry, SessionRegistry
from store import MemoryRoomStore, MessageIds, RoomStore

logger = get_logger(__name__)

NS_PER_MS = 1_000_000


def normalize_room_code(room_code: Optional[str]) -> str:
    code = (room_code or "").strip().upper()
    if not code:
        raise MissingRoomCode()
    return code


def is_valid_room_code(room_code: Optional[str]) -> bool:
    """Whether `room_code` looks like a code from a share link (?refID=...)."""
    code = (room_code or "").strip().upper()
    return len(code) == ROOM_CODE_LENGTH and all(c in CODE_ALPHABET for c in code)


def _unchanged(room: Room, ids: MessageIds) -> Room:
    return room


class ChatService:
    """
    Create, join, talk in, leave and end ephemeral rooms.

    Every mutating call first settles the target room (an expired target is
    deleted and reported as RoomExpired) and then sweeps all expired rooms and
    sessions. Reads never sweep or mutate, they only hide expired rooms.
    """

    def __init__(
        self,
        rooms: RoomStore,
        sessions: SessionRegistry,
        codes: CodeGenerator,
        clock: Callable[[], int] = time.time_ns,
        timeout: int = SESSION_TIMEOUT_NS,
    ):
        self.rooms = rooms
        self.sessions = sessions
        self.codes = codes
        self.clock = clock
        self.timeout = timeout

    def sweep(self, now: Optional[int] = None) -> int:
        now = self.clock() if now is None else now
        removed = self.rooms.sweep_expired(now)
        self.sessions.expire_older_than(self.timeout, now)
        return removed

    def _settle(self, code: str, now: int):
        # raises RoomNotFound / RoomExpired for the target before the bulk sweep can hide why
        self.rooms.mutate(code, _unchanged, now)
        self.sweep(now)

    def create_room(self, caller_identity: str) -> RoomCreated:
        now = self.clock()
        self.sweep(now)

        session_id = self.codes.generate(SESSION_ID_LENGTH)
        participant = None

        for attempt in range(1, MAX_CODE_ATTEMPTS + 1):
            code = self.codes.generate(ROOM_CODE_LENGTH)
            if self.rooms.is_live(code, now):
                logger.warning(f"Room code collision on attempt {attempt}/{MAX_CODE_ATTEMPTS}")
                continue
            # registered only once a free code turned up
            if participant is None:
                participant = self.sessions.resolve(session_id, caller_identity, now)
            room = Room(
                code=code,
                creator_session_id=session_id,
                participants=(participant,),
                created_at=now,
                last_activity=now,
            )
            if self.rooms.create_unique(code, room, now):
                logger.info(f"Room {code} created by {participant.display_name} ({caller_identity})")
                return RoomCreated(room_code=code, room=room, session_id=session_id)
            logger.warning(f"Room code {code} taken concurrently on attempt {attempt}/{MAX_CODE_ATTEMPTS}")

        logger.error(f"Could not find a free room code after {MAX_CODE_ATTEMPTS} attempts")
        raise CodeExhausted()

    def join_room(self, room_code: str, caller_identity: str, session_id: Optional[str] = None) -> RoomJoined:
        code = normalize_room_code(room_code)
        if not is_valid_room_code(code):
            # no generated code can match, skip the store
            logger.debug(f"Join with malformed room code {code!r}")
            raise RoomNotFound()
        now = self.clock()
        self._settle(code, now)

        session_id = session_id or self.codes.generate(SESSION_ID_LENGTH)

        def _add(room: Room, ids: MessageIds) -> Room:
            if room.has_member(session_id):
                return room
            participant = self.sessions.resolve(session_id, caller_identity, now)
            return room.model_copy(update={"participants": room.participants + (participant,)})

        room = self.rooms.mutate(code, _add, now)
        member = room.member(session_id)
        logger.info(f"{member.display_name} joined room {code} ({len(room.participants)} participants)")
        return RoomJoined(room=room, session_id=session_id)

    def send_message(self, room_code: str, session_id: str, content: str) -> Message:
        text = (content or "").strip()
        if not text:
            raise EmptyMessage()
        code = normalize_room_code(room_code)
        now = self.clock()
        self._settle(code, now)

        def _append(room: Room, ids: MessageIds) -> Room:
            sender = room.member(session_id)
            if sender is None:
                raise NotAMember()
            message = Message(
                id=ids.next_message_id(),
                sender_session_id=session_id,
                sender_display_name=sender.display_name,
                content=text,
                timestamp=now,
            )
            return room.model_copy(update={"messages": room.messages + (message,)})

        room = self.rooms.mutate(code, _append, now)
        message = room.messages[-1]
        logger.debug(f"Message {message.id} appended to room {code}")
        return message

    def leave_room(self, room_code: str, session_id: str) -> bool:
        code = (room_code or "").strip().upper()
        now = self.clock()

        def _remove(room: Room, ids: MessageIds) -> Optional[Room]:
            if not room.has_member(session_id):
                return room
            remaining = tuple(p for p in room.participants if p.session_id != session_id)
            if not remaining:
                return None
            return room.model_copy(update={"participants": remaining})

        try:
            self.rooms.mutate(code, _remove, now)
        except RoomNotFound:
            logger.debug(f"Leave for unknown room {code}")
            return False
        except RoomExpired:
            return True
        logger.info(f"Session {session_id} left room {code}")
        return True

    def end_room(self, room_code: str, session_id: str) -> bool:
        code = (room_code or "").strip().upper()
        ended = self.rooms.delete_if(code, lambda room: room.creator_session_id == session_id)
        if ended:
            logger.info(f"Room {code} ended by its creator")
        else:
            logger.warning(f"End room {code} refused for session {session_id}")
        return ended

    def get_room(self, room_code: str) -> Optional[Room]:
        return self.rooms.get((room_code or "").strip().upper(), self.clock())

    def get_messages(self, room_code: str) -> list[Message]:
        room = self.get_room(room_code)
        return list(room.messages) if room else []

    def expires_at(self, room: Room) -> int:
        return room.last_activity + self.timeout

    def remaining_ms(self, room: Room, now: Optional[int] = None) -> int:
        now = self.clock() if now is None else now
        return max(self.expires_at(room) - now, 0) // NS_PER_MS


def build_chat_service(backend: str = ROOM_STORE_BACKEND, redis_client=None) -> ChatService:
    if backend == "memory":
        rooms = MemoryRoomStore(SESSION_TIMEOUT_NS)
        sessions = MemorySessionRegistry()
    elif backend == "redis":
        client = redis_client or connect_redis()
        rooms = RedisRoomStore(client, SESSION_TIMEOUT_NS)
        sessions = RedisSessionRegistry(client, SESSION_TIMEOUT_NS)
    else:
        raise ValueError(f"Unknown room store backend: {backend!r}")
    logger.info(f"Chat service using {rooms.name} room store")
    return ChatService(rooms, sessions, code_generator)
