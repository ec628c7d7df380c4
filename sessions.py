import threading
from abc import ABC, abstractmethod
from typing import Dict, Optional

from counters import AtomicCounter
from logging_config import get_logger
from models import Participant

logger = get_logger(__name__)


class SessionRegistry(ABC):
    """
    Session id -> Participant mapping.

    The first call for a session id binds its caller identity and gives it the
    next "User N" name; later calls get that same record back untouched.
    Records are only removed by `expire_older_than`, which looks at `joined_at`
    and knows nothing about room membership.
    """

    name = "abstract"

    @abstractmethod
    def resolve(self, session_id: str, caller_identity: str, now: int) -> Participant:
        """The participant for `session_id`, registering it on first sight."""

    @abstractmethod
    def get(self, session_id: str) -> Optional[Participant]:
        ...

    @abstractmethod
    def expire_older_than(self, ttl: int, now: int) -> int:
        """Drop records with `now - joined_at > ttl`, returning how many went."""


class MemorySessionRegistry(SessionRegistry):

    name = "memory"

    def __init__(self):
        self._participants: Dict[str, Participant] = {}
        self._lock = threading.Lock()
        self._display_numbers = AtomicCounter(start=1)

    def resolve(self, session_id: str, caller_identity: str, now: int) -> Participant:
        with self._lock:
            existing = self._participants.get(session_id)
            if existing is not None:
                return existing
            participant = Participant(
                session_id=session_id,
                caller_identity=caller_identity,
                display_name=f"User {self._display_numbers.next()}",
                joined_at=now,
            )
            self._participants[session_id] = participant
        logger.debug(f"Registered session {session_id} as {participant.display_name}")
        return participant

    def get(self, session_id: str) -> Optional[Participant]:
        return self._participants.get(session_id)

    def expire_older_than(self, ttl: int, now: int) -> int:
        with self._lock:
            expired = [sid for sid, p in self._participants.items() if now - p.joined_at > ttl]
            for session_id in expired:
                del self._participants[session_id]
        if expired:
            logger.info(f"Expired {len(expired)} session(s)")
        return len(expired)

    def __len__(self):
        return len(self._participants)
