from pydantic import BaseModel, ConfigDict
from typing import Optional


class Participant(BaseModel):
    model_config = ConfigDict(frozen=True)

    session_id: str
    caller_identity: str
    display_name: str
    joined_at: int


class Message(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    sender_session_id: str
    sender_display_name: str
    content: str
    timestamp: int


class Room(BaseModel):
    """
    A chat room snapshot. Rooms are never changed in place: every mutation
    builds a new Room with `model_copy(update=...)` and swaps it into the store.

    Timestamps are nanoseconds since the epoch.
    """
    model_config = ConfigDict(frozen=True)

    code: str
    creator_session_id: str
    participants: tuple[Participant, ...] = ()
    messages: tuple[Message, ...] = ()
    created_at: int
    last_activity: int

    def is_expired(self, now: int, timeout: int) -> bool:
        return now - self.last_activity > timeout

    def member(self, session_id: str) -> Optional[Participant]:
        for participant in self.participants:
            if participant.session_id == session_id:
                return participant
        return None

    def has_member(self, session_id: str) -> bool:
        return self.member(session_id) is not None


class RoomCreated(BaseModel):
    model_config = ConfigDict(frozen=True)

    room_code: str
    room: Room
    session_id: str


class RoomJoined(BaseModel):
    model_config = ConfigDict(frozen=True)

    room: Room
    session_id: str
