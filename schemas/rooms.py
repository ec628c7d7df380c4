from pydantic import BaseModel, field_validator
from typing import Optional

from models import Message, Participant, Room


class JoinRoomRequest(BaseModel):
    # present an existing session id to re-join without becoming a new participant
    session_id: Optional[str] = None

class SendMessageRequest(BaseModel):
    session_id: str
    content: str

    @field_validator("content")
    @classmethod
    def strip_content(cls, v: str) -> str:
        return v.strip()

class LeaveRoomRequest(BaseModel):
    session_id: str

class CloseRoomRequest(BaseModel):
    session_id: str

class ParticipantResponse(BaseModel):
    session_id: str
    display_name: str
    joined_at: int

    @classmethod
    def from_participant(cls, participant: Participant) -> "ParticipantResponse":
        return cls(
            session_id=participant.session_id,
            display_name=participant.display_name,
            joined_at=participant.joined_at,
        )

class MessageResponse(BaseModel):
    id: int
    sender_session_id: str
    sender_display_name: str
    content: str
    timestamp: int

    @classmethod
    def from_message(cls, message: Message) -> "MessageResponse":
        return cls(**message.model_dump())

class RoomResponse(BaseModel):
    code: str
    creator_session_id: str
    participants: list[ParticipantResponse]
    messages: list[MessageResponse]
    created_at: int
    last_activity: int

    @classmethod
    def from_room(cls, room: Room) -> "RoomResponse":
        return cls(
            code=room.code,
            creator_session_id=room.creator_session_id,
            participants=[ParticipantResponse.from_participant(p) for p in room.participants],
            messages=[MessageResponse.from_message(m) for m in room.messages],
            created_at=room.created_at,
            last_activity=room.last_activity,
        )

class CreateRoomResponse(BaseModel):
    room_code: str
    session_id: str
    room: RoomResponse
    share_url: str

class JoinRoomResponse(BaseModel):
    session_id: str
    room: RoomResponse
    share_url: str

class LeaveRoomResponse(BaseModel):
    left: bool

class CloseRoomResponse(BaseModel):
    ended: bool

class RoomDetailsResponse(RoomResponse):
    expires_at: int
    remaining_ms: int
    online_users_count: int
