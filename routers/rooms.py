from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from schemas.rooms import (
    CloseRoomRequest,
    CloseRoomResponse,
    CreateRoomResponse,
    JoinRoomRequest,
    JoinRoomResponse,
    LeaveRoomRequest,
    LeaveRoomResponse,
    MessageResponse,
    RoomDetailsResponse,
    RoomResponse,
    SendMessageRequest,
)
from typing import Optional
from chat_service import ChatService
from constants import SHARE_BASE_URL
from errors import ChatError
from logging_config import get_logger

logger = get_logger(__name__)

rooms_router = APIRouter(prefix="/rooms", tags=["rooms"])

# ChatService calls wait on room locks or Redis, so they run in the threadpool


def get_chat_service(request: Request) -> ChatService:
    return request.app.state.chat_service


def caller_identity(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def build_share_url(request: Request, room_code: str, base_url: Optional[str] = SHARE_BASE_URL) -> str:
    # Clients auto-join from ?refID=<CODE> links
    base = (base_url or str(request.base_url)).rstrip("/")
    return f"{base}/?refID={room_code}"


def http_error(action: str, room_code: str, error: ChatError) -> HTTPException:
    logger.warning(f"{action} failed for room {room_code}: {error.message}")
    return HTTPException(status_code=error.status_code, detail=error.message)


@rooms_router.post("/", status_code=201, response_model=CreateRoomResponse)
async def create_room(request: Request, service: ChatService = Depends(get_chat_service)):
    # Response 201: { "room_code": "AB12CD", "session_id": "K3J9...", "room": {...}, "share_url": "https://app/?refID=AB12CD" }
    identity = caller_identity(request)
    logger.info(f"Room creation request from {identity}")
    try:
        created = await run_in_threadpool(service.create_room, identity)
    except ChatError as e:
        raise http_error("Create room", "-", e)

    return CreateRoomResponse(
        room_code=created.room_code,
        session_id=created.session_id,
        room=RoomResponse.from_room(created.room),
        share_url=build_share_url(request, created.room_code),
    )


@rooms_router.post("/{room_code}/join", response_model=JoinRoomResponse)
async def join_room(
    room_code: str,
    request: Request,
    join_room_request: Optional[JoinRoomRequest] = None,
    service: ChatService = Depends(get_chat_service),
):
    # POST /rooms/{room_code}/join Body (optional): { "session_id": "existing-session" }
    identity = caller_identity(request)
    session_id = join_room_request.session_id if join_room_request else None
    logger.info(f"Join room request for {room_code} from {identity}")
    try:
        joined = await run_in_threadpool(service.join_room, room_code, identity, session_id=session_id)
    except ChatError as e:
        raise http_error("Join room", room_code, e)

    return JoinRoomResponse(
        session_id=joined.session_id,
        room=RoomResponse.from_room(joined.room),
        share_url=build_share_url(request, joined.room.code),
    )


@rooms_router.post("/{room_code}/messages", status_code=201, response_model=MessageResponse)
async def send_message(
    room_code: str,
    send_message_request: SendMessageRequest,
    service: ChatService = Depends(get_chat_service),
):
    try:
        message = await run_in_threadpool(
            service.send_message, room_code, send_message_request.session_id, send_message_request.content
        )
    except ChatError as e:
        raise http_error("Send message", room_code, e)
    return MessageResponse.from_message(message)


@rooms_router.get("/{room_code}/messages", response_model=list[MessageResponse])
async def get_messages(room_code: str, service: ChatService = Depends(get_chat_service)):
    """Messages of a live room in send order; empty when the room is gone or expired."""
    messages = await run_in_threadpool(service.get_messages, room_code)
    return [MessageResponse.from_message(m) for m in messages]


@rooms_router.post("/{room_code}/leave", response_model=LeaveRoomResponse)
async def leave_room(
    room_code: str,
    leave_room_request: LeaveRoomRequest,
    service: ChatService = Depends(get_chat_service),
):
    # Succeeds even when the session was not a member; false only for unknown rooms
    left = await run_in_threadpool(service.leave_room, room_code, leave_room_request.session_id)
    return LeaveRoomResponse(left=left)


@rooms_router.post("/{room_code}/close", response_model=CloseRoomResponse)
async def close_room(
    room_code: str,
    close_room_request: CloseRoomRequest,
    service: ChatService = Depends(get_chat_service),
):
    # Only the creator's session may close a room; anyone else gets ended=false
    ended = await run_in_threadpool(service.end_room, room_code, close_room_request.session_id)
    return CloseRoomResponse(ended=ended)


@rooms_router.get("/{room_code}", response_model=RoomDetailsResponse)
async def get_room_details(room_code: str, service: ChatService = Depends(get_chat_service)):
    """
    Get a live room for polling clients.

    Returns the room plus:
    - expires_at: when the room expires without further activity (ns since epoch)
    - remaining_ms: milliseconds left before expiry, never negative
    - online_users_count: number of participants
    """
    room = await run_in_threadpool(service.get_room, room_code)
    if room is None:
        logger.debug(f"Room details: room {room_code} not found")
        raise HTTPException(status_code=404, detail="Room not found")

    details = RoomResponse.from_room(room).model_dump()
    return RoomDetailsResponse(
        **details,
        expires_at=service.expires_at(room),
        remaining_ms=service.remaining_ms(room),
        online_users_count=len(room.participants),
    )
