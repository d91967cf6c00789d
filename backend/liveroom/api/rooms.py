import logging

from fastapi import APIRouter, Depends

from liveroom.api.deps import envelope, get_room_relay, get_room_service
from liveroom.realtime.relay import RoomRelay
from liveroom.schemas import CreateRoomRequest, JoinRoomRequest
from liveroom.services.room_service import RoomService
from liveroom.session.models import parse_role

logger = logging.getLogger("api.rooms")

router = APIRouter(prefix="/room")


@router.post("/create", status_code=201)
async def create_room(payload: CreateRoomRequest, rooms: RoomService = Depends(get_room_service)):
    room = await rooms.create_room(payload)
    return envelope(
        {"roomId": room.room_id, "interviewType": room.interview_type},
        message="Room created successfully",
    )


@router.post("/join")
async def join_room(
    payload: JoinRoomRequest,
    rooms: RoomService = Depends(get_room_service),
    relay: RoomRelay = Depends(get_room_relay),
):
    room, participant, transition = await rooms.join(payload.room_id, payload.user_id, payload.name, parse_role(payload.role))
    await relay.publish_state(room.room_id, room, transition)
    return envelope(
        {
            "status": participant.status.value,
            "roomId": room.room_id,
            "room": room.state(),
        },
        message="Joined room",
    )


@router.get("/info/{room_id}")
async def get_room_info(room_id: str, rooms: RoomService = Depends(get_room_service)):
    room = await rooms.get_room(room_id)
    participants = await rooms.active_participants(room_id)
    return envelope({"room": room.to_document(), "participants": [p.summary() for p in participants]})
