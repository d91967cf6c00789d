from __future__ import annotations

import logging
import secrets

from liveroom.errors import NotFound
from liveroom.schemas import CreateRoomRequest
from liveroom.session import lifecycle
from liveroom.session.lifecycle import Transition
from liveroom.session.models import (
    Participant,
    ParticipantRole,
    ParticipantStatus,
    Room,
)
from liveroom.session.participants import ParticipantTracker
from liveroom.session.store import DocumentStore
from liveroom.system_metrics import record_transition

logger = logging.getLogger("services.rooms")

ROOMS_COLLECTION = "rooms"


def _new_room_id() -> str:
    return secrets.token_urlsafe(6)


class RoomService:
    def __init__(self, store: DocumentStore, tracker: ParticipantTracker):
        self.store = store
        self.tracker = tracker

    async def create_room(self, request: CreateRoomRequest) -> Room:
        room = Room(
            room_id=_new_room_id(),
            title=request.title,
            job_position=request.job_position,
            interview_type=request.interview_type,
            interview_mode=request.interview_mode,
            time_limit=request.time_limit,
            max_participants=request.max_participants,
            scheduled_time=request.scheduled_time,
            custom_questions=list(request.custom_questions or []),
        )
        if request.interviewer_id:
            room.participants.append(Participant.key(room.room_id, request.interviewer_id))

        while not await self.store.insert(ROOMS_COLLECTION, room.room_id, room.to_document()):
            room.room_id = _new_room_id()
            room.participants = [Participant.key(room.room_id, request.interviewer_id)] if request.interviewer_id else []

        if request.interviewer_id:
            await self.tracker.register_pending(
                room.room_id,
                request.interviewer_id,
                request.interviewer_name or request.interviewer_id,
                ParticipantRole.INTERVIEWER,
            )
        logger.info("Room created | room_id=%s type=%s", room.room_id, room.interview_type)
        return room

    async def get_room(self, room_id: str) -> Room:
        document = await self.store.get(ROOMS_COLLECTION, room_id)
        if document is None:
            raise NotFound("Room not found")
        return Room.model_validate(document)

    async def join(
        self,
        room_id: str,
        user_id: str,
        name: str,
        role: ParticipantRole,
    ) -> tuple[Room, Participant, Transition | None]:
        await self.get_room(room_id)
        participant = await self.tracker.upsert_join(room_id, user_id, name, role)
        room, transition = await self._sync_lifecycle(room_id, Participant.key(room_id, user_id))
        return room, participant, transition

    async def leave(
        self,
        room_id: str,
        user_id: str,
        status: ParticipantStatus = ParticipantStatus.LEFT,
    ) -> tuple[Room, Participant | None, Transition | None]:
        participant = await self.tracker.upsert_leave(room_id, user_id, status=status)
        room, transition = await self._sync_lifecycle(room_id)
        return room, participant, transition

    async def _sync_lifecycle(self, room_id: str, participant_ref: str | None = None) -> tuple[Room, Transition | None]:
        attendance = lifecycle.attendance_from_participants(await self.tracker.list_for_session(room_id))
        outcome: dict[str, Transition | None] = {"transition": None}

        def _apply(current: dict | None) -> dict | None:
            if current is None:
                return None
            room = Room.model_validate(current)
            if participant_ref and participant_ref not in room.participants:
                room.participants.append(participant_ref)
            outcome["transition"] = lifecycle.apply_attendance(room, attendance)
            return room.to_document()

        document = await self.store.modify(ROOMS_COLLECTION, room_id, _apply)
        if document is None:
            raise NotFound("Room not found")
        transition = outcome["transition"]
        if transition is not None:
            record_transition(transition.value)
            logger.info("Room transition | room_id=%s transition=%s", room_id, transition.value)
        return Room.model_validate(document), transition

    async def active_participants(self, room_id: str) -> list[Participant]:
        return await self.tracker.list_active(room_id)

    async def joined_participants(self, room_id: str) -> list[Participant]:
        return [p for p in await self.tracker.list_for_session(room_id) if p.status == ParticipantStatus.JOINED]
