from __future__ import annotations

import logging
from datetime import datetime

from liveroom.session.models import (
    ACTIVE_PARTICIPANT_STATUSES,
    Participant,
    ParticipantRole,
    ParticipantStatus,
    utcnow,
)
from liveroom.session.store import DocumentStore

logger = logging.getLogger("session.participants")


class ParticipantTracker:
    """Participant records keyed by (session id, user id), one document per key."""

    def __init__(self, store: DocumentStore, collection: str = "participants"):
        self._store = store
        self._collection = collection

    async def upsert_join(
        self,
        session_id: str,
        user_id: str,
        name: str,
        role: ParticipantRole,
        now: datetime | None = None,
    ) -> Participant:
        now = now or utcnow()

        def _apply(current: dict | None) -> dict:
            if current is None:
                participant = Participant(session_id=session_id, user_id=user_id, name=name, role=role)
            else:
                participant = Participant.model_validate(current)
                participant.name = name or participant.name
                participant.role = role
            participant.status = ParticipantStatus.JOINED
            if participant.joined_at is None:
                participant.joined_at = now
            participant.left_at = None
            participant.last_active = now
            return participant.to_document()

        document = await self._store.modify(self._collection, Participant.key(session_id, user_id), _apply)
        return Participant.model_validate(document)

    async def upsert_leave(
        self,
        session_id: str,
        user_id: str,
        status: ParticipantStatus = ParticipantStatus.LEFT,
        now: datetime | None = None,
    ) -> Participant | None:
        now = now or utcnow()

        def _apply(current: dict | None) -> dict | None:
            if current is None:
                return None
            participant = Participant.model_validate(current)
            participant.status = status
            participant.left_at = now
            participant.last_active = now
            return participant.to_document()

        document = await self._store.modify(self._collection, Participant.key(session_id, user_id), _apply)
        return Participant.model_validate(document) if document else None

    async def register_pending(self, session_id: str, user_id: str, name: str, role: ParticipantRole) -> Participant:
        """Record an expected participant without a join timestamp; never downgrades an existing record."""

        def _apply(current: dict | None) -> dict | None:
            if current is not None:
                return None
            return Participant(session_id=session_id, user_id=user_id, name=name, role=role).to_document()

        document = await self._store.modify(self._collection, Participant.key(session_id, user_id), _apply)
        if document is None:
            existing = await self.get(session_id, user_id)
            return existing  # type: ignore[return-value]
        return Participant.model_validate(document)

    async def get(self, session_id: str, user_id: str) -> Participant | None:
        document = await self._store.get(self._collection, Participant.key(session_id, user_id))
        return Participant.model_validate(document) if document else None

    async def is_joined(self, session_id: str, user_id: str) -> bool:
        participant = await self.get(session_id, user_id)
        return participant is not None and participant.status == ParticipantStatus.JOINED

    async def list_for_session(self, session_id: str) -> list[Participant]:
        documents = await self._store.find(self._collection, lambda doc: doc.get("sessionId") == session_id)
        participants = [Participant.model_validate(doc) for doc in documents]
        participants.sort(key=lambda item: (item.joined_at is None, item.joined_at or utcnow(), item.user_id))
        return participants

    async def list_active(self, session_id: str) -> list[Participant]:
        return [p for p in await self.list_for_session(session_id) if p.status in ACTIVE_PARTICIPANT_STATUSES]

    async def close_all(self, status: ParticipantStatus = ParticipantStatus.LEFT) -> int:
        documents = await self._store.find(
            self._collection,
            lambda doc: doc.get("status") == ParticipantStatus.JOINED.value,
        )
        closed = 0
        for document in documents:
            participant = await self.upsert_leave(document["sessionId"], document["userId"], status=status)
            if participant is not None:
                closed += 1
        if closed:
            logger.info("Closed joined participants | collection=%s count=%s", self._collection, closed)
        return closed
