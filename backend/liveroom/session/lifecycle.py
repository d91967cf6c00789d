from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Iterable, Mapping

from liveroom.errors import InvalidTransition
from liveroom.session.models import (
    Participant,
    ParticipantRole,
    ParticipantStatus,
    SessionRecord,
    SessionStatus,
    TERMINAL_STATUSES,
    utcnow,
)

logger = logging.getLogger("session.lifecycle")

REQUIRED_ROLES = (ParticipantRole.CANDIDATE, ParticipantRole.INTERVIEWER)


class Transition(Enum):
    STARTED = "started"
    COMPLETED = "completed"
    PAUSED = "paused"
    RESUMED = "resumed"
    CANCELLED = "cancelled"


@dataclass
class Attendance:
    joined_at: datetime | None = None
    left_at: datetime | None = None


def compute_duration(started_at: datetime | None, ended_at: datetime | None) -> int | None:
    """Whole minutes between start and end, rounding halves up."""
    if started_at is None or ended_at is None:
        return None
    elapsed_ms = (ended_at - started_at).total_seconds() * 1000.0
    return int(math.floor(elapsed_ms / 60000.0 + 0.5))


def apply_attendance(
    session: SessionRecord,
    attendance: Mapping[ParticipantRole, Attendance],
    now: datetime | None = None,
) -> Transition | None:
    """Derive the automatic status transition from the required roles' attendance.

    Mutates ``session`` in place and returns the transition that fired, if any.
    """
    if session.status in TERMINAL_STATUSES:
        return None

    now = now or utcnow()
    slots = [attendance.get(role) or Attendance() for role in REQUIRED_ROLES]

    if session.status == SessionStatus.SCHEDULED:
        if all(slot.joined_at is not None for slot in slots):
            session.status = SessionStatus.ACTIVE
            session.started_at = now
            return Transition.STARTED
        return None

    if session.status in {SessionStatus.ACTIVE, SessionStatus.PAUSED}:
        if all(slot.left_at is not None for slot in slots):
            _complete(session, now)
            return Transition.COMPLETED
    return None


def _complete(session: SessionRecord, now: datetime) -> None:
    session.status = SessionStatus.COMPLETED
    session.ended_at = now
    session.duration = compute_duration(session.started_at, session.ended_at)


def end(session: SessionRecord, now: datetime | None = None) -> Transition:
    if session.status == SessionStatus.COMPLETED:
        raise InvalidTransition("Session already ended")
    if session.status == SessionStatus.CANCELLED:
        raise InvalidTransition("Session was cancelled")
    _complete(session, now or utcnow())
    return Transition.COMPLETED


def cancel(session: SessionRecord) -> Transition:
    if session.status in TERMINAL_STATUSES:
        raise InvalidTransition(f"Cannot cancel a {session.status.value} session")
    session.status = SessionStatus.CANCELLED
    return Transition.CANCELLED


def pause(session: SessionRecord) -> Transition:
    if session.status != SessionStatus.ACTIVE:
        raise InvalidTransition(f"Cannot pause a {session.status.value} session")
    session.status = SessionStatus.PAUSED
    return Transition.PAUSED


def resume(session: SessionRecord) -> Transition:
    if session.status != SessionStatus.PAUSED:
        raise InvalidTransition(f"Cannot resume a {session.status.value} session")
    session.status = SessionStatus.ACTIVE
    return Transition.RESUMED


def attendance_from_participants(participants: Iterable[Participant]) -> dict[ParticipantRole, Attendance]:
    """Fold participant records into one attendance entry per required role.

    A role joined at its earliest join; it has left once every record of that
    role that ever joined is in a terminal status.
    """
    grouped: dict[ParticipantRole, list[Participant]] = {role: [] for role in REQUIRED_ROLES}
    for participant in participants:
        if participant.role in grouped and participant.joined_at is not None:
            grouped[participant.role].append(participant)

    result: dict[ParticipantRole, Attendance] = {}
    for role, records in grouped.items():
        if not records:
            result[role] = Attendance()
            continue
        joined_at = min(record.joined_at for record in records)
        still_present = any(
            record.status in {ParticipantStatus.JOINED, ParticipantStatus.PENDING} or record.left_at is None
            for record in records
        )
        left_at = None if still_present else max(record.left_at for record in records)
        result[role] = Attendance(joined_at=joined_at, left_at=left_at)
    return result
