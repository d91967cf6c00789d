from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from liveroom.errors import ValidationFailed


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionStatus(str, Enum):
    SCHEDULED = "scheduled"
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = frozenset({SessionStatus.COMPLETED, SessionStatus.CANCELLED})


class ParticipantRole(str, Enum):
    CANDIDATE = "candidate"
    INTERVIEWER = "interviewer"
    OBSERVER = "observer"


class ParticipantStatus(str, Enum):
    PENDING = "pending"
    JOINED = "joined"
    LEFT = "left"
    DISCONNECTED = "disconnected"


ACTIVE_PARTICIPANT_STATUSES = frozenset({ParticipantStatus.JOINED, ParticipantStatus.PENDING})


def parse_role(value) -> ParticipantRole:
    try:
        return ParticipantRole(str(value or "").strip().lower())
    except ValueError:
        raise ValidationFailed(f"Invalid role: {value}") from None


class Document(BaseModel):
    """Base for persisted documents: camelCase on the wire, snake_case in code."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


class SessionRecord(Document):
    status: SessionStatus = SessionStatus.SCHEDULED
    scheduled_time: datetime | None = None
    started_at: datetime | None = None
    ended_at: datetime | None = None
    duration: int | None = None
    created_at: datetime = Field(default_factory=utcnow)


class Participant(Document):
    session_id: str
    user_id: str
    name: str
    role: ParticipantRole
    status: ParticipantStatus = ParticipantStatus.PENDING
    joined_at: datetime | None = None
    left_at: datetime | None = None
    last_active: datetime | None = None

    @staticmethod
    def key(session_id: str, user_id: str) -> str:
        return f"{session_id}:{user_id}"

    def summary(self) -> dict[str, Any]:
        return {
            "userId": self.user_id,
            "name": self.name,
            "role": self.role.value,
            "status": self.status.value,
        }


class Room(SessionRecord):
    room_id: str
    title: str | None = None
    job_position: str | None = None
    interview_type: str
    interview_mode: str | None = None
    time_limit: int | None = None
    max_participants: int | None = None
    custom_questions: list[str] = Field(default_factory=list)
    participants: list[str] = Field(default_factory=list)

    def state(self) -> dict[str, Any]:
        return {
            "roomId": self.room_id,
            "status": self.status.value,
            "startedAt": self.started_at.isoformat() if self.started_at else None,
            "endedAt": self.ended_at.isoformat() if self.ended_at else None,
            "duration": self.duration,
        }


class ParticipantSlot(Document):
    user_id: str
    name: str
    email: str | None = None
    resume: str | None = None
    joined_at: datetime | None = None
    left_at: datetime | None = None


class QuestionRecord(Document):
    question_id: str
    question: str
    category: str = "general"
    difficulty: str = "medium"
    asked_by: str | None = None
    asked_at: datetime = Field(default_factory=utcnow)
    candidate_response: str | None = None
    response_time: float | None = None
    ai_suggestion: str | None = None
    score: float | None = None
    feedback: str | None = None


class AIResponseRecord(Document):
    question: str
    candidate_answer: str | None = None
    ai_suggestion: str | None = None
    timestamp: datetime = Field(default_factory=utcnow)
    confidence: float | None = None
    type: str | None = None


class AIAssistanceSettings(Document):
    enabled: bool = True
    model: str = "gemini-1.5-flash"
    responses: list[AIResponseRecord] = Field(default_factory=list)


class Performance(Document):
    total_questions: int = 0
    answered_questions: int = 0
    average_response_time: float | None = None
    average_score: float | None = None
    strengths: list[str] = Field(default_factory=list)
    weaknesses: list[str] = Field(default_factory=list)
    overall_rating: float | None = None


class SpeechLog(Document):
    id: str
    timestamp: Any
    action: str
    text: str | None = None
    details: dict[str, Any] | None = None
    user: str
    role: str


class LiveInterview(SessionRecord):
    interview_id: str
    title: str
    job_position: str
    company: str
    interview_type: str = "mixed"
    language: str = "English"
    candidate: ParticipantSlot
    interviewer: ParticipantSlot
    job_description: str | None = None
    meeting_link: str | None = None
    ai_assistance: AIAssistanceSettings = Field(default_factory=AIAssistanceSettings)
    questions: list[QuestionRecord] = Field(default_factory=list)
    performance: Performance = Field(default_factory=Performance)
    speech_logs: list[SpeechLog] = Field(default_factory=list)
    interviewer_notes: str | None = None
    candidate_feedback: str | None = None
    final_verdict: str | None = None
    created_by: str | None = None
    updated_at: datetime = Field(default_factory=utcnow)

    def find_question(self, question_id: str) -> QuestionRecord | None:
        for question in self.questions:
            if question.question_id == question_id:
                return question
        return None

    def state(self) -> dict[str, Any]:
        return {
            "interviewId": self.interview_id,
            "status": self.status.value,
            "candidate": self.candidate.to_document(),
            "interviewer": self.interviewer.to_document(),
            "startedAt": self.started_at.isoformat() if self.started_at else None,
            "endedAt": self.ended_at.isoformat() if self.ended_at else None,
            "duration": self.duration,
        }
