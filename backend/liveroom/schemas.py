from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class RequestModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CreateRoomRequest(RequestModel):
    interview_type: Literal["1-on-1", "panel", "group"]
    title: str | None = None
    job_position: str | None = None
    interview_mode: Literal["audio", "video"] | None = None
    time_limit: int | None = Field(default=None, ge=1)
    max_participants: int | None = Field(default=None, ge=1)
    scheduled_time: datetime | None = None
    custom_questions: list[str] = Field(default_factory=list)
    interviewer_id: str | None = None
    interviewer_name: str | None = None


class JoinRoomRequest(RequestModel):
    room_id: str = Field(min_length=1)
    user_id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    role: Literal["candidate", "interviewer", "observer"] = "candidate"


class SlotInput(RequestModel):
    user_id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    email: str | None = None
    resume: str | None = None


class CreateLiveInterviewRequest(RequestModel):
    title: str = Field(min_length=1)
    job_position: str = Field(min_length=1)
    company: str = Field(min_length=1)
    candidate: SlotInput
    interviewer: SlotInput
    scheduled_time: datetime
    interview_type: Literal["technical", "behavioral", "mixed"] = "mixed"
    language: str = "English"
    job_description: str | None = None
    meeting_link: str | None = None
    created_by: str | None = None


class AttendanceRequest(RequestModel):
    user_id: str = Field(min_length=1)
    role: Literal["candidate", "interviewer", "observer"]
    name: str | None = None
    email: str | None = None


class AddQuestionRequest(RequestModel):
    question: str = Field(min_length=1)
    category: Literal["technical", "behavioral", "general"] = "general"
    difficulty: Literal["easy", "medium", "hard"] = "medium"
    asked_by: str = Field(min_length=1)


class RecordResponseRequest(RequestModel):
    question_id: str = Field(min_length=1)
    response: str = Field(min_length=1)
    response_time: float | None = Field(default=None, ge=0)


class AssistanceRequest(RequestModel):
    question: str = Field(min_length=1)
    candidate_answer: str = ""


class EndInterviewRequest(RequestModel):
    interviewer_notes: str | None = None
    candidate_feedback: str | None = None


class TechnicalHelpRequest(RequestModel):
    question: str = Field(min_length=1)
    context: str | None = None
