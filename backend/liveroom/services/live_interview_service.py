from __future__ import annotations

import logging
import math
import uuid
from datetime import datetime
from typing import Any, Callable, assert_never

from liveroom.ai.assistant import InterviewAssistant
from liveroom.core.config import SPEECH_LOG_LIMIT
from liveroom.errors import InvalidTransition, NotFound
from liveroom.schemas import (
    AddQuestionRequest,
    AttendanceRequest,
    CreateLiveInterviewRequest,
    EndInterviewRequest,
    RecordResponseRequest,
)
from liveroom.session import lifecycle
from liveroom.session.lifecycle import Attendance, Transition
from liveroom.session.models import (
    AIResponseRecord,
    LiveInterview,
    ParticipantRole,
    ParticipantSlot,
    QuestionRecord,
    SessionStatus,
    SpeechLog,
    parse_role,
    utcnow,
)
from liveroom.session.store import DocumentStore
from liveroom.system_metrics import record_transition

logger = logging.getLogger("services.live_interviews")

INTERVIEWS = "live_interviews"


def _new_interview_id() -> str:
    return f"live_{uuid.uuid4().hex}"


def _slot_for(interview: LiveInterview, role: ParticipantRole) -> ParticipantSlot | None:
    match role:
        case ParticipantRole.CANDIDATE:
            return interview.candidate
        case ParticipantRole.INTERVIEWER:
            return interview.interviewer
        case ParticipantRole.OBSERVER:
            return None
        case _:
            assert_never(role)


def _attendance(interview: LiveInterview) -> dict[ParticipantRole, Attendance]:
    return {
        ParticipantRole.CANDIDATE: Attendance(interview.candidate.joined_at, interview.candidate.left_at),
        ParticipantRole.INTERVIEWER: Attendance(interview.interviewer.joined_at, interview.interviewer.left_at),
    }


def update_performance(interview: LiveInterview) -> None:
    """Recompute question counters and averages from the question list."""
    answered = [q for q in interview.questions if q.candidate_response is not None]
    response_times = [q.response_time for q in answered if q.response_time]

    performance = interview.performance
    performance.total_questions = len(interview.questions)
    performance.answered_questions = len(answered)
    performance.average_response_time = sum(response_times) / len(response_times) if response_times else 0
    performance.average_score = sum(q.score or 0 for q in answered) / len(answered) if answered else 0


class LiveInterviewService:
    def __init__(self, store: DocumentStore, assistant: InterviewAssistant, speech_log_limit: int = SPEECH_LOG_LIMIT):
        self.store = store
        self.assistant = assistant
        self.speech_log_limit = max(1, int(speech_log_limit))

    async def create(self, request: CreateLiveInterviewRequest) -> LiveInterview:
        interview = LiveInterview(
            interview_id=_new_interview_id(),
            title=request.title,
            job_position=request.job_position,
            company=request.company,
            interview_type=request.interview_type,
            language=request.language,
            job_description=request.job_description,
            meeting_link=request.meeting_link,
            scheduled_time=request.scheduled_time,
            candidate=ParticipantSlot(**request.candidate.model_dump()),
            interviewer=ParticipantSlot(
                user_id=request.interviewer.user_id,
                name=request.interviewer.name,
                email=request.interviewer.email,
            ),
            created_by=request.created_by,
        )
        while not await self.store.insert(INTERVIEWS, interview.interview_id, interview.to_document()):
            interview.interview_id = _new_interview_id()
        logger.info("Live interview created | interview_id=%s", interview.interview_id)
        return interview

    async def get(self, interview_id: str) -> LiveInterview:
        document = await self.store.get(INTERVIEWS, interview_id)
        if document is None:
            raise NotFound("Interview not found")
        return LiveInterview.model_validate(document)

    async def _update(self, interview_id: str, apply: Callable[[LiveInterview], Any]) -> tuple[LiveInterview, Any]:
        """Atomically load, mutate and persist one interview; returns it with ``apply``'s result."""
        outcome: dict[str, Any] = {}

        def _mutate(current: dict | None) -> dict | None:
            if current is None:
                return None
            interview = LiveInterview.model_validate(current)
            outcome["result"] = apply(interview)
            interview.updated_at = utcnow()
            return interview.to_document()

        document = await self.store.modify(INTERVIEWS, interview_id, _mutate)
        if document is None:
            raise NotFound("Interview not found")
        return LiveInterview.model_validate(document), outcome.get("result")

    def _record(self, interview_id: str, transition: Transition | None) -> None:
        if transition is None:
            return
        record_transition(transition.value)
        logger.info("Live interview transition | interview_id=%s transition=%s", interview_id, transition.value)

    async def join(
        self,
        interview_id: str,
        request: AttendanceRequest,
        now: datetime | None = None,
    ) -> tuple[LiveInterview, Transition | None, bool]:
        """Mark a slot joined and run the start check.

        Returns the interview, the transition that fired and whether the caller
        matched a slot. Observers and mismatched users change nothing.
        """
        role = parse_role(request.role)
        now = now or utcnow()
        matched = {"value": False}

        def _apply(interview: LiveInterview) -> Transition | None:
            slot = _slot_for(interview, role)
            if slot is None:
                return None
            if slot.user_id != request.user_id:
                logger.warning(
                    "Join ignored; user does not hold slot | interview_id=%s role=%s user_id=%s",
                    interview_id,
                    role.value,
                    request.user_id,
                )
                return None
            matched["value"] = True
            if slot.joined_at is None:
                slot.joined_at = now
            slot.left_at = None
            if request.email:
                slot.email = request.email
            return lifecycle.apply_attendance(interview, _attendance(interview), now)

        interview, transition = await self._update(interview_id, _apply)
        self._record(interview_id, transition)
        return interview, transition, matched["value"]

    async def leave(
        self,
        interview_id: str,
        user_id: str,
        role: ParticipantRole | str,
        now: datetime | None = None,
    ) -> tuple[LiveInterview, Transition | None]:
        role = parse_role(role.value if isinstance(role, ParticipantRole) else role)
        now = now or utcnow()

        def _apply(interview: LiveInterview) -> Transition | None:
            slot = _slot_for(interview, role)
            if slot is None or slot.user_id != user_id:
                return None
            slot.left_at = now
            return lifecycle.apply_attendance(interview, _attendance(interview), now)

        interview, transition = await self._update(interview_id, _apply)
        self._record(interview_id, transition)
        return interview, transition

    async def add_question(self, interview_id: str, request: AddQuestionRequest) -> QuestionRecord:
        question = QuestionRecord(
            question_id=str(uuid.uuid4()),
            question=request.question,
            category=request.category,
            difficulty=request.difficulty,
            asked_by=request.asked_by,
        )

        def _apply(interview: LiveInterview) -> None:
            interview.questions.append(question)
            interview.performance.total_questions = len(interview.questions)

        await self._update(interview_id, _apply)
        return question

    async def record_response(self, interview_id: str, request: RecordResponseRequest) -> QuestionRecord:
        interview = await self.get(interview_id)
        question = interview.find_question(request.question_id)
        if question is None:
            raise NotFound("Question not found")
        if question.candidate_response is not None:
            raise InvalidTransition("Question already answered")

        assistance = None
        if interview.ai_assistance.enabled:
            assistance = await self.assistant.provide_assistance(
                question.question,
                request.response,
                interview.job_description,
            )

        def _apply(current: LiveInterview) -> QuestionRecord:
            target = current.find_question(request.question_id)
            if target is None:
                raise NotFound("Question not found")
            if target.candidate_response is not None:
                raise InvalidTransition("Question already answered")
            target.candidate_response = request.response
            target.response_time = request.response_time
            if assistance is not None:
                target.ai_suggestion = assistance["suggestion"]
                target.score = assistance["score"]
                current.ai_assistance.responses.append(
                    AIResponseRecord(
                        question=target.question,
                        candidate_answer=request.response,
                        ai_suggestion=assistance["suggestion"],
                        confidence=assistance["confidence"],
                    )
                )
            update_performance(current)
            return target

        _, recorded = await self._update(interview_id, _apply)
        return recorded

    async def get_assistance(self, interview_id: str, question: str, candidate_answer: str) -> dict:
        interview = await self.get(interview_id)
        return await self.assistant.provide_assistance(question, candidate_answer, interview.job_description)

    async def generate_questions(self, interview_id: str, count: int = 10) -> list[dict]:
        interview = await self.get(interview_id)
        return await self.assistant.generate_questions(
            interview.job_description,
            interview_type=interview.interview_type,
            resume=interview.candidate.resume,
            count=count,
        )

    async def append_speech_log(self, interview_id: str, entry: dict) -> SpeechLog:
        """Store one speech-recognition log line, keeping only the newest entries."""
        log = SpeechLog(
            id=str(entry.get("id") or uuid.uuid4()),
            timestamp=entry.get("timestamp") or utcnow().isoformat(),
            action=str(entry.get("action") or "unknown"),
            text=entry.get("text"),
            details=entry.get("details") if isinstance(entry.get("details"), dict) else None,
            user=str(entry.get("user") or ""),
            role=str(entry.get("role") or ""),
        )

        def _apply(interview: LiveInterview) -> None:
            interview.speech_logs.append(log)
            if len(interview.speech_logs) > self.speech_log_limit:
                interview.speech_logs = interview.speech_logs[-self.speech_log_limit:]

        await self._update(interview_id, _apply)
        return log

    async def record_generated_assistance(self, interview_id: str, question: str, assistance: dict) -> AIResponseRecord:
        record = AIResponseRecord(
            question=str(question or ""),
            candidate_answer="",
            ai_suggestion=str(assistance.get("suggestion") or "") or None,
            confidence=assistance.get("confidence") if isinstance(assistance.get("confidence"), (int, float)) else None,
            type="live-assistance",
        )

        def _apply(interview: LiveInterview) -> None:
            interview.ai_assistance.responses.append(record)

        await self._update(interview_id, _apply)
        return record

    async def end(self, interview_id: str, request: EndInterviewRequest | None = None) -> LiveInterview:
        interview = await self.get(interview_id)
        if interview.status in (SessionStatus.COMPLETED, SessionStatus.CANCELLED):
            # refuse before paying for the analysis call
            lifecycle.end(interview)

        analysis = await self.assistant.analyze_performance(
            [q.to_document() for q in interview.questions],
            interview.job_description,
        )

        def _apply(current: LiveInterview) -> Transition:
            transition = lifecycle.end(current)
            if request is not None:
                current.interviewer_notes = request.interviewer_notes
                current.candidate_feedback = request.candidate_feedback
            current.performance.strengths = list(analysis["strengths"])
            current.performance.weaknesses = list(analysis["weaknesses"])
            current.performance.overall_rating = max(1.0, min(10.0, float(analysis["score"])))
            current.final_verdict = analysis["recommendation"]
            return transition

        ended, transition = await self._update(interview_id, _apply)
        self._record(interview_id, transition)
        return ended

    async def _explicit(self, interview_id: str, apply: Callable[[LiveInterview], Transition]) -> LiveInterview:
        interview, transition = await self._update(interview_id, apply)
        self._record(interview_id, transition)
        return interview

    async def cancel(self, interview_id: str) -> LiveInterview:
        return await self._explicit(interview_id, lifecycle.cancel)

    async def pause(self, interview_id: str) -> LiveInterview:
        return await self._explicit(interview_id, lifecycle.pause)

    async def resume(self, interview_id: str) -> LiveInterview:
        return await self._explicit(interview_id, lifecycle.resume)

    async def history(
        self,
        user_id: str,
        role: str | None = None,
        status: str | None = None,
        limit: int = 10,
        page: int = 1,
    ) -> dict:
        limit = max(1, int(limit))
        page = max(1, int(page))
        roles = {parse_role(role).value} if role else {"candidate", "interviewer"}

        def _matches(document: dict) -> bool:
            if status and document.get("status") != status:
                return False
            return any((document.get(slot) or {}).get("userId") == user_id for slot in roles)

        documents = await self.store.find(INTERVIEWS, _matches)
        documents.sort(key=lambda doc: str(doc.get("createdAt") or ""), reverse=True)

        total = len(documents)
        start = (page - 1) * limit
        interviews = []
        for document in documents[start:start + limit]:
            assistance = dict(document.get("aiAssistance") or {})
            assistance.pop("responses", None)
            document["aiAssistance"] = assistance
            interviews.append(document)

        return {
            "interviews": interviews,
            "pagination": {
                "total": total,
                "page": page,
                "limit": limit,
                "pages": math.ceil(total / limit),
            },
        }

    async def complete_active(self) -> int:
        """Force-complete every active or paused interview; used on shutdown."""
        documents = await self.store.find(
            INTERVIEWS,
            lambda doc: doc.get("status") in {SessionStatus.ACTIVE.value, SessionStatus.PAUSED.value},
        )
        completed = 0
        for document in documents:
            try:
                await self._explicit(document["interviewId"], lifecycle.end)
                completed += 1
            except (InvalidTransition, NotFound) as exc:
                logger.info("Skip shutdown completion | interview_id=%s err=%s", document.get("interviewId"), exc)
        if completed:
            logger.info("Completed active interviews on shutdown | count=%s", completed)
        return completed
