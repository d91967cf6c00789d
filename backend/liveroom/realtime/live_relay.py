from __future__ import annotations

import logging

from liveroom.errors import MissingField
from liveroom.realtime.connections import Connection
from liveroom.realtime.hub import RoomHub
from liveroom.realtime.relay import BaseRelay, parse_payload, require_fields, text_field
from liveroom.schemas import AddQuestionRequest, AttendanceRequest, RecordResponseRequest
from liveroom.services.live_interview_service import LiveInterviewService
from liveroom.session.models import LiveInterview, ParticipantRole, parse_role, utcnow

logger = logging.getLogger("realtime.live_relay")


class LiveInterviewRelay(BaseRelay):
    channel = "live_interview"
    error_events = {
        "join-interview": "interview-error",
        "leave-interview": "interview-error",
        "ask-question": "question-error",
        "candidate-response": "response-error",
        "request-ai-assistance": "ai-assistance-error",
        "signal": "signal-error",
    }

    def __init__(self, hub: RoomHub, interviews: LiveInterviewService):
        super().__init__(hub)
        self.interviews = interviews
        self.handlers.update(
            {
                "join-interview": self.on_join,
                "leave-interview": self.on_leave,
                "ask-question": self.on_ask_question,
                "candidate-response": self.on_candidate_response,
                "request-ai-assistance": self.on_request_assistance,
                "speech-log": self.on_speech_log,
                "capture-status": self.on_capture_status,
                "ai-assistance-generated": self.on_assistance_generated,
            }
        )

    async def may_signal(self, room_id: str, user_id: str, connection: Connection) -> bool:
        return await self.registry.user_for(room_id, connection) == user_id

    async def publish_state(self, interview: LiveInterview) -> None:
        await self.hub.broadcast(interview.interview_id, "interview-update", interview.state())

    async def on_join(self, connection: Connection, data: dict) -> None:
        interview_id, user_id, name, role = require_fields(data, "interviewId", "userId", "name", "role")
        request = AttendanceRequest(
            user_id=user_id,
            role=parse_role(role).value,
            name=name,
            email=text_field(data, "email") or None,
        )
        interview, _, matched = await self.interviews.join(interview_id, request)
        await self.registry.join(interview_id, connection, user_id)
        logger.info(
            "Joined interview | interview_id=%s user_id=%s role=%s slot_matched=%s",
            interview_id,
            user_id,
            request.role,
            matched,
        )

        await self.publish_state(interview)
        document = interview.to_document()
        await self.hub.emit(
            connection,
            "interview-joined",
            {
                "success": True,
                "interviewId": interview_id,
                "userId": user_id,
                "role": request.role,
                "title": interview.title,
                "status": interview.status.value,
                "startedAt": document["startedAt"],
                "endedAt": document["endedAt"],
                "candidate": document["candidate"],
                "interviewer": document["interviewer"],
                "questions": document["questions"],
                "aiAssistance": document["aiAssistance"],
            },
        )
        for question in document["questions"]:
            await self.hub.emit(connection, "question-asked", dict(question, interviewId=interview_id))

        await self.hub.broadcast(
            interview_id,
            "participant-joined",
            {"userId": user_id, "name": name, "role": request.role, "joinedAt": utcnow().isoformat()},
            exclude=connection,
        )

    async def on_leave(self, connection: Connection, data: dict) -> None:
        interview_id, user_id, role = require_fields(data, "interviewId", "userId", "role")
        if not await self.release_membership(interview_id, user_id, connection):
            return
        interview, _ = await self.interviews.leave(interview_id, user_id, role)
        logger.info("Left interview | interview_id=%s user_id=%s role=%s", interview_id, user_id, role)
        await self.publish_state(interview)
        await self.hub.broadcast(
            interview_id,
            "participant-left",
            {"userId": user_id, "role": role, "leftAt": utcnow().isoformat()},
        )

    async def on_member_disconnected(self, room_id: str, user_id: str) -> None:
        interview = await self.interviews.get(room_id)
        if interview.candidate.user_id == user_id:
            role = ParticipantRole.CANDIDATE
        elif interview.interviewer.user_id == user_id:
            role = ParticipantRole.INTERVIEWER
        else:
            role = ParticipantRole.OBSERVER
        interview, _ = await self.interviews.leave(room_id, user_id, role)
        logger.info("Participant disconnected | interview_id=%s user_id=%s", room_id, user_id)
        await self.publish_state(interview)
        await self.hub.broadcast(
            room_id,
            "participant-left",
            {"userId": user_id, "role": role.value, "leftAt": utcnow().isoformat()},
        )

    async def on_ask_question(self, connection: Connection, data: dict) -> None:
        (interview_id,) = require_fields(data, "interviewId")
        request = parse_payload(AddQuestionRequest, data)
        question = await self.interviews.add_question(interview_id, request)
        await self.hub.broadcast(interview_id, "question-asked", dict(question.to_document(), interviewId=interview_id))

    async def on_candidate_response(self, connection: Connection, data: dict) -> None:
        (interview_id,) = require_fields(data, "interviewId")
        request = parse_payload(RecordResponseRequest, data)
        question = await self.interviews.record_response(interview_id, request)
        await self.hub.broadcast(
            interview_id,
            "response-recorded",
            {
                "questionId": question.question_id,
                "response": question.candidate_response,
                "responseTime": question.response_time,
                "aiSuggestion": question.ai_suggestion,
                "score": question.score,
                "interviewId": interview_id,
            },
        )

    async def on_request_assistance(self, connection: Connection, data: dict) -> None:
        interview_id, question = require_fields(data, "interviewId", "question")
        candidate_answer = text_field(data, "candidateAnswer")
        assistance = await self.interviews.get_assistance(interview_id, question, candidate_answer)
        await self.hub.emit(
            connection,
            "ai-assistance",
            {"question": question, "candidateAnswer": candidate_answer, "assistance": assistance},
        )

    async def on_speech_log(self, connection: Connection, data: dict) -> None:
        (interview_id,) = require_fields(data, "interviewId")
        log = await self.interviews.append_speech_log(interview_id, data)
        await self.hub.broadcast(interview_id, "speech-log-broadcast", log.to_document(), exclude=connection)

    async def on_capture_status(self, connection: Connection, data: dict) -> None:
        (interview_id,) = require_fields(data, "interviewId")
        await self.hub.broadcast(
            interview_id,
            "capture-update",
            {"type": data.get("type"), "enabled": bool(data.get("enabled")), "url": data.get("url")},
            exclude=connection,
        )

    async def on_assistance_generated(self, connection: Connection, data: dict) -> None:
        (interview_id,) = require_fields(data, "interviewId")
        assistance = data.get("assistance")
        if not isinstance(assistance, dict):
            raise MissingField()
        question = text_field(data, "question")
        await self.hub.broadcast(
            interview_id,
            "ai-assistance-live",
            {
                "interviewId": interview_id,
                "question": question,
                "assistance": assistance,
                "userId": data.get("userId"),
                "userName": data.get("userName"),
                "timestamp": data.get("timestamp") or utcnow().isoformat(),
            },
        )
        await self.interviews.record_generated_assistance(interview_id, question, assistance)
