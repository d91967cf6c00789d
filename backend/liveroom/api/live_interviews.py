import logging

from fastapi import APIRouter, Depends, Query

from liveroom.ai.assistant import InterviewAssistant
from liveroom.api.deps import (
    envelope,
    get_interview_assistant,
    get_live_interview_relay,
    get_live_interview_service,
)
from liveroom.realtime.live_relay import LiveInterviewRelay
from liveroom.schemas import (
    AddQuestionRequest,
    AssistanceRequest,
    AttendanceRequest,
    CreateLiveInterviewRequest,
    EndInterviewRequest,
    RecordResponseRequest,
    TechnicalHelpRequest,
)
from liveroom.services.live_interview_service import LiveInterviewService

logger = logging.getLogger("api.live_interviews")

router = APIRouter(prefix="/live-interview")


@router.post("/create", status_code=201)
async def create_interview(
    payload: CreateLiveInterviewRequest,
    service: LiveInterviewService = Depends(get_live_interview_service),
):
    interview = await service.create(payload)
    document = interview.to_document()
    return envelope(
        {
            "interviewId": interview.interview_id,
            "title": interview.title,
            "status": interview.status.value,
            "scheduledTime": document["scheduledTime"],
        },
        message="Live interview session created successfully",
    )


@router.post("/gemini-help")
async def technical_help(payload: TechnicalHelpRequest, assistant: InterviewAssistant = Depends(get_interview_assistant)):
    answer = await assistant.technical_help(payload.question, payload.context)
    return envelope({"response": answer}, message="AI help generated")


@router.get("/history/{user_id}")
async def get_history(
    user_id: str,
    role: str | None = None,
    status: str | None = None,
    limit: int = Query(default=10, ge=1, le=100),
    page: int = Query(default=1, ge=1),
    service: LiveInterviewService = Depends(get_live_interview_service),
):
    return envelope(await service.history(user_id, role=role, status=status, limit=limit, page=page))


@router.get("/{interview_id}")
async def get_interview(interview_id: str, service: LiveInterviewService = Depends(get_live_interview_service)):
    interview = await service.get(interview_id)
    return envelope(interview.to_document())


@router.post("/{interview_id}/join")
async def join_interview(
    interview_id: str,
    payload: AttendanceRequest,
    service: LiveInterviewService = Depends(get_live_interview_service),
    relay: LiveInterviewRelay = Depends(get_live_interview_relay),
):
    interview, transition, _ = await service.join(interview_id, payload)
    if transition is not None:
        await relay.publish_state(interview)
    return envelope(
        {"interviewId": interview.interview_id, "status": interview.status.value, "role": payload.role},
        message="Successfully joined interview",
    )


@router.post("/{interview_id}/leave")
async def leave_interview(
    interview_id: str,
    payload: AttendanceRequest,
    service: LiveInterviewService = Depends(get_live_interview_service),
    relay: LiveInterviewRelay = Depends(get_live_interview_relay),
):
    interview, transition = await service.leave(interview_id, payload.user_id, payload.role)
    if transition is not None:
        await relay.publish_state(interview)
    return envelope(
        {"interviewId": interview.interview_id, "status": interview.status.value},
        message="Successfully left interview",
    )


@router.post("/{interview_id}/questions")
async def add_question(
    interview_id: str,
    payload: AddQuestionRequest,
    service: LiveInterviewService = Depends(get_live_interview_service),
):
    question = await service.add_question(interview_id, payload)
    return envelope(question.to_document(), message="Question added successfully")


@router.post("/{interview_id}/responses")
async def record_response(
    interview_id: str,
    payload: RecordResponseRequest,
    service: LiveInterviewService = Depends(get_live_interview_service),
):
    question = await service.record_response(interview_id, payload)
    return envelope(
        {"questionId": question.question_id, "aiSuggestion": question.ai_suggestion, "score": question.score},
        message="Response recorded successfully",
    )


@router.get("/{interview_id}/generate-questions")
async def generate_questions(
    interview_id: str,
    count: int = Query(default=10, ge=1, le=20),
    service: LiveInterviewService = Depends(get_live_interview_service),
):
    questions = await service.generate_questions(interview_id, count=count)
    return envelope(questions, message="Questions generated successfully")


@router.post("/{interview_id}/ai-assistance")
async def get_ai_assistance(
    interview_id: str,
    payload: AssistanceRequest,
    service: LiveInterviewService = Depends(get_live_interview_service),
):
    assistance = await service.get_assistance(interview_id, payload.question, payload.candidate_answer)
    return envelope(assistance, message="AI assistance generated")


@router.post("/{interview_id}/end")
async def end_interview(
    interview_id: str,
    payload: EndInterviewRequest | None = None,
    service: LiveInterviewService = Depends(get_live_interview_service),
    relay: LiveInterviewRelay = Depends(get_live_interview_relay),
):
    interview = await service.end(interview_id, payload)
    await relay.publish_state(interview)
    document = interview.to_document()
    return envelope(
        {
            "interviewId": interview.interview_id,
            "duration": interview.duration,
            "performance": document["performance"],
            "finalVerdict": interview.final_verdict,
        },
        message="Interview ended successfully",
    )


async def _explicit_transition(interview_id: str, action: str, service: LiveInterviewService, relay: LiveInterviewRelay):
    interview = await getattr(service, action)(interview_id)
    await relay.publish_state(interview)
    return envelope({"interviewId": interview.interview_id, "status": interview.status.value})


@router.post("/{interview_id}/cancel")
async def cancel_interview(
    interview_id: str,
    service: LiveInterviewService = Depends(get_live_interview_service),
    relay: LiveInterviewRelay = Depends(get_live_interview_relay),
):
    return await _explicit_transition(interview_id, "cancel", service, relay)


@router.post("/{interview_id}/pause")
async def pause_interview(
    interview_id: str,
    service: LiveInterviewService = Depends(get_live_interview_service),
    relay: LiveInterviewRelay = Depends(get_live_interview_relay),
):
    return await _explicit_transition(interview_id, "pause", service, relay)


@router.post("/{interview_id}/resume")
async def resume_interview(
    interview_id: str,
    service: LiveInterviewService = Depends(get_live_interview_service),
    relay: LiveInterviewRelay = Depends(get_live_interview_relay),
):
    return await _explicit_transition(interview_id, "resume", service, relay)
