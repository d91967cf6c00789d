from fastapi import Request

from liveroom.ai.assistant import InterviewAssistant
from liveroom.realtime.live_relay import LiveInterviewRelay
from liveroom.realtime.relay import RoomRelay
from liveroom.services.live_interview_service import LiveInterviewService
from liveroom.services.room_service import RoomService


def get_room_service(request: Request) -> RoomService:
    return request.app.state.rooms


def get_room_relay(request: Request) -> RoomRelay:
    return request.app.state.room_relay


def get_live_interview_service(request: Request) -> LiveInterviewService:
    return request.app.state.live_interviews


def get_interview_assistant(request: Request) -> InterviewAssistant:
    return request.app.state.assistant


def get_live_interview_relay(request: Request) -> LiveInterviewRelay:
    return request.app.state.live_relay


def envelope(data=None, message: str | None = None) -> dict:
    payload: dict = {"success": True}
    if message:
        payload["message"] = message
    if data is not None:
        payload["data"] = data
    return payload
