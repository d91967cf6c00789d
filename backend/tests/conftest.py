import asyncio
import json
import sys
from pathlib import Path

import pytest
from starlette.websockets import WebSocketState


ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


@pytest.fixture(autouse=True)
def _test_env(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("ENV", "development")
    monkeypatch.setenv("USE_REDIS_STORE", "false")
    monkeypatch.setenv("ROOM_EVENT_BUS_ENABLED", "false")


class FakeWebSocket:
    def __init__(self):
        self.client_state = WebSocketState.CONNECTED
        self.sent = []

    async def send_text(self, payload: str):
        await asyncio.sleep(0)
        self.sent.append(payload)

    def frames(self, event: str | None = None) -> list[dict]:
        decoded = [json.loads(item) for item in self.sent]
        if event is None:
            return decoded
        return [item["data"] for item in decoded if item["event"] == event]

    def events(self) -> list[str]:
        return [item["event"] for item in self.frames()]

    def clear(self):
        self.sent.clear()


class FakeProvider:
    def __init__(self, name: str, replies=None, error: Exception | None = None):
        self.name = name
        self.replies = list(replies or [])
        self.error = error
        self.prompts = []

    async def complete(self, prompt: str, temperature: float = 0.4) -> str:
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return self.replies.pop(0) if self.replies else ""


@pytest.fixture
def make_ws():
    return FakeWebSocket


@pytest.fixture
def make_provider():
    return FakeProvider


@pytest.fixture
def store():
    from liveroom.session.store import LocalDocumentStore

    return LocalDocumentStore()


@pytest.fixture
def tracker(store):
    from liveroom.session.participants import ParticipantTracker

    return ParticipantTracker(store)


@pytest.fixture
def offline_assistant():
    from liveroom.ai.assistant import InterviewAssistant

    return InterviewAssistant(providers={})
