import pytest
from fastapi.testclient import TestClient

from liveroom.main import create_app


@pytest.fixture
def client(store, offline_assistant):
    with TestClient(create_app(store=store, assistant=offline_assistant)) as test_client:
        yield test_client


def _create_room(client) -> str:
    response = client.post(
        "/room/create",
        json={"interviewType": "1-on-1", "title": "Pairing", "interviewerId": "i1", "interviewerName": "Ivy"},
    )
    assert response.status_code == 201
    return response.json()["data"]["roomId"]


def test_create_room_requires_interview_type(client):
    response = client.post("/room/create", json={"title": "No type"})
    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert "interviewType" in body["message"]


def test_room_info_lists_pending_interviewer(client):
    room_id = _create_room(client)
    response = client.get(f"/room/info/{room_id}")
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["room"]["status"] == "scheduled"
    assert data["participants"] == [{"userId": "i1", "name": "Ivy", "role": "interviewer", "status": "pending"}]


def test_room_info_unknown_room(client):
    response = client.get("/room/info/missing")
    assert response.status_code == 404
    assert response.json() == {"success": False, "message": "Room not found", "error": "NotFound"}


def test_http_join_then_interviewer_join_starts_room(client):
    room_id = _create_room(client)
    joined = client.post("/room/join", json={"roomId": room_id, "userId": "c1", "name": "Cara"})
    assert joined.status_code == 200
    assert joined.json()["data"]["status"] == "joined"

    started = client.post("/room/join", json={"roomId": room_id, "userId": "i1", "name": "Ivy", "role": "interviewer"})
    assert started.json()["data"]["room"]["status"] == "active"


def test_websocket_join_and_signal(client):
    room_id = _create_room(client)
    with client.websocket_connect("/ws/room") as candidate:
        candidate.send_json({"event": "join-room", "data": {"roomId": room_id, "userId": "c1", "name": "Cara", "role": "candidate"}})
        assert candidate.receive_json()["event"] == "participants-update"
        joined = candidate.receive_json()
        assert joined["event"] == "room-joined"
        assert joined["data"]["userId"] == "c1"

        with client.websocket_connect("/ws/room") as interviewer:
            interviewer.send_json(
                {"event": "join-room", "data": {"roomId": room_id, "userId": "i1", "name": "Ivy", "role": "interviewer"}}
            )
            events = [interviewer.receive_json()["event"] for _ in range(3)]
            assert events == ["participants-update", "room-update", "room-joined"]

            candidate.send_json({"event": "signal", "data": {"roomId": room_id, "userId": "c1", "signal": {"sdp": "offer"}}})
            relayed = interviewer.receive_json()
            assert relayed == {"event": "signal", "data": {"userId": "c1", "signal": {"sdp": "offer"}}}

        candidate.send_json({"event": "ping"})
        seen = []
        while not seen or seen[-1] != "pong":
            seen.append(candidate.receive_json()["event"])
        assert seen[:2] == ["participants-update", "room-update"]


def test_health_and_metrics(client):
    assert client.get("/health").json()["status"] == "healthy"
    metrics = client.get("/api/system/metrics").json()
    assert "http_requests_total" in metrics
    assert "room_channels_active" in metrics
