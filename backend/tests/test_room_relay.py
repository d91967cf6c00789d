import asyncio

import pytest

from liveroom.realtime.connections import ConnectionRegistry
from liveroom.realtime.hub import RoomHub
from liveroom.realtime.relay import BaseRelay, RoomRelay
from liveroom.schemas import CreateRoomRequest
from liveroom.services.room_service import RoomService
from liveroom.session.lifecycle import Transition
from liveroom.session.models import ParticipantRole, ParticipantStatus, SessionStatus
from liveroom.system_metrics import get_metrics_snapshot

OFFER = {"sdp": "v=0 offer", "type": "offer"}


@pytest.fixture
def rooms(tracker, store):
    return RoomService(store, tracker)


@pytest.fixture
def relay(rooms):
    return RoomRelay(RoomHub(ConnectionRegistry()), rooms)


async def _room(rooms) -> str:
    room = await rooms.create_room(
        CreateRoomRequest(interview_type="1-on-1", interviewer_id="i1", interviewer_name="Ivy")
    )
    return room.room_id


async def _join(relay, make_ws, room_id, user_id, name, role):
    ws = make_ws()
    connection = await relay.connect(ws)
    await relay.dispatch(connection, "join-room", {"roomId": room_id, "userId": user_id, "name": name, "role": role})
    return ws, connection


@pytest.mark.asyncio
async def test_join_missing_fields_reports_only_to_caller(relay, rooms, make_ws):
    room_id = await _room(rooms)
    member_ws, _ = await _join(relay, make_ws, room_id, "c1", "Cara", "candidate")
    member_ws.clear()

    ws = make_ws()
    connection = await relay.connect(ws)
    await relay.dispatch(connection, "join-room", {"roomId": room_id, "userId": "c2", "role": "candidate"})

    assert ws.frames("room-error") == [{"error": "Missing required fields"}]
    assert member_ws.sent == []


@pytest.mark.asyncio
async def test_join_unknown_room(relay, make_ws):
    ws = make_ws()
    connection = await relay.connect(ws)
    await relay.dispatch(connection, "join-room", {"roomId": "nope", "userId": "c1", "name": "Cara", "role": "candidate"})
    assert ws.frames("room-error") == [{"error": "Room not found"}]


@pytest.mark.asyncio
async def test_join_broadcasts_participants_then_confirms(relay, rooms, make_ws):
    room_id = await _room(rooms)
    ws, _ = await _join(relay, make_ws, room_id, "c1", "Cara", "candidate")

    assert ws.events() == ["participants-update", "room-joined"]
    roster = ws.frames("participants-update")[0]
    assert {item["userId"]: item["status"] for item in roster} == {"c1": "joined", "i1": "pending"}

    joined = ws.frames("room-joined")[0]
    assert joined["success"] is True
    assert joined["roomId"] == room_id
    assert [item["userId"] for item in joined["participants"]] == ["c1"]
    assert joined["room"]["status"] == "scheduled"


@pytest.mark.asyncio
async def test_both_roles_joining_starts_room_once(relay, rooms, make_ws):
    room_id = await _room(rooms)
    candidate_ws, _ = await _join(relay, make_ws, room_id, "c1", "Cara", "candidate")
    interviewer_ws, _ = await _join(relay, make_ws, room_id, "i1", "Ivy", "interviewer")

    updates = candidate_ws.frames("room-update")
    assert len(updates) == 1
    assert updates[0]["status"] == "active"
    assert interviewer_ws.frames("room-joined")[0]["room"]["status"] == "active"

    room = await rooms.get_room(room_id)
    assert room.status == SessionStatus.ACTIVE
    assert room.started_at is not None


@pytest.mark.asyncio
async def test_concurrent_joins_transition_exactly_once(rooms):
    room_id = await _room(rooms)
    results = await asyncio.gather(
        rooms.join(room_id, "c1", "Cara", ParticipantRole.CANDIDATE),
        rooms.join(room_id, "i1", "Ivy", ParticipantRole.INTERVIEWER),
    )
    transitions = [transition for _, _, transition in results if transition is not None]
    assert transitions == [Transition.STARTED]


@pytest.mark.asyncio
async def test_signal_from_non_participant_is_unauthorized_before_shape(relay, rooms, make_ws):
    room_id = await _room(rooms)
    member_ws, _ = await _join(relay, make_ws, room_id, "c1", "Cara", "candidate")
    member_ws.clear()

    ws = make_ws()
    connection = await relay.connect(ws)
    await relay.dispatch(connection, "signal", {"roomId": room_id, "userId": "stranger", "signal": "garbage"})

    assert ws.frames("signal-error") == [{"error": "Unauthorized signaling attempt"}]
    assert member_ws.sent == []


@pytest.mark.asyncio
async def test_signal_requires_sdp_or_candidate(relay, rooms, make_ws):
    room_id = await _room(rooms)
    ws, connection = await _join(relay, make_ws, room_id, "c1", "Cara", "candidate")
    ws.clear()

    await relay.dispatch(connection, "signal", {"roomId": room_id, "userId": "c1", "signal": {"type": "offer"}})
    assert ws.frames("signal-error") == [{"error": "Invalid signal format"}]


@pytest.mark.asyncio
async def test_signal_broadcast_and_targeted_delivery(relay, rooms, make_ws):
    room_id = await _room(rooms)
    candidate_ws, candidate = await _join(relay, make_ws, room_id, "c1", "Cara", "candidate")
    interviewer_ws, _ = await _join(relay, make_ws, room_id, "i1", "Ivy", "interviewer")
    observer_ws, _ = await _join(relay, make_ws, room_id, "o1", "Otto", "observer")
    for ws in (candidate_ws, interviewer_ws, observer_ws):
        ws.clear()

    await relay.dispatch(candidate, "signal", {"roomId": room_id, "userId": "c1", "signal": OFFER})
    assert candidate_ws.sent == []
    assert interviewer_ws.frames("signal") == [{"userId": "c1", "signal": OFFER}]
    assert observer_ws.frames("signal") == [{"userId": "c1", "signal": OFFER}]

    interviewer_ws.clear()
    observer_ws.clear()
    ice = {"candidate": "candidate:1 1 UDP 2122260223 10.0.0.1 54400 typ host"}
    await relay.dispatch(candidate, "signal", {"roomId": room_id, "userId": "c1", "signal": ice, "targetId": "i1"})
    assert interviewer_ws.frames("signal") == [{"userId": "c1", "signal": ice}]
    assert observer_ws.sent == []


@pytest.mark.asyncio
async def test_disconnect_marks_participant_and_completes_room(relay, rooms, tracker, make_ws):
    room_id = await _room(rooms)
    _, candidate = await _join(relay, make_ws, room_id, "c1", "Cara", "candidate")
    interviewer_ws, interviewer = await _join(relay, make_ws, room_id, "i1", "Ivy", "interviewer")
    interviewer_ws.clear()

    before = get_metrics_snapshot()["ws_disconnect_client_disconnect"]
    await relay.disconnect(candidate, "client_disconnect")

    assert (await tracker.get(room_id, "c1")).status == ParticipantStatus.DISCONNECTED
    roster = interviewer_ws.frames("participants-update")[-1]
    assert [item["userId"] for item in roster] == ["i1"]
    assert get_metrics_snapshot()["ws_disconnect_client_disconnect"] == before + 1

    await relay.dispatch(interviewer, "leave-room", {"roomId": room_id, "userId": "i1"})
    room = await rooms.get_room(room_id)
    assert room.status == SessionStatus.COMPLETED
    assert room.duration == 0


@pytest.mark.asyncio
async def test_disconnect_keeps_user_with_another_live_connection(relay, rooms, tracker, make_ws):
    room_id = await _room(rooms)
    _, first = await _join(relay, make_ws, room_id, "c1", "Cara", "candidate")
    await _join(relay, make_ws, room_id, "c1", "Cara", "candidate")

    await relay.disconnect(first, "socket_error")
    assert (await tracker.get(room_id, "c1")).status == ParticipantStatus.JOINED


@pytest.mark.asyncio
async def test_ping_and_malformed_frames(relay, make_ws):
    ws = make_ws()
    connection = await relay.connect(ws)

    await relay.handle_text(connection, '{"event": "ping"}')
    await relay.handle_text(connection, "not json")
    await relay.handle_text(connection, '{"event": "dance", "data": {}}')

    assert ws.events() == ["pong", "error", "error"]
    assert ws.frames("error") == [{"error": "Malformed message"}, {"error": "Unknown event: dance"}]


@pytest.mark.asyncio
async def test_leave_for_another_user_is_refused(relay, rooms, tracker, make_ws):
    room_id = await _room(rooms)
    candidate_ws, _ = await _join(relay, make_ws, room_id, "c1", "Cara", "candidate")
    interviewer_ws, interviewer = await _join(relay, make_ws, room_id, "i1", "Ivy", "interviewer")
    candidate_ws.clear()
    interviewer_ws.clear()

    await relay.dispatch(interviewer, "leave-room", {"roomId": room_id, "userId": "c1"})

    assert interviewer_ws.frames("room-error") == [{"error": "Unauthorized leave attempt"}]
    assert (await tracker.get(room_id, "c1")).status == ParticipantStatus.JOINED
    assert candidate_ws.sent == []

    await relay.disconnect(interviewer, "client_disconnect")
    assert (await tracker.get(room_id, "i1")).status == ParticipantStatus.DISCONNECTED


@pytest.mark.asyncio
async def test_leave_keeps_user_joined_while_another_connection_remains(relay, rooms, tracker, make_ws):
    room_id = await _room(rooms)
    _, first = await _join(relay, make_ws, room_id, "c1", "Cara", "candidate")
    second_ws, _ = await _join(relay, make_ws, room_id, "c1", "Cara", "candidate")
    second_ws.clear()

    await relay.dispatch(first, "leave-room", {"roomId": room_id, "userId": "c1"})

    assert (await tracker.get(room_id, "c1")).status == ParticipantStatus.JOINED
    assert second_ws.sent == []


def test_base_relay_requires_channel_hooks():
    with pytest.raises(TypeError):
        BaseRelay(RoomHub(ConnectionRegistry()))
