import asyncio

import pytest

from liveroom.session.models import ParticipantRole, ParticipantStatus


@pytest.mark.asyncio
async def test_rejoin_keeps_single_record_and_clears_leave(tracker):
    first = await tracker.upsert_join("r1", "c1", "Cara", ParticipantRole.CANDIDATE)
    left = await tracker.upsert_leave("r1", "c1")
    assert left.status == ParticipantStatus.LEFT
    assert left.left_at is not None

    rejoined = await tracker.upsert_join("r1", "c1", "Cara", ParticipantRole.CANDIDATE)
    records = await tracker.list_for_session("r1")

    assert len(records) == 1
    assert rejoined.status == ParticipantStatus.JOINED
    assert rejoined.left_at is None
    assert rejoined.joined_at == first.joined_at
    assert await tracker.is_joined("r1", "c1") is True


@pytest.mark.asyncio
async def test_concurrent_joins_for_same_key_leave_one_record(tracker):
    await asyncio.gather(*[tracker.upsert_join("r1", "c1", f"Cara {i}", ParticipantRole.CANDIDATE) for i in range(20)])
    records = await tracker.list_for_session("r1")
    assert len(records) == 1
    assert records[0].status == ParticipantStatus.JOINED


@pytest.mark.asyncio
async def test_leave_without_record_is_noop(tracker):
    assert await tracker.upsert_leave("r1", "ghost") is None
    assert await tracker.list_for_session("r1") == []


@pytest.mark.asyncio
async def test_register_pending_never_downgrades(tracker):
    await tracker.upsert_join("r1", "i1", "Ivy", ParticipantRole.INTERVIEWER)
    existing = await tracker.register_pending("r1", "i1", "Ivy", ParticipantRole.INTERVIEWER)
    assert existing.status == ParticipantStatus.JOINED

    pending = await tracker.register_pending("r1", "i2", "Ian", ParticipantRole.INTERVIEWER)
    assert pending.status == ParticipantStatus.PENDING
    assert pending.joined_at is None


@pytest.mark.asyncio
async def test_list_active_includes_joined_and_pending(tracker):
    await tracker.register_pending("r1", "i1", "Ivy", ParticipantRole.INTERVIEWER)
    await tracker.upsert_join("r1", "c1", "Cara", ParticipantRole.CANDIDATE)
    await tracker.upsert_join("r1", "o1", "Otto", ParticipantRole.OBSERVER)
    await tracker.upsert_leave("r1", "o1")
    await tracker.upsert_join("r2", "c9", "Other", ParticipantRole.CANDIDATE)

    active = await tracker.list_active("r1")
    assert sorted(p.user_id for p in active) == ["c1", "i1"]


@pytest.mark.asyncio
async def test_close_all_marks_joined_participants_left(tracker):
    await tracker.upsert_join("r1", "c1", "Cara", ParticipantRole.CANDIDATE)
    await tracker.upsert_join("r2", "c2", "Cole", ParticipantRole.CANDIDATE)
    await tracker.register_pending("r1", "i1", "Ivy", ParticipantRole.INTERVIEWER)

    assert await tracker.close_all() == 2
    assert (await tracker.get("r1", "c1")).status == ParticipantStatus.LEFT
    assert (await tracker.get("r1", "i1")).status == ParticipantStatus.PENDING
