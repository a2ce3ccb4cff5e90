"""
Tests for partnership timeline traversal over predecessor/successor chains.
"""

import pytest

from league_admin.services import partnership_service
from league_admin.services.exceptions import NotFoundError
from league_admin.services.partnership_service import TimelineEventType


async def _dissolve(db_session, league, partnership_id, leaving, reason="relocating"):
    request = await partnership_service.submit_withdrawal(db_session, partnership_id, leaving, reason)
    result = await partnership_service.approve_withdrawal(db_session, request["id"], league["admin"])
    return request["id"], result["successor_partnership"]["id"]


def _types(events):
    return [e["event_type"] for e in events]


@pytest.mark.asyncio
async def test_timeline_of_single_partnership(db_session, league):
    p1 = await partnership_service.register_partnership(
        db_session, league["alice"], league["division"], league["season"], partner_id=league["bob"]
    )
    events = await partnership_service.get_partnership_timeline(db_session, p1["id"])

    assert _types(events) == [TimelineEventType.PARTNERSHIP_CREATED]
    assert events[0]["details"]["captain_id"] == league["alice"]
    assert events[0]["details"]["partner_id"] == league["bob"]


@pytest.mark.asyncio
async def test_timeline_is_symmetric_across_the_chain(db_session, league):
    p1 = await partnership_service.register_partnership(
        db_session, league["alice"], league["division"], league["season"], partner_id=league["bob"]
    )
    r1, p2 = await _dissolve(db_session, league, p1["id"], league["bob"])

    from_successor = await partnership_service.get_partnership_timeline(db_session, p2)
    from_predecessor = await partnership_service.get_partnership_timeline(db_session, p1["id"])

    assert from_successor == from_predecessor
    assert _types(from_successor) == [
        TimelineEventType.PARTNERSHIP_CREATED,
        TimelineEventType.WITHDRAWAL_REQUESTED,
        TimelineEventType.WITHDRAWAL_APPROVED,
        TimelineEventType.PARTNERSHIP_DISSOLVED,
        TimelineEventType.PARTNERSHIP_CREATED,
    ]

    dissolved = from_successor[3]
    assert dissolved["partnership_id"] == p1["id"]
    assert dissolved["withdrawal_request_id"] == r1
    successor_created = from_predecessor[4]
    assert successor_created["partnership_id"] == p2
    assert successor_created["details"]["predecessor_id"] == p1["id"]

    approved = from_successor[2]
    assert approved["actor_id"] == league["admin"]
    requested = from_successor[1]
    assert requested["actor_id"] == league["bob"]
    assert requested["details"]["reason"] == "relocating"


@pytest.mark.asyncio
async def test_timeline_walks_a_three_link_chain(db_session, league):
    p1 = await partnership_service.register_partnership(
        db_session, league["alice"], league["division"], league["season"], partner_id=league["bob"]
    )
    _, p2 = await _dissolve(db_session, league, p1["id"], league["bob"])
    await partnership_service.fill_partner_slot(db_session, p2, league["carol"])
    _, p3 = await _dissolve(db_session, league, p2, league["carol"], reason="injury")

    events = await partnership_service.get_partnership_timeline(db_session, p2)

    created = [e["partnership_id"] for e in events if e["event_type"] == TimelineEventType.PARTNERSHIP_CREATED]
    assert created == [p1["id"], p2, p3]
    dissolved = [e["partnership_id"] for e in events if e["event_type"] == TimelineEventType.PARTNERSHIP_DISSOLVED]
    assert dissolved == [p1["id"], p2]
    assert events == await partnership_service.get_partnership_timeline(db_session, p3)


@pytest.mark.asyncio
async def test_timeline_includes_rejections_and_expiry(db_session, league):
    p1 = await partnership_service.register_partnership(
        db_session, league["alice"], league["division"], league["season"], partner_id=league["bob"]
    )
    request = await partnership_service.submit_withdrawal(db_session, p1["id"], league["bob"], "relocating")
    await partnership_service.reject_withdrawal(
        db_session, request["id"], league["admin"], "insufficient notice"
    )
    await partnership_service.expire_season_partnerships(db_session, league["season"], league["admin"])

    events = await partnership_service.get_partnership_timeline(db_session, p1["id"])

    assert _types(events) == [
        TimelineEventType.PARTNERSHIP_CREATED,
        TimelineEventType.WITHDRAWAL_REQUESTED,
        TimelineEventType.WITHDRAWAL_REJECTED,
        TimelineEventType.PARTNERSHIP_EXPIRED,
    ]
    assert events[2]["details"]["admin_notes"] == "insufficient notice"


@pytest.mark.asyncio
async def test_timeline_iterator_is_restartable(db_session, league):
    p1 = await partnership_service.register_partnership(
        db_session, league["alice"], league["division"], league["season"], partner_id=league["bob"]
    )
    await _dissolve(db_session, league, p1["id"], league["bob"])

    first = [e async for e in partnership_service.iter_partnership_timeline(db_session, p1["id"])]
    second = [e async for e in partnership_service.iter_partnership_timeline(db_session, p1["id"])]
    assert first == second
    assert len(first) == 5


@pytest.mark.asyncio
async def test_timeline_unknown_partnership(db_session, league):
    with pytest.raises(NotFoundError):
        await partnership_service.get_partnership_timeline(db_session, 9999)


@pytest.mark.asyncio
async def test_filled_successor_shows_partner_joining_after_creation(db_session, league):
    p1 = await partnership_service.register_partnership(
        db_session, league["alice"], league["division"], league["season"], partner_id=league["bob"]
    )
    _, p2 = await _dissolve(db_session, league, p1["id"], league["bob"])
    await partnership_service.fill_partner_slot(db_session, p2, league["carol"])

    events = await partnership_service.get_partnership_timeline(db_session, p2)
    successor_events = [e for e in events if e["partnership_id"] == p2]

    assert _types(successor_events) == [
        TimelineEventType.PARTNERSHIP_CREATED,
        TimelineEventType.PARTNER_JOINED,
    ]
    created, joined = successor_events
    assert created["details"]["captain_id"] == league["alice"]
    assert created["details"]["partner_id"] is None
    assert joined["details"]["partner_id"] == league["carol"]
    assert joined["actor_id"] == league["carol"]
    assert joined["occurred_at"] >= created["occurred_at"]
