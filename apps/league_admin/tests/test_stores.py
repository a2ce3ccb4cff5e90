"""
Tests for the partnership and withdrawal request persistence helpers.
"""

import pytest
from sqlalchemy.exc import IntegrityError

from conftest import insert_partnership
from league_admin.services import partnership_store, withdrawal_store
from league_admin.utils.datetime_utils import utcnow
from league_admin.utils.pagination import MAX_PAGE_SIZE, build_page, escape_like, normalize_page


@pytest.mark.asyncio
async def test_mark_processed_claims_pending_once(db_session, league):
    p1 = await insert_partnership(db_session, league, league["alice"], league["bob"])
    request = await withdrawal_store.create_withdrawal_request(
        db_session,
        partnership_id=p1,
        season_id=league["season"],
        requesting_player_id=league["bob"],
        reason="relocating",
    )
    await db_session.commit()

    first = await withdrawal_store.mark_processed(
        db_session, request.id, "APPROVED", league["admin"], None, utcnow()
    )
    second = await withdrawal_store.mark_processed(
        db_session, request.id, "REJECTED", league["second_admin"], None, utcnow()
    )
    await db_session.commit()

    assert first is True
    assert second is False
    refreshed = await withdrawal_store.get_withdrawal_request(db_session, request.id)
    assert refreshed.status == "APPROVED"
    assert refreshed.processed_by_admin_id == league["admin"]


@pytest.mark.asyncio
async def test_second_pending_request_violates_unique_index(db_session, league):
    p1 = await insert_partnership(db_session, league, league["alice"], league["bob"])
    await withdrawal_store.create_withdrawal_request(
        db_session,
        partnership_id=p1,
        season_id=league["season"],
        requesting_player_id=league["bob"],
        reason="relocating",
    )
    with pytest.raises(IntegrityError):
        await withdrawal_store.create_withdrawal_request(
            db_session,
            partnership_id=p1,
            season_id=league["season"],
            requesting_player_id=league["alice"],
            reason="me too",
        )
    await db_session.rollback()


@pytest.mark.asyncio
async def test_open_captain_unique_index(db_session, league):
    await insert_partnership(db_session, league, league["alice"], league["bob"])
    with pytest.raises(IntegrityError):
        await partnership_store.create_partnership(
            db_session,
            captain_id=league["alice"],
            division_id=league["division"],
            season_id=league["season"],
            status="FORMING",
        )
    await db_session.rollback()


@pytest.mark.asyncio
async def test_mark_dissolved_only_moves_active_rows(db_session, league):
    active = await insert_partnership(db_session, league, league["alice"], league["bob"])
    forming = await insert_partnership(db_session, league, league["carol"], None, status="FORMING")

    assert await partnership_store.mark_dissolved(db_session, active, 1, utcnow()) is True
    assert await partnership_store.mark_dissolved(db_session, active, 1, utcnow()) is False
    assert await partnership_store.mark_dissolved(db_session, forming, 1, utcnow()) is False
    await db_session.commit()

    row = await partnership_store.get_partnership(db_session, active)
    assert row.status == "DISSOLVED"
    assert row.withdrawal_request_id == 1
    assert row.dissolved_at is not None


@pytest.mark.asyncio
async def test_successor_lookups(db_session, league):
    p1 = await insert_partnership(db_session, league, league["alice"], league["bob"])
    await partnership_store.mark_dissolved(db_session, p1, 1, utcnow())
    successor = await partnership_store.create_partnership(
        db_session,
        captain_id=league["alice"],
        division_id=league["division"],
        season_id=league["season"],
        status="FORMING",
        predecessor_id=p1,
    )
    await db_session.commit()

    assert [s.id for s in await partnership_store.get_successors(db_session, p1)] == [successor.id]
    assert await partnership_store.get_successors(db_session, successor.id) == []
    batch = await partnership_store.get_successors_for(db_session, [p1, successor.id])
    assert [s.id for s in batch[p1]] == [successor.id]
    assert batch[successor.id] == []


@pytest.mark.asyncio
async def test_find_open_partnerships_for_player_matches_either_slot(db_session, league):
    p1 = await insert_partnership(db_session, league, league["alice"], league["bob"])

    as_partner = await partnership_store.find_open_partnerships_for_player(
        db_session, league["bob"], league["division"], league["season"]
    )
    assert [p.id for p in as_partner] == [p1]
    excluded = await partnership_store.find_open_partnerships_for_player(
        db_session, league["bob"], league["division"], league["season"], exclude_id=p1
    )
    assert excluded == []
    elsewhere = await partnership_store.find_open_partnerships_for_player(
        db_session, league["bob"], league["mixed_division"], league["season"]
    )
    assert elsewhere == []


@pytest.mark.asyncio
async def test_count_by_status_includes_every_status(db_session, league):
    counts = await withdrawal_store.count_by_status(db_session)
    assert counts == {"PENDING": 0, "APPROVED": 0, "REJECTED": 0}


def test_normalize_page_clamps():
    assert normalize_page(0, 0) == (1, 25)
    assert normalize_page(3, 1000) == (3, MAX_PAGE_SIZE)


def test_build_page_envelope():
    assert build_page([], 1, 10, 0)["total_pages"] == 0
    page = build_page(["a"], 3, 10, 21)
    assert page == {"items": ["a"], "page": 3, "page_size": 10, "total_items": 21, "total_pages": 3}


def test_escape_like():
    assert escape_like("50%_off\\") == "50\\%\\_off\\\\"


@pytest.mark.asyncio
async def test_lock_pending_requests_for_season_maps_requests_to_active_partnerships(db_session, league):
    p1 = await insert_partnership(db_session, league, league["alice"], league["bob"])
    p2 = await insert_partnership(db_session, league, league["carol"], league["dave"])
    r1 = await withdrawal_store.create_withdrawal_request(
        db_session,
        partnership_id=p1,
        season_id=league["season"],
        requesting_player_id=league["bob"],
        reason="relocating",
    )
    r2 = await withdrawal_store.create_withdrawal_request(
        db_session,
        partnership_id=p2,
        season_id=league["season"],
        requesting_player_id=league["dave"],
        reason="injury",
    )
    await db_session.commit()
    await withdrawal_store.mark_processed(db_session, r2.id, "REJECTED", league["admin"], None, utcnow())
    await db_session.commit()

    locked = await withdrawal_store.lock_pending_requests_for_season(db_session, league["season"])
    assert locked == {r1.id: p1}
    assert await withdrawal_store.lock_pending_requests_for_season(db_session, league["other_season"]) == {}
    await db_session.rollback()
