"""
Admin review read models.

Joins withdrawal requests with their partnership (captain, partner, division,
season), the admin who processed them and any successor partnership, for the
admin dashboard. Never writes; every mutation goes through
``partnership_service``. Reads are retried on transient connection failures.
"""

from datetime import datetime
from typing import Dict, Iterable, List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from league_admin.database.models import (
    Division,
    Partnership,
    PartnershipStatus,
    Player,
    Season,
    TERMINAL_PARTNERSHIP_STATUSES,
    User,
    WithdrawalRequest,
    WithdrawalRequestStatus,
)
from league_admin.services import partnership_service, partnership_store, withdrawal_store
from league_admin.services.exceptions import InvalidInputError, NotFoundError
from league_admin.utils.datetime_utils import to_iso
from league_admin.utils.db_retry import retry_read


class _Lookup:
    """Batch-loaded reference rows for one projection pass."""

    def __init__(self, players, divisions, seasons, admins):
        self.players: Dict[int, Player] = players
        self.divisions: Dict[int, Division] = divisions
        self.seasons: Dict[int, Season] = seasons
        self.admins: Dict[int, User] = admins

    def player(self, player_id: Optional[int]) -> Optional[Dict]:
        player = self.players.get(player_id) if player_id is not None else None
        if player is None:
            return None
        return {"id": player.id, "full_name": player.full_name, "avatar": player.avatar}

    def division(self, division_id: Optional[int]) -> Optional[Dict]:
        division = self.divisions.get(division_id) if division_id is not None else None
        return {"id": division.id, "name": division.name} if division else None

    def season(self, season_id: Optional[int]) -> Optional[Dict]:
        season = self.seasons.get(season_id) if season_id is not None else None
        return {"id": season.id, "name": season.name} if season else None

    def admin(self, admin_id: Optional[int]) -> Optional[Dict]:
        admin = self.admins.get(admin_id) if admin_id is not None else None
        return {"id": admin.id, "name": admin.name, "role": admin.role} if admin else None


async def _rows_by_id(session: AsyncSession, model, ids: Iterable[Optional[int]]) -> Dict:
    wanted = {i for i in ids if i is not None}
    if not wanted:
        return {}
    result = await session.execute(select(model).where(model.id.in_(wanted)))
    return {row.id: row for row in result.scalars().all()}


async def _build_lookup(
    session: AsyncSession,
    partnerships: Iterable[Partnership],
    requests: Iterable[WithdrawalRequest] = (),
) -> _Lookup:
    partnerships = list(partnerships)
    requests = list(requests)
    player_ids = [p.captain_id for p in partnerships] + [p.partner_id for p in partnerships]
    player_ids += [r.requesting_player_id for r in requests]
    players = await _rows_by_id(session, Player, player_ids)
    divisions = await _rows_by_id(session, Division, [p.division_id for p in partnerships])
    seasons = await _rows_by_id(
        session, Season, [p.season_id for p in partnerships] + [r.season_id for r in requests]
    )
    admins = await _rows_by_id(session, User, [r.processed_by_admin_id for r in requests])
    return _Lookup(players, divisions, seasons, admins)


def _successor_view(successor: Partnership, lookup: _Lookup) -> Dict:
    return {
        "id": successor.id,
        "captain_id": successor.captain_id,
        "partner_id": successor.partner_id,
        "status": successor.status,
        "created_at": to_iso(successor.created_at),
        "captain": lookup.player(successor.captain_id),
        "partner": lookup.player(successor.partner_id),
    }


def _partnership_view(
    partnership: Partnership, successors: List[Partnership], lookup: _Lookup
) -> Dict:
    view = partnership_service.format_partnership(partnership)
    view.update(
        {
            "captain": lookup.player(partnership.captain_id),
            "partner": lookup.player(partnership.partner_id),
            "division": lookup.division(partnership.division_id),
            "season": lookup.season(partnership.season_id),
            "successors": [_successor_view(s, lookup) for s in successors],
        }
    )
    return view


def _request_view(
    request: WithdrawalRequest,
    partnership: Optional[Partnership],
    successors: List[Partnership],
    lookup: _Lookup,
) -> Dict:
    view = partnership_service.format_withdrawal_request(request)
    view.update(
        {
            "requesting_player": lookup.player(request.requesting_player_id),
            "processed_by_admin": lookup.admin(request.processed_by_admin_id),
            "season": lookup.season(request.season_id),
            "partnership": (
                _partnership_view(partnership, successors, lookup) if partnership else None
            ),
        }
    )
    return view


async def _project_requests(
    session: AsyncSession, requests: List[WithdrawalRequest]
) -> List[Dict]:
    partnerships = await partnership_store.get_partnerships_by_ids(
        session, [r.partnership_id for r in requests]
    )
    successors = await partnership_store.get_successors_for(session, list(partnerships))
    all_partnerships = list(partnerships.values()) + [
        s for group in successors.values() for s in group
    ]
    lookup = await _build_lookup(session, all_partnerships, requests)
    return [
        _request_view(
            r,
            partnerships.get(r.partnership_id),
            successors.get(r.partnership_id, []),
            lookup,
        )
        for r in requests
    ]


async def _project_closed_partnerships(
    session: AsyncSession, partnerships: List[Partnership]
) -> List[Dict]:
    successors = await partnership_store.get_successors_for(session, [p.id for p in partnerships])
    requests = await withdrawal_store.get_requests_by_ids(
        session, [p.withdrawal_request_id for p in partnerships]
    )
    all_partnerships = list(partnerships) + [s for group in successors.values() for s in group]
    lookup = await _build_lookup(session, all_partnerships, requests.values())

    items = []
    for partnership in partnerships:
        view = _partnership_view(partnership, successors.get(partnership.id, []), lookup)
        request = requests.get(partnership.withdrawal_request_id)
        view["withdrawal_request"] = (
            {
                "id": request.id,
                "requesting_player_id": request.requesting_player_id,
                "reason": request.reason,
                "status": request.status,
                "request_date": to_iso(request.request_date),
                "requesting_player": lookup.player(request.requesting_player_id),
            }
            if request
            else None
        )
        items.append(view)
    return items


@retry_read
async def list_withdrawals(
    session: AsyncSession,
    status: Optional[str] = None,
    season_id: Optional[int] = None,
    division_id: Optional[int] = None,
    search: Optional[str] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    page: int = 1,
    page_size: int = 25,
) -> Dict:
    """
    Paginated withdrawal requests joined with partnership, players and successors.

    Returns:
        Dict with ``items``, ``page``, ``page_size``, ``total_items``, ``total_pages``
    """
    if status is not None and status not in {s.value for s in WithdrawalRequestStatus}:
        raise InvalidInputError(f"Unknown withdrawal request status {status!r}")

    page_result = await withdrawal_store.list_withdrawal_requests(
        session,
        status=status,
        season_id=season_id,
        division_id=division_id,
        search=search,
        date_from=date_from,
        date_to=date_to,
        page=page,
        page_size=page_size,
    )
    page_result["items"] = await _project_requests(session, page_result["items"])
    return page_result


@retry_read
async def list_dissolved_partnerships(
    session: AsyncSession,
    status: Optional[str] = None,
    season_id: Optional[int] = None,
    division_id: Optional[int] = None,
    search: Optional[str] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    page: int = 1,
    page_size: int = 25,
) -> Dict:
    """
    Paginated DISSOLVED/EXPIRED partnerships with their withdrawal request and successors.

    ``status`` narrows to DISSOLVED or EXPIRED; both are listed when omitted.
    Most recently closed first.
    """
    if status is None:
        statuses = list(TERMINAL_PARTNERSHIP_STATUSES)
    elif status in TERMINAL_PARTNERSHIP_STATUSES:
        statuses = [status]
    else:
        raise InvalidInputError(f"Status must be DISSOLVED or EXPIRED, got {status!r}")

    page_result = await partnership_store.list_partnerships(
        session,
        statuses=statuses,
        season_id=season_id,
        division_id=division_id,
        search=search,
        date_from=date_from,
        date_to=date_to,
        order_by_closed=True,
        page=page,
        page_size=page_size,
    )
    page_result["items"] = await _project_closed_partnerships(session, page_result["items"])
    return page_result


@retry_read
async def get_withdrawal_detail(session: AsyncSession, request_id: int) -> Dict:
    """One withdrawal request with its partnership, successors and processing admin."""
    request = await withdrawal_store.get_withdrawal_request(session, request_id)
    if request is None:
        raise NotFoundError(f"Withdrawal request {request_id} not found")
    return (await _project_requests(session, [request]))[0]


@retry_read
async def get_dissolved_partnership_detail(session: AsyncSession, partnership_id: int) -> Dict:
    """One DISSOLVED/EXPIRED partnership with its withdrawal request and successors."""
    partnership = await partnership_store.get_partnership(session, partnership_id)
    if partnership is None or partnership.status not in TERMINAL_PARTNERSHIP_STATUSES:
        raise NotFoundError(f"Dissolved partnership {partnership_id} not found")
    return (await _project_closed_partnerships(session, [partnership]))[0]


@retry_read
async def get_timeline(
    session: AsyncSession,
    partnership_id: Optional[int] = None,
    request_id: Optional[int] = None,
) -> Dict:
    """
    Lifecycle timeline for a partnership, or for the partnership a request targets.

    Returns:
        Dict with ``partnership_id`` and ordered ``events``
    """
    if (partnership_id is None) == (request_id is None):
        raise InvalidInputError("Provide exactly one of partnership_id or request_id")

    if request_id is not None:
        request = await withdrawal_store.get_withdrawal_request(session, request_id)
        if request is None:
            raise NotFoundError(f"Withdrawal request {request_id} not found")
        partnership_id = request.partnership_id

    events = await partnership_service.get_partnership_timeline(session, partnership_id)
    return {"partnership_id": partnership_id, "events": events}


@retry_read
async def get_withdrawal_stats(session: AsyncSession, season_id: Optional[int] = None) -> Dict:
    """Request counts by status plus the number of dissolved partnerships."""
    counts = await withdrawal_store.count_by_status(session, season_id=season_id)

    dissolved_q = select(func.count(Partnership.id)).where(
        Partnership.status == PartnershipStatus.DISSOLVED.value
    )
    if season_id is not None:
        dissolved_q = dissolved_q.where(Partnership.season_id == season_id)
    total_dissolved = (await session.execute(dissolved_q)).scalar() or 0

    return {
        "pending": counts[WithdrawalRequestStatus.PENDING.value],
        "approved": counts[WithdrawalRequestStatus.APPROVED.value],
        "rejected": counts[WithdrawalRequestStatus.REJECTED.value],
        "total": sum(counts.values()),
        "total_dissolved": total_dissolved,
    }
