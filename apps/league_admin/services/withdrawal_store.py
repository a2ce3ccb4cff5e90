"""
Persistence helpers for withdrawal requests.

Create/get/list plus the compare-and-set transition used to process a
request. Business rules (one PENDING request per partnership, requester must
be a party to the partnership) are enforced by the lifecycle engine.
Reads refresh rows already held by the session, as in ``partnership_store``.
"""

from datetime import datetime
from typing import Dict, List, Optional, Sequence

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from league_admin.database.models import (
    Partnership,
    PartnershipStatus,
    Player,
    WithdrawalRequest,
    WithdrawalRequestStatus,
)
from league_admin.utils.datetime_utils import ensure_utc, utcnow
from league_admin.utils.pagination import (
    build_page,
    escape_like,
    normalize_page,
    page_offset,
)


async def create_withdrawal_request(
    session: AsyncSession,
    *,
    partnership_id: int,
    season_id: int,
    requesting_player_id: int,
    reason: str,
) -> WithdrawalRequest:
    """Insert a PENDING withdrawal request and flush so it has an id."""
    request = WithdrawalRequest(
        partnership_id=partnership_id,
        season_id=season_id,
        requesting_player_id=requesting_player_id,
        reason=reason,
        status=WithdrawalRequestStatus.PENDING.value,
        request_date=utcnow(),
    )
    session.add(request)
    await session.flush()
    return request


async def get_withdrawal_request(
    session: AsyncSession, request_id: int, for_update: bool = False
) -> Optional[WithdrawalRequest]:
    """
    Get a withdrawal request by ID, refreshing any identity-map copy.

    ``for_update`` takes a row lock where the dialect supports it.
    """
    query = (
        select(WithdrawalRequest)
        .where(WithdrawalRequest.id == request_id)
        .execution_options(populate_existing=True)
    )
    if for_update:
        query = query.with_for_update()
    result = await session.execute(query)
    return result.scalar_one_or_none()


async def get_pending_request_for_partnership(
    session: AsyncSession, partnership_id: int
) -> Optional[WithdrawalRequest]:
    """The PENDING request against a partnership, if any."""
    result = await session.execute(
        select(WithdrawalRequest).where(
            and_(
                WithdrawalRequest.partnership_id == partnership_id,
                WithdrawalRequest.status == WithdrawalRequestStatus.PENDING.value,
            )
        )
        .execution_options(populate_existing=True)
    )
    return result.scalars().first()


async def get_requests_for_partnerships(
    session: AsyncSession, partnership_ids: Sequence[int]
) -> Dict[int, List[WithdrawalRequest]]:
    """All requests for the given partnerships in creation order, keyed by partnership id."""
    ids = {pid for pid in partnership_ids if pid is not None}
    if not ids:
        return {}
    result = await session.execute(
        select(WithdrawalRequest)
        .where(WithdrawalRequest.partnership_id.in_(ids))
        .order_by(WithdrawalRequest.id)
        .execution_options(populate_existing=True)
    )
    grouped: Dict[int, List[WithdrawalRequest]] = {pid: [] for pid in ids}
    for request in result.scalars().all():
        grouped[request.partnership_id].append(request)
    return grouped


async def get_requests_by_ids(
    session: AsyncSession, request_ids: Sequence[int]
) -> Dict[int, WithdrawalRequest]:
    ids = {rid for rid in request_ids if rid is not None}
    if not ids:
        return {}
    result = await session.execute(
        select(WithdrawalRequest)
        .where(WithdrawalRequest.id.in_(ids))
        .execution_options(populate_existing=True)
    )
    return {r.id: r for r in result.scalars().all()}


async def lock_pending_requests_for_season(
    session: AsyncSession, season_id: int
) -> Dict[int, int]:
    """
    Lock the PENDING requests against the season's ACTIVE partnerships.

    Requests are always locked before their partnerships, the same order
    approve uses.

    Returns:
        Dict of request id -> partnership id
    """
    result = await session.execute(
        select(WithdrawalRequest.id, WithdrawalRequest.partnership_id)
        .join(Partnership, Partnership.id == WithdrawalRequest.partnership_id)
        .where(
            and_(
                Partnership.season_id == season_id,
                Partnership.status == PartnershipStatus.ACTIVE.value,
                WithdrawalRequest.status == WithdrawalRequestStatus.PENDING.value,
            )
        )
        .order_by(WithdrawalRequest.id)
        .with_for_update(of=WithdrawalRequest)
    )
    return {request_id: partnership_id for request_id, partnership_id in result.all()}


async def mark_processed(
    session: AsyncSession,
    request_id: int,
    status: str,
    admin_id: int,
    admin_notes: Optional[str],
    processed_at: datetime,
) -> bool:
    """
    Compare-and-set PENDING -> ``status`` (APPROVED or REJECTED).

    Returns:
        True if this call processed the request, False if another caller
        already moved it out of PENDING
    """
    result = await session.execute(
        update(WithdrawalRequest)
        .where(
            and_(
                WithdrawalRequest.id == request_id,
                WithdrawalRequest.status == WithdrawalRequestStatus.PENDING.value,
            )
        )
        .values(
            status=status,
            processed_at=processed_at,
            processed_by_admin_id=admin_id,
            admin_notes=admin_notes,
        )
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def count_by_status(
    session: AsyncSession, season_id: Optional[int] = None
) -> Dict[str, int]:
    """Number of requests per status (every status present, zero if none)."""
    query = select(WithdrawalRequest.status, func.count(WithdrawalRequest.id)).group_by(
        WithdrawalRequest.status
    )
    if season_id is not None:
        query = query.where(WithdrawalRequest.season_id == season_id)
    result = await session.execute(query)
    counts = {status.value: 0 for status in WithdrawalRequestStatus}
    for status, count in result.all():
        counts[status] = count
    return counts


async def list_withdrawal_requests(
    session: AsyncSession,
    *,
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
    List withdrawal requests with filters and stable pagination.

    Args:
        session: Database session
        status: PENDING, APPROVED or REJECTED
        season_id: Filter by season
        division_id: Filter by the partnership's division
        search: Free-text match on reason, requester, captain or partner name
        date_from: Lower bound (inclusive) on request_date
        date_to: Upper bound (inclusive) on request_date
        page: Page number (1-indexed)
        page_size: Items per page

    Returns:
        Dict with ``items`` (WithdrawalRequest rows), ``page``, ``page_size``,
        ``total_items``, ``total_pages``
    """
    page, page_size = normalize_page(page, page_size)

    base = select(WithdrawalRequest).join(
        Partnership, WithdrawalRequest.partnership_id == Partnership.id
    )

    conditions = []
    if status:
        conditions.append(WithdrawalRequest.status == status)
    if season_id is not None:
        conditions.append(WithdrawalRequest.season_id == season_id)
    if division_id is not None:
        conditions.append(Partnership.division_id == division_id)
    if date_from is not None:
        conditions.append(WithdrawalRequest.request_date >= ensure_utc(date_from))
    if date_to is not None:
        conditions.append(WithdrawalRequest.request_date <= ensure_utc(date_to))
    if search:
        requester = aliased(Player)
        captain = aliased(Player)
        partner = aliased(Player)
        pattern = f"%{escape_like(search.strip())}%"
        base = (
            base.join(requester, WithdrawalRequest.requesting_player_id == requester.id)
            .outerjoin(captain, Partnership.captain_id == captain.id)
            .outerjoin(partner, Partnership.partner_id == partner.id)
        )
        conditions.append(
            or_(
                WithdrawalRequest.reason.ilike(pattern, escape="\\"),
                requester.full_name.ilike(pattern, escape="\\"),
                captain.full_name.ilike(pattern, escape="\\"),
                partner.full_name.ilike(pattern, escape="\\"),
            )
        )
    if conditions:
        base = base.where(and_(*conditions))

    count_q = select(func.count()).select_from(base.subquery())
    total_items = (await session.execute(count_q)).scalar() or 0

    items_q = (
        base.order_by(WithdrawalRequest.request_date.desc(), WithdrawalRequest.id.desc())
        .offset(page_offset(page, page_size))
        .limit(page_size)
        .execution_options(populate_existing=True)
    )
    items = list((await session.execute(items_q)).scalars().all())
    return build_page(items, page, page_size, total_items)
