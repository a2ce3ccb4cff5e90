"""
Persistence helpers for partnerships.

Plain reads and writes against the ``partnerships`` table, including the
predecessor/successor index used for timeline traversal. No business rules
live here: the lifecycle engine validates every precondition and calls these
helpers inside its own transaction.

Status changes are bulk compare-and-set UPDATEs that bypass the identity map,
so every read here refreshes rows the session already holds.
"""

from datetime import datetime
from typing import Dict, List, Optional, Sequence

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from league_admin.database.models import (
    OPEN_PARTNERSHIP_STATUSES,
    Partnership,
    PartnershipStatus,
    Player,
)
from league_admin.utils.datetime_utils import ensure_utc, utcnow
from league_admin.utils.pagination import (
    build_page,
    escape_like,
    normalize_page,
    page_offset,
)


async def create_partnership(
    session: AsyncSession,
    *,
    captain_id: int,
    division_id: int,
    season_id: int,
    status: str,
    partner_id: Optional[int] = None,
    predecessor_id: Optional[int] = None,
    pair_rating: Optional[float] = None,
    created_at: Optional[datetime] = None,
) -> Partnership:
    """Insert a partnership row and flush so it has an id."""
    created_at = created_at or utcnow()
    partnership = Partnership(
        captain_id=captain_id,
        partner_id=partner_id,
        division_id=division_id,
        season_id=season_id,
        status=status,
        predecessor_id=predecessor_id,
        pair_rating=pair_rating,
        created_at=created_at,
        updated_at=created_at,
    )
    session.add(partnership)
    await session.flush()
    return partnership


async def get_partnership(
    session: AsyncSession, partnership_id: int, for_update: bool = False
) -> Optional[Partnership]:
    """
    Get a partnership by ID.

    Always refreshes any copy already held in the session's identity map, so a
    caller re-reading inside a transaction sees committed state rather than a
    stale snapshot. ``for_update`` takes a row lock where the dialect has one.
    """
    query = (
        select(Partnership)
        .where(Partnership.id == partnership_id)
        .execution_options(populate_existing=True)
    )
    if for_update:
        query = query.with_for_update()
    result = await session.execute(query)
    return result.scalar_one_or_none()


async def get_partnerships_by_ids(
    session: AsyncSession, partnership_ids: Sequence[int]
) -> Dict[int, Partnership]:
    """Batch-load partnerships keyed by id."""
    ids = {pid for pid in partnership_ids if pid is not None}
    if not ids:
        return {}
    result = await session.execute(
        select(Partnership)
        .where(Partnership.id.in_(ids))
        .execution_options(populate_existing=True)
    )
    return {p.id: p for p in result.scalars().all()}


async def get_successors(session: AsyncSession, partnership_id: int) -> List[Partnership]:
    """Partnerships whose ``predecessor_id`` points at ``partnership_id`` (oldest first)."""
    result = await session.execute(
        select(Partnership)
        .where(Partnership.predecessor_id == partnership_id)
        .order_by(Partnership.id)
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


async def get_successors_for(
    session: AsyncSession, partnership_ids: Sequence[int]
) -> Dict[int, List[Partnership]]:
    """Batch version of :func:`get_successors`, keyed by predecessor id."""
    ids = {pid for pid in partnership_ids if pid is not None}
    if not ids:
        return {}
    result = await session.execute(
        select(Partnership)
        .where(Partnership.predecessor_id.in_(ids))
        .order_by(Partnership.id)
        .execution_options(populate_existing=True)
    )
    successors: Dict[int, List[Partnership]] = {pid: [] for pid in ids}
    for successor in result.scalars().all():
        successors[successor.predecessor_id].append(successor)
    return successors


async def find_open_partnerships_for_player(
    session: AsyncSession,
    player_id: int,
    division_id: int,
    season_id: int,
    exclude_id: Optional[int] = None,
) -> List[Partnership]:
    """ACTIVE/FORMING partnerships in a division/season where the player holds either slot."""
    query = select(Partnership).where(
        and_(
            Partnership.division_id == division_id,
            Partnership.season_id == season_id,
            Partnership.status.in_(OPEN_PARTNERSHIP_STATUSES),
            or_(Partnership.captain_id == player_id, Partnership.partner_id == player_id),
        )
    )
    if exclude_id is not None:
        query = query.where(Partnership.id != exclude_id)
    result = await session.execute(
        query.order_by(Partnership.id).execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


async def mark_dissolved(
    session: AsyncSession,
    partnership_id: int,
    withdrawal_request_id: int,
    dissolved_at: datetime,
) -> bool:
    """
    Compare-and-set ACTIVE -> DISSOLVED.

    Returns:
        True if this call moved the row, False if it was no longer ACTIVE
    """
    result = await session.execute(
        update(Partnership)
        .where(
            and_(
                Partnership.id == partnership_id,
                Partnership.status == PartnershipStatus.ACTIVE.value,
            )
        )
        .values(
            status=PartnershipStatus.DISSOLVED.value,
            dissolved_at=dissolved_at,
            withdrawal_request_id=withdrawal_request_id,
            updated_at=dissolved_at,
        )
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def fill_partner(session: AsyncSession, partnership_id: int, partner_id: int) -> bool:
    """Compare-and-set FORMING -> ACTIVE, filling the open partner slot."""
    now = utcnow()
    result = await session.execute(
        update(Partnership)
        .where(
            and_(
                Partnership.id == partnership_id,
                Partnership.status == PartnershipStatus.FORMING.value,
                Partnership.partner_id.is_(None),
            )
        )
        .values(
            partner_id=partner_id,
            status=PartnershipStatus.ACTIVE.value,
            updated_at=now,
            partner_joined_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def expire_active_partnerships(session: AsyncSession, season_id: int) -> List[int]:
    """
    Move every ACTIVE partnership in a season to EXPIRED.

    Returns:
        IDs of the partnerships that were expired
    """
    result = await session.execute(
        select(Partnership.id)
        .where(
            and_(
                Partnership.season_id == season_id,
                Partnership.status == PartnershipStatus.ACTIVE.value,
            )
        )
        .order_by(Partnership.id)
        .with_for_update()
    )
    ids = list(result.scalars().all())
    if not ids:
        return []

    await session.execute(
        update(Partnership)
        .where(
            and_(
                Partnership.id.in_(ids),
                Partnership.status == PartnershipStatus.ACTIVE.value,
            )
        )
        .values(status=PartnershipStatus.EXPIRED.value, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    return ids


async def list_partnerships(
    session: AsyncSession,
    *,
    statuses: Optional[Sequence[str]] = None,
    season_id: Optional[int] = None,
    division_id: Optional[int] = None,
    search: Optional[str] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    order_by_closed: bool = False,
    page: int = 1,
    page_size: int = 25,
) -> Dict:
    """
    List partnerships with filters and stable pagination.

    Args:
        session: Database session
        statuses: Only include these statuses
        season_id: Filter by season
        division_id: Filter by division
        search: Free-text match on captain or partner name
        date_from: Lower bound (inclusive) on the sort date
        date_to: Upper bound (inclusive) on the sort date
        order_by_closed: Sort by when the partnership closed (dissolution or
            expiry) instead of creation
        page: Page number (1-indexed)
        page_size: Items per page

    Returns:
        Dict with ``items`` (Partnership rows), ``page``, ``page_size``,
        ``total_items``, ``total_pages``
    """
    page, page_size = normalize_page(page, page_size)

    if order_by_closed:
        sort_col = func.coalesce(Partnership.dissolved_at, Partnership.updated_at)
    else:
        sort_col = Partnership.created_at

    conditions = []
    if statuses:
        conditions.append(Partnership.status.in_(list(statuses)))
    if season_id is not None:
        conditions.append(Partnership.season_id == season_id)
    if division_id is not None:
        conditions.append(Partnership.division_id == division_id)
    if date_from is not None:
        conditions.append(sort_col >= ensure_utc(date_from))
    if date_to is not None:
        conditions.append(sort_col <= ensure_utc(date_to))

    base = select(Partnership)
    if search:
        captain = aliased(Player)
        partner = aliased(Player)
        pattern = f"%{escape_like(search.strip())}%"
        base = base.outerjoin(captain, Partnership.captain_id == captain.id).outerjoin(
            partner, Partnership.partner_id == partner.id
        )
        conditions.append(
            or_(
                captain.full_name.ilike(pattern, escape="\\"),
                partner.full_name.ilike(pattern, escape="\\"),
            )
        )
    if conditions:
        base = base.where(and_(*conditions))

    count_q = select(func.count()).select_from(base.subquery())
    total_items = (await session.execute(count_q)).scalar() or 0

    items_q = (
        base.order_by(sort_col.desc(), Partnership.id.desc())
        .offset(page_offset(page, page_size))
        .limit(page_size)
        .execution_options(populate_existing=True)
    )
    items = list((await session.execute(items_q)).scalars().all())
    return build_page(items, page, page_size, total_items)
