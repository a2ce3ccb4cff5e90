"""
Partnership lifecycle engine.

The only writer to ``partnerships`` and ``withdrawal_requests``. Each mutating
call is one transaction (read current state, validate, write, commit) and
rolls back completely on any error, re-raising one of the typed errors from
``league_admin.services.exceptions``.

Status changes are compare-and-set updates, so when two admins race on the
same request exactly one commits and the other gets ``InvalidStateError``.
Row locks are always taken on withdrawal requests before partnerships.
"""

import logging
from typing import AsyncIterator, Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from league_admin.database.db import transaction
from league_admin.database.models import (
    Division,
    Partnership,
    PartnershipStatus,
    Season,
    WithdrawalRequest,
    WithdrawalRequestStatus,
)
from league_admin.services import partnership_store, withdrawal_store
from league_admin.services.exceptions import (
    ConflictError,
    InvalidInputError,
    InvalidStateError,
    NotFoundError,
)
from league_admin.utils.datetime_utils import to_iso, utcnow

logger = logging.getLogger(__name__)

SEASON_CLOSED_NOTE = "Season closed"


class TimelineEventType:
    """Event types produced by :func:`iter_partnership_timeline`."""

    PARTNERSHIP_CREATED = "PARTNERSHIP_CREATED"
    PARTNER_JOINED = "PARTNER_JOINED"
    WITHDRAWAL_REQUESTED = "WITHDRAWAL_REQUESTED"
    WITHDRAWAL_APPROVED = "WITHDRAWAL_APPROVED"
    WITHDRAWAL_REJECTED = "WITHDRAWAL_REJECTED"
    PARTNERSHIP_DISSOLVED = "PARTNERSHIP_DISSOLVED"
    PARTNERSHIP_EXPIRED = "PARTNERSHIP_EXPIRED"


# ---------------------------------------------------------------------------
# Formatting
# ---------------------------------------------------------------------------


def format_partnership(partnership: Partnership) -> Dict:
    """Serialize a partnership row."""
    return {
        "id": partnership.id,
        "captain_id": partnership.captain_id,
        "partner_id": partnership.partner_id,
        "division_id": partnership.division_id,
        "season_id": partnership.season_id,
        "status": partnership.status,
        "pair_rating": partnership.pair_rating,
        "predecessor_id": partnership.predecessor_id,
        "withdrawal_request_id": partnership.withdrawal_request_id,
        "created_at": to_iso(partnership.created_at),
        "dissolved_at": to_iso(partnership.dissolved_at),
        "partner_joined_at": to_iso(partnership.partner_joined_at),
    }


def format_withdrawal_request(request: WithdrawalRequest) -> Dict:
    """Serialize a withdrawal request row."""
    return {
        "id": request.id,
        "partnership_id": request.partnership_id,
        "season_id": request.season_id,
        "requesting_player_id": request.requesting_player_id,
        "reason": request.reason,
        "status": request.status,
        "request_date": to_iso(request.request_date),
        "processed_at": to_iso(request.processed_at),
        "processed_by_admin_id": request.processed_by_admin_id,
        "admin_notes": request.admin_notes,
    }


def _remaining_player(partnership: Partnership, leaving_player_id: int) -> Optional[int]:
    """The player who stays when ``leaving_player_id`` leaves, or None if they are not a party."""
    if leaving_player_id == partnership.captain_id:
        return partnership.partner_id
    if leaving_player_id == partnership.partner_id:
        return partnership.captain_id
    return None


async def _ensure_player_available(
    session: AsyncSession,
    player_id: int,
    division_id: int,
    season_id: int,
    exclude_id: Optional[int] = None,
) -> None:
    """Raise ConflictError if the player already holds an open partnership in this division/season."""
    existing = await partnership_store.find_open_partnerships_for_player(
        session, player_id, division_id, season_id, exclude_id=exclude_id
    )
    if existing:
        raise ConflictError(
            f"Player {player_id} already holds partnership {existing[0].id} "
            f"({existing[0].status}) in this division and season"
        )


# ---------------------------------------------------------------------------
# Team formation and partner matching
# ---------------------------------------------------------------------------


async def register_partnership(
    session: AsyncSession,
    captain_id: int,
    division_id: int,
    season_id: int,
    partner_id: Optional[int] = None,
    pair_rating: Optional[float] = None,
) -> Dict:
    """
    Register a new team.

    The partnership is ACTIVE when a partner is given and FORMING (one open
    slot) otherwise.

    Raises:
        NotFoundError: Unknown season or division
        InvalidInputError: Division outside the season, or captain == partner
        ConflictError: Either player already holds an open partnership here
    """
    async with transaction(session):
        season = await session.get(Season, season_id)
        if season is None:
            raise NotFoundError(f"Season {season_id} not found")
        division = await session.get(Division, division_id)
        if division is None:
            raise NotFoundError(f"Division {division_id} not found")
        if division.season_id != season_id:
            raise InvalidInputError(
                f"Division {division_id} does not belong to season {season_id}"
            )
        if partner_id is not None and partner_id == captain_id:
            raise InvalidInputError("Captain and partner must be different players")

        await _ensure_player_available(session, captain_id, division_id, season_id)
        if partner_id is not None:
            await _ensure_player_available(session, partner_id, division_id, season_id)

        status = (
            PartnershipStatus.ACTIVE.value
            if partner_id is not None
            else PartnershipStatus.FORMING.value
        )
        try:
            partnership = await partnership_store.create_partnership(
                session,
                captain_id=captain_id,
                partner_id=partner_id,
                division_id=division_id,
                season_id=season_id,
                status=status,
                pair_rating=pair_rating,
            )
        except IntegrityError as e:
            raise ConflictError("A player in this team already holds an open partnership") from e
        result = format_partnership(partnership)

    logger.info(f"Registered partnership {result['id']} ({status}) in division {division_id}")
    return result


async def fill_partner_slot(session: AsyncSession, partnership_id: int, partner_id: int) -> Dict:
    """
    Fill the open slot of a FORMING partnership, making it ACTIVE.

    Raises:
        NotFoundError: Unknown partnership
        InvalidStateError: Partnership is not FORMING
        InvalidInputError: Partner is the captain
        ConflictError: Partner already holds an open partnership here
    """
    async with transaction(session):
        partnership = await partnership_store.get_partnership(
            session, partnership_id, for_update=True
        )
        if partnership is None:
            raise NotFoundError(f"Partnership {partnership_id} not found")
        if partnership.status != PartnershipStatus.FORMING.value:
            raise InvalidStateError(
                f"Partnership {partnership_id} is {partnership.status}; only FORMING partnerships accept a new partner"
            )
        if partner_id == partnership.captain_id:
            raise InvalidInputError("Captain and partner must be different players")

        await _ensure_player_available(
            session, partner_id, partnership.division_id, partnership.season_id
        )
        try:
            filled = await partnership_store.fill_partner(session, partnership_id, partner_id)
        except IntegrityError as e:
            raise ConflictError(f"Player {partner_id} already holds an open partnership") from e
        if not filled:
            raise InvalidStateError(f"Partnership {partnership_id} is no longer FORMING")

        partnership = await partnership_store.get_partnership(session, partnership_id)
        result = format_partnership(partnership)

    logger.info(f"Partnership {partnership_id} is now ACTIVE with partner {partner_id}")
    return result


# ---------------------------------------------------------------------------
# Withdrawal workflow
# ---------------------------------------------------------------------------


async def submit_withdrawal(
    session: AsyncSession, partnership_id: int, requesting_player_id: int, reason: str
) -> Dict:
    """
    Create a PENDING withdrawal request against an ACTIVE partnership.

    Args:
        session: Database session
        partnership_id: Partnership the player wants to leave
        requesting_player_id: Captain or partner who is leaving
        reason: Free-text reason (required)

    Returns:
        Dict with the new withdrawal request

    Raises:
        NotFoundError: Unknown partnership
        InvalidStateError: Partnership is not ACTIVE
        InvalidInputError: Empty reason or requester not in the partnership
        ConflictError: A PENDING request already exists for this partnership
    """
    reason = (reason or "").strip()

    async with transaction(session):
        partnership = await partnership_store.get_partnership(
            session, partnership_id, for_update=True
        )
        if partnership is None:
            raise NotFoundError(f"Partnership {partnership_id} not found")
        if partnership.status != PartnershipStatus.ACTIVE.value:
            raise InvalidStateError(
                f"Partnership {partnership_id} is {partnership.status}; "
                "only ACTIVE partnerships accept withdrawal requests"
            )
        if requesting_player_id not in (partnership.captain_id, partnership.partner_id):
            raise InvalidInputError(
                f"Player {requesting_player_id} is not a member of partnership {partnership_id}"
            )

        pending = await withdrawal_store.get_pending_request_for_partnership(
            session, partnership_id
        )
        if pending is not None:
            raise ConflictError(
                f"Withdrawal request {pending.id} is already pending for partnership {partnership_id}"
            )
        if not reason:
            raise InvalidInputError("A reason is required to withdraw from a partnership")

        try:
            request = await withdrawal_store.create_withdrawal_request(
                session,
                partnership_id=partnership_id,
                season_id=partnership.season_id,
                requesting_player_id=requesting_player_id,
                reason=reason,
            )
        except IntegrityError as e:
            raise ConflictError(
                f"A withdrawal request is already pending for partnership {partnership_id}"
            ) from e
        result = format_withdrawal_request(request)

    logger.info(
        f"Withdrawal request {result['id']} submitted by player {requesting_player_id} "
        f"for partnership {partnership_id}"
    )
    return result


async def _load_pending_request(session: AsyncSession, request_id: int) -> WithdrawalRequest:
    request = await withdrawal_store.get_withdrawal_request(session, request_id, for_update=True)
    if request is None:
        raise NotFoundError(f"Withdrawal request {request_id} not found")
    if request.status != WithdrawalRequestStatus.PENDING.value:
        raise InvalidStateError(
            f"Withdrawal request {request_id} was already {request.status.lower()}"
        )
    return request


def _already_processed(request_id: int) -> InvalidStateError:
    return InvalidStateError(
        f"Withdrawal request {request_id} was already processed by another admin"
    )


async def approve_withdrawal(
    session: AsyncSession, request_id: int, admin_id: int, notes: Optional[str] = None
) -> Dict:
    """
    Approve a PENDING withdrawal request.

    In one transaction: mark the request APPROVED, dissolve the partnership,
    and create a FORMING successor captained by the remaining player.

    Returns:
        Dict with ``dissolved_partnership`` and ``successor_partnership``

    Raises:
        NotFoundError: Unknown request
        InvalidStateError: Request not PENDING (including a lost race) or
            partnership no longer ACTIVE
        ConflictError: Remaining player already holds another open partnership
            in the same division/season
    """
    async with transaction(session):
        request = await _load_pending_request(session, request_id)
        partnership = await partnership_store.get_partnership(
            session, request.partnership_id, for_update=True
        )
        if partnership is None:
            raise NotFoundError(f"Partnership {request.partnership_id} not found")
        if partnership.status != PartnershipStatus.ACTIVE.value:
            raise InvalidStateError(
                f"Partnership {partnership.id} is {partnership.status}; only ACTIVE partnerships can be dissolved"
            )

        remaining_player_id = _remaining_player(partnership, request.requesting_player_id)
        if remaining_player_id is None:
            raise InvalidStateError(
                f"Player {request.requesting_player_id} is no longer a member of partnership {partnership.id}"
            )

        processed_at = utcnow()
        claimed = await withdrawal_store.mark_processed(
            session,
            request_id,
            WithdrawalRequestStatus.APPROVED.value,
            admin_id,
            notes,
            processed_at,
        )
        if not claimed:
            raise _already_processed(request_id)

        dissolved = await partnership_store.mark_dissolved(
            session, partnership.id, request_id, processed_at
        )
        if not dissolved:
            raise InvalidStateError(f"Partnership {partnership.id} is no longer ACTIVE")

        # Re-checked inside this transaction, after the dissolve write
        await _ensure_player_available(
            session,
            remaining_player_id,
            partnership.division_id,
            partnership.season_id,
            exclude_id=partnership.id,
        )
        try:
            successor = await partnership_store.create_partnership(
                session,
                captain_id=remaining_player_id,
                partner_id=None,
                division_id=partnership.division_id,
                season_id=partnership.season_id,
                status=PartnershipStatus.FORMING.value,
                predecessor_id=partnership.id,
                created_at=processed_at,
            )
        except IntegrityError as e:
            raise ConflictError(
                f"Player {remaining_player_id} already holds an open partnership in this division and season"
            ) from e

        dissolved_partnership = await partnership_store.get_partnership(session, partnership.id)
        result = {
            "dissolved_partnership": format_partnership(dissolved_partnership),
            "successor_partnership": format_partnership(successor),
        }

    logger.info(
        f"Withdrawal request {request_id} approved by admin {admin_id}: "
        f"partnership {result['dissolved_partnership']['id']} dissolved, "
        f"successor {result['successor_partnership']['id']} created for player {remaining_player_id}"
    )
    return result


async def reject_withdrawal(
    session: AsyncSession, request_id: int, admin_id: int, notes: Optional[str] = None
) -> Dict:
    """
    Reject a PENDING withdrawal request. The partnership is left untouched.

    Raises:
        NotFoundError: Unknown request
        InvalidStateError: Request already processed
    """
    async with transaction(session):
        await _load_pending_request(session, request_id)
        claimed = await withdrawal_store.mark_processed(
            session,
            request_id,
            WithdrawalRequestStatus.REJECTED.value,
            admin_id,
            notes,
            utcnow(),
        )
        if not claimed:
            raise _already_processed(request_id)
        request = await withdrawal_store.get_withdrawal_request(session, request_id)
        result = format_withdrawal_request(request)

    logger.info(f"Withdrawal request {request_id} rejected by admin {admin_id}")
    return result


async def process_withdrawal(
    session: AsyncSession,
    request_id: int,
    status: str,
    admin_id: int,
    notes: Optional[str] = None,
) -> Dict:
    """
    Approve or reject a request from a single admin decision.

    Returns:
        Dict with ``withdrawal_request`` plus, when approved,
        ``dissolved_partnership`` and ``successor_partnership``
    """
    if status == WithdrawalRequestStatus.APPROVED.value:
        result = await approve_withdrawal(session, request_id, admin_id, notes)
        request = await withdrawal_store.get_withdrawal_request(session, request_id)
        return {"withdrawal_request": format_withdrawal_request(request), **result}
    if status == WithdrawalRequestStatus.REJECTED.value:
        request = await reject_withdrawal(session, request_id, admin_id, notes)
        return {
            "withdrawal_request": request,
            "dissolved_partnership": None,
            "successor_partnership": None,
        }
    raise InvalidInputError(f"Status must be APPROVED or REJECTED, got {status!r}")


# ---------------------------------------------------------------------------
# Season close
# ---------------------------------------------------------------------------


async def expire_season_partnerships(session: AsyncSession, season_id: int, admin_id: int) -> Dict:
    """
    Close a season: every ACTIVE partnership becomes EXPIRED.

    PENDING requests against those partnerships can no longer be approved,
    so they are rejected with a "Season closed" note.

    Returns:
        Dict with ``season_id``, ``expired_partnership_ids`` and
        ``rejected_request_ids``
    """
    async with transaction(session):
        season = await session.get(Season, season_id)
        if season is None:
            raise NotFoundError(f"Season {season_id} not found")

        # Requests before partnerships, the lock order approve_withdrawal takes
        pending = await withdrawal_store.lock_pending_requests_for_season(session, season_id)
        expired_ids = await partnership_store.expire_active_partnerships(session, season_id)

        rejected_ids: List[int] = []
        expired = set(expired_ids)
        processed_at = utcnow()
        for request_id, partnership_id in pending.items():
            if partnership_id in expired:
                if await withdrawal_store.mark_processed(
                    session,
                    request_id,
                    WithdrawalRequestStatus.REJECTED.value,
                    admin_id,
                    SEASON_CLOSED_NOTE,
                    processed_at,
                ):
                    rejected_ids.append(request_id)

    logger.info(
        f"Season {season_id} closed by admin {admin_id}: {len(expired_ids)} partnerships expired, "
        f"{len(rejected_ids)} pending withdrawal requests rejected"
    )
    return {
        "season_id": season_id,
        "expired_partnership_ids": expired_ids,
        "rejected_request_ids": rejected_ids,
    }


# ---------------------------------------------------------------------------
# Timeline
# ---------------------------------------------------------------------------


def _event(
    event_type: str,
    occurred_at,
    partnership: Partnership,
    withdrawal_request_id: Optional[int] = None,
    actor_id: Optional[int] = None,
    details: Optional[Dict] = None,
) -> Dict:
    return {
        "event_type": event_type,
        "occurred_at": to_iso(occurred_at),
        "partnership_id": partnership.id,
        "withdrawal_request_id": withdrawal_request_id,
        "actor_id": actor_id,
        "details": details or {},
    }


async def _partnership_events(session: AsyncSession, partnership: Partnership) -> List[Dict]:
    """Events of one partnership: creation, its requests and resolutions, then its end."""
    # A filled slot was empty at creation
    joined_later = partnership.partner_joined_at is not None
    events = [
        _event(
            TimelineEventType.PARTNERSHIP_CREATED,
            partnership.created_at,
            partnership,
            details={
                "captain_id": partnership.captain_id,
                "partner_id": None if joined_later else partnership.partner_id,
                "predecessor_id": partnership.predecessor_id,
                "division_id": partnership.division_id,
                "season_id": partnership.season_id,
            },
        )
    ]
    if joined_later:
        events.append(
            _event(
                TimelineEventType.PARTNER_JOINED,
                partnership.partner_joined_at,
                partnership,
                actor_id=partnership.partner_id,
                details={"partner_id": partnership.partner_id},
            )
        )

    requests = await withdrawal_store.get_requests_for_partnerships(session, [partnership.id])
    # Only one request can be PENDING at a time, so creation order is also resolution order
    for request in requests.get(partnership.id, []):
        events.append(
            _event(
                TimelineEventType.WITHDRAWAL_REQUESTED,
                request.request_date,
                partnership,
                withdrawal_request_id=request.id,
                actor_id=request.requesting_player_id,
                details={"reason": request.reason},
            )
        )
        if request.status == WithdrawalRequestStatus.APPROVED.value:
            event_type = TimelineEventType.WITHDRAWAL_APPROVED
        elif request.status == WithdrawalRequestStatus.REJECTED.value:
            event_type = TimelineEventType.WITHDRAWAL_REJECTED
        else:
            continue
        events.append(
            _event(
                event_type,
                request.processed_at,
                partnership,
                withdrawal_request_id=request.id,
                actor_id=request.processed_by_admin_id,
                details={"admin_notes": request.admin_notes},
            )
        )

    if partnership.status == PartnershipStatus.DISSOLVED.value:
        events.append(
            _event(
                TimelineEventType.PARTNERSHIP_DISSOLVED,
                partnership.dissolved_at,
                partnership,
                withdrawal_request_id=partnership.withdrawal_request_id,
            )
        )
    elif partnership.status == PartnershipStatus.EXPIRED.value:
        events.append(
            _event(TimelineEventType.PARTNERSHIP_EXPIRED, partnership.updated_at, partnership)
        )
    return events


async def iter_partnership_timeline(
    session: AsyncSession, partnership_id: int
) -> AsyncIterator[Dict]:
    """
    Yield the lifecycle events of the whole chain containing a partnership.

    Walks ``predecessor_id`` back to the first partnership of the chain, then
    forward through successors, loading one partnership at a time. Each call
    starts a fresh walk. Read-only.

    Raises:
        NotFoundError: Unknown partnership (on first iteration)
    """
    start = await partnership_store.get_partnership(session, partnership_id)
    if start is None:
        raise NotFoundError(f"Partnership {partnership_id} not found")

    root = start
    seen = {start.id}
    while root.predecessor_id is not None:
        predecessor = await partnership_store.get_partnership(session, root.predecessor_id)
        if predecessor is None or predecessor.id in seen:
            break
        seen.add(predecessor.id)
        root = predecessor

    current: Optional[Partnership] = root
    visited = set()
    while current is not None and current.id not in visited:
        visited.add(current.id)
        for event in await _partnership_events(session, current):
            yield event
        successors = await partnership_store.get_successors(session, current.id)
        current = successors[0] if successors else None


async def get_partnership_timeline(session: AsyncSession, partnership_id: int) -> List[Dict]:
    """Collect :func:`iter_partnership_timeline` into a list."""
    return [event async for event in iter_partnership_timeline(session, partnership_id)]
