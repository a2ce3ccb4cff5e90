"""Withdrawal request route handlers (player submission and admin review)."""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from league_admin.api.auth_dependencies import require_admin, require_verified_player
from league_admin.api.routes import limiter, lifecycle_http_error
from league_admin.database.db import get_db_session
from league_admin.models.schemas import (
    ApproveWithdrawalResponse,
    ProcessWithdrawalResponse,
    TimelineResponse,
    WithdrawalDecision,
    WithdrawalRequestCreate,
    WithdrawalRequestDetail,
    WithdrawalRequestListResponse,
    WithdrawalRequestResponse,
    WithdrawalStatsResponse,
    WithdrawalStatusUpdate,
)
from league_admin.services import partnership_service, review_service
from league_admin.services.exceptions import PartnershipLifecycleError
from league_admin.utils.pagination import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/api/withdrawals", response_model=WithdrawalRequestResponse, status_code=201)
@limiter.limit("10/minute")
async def submit_withdrawal(
    request: Request,
    payload: WithdrawalRequestCreate,
    user: dict = Depends(require_verified_player),
    session: AsyncSession = Depends(get_db_session),
):
    """Ask to leave an active partnership. Players may only withdraw themselves."""
    if payload.requesting_player_id != user["player_id"]:
        raise HTTPException(
            status_code=403, detail="You can only submit a withdrawal for yourself"
        )
    try:
        return await partnership_service.submit_withdrawal(
            session, payload.partnership_id, payload.requesting_player_id, payload.reason
        )
    except PartnershipLifecycleError as e:
        raise lifecycle_http_error(e)
    except Exception as e:
        logger.error(f"Error submitting withdrawal request: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error submitting withdrawal request")


@router.get("/api/admin/withdrawals", response_model=WithdrawalRequestListResponse)
async def list_withdrawals(
    status: Optional[str] = Query(None, description="PENDING, APPROVED or REJECTED"),
    season_id: Optional[int] = Query(None),
    division_id: Optional[int] = Query(None),
    search: Optional[str] = Query(None, max_length=200),
    date_from: Optional[datetime] = Query(None),
    date_to: Optional[datetime] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    admin: dict = Depends(require_admin),
    session: AsyncSession = Depends(get_db_session),
):
    """Paginated withdrawal requests for the admin review queue."""
    try:
        return await review_service.list_withdrawals(
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
    except PartnershipLifecycleError as e:
        raise lifecycle_http_error(e)
    except Exception as e:
        logger.error(f"Error listing withdrawal requests: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error listing withdrawal requests")


@router.get("/api/admin/withdrawals/stats", response_model=WithdrawalStatsResponse)
async def withdrawal_stats(
    season_id: Optional[int] = Query(None),
    admin: dict = Depends(require_admin),
    session: AsyncSession = Depends(get_db_session),
):
    """Dashboard counters: requests by status and dissolved partnerships."""
    try:
        return await review_service.get_withdrawal_stats(session, season_id=season_id)
    except Exception as e:
        logger.error(f"Error loading withdrawal stats: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error loading withdrawal stats")


@router.get("/api/admin/withdrawals/{request_id}", response_model=WithdrawalRequestDetail)
async def get_withdrawal(
    request_id: int,
    admin: dict = Depends(require_admin),
    session: AsyncSession = Depends(get_db_session),
):
    """One withdrawal request with its partnership, successors and reviewer."""
    try:
        return await review_service.get_withdrawal_detail(session, request_id)
    except PartnershipLifecycleError as e:
        raise lifecycle_http_error(e)
    except Exception as e:
        logger.error(f"Error loading withdrawal request {request_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error loading withdrawal request")


@router.get("/api/admin/withdrawals/{request_id}/timeline", response_model=TimelineResponse)
async def get_withdrawal_timeline(
    request_id: int,
    admin: dict = Depends(require_admin),
    session: AsyncSession = Depends(get_db_session),
):
    """Lifecycle timeline of the partnership a request targets."""
    try:
        return await review_service.get_timeline(session, request_id=request_id)
    except PartnershipLifecycleError as e:
        raise lifecycle_http_error(e)
    except Exception as e:
        logger.error(f"Error loading timeline for request {request_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error loading timeline")


@router.post("/api/admin/withdrawals/{request_id}/approve", response_model=ApproveWithdrawalResponse)
async def approve_withdrawal(
    request_id: int,
    payload: Optional[WithdrawalDecision] = None,
    admin: dict = Depends(require_admin),
    session: AsyncSession = Depends(get_db_session),
):
    """Approve a PENDING request: dissolve the partnership and open a successor."""
    notes = payload.admin_notes if payload else None
    try:
        return await partnership_service.approve_withdrawal(session, request_id, admin["id"], notes)
    except PartnershipLifecycleError as e:
        raise lifecycle_http_error(e)
    except Exception as e:
        logger.error(f"Error approving withdrawal request {request_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error approving withdrawal request")


@router.post("/api/admin/withdrawals/{request_id}/reject", response_model=WithdrawalRequestResponse)
async def reject_withdrawal(
    request_id: int,
    payload: Optional[WithdrawalDecision] = None,
    admin: dict = Depends(require_admin),
    session: AsyncSession = Depends(get_db_session),
):
    """Reject a PENDING request. The partnership is left untouched."""
    notes = payload.admin_notes if payload else None
    try:
        return await partnership_service.reject_withdrawal(session, request_id, admin["id"], notes)
    except PartnershipLifecycleError as e:
        raise lifecycle_http_error(e)
    except Exception as e:
        logger.error(f"Error rejecting withdrawal request {request_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error rejecting withdrawal request")


@router.patch("/api/admin/withdrawals/{request_id}", response_model=ProcessWithdrawalResponse)
async def process_withdrawal(
    request_id: int,
    payload: WithdrawalStatusUpdate,
    admin: dict = Depends(require_admin),
    session: AsyncSession = Depends(get_db_session),
):
    """Approve or reject a request from the review dialog."""
    try:
        return await partnership_service.process_withdrawal(
            session, request_id, payload.status, admin["id"], payload.admin_notes
        )
    except PartnershipLifecycleError as e:
        raise lifecycle_http_error(e)
    except Exception as e:
        logger.error(f"Error processing withdrawal request {request_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error processing withdrawal request")
