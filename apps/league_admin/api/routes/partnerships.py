"""Partnership history, timeline and season-close route handlers (admin only)."""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from league_admin.api.auth_dependencies import require_admin
from league_admin.api.routes import lifecycle_http_error
from league_admin.database.db import get_db_session
from league_admin.models.schemas import (
    DissolvedPartnershipListResponse,
    DissolvedPartnershipResponse,
    SeasonExpiryResponse,
    TimelineResponse,
)
from league_admin.services import partnership_service, review_service
from league_admin.services.exceptions import PartnershipLifecycleError
from league_admin.utils.pagination import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/api/admin/partnerships/dissolved", response_model=DissolvedPartnershipListResponse)
async def list_dissolved_partnerships(
    status: Optional[str] = Query(None, description="DISSOLVED or EXPIRED"),
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
    """Partnership history: DISSOLVED and EXPIRED partnerships, most recently closed first."""
    try:
        return await review_service.list_dissolved_partnerships(
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
        logger.error(f"Error listing dissolved partnerships: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error listing dissolved partnerships")


@router.get(
    "/api/admin/partnerships/dissolved/{partnership_id}",
    response_model=DissolvedPartnershipResponse,
)
async def get_dissolved_partnership(
    partnership_id: int,
    admin: dict = Depends(require_admin),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        return await review_service.get_dissolved_partnership_detail(session, partnership_id)
    except PartnershipLifecycleError as e:
        raise lifecycle_http_error(e)
    except Exception as e:
        logger.error(f"Error loading dissolved partnership {partnership_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error loading dissolved partnership")


@router.get("/api/admin/partnerships/{partnership_id}/timeline", response_model=TimelineResponse)
async def get_partnership_timeline(
    partnership_id: int,
    admin: dict = Depends(require_admin),
    session: AsyncSession = Depends(get_db_session),
):
    """Lifecycle events of the whole predecessor/successor chain."""
    try:
        return await review_service.get_timeline(session, partnership_id=partnership_id)
    except PartnershipLifecycleError as e:
        raise lifecycle_http_error(e)
    except Exception as e:
        logger.error(f"Error loading timeline for partnership {partnership_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error loading timeline")


@router.post(
    "/api/admin/seasons/{season_id}/expire-partnerships", response_model=SeasonExpiryResponse
)
async def expire_season_partnerships(
    season_id: int,
    admin: dict = Depends(require_admin),
    session: AsyncSession = Depends(get_db_session),
):
    """Close a season: expire its active partnerships and reject their pending requests."""
    try:
        return await partnership_service.expire_season_partnerships(session, season_id, admin["id"])
    except PartnershipLifecycleError as e:
        raise lifecycle_http_error(e)
    except Exception as e:
        logger.error(f"Error closing season {season_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error closing season")
