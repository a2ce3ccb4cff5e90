"""
API routes - combined router from all domain modules.

Shared infrastructure (limiter, error mapping) lives here; every sub-router
imports what it needs from this package.
"""

import logging
import os

from fastapi import APIRouter, HTTPException
from slowapi import Limiter
from slowapi.util import get_remote_address

from league_admin.services.exceptions import (
    ConflictError,
    InvalidInputError,
    InvalidStateError,
    NotFoundError,
    PartnershipLifecycleError,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Shared rate limiter
# ---------------------------------------------------------------------------
IS_TEST_ENV = os.getenv("ENV", "").lower() == "test"
if IS_TEST_ENV:
    limiter = Limiter(key_func=get_remote_address)

    def no_op_limit(*args, **kwargs):
        """No-op decorator for test mode - doesn't apply any rate limiting."""
        def decorator(func):
            return func
        return decorator

    limiter.limit = lambda *args, **kwargs: no_op_limit()
else:
    limiter = Limiter(key_func=get_remote_address)

# ---------------------------------------------------------------------------
# Lifecycle error -> HTTP status
# ---------------------------------------------------------------------------
LIFECYCLE_ERROR_STATUS = {
    NotFoundError: 404,
    InvalidStateError: 409,
    ConflictError: 409,
    InvalidInputError: 400,
}


def lifecycle_http_error(error: PartnershipLifecycleError) -> HTTPException:
    """Translate a typed lifecycle error into an HTTPException with a ``{code, message}`` detail."""
    status_code = next(
        (code for cls, code in LIFECYCLE_ERROR_STATUS.items() if isinstance(error, cls)),
        400,
    )
    logger.warning(f"Rejected lifecycle operation ({status_code}): {error.code} {error.message}")
    return HTTPException(status_code=status_code, detail=error.to_dict())


# ---------------------------------------------------------------------------
# Import sub-routers and combine
# ---------------------------------------------------------------------------
from league_admin.api.routes.withdrawals import router as withdrawals_router  # noqa: E402
from league_admin.api.routes.partnerships import router as partnerships_router  # noqa: E402
from league_admin.api.routes.health import router as health_router  # noqa: E402

router = APIRouter()
router.include_router(withdrawals_router)
router.include_router(partnerships_router)
router.include_router(health_router)
