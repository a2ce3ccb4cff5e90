"""
Transparent retry for read-only database work.

Only reads are retried: a write may have committed before the failure was
observed, so mutating calls surface the error and let the caller re-check.
"""

import functools
import logging

from sqlalchemy.exc import DBAPIError, InterfaceError
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

logger = logging.getLogger(__name__)

READ_RETRY_ATTEMPTS = 3
READ_RETRY_MIN_WAIT_SECONDS = 0.1
READ_RETRY_MAX_WAIT_SECONDS = 2


def is_transient_db_error(exc: BaseException) -> bool:
    """True for connection-level failures (dropped or invalidated connections)."""
    if isinstance(exc, InterfaceError):
        return True
    return isinstance(exc, DBAPIError) and bool(exc.connection_invalidated)


def retry_read(func):
    """
    Retry an ``async def fn(session, ...)`` read on transient database errors.

    The session is rolled back before each new attempt so the retry starts on
    a fresh connection. Non-transient errors propagate immediately.
    """

    @functools.wraps(func)
    async def wrapper(session, *args, **kwargs):
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(READ_RETRY_ATTEMPTS),
            wait=wait_exponential(
                multiplier=READ_RETRY_MIN_WAIT_SECONDS,
                min=READ_RETRY_MIN_WAIT_SECONDS,
                max=READ_RETRY_MAX_WAIT_SECONDS,
            ),
            retry=retry_if_exception(is_transient_db_error),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        ):
            with attempt:
                try:
                    return await func(session, *args, **kwargs)
                except Exception as e:
                    if is_transient_db_error(e):
                        await session.rollback()
                    raise

    return wrapper
