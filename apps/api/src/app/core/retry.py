"""
Store Retry Policy

Transient store failures (dropped connections, failover) are retried with
exponential backoff at the unit-of-work boundary. Business errors and
integrity violations are never retried.

A failed statement leaves the session's transaction unusable, so the
session is rolled back before the next attempt. The rollback expires every
object the session holds: a retried unit has to load everything it uses
itself and must not run after objects it still needs were loaded.
"""

import functools
import logging

from sqlalchemy.exc import InterfaceError, OperationalError
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from app.core.config import settings

logger = logging.getLogger(__name__)

TRANSIENT_STORE_ERRORS = (OperationalError, InterfaceError, ConnectionError)


def _retrying() -> AsyncRetrying:
    return AsyncRetrying(
        stop=stop_after_attempt(settings.store_retry_attempts),
        wait=wait_exponential(multiplier=0.1, max=settings.store_retry_max_wait_seconds),
        retry=retry_if_exception_type(TRANSIENT_STORE_ERRORS),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )


def store_retry(func):
    """
    Retry an async unit of work whose first argument is the session.

    The session is rolled back after a transient failure, so the next
    attempt starts a clean transaction instead of hitting the failed one.
    """

    @functools.wraps(func)
    async def wrapper(db, *args, **kwargs):
        async for attempt in _retrying():
            with attempt:
                try:
                    return await func(db, *args, **kwargs)
                except TRANSIENT_STORE_ERRORS:
                    await db.rollback()
                    raise

    return wrapper
