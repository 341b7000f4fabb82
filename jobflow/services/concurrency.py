"""
Per-job write serialization helpers.

Jobs are read with SELECT ... FOR UPDATE and carry an optimistic version
column. Either guard failing surfaces as ConcurrencyConflictError, and a
whole unit of work is retried a bounded number of times.
"""

import logging
from contextlib import asynccontextmanager
from typing import Awaitable, Callable, Optional, TypeVar
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from jobflow.core.config import settings
from jobflow.errors import ConcurrencyConflictError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@asynccontextmanager
async def translate_conflicts(job_id: UUID):
    """Turn a stale version or a lost insert race on a job into ConcurrencyConflictError."""
    try:
        yield
    except StaleDataError as exc:
        raise ConcurrencyConflictError(
            "Job was modified by another request",
            {"job_id": str(job_id)},
        ) from exc
    except IntegrityError as exc:
        raise ConcurrencyConflictError(
            "Job was modified by another request",
            {"job_id": str(job_id), "constraint": str(exc.orig)},
        ) from exc


async def run_with_retry(
    db: AsyncSession,
    operation: Callable[[], Awaitable[T]],
    job_id: UUID,
    max_attempts: Optional[int] = None,
) -> T:
    """
    Run operation, rolling back and starting over on ConcurrencyConflictError.

    operation must reload everything it uses; the rollback expires every
    instance in the session.
    """
    attempts = max_attempts or settings.CONCURRENCY_MAX_RETRIES
    attempt = 1
    while True:
        try:
            return await operation()
        except ConcurrencyConflictError:
            await db.rollback()
            if attempt >= attempts:
                logger.warning("Giving up on job %s after %s conflicting attempts", job_id, attempt)
                raise
            logger.warning("Concurrency conflict on job %s, retrying (attempt %s/%s)", job_id, attempt + 1, attempts)
            attempt += 1
