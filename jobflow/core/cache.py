# jobflow/core/cache.py

import threading
import time
from typing import Any, Dict, Optional, Tuple
from uuid import UUID

from sqlalchemy import event
from sqlalchemy.orm import Session

from jobflow.core.config import settings

_PENDING_KEY = "stage_cache_pending"


class StageConfigCache:
    """
    Process-local cache of effective stage configuration, keyed by company.

    - Entries expire after STAGE_CACHE_TTL_SECONDS.
    - A company write drops that company's entry.
    - A platform write (company None) drops everything, because companies
      without their own stages were served the platform set.
    """

    def __init__(self, ttl_seconds: Optional[float] = None) -> None:
        self._lock = threading.Lock()
        self._ttl = ttl_seconds
        self._entries: Dict[Optional[UUID], Tuple[float, Any]] = {}

    @property
    def ttl(self) -> float:
        if self._ttl is not None:
            return self._ttl
        return float(settings.STAGE_CACHE_TTL_SECONDS)

    def get(self, company_id: Optional[UUID]) -> Optional[Any]:
        with self._lock:
            entry = self._entries.get(company_id)
            if entry is None:
                return None
            stored_at, value = entry
            if time.monotonic() - stored_at > self.ttl:
                del self._entries[company_id]
                return None
            return value

    def set(self, company_id: Optional[UUID], value: Any) -> None:
        if self.ttl <= 0:
            return
        with self._lock:
            self._entries[company_id] = (time.monotonic(), value)

    def invalidate(self, company_id: Optional[UUID]) -> None:
        with self._lock:
            if company_id is None:
                self._entries.clear()
            else:
                self._entries.pop(company_id, None)

    def invalidate_on_commit(self, session: Session, company_id: Optional[UUID]) -> None:
        """
        Drop company_id again once session commits or rolls back.

        A read racing the uncommitted write can refill the entry with the old
        rows; the second drop removes it.
        """
        session.info.setdefault(_PENDING_KEY, []).append((self, company_id))

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


# Global, process-local singleton
STAGE_CONFIG_CACHE = StageConfigCache()


def _drop_pending_scopes(session: Session) -> None:
    for cache, company_id in session.info.pop(_PENDING_KEY, []):
        cache.invalidate(company_id)


# Rolled back writes may have been cached by reads in the same session
event.listen(Session, "after_commit", _drop_pending_scopes)
event.listen(Session, "after_rollback", _drop_pending_scopes)
