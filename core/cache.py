"""
Evaluation result cache keyed by the serialized permission query.

Entries expire after ``ttl_seconds`` when a TTL is set and live until
explicitly invalidated otherwise. All operations hold a lock, so one
cache can serve concurrent evaluations.
"""

import threading
import time
from typing import Callable, Dict, Optional, Tuple

from .policies import PermissionQuery, PermissionResult


class EvaluationCache:

    def __init__(
        self,
        ttl_seconds: Optional[float] = None,
        timer: Callable[[], float] = time.monotonic
    ):
        self.ttl_seconds = ttl_seconds
        self._timer = timer
        self._lock = threading.Lock()
        # key -> (user_id, expires_at, result)
        self._entries: Dict[str, Tuple[str, Optional[float], PermissionResult]] = {}

    def get(self, query: PermissionQuery) -> Optional[PermissionResult]:
        key = query.cache_key()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            _, expires_at, result = entry
            if expires_at is not None and self._timer() >= expires_at:
                del self._entries[key]
                return None
            return result

    def set(self, query: PermissionQuery, result: PermissionResult):
        expires_at = None
        if self.ttl_seconds is not None:
            expires_at = self._timer() + self.ttl_seconds
        with self._lock:
            self._entries[query.cache_key()] = (query.user_id, expires_at, result)

    def invalidate(self, query: PermissionQuery) -> bool:
        with self._lock:
            return self._entries.pop(query.cache_key(), None) is not None

    def invalidate_user(self, user_id: str) -> int:
        """Drop every entry for one user; returns how many were dropped."""
        with self._lock:
            stale = [k for k, (uid, _, _) in self._entries.items() if uid == user_id]
            for key in stale:
                del self._entries[key]
            return len(stale)

    def clear(self):
        with self._lock:
            self._entries.clear()

    def __len__(self):
        with self._lock:
            return len(self._entries)
