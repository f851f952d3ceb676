from __future__ import annotations

import logging
import threading
import time
from typing import Any, Dict, Hashable, Optional, Tuple

from skillhub.config import settings

logger = logging.getLogger(__name__)


class SessionViewCache:
    """
    Per-user cache of rendered session listings.

    Entries are keyed by ``(user_id, view_key)`` so invalidating a user drops
    every view cached for them. Thread-safe; the API runs sync handlers on a
    threadpool.

    Each invalidation bumps the user's generation. A reader takes the
    generation before building a view and passes it to ``set``; the view is
    discarded if an invalidation happened in between.
    """

    def __init__(self, ttl_seconds: int):
        self.ttl_seconds = ttl_seconds
        self._entries: Dict[Tuple[int, Hashable], Tuple[float, Any]] = {}
        self._generations: Dict[int, int] = {}
        self._lock = threading.Lock()

    def generation(self, user_id: int) -> int:
        with self._lock:
            return self._generations.get(user_id, 0)

    def get(self, user_id: int, view_key: Hashable) -> Optional[Any]:
        with self._lock:
            entry = self._entries.get((user_id, view_key))
            if entry is None:
                return None
            expires_at, value = entry
            if expires_at < time.monotonic():
                del self._entries[(user_id, view_key)]
                return None
            return value

    def set(self, user_id: int, view_key: Hashable, value: Any, generation: Optional[int] = None) -> bool:
        if self.ttl_seconds <= 0:
            return False
        now = time.monotonic()
        with self._lock:
            if generation is not None and generation != self._generations.get(user_id, 0):
                return False
            self._sweep_expired(now)
            self._entries[(user_id, view_key)] = (now + self.ttl_seconds, value)
        return True

    def _sweep_expired(self, now: float) -> None:
        # caller holds the lock
        expired = [key for key, (expires_at, _) in self._entries.items() if expires_at < now]
        for key in expired:
            del self._entries[key]

    def invalidate_users(self, *user_ids: int) -> int:
        targets = set(user_ids)
        with self._lock:
            for user_id in targets:
                self._generations[user_id] = self._generations.get(user_id, 0) + 1
            stale = [key for key in self._entries if key[0] in targets]
            for key in stale:
                del self._entries[key]
        return len(stale)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._generations.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


session_view_cache = SessionViewCache(ttl_seconds=settings.SESSION_CACHE_TTL_SECONDS)


def invalidate_users_caches(*user_ids: int) -> bool:
    """
    Best-effort invalidation of cached views for the given users.
    Never raises; a failure only means a view may be stale until its TTL.
    """
    try:
        dropped = session_view_cache.invalidate_users(*user_ids)
        logger.debug("Invalidated %s cached views for users %s", dropped, user_ids)
        return True
    except Exception as exc:
        logger.warning("Cache invalidation failed for users %s: %s", user_ids, exc)
        return False
