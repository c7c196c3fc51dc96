"""Per-key sliding-window rate limiter used to throttle logins.

State lives in process memory, so each replica counts on its own.
"""

from __future__ import annotations

import logging
import time
from collections import defaultdict

from fastapi import HTTPException, status

logger = logging.getLogger(__name__)


class InMemoryRateLimiter:
    def __init__(self, window_seconds: int = 60, max_attempts: int = 5) -> None:
        self._window = window_seconds
        self._max = max_attempts
        self._attempts: dict[str, list[float]] = defaultdict(list)

    def check(self, key: str) -> None:
        """Record an attempt for *key*; raise HTTP 429 once the window is full."""
        now = time.monotonic()
        recent = [t for t in self._attempts[key] if now - t < self._window]
        if len(recent) >= self._max:
            self._attempts[key] = recent
            logger.warning("Rate limit hit for %s", key)
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail=f"Too many attempts. Try again in {self._window} seconds.",
            )
        recent.append(now)
        self._attempts[key] = recent

    def reset(self, key: str | None = None) -> None:
        """Forget attempts for *key*, or for every key."""
        if key is None:
            self._attempts.clear()
        else:
            self._attempts.pop(key, None)
