from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from typing import Annotated, Callable

from fastapi import Depends, Header, HTTPException, Request

logger = logging.getLogger(__name__)


class SlidingWindowRateLimiter:
    """Counts hits per key inside a trailing window of ``window_seconds``."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._hits: dict[str, deque[float]] = {}
        self._lock = asyncio.Lock()

    async def hit(self, key: str, *, limit: int, window_seconds: int) -> int | None:
        """Record a hit; returns seconds to wait when ``key`` is over ``limit``, else None."""
        now = self._clock()
        async with self._lock:
            hits = self._hits.setdefault(key, deque())
            while hits and hits[0] <= now - window_seconds:
                hits.popleft()
            if len(hits) >= limit:
                return max(int(window_seconds - (now - hits[0])) + 1, 1)
            hits.append(now)
            return None

    async def reset(self) -> None:
        async with self._lock:
            self._hits.clear()


_rate_limiter = SlidingWindowRateLimiter()


async def reset_rate_limiter_state() -> None:
    await _rate_limiter.reset()


def _client_key(request: Request, forwarded_for: str | None) -> str:
    first_hop = (forwarded_for or "").split(",")[0].strip()
    if first_hop:
        return first_hop
    return request.client.host if request.client else "unknown"


def rate_limit_dependency(*, scope: str, limit: int, window_seconds: int):
    """Route dependency throttling each client (first X-Forwarded-For hop or socket peer) per ``scope``."""

    async def dependency(
        request: Request,
        x_forwarded_for: Annotated[str | None, Header(alias="X-Forwarded-For")] = None,
    ) -> None:
        client = _client_key(request, x_forwarded_for)
        retry_after = await _rate_limiter.hit(f"{scope}:{client}", limit=limit, window_seconds=window_seconds)
        if retry_after is not None:
            logger.warning("Rate limit hit on %s for %s", scope, client)
            raise HTTPException(
                status_code=429,
                detail=f"Too many requests. Retry in {retry_after} seconds.",
                headers={"Retry-After": str(retry_after)},
            )

    return Depends(dependency)
