"""
NewsRAG - Rate Limiting
========================
Per-client-IP request limit for the ``/api`` routers: at most
``RATE_LIMIT_REQUESTS`` requests in each fixed window of
``RATE_LIMIT_WINDOW`` seconds.  A client over the limit gets::

    429 {"success": false, "error": "Too many requests from this IP, please try again later."}

with a ``Retry-After`` header.  Counters live in process memory, so each
worker enforces its own limit.
"""

from __future__ import annotations

import math
import time
from collections.abc import Callable

from fastapi import Request

from newsrag.config.settings import settings
from newsrag.src.utils.logger import get_logger

logger = get_logger(__name__)

RATE_LIMIT_MESSAGE = "Too many requests from this IP, please try again later."


class RateLimitExceeded(Exception):
    """Raised by ``enforce_rate_limit``; rendered as a 429 by the app."""

    def __init__(self, client: str, retry_after: int) -> None:
        super().__init__(f"rate limit exceeded for {client}")
        self.client = client
        self.retry_after = retry_after


class RateLimiter:
    """
    Fixed-window request counter keyed by client address.

    Parameters
    ----------
    limit
        Requests allowed per window.  Defaults to ``settings.RATE_LIMIT_REQUESTS``.
    window
        Window length in seconds.  Defaults to ``settings.RATE_LIMIT_WINDOW``.
    clock
        Monotonic time source (tests inject a fake one).
    """

    __slots__ = ("_limit", "_window", "_clock", "_windows")

    def __init__(self, limit: int | None = None, window: float | None = None, clock: Callable[[], float] = time.monotonic) -> None:
        self._limit = limit or settings.RATE_LIMIT_REQUESTS
        self._window = window or settings.RATE_LIMIT_WINDOW
        self._clock = clock
        # client -> (window start, requests counted in it)
        self._windows: dict[str, tuple[float, int]] = {}

    @property
    def limit(self) -> int:
        return self._limit


    def hit(self, client: str) -> float | None:
        """
        Count one request from ``client``.

        Returns ``None`` when the request is allowed, otherwise the seconds
        left until the client's window resets.
        """
        now = self._clock()
        self._prune(now)

        started, count = self._windows.get(client, (now, 0))
        if count >= self._limit:
            return started + self._window - now
        self._windows[client] = (started, count + 1)
        return None


    def _prune(self, now: float) -> None:
        expired = [client for client, (started, _) in self._windows.items() if now - started >= self._window]
        for client in expired:
            del self._windows[client]


def client_address(request: Request) -> str:
    return request.client.host if request.client else "unknown"


async def enforce_rate_limit(request: Request) -> None:
    """Router dependency: count the request against the caller's IP."""
    limiter: RateLimiter = request.app.state.services.rate_limiter
    client = client_address(request)
    wait = limiter.hit(client)
    if wait is not None:
        logger.warning("[RATE] %s exceeded %d request(s) per window on %s.", client, limiter.limit, request.url.path)
        raise RateLimitExceeded(client, max(math.ceil(wait), 1))
