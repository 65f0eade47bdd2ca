"""Per-client sliding-window rate limiting."""

import asyncio
import time
from collections import OrderedDict, deque
from typing import Callable, Deque, Optional

from starlette.requests import Request

UNKNOWN_CLIENT = "unknown"


class RateLimiter:
    """Counts requests per client over a trailing window.

    The request that pushes a client over ``max_requests`` is itself recorded
    and rejected. At most ``max_clients`` clients are tracked; the least
    recently seen client is dropped first.
    """

    def __init__(
        self,
        max_requests: int = 60,
        window_seconds: float = 60.0,
        max_clients: int = 10000,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.max_clients = max_clients
        self._clock = clock
        self._windows: "OrderedDict[str, Deque[float]]" = OrderedDict()
        self._lock: asyncio.Lock = asyncio.Lock()

    @property
    def enabled(self) -> bool:
        return self.max_requests > 0

    async def is_limited(self, client_id: str) -> bool:
        if not self.enabled:
            return False

        async with self._lock:
            now = self._clock()
            cutoff = now - self.window_seconds

            window = self._windows.get(client_id)
            if window is None:
                window = deque()
                self._windows[client_id] = window
                self._evict()
            else:
                self._windows.move_to_end(client_id)

            while window and window[0] <= cutoff:
                window.popleft()
            window.append(now)

            return len(window) > self.max_requests

    def seconds_until_allowed(self, client_id: str) -> float:
        """Time until enough of the client's window expires to admit one more request."""
        window = self._windows.get(client_id)
        if not self.enabled or not window or len(window) < self.max_requests:
            return 0.0
        # All but max_requests - 1 entries must leave the window first.
        blocking = window[len(window) - self.max_requests]
        return max(0.0, blocking + self.window_seconds - self._clock())

    def tracked_clients(self) -> int:
        return len(self._windows)

    def _evict(self) -> None:
        while self.max_clients and len(self._windows) > self.max_clients:
            self._windows.popitem(last=False)


def client_id_from_request(request: Request) -> str:
    """First address in X-Forwarded-For, or the shared unknown bucket."""
    forwarded: Optional[str] = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    return UNKNOWN_CLIENT
