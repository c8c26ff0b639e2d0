"""
Per-client request throttling for the HTTP API
"""
import math
import time
from collections import defaultdict, deque
from fastapi import Request, HTTPException
from typing import Callable, Deque, Dict, List, Tuple
import logging

from quiz_engine.config import settings

logger = logging.getLogger(__name__)


class RateLimiter:
    """
    Sliding-window limiter kept in process memory

    Each window is (length in seconds, max requests). A request is refused
    when any window is full; refused requests are not counted.
    """

    def __init__(
        self,
        requests_per_minute: int = 60,
        requests_per_hour: int = 1000,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.windows: List[Tuple[int, int]] = [
            (60, requests_per_minute),
            (3600, requests_per_hour),
        ]
        self.clock = clock
        self._hits: Dict[str, Deque[float]] = defaultdict(deque)

    @staticmethod
    def client_id(request: Request) -> str:
        """Learner id from the query string when present, else the client address"""
        learner_id = request.query_params.get("learner_id")
        if learner_id:
            return f"learner:{learner_id}"
        return request.client.host if request.client else "unknown"

    def _cleanup_old_entries(self, now: float) -> None:
        """Drop hits older than the longest window and forget idle clients"""
        cutoff = now - max(window for window, _ in self.windows)
        for client_id in list(self._hits.keys()):
            hits = self._hits[client_id]
            while hits and hits[0] <= cutoff:
                hits.popleft()
            if not hits:
                del self._hits[client_id]

    @property
    def tracked_clients(self) -> int:
        return len(self._hits)

    def _retry_after(self, hits: Deque[float], window: int, limit: int, now: float) -> int:
        in_window = [ts for ts in hits if ts > now - window]
        oldest = in_window[-limit]
        return max(1, math.ceil(oldest + window - now))

    async def check_rate_limit(self, request: Request) -> None:
        """
        Record the request or refuse it

        Raises:
            HTTPException: 429 if a window is full
        """
        client_id = self.client_id(request)
        now = self.clock()
        self._cleanup_old_entries(now)
        hits = self._hits[client_id]

        for window, limit in self.windows:
            count = sum(1 for ts in hits if ts > now - window)
            if count >= limit:
                retry_after = self._retry_after(hits, window, limit, now)
                logger.warning(f"Rate limit exceeded ({limit}/{window}s): {client_id}")
                raise HTTPException(
                    status_code=429,
                    detail={
                        "error": "rate_limit_exceeded",
                        "message": f"Too many requests. Limit: {limit} requests per {window} seconds",
                        "retry_after": retry_after,
                    }
                )

        hits.append(now)


# Global instance
rate_limiter = RateLimiter(
    requests_per_minute=settings.RATE_LIMIT_PER_MINUTE,
    requests_per_hour=settings.RATE_LIMIT_PER_HOUR,
)
