import logging
import time
from collections import defaultdict, deque
from typing import Callable, Deque, Dict, Hashable, Optional

from finacco.core.config import settings
from finacco.core.errors import RateLimitError

logger = logging.getLogger(__name__)


class SlidingWindowRateLimiter:
    """At most ``max_requests`` accepted calls per key in any ``window_seconds`` span."""

    def __init__(
        self,
        max_requests: Optional[int] = None,
        window_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_requests = max_requests or settings.rate_limit_max_requests
        self.window_seconds = window_seconds or settings.rate_limit_window_seconds
        self._clock = clock
        self._requests: Dict[Hashable, Deque[float]] = defaultdict(deque)

    def _prune(self, key: Hashable, now: float) -> Deque[float]:
        requests = self._requests[key]
        while requests and now - requests[0] >= self.window_seconds:
            requests.popleft()
        return requests

    def check(self, key: Hashable) -> None:
        """Record one request for ``key`` or raise RateLimitError without recording it."""
        now = self._clock()
        requests = self._prune(key, now)
        if len(requests) >= self.max_requests:
            retry_after = self.window_seconds - (now - requests[0])
            logger.info("Rate limit hit for %s, retry in %.0fs", key, retry_after)
            raise RateLimitError(retry_after)
        requests.append(now)

    def remaining(self, key: Hashable) -> int:
        return max(0, self.max_requests - len(self._prune(key, self._clock())))

    def reset(self, key: Optional[Hashable] = None) -> None:
        if key is None:
            self._requests.clear()
        else:
            self._requests.pop(key, None)
