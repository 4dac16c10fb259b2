from __future__ import annotations

import random
import threading
import time
from typing import Callable, Dict
from urllib.parse import urlsplit


class RateLimiter:
    """Thread-safe per-host rate limiter based on queries per second (QPS).

    Calling acquire(url) blocks the current thread until the next request
    to that host is allowed. A QPS of 0 disables throttling."""

    def __init__(self, qps: float) -> None:
        self._interval = 1.0 / qps if qps > 0 else 0.0
        self._lock = threading.Lock()
        self._next_allowed: Dict[str, float] = {}

    def acquire(self, url: str) -> None:
        """Block until the next request to the host of `url` is permitted."""
        if self._interval <= 0:
            return
        host = urlsplit(url).netloc.lower()
        with self._lock:
            now = time.time()
            next_allowed = self._next_allowed.get(host, 0.0)
            if now < next_allowed:
                time.sleep(next_allowed - now)
            self._next_allowed[host] = max(next_allowed + self._interval, time.time())


def jittered_delay(base_seconds: float, rand: Callable[[], float] = random.random) -> float:
    """Pre-request delay of base*(0.5+rand()) seconds, i.e. between 0.5x and 1.5x base."""
    if base_seconds <= 0:
        return 0.0
    return base_seconds * (0.5 + rand())
