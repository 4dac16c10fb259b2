from __future__ import annotations

import threading
from typing import Callable, Dict, Optional

import requests

from .base import BaseFetcher
from .browser_pool import BrowserPool
from .fetchers import BrowserFetcher, StaticFetcher
from .models import ScrapeOptions
from .rate_limiter import RateLimiter
from .rotation import IdentityPool, ProxyPool

STATIC = "static"
BROWSER = "browser"


class FetcherFactory:
    """Dispatches a job to a fetch strategy based on options.javascript.

    One fetcher per strategy is cached and shared: fetchers hold no per-request
    state. The browser fetcher and its pool are created lazily on first use,
    since launching browsers is expensive.
    """

    def __init__(
        self,
        proxy_pool: ProxyPool,
        identity_pool: IdentityPool,
        rate_limiter: Optional[RateLimiter] = None,
        browser_pool: Optional[BrowserPool] = None,
        browser_pool_factory: Callable[[], BrowserPool] = BrowserPool,
        max_redirects: int = 5,
        session_factory: Callable[[], requests.Session] = requests.Session,
    ) -> None:
        self._proxy_pool = proxy_pool
        self._identity_pool = identity_pool
        self._rate_limiter = rate_limiter or RateLimiter(qps=0)
        self._browser_pool = browser_pool
        self._browser_pool_factory = browser_pool_factory
        self._max_redirects = max_redirects
        self._session_factory = session_factory
        self._cache: Dict[str, BaseFetcher] = {}
        self._lock = threading.Lock()

    def create_fetcher(self, options: ScrapeOptions) -> BaseFetcher:
        kind = BROWSER if options.javascript else STATIC
        with self._lock:
            if kind in self._cache:
                return self._cache[kind]

            if kind == BROWSER:
                if self._browser_pool is None:
                    self._browser_pool = self._browser_pool_factory()
                fetcher: BaseFetcher = BrowserFetcher(
                    self._browser_pool,
                    proxy_pool=self._proxy_pool,
                    identity_pool=self._identity_pool,
                    rate_limiter=self._rate_limiter,
                )
            else:
                fetcher = StaticFetcher(
                    proxy_pool=self._proxy_pool,
                    identity_pool=self._identity_pool,
                    rate_limiter=self._rate_limiter,
                    max_redirects=self._max_redirects,
                    session_factory=self._session_factory,
                )
            self._cache[kind] = fetcher
            return fetcher

    def close(self) -> None:
        """Shut down the browser pool, if one was ever started."""
        with self._lock:
            pool, self._browser_pool = self._browser_pool, None
            self._cache.pop(BROWSER, None)
        if pool is not None:
            pool.close_all()
