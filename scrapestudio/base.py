from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from typing import Callable, Optional, Sequence, Tuple
from urllib.parse import urlsplit

from .errors import FetchError, ValidationError
from .logging_utils import log_event
from .models import FetchResult, Identity, Proxy, ScrapeOptions, Selector
from .rate_limiter import RateLimiter, jittered_delay
from .rotation import DEFAULT_IDENTITIES, IdentityPool, PoolEmptyError, ProxyPool, parse_proxy

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FetchRequest:
    url: str
    options: ScrapeOptions
    selectors: Tuple[Selector, ...]
    proxy_url: Optional[str]
    user_agent: str


def validate_url(url: str) -> str:
    """Return `url` stripped, or raise ValidationError unless it is an absolute http(s) URL."""
    if not url or not isinstance(url, str):
        raise ValidationError("url is required")
    url = url.strip()
    parts = urlsplit(url)
    if parts.scheme not in ("http", "https") or not parts.netloc:
        raise ValidationError(f"invalid url: {url!r}")
    return url


def origin_of(url: str) -> str:
    parts = urlsplit(url)
    return f"{parts.scheme}://{parts.netloc}"


class BaseFetcher(ABC):
    """Abstract base class defining the common fetch pipeline.

    fetch() validates the URL, throttles, applies the jittered delay, draws a
    proxy and an identity from the rotation pools, runs the strategy-specific
    _fetch() and reports the outcome back to the pools. Any non-FetchError
    raised by a strategy is wrapped in FetchError.
    """

    def __init__(
        self,
        proxy_pool: Optional[ProxyPool] = None,
        identity_pool: Optional[IdentityPool] = None,
        rate_limiter: Optional[RateLimiter] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._proxy_pool = proxy_pool if proxy_pool is not None else ProxyPool()
        self._identity_pool = identity_pool if identity_pool is not None else IdentityPool()
        self._rate_limiter = rate_limiter or RateLimiter(qps=0)
        self._sleep = sleep

    def fetch(self, url: str, options: ScrapeOptions, selectors: Sequence[Selector] = ()) -> FetchResult:
        url = validate_url(url)
        self._rate_limiter.acquire(url)
        delay = jittered_delay(options.delay)
        if delay > 0:
            self._sleep(delay)

        proxy_url, proxy = self._pick_proxy(options.proxy)
        user_agent, identity = self._pick_identity(options.user_agent)
        request = FetchRequest(
            url=url,
            options=options,
            selectors=tuple(selectors),
            proxy_url=proxy_url,
            user_agent=user_agent,
        )

        start_ms = self._now_ms()
        try:
            result = self._fetch(request)
        except FetchError as exc:
            self._report_failure(proxy, identity)
            log_event(logger, logging.WARNING, "fetch_failed", url=url, proxy=proxy_url, error=str(exc))
            raise
        except Exception as exc:  # noqa: BLE001
            self._report_failure(proxy, identity)
            log_event(logger, logging.WARNING, "fetch_failed", url=url, proxy=proxy_url, error=str(exc))
            raise FetchError(f"{type(exc).__name__}: {exc}", url=url) from exc

        latency_ms = self._now_ms() - start_ms
        self._report_success(proxy, identity, latency_ms)
        return replace(result, latency_ms=latency_ms, proxy=proxy_url, user_agent=user_agent)

    @abstractmethod
    def _fetch(self, request: FetchRequest) -> FetchResult:
        ...

    def close(self) -> None:
        """Release strategy resources. No-op by default."""

    def _pick_proxy(self, mode: str) -> Tuple[Optional[str], Optional[Proxy]]:
        if not mode or mode == "none":
            return None, None
        if mode == "auto":
            try:
                member = self._proxy_pool.next()
            except PoolEmptyError:
                log_event(logger, logging.WARNING, "proxy_pool_empty", mode=mode)
                return None, None
            return member.url, member
        explicit = parse_proxy(mode)
        member = self._proxy_pool.find(explicit.key)
        return (member.url if member else explicit.url), member

    def _pick_identity(self, explicit: Optional[str]) -> Tuple[str, Optional[Identity]]:
        if explicit:
            return explicit, None
        try:
            member = self._identity_pool.choose_weighted()
        except PoolEmptyError:
            return DEFAULT_IDENTITIES[0].value, None
        return member.value, member

    def _report_success(self, proxy: Optional[Proxy], identity: Optional[Identity], latency_ms: int) -> None:
        if proxy is not None:
            self._proxy_pool.report_success(proxy, latency_ms)
        if identity is not None:
            self._identity_pool.report_success(identity, latency_ms)

    def _report_failure(self, proxy: Optional[Proxy], identity: Optional[Identity]) -> None:
        if proxy is not None:
            self._proxy_pool.report_failure(proxy)
        if identity is not None:
            self._identity_pool.report_failure(identity)

    @staticmethod
    def _now_ms() -> int:
        return int(time.time() * 1000)
