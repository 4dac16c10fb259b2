from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional

import requests
from curl_cffi import requests as curl_requests
from playwright.sync_api import Error as PlaywrightError

from .base import BaseFetcher, FetchRequest, origin_of
from .browser_pool import BrowserPool, PageOptions
from .errors import FetchError, ProxyFailure
from .extraction import IN_PAGE_EXTRACT_JS, selector_payload
from .logging_utils import log_event
from .models import FetchResult

logger = logging.getLogger(__name__)

DEFAULT_ACCEPT = "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8"


class StaticFetcher(BaseFetcher):
    """Plain HTTP GET; the body is parsed later into a DOM tree.

    Uses a fresh requests.Session per fetch so cookies never leak between
    jobs. When options.impersonate is set the request goes through curl_cffi
    with a browser TLS fingerprint instead.
    """

    def __init__(
        self,
        *args,
        max_redirects: int = 5,
        session_factory: Callable[[], requests.Session] = requests.Session,
        **kwargs,
    ) -> None:
        super().__init__(*args, **kwargs)
        self._max_redirects = max_redirects
        self._session_factory = session_factory

    def build_headers(self, request: FetchRequest) -> Dict[str, str]:
        headers = {
            "User-Agent": request.user_agent,
            "Accept": DEFAULT_ACCEPT,
            "Referer": origin_of(request.url),
        }
        headers.update(request.options.headers)
        return headers

    def _fetch(self, request: FetchRequest) -> FetchResult:
        options = request.options
        if options.impersonate:
            return self._fetch_impersonated(request)

        proxies = {"http": request.proxy_url, "https": request.proxy_url} if request.proxy_url else None
        session = self._session_factory()
        session.max_redirects = self._max_redirects
        try:
            response = session.get(
                request.url,
                headers=self.build_headers(request),
                cookies=options.cookies or None,
                proxies=proxies,
                timeout=options.timeout / 1000.0,
                allow_redirects=options.follow_redirects,
            )
        except requests.exceptions.ProxyError as exc:
            raise ProxyFailure(f"proxy error: {exc}", url=request.url) from exc
        except requests.Timeout as exc:
            raise FetchError(f"timeout after {options.timeout}ms", url=request.url) from exc
        except requests.RequestException as exc:
            raise FetchError(f"{type(exc).__name__}: {exc}", url=request.url) from exc
        finally:
            session.close()

        return self._to_result(
            request,
            status_code=response.status_code,
            html=response.text,
            body=response.content,
            final_url=str(response.url or request.url),
            content_type=response.headers.get("Content-Type"),
        )

    def _fetch_impersonated(self, request: FetchRequest) -> FetchResult:
        options = request.options
        proxies = {"http": request.proxy_url, "https": request.proxy_url} if request.proxy_url else None
        session = curl_requests.Session()
        try:
            response = session.get(
                request.url,
                headers=self.build_headers(request),
                cookies=options.cookies or None,
                proxies=proxies,
                timeout=options.timeout / 1000.0,
                allow_redirects=options.follow_redirects,
                max_redirects=self._max_redirects,
                impersonate=options.impersonate,
            )
        except Exception as exc:  # noqa: BLE001
            raise FetchError(f"{type(exc).__name__}: {exc}", url=request.url) from exc
        finally:
            session.close()

        return self._to_result(
            request,
            status_code=response.status_code,
            html=response.text,
            body=response.content,
            final_url=str(response.url or request.url),
            content_type=response.headers.get("Content-Type"),
        )

    @staticmethod
    def _to_result(
        request: FetchRequest,
        status_code: int,
        html: str,
        final_url: str,
        content_type: Optional[str],
        body: Optional[bytes] = None,
    ) -> FetchResult:
        if not 200 <= int(status_code) < 300:
            raise FetchError(f"HTTP {status_code}", url=request.url, status_code=status_code)
        return FetchResult(
            url=request.url,
            final_url=final_url,
            status_code=status_code,
            html=html,
            latency_ms=0,
            content_type=content_type,
            body=body,
        )


class BrowserFetcher(BaseFetcher):
    """Renders the page in a pooled headless browser and extracts in-page."""

    def __init__(self, browser_pool: BrowserPool, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._browser_pool = browser_pool

    def _fetch(self, request: FetchRequest) -> FetchResult:
        options = request.options
        page_options = PageOptions(
            url=request.url,
            user_agent=request.user_agent,
            headers=dict(options.headers),
            cookies=dict(options.cookies),
            timeout_ms=options.timeout,
            proxy=request.proxy_url,
            block_images=options.format_options.exclude_media,
        )
        status_code, final_url, html, outcome = self._browser_pool.run(
            page_options, lambda page: self._render(page, request)
        )

        for failure in outcome.get("errors") or []:
            log_event(
                logger,
                logging.WARNING,
                "selector_failed",
                selector=failure.get("selector"),
                error=failure.get("error"),
            )

        return FetchResult(
            url=request.url,
            final_url=final_url or request.url,
            status_code=status_code,
            html=html,
            latency_ms=0,
            content_type="text/html",
            data=dict(outcome.get("data") or {}),
        )

    def _render(self, page: Any, request: FetchRequest):
        options = request.options
        response = page.goto(request.url, wait_until="networkidle", timeout=options.timeout)
        if options.wait_for_selector:
            try:
                page.wait_for_selector(options.wait_for_selector, timeout=options.timeout)
            except PlaywrightError as exc:
                log_event(
                    logger,
                    logging.INFO,
                    "wait_for_selector_skipped",
                    url=request.url,
                    selector=options.wait_for_selector,
                    error=str(exc),
                )

        outcome: Dict[str, Any] = {"data": {}, "errors": []}
        if request.selectors:
            outcome = page.evaluate(IN_PAGE_EXTRACT_JS, selector_payload(request.selectors))
        html = page.content()
        status_code = response.status if response is not None else None
        return status_code, page.url, html, outcome
