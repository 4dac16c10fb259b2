from __future__ import annotations

import itertools
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, FrozenSet, List, Optional, Tuple, TypeVar
from urllib.parse import urlsplit

from playwright.sync_api import sync_playwright

from .errors import ResourceExhaustion
from .logging_utils import log_event

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_CAPACITY = 3
ALWAYS_BLOCKED: FrozenSet[str] = frozenset({"media", "websocket"})
LAUNCH_ARGS = (
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-accelerated-2d-canvas",
    "--disable-gpu",
    "--window-size=1920,1080",
)


@dataclass(frozen=True)
class LaunchOptions:
    headless: bool = True
    proxy: Optional[str] = None
    executable_path: Optional[str] = None


@dataclass(frozen=True)
class PageOptions:
    url: Optional[str] = None
    user_agent: Optional[str] = None
    viewport: Tuple[int, int] = (1920, 1080)
    headers: Dict[str, str] = field(default_factory=dict)
    cookies: Dict[str, str] = field(default_factory=dict)
    timeout_ms: int = 30000
    proxy: Optional[str] = None
    block_images: bool = True
    block_stylesheets: bool = False
    block_fonts: bool = True

    def blocked_resource_types(self) -> FrozenSet[str]:
        blocked = set(ALWAYS_BLOCKED)
        if self.block_images:
            blocked.add("image")
        if self.block_stylesheets:
            blocked.add("stylesheet")
        if self.block_fonts:
            blocked.add("font")
        return frozenset(blocked)


@dataclass
class BrowserInstance:
    handle: Any
    created_seq: int
    proxy: Optional[str] = None
    pages: int = 0
    closed: bool = False


class BrowserPool:
    """Bounded pool of headless browser processes.

    Every Playwright call runs on one dedicated browser thread, because sync
    Playwright objects cannot cross threads. acquire() appends a freshly
    launched instance; once the pool holds more than `capacity` instances the
    oldest is marked closed, removed, and its close is queued on the browser
    thread. Close failures are logged and never raised.
    """

    def __init__(
        self,
        capacity: int = DEFAULT_CAPACITY,
        headless: bool = True,
        executable_path: Optional[str] = None,
        launcher: Optional[Callable[[LaunchOptions], Any]] = None,
    ) -> None:
        self._capacity = max(1, capacity)
        self._headless = headless
        self._executable_path = executable_path
        self._launcher = launcher or self._launch_chromium
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="browser")
        self._lock = threading.Lock()
        self._instances: List[BrowserInstance] = []
        self._seq = itertools.count()
        self._playwright: Any = None
        self._shut_down = False

    @property
    def capacity(self) -> int:
        return self._capacity

    def instances(self) -> List[BrowserInstance]:
        with self._lock:
            return list(self._instances)

    def run(self, options: PageOptions, fn: Callable[[Any], T]) -> T:
        """Run fn(page) on a fresh configured page; the page is closed on every exit path."""
        if self._shut_down:
            raise ResourceExhaustion("browser pool is shut down", url=options.url)
        return self._executor.submit(self._run_scoped, options, fn).result()

    def acquire(self, options: PageOptions) -> BrowserInstance:
        launch = LaunchOptions(
            headless=self._headless,
            proxy=options.proxy,
            executable_path=self._executable_path,
        )
        evicted: Optional[BrowserInstance] = None
        with self._lock:
            try:
                handle = self._launcher(launch)
            except Exception as exc:  # noqa: BLE001
                log_event(logger, logging.ERROR, "browser_launch_failed", error=str(exc), proxy=options.proxy)
                raise ResourceExhaustion(f"browser launch failed: {exc}", url=options.url) from exc
            instance = BrowserInstance(handle=handle, created_seq=next(self._seq), proxy=options.proxy)
            self._instances.append(instance)
            if len(self._instances) > self._capacity:
                evicted = self._instances.pop(0)
                evicted.closed = True
            size = len(self._instances)

        log_event(logger, logging.DEBUG, "browser_launched", seq=instance.created_seq, pool_size=size)
        if evicted is not None:
            log_event(logger, logging.INFO, "browser_evicted", seq=evicted.created_seq, live_pages=evicted.pages)
            self._executor.submit(self._close_instance, evicted)
        return instance

    def configure_page(self, instance: BrowserInstance, options: PageOptions) -> Any:
        """Open a page with identity, viewport, headers, cookies and resource blocking applied."""
        if instance.closed:
            raise ResourceExhaustion("browser instance was already evicted", url=options.url)

        width, height = options.viewport
        context = instance.handle.new_context(
            user_agent=options.user_agent,
            viewport={"width": width, "height": height},
            extra_http_headers=dict(options.headers) or None,
        )
        host = urlsplit(options.url).hostname if options.url else None
        if options.cookies and host:
            context.add_cookies(
                [{"name": name, "value": value, "domain": host, "path": "/"} for name, value in options.cookies.items()]
            )

        page = context.new_page()
        page.set_default_timeout(options.timeout_ms)
        page.set_default_navigation_timeout(options.timeout_ms)
        page.route("**/*", _route_handler(options.blocked_resource_types()))
        instance.pages += 1
        return page

    def close_all(self) -> None:
        """Close every instance and stop the browser thread."""
        if self._shut_down:
            return
        self._shut_down = True
        try:
            self._executor.submit(self._close_all).result()
        finally:
            self._executor.shutdown(wait=True)

    def _run_scoped(self, options: PageOptions, fn: Callable[[Any], T]) -> T:
        instance = self.acquire(options)
        page = self.configure_page(instance, options)
        try:
            return fn(page)
        finally:
            self._close_page(instance, page)

    def _close_page(self, instance: BrowserInstance, page: Any) -> None:
        try:
            context = page.context
            page.close()
            context.close()
        except Exception as exc:  # noqa: BLE001
            log_event(logger, logging.WARNING, "page_close_failed", seq=instance.created_seq, error=str(exc))
        finally:
            instance.pages = max(0, instance.pages - 1)

    @staticmethod
    def _close_instance(instance: BrowserInstance) -> None:
        try:
            instance.handle.close()
        except Exception as exc:  # noqa: BLE001
            log_event(logger, logging.WARNING, "browser_close_failed", seq=instance.created_seq, error=str(exc))

    def _close_all(self) -> None:
        with self._lock:
            instances, self._instances = self._instances, []
        for instance in instances:
            instance.closed = True
            self._close_instance(instance)
        if self._playwright is not None:
            try:
                self._playwright.stop()
            except Exception as exc:  # noqa: BLE001
                log_event(logger, logging.WARNING, "playwright_stop_failed", error=str(exc))
            self._playwright = None

    def _launch_chromium(self, launch: LaunchOptions) -> Any:
        if self._playwright is None:
            self._playwright = sync_playwright().start()
        kwargs: Dict[str, Any] = {
            "headless": launch.headless,
            "args": list(LAUNCH_ARGS),
            "chromium_sandbox": False,
        }
        if launch.executable_path:
            kwargs["executable_path"] = launch.executable_path
        if launch.proxy:
            kwargs["proxy"] = _playwright_proxy(launch.proxy)
        return self._playwright.chromium.launch(**kwargs)


def _route_handler(blocked: FrozenSet[str]) -> Callable[[Any], None]:
    def handle(route: Any) -> None:
        if route.request.resource_type in blocked:
            route.abort()
        else:
            route.continue_()

    return handle


def _playwright_proxy(proxy_url: str) -> Dict[str, str]:
    parts = urlsplit(proxy_url if "://" in proxy_url else f"http://{proxy_url}")
    server = f"{parts.scheme}://{parts.hostname}"
    if parts.port:
        server = f"{server}:{parts.port}"
    proxy = {"server": server}
    if parts.username:
        proxy["username"] = parts.username
    if parts.password:
        proxy["password"] = parts.password
    return proxy
