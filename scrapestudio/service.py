"""ScrapeStudio: wires the engine together from Settings."""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from .browser_pool import BrowserPool
from .config import Settings, load_settings
from .crawl import UrlDiscoverer
from .export import Dataset, export_dataset
from .extraction import suggest_selectors
from .factory import FetcherFactory
from .logging_utils import log_event
from .models import DiscoveryOptions, ScrapeJob, ScrapeOptions
from .orchestrator import OptionsInput, ScrapeOrchestrator, SelectorInput
from .pipeline import ScrapePipeline
from .rate_limiter import RateLimiter
from .rewriter import EmbeddedPage, fetch_for_embedding, rewrite_for_embedding
from .rotation import IdentityPool, ProxyPool
from .storage import JsonlStorage, MemoryStorage, StorageBase
from .templates import SCRAPING_TEMPLATES, ScrapingTemplate

logger = logging.getLogger(__name__)


class ScrapeStudio:
    """Facade over the job queue, fetch strategies, discovery and exporters.

    Usage:
        with ScrapeStudio() as studio:
            job_id = studio.submit_scrape("https://example.com", [{"selector": "h1", "name": "title"}])
            studio.wait_idle()
            print(studio.get_job(job_id).status)
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        storage: Optional[StorageBase] = None,
        factory: Optional[FetcherFactory] = None,
        autostart: bool = True,
    ) -> None:
        self.settings = settings or load_settings()
        self.proxy_pool = ProxyPool.from_urls(self.settings.proxies)
        self.identity_pool = IdentityPool()
        self.rate_limiter = RateLimiter(qps=self.settings.qps)
        self.factory = factory or FetcherFactory(
            self.proxy_pool,
            self.identity_pool,
            rate_limiter=self.rate_limiter,
            browser_pool_factory=self._new_browser_pool,
            max_redirects=self.settings.max_redirects,
        )
        if storage is None:
            storage = JsonlStorage(self.settings.results_path) if self.settings.results_path else MemoryStorage()
        self.storage = storage
        self.pipeline = ScrapePipeline(self.factory)
        self.orchestrator = ScrapeOrchestrator(
            self.pipeline,
            self.storage,
            max_retries=self.settings.max_retries,
            autostart=autostart,
        )
        self._discoverer = UrlDiscoverer(self.factory)
        log_event(
            logger,
            logging.DEBUG,
            "studio_started",
            proxies=len(self.proxy_pool),
            qps=self.settings.qps,
            storage=type(self.storage).__name__,
        )

    # ------------------------------------------------------------------
    # Jobs
    # ------------------------------------------------------------------

    def submit_scrape(
        self,
        url: str,
        selectors: Iterable[SelectorInput] = (),
        options: OptionsInput = None,
        priority: int = 1,
    ) -> str:
        return self.orchestrator.submit(url, selectors, self._with_defaults(options), priority)

    def submit_batch(
        self,
        urls: Iterable[str],
        selectors: Iterable[SelectorInput] = (),
        options: OptionsInput = None,
        priority: int = 1,
    ) -> List[str]:
        return self.orchestrator.submit_batch(urls, selectors, self._with_defaults(options), priority)

    def get_job(self, job_id: str) -> Optional[ScrapeJob]:
        return self.orchestrator.get_job(job_id)

    def get_result(self, job_id: str) -> Optional[Dict[str, Any]]:
        """Stored payload for a completed job, or None."""
        job = self.get_job(job_id)
        if job is None or job.result_id is None:
            return None
        return self.storage.get(job.result_id)

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        return self.orchestrator.wait_idle(timeout)

    # ------------------------------------------------------------------
    # Discovery, export, embedding
    # ------------------------------------------------------------------

    def discover_urls(
        self,
        seed: str,
        options: Union[DiscoveryOptions, Mapping[str, Any], None] = None,
    ) -> List[str]:
        if not isinstance(options, DiscoveryOptions):
            options = DiscoveryOptions.from_dict(options)
        return self._discoverer.discover(seed, options)

    def export_dataset(self, data: Dataset, format: str = "json", **opts: Any) -> str:
        if format == "vector":
            opts.setdefault("vector_dim", self.settings.vector_dim)
        return export_dataset(data, format, **opts)

    @staticmethod
    def rewrite_for_embedding(html: str, origin_url: str) -> str:
        return rewrite_for_embedding(html, origin_url)

    def fetch_for_embedding(self, url: str) -> EmbeddedPage:
        options = ScrapeOptions(
            timeout=self.settings.timeout_ms,
            headers={"Cache-Control": "no-cache", "Pragma": "no-cache"},
        )
        return fetch_for_embedding(self.factory.create_fetcher(options), url, options)

    @staticmethod
    def templates() -> List[ScrapingTemplate]:
        return list(SCRAPING_TEMPLATES)

    @staticmethod
    def suggest_selectors(html: str) -> List[Dict[str, str]]:
        return suggest_selectors(html)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self, timeout: Optional[float] = 10.0) -> None:
        """Stop the worker, shut down browsers and flush storage."""
        self.orchestrator.stop(wait=True, timeout=timeout)
        self.factory.close()
        self.storage.close()

    def __enter__(self) -> "ScrapeStudio":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def _new_browser_pool(self) -> BrowserPool:
        return BrowserPool(
            capacity=self.settings.browser_pool_size,
            headless=self.settings.browser_headless,
            executable_path=self.settings.browser_executable_path,
        )

    def _with_defaults(self, options: OptionsInput) -> OptionsInput:
        # settings.timeout_ms applies only when the caller gave no timeout
        if options is None:
            return {"timeout": self.settings.timeout_ms}
        if isinstance(options, Mapping) and "timeout" not in options:
            return {**options, "timeout": self.settings.timeout_ms}
        return options
