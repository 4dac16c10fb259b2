"""Pagination and breadth-first URL discovery.

Both walks use explicit work lists instead of recursion.
"""

from __future__ import annotations

import logging
import re
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, List, Optional, Set, Tuple
from urllib.parse import urldefrag, urljoin, urlsplit

from .base import validate_url
from .errors import ScraperError, ValidationError
from .extraction import parse_html
from .factory import FetcherFactory
from .logging_utils import log_event
from .models import DiscoveryOptions, ExtractedRecord, ScrapeOptions

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PageRecord:
    record: ExtractedRecord
    next_url: Optional[str] = None


def merge_records(first: ExtractedRecord, later: ExtractedRecord) -> ExtractedRecord:
    """Merge a later page into an earlier one.

    Lists concatenate earlier-first; any other field keeps the earlier value
    when the key is already present.
    """
    merged = dict(first)
    for key, value in later.items():
        current = merged.get(key)
        if isinstance(current, list) and isinstance(value, list):
            merged[key] = current + value
        elif key not in merged:
            merged[key] = value
    return merged


def paginate(
    start_url: str,
    options: ScrapeOptions,
    scrape_page: Callable[[str], PageRecord],
) -> ExtractedRecord:
    """Scrape `start_url` and follow next-page links up to options.max_pages pages.

    A failure on the first page propagates. A failure on a later page stops
    pagination and returns what was merged so far.
    """
    first = scrape_page(start_url)
    merged = dict(first.record)
    if not options.pagination_enabled:
        return merged

    remaining = options.max_pages - 1
    current_url, next_url = start_url, first.next_url
    while remaining > 0 and next_url:
        if next_url == current_url:
            log_event(logger, logging.DEBUG, "pagination_stopped", url=current_url, reason="self_link")
            break
        try:
            page = scrape_page(next_url)
        except ScraperError as exc:
            log_event(logger, logging.WARNING, "pagination_stopped", url=next_url, reason="fetch_failed", error=str(exc))
            break
        merged = merge_records(merged, page.record)
        current_url, next_url = next_url, page.next_url
        remaining -= 1
    return merged


class UrlDiscoverer:
    """Breadth-first link discovery from a seed URL."""

    def __init__(self, factory: FetcherFactory) -> None:
        self._factory = factory

    def discover(self, seed: str, options: Optional[DiscoveryOptions] = None) -> List[str]:
        options = options or DiscoveryOptions()
        seed = validate_url(seed)
        try:
            pattern = re.compile(options.url_pattern) if options.url_pattern else None
        except re.error as exc:
            raise ValidationError(f"invalid urlPattern: {exc}") from exc
        seed_host = urlsplit(seed).hostname
        scrape_options = options.to_scrape_options()
        fetcher = self._factory.create_fetcher(scrape_options)

        frontier: Deque[Tuple[str, int]] = deque([(seed, 0)])
        visited: List[str] = []
        seen: Set[str] = set()

        while frontier and len(visited) < options.max_urls:
            url, depth = frontier.popleft()
            if url in seen:
                continue
            seen.add(url)
            visited.append(url)

            if depth >= options.max_depth:
                continue

            try:
                result = fetcher.fetch(url, scrape_options)
            except ScraperError as exc:
                log_event(logger, logging.WARNING, "discovery_fetch_failed", url=url, error=str(exc))
                continue

            for link in self._links(result.html, url):
                if pattern is not None and not pattern.search(link):
                    continue
                if options.same_domain and urlsplit(link).hostname != seed_host:
                    continue
                if link not in seen:
                    frontier.append((link, depth + 1))

        return visited

    @staticmethod
    def _links(html: str, page_url: str) -> List[str]:
        links: List[str] = []
        for anchor in parse_html(html).select("a[href]"):
            href = (anchor.get("href") or "").strip()
            if not href:
                continue
            try:
                absolute, _fragment = urldefrag(urljoin(page_url, href))
            except ValueError:
                continue
            if urlsplit(absolute).scheme in ("http", "https"):
                links.append(absolute)
        return links
