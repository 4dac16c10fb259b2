from __future__ import annotations

from typing import Sequence

from .crawl import PageRecord, paginate
from .extraction import build_record, find_next_page, parse_html
from .factory import FetcherFactory
from .models import ExtractedRecord, ScrapeOptions, Selector


class ScrapePipeline:
    """Fetch, extract and paginate one job's URL into a single record."""

    def __init__(self, factory: FetcherFactory) -> None:
        self._factory = factory

    def run(self, url: str, selectors: Sequence[Selector], options: ScrapeOptions) -> ExtractedRecord:
        return paginate(url, options, lambda page_url: self.scrape_page(page_url, selectors, options))

    def scrape_page(self, url: str, selectors: Sequence[Selector], options: ScrapeOptions) -> PageRecord:
        fetcher = self._factory.create_fetcher(options)
        result = fetcher.fetch(url, options, selectors)
        soup = parse_html(result.html)
        # next link is read before pruning, it often lives in a footer
        next_url = find_next_page(soup, options.pagination_selector, url) if options.pagination_enabled else None
        record = build_record(soup, selectors, options, in_page=result.data)
        return PageRecord(record=record, next_url=next_url)
