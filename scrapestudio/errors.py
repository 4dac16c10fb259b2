from __future__ import annotations


class ScraperError(Exception):
    """Base class for every error raised by the scraping engine."""


class ValidationError(ScraperError, ValueError):
    """Rejected input: malformed URL, missing field, unknown format."""


class FetchError(ScraperError):
    """A page could not be fetched or rendered.

    Jobs failing with a FetchError are retried by the orchestrator."""

    def __init__(self, message: str, url: str | None = None, status_code: int | None = None) -> None:
        super().__init__(message)
        self.url = url
        self.status_code = status_code


class ProxyFailure(FetchError):
    """Transport failure while routing through a proxy."""


class ResourceExhaustion(FetchError):
    """A browser instance could not be launched."""


class SelectorError(ScraperError):
    """A single selector could not be evaluated against a document."""

    def __init__(self, selector: str, cause: BaseException) -> None:
        super().__init__(f"selector {selector!r} failed: {cause}")
        self.selector = selector
        self.cause = cause
