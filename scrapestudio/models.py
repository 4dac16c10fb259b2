from __future__ import annotations

import enum
from dataclasses import asdict, dataclass, field, fields
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from .errors import ValidationError

# JSON-like value produced by extraction: str | list[str] | nested dict/list
ExtractedValue = Union[str, List[Any], Dict[str, Any]]
ExtractedRecord = Dict[str, ExtractedValue]


class SelectorType(str, enum.Enum):
    TEXT = "text"
    HTML = "html"
    ATTRIBUTE = "attribute"
    IMAGE = "image"
    LINK = "link"
    LIST = "list"


class ExtractionMode(str, enum.Enum):
    RAW = "raw"
    CLEANED = "cleaned"
    SEMANTIC = "semantic"
    VECTORIZED = "vectorized"


class JobStatus(str, enum.Enum):
    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    FAILED = "failed"


def _camel_to_snake(name: str) -> str:
    out = []
    for ch in name:
        if ch.isupper():
            out.append("_")
            out.append(ch.lower())
        else:
            out.append(ch)
    return "".join(out)


def _normalize_keys(raw: Mapping[str, Any], allowed: set[str], what: str) -> Dict[str, Any]:
    normalized: Dict[str, Any] = {}
    for key, value in raw.items():
        name = _camel_to_snake(key)
        if name not in allowed:
            raise ValidationError(f"unknown {what} field: {key}")
        normalized[name] = value
    return normalized


@dataclass(frozen=True)
class Selector:
    """Declarative description of which element(s) to read and how."""

    selector: str
    type: SelectorType = SelectorType.TEXT
    name: Optional[str] = None
    attribute: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.selector or not str(self.selector).strip():
            raise ValidationError("selector expression is required")
        try:
            object.__setattr__(self, "type", SelectorType(self.type))
        except ValueError:
            raise ValidationError(f"unknown selector type: {self.type}") from None
        if self.type is SelectorType.ATTRIBUTE and not self.attribute:
            raise ValidationError(f"selector {self.selector!r} of type 'attribute' needs an attribute name")

    @property
    def key(self) -> str:
        """Field name in the extracted record."""
        return self.name or self.selector

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "Selector":
        if "selector" not in raw:
            raise ValidationError("selector expression is required")
        return cls(
            selector=raw["selector"],
            type=raw.get("type", SelectorType.TEXT.value),
            name=raw.get("name") or None,
            attribute=raw.get("attribute") or None,
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"selector": self.selector, "type": self.type.value}
        if self.name:
            data["name"] = self.name
        if self.attribute:
            data["attribute"] = self.attribute
        return data


@dataclass(frozen=True)
class FormatOptions:
    skip_headers: bool = False
    skip_footers: bool = False
    exclude_ads: bool = True
    exclude_media: bool = False
    summarize: bool = False

    @classmethod
    def from_dict(cls, raw: Optional[Mapping[str, Any]]) -> "FormatOptions":
        if not raw:
            return cls()
        allowed = {f.name for f in fields(cls)}
        return cls(**{k: bool(v) for k, v in _normalize_keys(raw, allowed, "formatOptions").items()})


@dataclass(frozen=True)
class ScrapeOptions:
    """Per-job fetch and extraction settings. Frozen so a running job cannot see changes."""

    timeout: int = 30000
    proxy: str = "none"
    user_agent: Optional[str] = None
    cookies: Dict[str, str] = field(default_factory=dict)
    headers: Dict[str, str] = field(default_factory=dict)
    follow_redirects: bool = True
    delay: float = 0.0
    javascript: bool = False
    wait_for_selector: Optional[str] = None
    pagination: bool = False
    pagination_selector: Optional[str] = None
    max_pages: int = 1
    extraction_mode: ExtractionMode = ExtractionMode.CLEANED
    format_options: FormatOptions = field(default_factory=FormatOptions)
    impersonate: Optional[str] = None

    def __post_init__(self) -> None:
        if int(self.timeout) <= 0:
            raise ValidationError("timeout must be positive")
        if int(self.max_pages) < 1:
            raise ValidationError("maxPages must be at least 1")
        if float(self.delay) < 0:
            raise ValidationError("delay must not be negative")
        try:
            object.__setattr__(self, "extraction_mode", ExtractionMode(self.extraction_mode))
        except ValueError:
            raise ValidationError(f"unknown extractionMode: {self.extraction_mode}") from None
        if not self.proxy:
            object.__setattr__(self, "proxy", "none")

    @property
    def pagination_enabled(self) -> bool:
        return bool(self.pagination and self.max_pages > 1 and self.pagination_selector)

    @classmethod
    def from_dict(cls, raw: Optional[Mapping[str, Any]]) -> "ScrapeOptions":
        """Build options from caller input; camelCase and snake_case keys are both accepted."""
        if not raw:
            return cls()
        allowed = {f.name for f in fields(cls)}
        values = _normalize_keys(raw, allowed, "option")
        if "format_options" in values and not isinstance(values["format_options"], FormatOptions):
            values["format_options"] = FormatOptions.from_dict(values["format_options"])
        for name in ("cookies", "headers"):
            if name in values:
                values[name] = {str(k): str(v) for k, v in (values[name] or {}).items()}
        try:
            return cls(**values)
        except (TypeError, ValueError) as exc:
            if isinstance(exc, ValidationError):
                raise
            raise ValidationError(f"invalid scrape options: {exc}") from exc

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["extraction_mode"] = self.extraction_mode.value
        return data


@dataclass(frozen=True)
class DiscoveryOptions:
    max_depth: int = 1
    max_urls: int = 100
    url_pattern: Optional[str] = None
    same_domain: bool = True
    javascript: bool = False
    timeout: int = 10000
    user_agent: Optional[str] = None
    headers: Dict[str, str] = field(default_factory=dict)
    follow_redirects: bool = True
    proxy: str = "none"

    def __post_init__(self) -> None:
        if int(self.max_depth) < 0:
            raise ValidationError("maxDepth must not be negative")
        if int(self.max_urls) < 1:
            raise ValidationError("maxUrls must be at least 1")

    @classmethod
    def from_dict(cls, raw: Optional[Mapping[str, Any]]) -> "DiscoveryOptions":
        if not raw:
            return cls()
        allowed = {f.name for f in fields(cls)}
        return cls(**_normalize_keys(raw, allowed, "discovery option"))

    def to_scrape_options(self) -> ScrapeOptions:
        return ScrapeOptions(
            timeout=self.timeout,
            proxy=self.proxy,
            user_agent=self.user_agent,
            headers=dict(self.headers),
            follow_redirects=self.follow_redirects,
            javascript=self.javascript,
            extraction_mode=ExtractionMode.RAW,
        )


@dataclass
class ScrapeJob:
    """A queued scrape. Mutated only by the orchestrator; callers get copies."""

    id: str
    url: str
    selectors: Tuple[Selector, ...]
    options: ScrapeOptions
    priority: int = 1
    status: JobStatus = JobStatus.PENDING
    retry_count: int = 0
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    error: Optional[str] = None
    result_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "url": self.url,
            "status": self.status.value,
            "selectors": [s.to_dict() for s in self.selectors],
            "options": self.options.to_dict(),
            "priority": self.priority,
            "retry_count": self.retry_count,
            "start_time": self.start_time.isoformat() if self.start_time else None,
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "error": self.error,
            "result_id": self.result_id,
        }


@dataclass(frozen=True)
class FetchResult:
    url: str
    final_url: str
    status_code: Optional[int]
    html: str
    latency_ms: int
    content_type: Optional[str] = None
    data: Optional[ExtractedRecord] = None
    proxy: Optional[str] = None
    user_agent: Optional[str] = None
    # raw response bytes; None for rendered browser pages
    body: Optional[bytes] = None


@dataclass
class Proxy:
    address: str
    protocol: str = "http"
    username: Optional[str] = None
    password: Optional[str] = None
    success_count: int = 0
    failure_count: int = 0
    last_used: Optional[float] = None
    response_time_ms: Optional[int] = None
    is_active: bool = True

    @property
    def key(self) -> str:
        return self.address

    @property
    def url(self) -> str:
        if self.username and self.password:
            return f"{self.protocol}://{self.username}:{self.password}@{self.address}"
        return f"{self.protocol}://{self.address}"


@dataclass
class Identity:
    value: str
    browser: str = "other"
    os: str = "other"
    mobile: bool = False
    version: Optional[str] = None
    weight: int = 1
    success_count: int = 0
    failure_count: int = 0
    last_used: Optional[float] = None
    response_time_ms: Optional[int] = None
    is_active: bool = True

    @property
    def key(self) -> str:
        return self.value
