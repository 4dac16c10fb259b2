"""Runtime settings for the scraping engine.

Values default from environment variables; a `.env` file in the working
directory is loaded on import without overriding variables already set.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import List, Optional

from dotenv import load_dotenv

load_dotenv(override=False)


def _env_bool(name: str, default: str) -> bool:
    return os.environ.get(name, default).strip().lower() in ("1", "true", "yes", "on")


def _env_list(name: str) -> List[str]:
    raw = os.environ.get(name, "")
    return [item.strip() for item in raw.split(",") if item.strip()]


@dataclass
class Settings:
    # ------------------------------------------------------------------
    # Fetching
    # ------------------------------------------------------------------
    timeout_ms: int = field(
        default_factory=lambda: int(os.environ.get("SCRAPER_TIMEOUT_MS", "30000"))
    )
    max_retries: int = field(
        default_factory=lambda: int(os.environ.get("SCRAPER_MAX_RETRIES", "3"))
    )
    qps: float = field(
        default_factory=lambda: float(os.environ.get("SCRAPER_QPS", "0"))
    )
    max_redirects: int = field(
        default_factory=lambda: int(os.environ.get("SCRAPER_MAX_REDIRECTS", "5"))
    )
    proxies: List[str] = field(default_factory=lambda: _env_list("PROXY_LIST"))

    # ------------------------------------------------------------------
    # Browser pool
    # ------------------------------------------------------------------
    browser_pool_size: int = field(
        default_factory=lambda: int(os.environ.get("BROWSER_POOL_SIZE", "3"))
    )
    browser_headless: bool = field(
        default_factory=lambda: _env_bool("BROWSER_HEADLESS", "true")
    )
    browser_executable_path: Optional[str] = field(
        default_factory=lambda: os.environ.get("BROWSER_EXECUTABLE_PATH") or None
    )

    # ------------------------------------------------------------------
    # Output
    # ------------------------------------------------------------------
    results_path: Optional[str] = field(
        default_factory=lambda: os.environ.get("RESULTS_PATH") or None
    )
    vector_dim: int = field(
        default_factory=lambda: int(os.environ.get("VECTOR_DIM", "128"))
    )
    log_level: str = field(
        default_factory=lambda: os.environ.get("LOG_LEVEL", "INFO")
    )


def load_settings(**overrides) -> Settings:
    """Build settings from the environment, with keyword overrides on top."""
    settings = Settings()
    for name, value in overrides.items():
        if not hasattr(settings, name):
            raise AttributeError(f"unknown setting: {name}")
        setattr(settings, name, value)
    return settings
