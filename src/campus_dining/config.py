from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Optional, Tuple

from .locations import DEFAULT_LOCATIONS
from .models import Location

DEFAULT_API_BASE_URL = "https://api.dineoncampus.com/v1"
DEFAULT_SITE_ID = "5acea5d8f3eeb60b08c5a50d"
DEFAULT_MENU_PAGE_URL = "https://dineoncampus.com/northwestern/whats-on-the-menu"
DEFAULT_HOURS_PAGE_URL = "https://dineoncampus.com/northwestern/hours-of-operation"
DEFAULT_TIMEZONE = "America/Chicago"
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/122.0.0.0 Safari/537.36"
)


def _env_str(key: str, default: str) -> str:
    value = os.getenv(key)
    return value.strip() if value and value.strip() else default


def _env_int(key: str, default: int) -> int:
    value = os.getenv(key)
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{key} must be an integer, got {value!r}") from None


def _env_float(key: str, default: float) -> float:
    value = os.getenv(key)
    if value is None or not value.strip():
        return default
    try:
        return float(value)
    except ValueError:
        raise ValueError(f"{key} must be a number, got {value!r}") from None


def _env_optional(key: str) -> Optional[str]:
    value = os.getenv(key)
    return value.strip() if value and value.strip() else None


@dataclass
class PipelineConfig:
    """Runtime settings; every default can be overridden through the environment."""

    api_base_url: str = field(default_factory=lambda: _env_str("DINING_API_BASE_URL", DEFAULT_API_BASE_URL))
    site_id: str = field(default_factory=lambda: _env_str("DINING_SITE_ID", DEFAULT_SITE_ID))
    menu_page_url: str = field(default_factory=lambda: _env_str("DINING_MENU_PAGE_URL", DEFAULT_MENU_PAGE_URL))
    hours_page_url: str = field(default_factory=lambda: _env_str("DINING_HOURS_PAGE_URL", DEFAULT_HOURS_PAGE_URL))
    strategy: str = field(default_factory=lambda: _env_str("DINING_STRATEGY", "browser_api"))
    fallback_strategy: Optional[str] = field(default_factory=lambda: _env_optional("DINING_FALLBACK_STRATEGY"))
    window_days: int = field(default_factory=lambda: _env_int("DINING_WINDOW_DAYS", 3))
    batch_retries: int = field(default_factory=lambda: _env_int("DINING_BATCH_RETRIES", 10))
    interactive_retries: int = field(default_factory=lambda: _env_int("DINING_INTERACTIVE_RETRIES", 3))
    request_timeout: float = field(default_factory=lambda: _env_float("DINING_REQUEST_TIMEOUT", 30.0))
    navigation_timeout: float = field(default_factory=lambda: _env_float("DINING_NAVIGATION_TIMEOUT", 25.0))
    render_settle_seconds: float = field(default_factory=lambda: _env_float("DINING_RENDER_SETTLE_SECONDS", 8.0))
    api_settle_seconds: float = field(default_factory=lambda: _env_float("DINING_API_SETTLE_SECONDS", 1.2))
    max_concurrency: int = field(default_factory=lambda: _env_int("DINING_MAX_CONCURRENCY", 5))
    timezone: str = field(default_factory=lambda: _env_str("DINING_TIMEZONE", DEFAULT_TIMEZONE))
    store_path: str = field(default_factory=lambda: _env_str("DINING_STORE_PATH", "dining_store.json"))
    chrome_binary: Optional[str] = field(default_factory=lambda: _env_optional("CHROME_BIN"))
    chromedriver_path: Optional[str] = field(default_factory=lambda: _env_optional("CHROMEDRIVER_PATH"))
    user_agent: str = field(default_factory=lambda: _env_str("DINING_USER_AGENT", DEFAULT_USER_AGENT))
    locations: Tuple[Location, ...] = DEFAULT_LOCATIONS

    def __post_init__(self) -> None:
        if self.window_days < 0:
            raise ValueError("window_days must be zero or positive")
        if self.max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        if self.fallback_strategy == self.strategy:
            self.fallback_strategy = None
