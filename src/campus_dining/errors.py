"""Error types for the acquisition pipeline and the classifier that tags them."""

from __future__ import annotations

import json
from concurrent.futures import TimeoutError as FutureTimeoutError
from enum import Enum
from typing import Iterable, Optional

import requests
from selenium.common.exceptions import (
    SessionNotCreatedException,
    TimeoutException,
    WebDriverException,
)

DETAIL_LIMIT = 180

# Interstitial text served instead of content when the upstream's bot protection trips.
ANTI_BOT_MARKERS = (
    "cloudflare",
    "attention required!",
    "just a moment...",
    "checking your browser",
    "cf-chl",
    "enable javascript and cookies to continue",
)

LAUNCH_FAILURE_MARKERS = (
    "failed to start",
    "chrome failed to start",
    "cannot find chrome binary",
    "session not created",
    "devtoolsactiveport file doesn't exist",
)

# Raised by the parsers when a payload does not have the expected shape.
PAYLOAD_ERRORS = (ValueError, KeyError, TypeError, AttributeError)


class FetchErrorKind(str, Enum):
    NETWORK = "network"
    NAVIGATION_TIMEOUT = "navigation_timeout"
    ANTI_BOT_CHALLENGE = "anti_bot_challenge"
    MALFORMED_PAYLOAD = "malformed_payload"
    LAUNCH_FAILURE = "launch_failure"


class DiningError(RuntimeError):
    """Base class for errors raised by this package."""


class FetchError(DiningError):
    """Raised when an upstream fetch fails; carries the classified kind."""

    def __init__(self, kind: FetchErrorKind, url: str, detail: str = ""):
        self.kind = kind
        self.url = url
        self.detail = truncate(detail)
        super().__init__(f"{kind.value} ({url}): {self.detail}")


class AntiBotChallenge(FetchError):
    """The upstream answered with a bot-protection page instead of content."""

    def __init__(self, url: str, detail: str = ""):
        super().__init__(FetchErrorKind.ANTI_BOT_CHALLENGE, url, detail)


class NoDataForAnyLocation(DiningError):
    """Every location failed to fetch for a date; nothing may be written."""

    def __init__(self, date_label: str, failures: Iterable[str] = ()):
        self.date_label = date_label
        self.failures = list(failures)
        super().__init__(f"no successful fetch for any location on {date_label}")


class StoreWriteError(DiningError):
    """Raised by store implementations when a write cannot be completed."""


def truncate(text: str, limit: int = DETAIL_LIMIT) -> str:
    text = " ".join((text or "").split())
    if len(text) <= limit:
        return text
    return text[:limit]


def detect_anti_bot(text: Optional[str]) -> bool:
    """Return True when page text carries a known bot-challenge marker."""
    if not text:
        return False
    lowered = text.lower()
    return any(marker in lowered for marker in ANTI_BOT_MARKERS)


def is_anti_bot(error: BaseException) -> bool:
    return isinstance(error, FetchError) and error.kind is FetchErrorKind.ANTI_BOT_CHALLENGE


def _response_text(error: BaseException) -> Optional[str]:
    response = getattr(error, "response", None)
    if response is None:
        return None
    try:
        return response.text
    except Exception:  # pragma: no cover - undecodable body
        return None


def classify_fetch_error(
    error: BaseException,
    url: Optional[str] = None,
    page_text: Optional[str] = None,
) -> FetchErrorKind:
    """
    Map a raw failure onto a FetchErrorKind.

    Marker text in the page (or the failed response body) wins over everything else,
    so a challenge page that also timed out is still reported as a challenge.
    ``url`` is accepted so callers can pass the request context; classification does
    not depend on it.
    """

    if detect_anti_bot(page_text) or detect_anti_bot(_response_text(error)):
        return FetchErrorKind.ANTI_BOT_CHALLENGE

    if isinstance(error, FetchError):
        return error.kind

    if isinstance(error, (TimeoutException, requests.Timeout, TimeoutError, FutureTimeoutError)):
        return FetchErrorKind.NAVIGATION_TIMEOUT

    if isinstance(error, SessionNotCreatedException):
        return FetchErrorKind.LAUNCH_FAILURE

    message = str(error).lower()
    if isinstance(error, WebDriverException) and any(marker in message for marker in LAUNCH_FAILURE_MARKERS):
        return FetchErrorKind.LAUNCH_FAILURE

    if "deadline exceeded" in message or "timed out" in message:
        return FetchErrorKind.NAVIGATION_TIMEOUT

    if isinstance(error, (json.JSONDecodeError, requests.exceptions.InvalidJSONError)):
        return FetchErrorKind.MALFORMED_PAYLOAD
    if isinstance(error, requests.RequestException):
        return FetchErrorKind.NETWORK
    if isinstance(error, PAYLOAD_ERRORS):
        return FetchErrorKind.MALFORMED_PAYLOAD

    return FetchErrorKind.NETWORK


def as_fetch_error(error: BaseException, url: str, page_text: Optional[str] = None) -> FetchError:
    """Wrap any failure in the matching FetchError subclass."""
    if isinstance(error, FetchError):
        return error
    kind = classify_fetch_error(error, url, page_text)
    if kind is FetchErrorKind.ANTI_BOT_CHALLENGE:
        return AntiBotChallenge(url, page_text or _response_text(error) or str(error))
    return FetchError(kind, url, str(error))
