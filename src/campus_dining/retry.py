"""Bounded retry with linear backoff, shared by every acquisition strategy."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, TypeVar

from .errors import FetchErrorKind, classify_fetch_error

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Multiplier on the linear delay. Challenge pages and browser launch problems tend to
# clear slower than a dropped connection, so they wait longer between attempts.
BACKOFF_SCALE: Dict[FetchErrorKind, float] = {
    FetchErrorKind.NETWORK: 1.0,
    FetchErrorKind.NAVIGATION_TIMEOUT: 1.0,
    FetchErrorKind.MALFORMED_PAYLOAD: 1.0,
    FetchErrorKind.ANTI_BOT_CHALLENGE: 2.0,
    FetchErrorKind.LAUNCH_FAILURE: 2.0,
}


@dataclass
class RetryAttempt:
    """Diagnostic record for one failed attempt."""

    attempt: int
    kind: FetchErrorKind
    message: str
    delay: float


def backoff_seconds(attempt: int, kind: FetchErrorKind, base_delay: float = 1.0) -> float:
    return attempt * base_delay * BACKOFF_SCALE.get(kind, 1.0)


def with_retry(
    max_attempts: int,
    operation: Callable[[], T],
    *,
    label: str = "operation",
    url: Optional[str] = None,
    give_up: Optional[Callable[[BaseException], bool]] = None,
    base_delay: float = 1.0,
    sleep: Callable[[float], None] = time.sleep,
    attempts: Optional[List[RetryAttempt]] = None,
) -> T:
    """
    Run ``operation`` up to ``max_attempts`` times and return its first result.

    After attempt ``i`` fails the controller sleeps ``i * base_delay`` seconds (scaled
    by the error kind) before trying again; it never sleeps after the final attempt.
    When every attempt fails, the error from the last attempt is raised. ``give_up``
    may stop the loop early for errors that retrying cannot fix.
    """

    budget = max(1, int(max_attempts))
    attempt = 0

    while True:
        attempt += 1
        try:
            return operation()
        except Exception as exc:
            kind = classify_fetch_error(exc, url)
            final = attempt >= budget or (give_up is not None and give_up(exc))
            delay = 0.0 if final else backoff_seconds(attempt, kind, base_delay)
            if attempts is not None:
                attempts.append(RetryAttempt(attempt=attempt, kind=kind, message=str(exc), delay=delay))
            logger.warning(
                "retry operation=%s attempt=%d/%d kind=%s err=%s",
                label,
                attempt,
                budget,
                kind.value,
                exc,
            )
            if final:
                raise
        sleep(delay)


@dataclass
class RetryPolicy:
    """An attempt budget bound to a call site (scheduled batch vs. interactive)."""

    max_attempts: int = 3
    base_delay: float = 1.0
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False)

    def run(
        self,
        operation: Callable[[], T],
        *,
        label: str = "operation",
        url: Optional[str] = None,
        give_up: Optional[Callable[[BaseException], bool]] = None,
        attempts: Optional[List[RetryAttempt]] = None,
    ) -> T:
        return with_retry(
            self.max_attempts,
            operation,
            label=label,
            url=url,
            give_up=give_up,
            base_delay=self.base_delay,
            sleep=self.sleep,
            attempts=attempts,
        )
