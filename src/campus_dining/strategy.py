"""The acquisition contract shared by every scraping strategy."""

from __future__ import annotations

import datetime as dt
import logging
from typing import Callable, List, Optional, Protocol, TypeVar, runtime_checkable

from .config import PipelineConfig
from .errors import FetchError, as_fetch_error, is_anti_bot
from .models import DayMenu, Location, LocationOperatingTimes, MealService, ServiceMenu
from .retry import RetryPolicy

logger = logging.getLogger(__name__)

T = TypeVar("T")

STRATEGY_NAMES = ("direct_api", "browser_api", "render")


@runtime_checkable
class AcquisitionStrategy(Protocol):
    name: str
    max_concurrency: int

    def fetch_day_menu(self, location: Location, date: dt.date) -> DayMenu: ...

    def fetch_week_hours(self, date: dt.date) -> List[LocationOperatingTimes]: ...


@runtime_checkable
class UnitStrategy(AcquisitionStrategy, Protocol):
    """A strategy that also exposes its (location, meal service) units for parallel runs."""

    def list_services(self, location: Location, date: dt.date) -> List[MealService]: ...

    def fetch_service(self, location: Location, service: MealService, date: dt.date) -> ServiceMenu: ...


class BaseStrategy:
    """
    Shared plumbing for the concrete strategies.

    Subclasses implement ``services_for`` (which meal services a location has on a
    date), ``fetch_service_menu`` (a single attempt at one service) and
    ``fetch_week_hours``. Retrying is applied around those calls, never inside them.
    """

    name = "base"
    max_concurrency = 1

    def __init__(self, config: Optional[PipelineConfig] = None, retry: Optional[RetryPolicy] = None):
        self.config = config or PipelineConfig()
        self.retry = retry or RetryPolicy(max_attempts=self.config.interactive_retries)

    def services_for(self, location: Location, date: dt.date) -> List[MealService]:
        raise NotImplementedError

    def fetch_service_menu(self, location: Location, service: MealService, date: dt.date) -> ServiceMenu:
        raise NotImplementedError

    def fetch_week_hours(self, date: dt.date) -> List[LocationOperatingTimes]:
        raise NotImplementedError

    def give_up(self, error: BaseException) -> bool:
        """Errors that must not be retried with this strategy."""
        return is_anti_bot(error)

    def close(self) -> None:
        """Release any browser or session resources."""

    def __enter__(self) -> "BaseStrategy":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def attempt(self, operation: Callable[[], T], context: str) -> T:
        """One try at a unit. Parser failures and other stray errors become FetchErrors."""
        try:
            return operation()
        except FetchError:
            raise
        except Exception as exc:
            raise as_fetch_error(exc, context) from exc

    def list_services(self, location: Location, date: dt.date) -> List[MealService]:
        label = f"{self.name}:services:{location.name}"
        return self.retry.run(
            lambda: self.attempt(lambda: self.services_for(location, date), label),
            label=label,
            give_up=self.give_up,
        )

    def fetch_service(self, location: Location, service: MealService, date: dt.date) -> ServiceMenu:
        label = f"{self.name}:menu:{location.name}:{service.label}"
        return self.retry.run(
            lambda: self.attempt(lambda: self.fetch_service_menu(location, service, date), label),
            label=label,
            give_up=self.give_up,
        )

    def fetch_day_menu(self, location: Location, date: dt.date) -> DayMenu:
        """Fetch every meal service for one location, tolerating per-service failures."""

        services = self.list_services(location, date)

        day = DayMenu(location=location.name, date=date)
        last_error: Optional[FetchError] = None
        succeeded = 0
        for service in services:
            try:
                menu = self.fetch_service(location, service, date)
            except FetchError as exc:
                logger.warning(
                    "strategy=%s location=%s meal=%s failed after retries: %s",
                    self.name,
                    location.name,
                    service.label,
                    exc,
                )
                last_error = exc
                continue
            succeeded += 1
            day.items.extend(menu.items)
            day.unique_names.extend(menu.unique_names)

        if services and succeeded == 0 and last_error is not None:
            raise last_error

        day.closed = not day.items
        return day


def build_strategy(
    name: str,
    config: Optional[PipelineConfig] = None,
    retry: Optional[RetryPolicy] = None,
) -> BaseStrategy:
    """Instantiate a strategy by its configuration name."""

    key = (name or "").strip().lower().replace("-", "_")
    if key == "direct_api":
        from .api_client import DirectApiStrategy

        return DirectApiStrategy(config, retry)
    if key == "browser_api":
        from .browser_api import BrowserApiStrategy

        return BrowserApiStrategy(config, retry)
    if key == "render":
        from .render import HeuristicRenderStrategy

        return HeuristicRenderStrategy(config, retry)
    raise ValueError(f"unknown strategy {name!r}; choose one of {', '.join(STRATEGY_NAMES)}")
