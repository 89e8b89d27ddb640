"""Per-date scrape orchestration and the writes that follow a scrape."""

from __future__ import annotations

import datetime as dt
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from zoneinfo import ZoneInfo

from .config import DEFAULT_TIMEZONE
from .dedup import merge_new_names
from .errors import FetchError, NoDataForAnyLocation, is_anti_bot
from .locations import DEFAULT_LOCATIONS
from .models import (
    Location,
    LocationOperatingTimes,
    MealService,
    MenuItem,
    ScrapeOutcome,
    ServiceMenu,
    UniqueItemName,
)
from .store import MenuStore
from .strategy import AcquisitionStrategy, UnitStrategy
from .window import WindowMaintainer

logger = logging.getLogger(__name__)


class ScrapeState(str, Enum):
    PENDING = "pending"
    PER_LOCATION_FETCH = "per_location_fetch"
    AGGREGATING = "aggregating"
    DONE = "done"
    FAILED = "failed"


@dataclass
class LocationResult:
    """What one location contributed to a date's scrape."""

    location: Location
    items: List[MenuItem] = field(default_factory=list)
    unique_names: List[UniqueItemName] = field(default_factory=list)
    succeeded: bool = False
    error: Optional[FetchError] = None

    @property
    def blocked(self) -> bool:
        return not self.succeeded and self.error is not None and is_anti_bot(self.error)


class Orchestrator:
    """
    Drives a strategy across every location for a date and hands the result to the
    store, the dedup merger and the window maintainer.

    A location that fails after its retries is logged and skipped; the date only
    fails when no location produced a successful fetch. When a fallback strategy is
    configured, locations whose failure was a bot challenge are retried with it.
    """

    def __init__(
        self,
        strategy: AcquisitionStrategy,
        store: MenuStore,
        *,
        window: Optional[WindowMaintainer] = None,
        locations: Optional[Sequence[Location]] = None,
        fallback: Optional[AcquisitionStrategy] = None,
        timezone: str = DEFAULT_TIMEZONE,
        clock: Optional[Callable[[], dt.date]] = None,
    ):
        self.strategy = strategy
        self.store = store
        self.window = window or WindowMaintainer(store)
        self.locations = list(locations or DEFAULT_LOCATIONS)
        self.fallback = fallback
        self.timezone = timezone
        self._clock = clock
        self.state = ScrapeState.PENDING

    def today(self) -> dt.date:
        if self._clock is not None:
            return self._clock()
        return dt.datetime.now(ZoneInfo(self.timezone)).date()

    # ------------------------------------------------------------------ #
    # Fetching
    # ------------------------------------------------------------------ #

    def scrape_date(self, date: dt.date) -> ScrapeOutcome:
        """Scrape every location for ``date``; raises NoDataForAnyLocation on a total wipeout."""

        self.state = ScrapeState.PER_LOCATION_FETCH
        results = self._fetch_locations(self.strategy, self.locations, date)

        if self.fallback is not None:
            blocked = [result.location for result in results if result.blocked]
            if blocked:
                logger.warning(
                    "date=%s strategy=%s blocked_locations=%s; retrying with fallback=%s",
                    date.isoformat(),
                    self.strategy.name,
                    [location.name for location in blocked],
                    self.fallback.name,
                )
                retried = {
                    result.location.name: result
                    for result in self._fetch_locations(self.fallback, blocked, date)
                }
                results = [retried.get(result.location.name, result) for result in results]

        self.state = ScrapeState.AGGREGATING
        outcome = ScrapeOutcome(date=date)
        for result in results:
            if result.succeeded:
                outcome.succeeded.append(result.location.name)
                outcome.items.extend(result.items)
                outcome.unique_names.extend(result.unique_names)
            else:
                outcome.failed.append(result.location.name)

        if not outcome.succeeded:
            self.state = ScrapeState.FAILED
            failures = [f"{result.location.name}: {result.error}" for result in results]
            logger.error("date=%s no successful fetch for any location failures=%d", date.isoformat(), len(failures))
            raise NoDataForAnyLocation(date.isoformat(), failures)

        outcome.all_closed = not outcome.items
        self.state = ScrapeState.DONE
        logger.info(
            "date=%s items=%d succeeded=%d failed=%d all_closed=%s",
            date.isoformat(),
            len(outcome.items),
            len(outcome.succeeded),
            len(outcome.failed),
            outcome.all_closed,
        )
        return outcome

    def _fetch_locations(
        self,
        strategy: AcquisitionStrategy,
        locations: Sequence[Location],
        date: dt.date,
    ) -> List[LocationResult]:
        if strategy.max_concurrency > 1 and isinstance(strategy, UnitStrategy):
            return self._fetch_parallel(strategy, locations, date)
        return [self._fetch_one(strategy, location, date) for location in locations]

    def _fetch_one(self, strategy: AcquisitionStrategy, location: Location, date: dt.date) -> LocationResult:
        result = LocationResult(location=location)
        try:
            day = strategy.fetch_day_menu(location, date)
        except FetchError as exc:
            logger.warning(
                "strategy=%s location=%s date=%s kind=%s skipped: %s",
                strategy.name,
                location.name,
                date.isoformat(),
                exc.kind.value,
                exc,
            )
            result.error = exc
            return result
        result.succeeded = True
        result.items = list(day.items)
        result.unique_names = list(day.unique_names)
        return result

    def _fetch_parallel(
        self,
        strategy: UnitStrategy,
        locations: Sequence[Location],
        date: dt.date,
    ) -> List[LocationResult]:
        """One task per (location, meal service), bounded by the strategy's concurrency."""

        results = [LocationResult(location=location) for location in locations]
        units: List[Tuple[int, MealService]] = []
        for index, result in enumerate(results):
            try:
                services = strategy.list_services(result.location, date)
            except FetchError as exc:
                logger.warning("strategy=%s location=%s services unavailable: %s", strategy.name, result.location.name, exc)
                result.error = exc
                continue
            if not services:
                result.succeeded = True
            units.extend((index, service) for service in services)

        menus: Dict[int, ServiceMenu] = {}
        lock = threading.Lock()

        def run_unit(position: int, index: int, service: MealService) -> None:
            location = results[index].location
            try:
                menu = strategy.fetch_service(location, service, date)
            except FetchError as exc:
                logger.warning(
                    "strategy=%s location=%s meal=%s kind=%s skipped: %s",
                    strategy.name,
                    location.name,
                    service.label,
                    exc.kind.value,
                    exc,
                )
                with lock:
                    results[index].error = exc
                return
            with lock:
                menus[position] = menu
                results[index].succeeded = True

        with ThreadPoolExecutor(max_workers=strategy.max_concurrency) as pool:
            futures = [
                pool.submit(run_unit, position, index, service)
                for position, (index, service) in enumerate(units)
            ]
            for future in futures:
                future.result()

        # Aggregate in unit order so output does not depend on completion order.
        for position, (index, _service) in enumerate(units):
            menu = menus.get(position)
            if menu is None:
                continue
            results[index].items.extend(menu.items)
            results[index].unique_names.extend(menu.unique_names)
        return results

    def scrape_range(self, dates: Iterable[dt.date]) -> List[ScrapeOutcome]:
        """
        Scrape each date in turn. A date with no successful fetch is returned as an
        outcome carrying the error instead of stopping the range.
        """

        outcomes: List[ScrapeOutcome] = []
        for date in dates:
            try:
                outcomes.append(self.scrape_date(date))
            except NoDataForAnyLocation as exc:
                logger.warning("skipping date=%s: %s", date.isoformat(), exc)
                outcomes.append(ScrapeOutcome(date=date, error=str(exc)))
        return outcomes

    # ------------------------------------------------------------------ #
    # Writes
    # ------------------------------------------------------------------ #

    def merge_unique_names(self, candidates: Iterable[UniqueItemName]) -> List[UniqueItemName]:
        fresh = merge_new_names(candidates, self.store.get_known_unique_names())
        if fresh:
            self.store.insert_unique_names(fresh)
        logger.info("unique names inserted=%d", len(fresh))
        return fresh

    def sync_window(self, today: Optional[dt.date] = None) -> List[ScrapeOutcome]:
        """
        Scrape every day of the ±N window around ``today`` and rebuild it in one call.

        Failed days are left out of the rebuild; if no day produced anything the
        previous window is kept and NoDataForAnyLocation is raised.
        """

        today = today or self.today()
        dates = self.window.dates(today)
        outcomes = self.scrape_range(dates)

        days: Dict[int, List[MenuItem]] = {}
        candidates: List[UniqueItemName] = []
        for outcome in outcomes:
            if not outcome.ok:
                continue
            if outcome.items:
                days[self.window.offset_for(outcome.date, today)] = outcome.items
            candidates.extend(outcome.unique_names)

        if not any(outcome.ok for outcome in outcomes):
            failures = [outcome.summary() for outcome in outcomes]
            raise NoDataForAnyLocation(f"{dates[0].isoformat()}..{dates[-1].isoformat()}", failures)

        with self.store.batch():
            self.window.rebuild(days)
            self.merge_unique_names(candidates)
        return outcomes

    def advance_window(self, today: Optional[dt.date] = None) -> ScrapeOutcome:
        """Scrape the new freshest day (today + N) and roll the window forward by one."""

        today = today or self.today()
        target = self.window.date_for(self.window.freshest_offset, today)
        outcome = self.scrape_date(target)
        with self.store.batch():
            self.window.advance(outcome.items)
            self.merge_unique_names(outcome.unique_names)
        return outcome

    def sync_today(self, date: Optional[dt.date] = None) -> ScrapeOutcome:
        """Replace the day-scoped item collection with a fresh scrape of ``date``."""

        date = date or self.today()
        outcome = self.scrape_date(date)
        with self.store.batch():
            self.store.delete_menu_items()
            self.store.insert_menu_items(outcome.items, all_closed=outcome.all_closed)
            self.merge_unique_names(outcome.unique_names)
        return outcome

    def sync_hours(self, date: Optional[dt.date] = None) -> List[LocationOperatingTimes]:
        """Fetch the weekly schedule and fully replace the stored operating hours."""

        date = date or self.today()
        try:
            hours = self.strategy.fetch_week_hours(date)
        except FetchError as exc:
            if self.fallback is None or not is_anti_bot(exc):
                raise
            logger.warning("hours blocked for strategy=%s; retrying with fallback=%s", self.strategy.name, self.fallback.name)
            hours = self.fallback.fetch_week_hours(date)

        if not hours:
            raise NoDataForAnyLocation(f"hours week of {date.isoformat()}")
        with self.store.batch():
            self.store.replace_operating_hours(hours)
        logger.info("operating hours replaced locations=%d", len(hours))
        return hours
