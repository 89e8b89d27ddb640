"""Heuristic render strategy: load the public menu pages and read items off the text."""

from __future__ import annotations

import datetime as dt
import logging
import re
from typing import List, Optional, Sequence

from .browser import ChromePageLoader, LoadedPage, PageLoader
from .config import PipelineConfig
from .errors import PAYLOAD_ERRORS, AntiBotChallenge, FetchError, FetchErrorKind, as_fetch_error, detect_anti_bot
from .filters import is_ingredient_category, is_ingredient_item
from .hours import parse_hours_tokens
from .locations import MEAL_PERIODS
from .models import Location, LocationOperatingTimes, MealService, MenuItem, ServiceMenu, UniqueItemName
from .retry import RetryPolicy
from .strategy import BaseStrategy

logger = logging.getLogger(__name__)

# Substrings that mark a station header on the rendered page.
CATEGORY_KEYWORDS = (
    "Comfort",
    "Rooted",
    "Fruit",
    "Cereals",
    "Bakery",
    "Beverage",
    "Grill",
    "Halal",
    "Kosher",
    "Flame",
    "Pantry",
)
SKIP_KEYWORDS = ("Click any item", "Menu Item", "Portion", "Calories", "Favorite")
PORTION_UNITS = ("cup", "oz", "slice", "each", "fl", "tbsp", "tsp", "ounce", "piece")
MAX_CALORIES = 2500
MIN_DESCRIPTION_LENGTH = 16

CALORIES_RE = re.compile(r"^\d+$")


def is_category_header(line: str) -> bool:
    if any(skip in line for skip in SKIP_KEYWORDS):
        return False
    return any(keyword in line for keyword in CATEGORY_KEYWORDS)


def has_portion_unit(portion: str) -> bool:
    lowered = portion.lower()
    return any(unit in lowered for unit in PORTION_UNITS)


def parse_rendered_menu(
    lines: Sequence[str],
    *,
    location: str,
    meal: str,
    date: dt.date,
) -> ServiceMenu:
    """
    Recover menu items from the flattened text of a rendered menu page.

    The page prints each dish as ``name, [description], portion, calories``. A bare
    integer under 2500 seen inside a station marks the end of an item: the line
    before it is the portion, and the name sits two or three lines above depending on
    whether a description was printed.
    """

    label = meal.strip().title()
    items: List[MenuItem] = []
    names: List[UniqueItemName] = []
    station = ""

    for idx, line in enumerate(lines):
        if is_category_header(line):
            # Ingredient stations (salad bar, condiments) blank the station so their rows are skipped.
            station = "" if is_ingredient_category(line) else line
            continue

        if not CALORIES_RE.match(line) or not station or idx < 2:
            continue
        calories = int(line)
        if calories >= MAX_CALORIES:
            continue

        portion = lines[idx - 1]
        description = ""
        above = lines[idx - 3] if idx >= 3 else ""
        # Three lines up may be the previous dish's calories or the station header.
        if above and above not in SKIP_KEYWORDS and not CALORIES_RE.match(above) and not is_category_header(above):
            name = above
            description = lines[idx - 2]
        else:
            name = lines[idx - 2]

        if not name or CALORIES_RE.match(name) or any(skip in name for skip in SKIP_KEYWORDS):
            continue
        if is_ingredient_item(name) or not has_portion_unit(portion):
            continue
        if len(description) < MIN_DESCRIPTION_LENGTH or description == name:
            description = ""

        item = MenuItem(
            name=name,
            description=description,
            date=date,
            location=location,
            station=station,
            meal=label,
            portion=portion,
            calories=float(calories),
        )
        items.append(item)
        names.append(UniqueItemName(name=name))

    return ServiceMenu(location=location, meal=label, items=items, unique_names=names, closed=not items)


class HeuristicRenderStrategy(BaseStrategy):
    """
    Last-resort path: renders each location/meal page and parses it positionally.

    Each page gets its own browser, so units can run in parallel up to the
    configured concurrency.
    """

    name = "render"

    def __init__(
        self,
        config: Optional[PipelineConfig] = None,
        retry: Optional[RetryPolicy] = None,
        loader: Optional[PageLoader] = None,
    ):
        super().__init__(config, retry)
        self.loader = loader or ChromePageLoader(self.config, reuse_driver=False)
        self.max_concurrency = self.config.max_concurrency

    def close(self) -> None:
        self.loader.close()

    def menu_url(self, location: Location, service: MealService, date: dt.date) -> str:
        meal_slug = service.slug or service.name.lower()
        return f"{self.config.menu_page_url}/{location.slug}/{date.isoformat()}/{meal_slug}"

    def load_page(self, url: str) -> LoadedPage:
        page = self.loader.load(
            url,
            settle=self.config.render_settle_seconds,
            timeout=self.config.navigation_timeout,
        )
        if detect_anti_bot(page.body_text):
            raise AntiBotChallenge(url, page.body_text)
        return page

    def services_for(self, location: Location, date: dt.date) -> List[MealService]:
        if location.services:
            return list(location.services)
        return [MealService(name=meal.title(), slug=meal) for meal in MEAL_PERIODS]

    def fetch_service_menu(self, location: Location, service: MealService, date: dt.date) -> ServiceMenu:
        url = self.menu_url(location, service, date)
        page = self.load_page(url)
        if not page.lines:
            raise FetchError(FetchErrorKind.MALFORMED_PAYLOAD, url, "rendered page has no text")
        menu = parse_rendered_menu(page.lines, location=location.name, meal=service.label, date=date)
        logger.info(
            "strategy=%s location=%s meal=%s date=%s items=%d",
            self.name,
            location.name,
            service.label,
            date.isoformat(),
            len(menu.items),
        )
        return menu

    def fetch_week_hours(self, date: dt.date) -> List[LocationOperatingTimes]:
        url = self.config.hours_page_url

        def load() -> LoadedPage:
            page = self.loader.load_hours_page(
                url,
                settle=self.config.render_settle_seconds,
                timeout=self.config.navigation_timeout,
            )
            if detect_anti_bot(page.body_text):
                raise AntiBotChallenge(url, page.body_text)
            return page

        page = self.retry.run(load, label=f"{self.name}:hours", url=url, give_up=self.give_up)
        names = [location.name for location in self.config.locations]
        try:
            return parse_hours_tokens(page.lines, names, today=date)
        except PAYLOAD_ERRORS as exc:
            raise as_fetch_error(exc, url) from exc
