"""Dining locations served by the upstream provider and their identifiers."""

from __future__ import annotations

from typing import Iterable, List, Optional, Tuple

from .models import Location, MealService

# Meal slugs used by the rendered menu pages.
MEAL_PERIODS: Tuple[str, ...] = ("breakfast", "lunch", "dinner")


def _services(*pairs: Tuple[str, str]) -> Tuple[MealService, ...]:
    return tuple(MealService(name=name, id=service_id, slug=name.lower()) for name, service_id in pairs)


DEFAULT_LOCATIONS: Tuple[Location, ...] = (
    Location(
        name="Allison",
        upstream_id="5b33ae291178e909d807593d",
        slug="allison-dining-commons",
        services=_services(
            ("Breakfast", "66e1fc2de45d43074be3a0e5"),
            ("Lunch", "66e1fc2de45d43074be3a0fb"),
            ("Dinner", "66e1fc2de45d43074be3a111"),
        ),
    ),
    Location(
        name="Sargent",
        upstream_id="5b33ae291178e909d807593e",
        slug="sargent-dining-commons",
        services=_services(
            ("Breakfast", "66e97bac351d530685467360"),
            ("Lunch", "66e97bac351d53068546737e"),
            ("Dinner", "66e97bac351d53068546736f"),
        ),
    ),
    Location(
        name="Plex West",
        upstream_id="5bae7de3f3eeb60c7d3854ba",
        slug="foster-walker-plex-west",
        services=_services(
            ("Breakfast", "66e99466351d5306ad498440"),
            ("Lunch", "66e99466351d5306ad498450"),
            ("Dinner", "66e99466351d5306ad49845b"),
        ),
    ),
    Location(
        name="Plex East",
        upstream_id="5bae7ee9f3eeb60cb4f8f3af",
        slug="foster-walker-plex-east",
        services=_services(
            ("Lunch", "66e99466351d5306ad498467"),
            ("Dinner", "66e99466351d5306ad498461"),
        ),
    ),
    Location(
        name="Elder",
        upstream_id="5d113c924198d409c34fdf5c",
        slug="elder-dining-commons",
        services=_services(
            ("Breakfast", "66e43426c625af07233bfef2"),
            ("Lunch", "66e43426c625af07233bff01"),
            ("Dinner", "66e85380351d5306adcbcbcd"),
        ),
    ),
)


def find_location(name: str, locations: Iterable[Location] = DEFAULT_LOCATIONS) -> Optional[Location]:
    wanted = name.strip().lower()
    for location in locations:
        if location.name.lower() == wanted or location.slug == wanted:
            return location
    return None


def select_locations(
    names: Optional[Iterable[str]],
    locations: Iterable[Location] = DEFAULT_LOCATIONS,
) -> List[Location]:
    """Resolve location names (or slugs); None selects every location."""
    pool = list(locations)
    if not names:
        return pool
    selected: List[Location] = []
    unknown: List[str] = []
    for name in names:
        match = find_location(name, pool)
        if match is None:
            unknown.append(name)
        elif match not in selected:
            selected.append(match)
    if unknown:
        raise ValueError(f"unknown dining location(s): {', '.join(unknown)}")
    return selected
