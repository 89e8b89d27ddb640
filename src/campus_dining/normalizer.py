"""Turn upstream menu payloads into MenuItem / UniqueItemName records."""

from __future__ import annotations

import datetime as dt
import logging
import re
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from pydantic import ValidationError

from .filters import is_ingredient_category, is_ingredient_item
from .models import MenuItem, ServiceMenu, UniqueItemName

logger = logging.getLogger(__name__)

NUMBER_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)")

# Upstream nutrient labels (lower-cased prefix) -> MenuItem field.
NUTRIENT_FIELDS: Tuple[Tuple[str, str], ...] = (
    ("calories", "calories"),
    ("protein", "protein"),
    ("total carbohydrate", "carbs"),
    ("carbohydrate", "carbs"),
    ("total fat", "fat"),
    ("fat", "fat"),
)


def parse_number(value: Any) -> Optional[float]:
    """Parse the leading number of a nutrient value ("12g" -> 12.0); None otherwise."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    match = NUMBER_RE.match(str(value))
    if not match:
        return None
    return float(match.group(1))


def parse_nutrients(nutrients: Optional[Iterable[Mapping[str, Any]]]) -> Dict[str, Optional[float]]:
    facts: Dict[str, Optional[float]] = {"calories": None, "protein": None, "carbs": None, "fat": None}
    if nutrients and not isinstance(nutrients, (list, tuple)):
        raise ValueError(f"nutrients must be a list, got {type(nutrients).__name__}")
    for nutrient in nutrients or []:
        if not isinstance(nutrient, Mapping):
            continue
        label = str(nutrient.get("name") or "").strip().lower()
        if not label or " from " in label:
            continue
        for prefix, field_name in NUTRIENT_FIELDS:
            if label.startswith(prefix):
                if facts[field_name] is None:
                    facts[field_name] = parse_number(nutrient.get("value"))
                break
    return facts


def extract_categories(payload: Mapping[str, Any]) -> List[Mapping[str, Any]]:
    """
    Find the category list in a menu payload.

    Two shapes are served upstream: the per-service endpoint nests categories under
    ``menu.periods.categories`` while the menu endpoint uses ``period.categories``.
    """

    if not isinstance(payload, Mapping):
        raise ValueError(f"menu payload must be an object, got {type(payload).__name__}")

    menu = payload.get("menu")
    if isinstance(menu, Mapping):
        periods = menu.get("periods")
        if isinstance(periods, list):
            periods = periods[0] if periods else {}
        if isinstance(periods, Mapping):
            return list(periods.get("categories") or [])
        return []

    period = payload.get("period")
    if isinstance(period, Mapping):
        return list(period.get("categories") or [])

    if isinstance(payload.get("categories"), list):
        return list(payload["categories"])

    return []


def payload_closed(payload: Mapping[str, Any]) -> bool:
    """True when the payload says the location is closed for the service."""
    return bool(payload.get("closed")) if isinstance(payload, Mapping) else False


def build_item(
    raw: Mapping[str, Any],
    *,
    station: str,
    location: str,
    meal: str,
    date: dt.date,
) -> Optional[MenuItem]:
    name = str(raw.get("name") or "").strip()
    if not name:
        return None
    facts = parse_nutrients(raw.get("nutrients"))
    portion = raw.get("portion")
    try:
        return MenuItem(
            name=name,
            description=str(raw.get("desc") or raw.get("description") or "").strip(),
            date=date,
            location=location,
            station=station,
            meal=meal,
            portion=str(portion).strip() if portion else None,
            **facts,
        )
    except ValidationError as exc:
        logger.debug("dropping malformed item name=%r location=%s err=%s", name, location, exc)
        return None


def normalize_categories(
    categories: Iterable[Mapping[str, Any]],
    *,
    location: str,
    meal: str,
    date: dt.date,
) -> ServiceMenu:
    """Apply the ingredient filters and emit one MenuItem and UniqueItemName per dish."""

    items: List[MenuItem] = []
    names: List[UniqueItemName] = []

    for category in categories:
        if not isinstance(category, Mapping):
            continue
        station = str(category.get("name") or "").strip()
        if is_ingredient_category(station):
            logger.debug("skipping ingredient category=%r location=%s", station, location)
            continue
        raw_items = category.get("items") or []
        if not isinstance(raw_items, list):
            raise ValueError(f"items of category {station!r} must be a list, got {type(raw_items).__name__}")
        for raw in raw_items:
            if not isinstance(raw, Mapping) or is_ingredient_item(raw.get("name")):
                continue
            item = build_item(raw, station=station or "Other", location=location, meal=meal, date=date)
            if item is None:
                continue
            items.append(item)
            names.append(UniqueItemName(name=item.name))

    return ServiceMenu(location=location, meal=meal, items=items, unique_names=names, closed=not items)


def normalize_menu_payload(
    payload: Mapping[str, Any],
    *,
    location: str,
    meal: str,
    date: dt.date,
) -> ServiceMenu:
    """Normalize a full upstream response; an explicit closed flag empties the service."""

    categories = extract_categories(payload)
    if payload_closed(payload):
        return ServiceMenu(location=location, meal=meal, closed=True)
    return normalize_categories(categories, location=location, meal=meal, date=date)
