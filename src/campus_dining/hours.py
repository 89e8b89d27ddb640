"""Parsers for weekly operating hours: the JSON schedule and the rendered hours page."""

from __future__ import annotations

import datetime as dt
import logging
import re
from typing import Any, Iterable, List, Mapping, Optional, Sequence

from dateutil import parser as date_parser

from .models import DayHours, DayStatus, LocationOperatingTimes, TimeRange

logger = logging.getLogger(__name__)

CLOCK_RE = re.compile(r"^\s*(\d{1,2})(?::(\d{2}))?\s*([ap])\.?\s*(?:m\.?)?\s*$", re.IGNORECASE)
RANGE_SPLIT_RE = re.compile(r"\s*(?:-|–|—|\bto\b)\s*", re.IGNORECASE)
WEEK_OF_RE = re.compile(r"week of\s+(.+)$", re.IGNORECASE)

# Tokens that mark the start of the next section on the rendered hours page.
NEXT_SECTION_MARKERS = ("Dining", "Norris", "Coffee", "Retail")


# --------------------------------------------------------------------------- #
# Clock helpers
# --------------------------------------------------------------------------- #


def parse_clock(value: str) -> Optional[tuple[int, int]]:
    """Parse "7:00a", "8:00 PM" or "11am" into 24-hour (hour, minute)."""
    match = CLOCK_RE.match(value or "")
    if not match:
        return None
    hour = int(match.group(1))
    minute = int(match.group(2) or 0)
    if not (1 <= hour <= 12 and 0 <= minute <= 59):
        return None
    meridiem = match.group(3).lower()
    if meridiem == "p" and hour != 12:
        hour += 12
    elif meridiem == "a" and hour == 12:
        hour = 0
    return hour, minute


def parse_time_range(value: str) -> Optional[TimeRange]:
    parts = RANGE_SPLIT_RE.split((value or "").strip(), maxsplit=1)
    if len(parts) != 2:
        return None
    start = parse_clock(parts[0])
    end = parse_clock(parts[1])
    if start is None or end is None:
        return None
    return TimeRange(start_hour=start[0], start_minutes=start[1], end_hour=end[0], end_minutes=end[1])


def parse_time_ranges(value: str) -> List[TimeRange]:
    """Parse "7:00 AM - 2:00 PM, 5:00 PM - 8:00 PM" into ordered ranges."""
    ranges: List[TimeRange] = []
    for chunk in (value or "").split(","):
        parsed = parse_time_range(chunk)
        if parsed is not None:
            ranges.append(parsed)
    return ranges


def looks_like_time_range(token: str) -> bool:
    lowered = token.lower()
    return " - " in token and ("a" in lowered or "p" in lowered)


def week_start_for(day: dt.date) -> dt.date:
    """The Sunday that starts ``day``'s week."""
    return day - dt.timedelta(days=(day.weekday() + 1) % 7)


# --------------------------------------------------------------------------- #
# JSON weekly schedule
# --------------------------------------------------------------------------- #


def _parse_iso_date(raw: Any) -> Optional[dt.date]:
    if not raw:
        return None
    try:
        return dt.date.fromisoformat(str(raw)[:10])
    except ValueError:
        return None


def _parse_day(raw: Mapping[str, Any]) -> DayHours:
    blocks = raw.get("hours") or []
    if not isinstance(blocks, list):
        raise ValueError(f"hours must be a list, got {type(blocks).__name__}")
    hours: List[TimeRange] = []
    for block in blocks:
        if not isinstance(block, Mapping):
            raise ValueError(f"malformed hours block {block!r}")
        try:
            hours.append(
                TimeRange(
                    start_hour=int(block.get("start_hour", 0)),
                    start_minutes=int(block.get("start_minutes", 0)),
                    end_hour=int(block.get("end_hour", 0)),
                    end_minutes=int(block.get("end_minutes", 0)),
                )
            )
        except (TypeError, ValueError) as exc:
            raise ValueError(f"malformed hours block {block!r}: {exc}") from exc

    status_text = str(raw.get("status") or "").strip().lower()
    closed = bool(raw.get("closed")) or status_text == DayStatus.CLOSED.value
    return DayHours(
        day=int(raw.get("day", 0)),
        date=_parse_iso_date(raw.get("date")),
        status=DayStatus.CLOSED if closed else DayStatus.OPEN,
        hours=hours,
    )


def parse_weekly_schedule(payload: Mapping[str, Any]) -> List[LocationOperatingTimes]:
    """Convert the upstream weekly-schedule response into LocationOperatingTimes."""

    if not isinstance(payload, Mapping):
        raise ValueError("weekly schedule payload must be an object")
    locations = payload.get("the_locations")
    if locations is None:
        locations = payload.get("locations")
    if not isinstance(locations, list):
        raise ValueError("weekly schedule payload has no location list")

    results: List[LocationOperatingTimes] = []
    for raw in locations:
        if not isinstance(raw, Mapping):
            continue
        name = str(raw.get("name") or "").strip()
        if not name:
            continue
        days = raw.get("week") or []
        if not isinstance(days, list) or not all(isinstance(day, Mapping) for day in days):
            raise ValueError(f"malformed week for location {name!r}")
        week = sorted((_parse_day(day) for day in days), key=lambda entry: entry.day)
        results.append(LocationOperatingTimes(name=name, week=week[:7]))
    return results


# --------------------------------------------------------------------------- #
# Rendered hours page
# --------------------------------------------------------------------------- #


def find_week_start(tokens: Sequence[str], today: dt.date) -> dt.date:
    """
    Read the "week of November 2, 2025" label; fall back to today's week from Sunday.
    """

    for token in tokens:
        match = WEEK_OF_RE.search(token)
        if not match:
            continue
        label = match.group(1).strip()
        try:
            return dt.datetime.strptime(label, "%B %d, %Y").date()
        except ValueError:
            pass
        try:
            return date_parser.parse(label, fuzzy=True).date()
        except (ValueError, OverflowError) as exc:
            logger.warning("could not parse week label %r: %s", label, exc)
        break
    return week_start_for(today)


def _locate(tokens: Sequence[str], location_name: str) -> Optional[int]:
    # The page repeats each location name twice in a row before its week.
    for idx in range(len(tokens) - 1):
        if location_name in tokens[idx] and location_name in tokens[idx + 1]:
            return idx
    return None


def _is_next_section(token: str) -> bool:
    return any(marker in token for marker in NEXT_SECTION_MARKERS)


def parse_hours_tokens(
    tokens: Sequence[str],
    location_names: Iterable[str],
    today: dt.date,
) -> List[LocationOperatingTimes]:
    """
    Rebuild each location's week from the flattened hours page.

    Every day appears as a time range that is usually printed twice; a differing
    second range on the next token is a split service (lunch + dinner). Days that
    cannot be read are reported closed.
    """

    week_start = find_week_start(tokens, today)
    results: List[LocationOperatingTimes] = []

    for location_name in location_names:
        anchor = _locate(tokens, location_name)
        if anchor is None:
            logger.warning("location %s not found on hours page", location_name)
            continue

        full_name = tokens[anchor].strip()
        week: List[DayHours] = []
        idx = anchor + 2

        while len(week) < 7 and idx < len(tokens):
            token = tokens[idx].strip()
            if _is_next_section(token):
                break

            day_date = week_start + dt.timedelta(days=len(week))
            if token.lower() == "closed":
                week.append(DayHours(day=len(week), date=day_date, status=DayStatus.CLOSED))
                idx += 1
                if idx < len(tokens) and tokens[idx].strip().lower() == "closed":
                    idx += 1
                continue

            if not looks_like_time_range(token):
                idx += 1
                continue

            ranges = parse_time_ranges(token)
            idx += 1
            if idx < len(tokens):
                following = tokens[idx].strip()
                if following == token:
                    idx += 1
                elif looks_like_time_range(following):
                    ranges.extend(parse_time_ranges(following))
                    idx += 1
                    if idx < len(tokens) and tokens[idx].strip() == following:
                        idx += 1

            week.append(
                DayHours(
                    day=len(week),
                    date=day_date,
                    status=DayStatus.OPEN if ranges else DayStatus.CLOSED,
                    hours=ranges,
                )
            )

        while len(week) < 7:
            week.append(
                DayHours(
                    day=len(week),
                    date=week_start + dt.timedelta(days=len(week)),
                    status=DayStatus.CLOSED,
                )
            )

        results.append(LocationOperatingTimes(name=full_name, week=week))

    return results
