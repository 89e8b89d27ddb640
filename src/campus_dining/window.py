"""Rolling ±N day window of menu items, keyed by day offset from today."""

from __future__ import annotations

import datetime as dt
import logging
from collections import defaultdict
from typing import Dict, List, Mapping, Sequence

from .models import MenuItem, WeeklyEntry, WindowSnapshot
from .store import MenuStore

logger = logging.getLogger(__name__)

DEFAULT_HALF_WIDTH = 3


class WindowMaintainer:
    """
    Sole writer of day offsets in the store.

    The window is the contiguous offset range ``[-half_width, +half_width]``. A full
    rebuild replaces every entry in one batch; an advance evicts the oldest day,
    shifts the rest down by one and inserts the new day at the freshest edge.
    """

    def __init__(self, store: MenuStore, half_width: int = DEFAULT_HALF_WIDTH):
        if half_width < 0:
            raise ValueError("half_width must be zero or positive")
        self.store = store
        self.half_width = half_width

    @property
    def oldest_offset(self) -> int:
        return -self.half_width

    @property
    def freshest_offset(self) -> int:
        return self.half_width

    @property
    def offsets(self) -> List[int]:
        return list(range(self.oldest_offset, self.freshest_offset + 1))

    @property
    def size(self) -> int:
        return 2 * self.half_width + 1

    def contains(self, offset: int) -> bool:
        return self.oldest_offset <= offset <= self.freshest_offset

    def offset_for(self, day: dt.date, today: dt.date) -> int:
        return (day - today).days

    def date_for(self, offset: int, today: dt.date) -> dt.date:
        return today + dt.timedelta(days=offset)

    def dates(self, today: dt.date) -> List[dt.date]:
        return [self.date_for(offset, today) for offset in self.offsets]

    # ------------------------------------------------------------------ #
    # Writes
    # ------------------------------------------------------------------ #

    def rebuild(self, days: Mapping[int, Sequence[MenuItem]]) -> int:
        """Replace the live window with ``days`` (offset -> items); returns entries written."""
        outside = sorted(offset for offset in days if not self.contains(offset))
        if outside:
            raise ValueError(f"offsets outside the ±{self.half_width} window: {outside}")

        entries = [
            WeeklyEntry(item=item, offset=offset)
            for offset in sorted(days)
            for item in days[offset]
        ]
        with self.store.batch():
            self.store.replace_weekly_entries(entries)

        skipped = [offset for offset in self.offsets if not days.get(offset)]
        logger.info(
            "window rebuild entries=%d days=%d empty_offsets=%s",
            len(entries),
            self.size - len(skipped),
            skipped,
        )
        return len(entries)

    def advance(self, items: Sequence[MenuItem]) -> int:
        """
        Roll the window forward one day.

        The evict and shift happen even when ``items`` is empty, so the window keeps
        moving on days with nothing scraped; the empty day is simply not inserted.
        """

        with self.store.batch():
            self.store.evict_weekly_entries_at_offset(self.oldest_offset)
            self.store.shift_weekly_offsets(-1)
            if items:
                self.store.insert_weekly_entries(list(items), self.freshest_offset)

        logger.info(
            "window advance evicted_offset=%d inserted=%d at_offset=%d",
            self.oldest_offset,
            len(items),
            self.freshest_offset,
        )
        return len(items)

    # ------------------------------------------------------------------ #
    # Reads
    # ------------------------------------------------------------------ #

    def snapshot(self) -> WindowSnapshot:
        entries = sorted(self.store.get_weekly_entries(), key=lambda entry: entry.offset)
        return WindowSnapshot(half_width=self.half_width, entries=entries)

    def items_by_offset(self) -> Dict[int, List[MenuItem]]:
        grouped: Dict[int, List[MenuItem]] = defaultdict(list)
        for entry in self.store.get_weekly_entries():
            grouped[entry.offset].append(entry.item)
        return dict(grouped)

    def as_date_map(self, today: dt.date) -> Dict[str, List[MenuItem]]:
        """Group the live window by calendar date, the way readers look it up."""
        grouped = self.items_by_offset()
        return {
            self.date_for(offset, today).isoformat(): grouped[offset]
            for offset in sorted(grouped)
        }
