"""Store contract used by the pipeline, with in-memory and JSON file implementations."""

from __future__ import annotations

import json
import logging
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Protocol, Sequence, Set, runtime_checkable

from pydantic import ValidationError

from .errors import StoreWriteError
from .models import LocationOperatingTimes, MenuItem, UniqueItemName, WeeklyEntry

logger = logging.getLogger(__name__)


@runtime_checkable
class MenuStore(Protocol):
    """
    What the pipeline needs from persistence.

    Writes inside ``batch()`` must land together or not at all; the pipeline never
    retries a failed write.
    """

    def batch(self) -> Any: ...

    def get_known_unique_names(self) -> Set[str]: ...

    def insert_unique_names(self, names: Sequence[UniqueItemName]) -> None: ...

    def insert_menu_items(self, items: Sequence[MenuItem], *, all_closed: bool = False) -> None: ...

    def delete_menu_items(self) -> None: ...

    def insert_weekly_entries(self, items: Sequence[MenuItem], offset: int) -> None: ...

    def evict_weekly_entries_at_offset(self, offset: int) -> None: ...

    def shift_weekly_offsets(self, delta: int) -> None: ...

    def replace_weekly_entries(self, entries: Sequence[WeeklyEntry]) -> None: ...

    def get_weekly_entries(self) -> List[WeeklyEntry]: ...

    def replace_operating_hours(self, hours: Sequence[LocationOperatingTimes]) -> None: ...


class MemoryStore:
    """Thread-safe in-process store; a failed batch rolls back to its starting state."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._depth = 0
        self.unique_names: List[UniqueItemName] = []
        self.menu_items: List[MenuItem] = []
        self.all_closed: bool = False
        self.weekly_entries: List[WeeklyEntry] = []
        self.operating_hours: List[LocationOperatingTimes] = []

    # ------------------------------------------------------------------ #
    # Transactions
    # ------------------------------------------------------------------ #

    @contextmanager
    def batch(self) -> Iterator["MemoryStore"]:
        with self._lock:
            if self._depth:
                # Nested: the outermost batch owns rollback and commit.
                self._depth += 1
                try:
                    yield self
                finally:
                    self._depth -= 1
                return

            snapshot = self._snapshot()
            self._depth = 1
            try:
                yield self
                self._depth = 0
                self._commit()
            except BaseException:
                self._depth = 0
                self._restore(snapshot)
                raise

    def _snapshot(self) -> Dict[str, Any]:
        return {
            "unique_names": list(self.unique_names),
            "menu_items": list(self.menu_items),
            "all_closed": self.all_closed,
            "weekly_entries": list(self.weekly_entries),
            "operating_hours": list(self.operating_hours),
        }

    def _restore(self, snapshot: Dict[str, Any]) -> None:
        for key, value in snapshot.items():
            setattr(self, key, value)

    def _commit(self) -> None:
        """Hook for persistent subclasses; called after the outermost batch succeeds."""

    # ------------------------------------------------------------------ #
    # Unique names
    # ------------------------------------------------------------------ #

    def get_known_unique_names(self) -> Set[str]:
        with self._lock:
            return {item.name for item in self.unique_names}

    def insert_unique_names(self, names: Sequence[UniqueItemName]) -> None:
        with self.batch():
            known = {item.name for item in self.unique_names}
            for name in names:
                if name.name in known:
                    raise StoreWriteError(f"unique name already stored: {name.name}")
                known.add(name.name)
                self.unique_names.append(name)

    # ------------------------------------------------------------------ #
    # Day-scoped items
    # ------------------------------------------------------------------ #

    def insert_menu_items(self, items: Sequence[MenuItem], *, all_closed: bool = False) -> None:
        with self.batch():
            self.menu_items.extend(items)
            self.all_closed = all_closed

    def delete_menu_items(self) -> None:
        with self.batch():
            self.menu_items = []
            self.all_closed = False

    def get_menu_items(self) -> List[MenuItem]:
        with self._lock:
            return list(self.menu_items)

    # ------------------------------------------------------------------ #
    # Weekly window
    # ------------------------------------------------------------------ #

    def insert_weekly_entries(self, items: Sequence[MenuItem], offset: int) -> None:
        with self.batch():
            self.weekly_entries.extend(WeeklyEntry(item=item, offset=offset) for item in items)

    def evict_weekly_entries_at_offset(self, offset: int) -> None:
        with self.batch():
            self.weekly_entries = [entry for entry in self.weekly_entries if entry.offset != offset]

    def shift_weekly_offsets(self, delta: int) -> None:
        with self.batch():
            self.weekly_entries = [entry.shifted(delta) for entry in self.weekly_entries]

    def replace_weekly_entries(self, entries: Sequence[WeeklyEntry]) -> None:
        with self.batch():
            self.weekly_entries = list(entries)

    def get_weekly_entries(self) -> List[WeeklyEntry]:
        with self._lock:
            return list(self.weekly_entries)

    # ------------------------------------------------------------------ #
    # Operating hours
    # ------------------------------------------------------------------ #

    def replace_operating_hours(self, hours: Sequence[LocationOperatingTimes]) -> None:
        with self.batch():
            self.operating_hours = list(hours)

    def get_operating_hours(self) -> List[LocationOperatingTimes]:
        with self._lock:
            return list(self.operating_hours)


class JsonFileStore(MemoryStore):
    """MemoryStore persisted to a single JSON document after every committed batch."""

    def __init__(self, path: str | Path):
        super().__init__()
        self.path = Path(path)
        self._load()

    def _load(self) -> None:
        if not self.path.exists():
            return
        try:
            raw = self.path.read_text(encoding="utf-8")
            data = json.loads(raw) if raw.strip() else {}
            self.unique_names = [UniqueItemName.model_validate(row) for row in data.get("unique_names", [])]
            self.menu_items = [MenuItem.model_validate(row) for row in data.get("menu_items", [])]
            self.all_closed = bool(data.get("all_closed", False))
            self.weekly_entries = [WeeklyEntry.model_validate(row) for row in data.get("weekly_entries", [])]
            self.operating_hours = [
                LocationOperatingTimes.model_validate(row) for row in data.get("operating_hours", [])
            ]
        except (OSError, ValueError, ValidationError) as exc:
            raise StoreWriteError(f"could not load store file {self.path}: {exc}") from exc
        logger.debug(
            "loaded store path=%s unique=%d weekly=%d",
            self.path,
            len(self.unique_names),
            len(self.weekly_entries),
        )

    def _document(self) -> Dict[str, Any]:
        return {
            "unique_names": [item.model_dump(mode="json") for item in self.unique_names],
            "menu_items": [item.model_dump(mode="json") for item in self.menu_items],
            "all_closed": self.all_closed,
            "weekly_entries": [entry.model_dump(mode="json") for entry in self.weekly_entries],
            "operating_hours": [hours.model_dump(mode="json") for hours in self.operating_hours],
        }

    def _commit(self) -> None:
        payload = json.dumps(self._document(), indent=2, sort_keys=True)
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp = self.path.with_suffix(self.path.suffix + ".tmp")
            tmp.write_text(payload, encoding="utf-8")
            tmp.replace(self.path)
        except OSError as exc:
            raise StoreWriteError(f"could not write store file {self.path}: {exc}") from exc
