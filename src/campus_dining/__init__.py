"""Campus dining menu and operating-hours acquisition pipeline."""

from .config import PipelineConfig
from .dedup import merge_new_names
from .errors import (
    AntiBotChallenge,
    DiningError,
    FetchError,
    FetchErrorKind,
    NoDataForAnyLocation,
    StoreWriteError,
    classify_fetch_error,
)
from .filters import is_ingredient_category, is_ingredient_item
from .models import (
    DayHours,
    LocationOperatingTimes,
    MenuItem,
    ScrapeOutcome,
    UniqueItemName,
    WeeklyEntry,
)
from .orchestrator import Orchestrator, ScrapeState
from .retry import RetryPolicy, with_retry
from .store import JsonFileStore, MemoryStore, MenuStore
from .strategy import AcquisitionStrategy, build_strategy
from .window import WindowMaintainer

__all__ = [
    "AcquisitionStrategy",
    "AntiBotChallenge",
    "DayHours",
    "DiningError",
    "FetchError",
    "FetchErrorKind",
    "JsonFileStore",
    "LocationOperatingTimes",
    "MemoryStore",
    "MenuItem",
    "MenuStore",
    "NoDataForAnyLocation",
    "Orchestrator",
    "PipelineConfig",
    "RetryPolicy",
    "ScrapeOutcome",
    "ScrapeState",
    "StoreWriteError",
    "UniqueItemName",
    "WeeklyEntry",
    "WindowMaintainer",
    "build_strategy",
    "classify_fetch_error",
    "is_ingredient_category",
    "is_ingredient_item",
    "merge_new_names",
    "with_retry",
]
