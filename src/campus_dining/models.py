from __future__ import annotations

import datetime as dt
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class DayStatus(str, Enum):
    OPEN = "open"
    CLOSED = "closed"


class MealService(BaseModel):
    """A meal period (breakfast/lunch/dinner) served at a location."""

    model_config = ConfigDict(frozen=True)

    name: str
    id: Optional[str] = None
    slug: Optional[str] = None

    @property
    def label(self) -> str:
        return self.name.strip().title()


class Location(BaseModel):
    """A dining location and the identifiers each acquisition path needs."""

    model_config = ConfigDict(frozen=True)

    name: str
    upstream_id: str
    slug: str
    services: tuple[MealService, ...] = ()


class MenuItem(BaseModel):
    """One dish served at one location, station and meal on one date."""

    model_config = ConfigDict(frozen=True)

    name: str
    description: str = ""
    date: dt.date
    location: str
    station: str
    meal: str
    portion: Optional[str] = None
    calories: Optional[float] = None
    protein: Optional[float] = None
    carbs: Optional[float] = None
    fat: Optional[float] = None

    @field_validator("name", "location", "station", "meal")
    @classmethod
    def require_text(cls, value: str) -> str:  # noqa: D417
        if not value or not value.strip():
            raise ValueError("must not be blank")
        return value


class UniqueItemName(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str


class WeeklyEntry(BaseModel):
    """A MenuItem placed in the rolling window at a day offset (0 = today)."""

    model_config = ConfigDict(frozen=True)

    item: MenuItem
    offset: int

    def shifted(self, delta: int) -> "WeeklyEntry":
        return WeeklyEntry(item=self.item, offset=self.offset + delta)


class TimeRange(BaseModel):
    model_config = ConfigDict(frozen=True)

    start_hour: int = Field(ge=0, le=24)
    start_minutes: int = Field(ge=0, le=59)
    end_hour: int = Field(ge=0, le=24)
    end_minutes: int = Field(ge=0, le=59)

    def display(self) -> str:
        return f"{self.start_hour:02d}:{self.start_minutes:02d}-{self.end_hour:02d}:{self.end_minutes:02d}"


class DayHours(BaseModel):
    day: int = Field(ge=0, le=6)
    date: Optional[dt.date] = None
    status: DayStatus = DayStatus.OPEN
    hours: List[TimeRange] = Field(default_factory=list)


class LocationOperatingTimes(BaseModel):
    name: str
    week: List[DayHours] = Field(default_factory=list)

    @field_validator("week")
    @classmethod
    def validate_week(cls, week: List[DayHours]) -> List[DayHours]:  # noqa: D417
        if len(week) > 7:
            raise ValueError("a week holds at most 7 days")
        days = [entry.day for entry in week]
        if days != sorted(days):
            raise ValueError("days must be ordered by day index")
        return week


class ServiceMenu(BaseModel):
    """Normalized output of one (location, meal-service) fetch."""

    location: str
    meal: str
    items: List[MenuItem] = Field(default_factory=list)
    unique_names: List[UniqueItemName] = Field(default_factory=list)
    closed: bool = False


class DayMenu(BaseModel):
    """Everything one location served on one date across its meal services."""

    location: str
    date: dt.date
    items: List[MenuItem] = Field(default_factory=list)
    unique_names: List[UniqueItemName] = Field(default_factory=list)
    closed: bool = True


class ScrapeOutcome(BaseModel):
    date: dt.date
    items: List[MenuItem] = Field(default_factory=list)
    unique_names: List[UniqueItemName] = Field(default_factory=list)
    all_closed: bool = True
    succeeded: List[str] = Field(default_factory=list)
    failed: List[str] = Field(default_factory=list)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def summary(self) -> str:
        status = "all closed" if self.all_closed else f"{len(self.items)} items"
        return (
            f"{self.date.isoformat()}: {status}; "
            f"{len(self.succeeded)} units ok, {len(self.failed)} failed"
        )


class WindowSnapshot(BaseModel):
    """Read view of the live window, used by the CLI and tests."""

    half_width: int
    entries: List[WeeklyEntry] = Field(default_factory=list)

    @property
    def offsets(self) -> List[int]:
        return sorted({entry.offset for entry in self.entries})
