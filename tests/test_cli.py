from __future__ import annotations

import argparse
import datetime as dt
import json
from zoneinfo import ZoneInfo

import pytest
from rich.console import Console

from campus_dining import cli
from campus_dining.errors import FetchError, FetchErrorKind
from campus_dining.models import DayHours, DayMenu, DayStatus, LocationOperatingTimes, TimeRange, UniqueItemName
from campus_dining.orchestrator import Orchestrator
from campus_dining.store import MemoryStore

from conftest import make_item


class StubStrategy:
    name = "stub"
    max_concurrency = 1

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.closed = False

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.closed = True

    def fetch_day_menu(self, location, date):
        if self.fail:
            raise FetchError(FetchErrorKind.NETWORK, "https://api.test", "down")
        item = make_item(f"{location.name} Special", date=date, location=location.name)
        return DayMenu(location=location.name, date=date, items=[item], unique_names=[UniqueItemName(name=item.name)], closed=False)

    def fetch_week_hours(self, date):
        return [
            LocationOperatingTimes(
                name="Allison Dining Commons",
                week=[
                    DayHours(day=0, status=DayStatus.CLOSED),
                    DayHours(day=1, hours=[TimeRange(start_hour=7, start_minutes=0, end_hour=20, end_minutes=0)]),
                ],
            )
        ]


@pytest.fixture
def stub(monkeypatch):
    created = []

    def factory(name, config=None, retry=None):
        strategy = StubStrategy(fail=getattr(factory, "fail", False))
        strategy.retry = retry
        created.append((name, strategy))
        return strategy

    monkeypatch.setattr(cli, "build_strategy", factory)
    monkeypatch.delenv("DINING_FALLBACK_STRATEGY", raising=False)
    factory.created = created
    return factory


def test_today_writes_daily_items(tmp_path, stub):
    store_path = tmp_path / "store.json"

    code = cli.main(["today", "--store", str(store_path), "--date", "2025-11-04", "--strategy", "direct_api"])

    assert code == 0
    document = json.loads(store_path.read_text())
    assert len(document["menu_items"]) == 5
    assert document["all_closed"] is False
    name, strategy = stub.created[0]
    assert name == "direct_api"
    assert strategy.closed
    # Demand-triggered commands get the interactive budget.
    assert strategy.retry.max_attempts == 3


def test_window_rebuilds_requested_width(tmp_path, stub):
    store_path = tmp_path / "store.json"
    code = cli.main(["window", "--store", str(store_path), "--date", "2025-11-04", "--window", "1", "--location", "Elder"])
    assert code == 0
    offsets = sorted(entry["offset"] for entry in json.loads(store_path.read_text())["weekly_entries"])
    assert offsets == [-1, 0, 1]


def test_retries_flag_overrides_budget(tmp_path, stub):
    cli.main(["hours", "--store", str(tmp_path / "s.json"), "--retries", "7"])
    assert stub.created[0][1].retry.max_attempts == 7


def test_retries_flag_zero_is_not_treated_as_unset(tmp_path, stub):
    cli.main(["hours", "--store", str(tmp_path / "s.json"), "--retries", "0"])
    # The retry controller still makes one attempt with a zero budget.
    assert stub.created[0][1].retry.max_attempts == 0


def test_hours_prints_table(tmp_path, stub, capsys, monkeypatch):
    monkeypatch.setenv("COLUMNS", "200")
    assert cli.main(["hours", "--store", str(tmp_path / "s.json")]) == 0
    out = capsys.readouterr().out
    assert "Operating hours" in out
    assert "07:00-20:00" in out
    assert "Allison Dining Commons" in out


def test_total_failure_exits_non_zero(tmp_path, stub, capsys):
    stub.fail = True
    store_path = tmp_path / "store.json"
    assert cli.main(["advance", "--store", str(store_path), "--date", "2025-11-04"]) == 1
    assert "no successful fetch" in capsys.readouterr().out


def test_unknown_location_is_a_usage_error(tmp_path, stub):
    with pytest.raises(SystemExit) as info:
        cli.main(["today", "--store", str(tmp_path / "s.json"), "--location", "Nowhere"])
    assert info.value.code == 2


def test_bad_date_is_a_usage_error():
    with pytest.raises(SystemExit):
        cli.main(["today", "--date", "11/04/2025"])


def test_parse_daily_time():
    assert cli.parse_daily_time("06:30") == dt.time(6, 30)
    with pytest.raises(argparse.ArgumentTypeError):
        cli.parse_daily_time("25:00")
    with pytest.raises(argparse.ArgumentTypeError):
        cli.parse_daily_time("noon")


def test_seconds_until_rolls_to_tomorrow():
    tz = ZoneInfo("America/Chicago")
    now = dt.datetime(2025, 11, 4, 12, 0, tzinfo=tz)
    assert cli.seconds_until(dt.time(13, 0), tz, now=now) == 3600
    assert cli.seconds_until(dt.time(11, 0), tz, now=now) == 23 * 3600


def test_run_daily_advances_and_refreshes_hours():
    store = MemoryStore()
    orchestrator = Orchestrator(StubStrategy(), store, clock=lambda: dt.date(2025, 11, 4))
    waits = []

    cli.run_daily(orchestrator, dt.time(0, 1), "America/Chicago", Console(record=True), sleep=waits.append, runs=2)

    assert len(waits) == 2
    # The clock is frozen, so the second run shifts the first day down one offset.
    assert {entry.offset for entry in store.get_weekly_entries()} == {2, 3}
    assert [hours.name for hours in store.get_operating_hours()] == ["Allison Dining Commons"]


def test_run_daily_survives_a_failed_day():
    orchestrator = Orchestrator(StubStrategy(fail=True), MemoryStore(), clock=lambda: dt.date(2025, 11, 4))
    console = Console(record=True)
    cli.run_daily(orchestrator, dt.time(0, 1), "America/Chicago", console, sleep=lambda _: None, runs=1)
    assert "Daily refresh failed" in console.export_text()
