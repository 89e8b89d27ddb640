from __future__ import annotations

import argparse
import datetime as dt
import logging
import time as time_module
from contextlib import ExitStack
from dataclasses import replace
from typing import Callable, List, Optional, Sequence

from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .config import PipelineConfig
from .errors import DiningError
from .locations import select_locations
from .models import DayStatus, LocationOperatingTimes, ScrapeOutcome
from .orchestrator import Orchestrator
from .retry import RetryPolicy
from .store import JsonFileStore
from .strategy import STRATEGY_NAMES, build_strategy
from .window import WindowMaintainer

logger = logging.getLogger(__name__)

DAY_NAMES = ("Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat")


def configure_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(show_path=False)],
        force=True,
    )
    # selenium and urllib3 are chatty at DEBUG.
    for noisy in ("selenium", "urllib3", "WDM"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def parse_date_arg(value: str) -> dt.date:
    try:
        return dt.date.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError("Date must be in YYYY-MM-DD format") from None


def parse_daily_time(value: str) -> dt.time:
    """Parse a HH:MM string into a time object."""
    try:
        hour_str, minute_str = value.split(":", 1)
        hour = int(hour_str)
        minute = int(minute_str)
    except (ValueError, AttributeError):
        raise argparse.ArgumentTypeError("Time must be in HH:MM format") from None

    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        raise argparse.ArgumentTypeError("Hours must be 0-23 and minutes 0-59")

    return dt.time(hour=hour, minute=minute)


def seconds_until(target: dt.time, tz: ZoneInfo, now: Optional[dt.datetime] = None) -> float:
    """Compute seconds until the next occurrence of target time in the given timezone."""
    now = now or dt.datetime.now(tz)
    today_target = dt.datetime.combine(now.date(), target, tzinfo=tz)
    if today_target <= now:
        today_target += dt.timedelta(days=1)
    return (today_target - now).total_seconds()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="campus-dining",
        description="Scrape campus dining menus and hours into the rolling menu window.",
    )
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--strategy",
        choices=STRATEGY_NAMES,
        default=None,
        help="Acquisition strategy (default: DINING_STRATEGY or browser_api)",
    )
    common.add_argument(
        "--fallback-strategy",
        choices=STRATEGY_NAMES,
        default=None,
        help="Strategy to retry bot-blocked locations with",
    )
    common.add_argument("--retries", type=int, default=None, help="Attempts per request (overrides the configured budget)")
    common.add_argument("--store", default=None, help="Path to the JSON store (default: DINING_STORE_PATH)")
    common.add_argument(
        "--location",
        action="append",
        dest="locations",
        default=None,
        help="Limit the scrape to a location (repeatable)",
    )
    common.add_argument("-v", "--verbose", action="store_true", help="Log at DEBUG level")

    sub = parser.add_subparsers(dest="command", required=True)

    window = sub.add_parser("window", parents=[common], help="Scrape the ±N window and rebuild it")
    window.add_argument("--date", type=parse_date_arg, default=None, help="Centre date (default: today)")
    window.add_argument("--window", type=int, default=None, help="Half-width N of the window (default: DINING_WINDOW_DAYS)")

    advance = sub.add_parser("advance", parents=[common], help="Scrape today+N and roll the window forward one day")
    advance.add_argument("--date", type=parse_date_arg, default=None, help="The new 'today' (default: today)")

    today = sub.add_parser("today", parents=[common], help="Replace the daily item collection")
    today.add_argument("--date", type=parse_date_arg, default=None, help="Date to scrape (default: today)")

    hours = sub.add_parser("hours", parents=[common], help="Replace the weekly operating hours")
    hours.add_argument("--date", type=parse_date_arg, default=None, help="Any date in the wanted week (default: today)")

    daily = sub.add_parser("daily", parents=[common], help="Advance the window and refresh hours once a day")
    daily.add_argument(
        "--time",
        type=parse_daily_time,
        default=parse_daily_time("00:01"),
        help="Local time for the daily refresh in HH:MM (24h) format (default: 00:01)",
    )
    return parser


def resolve_config(opts: argparse.Namespace) -> PipelineConfig:
    config = PipelineConfig()
    overrides = {}
    if opts.strategy:
        overrides["strategy"] = opts.strategy
    if opts.fallback_strategy:
        overrides["fallback_strategy"] = opts.fallback_strategy
    if opts.store:
        overrides["store_path"] = opts.store
    if getattr(opts, "window", None) is not None:
        overrides["window_days"] = opts.window
    if opts.locations:
        overrides["locations"] = tuple(select_locations(opts.locations, config.locations))
    return replace(config, **overrides) if overrides else config


def build_orchestrator(
    config: PipelineConfig,
    stack: ExitStack,
    *,
    batch: bool,
    retries: Optional[int] = None,
) -> Orchestrator:
    """Wire store, window and strategies; scheduled runs get the larger retry budget."""

    if retries is not None:
        attempts = retries
    else:
        attempts = config.batch_retries if batch else config.interactive_retries
    policy = RetryPolicy(max_attempts=attempts)
    strategy = stack.enter_context(build_strategy(config.strategy, config, policy))
    fallback = None
    if config.fallback_strategy:
        fallback = stack.enter_context(build_strategy(config.fallback_strategy, config, policy))

    store = JsonFileStore(config.store_path)
    return Orchestrator(
        strategy,
        store,
        window=WindowMaintainer(store, config.window_days),
        locations=config.locations,
        fallback=fallback,
        timezone=config.timezone,
    )


# --------------------------------------------------------------------------- #
# Rendering
# --------------------------------------------------------------------------- #


def render_outcomes(console: Console, outcomes: Sequence[ScrapeOutcome], today: Optional[dt.date] = None) -> None:
    table = Table(title="Scrape summary")
    table.add_column("Date")
    if today is not None:
        table.add_column("Offset", justify="right")
    table.add_column("Items", justify="right")
    table.add_column("Locations ok")
    table.add_column("Failed")
    table.add_column("Status")

    for outcome in outcomes:
        if not outcome.ok:
            status = "[red]failed[/]"
        elif outcome.all_closed:
            status = "[yellow]all closed[/]"
        else:
            status = "[green]ok[/]"
        row: List[str] = [outcome.date.isoformat()]
        if today is not None:
            row.append(f"{(outcome.date - today).days:+d}")
        row.extend(
            [
                str(len(outcome.items)),
                ", ".join(outcome.succeeded) or "-",
                ", ".join(outcome.failed) or "-",
                status,
            ]
        )
        table.add_row(*row)
    console.print(table)


def render_hours(console: Console, hours: Sequence[LocationOperatingTimes]) -> None:
    table = Table(title="Operating hours")
    table.add_column("Location")
    for name in DAY_NAMES:
        table.add_column(name)
    for location in hours:
        cells = ["-"] * 7
        for day in location.week:
            if day.status is DayStatus.CLOSED or not day.hours:
                cells[day.day] = "closed"
            else:
                cells[day.day] = "\n".join(block.display() for block in day.hours)
        table.add_row(location.name, *cells)
    console.print(table)


# --------------------------------------------------------------------------- #
# Commands
# --------------------------------------------------------------------------- #


def run_daily(
    orchestrator: Orchestrator,
    target_time: dt.time,
    tz_name: str,
    console: Console,
    *,
    sleep: Callable[[float], None] = time_module.sleep,
    runs: Optional[int] = None,
) -> None:
    """Advance the window and refresh hours once per day at the requested time."""
    try:
        tz = ZoneInfo(tz_name)
    except ZoneInfoNotFoundError as exc:
        raise SystemExit(f"Unknown timezone '{tz_name}'.") from exc

    completed = 0
    while runs is None or completed < runs:
        wait_seconds = seconds_until(target_time, tz)
        next_run = dt.datetime.now(tz) + dt.timedelta(seconds=wait_seconds)
        console.print(f"Next scrape scheduled for {next_run.isoformat(timespec='minutes')}")
        sleep(wait_seconds)
        try:
            outcome = orchestrator.advance_window()
            orchestrator.sync_hours()
            console.print(f"[green]{outcome.summary()}[/]")
        except DiningError as exc:
            logger.error("daily refresh failed: %s", exc)
            console.print(f"[red]Daily refresh failed: {exc}[/]")
        completed += 1


def main(args: list[str] | None = None) -> int:
    load_dotenv()
    parser = build_parser()
    opts = parser.parse_args(args=args)
    configure_logging(opts.verbose)
    console = Console()

    try:
        config = resolve_config(opts)
    except ValueError as exc:
        parser.error(str(exc))

    try:
        with ExitStack() as stack:
            orchestrator = build_orchestrator(
                config,
                stack,
                batch=opts.command == "daily",
                retries=opts.retries,
            )
            if opts.command == "window":
                today = opts.date or orchestrator.today()
                outcomes = orchestrator.sync_window(today)
                render_outcomes(console, outcomes, today=today)
            elif opts.command == "advance":
                outcome = orchestrator.advance_window(opts.date)
                render_outcomes(console, [outcome])
            elif opts.command == "today":
                outcome = orchestrator.sync_today(opts.date)
                render_outcomes(console, [outcome])
            elif opts.command == "hours":
                render_hours(console, orchestrator.sync_hours(opts.date))
            elif opts.command == "daily":
                run_daily(orchestrator, opts.time, config.timezone, console)
    except DiningError as exc:
        console.print(f"[red]{exc}[/]")
        return 1
    except KeyboardInterrupt:
        console.print("[yellow]Interrupted[/]")
        return 130
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
