"""Browser-backed API strategy: the same JSON endpoints, opened in a real browser tab."""

from __future__ import annotations

import datetime as dt
import json
import logging
from typing import Any, List, Optional

from .browser import ChromePageLoader, LoadedPage, PageLoader
from .config import PipelineConfig
from .errors import PAYLOAD_ERRORS, AntiBotChallenge, FetchError, FetchErrorKind, detect_anti_bot
from .hours import parse_weekly_schedule
from .models import Location, LocationOperatingTimes, MealService, ServiceMenu
from .normalizer import normalize_menu_payload
from .retry import RetryPolicy
from .strategy import BaseStrategy

logger = logging.getLogger(__name__)


class BrowserApiStrategy(BaseStrategy):
    """
    Opens the provider's API URLs in headless Chrome and reads the JSON that the
    browser renders inside ``<pre>``. Passing the bot challenge as a real browser is
    the point; the page is checked for challenge markers before any decoding.
    """

    name = "browser_api"

    def __init__(
        self,
        config: Optional[PipelineConfig] = None,
        retry: Optional[RetryPolicy] = None,
        loader: Optional[PageLoader] = None,
    ):
        super().__init__(config, retry)
        self.loader = loader or ChromePageLoader(self.config, reuse_driver=True)

    def close(self) -> None:
        self.loader.close()

    def fetch_json(self, url: str) -> Any:
        page = self.loader.load(
            url,
            settle=self.config.api_settle_seconds,
            timeout=self.config.navigation_timeout,
        )
        return decode_page_json(page)

    # ------------------------------------------------------------------ #
    # Strategy contract
    # ------------------------------------------------------------------ #

    def services_for(self, location: Location, date: dt.date) -> List[MealService]:
        """Discover which meal periods the location serves on ``date``."""
        url = f"{self.config.api_base_url}/locations/{location.upstream_id}/periods/?date={date.isoformat()}"
        payload = self.fetch_json(url)
        periods = payload.get("periods") if isinstance(payload, dict) else None
        if not isinstance(periods, list):
            raise FetchError(FetchErrorKind.MALFORMED_PAYLOAD, url, "periods list missing")

        services: List[MealService] = []
        for raw in periods:
            if not isinstance(raw, dict) or not raw.get("id") or not str(raw.get("name") or "").strip():
                continue
            services.append(MealService(name=str(raw["name"]), id=str(raw["id"]), slug=raw.get("slug")))
        logger.info(
            "strategy=%s location=%s date=%s periods=%s",
            self.name,
            location.name,
            date.isoformat(),
            [service.label for service in services],
        )
        return services

    def fetch_service_menu(self, location: Location, service: MealService, date: dt.date) -> ServiceMenu:
        url = (
            f"{self.config.api_base_url}/locations/{location.upstream_id}/menu"
            f"?date={date.isoformat()}&period={service.id}"
        )
        payload = self.fetch_json(url)
        try:
            menu = normalize_menu_payload(payload, location=location.name, meal=service.label, date=date)
        except PAYLOAD_ERRORS as exc:
            raise FetchError(FetchErrorKind.MALFORMED_PAYLOAD, url, str(exc)) from exc
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
        url = (
            f"{self.config.api_base_url}/locations/weekly_schedule"
            f"?site_id={self.config.site_id}&date={date.isoformat()}"
        )
        payload = self.retry.run(lambda: self.fetch_json(url), label=f"{self.name}:hours", url=url, give_up=self.give_up)
        try:
            return parse_weekly_schedule(payload)
        except PAYLOAD_ERRORS as exc:
            raise FetchError(FetchErrorKind.MALFORMED_PAYLOAD, url, str(exc)) from exc


def decode_page_json(page: LoadedPage) -> Any:
    """Check a loaded API page for a bot challenge, then decode its ``<pre>`` JSON."""
    if detect_anti_bot(page.body_text):
        raise AntiBotChallenge(page.url, page.body_text)
    if page.pre_text is None:
        raise FetchError(FetchErrorKind.MALFORMED_PAYLOAD, page.url, "missing <pre> json payload")
    try:
        return json.loads(page.pre_text)
    except json.JSONDecodeError as exc:
        raise FetchError(FetchErrorKind.MALFORMED_PAYLOAD, page.url, page.pre_text) from exc
