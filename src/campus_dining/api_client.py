"""Direct JSON API strategy: plain HTTP calls against the dining provider."""

from __future__ import annotations

import datetime as dt
import logging
from typing import Any, Dict, List, Optional

import requests

from .config import PipelineConfig
from .errors import PAYLOAD_ERRORS, AntiBotChallenge, as_fetch_error, detect_anti_bot
from .hours import parse_weekly_schedule
from .models import Location, LocationOperatingTimes, MealService, ServiceMenu
from .normalizer import normalize_menu_payload
from .retry import RetryPolicy
from .strategy import BaseStrategy

logger = logging.getLogger(__name__)


class DirectApiStrategy(BaseStrategy):
    """
    Calls ``/location/{id}/periods/{service}`` once per configured meal service.

    Cheapest path, but the upstream frequently puts it behind a bot challenge; the
    orchestrator falls back to a browser strategy when that happens.
    """

    name = "direct_api"

    def __init__(
        self,
        config: Optional[PipelineConfig] = None,
        retry: Optional[RetryPolicy] = None,
        session: Optional[requests.Session] = None,
    ):
        super().__init__(config, retry)
        self._owns_session = session is None
        self.session = session or requests.Session()
        self.session.headers.update(
            {
                "User-Agent": self.config.user_agent,
                "Accept": "application/json",
            }
        )

    def close(self) -> None:
        if self._owns_session:
            self.session.close()

    # ------------------------------------------------------------------ #
    # HTTP
    # ------------------------------------------------------------------ #

    def get_json(self, url: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """GET ``url`` and decode its JSON body, translating failures to FetchError."""
        try:
            response = self.session.get(url, params=params, timeout=self.config.request_timeout)
        except requests.RequestException as exc:
            raise as_fetch_error(exc, url) from exc

        body = response.text
        if detect_anti_bot(body):
            raise AntiBotChallenge(url, body)
        try:
            response.raise_for_status()
            return response.json()
        except (requests.RequestException, ValueError) as exc:
            raise as_fetch_error(exc, url, body) from exc

    def menu_url(self, location: Location, service: MealService) -> str:
        return f"{self.config.api_base_url}/location/{location.upstream_id}/periods/{service.id}"

    # ------------------------------------------------------------------ #
    # Strategy contract
    # ------------------------------------------------------------------ #

    def services_for(self, location: Location, date: dt.date) -> List[MealService]:
        return [service for service in location.services if service.id]

    def fetch_service_menu(self, location: Location, service: MealService, date: dt.date) -> ServiceMenu:
        url = self.menu_url(location, service)
        payload = self.get_json(url, params={"platform": 0, "date": date.isoformat()})
        try:
            menu = normalize_menu_payload(payload, location=location.name, meal=service.label, date=date)
        except PAYLOAD_ERRORS as exc:
            raise as_fetch_error(exc, url) from exc
        logger.info(
            "strategy=%s location=%s meal=%s date=%s items=%d closed=%s",
            self.name,
            location.name,
            service.label,
            date.isoformat(),
            len(menu.items),
            menu.closed,
        )
        return menu

    def fetch_week_hours(self, date: dt.date) -> List[LocationOperatingTimes]:
        url = f"{self.config.api_base_url}/locations/weekly_schedule"
        payload = self.retry.run(
            lambda: self.get_json(url, params={"site_id": self.config.site_id, "date": date.isoformat()}),
            label=f"{self.name}:hours",
            url=url,
            give_up=self.give_up,
        )
        try:
            return parse_weekly_schedule(payload)
        except PAYLOAD_ERRORS as exc:
            raise as_fetch_error(exc, url) from exc
