from __future__ import annotations

import datetime as dt
import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import pytest
import requests

from campus_dining.browser import LoadedPage, flatten_text
from campus_dining.config import PipelineConfig
from campus_dining.models import MenuItem
from campus_dining.retry import RetryPolicy
from campus_dining.store import MemoryStore

FIXTURES = Path(__file__).parent / "fixtures"


def load_fixture(name: str) -> str:
    return (FIXTURES / name).read_text(encoding="utf-8")


def load_json_fixture(name: str) -> Any:
    return json.loads(load_fixture(name))


def make_item(name: str, *, date: dt.date = dt.date(2025, 11, 4), location: str = "Allison", meal: str = "Lunch") -> MenuItem:
    return MenuItem(name=name, date=date, location=location, station="Comfort", meal=meal)


class FakeResponse:
    def __init__(self, payload: Any = None, *, status_code: int = 200, text: Optional[str] = None):
        self.status_code = status_code
        self._payload = payload
        self.text = text if text is not None else json.dumps(payload)

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error", response=self)

    def json(self) -> Any:
        return json.loads(self.text)


Route = Union[FakeResponse, Exception, List[Union[FakeResponse, Exception]]]


class FakeSession:
    """Serves canned responses keyed by URL substring; a list is consumed in order."""

    def __init__(self, routes: Optional[Dict[str, Route]] = None):
        self.routes: Dict[str, Route] = dict(routes or {})
        self.headers: Dict[str, str] = {}
        self.calls: List[Dict[str, Any]] = []
        self.closed = False

    def get(self, url: str, params: Optional[Dict[str, Any]] = None, timeout: Optional[float] = None) -> FakeResponse:
        self.calls.append({"url": url, "params": params, "timeout": timeout})
        for key, route in self.routes.items():
            if key not in url:
                continue
            if isinstance(route, list):
                route = route.pop(0) if len(route) > 1 else route[0]
            if isinstance(route, Exception):
                raise route
            return route
        raise requests.ConnectionError(f"no route for {url}")

    def close(self) -> None:
        self.closed = True


class FakeLoader:
    """PageLoader stand-in: returns pages keyed by URL substring."""

    def __init__(self, pages: Optional[Dict[str, Union[LoadedPage, Exception]]] = None):
        self.pages: Dict[str, Union[LoadedPage, Exception]] = dict(pages or {})
        self.loaded: List[str] = []
        self.hours_loads: List[int] = []
        self.closed = False

    def _lookup(self, url: str) -> LoadedPage:
        self.loaded.append(url)
        for key, page in self.pages.items():
            if key in url:
                if isinstance(page, Exception):
                    raise page
                return LoadedPage(
                    url=url,
                    html=page.html,
                    body_text=page.body_text,
                    pre_text=page.pre_text,
                    lines=page.lines,
                )
        return LoadedPage(url=url)

    def load(self, url: str, *, settle: float, timeout: float) -> LoadedPage:
        return self._lookup(url)

    def load_hours_page(self, url: str, *, settle: float, timeout: float, advance_clicks: int = 3) -> LoadedPage:
        self.hours_loads.append(advance_clicks)
        return self._lookup(url)

    def close(self) -> None:
        self.closed = True


def json_page(payload: Any) -> LoadedPage:
    text = json.dumps(payload)
    return LoadedPage(url="", html=f"<html><body><pre>{text}</pre></body></html>", body_text=text, pre_text=text)


def html_page(html: str, body_text: str = "") -> LoadedPage:
    lines = flatten_text(html)
    return LoadedPage(url="", html=html, body_text=body_text or "\n".join(lines), lines=lines)


@pytest.fixture
def config() -> PipelineConfig:
    return PipelineConfig(
        api_base_url="https://api.example.test/v1",
        site_id="site-1",
        menu_page_url="https://dining.example.test/menu",
        hours_page_url="https://dining.example.test/hours",
        strategy="direct_api",
        fallback_strategy=None,
        window_days=3,
        batch_retries=10,
        interactive_retries=3,
        request_timeout=5.0,
        navigation_timeout=5.0,
        render_settle_seconds=0.0,
        api_settle_seconds=0.0,
        max_concurrency=3,
        timezone="America/Chicago",
        store_path="unused.json",
        chrome_binary=None,
        chromedriver_path=None,
    )


@pytest.fixture
def sleeps() -> List[float]:
    return []


@pytest.fixture
def retry(sleeps: List[float]) -> RetryPolicy:
    return RetryPolicy(max_attempts=3, sleep=sleeps.append)


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()
