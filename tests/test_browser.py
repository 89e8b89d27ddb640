from __future__ import annotations

from typing import List, Optional

import pytest
from selenium.common.exceptions import ElementClickInterceptedException, TimeoutException, WebDriverException
from selenium.webdriver.common.by import By

from campus_dining import browser
from campus_dining.browser import ChromePageLoader, build_chrome_options, flatten_text, resolve_chrome_path
from campus_dining.errors import FetchError, FetchErrorKind


class FakeElement:
    def __init__(self, text: str = "", on_click=None):
        self.text = text
        self._on_click = on_click

    def click(self) -> None:
        if self._on_click is not None:
            self._on_click()


class FakeSwitch:
    def __init__(self, driver: "FakeDriver"):
        self.driver = driver

    def new_window(self, kind: str) -> None:
        self.driver.opened_tabs += 1

    def window(self, handle: str) -> None:
        self.driver.active = handle


class FakeDriver:
    def __init__(
        self,
        html: str = "<html><body><pre>{}</pre></body></html>",
        body: str = "{}",
        pre: Optional[str] = "{}",
        error: Optional[Exception] = None,
        next_clicks_available: int = 0,
        click_error: Optional[Exception] = None,
    ):
        self.page_source = html
        self.body = body
        self.pre = pre
        self.error = error
        self.next_clicks_available = next_clicks_available
        self.click_error = click_error
        self.clicks = 0
        self.visited: List[str] = []
        self.opened_tabs = 0
        self.closed_tabs = 0
        self.quit_calls = 0
        self.timeouts: List[float] = []
        self.current_window_handle = "home"
        self.active = "home"
        self.switch_to = FakeSwitch(self)

    def set_page_load_timeout(self, seconds: float) -> None:
        self.timeouts.append(seconds)

    def get(self, url: str) -> None:
        self.visited.append(url)
        if self.error is not None:
            raise self.error

    def find_element(self, by: str, value: str) -> FakeElement:
        return FakeElement(self.body)

    def find_elements(self, by: str, value: str) -> List[FakeElement]:
        if by == By.TAG_NAME and value == "pre":
            return [FakeElement(self.pre)] if self.pre is not None else []
        if by == By.CSS_SELECTOR and self.clicks < self.next_clicks_available:
            return [FakeElement(on_click=self._click)]
        return []

    def _click(self) -> None:
        if self.click_error is not None:
            raise self.click_error
        self.clicks += 1

    def close(self) -> None:
        self.closed_tabs += 1

    def quit(self) -> None:
        self.quit_calls += 1


def loader_for(driver: FakeDriver, config, sleeps=None, **kwargs) -> ChromePageLoader:
    factory_calls = []

    def factory(cfg):
        factory_calls.append(cfg)
        return driver

    loader = ChromePageLoader(config, driver_factory=factory, sleep=(sleeps.append if sleeps is not None else lambda _: None), **kwargs)
    loader.factory_calls = factory_calls
    return loader


def test_shared_driver_opens_and_closes_a_tab_per_request(config):
    driver = FakeDriver(pre='{"periods": []}')
    loader = loader_for(driver, config)

    first = loader.load("https://api.test/a", settle=1.2, timeout=20)
    loader.load("https://api.test/b", settle=1.2, timeout=20)

    assert first.pre_text == '{"periods": []}'
    assert len(loader.factory_calls) == 1
    assert driver.opened_tabs == 2
    assert driver.closed_tabs == 2
    assert driver.active == "home"
    assert driver.timeouts[-1] == 20

    loader.close()
    assert driver.quit_calls == 1


def test_per_request_driver_is_quit_each_time(config):
    driver = FakeDriver()
    loader = loader_for(driver, config, reuse_driver=False)
    loader.load("https://x.test/1", settle=0, timeout=5)
    loader.load("https://x.test/2", settle=0, timeout=5)
    assert len(loader.factory_calls) == 2
    assert driver.quit_calls == 2
    assert driver.opened_tabs == 0


def test_settle_wait_and_rendered_lines(config):
    sleeps = []
    html = "<html><body><h1>Comfort</h1><p>Pancakes</p></body></html>"
    driver = FakeDriver(html=html, body="Comfort\nPancakes", pre=None)
    page = loader_for(driver, config, sleeps).load("https://x.test", settle=8, timeout=25)
    assert sleeps == [8]
    assert page.lines == ["Comfort", "Pancakes"]
    assert page.pre_text is None


def test_navigation_timeout_becomes_fetch_error_and_tab_is_torn_down(config):
    driver = FakeDriver(error=TimeoutException("timed out receiving message from renderer"))
    loader = loader_for(driver, config)
    with pytest.raises(FetchError) as info:
        loader.load("https://x.test", settle=0, timeout=5)
    assert info.value.kind is FetchErrorKind.NAVIGATION_TIMEOUT
    assert driver.closed_tabs == 1


def test_challenge_text_on_failed_load_is_anti_bot(config):
    driver = FakeDriver(error=WebDriverException("net::ERR_ABORTED"), body="Attention Required! | Cloudflare")
    with pytest.raises(FetchError) as info:
        loader_for(driver, config).load("https://x.test", settle=0, timeout=5)
    assert info.value.kind is FetchErrorKind.ANTI_BOT_CHALLENGE


def test_launch_failure(config):
    def broken(cfg):
        raise WebDriverException("unknown error: cannot find Chrome binary")

    loader = ChromePageLoader(config, driver_factory=broken, sleep=lambda _: None)
    with pytest.raises(FetchError) as info:
        loader.load("https://x.test", settle=0, timeout=5)
    assert info.value.kind is FetchErrorKind.LAUNCH_FAILURE


def test_hours_page_clicks_forward_up_to_limit(config):
    sleeps = []
    driver = FakeDriver(next_clicks_available=10)
    loader_for(driver, config, sleeps).load_hours_page("https://x.test/hours", settle=8, timeout=25, advance_clicks=3)
    assert driver.clicks == 3
    assert sleeps == [8, 2.0, 2.0, 2.0]


def test_hours_page_stops_when_button_missing_or_blocked(config):
    driver = FakeDriver(next_clicks_available=1)
    loader_for(driver, config).load_hours_page("https://x.test/hours", settle=0, timeout=5)
    assert driver.clicks == 1

    blocked = FakeDriver(next_clicks_available=5, click_error=ElementClickInterceptedException("overlay"))
    page = loader_for(blocked, config).load_hours_page("https://x.test/hours", settle=0, timeout=5)
    assert blocked.clicks == 0
    assert page.url == "https://x.test/hours"


def test_resolve_chrome_path_prefers_explicit_then_env(monkeypatch):
    monkeypatch.setenv("CHROME_BIN", "/opt/chrome/chrome")
    assert resolve_chrome_path("/custom/chrome") == "/custom/chrome"
    assert resolve_chrome_path(None) == "/opt/chrome/chrome"

    monkeypatch.delenv("CHROME_BIN")
    monkeypatch.setattr(browser.os.path, "exists", lambda path: path == "/usr/bin/chromium-browser")
    assert resolve_chrome_path(None) == "/usr/bin/chromium-browser"

    monkeypatch.setattr(browser.os.path, "exists", lambda path: False)
    assert resolve_chrome_path(None) is None


def test_chrome_options_are_headless_and_sandbox_free(config, monkeypatch):
    monkeypatch.delenv("CHROME_BIN", raising=False)
    monkeypatch.setattr(browser.os.path, "exists", lambda path: False)
    options = build_chrome_options(config)
    assert "--headless=new" in options.arguments
    assert "--disable-gpu" in options.arguments
    assert "--no-sandbox" in options.arguments
    assert any(arg.startswith("--user-agent=") for arg in options.arguments)


def test_flatten_text_keeps_document_order():
    html = "<div><span> A </span><b>B</b><!-- hidden --><noscript>C</noscript>D</div>"
    assert flatten_text(html) == ["A", "B", "D"]
