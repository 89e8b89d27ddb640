"""Headless Chrome plumbing shared by the browser-backed strategies."""

from __future__ import annotations

import logging
import os
import threading
import time
from contextlib import suppress
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Protocol

from bs4 import BeautifulSoup
from bs4.element import PreformattedString
from selenium import webdriver
from selenium.common.exceptions import WebDriverException
from selenium.webdriver.chrome.options import Options
from selenium.webdriver.chrome.service import Service
from selenium.webdriver.common.by import By
from selenium.webdriver.support.ui import WebDriverWait
from webdriver_manager.chrome import ChromeDriverManager

from .config import PipelineConfig
from .errors import FetchError, FetchErrorKind, as_fetch_error

logger = logging.getLogger(__name__)

CHROME_CANDIDATES = (
    "/usr/bin/chromium",
    "/usr/bin/chromium-browser",
    "/usr/bin/google-chrome",
    "/Applications/Google Chrome.app/Contents/MacOS/Google Chrome",
)

NEXT_WEEK_SELECTOR = 'button[aria-label*="next" i], button:has(svg), .next-week, button.next'
NEXT_WEEK_PAUSE_SECONDS = 2.0

# Text inside these tags never reaches the reader.
INVISIBLE_TAGS = ("script", "style", "noscript", "template")


def resolve_chrome_path(configured: Optional[str] = None) -> Optional[str]:
    """Pick the Chrome binary: explicit setting, then CHROME_BIN, then well-known paths."""
    if configured:
        return configured
    env_value = os.getenv("CHROME_BIN")
    if env_value:
        return env_value
    for candidate in CHROME_CANDIDATES:
        if os.path.exists(candidate):
            return candidate
    return None


def build_chrome_options(config: PipelineConfig) -> Options:
    options = Options()
    options.add_argument("--headless=new")
    options.add_argument("--disable-gpu")
    options.add_argument("--no-sandbox")
    options.add_argument("--disable-dev-shm-usage")
    options.add_argument(f"--user-agent={config.user_agent}")
    binary = resolve_chrome_path(config.chrome_binary)
    if binary:
        options.binary_location = binary
    return options


def create_driver(config: PipelineConfig) -> webdriver.Chrome:
    """Launch headless Chrome; a pinned CHROMEDRIVER_PATH skips the driver download."""
    driver_path = config.chromedriver_path or ChromeDriverManager().install()
    driver = webdriver.Chrome(service=Service(driver_path), options=build_chrome_options(config))
    driver.set_page_load_timeout(config.navigation_timeout)
    return driver


def flatten_text(html: str) -> List[str]:
    """Every non-empty visible text node of ``html``, trimmed, in document order."""
    soup = BeautifulSoup(html or "", "html.parser")
    for tag in soup(INVISIBLE_TAGS):
        tag.decompose()
    return [
        text.strip()
        for text in soup.find_all(string=True)
        if not isinstance(text, PreformattedString) and text.strip()
    ]


@dataclass
class LoadedPage:
    """What a browser visit hands back to the strategies."""

    url: str
    html: str = ""
    body_text: str = ""
    pre_text: Optional[str] = None
    lines: List[str] = field(default_factory=list)


class PageLoader(Protocol):
    def load(self, url: str, *, settle: float, timeout: float) -> LoadedPage: ...

    def load_hours_page(self, url: str, *, settle: float, timeout: float, advance_clicks: int = 3) -> LoadedPage: ...

    def close(self) -> None: ...


class ChromePageLoader:
    """
    Loads pages in headless Chrome.

    With ``reuse_driver`` (the browser-API path) one browser serves the whole session
    and each request opens, then closes, its own tab; requests are serialized.
    Without it every request launches and tears down its own browser, which lets
    callers run several loads in parallel.
    """

    def __init__(
        self,
        config: Optional[PipelineConfig] = None,
        *,
        reuse_driver: bool = True,
        driver_factory: Callable[[PipelineConfig], webdriver.Chrome] = create_driver,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.config = config or PipelineConfig()
        self.reuse_driver = reuse_driver
        self._driver_factory = driver_factory
        self._sleep = sleep
        self._driver: Optional[webdriver.Chrome] = None
        self._lock = threading.Lock()

    # ------------------------------------------------------------------ #
    # Driver lifecycle
    # ------------------------------------------------------------------ #

    def _launch(self, url: str) -> webdriver.Chrome:
        try:
            return self._driver_factory(self.config)
        except Exception as exc:
            raise FetchError(FetchErrorKind.LAUNCH_FAILURE, url, str(exc)) from exc

    def _shared_driver(self, url: str) -> webdriver.Chrome:
        if self._driver is None:
            self._driver = self._launch(url)
            logger.info("browser launched reuse=%s", self.reuse_driver)
        return self._driver

    def _discard_driver(self) -> None:
        if self._driver is not None:
            with suppress(Exception):
                self._driver.quit()
            self._driver = None

    def close(self) -> None:
        with self._lock:
            self._discard_driver()

    # ------------------------------------------------------------------ #
    # Loading
    # ------------------------------------------------------------------ #

    def load(self, url: str, *, settle: float, timeout: float) -> LoadedPage:
        return self._visit(url, settle=settle, timeout=timeout)

    def load_hours_page(self, url: str, *, settle: float, timeout: float, advance_clicks: int = 3) -> LoadedPage:
        return self._visit(url, settle=settle, timeout=timeout, advance_clicks=advance_clicks)

    def _visit(self, url: str, *, settle: float, timeout: float, advance_clicks: int = 0) -> LoadedPage:
        if not self.reuse_driver:
            driver = self._launch(url)
            try:
                return self._read(driver, url, settle=settle, timeout=timeout, advance_clicks=advance_clicks)
            finally:
                with suppress(Exception):
                    driver.quit()

        with self._lock:
            driver = self._shared_driver(url)
            try:
                home = driver.current_window_handle
                driver.switch_to.new_window("tab")
            except WebDriverException as exc:
                # The session is gone; the next request relaunches the browser.
                self._discard_driver()
                raise as_fetch_error(exc, url) from exc
            try:
                return self._read(driver, url, settle=settle, timeout=timeout, advance_clicks=advance_clicks)
            finally:
                with suppress(Exception):
                    driver.close()
                with suppress(Exception):
                    driver.switch_to.window(home)

    def _read(
        self,
        driver: webdriver.Chrome,
        url: str,
        *,
        settle: float,
        timeout: float,
        advance_clicks: int,
    ) -> LoadedPage:
        try:
            driver.set_page_load_timeout(timeout)
            driver.get(url)
            WebDriverWait(driver, timeout).until(lambda d: d.find_element(By.TAG_NAME, "body"))
            self._sleep(settle)
            for _ in range(advance_clicks):
                if not self._click_next_week(driver):
                    break
            html = driver.page_source
            body_text = driver.find_element(By.TAG_NAME, "body").text
            pre_nodes = driver.find_elements(By.TAG_NAME, "pre")
            pre_text = pre_nodes[0].text if pre_nodes else None
        except WebDriverException as exc:
            page_text = None
            with suppress(Exception):
                page_text = driver.find_element(By.TAG_NAME, "body").text
            raise as_fetch_error(exc, url, page_text) from exc

        logger.debug("loaded url=%s chars=%d", url, len(html))
        return LoadedPage(url=url, html=html, body_text=body_text, pre_text=pre_text, lines=flatten_text(html))

    def _click_next_week(self, driver: webdriver.Chrome) -> bool:
        buttons = driver.find_elements(By.CSS_SELECTOR, NEXT_WEEK_SELECTOR)
        if not buttons:
            return False
        try:
            buttons[0].click()
        except WebDriverException as exc:
            logger.debug("next-week click failed: %s", exc)
            return False
        self._sleep(NEXT_WEEK_PAUSE_SECONDS)
        return True
