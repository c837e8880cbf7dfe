"""
Undetected ChromeDriver backend for Wren.

Alternative to the Playwright backend for engines that fingerprint
Playwright-driven Chromium. Wraps undetected-chromedriver (Selenium).

Selenium cannot open isolated contexts inside one browser process, so
each context here is a dedicated driver process that is quit when the
context is released.

Note: Selenium is synchronous. Every call is run in the default
executor so the event loop is never blocked. Calls on one driver are
serialized by a per-driver lock: a call abandoned by a timed-out engine
attempt keeps running in its thread, and the next call waits for it.
"""

import asyncio
import re
import threading
from collections.abc import Callable
from typing import TYPE_CHECKING, Any, TypeVar

from selenium.common.exceptions import TimeoutException
from selenium.webdriver.common.by import By
from selenium.webdriver.support import expected_conditions as EC
from selenium.webdriver.support.ui import WebDriverWait

from src.crawler.stealth import StealthProfile, get_stealth_args
from src.search.errors import BrowserLaunchError
from src.utils.config import BrowserConfig, get_settings
from src.utils.logging import get_logger

if TYPE_CHECKING:
    from selenium.webdriver.remote.webelement import WebElement
    from undetected_chromedriver import Chrome, ChromeOptions

logger = get_logger(__name__)

T = TypeVar("T")


async def _run_sync(func: Callable[[], T], lock: "threading.Lock | None" = None) -> T:
    def _call() -> T:
        if lock is None:
            return func()
        with lock:
            return func()

    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, _call)


def expand_blocked_patterns(patterns: list[str]) -> list[str]:
    """Convert route globs into CDP Network.setBlockedURLs wildcards.

    "**/*.{png,jpg}" becomes ["*.png", "*.jpg"].
    """
    urls: list[str] = []
    for pattern in patterns:
        pattern = pattern.replace("**/", "*")
        match = re.search(r"\{([^}]*)\}", pattern)
        if match is None:
            urls.append(pattern)
            continue
        for alternative in match.group(1).split(","):
            urls.append(pattern[: match.start()] + alternative.strip() + pattern[match.end() :])
    return urls


class SeleniumElement:
    """ResultElement adapter over a Selenium WebElement."""

    def __init__(self, element: "WebElement", lock: threading.Lock):
        self._element = element
        self._lock = lock

    async def query_selector(self, selector: str) -> "SeleniumElement | None":
        found = await _run_sync(
            lambda: self._element.find_elements(By.CSS_SELECTOR, selector), self._lock
        )
        return SeleniumElement(found[0], self._lock) if found else None

    async def text_content(self) -> str | None:
        return await _run_sync(lambda: self._element.get_attribute("textContent"), self._lock)

    async def get_attribute(self, name: str) -> str | None:
        return await _run_sync(lambda: self._element.get_attribute(name), self._lock)


class SeleniumDriver:
    """BrowserAutomationDriver over one undetected-chromedriver instance."""

    def __init__(self, driver: "Chrome"):
        self._driver = driver
        self._lock = threading.Lock()
        self._url = "about:blank"
        self._closed = False

    @property
    def current_url(self) -> str:
        return self._url

    async def navigate(self, url: str, timeout_ms: int) -> None:
        def _get() -> str:
            self._driver.set_page_load_timeout(timeout_ms / 1000)
            self._driver.get(url)
            return self._driver.current_url

        self._url = await _run_sync(_get, self._lock)

    async def wait_for_selector(self, selector: str, timeout_ms: int) -> bool:
        def _wait() -> bool:
            try:
                WebDriverWait(self._driver, timeout_ms / 1000).until(
                    EC.visibility_of_any_elements_located((By.CSS_SELECTOR, selector))
                )
                return True
            except TimeoutException:
                return False

        return await _run_sync(_wait, self._lock)

    async def query_selector_all(self, selector: str) -> list[SeleniumElement]:
        elements = await _run_sync(
            lambda: self._driver.find_elements(By.CSS_SELECTOR, selector), self._lock
        )
        return [SeleniumElement(e, self._lock) for e in elements]

    async def execute_script(self, script: str) -> Any:
        return await _run_sync(lambda: self._driver.execute_script(script), self._lock)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await _run_sync(self._driver.quit, self._lock)


class UndetectedChromeBackend:
    """Backend creating one undetected-chromedriver process per context."""

    name = "undetected"

    def __init__(self, config: BrowserConfig | None = None):
        self._config = config or get_settings().browser
        self._available: bool | None = None

    def is_available(self) -> bool:
        """Check if undetected-chromedriver is importable."""
        if self._available is not None:
            return self._available

        try:
            import undetected_chromedriver  # noqa: F401

            self._available = True
        except ImportError:
            self._available = False
            logger.warning(
                "undetected-chromedriver not available - "
                "install with: pip install undetected-chromedriver"
            )
        return self._available

    async def launch(self) -> None:
        if not self.is_available():
            raise BrowserLaunchError("undetected-chromedriver is not installed")
        logger.info(
            "Undetected ChromeDriver backend ready",
            backend=self.name,
            headless=self._config.headless,
            chrome_version=self._config.chrome_version,
        )

    def _create_options(self, profile: StealthProfile) -> "ChromeOptions":
        import undetected_chromedriver as uc

        options = uc.ChromeOptions()
        for arg in get_stealth_args(no_sandbox=self._config.no_sandbox, viewport=profile.viewport):
            options.add_argument(arg)
        if self._config.headless:
            options.add_argument("--headless=new")
        if profile.languages:
            options.add_argument(f"--lang={profile.languages[0]}")
        options.add_argument(f"--user-agent={profile.user_agent}")
        # Return from get() at DOMContentLoaded
        options.page_load_strategy = "eager"
        return options

    def _create_driver(self, profile: StealthProfile) -> "Chrome":
        import undetected_chromedriver as uc

        driver = uc.Chrome(
            options=self._create_options(profile),
            use_subprocess=True,
            version_main=self._config.chrome_version,
        )
        try:
            driver.execute_cdp_cmd("Network.enable", {})
            driver.execute_cdp_cmd(
                "Network.setUserAgentOverride",
                {
                    "userAgent": profile.user_agent,
                    "acceptLanguage": profile.accept_language,
                    "platform": profile.platform,
                },
            )
            driver.execute_cdp_cmd("Network.setExtraHTTPHeaders", {"headers": profile.headers})
            driver.execute_cdp_cmd(
                "Network.setBlockedURLs",
                {"urls": expand_blocked_patterns(self._config.blocked_resources)},
            )
            driver.execute_cdp_cmd(
                "Page.addScriptToEvaluateOnNewDocument",
                {"source": profile.init_script},
            )
        except Exception:
            driver.quit()
            raise
        return driver

    async def new_context(self, profile: StealthProfile) -> SeleniumDriver:
        if not self.is_available():
            raise BrowserLaunchError("undetected-chromedriver is not installed")
        driver = await _run_sync(lambda: self._create_driver(profile))
        return SeleniumDriver(driver)

    async def close(self) -> None:
        # Drivers are owned by their contexts and quit on release
        return None
