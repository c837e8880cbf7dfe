"""
Tests for browser backends and drivers.

## Test Perspectives Table
| Case ID | Input / Precondition | Perspective (Equivalence / Boundary) | Expected Result | Notes |
|---------|----------------------|---------------------------------------|-----------------|-------|
| TC-PD-01 | navigate(url, 1000) | Equivalence – normal | page.goto with domcontentloaded | - |
| TC-PD-02 | wait_for_selector resolves | Equivalence – normal | True | - |
| TC-PD-03 | wait_for_selector times out | Abnormal – timeout | False | - |
| TC-PD-04 | close() twice | Equivalence – idempotent | Context closed once | - |
| TC-PB-01 | new_context(profile) | Equivalence – profile | UA, viewport, headers, init script, routes | - |
| TC-PB-02 | new_context before launch | Abnormal – state | RuntimeError | - |
| TC-PB-03 | new_page fails | Abnormal – cleanup | Context closed, error raised | - |
| TC-PB-04 | launch with mocked playwright | Equivalence – args | Stealth args and headless passed | - |
| TC-SD-01 | SeleniumDriver.navigate | Equivalence – normal | Page-load timeout set, URL recorded | - |
| TC-SD-02 | SeleniumDriver.wait_for_selector timeout | Abnormal – timeout | False | - |
| TC-SD-03 | SeleniumDriver.close twice | Equivalence – idempotent | quit() once | - |
| TC-SD-04 | Navigation abandoned by a timeout, then a second call | Abnormal – concurrency | Second call waits, calls never overlap | - |
| TC-UB-01 | expand_blocked_patterns | Equivalence – glob | CDP wildcards | - |
| TC-UB-02 | _create_driver | Equivalence – CDP | Overrides applied via CDP | - |
| TC-UB-03 | Library unavailable | Abnormal – missing dep | BrowserLaunchError | - |
| TC-CB-01 | create_backend by config | Equivalence – selection | Matching backend class | - |
"""

import asyncio
import random
import threading
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from selenium.common.exceptions import TimeoutException

from src.crawler.driver import (
    BrowserAutomationDriver,
    PlaywrightBackend,
    PlaywrightDriver,
    create_backend,
)
from src.crawler.stealth import StealthProfileProvider
from src.crawler.undetected import (
    SeleniumDriver,
    UndetectedChromeBackend,
    expand_blocked_patterns,
)
from src.search.errors import BrowserLaunchError
from src.utils.config import BrowserConfig, StealthConfig


@pytest.fixture
def profile():
    provider = StealthProfileProvider(
        rng=random.Random(3), config=StealthConfig(), viewport=(1366, 768)
    )
    return provider.create_profile()


def _page() -> MagicMock:
    page = MagicMock()
    page.url = "https://duckduckgo.com/?q=x"
    page.goto = AsyncMock()
    page.wait_for_selector = AsyncMock()
    page.query_selector_all = AsyncMock(return_value=[])
    page.evaluate = AsyncMock(return_value=42)
    return page


def _context(page: MagicMock) -> MagicMock:
    context = MagicMock()
    context.add_init_script = AsyncMock()
    context.route = AsyncMock()
    context.new_page = AsyncMock(return_value=page)
    context.close = AsyncMock()
    return context


@pytest.mark.unit
class TestPlaywrightDriver:
    """PlaywrightDriver over mocked context/page."""

    async def test_navigate(self) -> None:
        """TC-PD-01: goto returns at DOMContentLoaded."""
        page = _page()
        driver = PlaywrightDriver(_context(page), page)

        await driver.navigate("https://bing.com/search?q=x", 1000)

        page.goto.assert_awaited_once_with(
            "https://bing.com/search?q=x", timeout=1000, wait_until="domcontentloaded"
        )
        assert driver.current_url == "https://duckduckgo.com/?q=x"
        assert isinstance(driver, BrowserAutomationDriver)

    async def test_wait_for_selector_found(self) -> None:
        """TC-PD-02: Visible match returns True."""
        page = _page()
        driver = PlaywrightDriver(_context(page), page)

        assert await driver.wait_for_selector(".b_algo", 500) is True
        page.wait_for_selector.assert_awaited_once_with(".b_algo", timeout=500, state="visible")

    async def test_wait_for_selector_timeout(self) -> None:
        """TC-PD-03: Timeout returns False instead of raising."""
        page = _page()
        page.wait_for_selector.side_effect = PlaywrightTimeoutError("Timeout 500ms exceeded")
        driver = PlaywrightDriver(_context(page), page)

        assert await driver.wait_for_selector(".b_algo", 500) is False

    async def test_close_idempotent(self) -> None:
        """TC-PD-04: The context is closed once."""
        page = _page()
        context = _context(page)
        driver = PlaywrightDriver(context, page)

        await driver.close()
        await driver.close()

        context.close.assert_awaited_once()

    async def test_execute_script(self) -> None:
        page = _page()
        driver = PlaywrightDriver(_context(page), page)

        assert await driver.execute_script("() => 42") == 42


@pytest.mark.unit
class TestPlaywrightBackend:
    """PlaywrightBackend with a mocked browser."""

    async def test_new_context_applies_profile(self, profile) -> None:
        """TC-PB-01: Profile and resource blocking are applied."""
        # Given: A backend with a mocked browser
        page = _page()
        context = _context(page)
        backend = PlaywrightBackend(BrowserConfig(blocked_resources=["**/*.png", "**/*.woff2"]))
        backend._browser = MagicMock()
        backend._browser.new_context = AsyncMock(return_value=context)

        # When: Creating a context
        driver = await backend.new_context(profile)

        # Then: Fingerprint, init script and routes are configured
        kwargs = backend._browser.new_context.await_args.kwargs
        assert kwargs["user_agent"] == profile.user_agent
        assert kwargs["viewport"] == {"width": 1366, "height": 768}
        assert kwargs["extra_http_headers"] == profile.headers
        assert kwargs["locale"] == profile.languages[0]
        context.add_init_script.assert_awaited_once_with(profile.init_script)
        assert [c.args[0] for c in context.route.await_args_list] == ["**/*.png", "**/*.woff2"]
        assert isinstance(driver, PlaywrightDriver)

    async def test_new_context_before_launch(self, profile) -> None:
        """TC-PB-02: No browser, no context."""
        backend = PlaywrightBackend(BrowserConfig())

        with pytest.raises(RuntimeError):
            await backend.new_context(profile)

    async def test_new_context_cleans_up_on_error(self, profile) -> None:
        """TC-PB-03: A half-built context is closed."""
        page = _page()
        context = _context(page)
        context.new_page.side_effect = RuntimeError("target crashed")
        backend = PlaywrightBackend(BrowserConfig())
        backend._browser = MagicMock()
        backend._browser.new_context = AsyncMock(return_value=context)

        with pytest.raises(RuntimeError, match="target crashed"):
            await backend.new_context(profile)

        context.close.assert_awaited_once()

    async def test_launch_passes_stealth_args(self) -> None:
        """TC-PB-04: Launch uses headless mode and stealth args."""
        # Given: Mocked async_playwright
        browser = MagicMock()
        browser.version = "131.0"
        browser.close = AsyncMock()
        playwright = MagicMock()
        playwright.chromium.launch = AsyncMock(return_value=browser)
        playwright.stop = AsyncMock()
        starter = MagicMock()
        starter.start = AsyncMock(return_value=playwright)
        backend = PlaywrightBackend(BrowserConfig(no_sandbox=True, launch_timeout_ms=1234))

        # When: Launching and closing
        with patch("playwright.async_api.async_playwright", return_value=starter):
            await backend.launch()
        assert backend.is_running
        await backend.close()

        # Then: Launch args carry the stealth flags; close stops everything
        kwargs = playwright.chromium.launch.await_args.kwargs
        assert kwargs["headless"] is True
        assert kwargs["timeout"] == 1234
        assert "--no-sandbox" in kwargs["args"]
        assert "--disable-blink-features=AutomationControlled" in kwargs["args"]
        browser.close.assert_awaited_once()
        playwright.stop.assert_awaited_once()
        assert not backend.is_running


@pytest.mark.unit
class TestSeleniumDriver:
    """SeleniumDriver over a mocked undetected-chromedriver instance."""

    async def test_navigate(self) -> None:
        """TC-SD-01: Timeout set in seconds, final URL recorded."""
        chrome = MagicMock()
        chrome.current_url = "https://www.bing.com/search?q=x&form=QBLH"
        driver = SeleniumDriver(chrome)

        await driver.navigate("https://www.bing.com/search?q=x&form=QBLH", 2500)

        chrome.set_page_load_timeout.assert_called_once_with(2.5)
        chrome.get.assert_called_once_with("https://www.bing.com/search?q=x&form=QBLH")
        assert driver.current_url == "https://www.bing.com/search?q=x&form=QBLH"

    async def test_wait_for_selector_timeout(self) -> None:
        """TC-SD-02: Selenium TimeoutException maps to False."""
        driver = SeleniumDriver(MagicMock())
        waiter = MagicMock()
        waiter.until.side_effect = TimeoutException("no results")

        with patch("src.crawler.undetected.WebDriverWait", return_value=waiter):
            assert await driver.wait_for_selector(".b_algo", 100) is False

    async def test_query_selector_all_wraps_elements(self) -> None:
        chrome = MagicMock()
        element = MagicMock()
        element.get_attribute.return_value = "https://example.com"
        element.find_elements.return_value = []
        chrome.find_elements.return_value = [element]
        driver = SeleniumDriver(chrome)

        found = await driver.query_selector_all(".b_algo")

        assert len(found) == 1
        assert await found[0].get_attribute("href") == "https://example.com"
        assert await found[0].query_selector("h2 a") is None

    async def test_close_idempotent(self) -> None:
        """TC-SD-03: quit() runs once."""
        chrome = MagicMock()
        driver = SeleniumDriver(chrome)

        await driver.close()
        await driver.close()

        chrome.quit.assert_called_once()

    async def test_abandoned_call_blocks_next_call(self) -> None:
        """TC-SD-04: A call left running by a timed-out attempt finishes before the next starts."""
        # Given: get() blocks until released and tracks overlapping calls
        release = threading.Event()
        guard = threading.Lock()
        running = 0
        peak = 0

        def slow_get(url: str) -> None:
            nonlocal running, peak
            with guard:
                running += 1
                peak = max(peak, running)
            release.wait(5)
            with guard:
                running -= 1

        chrome = MagicMock()
        chrome.get.side_effect = slow_get
        driver = SeleniumDriver(chrome)

        # When: the first navigation is abandoned and a second one is issued
        with pytest.raises(TimeoutError):
            await asyncio.wait_for(driver.navigate("https://duckduckgo.com/?q=a", 30000), 0.05)
        second = asyncio.create_task(driver.navigate("https://www.bing.com/search?q=a", 30000))
        await asyncio.sleep(0.05)

        # Then: the second waits for the first, and they never overlap
        assert chrome.get.call_count == 1
        release.set()
        await second
        assert chrome.get.call_count == 2
        assert peak == 1


@pytest.mark.unit
class TestUndetectedChromeBackend:
    """UndetectedChromeBackend without a real browser."""

    def test_expand_blocked_patterns(self) -> None:
        """TC-UB-01: Brace globs expand to one wildcard each."""
        assert expand_blocked_patterns(["**/*.{png,jpg}", "**/*.css"]) == [
            "*.png",
            "*.jpg",
            "*.css",
        ]

    def test_create_driver_applies_profile(self, profile) -> None:
        """TC-UB-02: Fingerprint overrides are sent over CDP."""
        backend = UndetectedChromeBackend(BrowserConfig(no_sandbox=True, chrome_version=131))
        chrome = MagicMock()

        with patch("undetected_chromedriver.Chrome", return_value=chrome) as chrome_cls:
            result = backend._create_driver(profile)

        assert result is chrome
        assert chrome_cls.call_args.kwargs["version_main"] == 131
        commands = {c.args[0]: c.args[1] for c in chrome.execute_cdp_cmd.call_args_list}
        assert commands["Network.setUserAgentOverride"]["userAgent"] == profile.user_agent
        assert commands["Network.setUserAgentOverride"]["platform"] == profile.platform
        assert commands["Network.setExtraHTTPHeaders"] == {"headers": profile.headers}
        assert commands["Page.addScriptToEvaluateOnNewDocument"] == {
            "source": profile.init_script
        }

    async def test_new_context_wraps_driver(self, profile) -> None:
        backend = UndetectedChromeBackend(BrowserConfig())
        chrome = MagicMock()

        with patch.object(backend, "_create_driver", return_value=chrome):
            driver = await backend.new_context(profile)

        assert isinstance(driver, SeleniumDriver)
        await driver.close()
        chrome.quit.assert_called_once()

    async def test_unavailable_library(self) -> None:
        """TC-UB-03: Missing library surfaces as a launch error."""
        backend = UndetectedChromeBackend(BrowserConfig())
        backend._available = False

        with pytest.raises(BrowserLaunchError):
            await backend.launch()


@pytest.mark.unit
@pytest.mark.parametrize(
    "backend_name,expected",
    [("playwright", PlaywrightBackend), ("undetected", UndetectedChromeBackend)],
)
def test_create_backend(backend_name, expected) -> None:
    """TC-CB-01: browser.backend selects the backend class."""
    backend = create_backend(BrowserConfig(backend=backend_name))

    assert isinstance(backend, expected)
    assert backend.name == backend_name
