"""
Browser automation abstraction for Wren.

Two layers:
- BrowserBackend: owns the browser process; creates isolated contexts.
- BrowserAutomationDriver: one page inside one context, the only handle
  search code ever sees.

Backends:
- PlaywrightBackend (default): one Chromium process, contexts via
  browser.new_context().
- UndetectedChromeBackend (src.crawler.undetected): Selenium-based,
  one driver process per context.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from src.crawler.stealth import StealthProfile, get_stealth_args
from src.utils.config import BrowserConfig, get_settings
from src.utils.logging import get_logger

if TYPE_CHECKING:
    from playwright.async_api import Browser, BrowserContext, Page, Playwright

logger = get_logger(__name__)


# =============================================================================
# Protocols
# =============================================================================


@runtime_checkable
class ResultElement(Protocol):
    """A DOM element handle (Playwright ElementHandle or an adapter)."""

    async def query_selector(self, selector: str) -> ResultElement | None: ...

    async def text_content(self) -> str | None: ...

    async def get_attribute(self, name: str) -> str | None: ...


@runtime_checkable
class BrowserAutomationDriver(Protocol):
    """A single page in an isolated browsing context."""

    @property
    def current_url(self) -> str: ...

    async def navigate(self, url: str, timeout_ms: int) -> None:
        """Load url, returning once DOMContentLoaded fires."""
        ...

    async def wait_for_selector(self, selector: str, timeout_ms: int) -> bool:
        """Wait until selector matches a visible element. False on timeout."""
        ...

    async def query_selector_all(self, selector: str) -> list[ResultElement]: ...

    async def execute_script(self, script: str) -> Any: ...

    async def close(self) -> None: ...


class BrowserBackend(Protocol):
    """Owns a browser process and hands out isolated contexts."""

    name: str

    async def launch(self) -> None: ...

    async def new_context(self, profile: StealthProfile) -> BrowserAutomationDriver: ...

    async def close(self) -> None: ...


# =============================================================================
# Playwright
# =============================================================================


class PlaywrightDriver:
    """BrowserAutomationDriver over a Playwright context and page."""

    def __init__(self, context: BrowserContext, page: Page):
        self._context = context
        self._page = page
        self._closed = False

    @property
    def current_url(self) -> str:
        return self._page.url

    async def navigate(self, url: str, timeout_ms: int) -> None:
        await self._page.goto(url, timeout=timeout_ms, wait_until="domcontentloaded")

    async def wait_for_selector(self, selector: str, timeout_ms: int) -> bool:
        try:
            await self._page.wait_for_selector(selector, timeout=timeout_ms, state="visible")
            return True
        except PlaywrightTimeoutError:
            return False

    async def query_selector_all(self, selector: str) -> list[ResultElement]:
        return await self._page.query_selector_all(selector)

    async def execute_script(self, script: str) -> Any:
        return await self._page.evaluate(script)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._context.close()


class PlaywrightBackend:
    """Headless Chromium launched through Playwright."""

    name = "playwright"

    def __init__(self, config: BrowserConfig | None = None):
        self._config = config or get_settings().browser
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None

    @property
    def is_running(self) -> bool:
        return self._browser is not None

    async def launch(self) -> None:
        from playwright.async_api import async_playwright

        viewport = (self._config.viewport_width, self._config.viewport_height)
        args = get_stealth_args(no_sandbox=self._config.no_sandbox, viewport=viewport)

        self._playwright = await async_playwright().start()
        try:
            self._browser = await self._playwright.chromium.launch(
                headless=self._config.headless,
                args=args,
                timeout=self._config.launch_timeout_ms,
            )
        except Exception:
            await self._playwright.stop()
            self._playwright = None
            raise

        logger.info(
            "Chromium launched",
            backend=self.name,
            headless=self._config.headless,
            version=self._browser.version,
            sandbox="--no-sandbox" not in args,
        )

    async def new_context(self, profile: StealthProfile) -> PlaywrightDriver:
        if self._browser is None:
            raise RuntimeError("Browser not launched")

        context = await self._browser.new_context(
            user_agent=profile.user_agent,
            viewport=profile.viewport_size,
            extra_http_headers=profile.headers,
            locale=profile.languages[0] if profile.languages else None,
            java_script_enabled=True,
        )
        try:
            await context.add_init_script(profile.init_script)
            for pattern in self._config.blocked_resources:
                await context.route(pattern, lambda route: route.abort())
            page = await context.new_page()
        except Exception:
            await context.close()
            raise

        return PlaywrightDriver(context, page)

    async def close(self) -> None:
        try:
            if self._browser:
                await self._browser.close()
            if self._playwright:
                await self._playwright.stop()
        finally:
            self._browser = None
            self._playwright = None


def create_backend(config: BrowserConfig | None = None) -> BrowserBackend:
    """Create the backend selected by browser.backend."""
    config = config or get_settings().browser
    if config.backend == "undetected":
        from src.crawler.undetected import UndetectedChromeBackend

        return UndetectedChromeBackend(config)
    return PlaywrightBackend(config)
