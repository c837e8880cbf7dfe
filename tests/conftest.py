"""
Pytest fixtures and configuration for Wren tests.

=============================================================================
Test Classification
=============================================================================

- @pytest.mark.unit: Single class/function, no external dependencies
  - Browser, network and file system are mocked or faked
  - Default for tests without a classification marker

- @pytest.mark.integration: Multiple components wired together,
  browser replaced by FakeBackend / FakeDriver

- @pytest.mark.e2e: Real headless Chromium against live search engines
  - DEFAULT SKIPPED: run with `WREN_E2E=1 pytest -m e2e`

=============================================================================
Mock Strategy
=============================================================================

- Browser (Playwright / undetected-chromedriver): FakeBackend + FakeDriver
  below, or AsyncMock for driver-level tests
- File I/O: tmp_path fixture
- Pacing delays: injected AsyncMock sleep, never real sleeps
"""

import asyncio
import os
import random
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio

# Set test environment before importing anything else
os.environ["WREN_CONFIG_DIR"] = str(Path(__file__).parent.parent / "config")
os.environ["WREN_GENERAL__LOG_LEVEL"] = "DEBUG"

E2E_ENABLED = os.environ.get("WREN_E2E") == "1"


# =============================================================================
# Pytest Hooks for Test Classification
# =============================================================================


def pytest_configure(config):
    """Register custom markers for test classification."""
    config.addinivalue_line(
        "markers", "unit: Unit tests with no external dependencies (fast, <1s/test)"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests with a faked browser (<5s/test)"
    )
    config.addinivalue_line(
        "markers", "e2e: End-to-end tests with a real browser (skipped unless WREN_E2E=1)"
    )


def pytest_collection_modifyitems(config, items):
    """Default unclassified tests to unit; skip e2e unless enabled."""
    skip_e2e = pytest.mark.skip(reason="E2E tests need a real browser. Run with WREN_E2E=1")

    for item in items:
        has_classification = any(
            marker.name in ("unit", "integration", "e2e") for marker in item.iter_markers()
        )
        if not has_classification:
            item.add_marker(pytest.mark.unit)

        if not E2E_ENABLED and any(marker.name == "e2e" for marker in item.iter_markers()):
            item.add_marker(skip_e2e)


# =============================================================================
# Browser Fakes
# =============================================================================


class FakeElement:
    """Stand-in for a DOM element handle.

    children maps a selector to the element query_selector returns for it.
    """

    def __init__(
        self,
        text: str | None = None,
        attrs: dict[str, str] | None = None,
        children: dict[str, "FakeElement"] | None = None,
        error: Exception | None = None,
    ):
        self.text = text
        self.attrs = attrs or {}
        self.children = children or {}
        self.error = error

    async def query_selector(self, selector: str) -> "FakeElement | None":
        if self.error is not None:
            raise self.error
        return self.children.get(selector)

    async def text_content(self) -> str | None:
        return self.text

    async def get_attribute(self, name: str) -> str | None:
        return self.attrs.get(name)


DDG_TITLE = "[data-testid='result-title-a']"
DDG_SNIPPET = "[data-testid='result-snippet']"
BING_TITLE = "h2 a"
BING_SNIPPET = ".b_caption p"


def make_result(
    title: str | None,
    href: str | None,
    snippet: str | None = None,
    title_selector: str = DDG_TITLE,
    snippet_selector: str = DDG_SNIPPET,
) -> FakeElement:
    """Build a result container with a title anchor and optional snippet."""
    children: dict[str, FakeElement] = {}
    if title is not None or href is not None:
        attrs = {"href": href} if href is not None else {}
        children[title_selector] = FakeElement(text=title, attrs=attrs)
    if snippet is not None:
        children[snippet_selector] = FakeElement(text=snippet)
    return FakeElement(children=children)


def make_ddg_results(count: int, prefix: str = "Result") -> list[FakeElement]:
    return [
        make_result(
            f"{prefix} {i}",
            f"https://example.com/{prefix.lower()}/{i}",
            f"Snippet for {prefix.lower()} {i}",
        )
        for i in range(1, count + 1)
    ]


def make_bing_results(count: int, prefix: str = "Bing result") -> list[FakeElement]:
    return [
        make_result(
            f"{prefix} {i}",
            f"https://example.org/bing/{i}",
            f"Bing snippet {i}",
            title_selector=BING_TITLE,
            snippet_selector=BING_SNIPPET,
        )
        for i in range(1, count + 1)
    ]


class FakeDriver:
    """In-memory BrowserAutomationDriver.

    pages maps a URL fragment (e.g. "duckduckgo.com") to the selector ->
    elements table served after navigating to a matching URL.
    """

    def __init__(
        self,
        pages: dict[str, dict[str, list[FakeElement]]] | None = None,
        navigate_errors: dict[str, Exception] | None = None,
        hang_on: set[str] | None = None,
        close_error: Exception | None = None,
    ):
        self.pages = pages or {}
        self.navigate_errors = navigate_errors or {}
        self.hang_on = hang_on or set()
        self.close_error = close_error
        self.navigations: list[str] = []
        self.close_calls = 0
        self._url = "about:blank"
        self._content: dict[str, list[FakeElement]] = {}

    @property
    def current_url(self) -> str:
        return self._url

    @property
    def closed(self) -> bool:
        return self.close_calls > 0

    async def navigate(self, url: str, timeout_ms: int) -> None:
        self.navigations.append(url)
        for fragment, error in self.navigate_errors.items():
            if fragment in url:
                raise error
        for fragment in self.hang_on:
            if fragment in url:
                await asyncio.sleep(3600)
        self._url = url
        self._content = {}
        for fragment, content in self.pages.items():
            if fragment in url:
                self._content = content
                break

    async def wait_for_selector(self, selector: str, timeout_ms: int) -> bool:
        return any(self._content.get(part.strip()) for part in selector.split(","))

    async def query_selector_all(self, selector: str) -> list[FakeElement]:
        return list(self._content.get(selector, []))

    async def execute_script(self, script: str) -> Any:
        return None

    async def close(self) -> None:
        self.close_calls += 1
        if self.close_error is not None:
            raise self.close_error


class FakeBackend:
    """In-memory BrowserBackend producing FakeDrivers."""

    name = "fake"

    def __init__(
        self,
        driver_factory=None,
        launch_error: Exception | None = None,
        launch_delay: float = 0.0,
        context_error: Exception | None = None,
        context_delay: float = 0.0,
    ):
        self.driver_factory = driver_factory or FakeDriver
        self.launch_error = launch_error
        self.launch_delay = launch_delay
        self.context_error = context_error
        self.context_delay = context_delay
        self.launch_calls = 0
        self.close_calls = 0
        self.profiles: list[Any] = []
        self.drivers: list[FakeDriver] = []

    async def launch(self) -> None:
        self.launch_calls += 1
        if self.launch_delay:
            await asyncio.sleep(self.launch_delay)
        if self.launch_error is not None:
            raise self.launch_error

    async def new_context(self, profile) -> FakeDriver:
        if self.context_delay:
            await asyncio.sleep(self.context_delay)
        if self.context_error is not None:
            raise self.context_error
        self.profiles.append(profile)
        driver = self.driver_factory()
        self.drivers.append(driver)
        return driver

    async def close(self) -> None:
        self.close_calls += 1


# =============================================================================
# Settings / Component Fixtures
# =============================================================================


@pytest.fixture
def test_settings():
    """Settings with short timeouts for fast tests."""
    from src.utils.config import (
        BrowserConfig,
        GeneralConfig,
        SearchConfig,
        Settings,
        StealthConfig,
    )

    return Settings(
        general=GeneralConfig(log_level="DEBUG"),
        browser=BrowserConfig(
            launch_timeout_ms=2000,
            navigation_timeout_ms=2000,
            max_contexts=4,
            context_acquire_timeout=1.0,
            no_sandbox=True,
        ),
        stealth=StealthConfig(),
        search=SearchConfig(engine_timeout_seconds=0.5, selector_timeout_ms=100),
    )


@pytest.fixture
def builtin_registry():
    """Registry with the built-in DuckDuckGo and Bing definitions."""
    from src.search.engine_config import SearchEngineRegistry

    return SearchEngineRegistry.builtin()


@pytest.fixture
def fake_backend() -> FakeBackend:
    return FakeBackend()


@pytest_asyncio.fixture
async def ready_session_manager(fake_backend, test_settings):
    """BrowserSessionManager over FakeBackend, already initialized."""
    from src.crawler.browser_session import BrowserSessionManager

    manager = BrowserSessionManager(backend=fake_backend, config=test_settings.browser)
    assert await manager.initialize()
    yield manager
    await manager.shutdown()


@pytest.fixture
def mock_sleep() -> AsyncMock:
    return AsyncMock(return_value=None)


@pytest.fixture
def make_orchestrator(builtin_registry, test_settings, mock_sleep):
    """Factory wiring a SearchOrchestrator to a given session manager."""
    from src.crawler.stealth import StealthProfileProvider
    from src.search.extractor import ResultExtractor
    from src.search.orchestrator import SearchOrchestrator

    def _make(session_manager, registry=None, seed: int = 0):
        rng = random.Random(seed)
        return SearchOrchestrator(
            session_manager=session_manager,
            registry=registry or builtin_registry,
            profile_provider=StealthProfileProvider(
                rng=rng, config=test_settings.stealth, viewport=(1920, 1080)
            ),
            extractor=ResultExtractor(test_settings.search.selector_timeout_ms),
            rng=rng,
            sleep=mock_sleep,
            settings=test_settings,
        )

    return _make


# =============================================================================
# Singleton Reset Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def reset_singletons():
    """Reset module singletons between tests.

    Prevents asyncio primitives from being bound to a stale event loop.
    """
    yield
    from src.crawler.browser_session import reset_browser_session_manager
    from src.search.engine_config import reset_engine_registry
    from src.search.orchestrator import reset_search_orchestrator
    from src.utils.config import reset_settings

    reset_search_orchestrator()
    reset_browser_session_manager()
    reset_engine_registry()
    reset_settings()


# =============================================================================
# Utility Functions for Tests
# =============================================================================


def assert_in_range(value: float, min_val: float, max_val: float, name: str = "value") -> None:
    """Assert that a value is within a specified range."""
    assert min_val <= value <= max_val, (
        f"{name} = {value} is outside expected range [{min_val}, {max_val}]"
    )
