"""
Search orchestration for Wren.

One call of search(query, preferred_engine) runs:

    VALIDATING -> (per engine) NAVIGATING -> WAITING -> EXTRACTING -> DECIDING -> DONE

- Invalid input is rejected before any browser resource is touched.
- Exactly one isolated browsing context is borrowed per call and returned
  on every exit path.
- Each engine attempt is bounded by search.engine_timeout_seconds; a
  timeout or error means "this engine returned nothing" and the next
  engine is tried.
- After an engine returns results, the run stops if a preferred engine was
  given or the engine is the registry's primary engine.

Callers always get a string back, never an exception.
"""

from __future__ import annotations

import asyncio
import itertools
import random
import time
from collections import Counter
from collections.abc import Awaitable, Callable
from typing import Any

from src.crawler.browser_session import (
    BrowserSessionManager,
    SessionState,
    get_browser_session_manager,
)
from src.crawler.driver import BrowserAutomationDriver
from src.crawler.stealth import StealthProfileProvider, pick_delay
from src.search.engine_config import EngineConfig, SearchEngineRegistry, get_engine_registry
from src.search.errors import (
    TECHNICAL_FAILURE_TEXT,
    BrowserNotReadyError,
    ContextAcquisitionError,
    EngineSearchError,
    SearchValidationError,
    no_results_text,
)
from src.search.extractor import ResultExtractor
from src.search.formatting import format_engine_results
from src.search.models import (
    EngineSearchResult,
    SearchOutcome,
    SearchRequest,
    SearchResultItem,
    SearchState,
)
from src.utils.config import Settings, get_settings
from src.utils.logging import LogContext, get_logger

logger = get_logger(__name__)


class SearchOrchestrator:
    """
    Runs searches against the registered engines.

    Example:
        orchestrator = SearchOrchestrator()
        text = await orchestrator.search("rust async runtime")
        text = await orchestrator.search("rust async runtime", preferred_engine="bing")

    Args:
        session_manager: Browser session manager. Defaults to the global one.
        registry: Engine registry. Defaults to the global one.
        profile_provider: Stealth profile source.
        extractor: Result extractor.
        rng: Random source for profiles and pacing delays.
        sleep: Awaitable sleep used for pacing (asyncio.sleep by default).
        settings: Settings. Defaults to get_settings().
    """

    def __init__(
        self,
        session_manager: BrowserSessionManager | None = None,
        registry: SearchEngineRegistry | None = None,
        profile_provider: StealthProfileProvider | None = None,
        extractor: ResultExtractor | None = None,
        rng: random.Random | None = None,
        sleep: Callable[[float], Awaitable[Any]] | None = None,
        settings: Settings | None = None,
    ):
        self._settings = settings or get_settings()
        self._sessions = session_manager or get_browser_session_manager()
        self._registry = registry or get_engine_registry()
        self._rng = rng or random.Random()
        self._profiles = profile_provider or StealthProfileProvider(rng=self._rng)
        self._extractor = extractor or ResultExtractor(self._settings.search.selector_timeout_ms)
        self._sleep = sleep or asyncio.sleep

        self._search_ids = itertools.count(1)

        # Metrics
        self._search_count = 0
        self._success_count = 0
        self._empty_count = 0
        self._rejected_count = 0
        self._not_ready_count = 0
        self._engine_failures: Counter[str] = Counter()

    @property
    def registry(self) -> SearchEngineRegistry:
        return self._registry

    @property
    def session_manager(self) -> BrowserSessionManager:
        return self._sessions

    async def search(self, query: str | None, preferred_engine: str | None = None) -> str:
        """Run a search and return the formatted text digest."""
        outcome = await self.run(query, preferred_engine)
        return outcome.text

    async def run(self, query: str | None, preferred_engine: str | None = None) -> SearchOutcome:
        """Run a search and return the full outcome."""
        search_id = next(self._search_ids)
        self._search_count += 1
        outcome = SearchOutcome(search_id=search_id, query=(query or "").strip())

        with LogContext(search_id=search_id):
            try:
                request = SearchRequest.create(
                    query,
                    preferred_engine,
                    self._registry,
                    max_length=self._settings.search.max_query_length,
                )
            except SearchValidationError as e:
                self._rejected_count += 1
                logger.info("Search rejected", error_code=e.code.value, error=e.message)
                return self._finish(outcome, e.to_text(), rejected=True)

            outcome.request = request

            if not self._sessions.is_ready:
                return self._not_ready(outcome)

            order = self._registry.resolve_engine_order(request.preferred_engine)
            logger.info(
                "Search started",
                query=request.query,
                preferred_engine=request.preferred_engine,
                engines=order,
            )

            profile = self._profiles.create_profile()
            try:
                async with self._sessions.context(profile) as driver:
                    await self._run_engines(driver, request, order, outcome)
            except BrowserNotReadyError:
                return self._not_ready(outcome)
            except ContextAcquisitionError as e:
                logger.error("Search aborted, no browsing context", error=e.message)
                return self._finish(outcome, TECHNICAL_FAILURE_TEXT)

            text = self._render(outcome)
            if outcome.ok:
                self._success_count += 1
            else:
                self._empty_count += 1

            logger.info(
                "Search completed",
                engines_attempted=outcome.engines_attempted,
                result_count=outcome.total_results,
            )
            return self._finish(outcome, text)

    # ------------------------------------------------------------------
    # Engine loop
    # ------------------------------------------------------------------

    async def _run_engines(
        self,
        driver: BrowserAutomationDriver,
        request: SearchRequest,
        order: list[str],
        outcome: SearchOutcome,
    ) -> None:
        for key in order:
            engine = self._registry[key]
            result = await self._attempt_engine(driver, engine, request, outcome)
            outcome.results.append(result)

            self._transition(outcome, SearchState.DECIDING)
            if self._should_stop(result, request):
                break

    def _should_stop(self, result: EngineSearchResult, request: SearchRequest) -> bool:
        if not result.has_results:
            return False
        return (
            request.preferred_engine is not None
            or result.engine_key == self._registry.primary_engine
        )

    async def _attempt_engine(
        self,
        driver: BrowserAutomationDriver,
        engine: EngineConfig,
        request: SearchRequest,
        outcome: SearchOutcome,
    ) -> EngineSearchResult:
        timeout = self._settings.search.engine_timeout_seconds
        started = time.monotonic()
        error: str | None = None
        items: list[SearchResultItem] = []

        with LogContext(engine=engine.key):
            try:
                items = await asyncio.wait_for(
                    self._search_engine(driver, engine, request.query, outcome),
                    timeout=timeout,
                )
            except TimeoutError:
                error = f"timed out after {timeout}s"
                self._engine_failures[engine.key] += 1
                logger.warning("Engine search timed out", timeout=timeout)
            except Exception as e:
                error = str(e) or type(e).__name__
                self._engine_failures[engine.key] += 1
                logger.warning(
                    "Engine search failed",
                    error=error,
                    error_type=type(e).__name__,
                )

        return EngineSearchResult(
            engine_key=engine.key,
            engine_name=engine.name,
            query=request.query,
            items=items,
            error=error,
            elapsed_ms=(time.monotonic() - started) * 1000,
        )

    async def _search_engine(
        self,
        driver: BrowserAutomationDriver,
        engine: EngineConfig,
        query: str,
        outcome: SearchOutcome,
    ) -> list[SearchResultItem]:
        url = engine.build_search_url(query)

        self._transition(outcome, SearchState.NAVIGATING)
        logger.debug("Navigating", url=url)
        try:
            await driver.navigate(url, self._settings.browser.navigation_timeout_ms)
        except TimeoutError:
            raise
        except Exception as e:
            raise EngineSearchError(engine.key, f"navigation failed: {e}") from e

        self._transition(outcome, SearchState.WAITING)
        delay = pick_delay(self._rng, engine.base_delay_ms, engine.jitter_ms)
        logger.debug("Pacing delay", delay_seconds=round(delay, 3))
        await self._sleep(delay)

        self._transition(outcome, SearchState.EXTRACTING)
        return await self._extractor.extract(driver, engine)

    # ------------------------------------------------------------------
    # Output
    # ------------------------------------------------------------------

    def _render(self, outcome: SearchOutcome) -> str:
        search_settings = self._settings.search
        blocks = [
            format_engine_results(
                result,
                self._registry[result.engine_key],
                url_max_length=search_settings.url_display_max_length,
                url_suffix_length=search_settings.url_suffix_length,
                word_break_window=search_settings.word_break_window,
            )
            for result in outcome.results
            if result.has_results
        ]
        text = "".join(blocks).rstrip()
        return text or no_results_text(outcome.query)

    def _not_ready(self, outcome: SearchOutcome) -> SearchOutcome:
        self._not_ready_count += 1
        state = self._sessions.state
        if state == SessionState.NOT_STARTED:
            self._sessions.start_in_background()
        logger.info("Search deferred, browser not ready", browser_state=state.value)
        return self._finish(outcome, BrowserNotReadyError(state.value).to_text())

    @staticmethod
    def _transition(outcome: SearchOutcome, state: SearchState) -> None:
        logger.debug("Search state", from_state=outcome.state.value, to_state=state.value)
        outcome.state = state

    @staticmethod
    def _finish(outcome: SearchOutcome, text: str, rejected: bool = False) -> SearchOutcome:
        outcome.text = text
        outcome.rejected = rejected
        SearchOrchestrator._transition(outcome, SearchState.DONE)
        return outcome

    def get_stats(self) -> dict[str, Any]:
        return {
            "searches": self._search_count,
            "successful": self._success_count,
            "empty": self._empty_count,
            "rejected": self._rejected_count,
            "not_ready": self._not_ready_count,
            "engine_failures": dict(self._engine_failures),
            "browser": self._sessions.get_stats(),
        }


# =============================================================================
# Factory Functions
# =============================================================================


_default_orchestrator: SearchOrchestrator | None = None


def get_search_orchestrator() -> SearchOrchestrator:
    """Get or create the default SearchOrchestrator instance."""
    global _default_orchestrator
    if _default_orchestrator is None:
        _default_orchestrator = SearchOrchestrator()
    return _default_orchestrator


async def web_search(query: str | None, engine: str | None = None) -> str:
    """Search the web and return a formatted text digest.

    Args:
        query: Free-text query (1-200 characters after trimming).
        engine: Engine to try first (e.g. "duckduckgo", "bing"). Optional.

    Returns:
        Formatted results, or a failure string starting with "❌".
    """
    return await get_search_orchestrator().search(query, engine)


async def cleanup_search_orchestrator() -> None:
    """Drop the default orchestrator and shut down its browser session."""
    global _default_orchestrator
    if _default_orchestrator is not None:
        await _default_orchestrator.session_manager.shutdown()
        _default_orchestrator = None


def reset_search_orchestrator() -> None:
    """Reset the default orchestrator. For testing purposes only."""
    global _default_orchestrator
    _default_orchestrator = None
