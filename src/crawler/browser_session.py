"""
Browser session lifecycle for Wren.

One browser process per application, launched asynchronously at startup.
Every search borrows an isolated context (own cookies, storage, page)
and returns it when done, on every exit path.

Lifecycle:
    NOT_STARTED -> STARTING -> READY | FAILED
    any state   -> CLOSED (shutdown)

Example:
    manager = get_browser_session_manager()
    manager.start_in_background()
    ...
    async with manager.context(profile) as driver:
        await driver.navigate(url, timeout_ms=30000)
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import AsyncIterator
from enum import Enum
from typing import Any

from src.crawler.driver import BrowserAutomationDriver, BrowserBackend, create_backend
from src.crawler.stealth import StealthProfile
from src.search.errors import BrowserNotReadyError, ContextAcquisitionError
from src.utils.config import BrowserConfig, get_settings
from src.utils.logging import get_logger

logger = get_logger(__name__)


class SessionState(str, Enum):
    """Browser process state."""

    NOT_STARTED = "not_started"
    STARTING = "starting"
    READY = "ready"
    FAILED = "failed"
    CLOSED = "closed"


class BrowserSessionManager:
    """Owns the shared browser and hands out isolated browsing contexts.

    The raw browser handle never leaves this class. Callers receive a
    BrowserAutomationDriver bound to one fresh context.

    Args:
        backend: Browser backend. Defaults to the one selected by browser.backend.
        config: Browser configuration. Defaults to settings.
    """

    def __init__(
        self,
        backend: BrowserBackend | None = None,
        config: BrowserConfig | None = None,
    ) -> None:
        self._config = config or get_settings().browser
        self._backend = backend or create_backend(self._config)

        self._state = SessionState.NOT_STARTED
        self._last_error: str | None = None
        self._init_lock = asyncio.Lock()
        self._init_task: asyncio.Task[bool] | None = None

        # Bounds concurrently open contexts
        self._slots = asyncio.Semaphore(self._config.max_contexts)
        self._live: dict[int, BrowserAutomationDriver] = {}

        self._contexts_acquired = 0
        self._contexts_released = 0
        self._context_failures = 0

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_ready(self) -> bool:
        return self._state == SessionState.READY

    @property
    def active_contexts(self) -> int:
        return len(self._live)

    @property
    def backend_name(self) -> str:
        return self._backend.name

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(self) -> bool:
        """Launch the browser.

        Safe to call repeatedly; a READY manager returns immediately and a
        FAILED one retries the launch.

        Returns:
            True if the browser is ready.
        """
        async with self._init_lock:
            if self._state == SessionState.READY:
                return True
            if self._state == SessionState.CLOSED:
                logger.warning("Browser session already shut down")
                return False

            self._state = SessionState.STARTING
            logger.info("Launching browser", backend=self._backend.name)

            try:
                await asyncio.wait_for(
                    self._backend.launch(),
                    timeout=self._config.launch_timeout_ms / 1000,
                )
            except Exception as e:
                self._state = SessionState.FAILED
                self._last_error = str(e) or type(e).__name__
                logger.error(
                    "Browser launch failed",
                    backend=self._backend.name,
                    error=self._last_error,
                )
                with contextlib.suppress(Exception):
                    await self._backend.close()
                return False

            self._state = SessionState.READY
            self._last_error = None
            logger.info("Browser ready", backend=self._backend.name)
            return True

    def start_in_background(self) -> asyncio.Task[bool]:
        """Schedule initialize() without waiting for it.

        Returns:
            The launch task (reused while pending or after success).
        """
        if self._init_task is None or (
            self._init_task.done() and self._state == SessionState.FAILED
        ):
            self._init_task = asyncio.create_task(self.initialize(), name="wren-browser-launch")
        return self._init_task

    async def wait_until_ready(self, timeout: float) -> bool:
        """Wait (bounded) for the browser to become ready.

        Args:
            timeout: Maximum seconds to wait.

        Returns:
            True if ready within the timeout.
        """
        if self.is_ready:
            return True
        task = self.start_in_background()
        with contextlib.suppress(TimeoutError):
            await asyncio.wait_for(asyncio.shield(task), timeout=timeout)
        return self.is_ready

    async def shutdown(self) -> None:
        """Close live contexts and the browser. Idempotent."""
        if self._state == SessionState.CLOSED:
            return

        previous = self._state
        self._state = SessionState.CLOSED

        if self._init_task is not None and not self._init_task.done():
            self._init_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._init_task

        for driver in list(self._live.values()):
            await self.release_context(driver)

        if previous != SessionState.NOT_STARTED:
            try:
                await self._backend.close()
            except Exception as e:
                logger.warning("Error during browser shutdown", error=str(e))

        logger.info(
            "Browser session closed",
            contexts_acquired=self._contexts_acquired,
            contexts_released=self._contexts_released,
        )

    # ------------------------------------------------------------------
    # Contexts
    # ------------------------------------------------------------------

    async def acquire_context(self, profile: StealthProfile) -> BrowserAutomationDriver:
        """Create an isolated context with profile applied.

        Must be paired with release_context(), typically via context().

        Raises:
            BrowserNotReadyError: If the browser is not READY.
            ContextAcquisitionError: If no slot frees up in time or creation fails.
        """
        if not self.is_ready:
            raise BrowserNotReadyError(self._state.value)

        try:
            await asyncio.wait_for(
                self._slots.acquire(),
                timeout=self._config.context_acquire_timeout,
            )
        except TimeoutError as e:
            self._context_failures += 1
            raise ContextAcquisitionError(
                f"No browsing context available within {self._config.context_acquire_timeout}s"
            ) from e

        try:
            driver = await self._backend.new_context(profile)
        except Exception as e:
            self._slots.release()
            self._context_failures += 1
            logger.error("Failed to create browsing context", error=str(e))
            raise ContextAcquisitionError(f"Failed to create browsing context: {e}") from e
        except BaseException:
            # Cancelled while creating; no driver was handed out
            self._slots.release()
            raise

        self._live[id(driver)] = driver
        self._contexts_acquired += 1
        logger.debug("Browsing context acquired", active_contexts=len(self._live))
        return driver

    async def release_context(self, driver: BrowserAutomationDriver) -> None:
        """Close a context. A second release of the same driver is a no-op.

        Close failures are logged, never raised.
        """
        if self._live.pop(id(driver), None) is None:
            return

        self._contexts_released += 1
        try:
            await driver.close()
        except Exception as e:
            logger.warning("Failed to close browsing context", error=str(e))
        finally:
            self._slots.release()

        logger.debug("Browsing context released", active_contexts=len(self._live))

    @contextlib.asynccontextmanager
    async def context(self, profile: StealthProfile) -> AsyncIterator[BrowserAutomationDriver]:
        """Borrow a context for the duration of the block."""
        driver = await self.acquire_context(profile)
        try:
            yield driver
        finally:
            await self.release_context(driver)

    def get_stats(self) -> dict[str, Any]:
        return {
            "backend": self._backend.name,
            "state": self._state.value,
            "active_contexts": len(self._live),
            "max_contexts": self._config.max_contexts,
            "contexts_acquired": self._contexts_acquired,
            "contexts_released": self._contexts_released,
            "context_failures": self._context_failures,
            "last_error": self._last_error,
        }


# =============================================================================
# Global instance
# =============================================================================

_session_manager: BrowserSessionManager | None = None


def get_browser_session_manager() -> BrowserSessionManager:
    """Get or create the process-wide BrowserSessionManager."""
    global _session_manager
    if _session_manager is None:
        _session_manager = BrowserSessionManager()
    return _session_manager


async def shutdown_browser_session_manager() -> None:
    """Shut down and drop the process-wide BrowserSessionManager."""
    global _session_manager
    if _session_manager is not None:
        await _session_manager.shutdown()
        _session_manager = None


def reset_browser_session_manager() -> None:
    """Reset the global instance. For testing purposes only."""
    global _session_manager
    _session_manager = None
