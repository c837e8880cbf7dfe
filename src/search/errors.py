"""
Error taxonomy for Wren web search.

Error codes follow the pattern:
- INVALID_*: Input validation errors (caller must fix the request)
- BROWSER_*: Browser lifecycle states (retry later)
- CONTEXT_*: Per-request resource errors
- ENGINE_*: Per-engine transient errors (recovered internally)

Every error carries a short user-facing message. Callers of the search
contract only ever see that message, never a stack trace.
"""

from enum import Enum
from typing import Any

ERROR_MARKER = "❌"


class SearchErrorCode(str, Enum):
    """Search error codes."""

    INVALID_QUERY = "INVALID_QUERY"
    """Query is empty or too long.
    Action: Re-call with a corrected query."""

    INVALID_ENGINE = "INVALID_ENGINE"
    """Preferred engine is not registered.
    Action: Use one of the available engine names."""

    BROWSER_NOT_READY = "BROWSER_NOT_READY"
    """Browser is still launching (or failed to launch).
    Action: Retry shortly."""

    BROWSER_LAUNCH_FAILED = "BROWSER_LAUNCH_FAILED"
    """Browser process could not be started."""

    CONTEXT_UNAVAILABLE = "CONTEXT_UNAVAILABLE"
    """An isolated browsing context could not be created for this request."""

    ENGINE_FAILED = "ENGINE_FAILED"
    """Navigation or extraction failed for one engine."""


class WrenSearchError(Exception):
    """Base exception for search errors."""

    code: SearchErrorCode = SearchErrorCode.ENGINE_FAILED

    def __init__(
        self,
        message: str,
        *,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_text(self) -> str:
        """Render as the user-facing failure string."""
        return f"{ERROR_MARKER} {self.message}"

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "ok": False,
            "error_code": self.code.value,
            "error": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result


# =============================================================================
# Input validation
# =============================================================================


class SearchValidationError(WrenSearchError):
    """Request rejected before any browser resource is touched."""

    code = SearchErrorCode.INVALID_QUERY


class EmptyQueryError(SearchValidationError):
    def __init__(self) -> None:
        super().__init__("Search query cannot be empty.")


class QueryTooLongError(SearchValidationError):
    def __init__(self, max_length: int, actual_length: int) -> None:
        super().__init__(
            f"Search query is too long (maximum {max_length} characters).",
            details={"max_length": max_length, "actual_length": actual_length},
        )


class UnknownEngineError(SearchValidationError):
    code = SearchErrorCode.INVALID_ENGINE

    def __init__(self, engine: str, available: list[str]) -> None:
        super().__init__(
            f"Invalid search engine. Available options: {', '.join(available)}",
            details={"engine": engine, "available": available},
        )
        self.engine = engine
        self.available = available


# =============================================================================
# Browser lifecycle
# =============================================================================


class BrowserNotReadyError(WrenSearchError):
    code = SearchErrorCode.BROWSER_NOT_READY

    def __init__(self, state: str = "starting") -> None:
        super().__init__(
            "The browser is warming up. Please try again in a few moments.",
            details={"state": state},
        )


class BrowserLaunchError(WrenSearchError):
    code = SearchErrorCode.BROWSER_LAUNCH_FAILED


class ContextAcquisitionError(WrenSearchError):
    code = SearchErrorCode.CONTEXT_UNAVAILABLE


class EngineSearchError(WrenSearchError):
    """Navigation or extraction failure for a single engine."""

    code = SearchErrorCode.ENGINE_FAILED

    def __init__(self, engine: str, message: str) -> None:
        super().__init__(message, details={"engine": engine})
        self.engine = engine


TECHNICAL_FAILURE_TEXT = f"{ERROR_MARKER} Search failed due to technical issues. Please try again."


def no_results_text(query: str) -> str:
    """Failure string for a valid search where every engine came back empty."""
    return f"{ERROR_MARKER} No results found from any search engine for: {query}"
