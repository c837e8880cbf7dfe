"""
Wren search module.

Engine registry:
    SearchEngineRegistry - Read-only engine definitions from config/engines.yaml
    get_engine_registry() - Get global registry

Extraction and rendering:
    ResultExtractor - Selector-chain result extraction
    format_engine_results(), truncate_snippet(), shorten_url()

The search entry point lives in src.search.orchestrator:
    web_search(query, engine=None) -> str
"""

from src.search.engine_config import (
    EngineConfig,
    SearchEngineRegistry,
    get_engine_registry,
    reset_engine_registry,
)
from src.search.errors import (
    BrowserNotReadyError,
    ContextAcquisitionError,
    EngineSearchError,
    SearchErrorCode,
    SearchValidationError,
    UnknownEngineError,
    WrenSearchError,
)
from src.search.extractor import ResultExtractor, SelectorStrategy
from src.search.formatting import format_engine_results, shorten_url, truncate_snippet
from src.search.models import (
    EngineSearchResult,
    SearchOutcome,
    SearchRequest,
    SearchResultItem,
    SearchState,
)

__all__ = [
    # Registry
    "EngineConfig",
    "SearchEngineRegistry",
    "get_engine_registry",
    "reset_engine_registry",
    # Errors
    "WrenSearchError",
    "SearchErrorCode",
    "SearchValidationError",
    "UnknownEngineError",
    "BrowserNotReadyError",
    "ContextAcquisitionError",
    "EngineSearchError",
    # Extraction / rendering
    "ResultExtractor",
    "SelectorStrategy",
    "format_engine_results",
    "truncate_snippet",
    "shorten_url",
    # Models
    "SearchRequest",
    "SearchResultItem",
    "EngineSearchResult",
    "SearchOutcome",
    "SearchState",
]
