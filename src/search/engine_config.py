"""
Search Engine Registry.

Static, per-engine knowledge loaded once from config/engines.yaml:
- Result-page URL template
- Ordered result-container selectors (first match wins)
- Title/snippet selectors with fallbacks
- Result limits, snippet display length and pacing delays

When the YAML file is absent, the built-in DuckDuckGo and Bing
definitions are used. Entries are frozen after load and never mutated.
"""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Any
from urllib.parse import quote_plus

import yaml
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from src.search.errors import UnknownEngineError
from src.utils.config import get_config_dir, load_yaml_with_local_override
from src.utils.logging import get_logger

logger = get_logger(__name__)


# =============================================================================
# Built-in engine definitions
# =============================================================================

BUILTIN_ENGINES: dict[str, dict[str, Any]] = {
    "duckduckgo": {
        "name": "DuckDuckGo",
        "icon": "🦆",
        "search_url": "https://duckduckgo.com/?q={query}&t=h_&ia=web",
        "result_container_selectors": [
            "[data-testid='result']",
            ".react-results--main .result",
            "#links .result",
            "article[data-testid='result']",
            ".web-result",
        ],
        "title_selector": "[data-testid='result-title-a']",
        "title_fallback_selector": "h2 a, h3 a, .result__title a",
        "snippet_selector": "[data-testid='result-snippet']",
        "snippet_fallback_selector": ".result__snippet, .snippet, p",
        "max_results": 8,
        "snippet_display_length": 1500,
        "base_delay_ms": 3000,
        "jitter_ms": 2000,
    },
    "bing": {
        "name": "Bing",
        "icon": "🔍",
        "search_url": "https://www.bing.com/search?q={query}&form=QBLH",
        "result_container_selectors": [
            ".b_algo",
            "#b_results .b_algo",
            ".b_searchResult",
            "[data-bm]",
        ],
        "title_selector": "h2 a",
        "title_fallback_selector": ".b_title a, h2 a, h3 a",
        "snippet_selector": ".b_caption p",
        "snippet_fallback_selector": ".b_caption, .b_snippet, .b_dList",
        "max_results": 6,
        "snippet_display_length": 1255,
        "base_delay_ms": 3500,
        "jitter_ms": 2000,
    },
}

BUILTIN_DEFAULT_ORDER: list[str] = ["duckduckgo", "bing"]


# =============================================================================
# Schema Models
# =============================================================================


class EngineConfig(BaseModel):
    """Immutable configuration for one search engine."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    key: str = Field(..., description="Registry key (lowercase)")
    name: str = Field(..., description="Display name")
    icon: str = Field(default="🔍", description="Marker used in result headers")
    search_url: str = Field(..., description="URL template containing {query}")
    result_container_selectors: tuple[str, ...] = Field(..., min_length=1)
    title_selector: str
    title_fallback_selector: str | None = None
    snippet_selector: str
    snippet_fallback_selector: str | None = None
    max_results: int = Field(default=8, ge=1, le=50)
    snippet_display_length: int = Field(default=1500, ge=20)
    base_delay_ms: int = Field(default=3000, ge=0)
    jitter_ms: int = Field(default=2000, ge=0)

    @field_validator("key")
    @classmethod
    def normalize_key(cls, v: str) -> str:
        return v.strip().lower()

    @field_validator("search_url")
    @classmethod
    def validate_search_url(cls, v: str) -> str:
        if "{query}" not in v:
            raise ValueError("search_url must contain a {query} placeholder")
        return v

    @field_validator("result_container_selectors", mode="before")
    @classmethod
    def validate_selectors(cls, v: Any) -> Any:
        if isinstance(v, str):
            return (v,)
        return v

    def build_search_url(self, query: str) -> str:
        """Build the result-page URL with the URL-encoded query."""
        return self.search_url.replace("{query}", quote_plus(query))


class EngineRegistrySchema(BaseModel):
    """Root schema for engines.yaml."""

    default_order: list[str] = Field(default_factory=lambda: list(BUILTIN_DEFAULT_ORDER))
    primary_engine: str | None = None
    engines: dict[str, EngineConfig] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def inject_keys(cls, data: Any) -> Any:
        """Fill each engine's key from its mapping key."""
        if isinstance(data, dict) and isinstance(data.get("engines"), dict):
            engines = {}
            for name, engine_data in data["engines"].items():
                if isinstance(engine_data, dict):
                    engine_data = {"key": name, **engine_data}
                engines[str(name).lower()] = engine_data
            data = {**data, "engines": engines}
        return data

    @model_validator(mode="after")
    def validate_order(self) -> EngineRegistrySchema:
        if not self.engines:
            raise ValueError("at least one engine must be defined")
        self.default_order = [e.lower() for e in self.default_order]
        for engine in self.default_order:
            if engine not in self.engines:
                raise ValueError(f"default_order engine '{engine}' is not defined")
        if not self.default_order:
            self.default_order = list(self.engines)
        if self.primary_engine is not None:
            self.primary_engine = self.primary_engine.lower()
            if self.primary_engine not in self.engines:
                raise ValueError(f"primary_engine '{self.primary_engine}' is not defined")
        return self


# =============================================================================
# Registry
# =============================================================================


class SearchEngineRegistry:
    """
    Read-only registry of search engines.

    Usage:
        registry = get_engine_registry()

        engine = registry.get("DuckDuckGo")          # case-insensitive
        key = registry.validate_engine_name("bing")  # raises UnknownEngineError
        order = registry.resolve_engine_order("bing")  # ["bing", "duckduckgo"]
    """

    def __init__(self, schema: EngineRegistrySchema):
        self._engines: dict[str, EngineConfig] = dict(schema.engines)
        self._default_order: tuple[str, ...] = tuple(schema.default_order)
        self._primary = schema.primary_engine or self._default_order[0]

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SearchEngineRegistry:
        return cls(EngineRegistrySchema(**data))

    @classmethod
    def builtin(cls) -> SearchEngineRegistry:
        return cls.from_dict({"default_order": BUILTIN_DEFAULT_ORDER, "engines": BUILTIN_ENGINES})

    @classmethod
    def load(cls, config_dir: Path | str | None = None) -> SearchEngineRegistry:
        """Load engines.yaml (with local.yaml overrides) or fall back to built-ins.

        Args:
            config_dir: Configuration directory. Defaults to WREN_CONFIG_DIR.

        Returns:
            Loaded registry.
        """
        config_dir = Path(config_dir) if config_dir is not None else get_config_dir()
        path = config_dir / "engines.yaml"

        if not path.exists():
            logger.warning("Engine config not found, using built-in engines", path=str(path))
            return cls.builtin()

        try:
            data = load_yaml_with_local_override(config_dir, "engines.yaml", "engines")
            registry = cls.from_dict(data)
        except yaml.YAMLError as e:
            logger.error("Failed to parse engine config YAML", error=str(e), path=str(path))
            return cls.builtin()
        except ValidationError as e:
            logger.error(
                "Invalid engine config, using built-in engines",
                error_count=e.error_count(),
                errors=[err["msg"] for err in e.errors()],
                path=str(path),
            )
            return cls.builtin()

        logger.info(
            "Engine config loaded",
            path=str(path),
            engines=registry.names(),
            default_order=list(registry.default_order),
            primary_engine=registry.primary_engine,
        )
        return registry

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    @property
    def default_order(self) -> tuple[str, ...]:
        return self._default_order

    @property
    def primary_engine(self) -> str:
        """Engine whose success ends a search that had no preferred engine."""
        return self._primary

    def names(self) -> list[str]:
        return list(self._engines)

    def get(self, name: str) -> EngineConfig | None:
        return self._engines.get(name.strip().lower())

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.get(name) is not None

    def __getitem__(self, name: str) -> EngineConfig:
        engine = self.get(name)
        if engine is None:
            raise UnknownEngineError(name, self.names())
        return engine

    def validate_engine_name(self, name: str) -> str:
        """Return the normalized registry key for name.

        Raises:
            UnknownEngineError: If no engine is registered under name.
        """
        key = name.strip().lower()
        if key not in self._engines:
            raise UnknownEngineError(name, self.names())
        return key

    def resolve_engine_order(self, preferred: str | None = None) -> list[str]:
        """Engines to try, in order.

        The preferred engine (if any) goes first, followed by the default
        order with duplicates removed.
        """
        order: list[str] = []
        if preferred is not None:
            order.append(self.validate_engine_name(preferred))
        for key in self._default_order:
            if key not in order:
                order.append(key)
        return order


# =============================================================================
# Module-level singleton access
# =============================================================================

_registry_instance: SearchEngineRegistry | None = None
_registry_lock = threading.Lock()


def get_engine_registry() -> SearchEngineRegistry:
    """Get the process-wide engine registry (loaded on first use)."""
    global _registry_instance

    if _registry_instance is None:
        with _registry_lock:
            if _registry_instance is None:
                _registry_instance = SearchEngineRegistry.load()

    return _registry_instance


def reset_engine_registry() -> None:
    """Reset the singleton instance (for testing)."""
    global _registry_instance

    with _registry_lock:
        _registry_instance = None
