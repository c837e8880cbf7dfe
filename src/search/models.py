"""
Search data model for Wren.

- SearchRequest: validated, immutable query + optional preferred engine
- SearchResultItem: one extracted result
- EngineSearchResult: items from one engine attempt
- SearchOutcome: everything one orchestrator run produced
"""

from enum import Enum
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field

from src.search.errors import EmptyQueryError, QueryTooLongError

if TYPE_CHECKING:
    from src.search.engine_config import SearchEngineRegistry


class SearchRequest(BaseModel):
    """A query that passed validation. Never mutated."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    query: str = Field(..., min_length=1, description="Trimmed query text")
    preferred_engine: str | None = Field(
        default=None, description="Normalized registry key of the engine to try first"
    )

    @classmethod
    def create(
        cls,
        query: str | None,
        preferred_engine: str | None,
        registry: "SearchEngineRegistry",
        max_length: int = 200,
    ) -> "SearchRequest":
        """Validate raw input.

        Raises:
            EmptyQueryError: Query missing or blank.
            QueryTooLongError: Trimmed query longer than max_length.
            UnknownEngineError: preferred_engine is not registered.
        """
        text = (query or "").strip()
        if not text:
            raise EmptyQueryError()
        if len(text) > max_length:
            raise QueryTooLongError(max_length, len(text))

        engine = None
        if preferred_engine is not None and preferred_engine.strip():
            engine = registry.validate_engine_name(preferred_engine)

        return cls(query=text, preferred_engine=engine)


class SearchResultItem(BaseModel):
    """One result from a result listing."""

    model_config = ConfigDict(frozen=True)

    title: str = Field(..., description="Result title")
    link: str = Field(..., description="Absolute result URL")
    snippet: str = Field(default="", description="Text preview (may be empty)")

    @property
    def is_valid(self) -> bool:
        return bool(self.title.strip()) and bool(self.link.strip())

    def to_dict(self) -> dict[str, Any]:
        return {"title": self.title, "link": self.link, "snippet": self.snippet}


class EngineSearchResult(BaseModel):
    """Items from one engine attempt, in page order."""

    engine_key: str
    engine_name: str
    query: str
    items: list[SearchResultItem] = Field(default_factory=list)
    error: str | None = Field(default=None, description="Why the attempt yielded nothing")
    elapsed_ms: float = Field(default=0.0, ge=0.0)

    @property
    def has_results(self) -> bool:
        return len(self.items) > 0

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict[str, Any]:
        return {
            "engine": self.engine_key,
            "query": self.query,
            "items": [i.to_dict() for i in self.items],
            "error": self.error,
            "elapsed_ms": self.elapsed_ms,
        }


class SearchState(str, Enum):
    """Orchestrator states, in the order a run passes through them."""

    VALIDATING = "validating"
    NAVIGATING = "navigating"
    WAITING = "waiting"
    EXTRACTING = "extracting"
    DECIDING = "deciding"
    DONE = "done"


class SearchOutcome(BaseModel):
    """Result of one orchestrator run."""

    search_id: int
    query: str
    request: SearchRequest | None = None
    results: list[EngineSearchResult] = Field(default_factory=list)
    text: str = ""
    state: SearchState = SearchState.VALIDATING
    rejected: bool = False

    @property
    def engines_attempted(self) -> list[str]:
        return [r.engine_key for r in self.results]

    @property
    def total_results(self) -> int:
        return sum(len(r.items) for r in self.results)

    @property
    def ok(self) -> bool:
        return self.total_results > 0
