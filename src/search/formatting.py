"""
Text rendering of search results.

Output per engine:

    🦆 **DuckDuckGo Results for: rust async**

    **1. Title**
    📝 Snippet
    🔗 https://example.com/page

Snippets are truncated to the engine's display length and long links are
shortened to host + "…" + tail.
"""

from urllib.parse import urlsplit

from src.search.engine_config import EngineConfig
from src.search.models import EngineSearchResult

ELLIPSIS = "…"

DEFAULT_URL_MAX_LENGTH = 100
DEFAULT_URL_SUFFIX_LENGTH = 40
DEFAULT_WORD_BREAK_WINDOW = 1200

_WHITESPACE = (" ", "\n", "\t")


def normalize_whitespace(text: str | None) -> str:
    """Collapse runs of whitespace to single spaces and strip."""
    if not text:
        return ""
    return " ".join(text.split())


def truncate_snippet(
    text: str,
    limit: int,
    word_break_window: int = DEFAULT_WORD_BREAK_WINDOW,
) -> str:
    """Cut text to at most limit characters, ellipsis included.

    The cut lands on the last whitespace before the limit when that
    whitespace falls within the trailing word_break_window; otherwise the
    text is hard-cut. Text already within the limit is returned as is, so
    truncating twice gives the same result as truncating once.

    Args:
        text: Snippet text.
        limit: Maximum length of the result.
        word_break_window: How far back from the limit a word break may be.

    Returns:
        Truncated text.
    """
    if len(text) <= limit:
        return text

    budget = limit - len(ELLIPSIS)
    if budget <= 0:
        return text[:limit]

    cut = max(text.rfind(ch, 0, budget + 1) for ch in _WHITESPACE)
    if cut > 0 and cut > budget - word_break_window:
        head = text[:cut]
    else:
        head = text[:budget]

    return head.rstrip() + ELLIPSIS


def shorten_url(
    url: str,
    max_length: int = DEFAULT_URL_MAX_LENGTH,
    suffix_length: int = DEFAULT_URL_SUFFIX_LENGTH,
) -> str:
    """Shorten long URLs for display as host + "…" + trailing suffix."""
    if len(url) <= max_length:
        return url

    try:
        host = urlsplit(url).hostname
    except ValueError:
        host = None

    if host:
        return f"{host}{ELLIPSIS}{url[-suffix_length:]}"
    return url[:max_length] + ELLIPSIS


def format_engine_results(
    result: EngineSearchResult,
    engine: EngineConfig,
    *,
    url_max_length: int = DEFAULT_URL_MAX_LENGTH,
    url_suffix_length: int = DEFAULT_URL_SUFFIX_LENGTH,
    word_break_window: int = DEFAULT_WORD_BREAK_WINDOW,
) -> str:
    """Render one engine's results as a text block (empty if no items)."""
    if not result.has_results:
        return ""

    lines = [f"{engine.icon} **{engine.name} Results for: {result.query}**\n\n"]
    for rank, item in enumerate(result.items, start=1):
        lines.append(f"**{rank}. {item.title}**\n")
        if item.snippet:
            snippet = truncate_snippet(
                item.snippet, engine.snippet_display_length, word_break_window
            )
            lines.append(f"📝 {snippet}\n")
        lines.append(f"🔗 {shorten_url(item.link, url_max_length, url_suffix_length)}\n\n")
    return "".join(lines)
