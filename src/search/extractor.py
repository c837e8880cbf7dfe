"""
Result extraction from a loaded result page.

Container lookup is an ordered chain of SelectorStrategy objects built
from the engine's result_container_selectors. The first strategy that
matches anything wins. Within each container, title and snippet use a
primary selector with a fallback.

Selector breakage is expected: a chain that matches nothing yields zero
results, and a container that fails to parse is skipped on its own.
"""

from __future__ import annotations

from urllib.parse import urljoin

from src.crawler.driver import BrowserAutomationDriver, ResultElement
from src.search.engine_config import EngineConfig
from src.search.formatting import normalize_whitespace
from src.search.models import SearchResultItem
from src.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_SELECTOR_TIMEOUT_MS = 5000


class SelectorStrategy:
    """One step of the container fallback chain."""

    def __init__(self, selector: str):
        self.selector = selector

    async def __call__(self, driver: BrowserAutomationDriver) -> list[ResultElement] | None:
        elements = await driver.query_selector_all(self.selector)
        return list(elements) if elements else None

    def __repr__(self) -> str:
        return f"SelectorStrategy({self.selector!r})"


def build_container_chain(engine: EngineConfig) -> list[SelectorStrategy]:
    return [SelectorStrategy(s) for s in engine.result_container_selectors]


def normalize_link(href: str | None, base_url: str = "") -> str | None:
    """Resolve href against base_url and keep only http(s) links."""
    if not href:
        return None

    href = href.strip()
    if href.startswith(("javascript:", "mailto:", "#")):
        return None

    if not href.startswith(("http://", "https://")):
        if not base_url:
            return None
        href = urljoin(base_url, href)
        if not href.startswith(("http://", "https://")):
            return None

    return href


async def _first_match(
    container: ResultElement,
    primary: str,
    fallback: str | None,
) -> ResultElement | None:
    element = await container.query_selector(primary)
    if element is None and fallback:
        element = await container.query_selector(fallback)
    return element


class ResultExtractor:
    """Pulls SearchResultItems out of the current page.

    Args:
        selector_timeout_ms: Budget for the result containers to appear.
    """

    def __init__(self, selector_timeout_ms: int = DEFAULT_SELECTOR_TIMEOUT_MS):
        self._selector_timeout_ms = selector_timeout_ms

    async def find_containers(
        self,
        driver: BrowserAutomationDriver,
        engine: EngineConfig,
    ) -> tuple[str | None, list[ResultElement]]:
        """Evaluate the container chain.

        A single bounded wait covers the whole chain (any selector appearing
        ends it); the chain is then evaluated in order.

        Returns:
            (winning selector, containers), or (None, []) when nothing matched.
        """
        chain = build_container_chain(engine)
        union = ", ".join(strategy.selector for strategy in chain)

        if not await driver.wait_for_selector(union, self._selector_timeout_ms):
            logger.info(
                "No result containers appeared",
                engine=engine.key,
                timeout_ms=self._selector_timeout_ms,
            )
            return None, []

        for strategy in chain:
            matched = await strategy(driver)
            if matched:
                logger.debug(
                    "Result containers matched",
                    engine=engine.key,
                    selector=strategy.selector,
                    count=len(matched),
                )
                return strategy.selector, matched

        return None, []

    async def extract(
        self,
        driver: BrowserAutomationDriver,
        engine: EngineConfig,
    ) -> list[SearchResultItem]:
        """Extract up to engine.max_results valid items, in page order."""
        selector, containers = await self.find_containers(driver, engine)
        if not containers:
            return []

        base_url = driver.current_url
        items: list[SearchResultItem] = []
        skipped = 0

        for index, container in enumerate(containers[: engine.max_results]):
            try:
                item = await self._extract_item(container, engine, base_url)
            except Exception as e:
                logger.debug(
                    "Skipping result container",
                    engine=engine.key,
                    index=index,
                    error=str(e),
                )
                skipped += 1
                continue

            if item is None:
                skipped += 1
                continue
            items.append(item)

        logger.info(
            "Results extracted",
            engine=engine.key,
            selector=selector,
            containers=len(containers),
            results=len(items),
            skipped=skipped,
        )
        return items

    async def _extract_item(
        self,
        container: ResultElement,
        engine: EngineConfig,
        base_url: str,
    ) -> SearchResultItem | None:
        title_el = await _first_match(
            container, engine.title_selector, engine.title_fallback_selector
        )
        if title_el is None:
            return None

        title = normalize_whitespace(await title_el.text_content())

        href = await title_el.get_attribute("href")
        if not href:
            anchor = await title_el.query_selector("a[href]") or await container.query_selector(
                "a[href]"
            )
            href = await anchor.get_attribute("href") if anchor is not None else None
        link = normalize_link(href, base_url)

        if not title or not link:
            return None

        snippet_el = await _first_match(
            container, engine.snippet_selector, engine.snippet_fallback_selector
        )
        snippet = normalize_whitespace(await snippet_el.text_content()) if snippet_el else ""

        return SearchResultItem(title=title, link=link, snippet=snippet)
