"""
Main entry point for Wren.
"""

import asyncio

from src.utils.config import get_settings
from src.utils.logging import configure_logging, get_logger

# Seconds the CLI waits for the browser before giving up
CLI_READY_TIMEOUT = 60.0


async def initialize() -> None:
    """Initialize the application."""
    settings = get_settings()
    configure_logging(log_level=settings.general.log_level)

    logger = get_logger(__name__)
    logger.info(
        "Wren initializing",
        version=settings.general.version,
        log_level=settings.general.log_level,
        backend=settings.browser.backend,
    )


async def shutdown() -> None:
    """Shutdown the application."""
    from src.search.orchestrator import cleanup_search_orchestrator

    logger = get_logger(__name__)
    logger.info("Wren shutting down")

    await cleanup_search_orchestrator()

    logger.info("Wren shutdown complete")


async def run_search(query: str, engine: str | None = None) -> str:
    """Run one search from the command line.

    Unlike the MCP server, the CLI waits (bounded) for the browser instead
    of answering "warming up". Input is validated first so a bad query
    never starts the browser.

    Args:
        query: Search query.
        engine: Engine to try first.

    Returns:
        Formatted results.
    """
    from src.search.errors import SearchValidationError
    from src.search.models import SearchRequest
    from src.search.orchestrator import get_search_orchestrator

    orchestrator = get_search_orchestrator()
    try:
        SearchRequest.create(
            query,
            engine,
            orchestrator.registry,
            max_length=get_settings().search.max_query_length,
        )
    except SearchValidationError as e:
        return e.to_text()

    await orchestrator.session_manager.wait_until_ready(CLI_READY_TIMEOUT)
    return await orchestrator.search(query, engine)


def list_engines() -> str:
    from src.search.engine_config import get_engine_registry

    registry = get_engine_registry()
    lines = []
    for key in registry.names():
        engine = registry[key]
        marker = " (primary)" if key == registry.primary_engine else ""
        lines.append(f"{engine.icon} {key}: {engine.name}{marker}")
    lines.append(f"Default order: {', '.join(registry.default_order)}")
    return "\n".join(lines)


def main() -> None:
    """Main entry point."""
    import argparse

    parser = argparse.ArgumentParser(description="Wren - Headless browser web search for agents")
    parser.add_argument(
        "command",
        choices=["search", "engines", "mcp"],
        help="Command to run",
    )
    parser.add_argument(
        "--query",
        "-q",
        type=str,
        help="Search query (for 'search' command)",
    )
    parser.add_argument(
        "--engine",
        "-e",
        type=str,
        default=None,
        help="Engine to try first (for 'search' command)",
    )

    args = parser.parse_args()

    async def async_main() -> None:
        await initialize()

        try:
            if args.command == "engines":
                print(list_engines())

            elif args.command == "search":
                if not args.query:
                    print("Error: --query is required for search command")
                    return
                print(await run_search(args.query, args.engine))

            elif args.command == "mcp":
                from src.mcp.server import run_server

                await run_server()

        finally:
            await shutdown()

    asyncio.run(async_main())


if __name__ == "__main__":
    main()
