"""
MCP Server implementation for Wren.
Exposes browser web search as tools that an LLM agent can call.

Tools:
- web_search: Search the web, returns a formatted text digest
- get_search_status: Browser readiness and search counters (JSON)
"""

import asyncio
import json
import uuid
from typing import Any

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import TextContent, Tool

from src.search.engine_config import get_engine_registry
from src.search.orchestrator import (
    cleanup_search_orchestrator,
    get_search_orchestrator,
    web_search,
)
from src.utils.logging import ensure_logging_configured, get_logger

ensure_logging_configured()
logger = get_logger(__name__)

# Create MCP server instance
app = Server("wren")


# ============================================================
# Tool Definitions
# ============================================================


def build_tools() -> list[Tool]:
    """Tool list; the engine enum comes from the loaded registry."""
    registry = get_engine_registry()
    engines = registry.names()

    return [
        Tool(
            name="web_search",
            title="Web Search",
            description=f"""Search the web with a real headless browser and return ranked results.

Each result has a title, a short snippet and a link. Engines are tried in order
({", ".join(registry.default_order)}); pass `engine` to try one engine first.

If the browser is still starting, the tool says so; retry after a few seconds.""",
            inputSchema={
                "type": "object",
                "properties": {
                    "query": {
                        "type": "string",
                        "description": "Search query (1-200 characters).",
                    },
                    "engine": {
                        "type": "string",
                        "enum": engines,
                        "description": "Search engine to try first. Optional.",
                    },
                },
                "required": ["query"],
            },
        ),
        Tool(
            name="get_search_status",
            title="Search Status",
            description="Browser readiness, open browsing contexts and search counters.",
            inputSchema={"type": "object", "properties": {}},
        ),
    ]


@app.list_tools()
async def list_tools() -> list[Tool]:
    """List available tools."""
    return build_tools()


@app.call_tool()
async def call_tool(name: str, arguments: dict[str, Any]) -> list[TextContent]:
    """Handle tool calls.

    Args:
        name: Tool name.
        arguments: Tool arguments.

    Returns:
        List of text content responses.
    """
    logger.info("Tool called", tool=name, arguments=arguments)

    try:
        text = await _dispatch_tool(name, arguments or {})
    except Exception as e:
        error_id = f"err_{uuid.uuid4().hex[:12]}"
        logger.error(
            "Tool internal error",
            tool=name,
            error=str(e),
            error_id=error_id,
            exc_info=True,
        )
        text = json.dumps(
            {"ok": False, "error_code": "INTERNAL_ERROR", "error_id": error_id},
            ensure_ascii=False,
            indent=2,
        )

    return [TextContent(type="text", text=text)]


async def _dispatch_tool(name: str, arguments: dict[str, Any]) -> str:
    handlers = {
        "web_search": _handle_web_search,
        "get_search_status": _handle_get_search_status,
    }

    handler = handlers.get(name)
    if handler is None:
        raise ValueError(f"Unknown tool: {name}")

    return await handler(arguments)


async def _handle_web_search(args: dict[str, Any]) -> str:
    return await web_search(args.get("query"), args.get("engine"))


async def _handle_get_search_status(args: dict[str, Any]) -> str:
    stats = get_search_orchestrator().get_stats()
    return json.dumps({"ok": True, **stats}, ensure_ascii=False, indent=2)


# ============================================================
# Server lifecycle
# ============================================================


async def run_server() -> None:
    """Run the MCP server.

    The browser launches in the background; web_search answers with a
    "warming up" message until it is ready.
    """
    logger.info("Starting Wren MCP server")

    orchestrator = get_search_orchestrator()
    orchestrator.session_manager.start_in_background()

    try:
        async with stdio_server() as (read_stream, write_stream):
            await app.run(
                read_stream,
                write_stream,
                app.create_initialization_options(),
            )
    finally:
        await cleanup_search_orchestrator()
        logger.info("Wren MCP server stopped")


def main() -> None:
    """Main entry point."""
    asyncio.run(run_server())


if __name__ == "__main__":
    main()
