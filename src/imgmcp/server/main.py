"""img-mcp server entry point.

Runs the MCP server over stdio.  stdout carries the protocol stream, so all
logging goes to stderr.

Usage
-----
    $ img-mcp

or, from an MCP client configuration::

    "img-mcp": {
        "command": "img-mcp",
        "env": { "GEMINI_API_KEY": "your-api-key-here" }
    }
"""

from __future__ import annotations

import asyncio
import logging
import sys
from typing import Any

from mcp import types
from mcp.server.lowlevel import Server
from mcp.server.stdio import stdio_server

from imgmcp import __version__
from imgmcp.core.config import ImgMcpConfig

from . import prompts, resources
from .errors import to_mcp_error
from .registry import ToolRegistry
from .state import AppState, initialize_state
from .tools import registry as default_registry

logger = logging.getLogger(__name__)

SERVER_NAME = "img-mcp"


def configure_logging(level: str = "INFO") -> None:
    """Send log records to stderr with the standard format."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )


def build_server(state: AppState, registry: ToolRegistry = default_registry) -> Server:
    """Create the low-level MCP server and wire its handlers to ``state``."""
    server: Server = Server(SERVER_NAME, version=__version__)

    @server.list_tools()
    async def handle_list_tools() -> list[types.Tool]:
        return registry.list_tools()

    # Tool failures must reach the client as McpError with their code, so this
    # bypasses the call_tool decorator and its isError wrapping.
    async def handle_call_tool(request: types.CallToolRequest) -> types.ServerResult:
        content = await registry.dispatch(request.params.name, request.params.arguments, state)
        return types.ServerResult(types.CallToolResult(content=content, isError=False))

    server.request_handlers[types.CallToolRequest] = handle_call_tool

    @server.list_resources()
    async def handle_list_resources() -> list[types.Resource]:
        return resources.list_resources(state)

    @server.read_resource()
    async def handle_read_resource(uri: Any) -> list[Any]:
        try:
            return await resources.read_resource(state, str(uri))
        except Exception as e:
            raise to_mcp_error(e, "read_resource", state.secrets) from None

    @server.list_prompts()
    async def handle_list_prompts() -> list[types.Prompt]:
        return prompts.list_prompts()

    @server.get_prompt()
    async def handle_get_prompt(
        name: str, arguments: dict[str, str] | None
    ) -> types.GetPromptResult:
        try:
            return prompts.get_prompt(name, arguments)
        except Exception as e:
            raise to_mcp_error(e, "get_prompt", state.secrets) from None

    return server


async def serve(config: ImgMcpConfig | None = None) -> None:
    """Initialise the state and serve MCP over stdio until the client disconnects."""
    config = config or ImgMcpConfig()
    state = initialize_state(config)
    server = build_server(state)

    logger.info(f"{SERVER_NAME} {__version__} running on stdio")
    async with stdio_server() as (read_stream, write_stream):
        await server.run(read_stream, write_stream, server.create_initialization_options())


def main() -> None:
    """Console entry point."""
    config = ImgMcpConfig()
    configure_logging(config.log_level)
    try:
        asyncio.run(serve(config))
    except KeyboardInterrupt:
        logger.info("Shutting down")


if __name__ == "__main__":
    main()
