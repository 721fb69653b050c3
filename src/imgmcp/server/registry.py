"""Tool registry and dispatch.

Every MCP tool is a :class:`ToolSpec`: a name, a description, a pydantic
model describing its arguments and an async handler.  The registry publishes
the tools for ``tools/list`` and routes ``tools/call`` requests:

1. Look up the tool by name (unknown name -> ``METHOD_NOT_FOUND``)
2. Validate the raw arguments against the tool's model
   (failure -> ``InvalidInput``)
3. Run the handler with the application state and the parsed arguments
4. Map any exception through :func:`~imgmcp.server.errors.to_mcp_error`

Usage
-----
Registering a tool:

    >>> registry = ToolRegistry()
    >>> @registry.tool("list_images", "List images", ListImagesArgs)
    ... async def list_images(state, args):
    ...     ...

Dispatching a call:

    >>> content = await registry.dispatch("list_images", {"limit": 5}, state)
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from mcp import types
from pydantic import BaseModel, ValidationError

from imgmcp.core.errors import InvalidInput

from .errors import to_mcp_error, unknown_method

if TYPE_CHECKING:
    from .state import AppState

logger = logging.getLogger(__name__)

ToolContent = Sequence[types.TextContent | types.ImageContent | types.EmbeddedResource]
ToolHandler = Callable[["AppState", Any], Awaitable[ToolContent]]


def describe_validation_error(error: ValidationError) -> str:
    """Short, value-free description of a pydantic validation error."""
    problems = []
    for item in error.errors():
        location = ".".join(str(part) for part in item["loc"]) or "arguments"
        problems.append(f"{location}: {item['msg']}")
    return "Invalid arguments: " + "; ".join(problems)


@dataclass(frozen=True)
class ToolSpec:
    """Definition of one tool."""

    name: str
    description: str
    arguments: type[BaseModel]
    handler: ToolHandler

    def to_tool(self) -> types.Tool:
        return types.Tool(
            name=self.name,
            description=self.description,
            inputSchema=self.arguments.model_json_schema(by_alias=True),
        )

    def parse(self, arguments: dict[str, Any] | None) -> BaseModel:
        """Validate raw arguments.

        Raises:
            InvalidInput: If the arguments do not match the model.
        """
        try:
            return self.arguments.model_validate(arguments or {})
        except ValidationError as e:
            raise InvalidInput(describe_validation_error(e)) from None


class ToolRegistry:
    """Registry of the tools exposed by the server."""

    def __init__(self) -> None:
        self._tools: dict[str, ToolSpec] = {}

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def register(self, spec: ToolSpec) -> None:
        if spec.name in self._tools:
            logger.warning(f"Tool '{spec.name}' is already registered, overwriting")
        self._tools[spec.name] = spec
        logger.debug(f"Registered tool: {spec.name}")

    def tool(
        self,
        name: str,
        description: str,
        arguments: type[BaseModel],
    ) -> Callable[[ToolHandler], ToolHandler]:
        """Decorator registering an async handler as a tool."""

        def decorator(handler: ToolHandler) -> ToolHandler:
            self.register(ToolSpec(name, description, arguments, handler))
            return handler

        return decorator

    def get(self, name: str) -> ToolSpec | None:
        return self._tools.get(name)

    def names(self) -> list[str]:
        return list(self._tools)

    def list_tools(self) -> list[types.Tool]:
        return [spec.to_tool() for spec in self._tools.values()]

    async def dispatch(
        self,
        name: str,
        arguments: dict[str, Any] | None,
        state: AppState,
    ) -> list[Any]:
        """Run the tool ``name`` with ``arguments``.

        Args:
            name: Tool name from the ``tools/call`` request.
            arguments: Raw JSON arguments.
            state: Application state passed to the handler.

        Returns:
            The handler's content list.

        Raises:
            McpError: For unknown tools and for every handler failure.
        """
        spec = self._tools.get(name)
        if spec is None:
            logger.error(f"Unknown tool requested: {name}")
            raise unknown_method("tool", name)

        # Argument values may hold the API key; log the keys only.
        logger.info(f"Tool call: {name} (arguments: {sorted((arguments or {}).keys())})")
        try:
            parsed = spec.parse(arguments)
            return list(await spec.handler(state, parsed))
        except Exception as e:
            raise to_mcp_error(e, name, state.secrets) from None
