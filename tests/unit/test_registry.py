"""Unit tests for the tool registry and its argument models."""

from __future__ import annotations

import asyncio
from types import SimpleNamespace
from typing import get_args

import pytest
from mcp.shared.exceptions import McpError
from mcp.types import INTERNAL_ERROR, INVALID_PARAMS, METHOD_NOT_FOUND

from imgmcp.core.errors import NotFound
from imgmcp.core.upstream import SUPPORTED_MODELS
from imgmcp.server.errors import NOT_FOUND
from imgmcp.server.models import EditImageArgs, ListImagesArgs, ModelName
from imgmcp.server.registry import ToolRegistry
from imgmcp.server.tools import registry as tool_registry

STATE = SimpleNamespace(secrets=("plain-secret-value",))


@pytest.fixture
def registry():
    registry = ToolRegistry()

    @registry.tool("echo", "Echo the arguments", ListImagesArgs)
    async def echo(state, args):
        return [args]

    @registry.tool("missing", "Always missing", ListImagesArgs)
    async def missing(state, args):
        raise NotFound("Image not found: x")

    @registry.tool("crash", "Unexpected failure", ListImagesArgs)
    async def crash(state, args):
        raise RuntimeError("/private/path plain-secret-value")

    return registry


class TestToolRegistry:
    """Verify tool registration and dispatch."""

    def test_list_tools_publishes_schema(self, registry):
        """Listed tools carry the argument JSON schema."""
        tools = {tool.name: tool for tool in registry.list_tools()}
        assert set(tools) == {"echo", "missing", "crash"}
        schema = tools["echo"].inputSchema
        assert schema["type"] == "object"
        assert set(schema["properties"]) == {"limit", "type"}
        assert tools["echo"].description == "Echo the arguments"

    def test_dispatch_parses_arguments(self, registry):
        """Handlers receive parsed argument models."""
        (parsed,) = asyncio.run(registry.dispatch("echo", {"limit": 3, "type": "edited"}, STATE))
        assert parsed.limit == 3
        assert parsed.type == "edited"

    def test_missing_arguments_use_defaults(self, registry):
        """Missing arguments fall back to model defaults."""
        (parsed,) = asyncio.run(registry.dispatch("echo", None, STATE))
        assert parsed.limit is None
        assert parsed.type == "all"

    def test_unknown_tool(self, registry):
        """Unknown tool names raise METHOD_NOT_FOUND."""
        with pytest.raises(McpError) as exc_info:
            asyncio.run(registry.dispatch("nope", {}, STATE))
        assert exc_info.value.error.code == METHOD_NOT_FOUND

    @pytest.mark.parametrize("arguments", [{"limit": 0}, {"type": "other"}, {"limit": "many"}])
    def test_invalid_arguments(self, registry, arguments):
        """Invalid arguments raise INVALID_PARAMS."""
        with pytest.raises(McpError) as exc_info:
            asyncio.run(registry.dispatch("echo", arguments, STATE))
        assert exc_info.value.error.code == INVALID_PARAMS

    def test_core_errors_are_mapped(self, registry):
        """Handler failures are mapped to MCP error codes."""
        with pytest.raises(McpError) as exc_info:
            asyncio.run(registry.dispatch("missing", {}, STATE))
        assert exc_info.value.error.code == NOT_FOUND

    def test_unexpected_errors_hide_details(self, registry):
        """Unexpected errors expose only their type."""
        with pytest.raises(McpError) as exc_info:
            asyncio.run(registry.dispatch("crash", {}, STATE))
        assert exc_info.value.error.code == INTERNAL_ERROR
        assert exc_info.value.error.message == "crash failed: RuntimeError"

    def test_reregistering_overwrites(self, registry):
        """Registering a name twice keeps the latest handler."""
        @registry.tool("echo", "Replacement", ListImagesArgs)
        async def replacement(state, args):
            return []

        assert registry.get("echo").description == "Replacement"
        assert len(registry) == 3


class TestServerTools:
    """Verify the server's tool set."""

    def test_all_tools_registered(self):
        """Every server tool is registered."""
        assert sorted(tool_registry.names()) == sorted(
            [
                "configure_gemini_token",
                "configure_generation_settings",
                "generate_image",
                "edit_image",
                "continue_editing",
                "list_images",
                "get_image_metadata",
                "delete_image",
                "search_images",
                "get_configuration_status",
                "get_last_image_info",
            ]
        )

    def test_model_enum_matches_supported_models(self):
        """The model enum lists the supported models."""
        assert get_args(ModelName) == SUPPORTED_MODELS

    def test_schema_uses_camel_case(self):
        """Published schemas use camelCase argument names."""
        schema = EditImageArgs.model_json_schema(by_alias=True)
        assert set(schema["properties"]) == {"imagePath", "prompt", "referenceImages"}
        assert set(schema["required"]) == {"imagePath", "prompt"}

    def test_arguments_accept_aliases(self):
        """Argument models accept camelCase names."""
        args = EditImageArgs.model_validate(
            {"imagePath": "/x.png", "prompt": "p", "referenceImages": ["/r.png"]}
        )
        assert args.image_path == "/x.png"
        assert args.reference_images == ["/r.png"]
