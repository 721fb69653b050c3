"""MCP server layer for img-mcp.

- models.py: pydantic argument models (tool input schemas)
- registry.py: ToolRegistry and dispatch
- tools.py: the tool handlers
- resources.py: gallery, configuration and image resources
- prompts.py: edit prompt templates
- errors.py: mapping of core errors onto MCP error codes
- state.py: AppState and startup initialisation
- main.py: stdio entry point
"""

from imgmcp.server.registry import ToolRegistry, ToolSpec
from imgmcp.server.state import AppState, initialize_state

__all__ = ["AppState", "ToolRegistry", "ToolSpec", "initialize_state"]
