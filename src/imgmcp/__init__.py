"""img-mcp: an MCP server for image generation and editing with Gemini and Imagen."""

__version__ = "2.0.0"

from imgmcp.core import ImgMcpConfig, config  # noqa: E402

__all__ = ["ImgMcpConfig", "__version__", "config"]
