"""Mapping of core errors onto MCP error codes.

This is the single place where errors leave the server.  Every message is
redacted here, and the full (redacted) detail is logged, so call sites never
need to sanitise ad hoc.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from mcp.shared.exceptions import McpError
from mcp.types import (
    INTERNAL_ERROR,
    INVALID_PARAMS,
    INVALID_REQUEST,
    METHOD_NOT_FOUND,
    ErrorData,
)

from imgmcp.core.errors import ImgMcpError, redact_secrets

logger = logging.getLogger(__name__)

# MCP's code for "resource not found"; also used for unknown image ids.
NOT_FOUND = -32002

_CODES_BY_KIND = {
    "path_denied": INVALID_PARAMS,
    "invalid_input": INVALID_PARAMS,
    "not_found": NOT_FOUND,
    "invalid_state": INVALID_REQUEST,
    "upstream": INTERNAL_ERROR,
    "persistence": INTERNAL_ERROR,
}


def mcp_error(code: int, message: str) -> McpError:
    return McpError(ErrorData(code=code, message=message))


def unknown_method(kind: str, name: str) -> McpError:
    return mcp_error(METHOD_NOT_FOUND, f"Unknown {kind}: {name}")


def to_mcp_error(
    error: BaseException,
    operation: str,
    secrets: Iterable[str | None] = (),
) -> McpError:
    """Convert any exception raised by ``operation`` into an ``McpError``.

    Args:
        error: The exception to convert.
        operation: Tool, resource or prompt name, used in the message.
        secrets: Literal secret values to redact in addition to the
            built-in credential patterns.

    Returns:
        ``McpError`` with a sanitised message and the matching code.
    """
    secrets = tuple(secrets)

    if isinstance(error, McpError):
        message = redact_secrets(error.error.message, secrets)
        logger.error(f"{operation} failed (code {error.error.code}): {message}")
        return mcp_error(error.error.code, message)

    if isinstance(error, ImgMcpError):
        code = _CODES_BY_KIND.get(error.kind, INTERNAL_ERROR)
        message = redact_secrets(error.message, secrets)
        logger.error(f"{operation} failed ({error.kind}): {message}")
        if code == INTERNAL_ERROR:
            message = f"{operation} failed: {message}"
        return mcp_error(code, message)

    # Unexpected exceptions may carry OS paths; only the type is returned.
    logger.error(f"{operation} failed: {type(error).__name__}: {redact_secrets(str(error), secrets)}")
    return mcp_error(INTERNAL_ERROR, f"{operation} failed: {type(error).__name__}")
