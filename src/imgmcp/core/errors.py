"""Error taxonomy for the img-mcp core.

Every failure the core can raise is an :class:`ImgMcpError` subclass carrying
a ``kind`` (used by the server layer to pick an MCP error code) and a
``retryable`` flag (consulted by :mod:`imgmcp.core.retry`).

Messages are written for the person driving the MCP client: they name the
operation and the rule that failed, but never include allowed-root
directories or credentials.  Anything that may have come from outside the
process (upstream error bodies, OS error strings) goes through
:func:`redact_secrets` before it is logged or returned.
"""

from __future__ import annotations

import re
from collections.abc import Iterable

REDACTED = "[REDACTED]"

# Patterns resembling credentials.  Order matters: the assignment forms keep
# their key name and only mask the value.
_SECRET_PATTERNS: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"AIza[0-9A-Za-z_\-]{20,}"), REDACTED),
    (re.compile(r"\bsk-[0-9A-Za-z_\-]{16,}"), REDACTED),
    (re.compile(r"(?i)\b(bearer)\s+[0-9A-Za-z._\-~+/]+=*"), r"\1 " + REDACTED),
    (
        re.compile(r"(?i)\b(api[_-]?key|key|token|access_token|secret)(\s*[=:]\s*)[\"']?[^\s\"'&,;]+"),
        r"\1\2" + REDACTED,
    ),
)


def redact_secrets(text: str, secrets: Iterable[str | None] = ()) -> str:
    """Mask credential-like substrings in ``text``.

    Args:
        text: Message that may contain secrets.
        secrets: Literal secret values to mask in addition to the built-in
            patterns (e.g. the configured API key).

    Returns:
        The message with every match replaced by ``[REDACTED]``.
    """
    redacted = str(text)
    for secret in secrets:
        if secret and len(secret) >= 4:
            redacted = redacted.replace(secret, REDACTED)
    for pattern, replacement in _SECRET_PATTERNS:
        redacted = pattern.sub(replacement, redacted)
    return redacted


class ImgMcpError(Exception):
    """Base class for all errors raised by the img-mcp core."""

    kind: str = "internal"
    retryable: bool = False

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class PathDenied(ImgMcpError):
    """A path is outside the permitted directories or contains traversal."""

    kind = "path_denied"
    GENERIC_MESSAGE = "Access denied: the path is not within a permitted directory"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.GENERIC_MESSAGE)


class InvalidInput(ImgMcpError):
    """The caller passed invalid parameters; never retried."""

    kind = "invalid_input"


class NotFound(ImgMcpError):
    """A referenced record or file does not exist."""

    kind = "not_found"


class NotConfigured(ImgMcpError):
    """No API credential has been configured for the session."""

    kind = "invalid_state"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(
            message
            or "Gemini API token not configured. Use configure_gemini_token first."
        )


class NoPriorImage(ImgMcpError):
    """``continue_editing`` was called without a usable last image."""

    kind = "invalid_state"


class UpstreamFailure(ImgMcpError):
    """The image generation API failed.

    Attributes:
        transient: ``True`` for network blips, rate limits and server errors
            (retried), ``False`` for bad credentials, unknown models and
            rejected requests (propagated immediately).
        status_code: HTTP status reported by the API, when known.
    """

    kind = "upstream"

    def __init__(self, message: str, *, transient: bool, status_code: int | None = None) -> None:
        super().__init__(message)
        self.transient = transient
        self.status_code = status_code

    @property
    def retryable(self) -> bool:  # type: ignore[override]
        return self.transient


class PersistenceFailure(ImgMcpError):
    """The metadata file could not be written.

    The in-memory mutation that triggered the write has already been applied
    and is not rolled back.
    """

    kind = "persistence"
