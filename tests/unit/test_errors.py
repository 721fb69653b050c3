"""Tests for error redaction and the MCP error mapping.

Tests cover:
- redact_secrets() on each credential pattern and on explicit values.
- to_mcp_error() codes per error kind.
- Unexpected exceptions surface only their type.
"""

from __future__ import annotations

import pytest
from mcp.shared.exceptions import McpError
from mcp.types import INTERNAL_ERROR, INVALID_PARAMS, INVALID_REQUEST

from imgmcp.core.errors import (
    REDACTED,
    InvalidInput,
    NoPriorImage,
    NotConfigured,
    NotFound,
    PathDenied,
    PersistenceFailure,
    UpstreamFailure,
    redact_secrets,
)
from imgmcp.server.errors import NOT_FOUND, mcp_error, to_mcp_error

GOOGLE_KEY = "AIzaSyA1234567890abcdefghijklmnopqrstu"


class TestRedactSecrets:
    """Verify secret redaction in free text."""

    def test_google_api_key(self):
        """Google API keys are replaced."""
        redacted = redact_secrets(f"request failed for {GOOGLE_KEY}")
        assert GOOGLE_KEY not in redacted
        assert REDACTED in redacted

    def test_sk_style_key(self):
        """sk- style keys are replaced."""
        assert "sk-abcdefghijklmnopqrstuvwx" not in redact_secrets(
            "using sk-abcdefghijklmnopqrstuvwx"
        )

    def test_bearer_token(self):
        """Bearer tokens are replaced."""
        redacted = redact_secrets("Authorization: Bearer abc.def.ghi")
        assert "abc.def.ghi" not in redacted
        assert "Bearer" in redacted

    @pytest.mark.parametrize(
        "text,secret",
        [
            ("https://host/v1?key=s3cr3tvalue", "s3cr3tvalue"),
            ("api_key=hunter22", "hunter22"),
            ("token: 'abcd1234'", "abcd1234"),
        ],
    )
    def test_assignments_keep_name(self, text, secret):
        """key=value assignments keep the name and lose the value."""
        redacted = redact_secrets(text)
        assert secret not in redacted
        assert REDACTED in redacted

    def test_explicit_secret_values(self):
        """Explicitly listed secrets are replaced wherever they appear."""
        assert redact_secrets("the value plainsecret leaked", ["plainsecret"]) == (
            f"the value {REDACTED} leaked"
        )

    def test_plain_text_is_unchanged(self):
        """Text without secrets passes through untouched."""
        message = "Prompt cannot be empty"
        assert redact_secrets(message) == message


class TestToMcpError:
    """Verify mapping of failures to MCP error codes."""

    @pytest.mark.parametrize(
        "error,code",
        [
            (InvalidInput("bad"), INVALID_PARAMS),
            (PathDenied(), INVALID_PARAMS),
            (NotConfigured(), INVALID_REQUEST),
            (NoPriorImage("none"), INVALID_REQUEST),
            (NotFound("Image not found: x"), NOT_FOUND),
            (UpstreamFailure("boom", transient=True), INTERNAL_ERROR),
            (PersistenceFailure("disk"), INTERNAL_ERROR),
        ],
    )
    def test_codes(self, error, code):
        """Each failure kind maps to its own code."""
        converted = to_mcp_error(error, "generate_image")
        assert isinstance(converted, McpError)
        assert converted.error.code == code

    def test_internal_messages_name_the_operation(self):
        """Internal failures are prefixed with the operation name."""
        converted = to_mcp_error(UpstreamFailure("quota", transient=False), "edit_image")
        assert converted.error.message == "edit_image failed: quota"

    def test_unexpected_exception_shows_type_only(self):
        """Unknown exceptions expose only their type name."""
        converted = to_mcp_error(RuntimeError("/home/me/secret/path"), "list_images")
        assert converted.error.code == INTERNAL_ERROR
        assert converted.error.message == "list_images failed: RuntimeError"

    def test_messages_are_redacted(self):
        """Key-shaped text is redacted from error messages."""
        error = UpstreamFailure(f"rejected key {GOOGLE_KEY}", transient=False)
        converted = to_mcp_error(error, "generate_image")
        assert GOOGLE_KEY not in converted.error.message

    def test_explicit_secret_redacted(self):
        """The configured key is redacted from error messages."""
        converted = to_mcp_error(InvalidInput("value mysecretvalue"), "x", ["mysecretvalue"])
        assert "mysecretvalue" not in converted.error.message

    def test_existing_mcp_error_keeps_code(self):
        """An McpError passes through with its code."""
        converted = to_mcp_error(mcp_error(-32601, "Unknown tool: x"), "x")
        assert converted.error.code == -32601
