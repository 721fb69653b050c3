"""Configuration management for img-mcp.

Configuration is loaded with Pydantic Settings.  Values come from, in
priority order:

1. Keyword arguments (tests, embedding code)
2. Environment variables with the ``IMG_MCP_`` prefix
3. A ``.env`` file in the working directory
4. Defaults defined on :class:`ImgMcpConfig`

The API key is the one exception to the prefix rule: it is read from
``GEMINI_API_KEY`` (the name MCP clients conventionally pass) or
``IMG_MCP_GEMINI_API_KEY``.

Example .env file:
    GEMINI_API_KEY=...
    IMG_MCP_MODEL=gemini-2.5-flash-image-preview
    IMG_MCP_DEFAULT_FORMAT=png
    IMG_MCP_OUTPUT_DIRECTORY=/home/me/pictures/generated

Config File
-----------
A small JSON file (``.img-mcp-config.json`` by default) can also supply the
key and defaults.  When the key is set through the ``configure_gemini_token``
tool a snapshot of the configuration is written there, with the key replaced
by ``[REDACTED]``.  A redacted key read back from the file counts as absent.
"""

from __future__ import annotations

import json
import logging
import os
import platform
from pathlib import Path
from typing import Any, Literal

from pydantic import AliasChoices, Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import REDACTED

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-2.5-flash-image-preview"
CONFIG_FILENAME = ".img-mcp-config.json"

# Working directories that are usually read-only installs; images go to the
# home directory instead.
_SYSTEM_PREFIXES = ("/usr/", "/opt/", "/var/")


class ImgMcpConfig(BaseSettings):
    """Main configuration for the img-mcp server.

    Attributes:
        gemini_api_key: Google AI Studio API key (optional at startup; can be
            supplied later through the ``configure_gemini_token`` tool).
        model: Default upstream model.
        default_format: Default output format.
        output_directory: Directory for produced images.  When unset,
            :meth:`images_directory` picks a platform-dependent default.
        config_file: Location of the JSON config snapshot.
        max_image_size: Payload size above which a warning is logged.
        max_prompt_length: Longest accepted prompt, in characters.
        max_reference_images: Most reference images accepted per edit.
        list_limit: Default number of entries returned by ``list_images``.
        retry_max_attempts: Attempts per upstream call (including the first).
        retry_initial_delay: First backoff delay, in seconds.
        log_level: Root logging level.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="IMG_MCP_",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    gemini_api_key: SecretStr | None = Field(
        default=None,
        validation_alias=AliasChoices("GEMINI_API_KEY", "IMG_MCP_GEMINI_API_KEY"),
        description="Gemini API key",
    )
    model: str = Field(default=DEFAULT_MODEL, description="Default model for generation")
    default_format: Literal["png", "jpeg", "webp"] = Field(
        default="png",
        description="Default image format",
    )
    output_directory: Path | None = Field(
        default=None,
        description="Directory to save generated images",
    )
    config_file: Path = Field(
        default=Path(CONFIG_FILENAME),
        description="JSON configuration snapshot",
    )

    max_image_size: int = Field(default=10 * 1024 * 1024, ge=1)
    max_prompt_length: int = Field(default=4000, ge=1)
    max_reference_images: int = Field(default=5, ge=0)
    list_limit: int = Field(default=50, ge=1)

    retry_max_attempts: int = Field(default=4, ge=1, le=10)
    retry_initial_delay: float = Field(default=1.0, ge=0.0)

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO")

    def api_key(self) -> str | None:
        """Return the usable API key, or None if unset or redacted."""
        if self.gemini_api_key is None:
            return None
        value = self.gemini_api_key.get_secret_value().strip()
        if not value or value == REDACTED:
            return None
        return value

    def images_directory(self) -> Path:
        """Directory where produced images and ``.metadata.json`` live.

        Returns the configured ``output_directory`` when set.  Otherwise:
        ``~/Documents/img-mcp-images`` on Windows, ``~/img-mcp-images`` when
        the server runs from a system location (``/usr``, ``/opt``, ``/var``),
        and ``./generated_imgs`` in every other case.
        """
        if self.output_directory is not None:
            return Path(self.output_directory).expanduser().resolve()

        home = Path.home()
        if platform.system() == "Windows":
            return home / "Documents" / "img-mcp-images"

        cwd = Path.cwd()
        if str(cwd).startswith(_SYSTEM_PREFIXES):
            return home / "img-mcp-images"
        return cwd / "generated_imgs"

    def snapshot(self) -> dict[str, Any]:
        """Configuration values safe to persist or display (key redacted)."""
        return {
            "geminiApiKey": REDACTED if self.gemini_api_key is not None else None,
            "model": self.model,
            "defaultFormat": self.default_format,
            "outputDirectory": str(self.output_directory) if self.output_directory else None,
            "maxImageSize": self.max_image_size,
            "maxPromptLength": self.max_prompt_length,
            "maxReferenceImages": self.max_reference_images,
        }


# Keys of the JSON config file mapped to ImgMcpConfig field names.
_FILE_KEYS = {
    "geminiApiKey": "gemini_api_key",
    "model": "model",
    "defaultFormat": "default_format",
    "outputDirectory": "output_directory",
    "maxImageSize": "max_image_size",
    "maxPromptLength": "max_prompt_length",
    "maxReferenceImages": "max_reference_images",
}


def load_config_file(path: Path) -> dict[str, Any]:
    """Read the JSON config file and translate it to config field names.

    Missing or invalid files yield an empty dict; ``None`` values are dropped.
    """
    path = Path(path)
    if not path.exists():
        return {}
    try:
        with open(path, encoding="utf-8") as handle:
            raw = json.load(handle)
    except (OSError, ValueError):
        logger.warning(f"Ignoring unreadable config file {path.name}")
        return {}
    if not isinstance(raw, dict):
        return {}
    return {
        field: raw[key]
        for key, field in _FILE_KEYS.items()
        if key in raw and raw[key] is not None
    }


def save_config_snapshot(path: Path, config: ImgMcpConfig) -> None:
    """Write the redacted configuration snapshot with owner-only permissions."""
    path = Path(path)
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "w", encoding="utf-8") as handle:
        json.dump(config.snapshot(), handle, indent=2)
    os.chmod(path, 0o600)
    logger.debug(f"Saved configuration snapshot to {path.name}")


# Global configuration instance, loaded from the environment at import time.
config = ImgMcpConfig()
