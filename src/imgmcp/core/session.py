"""Per-connection session state."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

from .errors import NotConfigured
from .upstream import ImageBackend

logger = logging.getLogger(__name__)

ConfigSource = Literal["environment", "config_file", "tool", "not_configured"]


@dataclass
class GenerationSettings:
    """Overrides set with ``configure_generation_settings``.

    ``None`` means "use the configured default".
    """

    model: str | None = None
    format: str | None = None
    quality: str | None = None

    def as_dict(self) -> dict[str, str]:
        return {
            key: value
            for key, value in (("model", self.model), ("format", self.format), ("quality", self.quality))
            if value is not None
        }


@dataclass
class Session:
    """State of one logical MCP client.

    A session starts unconfigured.  :meth:`configure` attaches an image
    backend (an API credential is present), after which generation and edit
    operations are allowed.  ``last_image_path`` follows the most recent
    successful generate or edit and is what ``continue_editing`` works on.
    """

    backend: ImageBackend | None = None
    config_source: ConfigSource = "not_configured"
    settings: GenerationSettings = field(default_factory=GenerationSettings)
    last_image_path: Path | None = None

    @property
    def is_configured(self) -> bool:
        return self.backend is not None

    def configure(self, backend: ImageBackend, source: ConfigSource) -> None:
        self.backend = backend
        self.config_source = source
        logger.info(f"Session configured (source: {source})")

    def require_backend(self) -> ImageBackend:
        """Return the backend or raise :class:`NotConfigured`."""
        if self.backend is None:
            raise NotConfigured()
        return self.backend
