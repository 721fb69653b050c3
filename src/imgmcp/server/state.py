"""Server state initialisation.

:class:`AppState` bundles the long-lived components (config, validator,
metadata store, generation service) with the session of the connected
client.  :func:`initialize_state` builds it the way the server does at
startup: credential from the environment first, then from the config file.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field

from imgmcp.core.config import ImgMcpConfig, load_config_file
from imgmcp.core.generation import GenerationService
from imgmcp.core.metadata_store import MetadataStore
from imgmcp.core.paths import PathValidator
from imgmcp.core.session import ConfigSource, Session
from imgmcp.core.upstream import GeminiImageBackend, ImageBackend

logger = logging.getLogger(__name__)

BackendFactory = Callable[[str], ImageBackend]


@dataclass
class AppState:
    """Everything a tool handler needs.

    Attributes:
        config: Active configuration.
        validator: Path validator for the images directory, cwd and home.
        store: Metadata store for produced images.
        service: Generation service.
        session: The connected client's session.
        backend_factory: Builds a backend from an API key.
        api_key: Key currently in use (kept for redaction only).
    """

    config: ImgMcpConfig
    validator: PathValidator
    store: MetadataStore
    service: GenerationService
    session: Session = field(default_factory=Session)
    backend_factory: BackendFactory = GeminiImageBackend
    api_key: str | None = None

    @property
    def secrets(self) -> tuple[str, ...]:
        return (self.api_key,) if self.api_key else ()

    def configure_api_key(self, api_key: str, source: ConfigSource) -> None:
        """Build a backend for ``api_key`` and attach it to the session."""
        backend = self.backend_factory(api_key)
        self.api_key = api_key
        self.session.configure(backend, source)


def merge_config_file(config: ImgMcpConfig) -> ImgMcpConfig:
    """Fill fields not set explicitly from the JSON config file."""
    file_values = load_config_file(config.config_file)
    if not file_values:
        return config
    explicit = config.model_dump(include=config.model_fields_set)
    return ImgMcpConfig.model_validate({**file_values, **explicit})


def initialize_state(
    config: ImgMcpConfig,
    backend_factory: BackendFactory = GeminiImageBackend,
) -> AppState:
    """Create the server state and load persisted metadata.

    The API key is taken from the environment (``GEMINI_API_KEY``) when
    present, otherwise from the JSON config file.  Without a key the server
    still starts; generation tools then ask for ``configure_gemini_token``.

    Args:
        config: Configuration loaded from the environment.
        backend_factory: Builds the image backend from an API key.

    Returns:
        Initialised :class:`AppState`.
    """
    source: ConfigSource = "environment"
    if config.api_key() is None:
        source = "config_file"
    config = merge_config_file(config)
    api_key = config.api_key()

    images_dir = config.images_directory()
    validator = PathValidator.for_output_directory(images_dir)
    store = MetadataStore.for_directory(images_dir, default_limit=config.list_limit)
    store.load()

    state = AppState(
        config=config,
        validator=validator,
        store=store,
        service=GenerationService(config, validator, store),
        backend_factory=backend_factory,
    )

    if api_key:
        try:
            state.configure_api_key(api_key, source)
        except ValueError as e:
            logger.warning(f"Invalid API key in {source}: {e}")
    else:
        logger.info("Gemini API token not configured")

    logger.info(f"Images directory: {images_dir}")
    return state
