"""Shared pytest fixtures for img-mcp tests."""

import shutil
import tempfile
from pathlib import Path
from typing import Generator

import pytest

from imgmcp.core.config import ImgMcpConfig
from imgmcp.core.generation import GenerationService
from imgmcp.core.metadata_store import MetadataStore
from imgmcp.core.paths import PathValidator
from imgmcp.core.retry import RetryPolicy
from imgmcp.core.session import Session
from imgmcp.core.upstream import ImageBackend, UpstreamImage, UpstreamResult
from imgmcp.server.state import AppState

# Smallest byte string that still starts with the PNG signature.
PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32


class FakeBackend(ImageBackend):
    """In-memory ImageBackend.

    Calls are recorded in ``calls``.  Queued ``errors`` are raised first,
    then queued ``results`` are returned; once both are empty every call
    returns a single PNG image.
    """

    name = "Fake Backend"

    def __init__(self, results=None, errors=None):
        self.results = list(results or [])
        self.errors = list(errors or [])
        self.calls = []

    async def generate_content(self, model, parts):
        self.calls.append(("generate_content", model, list(parts)))
        return self._next()

    async def generate_images(self, model, prompt, *, number_of_images=1, mime_type="image/png"):
        self.calls.append(("generate_images", model, prompt))
        return self._next()

    def _next(self):
        if self.errors:
            raise self.errors.pop(0)
        if self.results:
            return self.results.pop(0)
        return UpstreamResult(
            images=[UpstreamImage(data=PNG_BYTES, mime_type="image/png")],
            text="A test picture",
        )


class RecordingSleep:
    """Async stand-in for asyncio.sleep that records requested delays."""

    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files.

    Yields:
        Canonical path to the temporary directory

    Cleanup:
        Directory is removed after test completes
    """
    temp_path = Path(tempfile.mkdtemp()).resolve()
    try:
        yield temp_path
    finally:
        shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def images_dir(temp_dir: Path) -> Path:
    path = temp_dir / "images"
    path.mkdir()
    return path


@pytest.fixture
def test_config(temp_dir: Path, images_dir: Path, monkeypatch) -> ImgMcpConfig:
    """Create a test configuration isolated from the environment.

    Args:
        temp_dir: Temporary directory from fixture
        images_dir: Images directory inside ``temp_dir``

    Returns:
        ImgMcpConfig instance for testing
    """
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    monkeypatch.delenv("IMG_MCP_GEMINI_API_KEY", raising=False)
    monkeypatch.delenv("IMG_MCP_MODEL", raising=False)
    monkeypatch.delenv("IMG_MCP_DEFAULT_FORMAT", raising=False)

    return ImgMcpConfig(
        output_directory=images_dir,
        config_file=temp_dir / ".img-mcp-config.json",
        retry_max_attempts=4,
        retry_initial_delay=1.0,
        _env_file=None,
    )


@pytest.fixture
def png_bytes() -> bytes:
    return PNG_BYTES


@pytest.fixture
def fake_backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def validator(temp_dir: Path) -> PathValidator:
    """Validator whose only allowed root is the temporary directory."""
    return PathValidator([temp_dir])


@pytest.fixture
def store(images_dir: Path) -> MetadataStore:
    return MetadataStore.for_directory(images_dir)


@pytest.fixture
def service(test_config, validator, store, recording_sleep) -> GenerationService:
    policy = RetryPolicy(
        max_attempts=test_config.retry_max_attempts,
        initial_delay=test_config.retry_initial_delay,
        sleep=recording_sleep,
    )
    return GenerationService(test_config, validator, store, retry_policy=policy)


@pytest.fixture
def session(fake_backend: FakeBackend) -> Session:
    """A session that already has a (fake) backend configured."""
    return Session(backend=fake_backend, config_source="tool")


@pytest.fixture
def app_state(test_config, validator, store, service, session, fake_backend) -> AppState:
    return AppState(
        config=test_config,
        validator=validator,
        store=store,
        service=service,
        session=session,
        backend_factory=lambda api_key: fake_backend,
    )


@pytest.fixture
def source_image(images_dir: Path) -> Path:
    """A PNG file inside the images directory, not known to the store."""
    path = images_dir / "source.png"
    path.write_bytes(PNG_BYTES)
    return path
