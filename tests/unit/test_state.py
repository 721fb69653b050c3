"""Unit tests for server state initialisation."""

from __future__ import annotations

import json

import pytest

from imgmcp.core.config import ImgMcpConfig
from imgmcp.core.errors import REDACTED
from imgmcp.core.records import ImageKind, ImageRecord, image_uri
from imgmcp.server.state import initialize_state


@pytest.fixture
def factory_calls():
    return []


@pytest.fixture
def backend_factory(fake_backend, factory_calls):
    def factory(api_key):
        factory_calls.append(api_key)
        return fake_backend

    return factory


class TestInitializeState:
    """Verify startup state assembly."""

    def test_without_key_starts_unconfigured(self, test_config, backend_factory, factory_calls):
        """With no key the session starts unconfigured."""
        state = initialize_state(test_config, backend_factory)

        assert not state.session.is_configured
        assert state.session.config_source == "not_configured"
        assert factory_calls == []

    def test_key_from_environment(self, test_config, monkeypatch, backend_factory, factory_calls):
        """A key in the environment configures the session."""
        monkeypatch.setenv("GEMINI_API_KEY", "env-key-value")
        config = ImgMcpConfig(
            output_directory=test_config.output_directory,
            config_file=test_config.config_file,
            _env_file=None,
        )

        state = initialize_state(config, backend_factory)

        assert state.session.is_configured
        assert state.session.config_source == "environment"
        assert factory_calls == ["env-key-value"]
        assert state.secrets == ("env-key-value",)

    def test_environment_key_wins_over_file(self, test_config, monkeypatch, backend_factory,
                                            factory_calls):
        """The environment key takes precedence over the config file."""
        test_config.config_file.write_text(json.dumps({"geminiApiKey": "file-key-value"}))
        monkeypatch.setenv("GEMINI_API_KEY", "env-key-value")
        config = ImgMcpConfig(
            output_directory=test_config.output_directory,
            config_file=test_config.config_file,
            _env_file=None,
        )

        initialize_state(config, backend_factory)

        assert factory_calls == ["env-key-value"]

    def test_key_from_config_file(self, test_config, backend_factory, factory_calls):
        """A key in the config file configures the session."""
        test_config.config_file.write_text(
            json.dumps({"geminiApiKey": "file-key-value", "defaultFormat": "webp"})
        )

        state = initialize_state(test_config, backend_factory)

        assert state.session.config_source == "config_file"
        assert factory_calls == ["file-key-value"]
        assert state.config.default_format == "webp"

    def test_explicit_settings_win_over_file(self, test_config, backend_factory):
        """Explicit settings are not overridden by the config file."""
        test_config.config_file.write_text(json.dumps({"outputDirectory": "/elsewhere"}))

        state = initialize_state(test_config, backend_factory)

        assert state.config.output_directory == test_config.output_directory

    def test_redacted_key_in_file_is_absent(self, test_config, backend_factory, factory_calls):
        """A redacted key in the file counts as no key."""
        test_config.config_file.write_text(json.dumps({"geminiApiKey": REDACTED}))

        state = initialize_state(test_config, backend_factory)

        assert not state.session.is_configured
        assert factory_calls == []

    def test_existing_metadata_is_loaded(self, test_config, images_dir, backend_factory):
        """Existing image metadata is loaded at startup."""
        image = images_dir / "generated-abc.png"
        image.write_bytes(b"png")
        record = ImageRecord(
            id="abc",
            storage_path=str(image),
            uri=image_uri("abc"),
            prompt="a cat",
            kind=ImageKind.GENERATED,
            model="gemini-2.5-flash-image-preview",
            format="png",
            size_bytes=3,
        )
        (images_dir / ".metadata.json").write_text(json.dumps([record.to_json_dict()]))

        state = initialize_state(test_config, backend_factory)

        assert "abc" in state.store
        assert images_dir in state.validator.roots
