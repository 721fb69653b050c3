"""MCP tool handlers.

Each handler receives the :class:`~imgmcp.server.state.AppState` and its
validated argument model, and returns MCP content.  Handlers raise core
errors; the registry maps them onto MCP error codes.
"""

from __future__ import annotations

import asyncio
import base64
import json
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from mcp import types
from pydantic import SecretStr

from imgmcp.core.config import save_config_snapshot
from imgmcp.core.errors import InvalidInput
from imgmcp.core.generation import GenerationOutcome
from imgmcp.core.records import ImageKind, parse_image_reference

from .models import (
    ConfigureTokenArgs,
    ContinueEditingArgs,
    EditImageArgs,
    GenerateImageArgs,
    GenerationSettingsArgs,
    ImageReferenceArgs,
    ListImagesArgs,
    NoArguments,
    SearchImagesArgs,
)
from .registry import ToolRegistry
from .state import AppState

logger = logging.getLogger(__name__)

registry = ToolRegistry()

_NOT_CONFIGURED_HELP = """

Configuration options (in priority order):
1. MCP client environment variables (Recommended)
2. System environment variable: GEMINI_API_KEY
3. Use configure_gemini_token tool

For the most secure setup, add this to your MCP configuration:
"env": { "GEMINI_API_KEY": "your-api-key-here" }"""

_SOURCE_DESCRIPTIONS = {
    "environment": "Environment variable (GEMINI_API_KEY)",
    "config_file": "Local configuration file (.img-mcp-config.json)",
    "tool": "configure_gemini_token tool",
}


def text(value: str) -> types.TextContent:
    return types.TextContent(type="text", text=value)


def to_json(value: Any) -> str:
    return json.dumps(value, indent=2, default=str)


def kind_filter(value: str) -> ImageKind | None:
    return None if value == "all" else ImageKind(value)


def parse_date(value: str | None, name: str) -> datetime | None:
    """Parse an ISO-8601 date or datetime; naive values are taken as UTC.

    Raises:
        InvalidInput: If the value is not ISO-8601.
    """
    if value is None:
        return None
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        raise InvalidInput(f"{name} must be an ISO-8601 date") from None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def effective_model(state: AppState) -> str:
    return state.session.settings.model or state.config.model


def effective_format(state: AppState) -> str:
    return state.session.settings.format or state.config.default_format


def outcome_content(outcome: GenerationOutcome, status: str) -> list[Any]:
    """Status text followed by the image, when one was produced."""
    lines = [status]
    if outcome.reference_images:
        lines.append(f"\nReference images used: {len(outcome.reference_images)}")
    for warning in outcome.warnings:
        lines.append(f"\nWarning: {warning}")
    if outcome.text:
        lines.append(f"\nDescription: {outcome.text}")

    if outcome.record is not None:
        lines.append(f"\nImage saved to: {outcome.record.storage_path}")
        lines.append(f"Image URI: {outcome.record.uri}")
        lines.append(f"Image ID: {outcome.record.id}")
        lines.append(
            "\nUse list_images to see all images, or get_image_metadata with the image ID for details."
        )
    else:
        lines.append("\nNote: No image was generated. Try running the command again.")

    content: list[Any] = [text("\n".join(lines))]
    if outcome.image_data is not None:
        content.append(
            types.ImageContent(
                type="image",
                data=base64.b64encode(outcome.image_data).decode("ascii"),
                mimeType=outcome.mime_type or f"image/{outcome.image_format}",
            )
        )
    return content


# ----------------------------------------------------------------------
# Configuration
# ----------------------------------------------------------------------


@registry.tool(
    "configure_gemini_token",
    "Configure your Gemini API token for image generation",
    ConfigureTokenArgs,
)
async def configure_gemini_token(state: AppState, args: ConfigureTokenArgs) -> list[Any]:
    api_key = args.api_key.strip()
    if not api_key:
        raise InvalidInput("API key cannot be empty")
    state.configure_api_key(api_key, "tool")
    state.config = state.config.model_copy(update={"gemini_api_key": SecretStr(api_key)})
    try:
        await asyncio.to_thread(save_config_snapshot, state.config.config_file, state.config)
    except OSError as e:
        logger.warning(f"Could not save configuration snapshot: {type(e).__name__}")
    return [text("Gemini API token configured successfully. You can now use image generation features.")]


@registry.tool(
    "configure_generation_settings",
    "Configure default generation settings (model, format, quality)",
    GenerationSettingsArgs,
)
async def configure_generation_settings(state: AppState, args: GenerationSettingsArgs) -> list[Any]:
    settings = state.session.settings
    if args.model is not None:
        settings.model = args.model
    if args.format is not None:
        settings.format = args.format
    if args.quality is not None:
        settings.quality = args.quality
    logger.info(f"Generation settings updated: {settings.as_dict()}")
    return [text(f"Generation settings updated:\n{to_json(settings.as_dict())}")]


@registry.tool(
    "get_configuration_status",
    "Check if Gemini API token is configured",
    NoArguments,
)
async def get_configuration_status(state: AppState, args: NoArguments) -> list[Any]:
    if not state.session.is_configured:
        return [text("Gemini API token is not configured" + _NOT_CONFIGURED_HELP)]

    lines = ["Gemini API token is configured and ready to use"]
    source = _SOURCE_DESCRIPTIONS.get(state.session.config_source)
    if source:
        lines.append(f"Source: {source}")
    lines.extend(
        [
            "",
            "Current Settings:",
            f"- Model: {effective_model(state)}",
            f"- Format: {effective_format(state)}",
            f"- Images tracked: {len(state.store)}",
        ]
    )
    return [text("\n".join(lines))]


# ----------------------------------------------------------------------
# Generation
# ----------------------------------------------------------------------


@registry.tool(
    "generate_image",
    "Generate a NEW image from scratch using only a text prompt. "
    "To modify an existing image use edit_image or continue_editing.",
    GenerateImageArgs,
)
async def generate_image(state: AppState, args: GenerateImageArgs) -> list[Any]:
    outcome = await state.service.generate(state.session, args.prompt, args.model, args.format)
    status = (
        f'Image generated successfully.\n\nPrompt: "{args.prompt}"\n'
        f"Model: {outcome.model}\nFormat: {outcome.image_format}"
    )
    return outcome_content(outcome, status)


@registry.tool(
    "edit_image",
    "Edit a SPECIFIC existing image file, optionally using additional reference images",
    EditImageArgs,
)
async def edit_image(state: AppState, args: EditImageArgs) -> list[Any]:
    outcome = await state.service.edit(
        state.session, args.image_path, args.prompt, args.reference_images
    )
    status = f'Image edited successfully.\n\nOriginal: {args.image_path}\nEdit prompt: "{args.prompt}"'
    return outcome_content(outcome, status)


@registry.tool(
    "continue_editing",
    "Continue editing the LAST image that was generated or edited in this session",
    ContinueEditingArgs,
)
async def continue_editing(state: AppState, args: ContinueEditingArgs) -> list[Any]:
    source = state.session.last_image_path
    outcome = await state.service.continue_from_last(
        state.session, args.prompt, args.reference_images
    )
    status = f'Image edited successfully.\n\nOriginal: {source}\nEdit prompt: "{args.prompt}"'
    return outcome_content(outcome, status)


@registry.tool(
    "get_last_image_info",
    "Get information about the last generated or edited image in this session",
    NoArguments,
)
async def get_last_image_info(state: AppState, args: NoArguments) -> list[Any]:
    last = state.session.last_image_path
    if last is None:
        return [text("No previous image found. Please generate or edit an image first.")]

    try:
        stats = await asyncio.to_thread(os.stat, last)
    except OSError:
        return [
            text(
                f"Last Image Information:\n\nPath: {last}\nStatus: File not found\n\n"
                "The image file may have been moved or deleted. Please generate a new image."
            )
        ]

    modified = datetime.fromtimestamp(stats.st_mtime, tz=timezone.utc)
    info = (
        f"Last Image Information:\n\nPath: {last}\n"
        f"File Size: {round(stats.st_size / 1024)} KB\n"
        f"Last Modified: {modified.isoformat()}"
    )
    record = state.store.find_by_path(last)
    if record is not None:
        info += f"\n\nMetadata:\n{to_json(record.to_json_dict())}"
    return [text(info)]


# ----------------------------------------------------------------------
# Catalogue
# ----------------------------------------------------------------------


@registry.tool(
    "list_images",
    "List generated and edited images, newest first",
    ListImagesArgs,
)
async def list_images(state: AppState, args: ListImagesArgs) -> list[Any]:
    records = state.store.list(kind_filter(args.type), args.limit)
    listing = [record.summary() for record in records]
    return [text(f"Found {len(listing)} image(s):\n\n{to_json(listing)}")]


@registry.tool(
    "get_image_metadata",
    "Get detailed metadata for a specific image",
    ImageReferenceArgs,
)
async def get_image_metadata(state: AppState, args: ImageReferenceArgs) -> list[Any]:
    record = state.store.get(parse_image_reference(args.image_id))
    details = record.to_json_dict()
    if not state.validator.is_allowed(record.storage_path):
        logger.warning(f"Stored path for image {record.id} is outside the allowed roots")
        details.update(fileExists=False, fileStats=None)
        return [text(f"Image Metadata:\n\n{to_json(details)}")]
    try:
        stats = await asyncio.to_thread(os.stat, Path(record.storage_path))
    except OSError:
        details.update(fileExists=False, fileStats=None)
    else:
        details.update(
            fileExists=True,
            fileStats={
                "size": stats.st_size,
                "modified": datetime.fromtimestamp(stats.st_mtime, tz=timezone.utc).isoformat(),
            },
        )
    return [text(f"Image Metadata:\n\n{to_json(details)}")]


@registry.tool(
    "delete_image",
    "Delete an image and its metadata",
    ImageReferenceArgs,
)
async def delete_image(state: AppState, args: ImageReferenceArgs) -> list[Any]:
    image_id = parse_image_reference(args.image_id)
    await asyncio.to_thread(state.store.delete, image_id)
    return [text(f"Image deleted successfully: {image_id}")]


@registry.tool(
    "search_images",
    "Search images by prompt text, date range or type",
    SearchImagesArgs,
)
async def search_images(state: AppState, args: SearchImagesArgs) -> list[Any]:
    start = parse_date(args.start_date, "startDate")
    end = parse_date(args.end_date, "endDate")
    records = state.store.search(args.query, start, end, kind_filter(args.type))
    results = [record.summary() for record in records]
    return [text(f"Found {len(results)} matching image(s):\n\n{to_json(results)}")]
