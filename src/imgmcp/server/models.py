"""Pydantic argument models for the MCP tools.

These models define the input schema of every tool.  The registry publishes
their JSON schema in ``tools/list`` and validates incoming arguments against
them before a handler runs.  Field aliases keep the camelCase argument names
MCP clients already use (``imagePath``, ``referenceImages``, ...).
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

ModelName = Literal[
    "gemini-2.5-flash-image-preview",
    "gemini-2.0-flash-exp",
    "gemini-3-pro-image-preview",
    "imagen-4.0-fast-generate-001",
    "imagen-3.0-generate-002",
]
FormatName = Literal["png", "jpeg", "webp"]
KindFilter = Literal["generated", "edited", "all"]


class ToolArguments(BaseModel):
    """Base for tool argument models."""

    model_config = ConfigDict(populate_by_name=True)


class NoArguments(ToolArguments):
    """Tools that take no arguments."""


class ConfigureTokenArgs(ToolArguments):
    api_key: str = Field(
        ...,
        alias="apiKey",
        min_length=1,
        description="Your Gemini API key from Google AI Studio",
    )


class GenerationSettingsArgs(ToolArguments):
    model: ModelName | None = Field(
        default=None,
        description=(
            "Model to use for image generation. Gemini models use generate_content(), "
            "Imagen models use generate_images()"
        ),
    )
    format: FormatName | None = Field(default=None, description="Default image format")
    quality: Literal["low", "medium", "high"] | None = Field(
        default=None,
        description="Image quality setting",
    )


class GenerateImageArgs(ToolArguments):
    prompt: str = Field(
        ...,
        description="Text prompt describing the NEW image to create from scratch",
    )
    model: ModelName | None = Field(
        default=None,
        description="Optional: Override default model for this generation",
    )
    format: FormatName | None = Field(
        default=None,
        description="Optional: Override default format for this generation",
    )


class EditImageArgs(ToolArguments):
    image_path: str = Field(
        ...,
        alias="imagePath",
        description="Full file path to the main image file to edit",
    )
    prompt: str = Field(
        ...,
        description="Text describing the modifications to make to the existing image",
    )
    reference_images: list[str] | None = Field(
        default=None,
        alias="referenceImages",
        description="Optional array of file paths to additional reference images",
    )


class ContinueEditingArgs(ToolArguments):
    prompt: str = Field(..., description="Text describing the modifications to make")
    reference_images: list[str] | None = Field(
        default=None,
        alias="referenceImages",
        description="Optional array of reference image paths",
    )


class ListImagesArgs(ToolArguments):
    limit: int | None = Field(
        default=None,
        ge=1,
        description="Maximum number of images to return (default 50)",
    )
    type: KindFilter = Field(default="all", description="Filter by image type")


class ImageReferenceArgs(ToolArguments):
    image_id: str = Field(
        ...,
        alias="imageId",
        min_length=1,
        description="Image ID or URI (img://image/{id})",
    )


class SearchImagesArgs(ToolArguments):
    query: str | None = Field(default=None, description="Search query (searches in prompts)")
    start_date: str | None = Field(
        default=None,
        alias="startDate",
        description="Start date (ISO format)",
    )
    end_date: str | None = Field(
        default=None,
        alias="endDate",
        description="End date (ISO format)",
    )
    type: KindFilter = Field(default="all", description="Filter by image type")
