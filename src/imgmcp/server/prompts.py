"""Prompt templates for common edits.

Each template is a short instruction for ``edit_image`` or
``continue_editing``.  The ``image_path`` argument is only part of the
template signature; the generated text refers to "this image".
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from mcp import types

from imgmcp.core.errors import InvalidInput

from .errors import unknown_method


@dataclass(frozen=True)
class PromptTemplate:
    name: str
    description: str
    arguments: tuple[types.PromptArgument, ...]
    render: Callable[[dict[str, str]], str]

    def to_prompt(self) -> types.Prompt:
        return types.Prompt(
            name=self.name,
            description=self.description,
            arguments=list(self.arguments),
        )

    def missing_arguments(self, arguments: dict[str, str]) -> list[str]:
        return [
            argument.name
            for argument in self.arguments
            if argument.required and not str(arguments.get(argument.name, "")).strip()
        ]


def _argument(name: str, description: str, required: bool = False) -> types.PromptArgument:
    return types.PromptArgument(name=name, description=description, required=required)


def _signed(value: str) -> str:
    """``+20`` for positive numbers, the value unchanged otherwise."""
    try:
        number = float(value)
    except ValueError:
        return value
    return f"+{value.lstrip('+')}" if number > 0 else value


def _enhance(arguments: dict[str, str]) -> str:
    enhancement = arguments.get("enhancement_type") or "quality"
    return (
        f"Enhance the image quality by improving {enhancement}. Make the image sharper, "
        "more detailed, and visually appealing while maintaining the original composition "
        "and style."
    )


def _style_transfer(arguments: dict[str, str]) -> str:
    intensity = arguments.get("intensity") or "5"
    return (
        f"Apply the artistic style from the reference image to the base image with "
        f"intensity level {intensity}/10. Blend the styles naturally while preserving the "
        "main subject and composition of the base image."
    )


def _remove_background(arguments: dict[str, str]) -> str:
    return (
        "Remove the background from this image, leaving only the main subject. Make the "
        "background transparent or replace it with a clean, simple background."
    )


def _add_object(arguments: dict[str, str]) -> str:
    position = f" at {arguments['position']}" if arguments.get("position") else ""
    return (
        f"Add {arguments['object_description']}{position} to this image. Make it look "
        "natural and well-integrated with the existing scene, lighting, and perspective."
    )


def _adjust_colors(arguments: dict[str, str]) -> str:
    return (
        f"Adjust the {arguments['adjustment']} of this image by {_signed(arguments['value'])}. "
        "Maintain the overall look and feel while applying the color adjustment."
    )


PROMPTS: dict[str, PromptTemplate] = {
    template.name: template
    for template in (
        PromptTemplate(
            "enhance_image",
            "Template for enhancing image quality and details",
            (
                _argument("image_path", "Path to the image to enhance", required=True),
                _argument(
                    "enhancement_type",
                    "Type of enhancement: quality, sharpness, colors, lighting",
                ),
            ),
            _enhance,
        ),
        PromptTemplate(
            "style_transfer",
            "Template for transferring style from one image to another",
            (
                _argument("image_path", "Path to the base image", required=True),
                _argument("style_reference", "Path to the style reference image", required=True),
                _argument("intensity", "Style transfer intensity (1-10)"),
            ),
            _style_transfer,
        ),
        PromptTemplate(
            "remove_background",
            "Template for removing background from an image",
            (_argument("image_path", "Path to the image", required=True),),
            _remove_background,
        ),
        PromptTemplate(
            "add_object",
            "Template for adding an object to an image",
            (
                _argument("image_path", "Path to the base image", required=True),
                _argument("object_description", "Description of the object to add", required=True),
                _argument("position", "Position where to add the object"),
            ),
            _add_object,
        ),
        PromptTemplate(
            "adjust_colors",
            "Template for adjusting image colors",
            (
                _argument("image_path", "Path to the image", required=True),
                _argument(
                    "adjustment",
                    "Type of adjustment: brightness, contrast, saturation, hue",
                    required=True,
                ),
                _argument("value", "Adjustment value (-100 to 100)", required=True),
            ),
            _adjust_colors,
        ),
    )
}


def list_prompts() -> list[types.Prompt]:
    return [template.to_prompt() for template in PROMPTS.values()]


def get_prompt(name: str, arguments: dict[str, str] | None) -> types.GetPromptResult:
    """Render the prompt ``name``.

    Raises:
        McpError: ``METHOD_NOT_FOUND`` for an unknown prompt.
        InvalidInput: If a required argument is missing.
    """
    template = PROMPTS.get(name)
    if template is None:
        raise unknown_method("prompt", name)

    arguments = dict(arguments or {})
    missing = template.missing_arguments(arguments)
    if missing:
        raise InvalidInput(f"Missing required argument(s) for {name}: {', '.join(missing)}")

    return types.GetPromptResult(
        description=template.description,
        messages=[
            types.PromptMessage(
                role="user",
                content=types.TextContent(type="text", text=template.render(arguments)),
            )
        ],
    )
