"""Upstream image API backends.

The generation service talks to the image API through :class:`ImageBackend`,
which exposes the two request shapes the API offers:

- **content generation** (Gemini models): a model id plus a list of parts
  (text and inline images), answered with text and zero or more inline
  images;
- **batch image generation** (Imagen models): a model id, a text prompt and a
  small config, answered with zero or more images.

:class:`GeminiImageBackend` implements both with the ``google-genai`` SDK and
turns SDK exceptions into :class:`~imgmcp.core.errors.UpstreamFailure`,
classified as transient (retried) or terminal.

Model Families
--------------
Which shape to use is a property of the model: ids starting with
``imagen-`` are Imagen models, everything else is served by content
generation.  See :func:`is_imagen_model`.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Union

from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from .errors import UpstreamFailure, redact_secrets

logger = logging.getLogger(__name__)

SUPPORTED_MODELS: tuple[str, ...] = (
    "gemini-2.5-flash-image-preview",
    "gemini-2.0-flash-exp",
    "gemini-3-pro-image-preview",
    "imagen-4.0-fast-generate-001",
    "imagen-3.0-generate-002",
)

# HTTP statuses worth retrying: request timeout, rate limit, server errors.
_TRANSIENT_STATUS_CODES = frozenset({408, 429})


def is_imagen_model(model: str) -> bool:
    """Return True for models served by the batch image generation call."""
    return model.startswith("imagen-")


@dataclass(frozen=True)
class ImagePart:
    """Inline image sent to the content generation call."""

    data: bytes
    mime_type: str


ContentPart = Union[str, ImagePart]


@dataclass(frozen=True)
class UpstreamImage:
    """Image bytes returned by the API."""

    data: bytes
    mime_type: str


@dataclass
class UpstreamResult:
    """Normalised response of either call shape."""

    images: list[UpstreamImage] = field(default_factory=list)
    text: str = ""

    @property
    def has_image(self) -> bool:
        return bool(self.images)


class ImageBackend(ABC):
    """Interface to the external image generation API."""

    name: str = "Image Backend"

    @abstractmethod
    async def generate_content(self, model: str, parts: list[ContentPart]) -> UpstreamResult:
        """Call a content generation model with text and inline images.

        Raises:
            UpstreamFailure: If the call fails.
        """

    @abstractmethod
    async def generate_images(
        self,
        model: str,
        prompt: str,
        *,
        number_of_images: int = 1,
        mime_type: str = "image/png",
    ) -> UpstreamResult:
        """Call a batch image generation model with a text prompt.

        Raises:
            UpstreamFailure: If the call fails.
        """


def classify_api_error(error: Exception, secrets: tuple[str, ...] = ()) -> UpstreamFailure:
    """Translate an SDK or transport exception into :class:`UpstreamFailure`.

    ``google.genai.errors.APIError`` carries the HTTP status: 408, 429 and 5xx
    are transient, every other status (bad key, unknown model, rejected
    prompt) is terminal.  Any other exception (connection reset, timeout)
    is treated as transient.
    """
    if isinstance(error, genai_errors.APIError):
        code = getattr(error, "code", None)
        status = getattr(error, "status", None) or ""
        detail = getattr(error, "message", None) or str(error)
        transient = code is None or code in _TRANSIENT_STATUS_CODES or code >= 500
        message = f"Upstream API error {code} {status}: {detail}".replace("  ", " ")
        return UpstreamFailure(
            redact_secrets(message, secrets), transient=transient, status_code=code
        )
    return UpstreamFailure(
        redact_secrets(f"Upstream request failed: {type(error).__name__}: {error}", secrets),
        transient=True,
    )


def _to_sdk_part(part: ContentPart) -> types.Part:
    if isinstance(part, ImagePart):
        return types.Part(inline_data=types.Blob(data=part.data, mime_type=part.mime_type))
    return types.Part(text=part)


def extract_content_result(response: Any) -> UpstreamResult:
    """Collect text and inline images from a ``generate_content`` response."""
    result = UpstreamResult()
    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        return result
    content = getattr(candidates[0], "content", None)
    for part in getattr(content, "parts", None) or []:
        # Thought parts are the model's reasoning, not its answer.
        if getattr(part, "thought", False):
            continue
        if getattr(part, "text", None):
            result.text += part.text
        inline = getattr(part, "inline_data", None)
        if inline is not None and getattr(inline, "data", None):
            result.images.append(
                UpstreamImage(data=inline.data, mime_type=inline.mime_type or "image/png")
            )
    return result


def extract_images_result(response: Any, default_mime_type: str) -> UpstreamResult:
    """Collect images from a ``generate_images`` response.

    The enhanced prompt, when Imagen returns one, is used as the text.
    """
    result = UpstreamResult()
    for generated in getattr(response, "generated_images", None) or []:
        image = getattr(generated, "image", None)
        data = getattr(image, "image_bytes", None)
        if not data:
            continue
        result.images.append(
            UpstreamImage(data=data, mime_type=getattr(image, "mime_type", None) or default_mime_type)
        )
        enhanced = getattr(generated, "enhanced_prompt", None)
        if enhanced and not result.text:
            result.text = enhanced
    return result


class GeminiImageBackend(ImageBackend):
    """Backend using the ``google-genai`` asynchronous client.

    Args:
        api_key: Gemini API key.
        client: Pre-built ``genai.Client`` (tests inject fakes here).
    """

    name = "Gemini API"

    def __init__(self, api_key: str, client: Any | None = None) -> None:
        if not api_key:
            raise ValueError("api_key must not be empty")
        self._secrets = (api_key,)
        self._client = client if client is not None else genai.Client(api_key=api_key)

    async def generate_content(self, model: str, parts: list[ContentPart]) -> UpstreamResult:
        logger.debug(f"Using generate_content() for model {model} with {len(parts)} parts")
        if len(parts) == 1 and isinstance(parts[0], str):
            contents: Any = parts[0]
        else:
            contents = [types.Content(role="user", parts=[_to_sdk_part(p) for p in parts])]
        try:
            response = await self._client.aio.models.generate_content(
                model=model,
                contents=contents,
            )
        except Exception as e:
            raise classify_api_error(e, self._secrets) from None
        return extract_content_result(response)

    async def generate_images(
        self,
        model: str,
        prompt: str,
        *,
        number_of_images: int = 1,
        mime_type: str = "image/png",
    ) -> UpstreamResult:
        logger.debug(f"Using generate_images() for model {model}")
        try:
            response = await self._client.aio.models.generate_images(
                model=model,
                prompt=prompt,
                config=types.GenerateImagesConfig(
                    number_of_images=number_of_images,
                    output_mime_type=mime_type,
                ),
            )
        except Exception as e:
            raise classify_api_error(e, self._secrets) from None
        return extract_images_result(response, mime_type)
