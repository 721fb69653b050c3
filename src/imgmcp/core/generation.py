"""Generation and editing orchestration.

:class:`GenerationService` runs one request end to end:

1. validate the input (prompt, model, format, reference count, paths) before
   any network or disk I/O
2. call the upstream API through the retry policy, using the request shape
   of the selected model family
3. write the returned bytes to a validated path in the images directory
4. create an :class:`~imgmcp.core.records.ImageRecord` and put it in the
   metadata store (which persists it)
5. update the session's last-image pointer

The byte write always completes before the record exists and the record is
persisted before the call returns.  A crash in between leaves an orphan file,
which is simply not listed.

Usage Example
-------------
    service = GenerationService(config, validator, store)
    outcome = await service.generate(session, "a red circle")
    if outcome.record is not None:
        print(outcome.record.storage_path)
"""

from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from .config import DEFAULT_MODEL, ImgMcpConfig
from .errors import InvalidInput, NoPriorImage, NotFound, PathDenied
from .metadata_store import MetadataStore
from .paths import PathValidator, format_from_mime_type, mime_type_for
from .records import (
    SUPPORTED_FORMATS,
    ImageKind,
    ImageRecord,
    image_uri,
    new_image_id,
    utc_now,
)
from .retry import RetryPolicy
from .session import Session
from .upstream import SUPPORTED_MODELS, ImagePart, UpstreamResult, is_imagen_model

logger = logging.getLogger(__name__)


@dataclass
class GenerationOutcome:
    """Result of a generate or edit call.

    ``record`` is None when the API answered successfully but returned no
    image (text only).  That is not an error.

    Attributes:
        record: Stored record for the produced image, if any.
        text: Text returned by the model (description, enhanced prompt).
        image_data: Raw bytes of the produced image, if any.
        mime_type: MIME type of ``image_data``.
        model: Model that served the request.
        image_format: Format the image was stored as.
        reference_images: Reference paths that were actually used.
        warnings: Non-fatal problems (skipped reference images, size).
    """

    record: ImageRecord | None
    text: str = ""
    image_data: bytes | None = None
    mime_type: str = ""
    model: str = ""
    image_format: str = ""
    reference_images: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def has_image(self) -> bool:
        return self.record is not None


class GenerationService:
    """Orchestrates calls to the image API and records their results.

    Args:
        config: Application configuration (limits and defaults).
        validator: Path validator guarding every read and write.
        store: Metadata store receiving new records.
        retry_policy: Retry policy for upstream calls (built from config
            when omitted).
    """

    def __init__(
        self,
        config: ImgMcpConfig,
        validator: PathValidator,
        store: MetadataStore,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        self.config = config
        self.validator = validator
        self.store = store
        self.retry_policy = retry_policy or RetryPolicy(
            max_attempts=config.retry_max_attempts,
            initial_delay=config.retry_initial_delay,
        )
        self.images_dir = config.images_directory()

    # ------------------------------------------------------------------
    # Validation helpers
    # ------------------------------------------------------------------

    def validate_prompt(self, prompt: str) -> str:
        if not prompt or not prompt.strip():
            raise InvalidInput("Prompt cannot be empty")
        if len(prompt) > self.config.max_prompt_length:
            raise InvalidInput(
                f"Prompt too long ({len(prompt)} characters). "
                f"Maximum length: {self.config.max_prompt_length}"
            )
        return prompt

    def resolve_model(self, session: Session, model: str | None = None) -> str:
        selected = model or session.settings.model or self.config.model
        if selected not in SUPPORTED_MODELS:
            raise InvalidInput(
                f"Unsupported model '{selected}'. Supported: {', '.join(SUPPORTED_MODELS)}"
            )
        return selected

    def resolve_format(self, session: Session, image_format: str | None = None) -> str:
        selected = (image_format or session.settings.format or self.config.default_format).lower()
        if selected not in SUPPORTED_FORMATS:
            raise InvalidInput(
                f"Unsupported format '{selected}'. Supported: {', '.join(SUPPORTED_FORMATS)}"
            )
        return selected

    def resolve_edit_model(self, session: Session) -> str:
        """Pick a content-generation model for edits.

        Imagen models cannot take input images, so an Imagen selection falls
        back to the configured model, then to the default Gemini model.
        """
        for candidate in (session.settings.model, self.config.model):
            if candidate and candidate in SUPPORTED_MODELS and not is_imagen_model(candidate):
                return candidate
        logger.info(f"Editing requires a Gemini model, using {DEFAULT_MODEL}")
        return DEFAULT_MODEL

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def generate(
        self,
        session: Session,
        prompt: str,
        model: str | None = None,
        image_format: str | None = None,
    ) -> GenerationOutcome:
        """Generate a new image from a text prompt.

        Args:
            session: Caller's session (must be configured).
            prompt: Description of the image.
            model: Model override for this call.
            image_format: Format override for this call.

        Returns:
            Outcome with the new ``GENERATED`` record, or without a record if
            the API returned no image.

        Raises:
            NotConfigured: If the session has no API credential.
            InvalidInput: For an empty or too long prompt, unknown model or
                unsupported format.
            UpstreamFailure: If the API call fails (after retries for
                transient failures).
            PersistenceFailure: If the metadata file cannot be written.
        """
        backend = session.require_backend()
        self.validate_prompt(prompt)
        selected_model = self.resolve_model(session, model)
        selected_format = self.resolve_format(session, image_format)
        mime_type = f"image/{selected_format}"

        logger.info(
            f"Generating image (model: {selected_model}, format: {selected_format}, "
            f"prompt length: {len(prompt)})"
        )

        if is_imagen_model(selected_model):
            result = await self.retry_policy.run(
                lambda: backend.generate_images(selected_model, prompt, mime_type=mime_type)
            )
        else:
            result = await self.retry_policy.run(
                lambda: backend.generate_content(selected_model, [prompt])
            )

        return await self._store_result(
            session,
            result,
            kind=ImageKind.GENERATED,
            prompt=prompt,
            model=selected_model,
            image_format=selected_format,
        )

    async def edit(
        self,
        session: Session,
        source_path: str | os.PathLike[str],
        prompt: str,
        reference_paths: list[str] | None = None,
    ) -> GenerationOutcome:
        """Edit an existing image, optionally guided by reference images.

        Reference images that fail validation or do not exist are skipped
        with a warning; only the source image is mandatory.

        Raises:
            NotConfigured: If the session has no API credential.
            InvalidInput: For a bad prompt, too many references or a source
                file that is not a supported image type.
            PathDenied: If the source path is outside the allowed roots.
            NotFound: If the source file does not exist.
            UpstreamFailure: If the API call fails.
            PersistenceFailure: If the metadata file cannot be written.
        """
        backend = session.require_backend()
        self.validate_prompt(prompt)
        reference_paths = list(reference_paths or [])
        if len(reference_paths) > self.config.max_reference_images:
            raise InvalidInput(
                f"Too many reference images. Maximum: {self.config.max_reference_images}"
            )

        source = self.validator.validate(source_path)
        if not self.validator.is_supported_image_file(source):
            raise InvalidInput("File is not a supported image format (png, jpg, jpeg, webp)")
        if not source.is_file():
            raise NotFound("Image file not found")

        warnings: list[str] = []
        references: list[Path] = []
        for position, raw in enumerate(reference_paths, start=1):
            reason = None
            try:
                candidate = self.validator.validate(raw)
            except PathDenied:
                reason = "path not permitted"
            else:
                if not self.validator.is_supported_image_file(candidate):
                    reason = "not a supported image format"
                elif not candidate.is_file():
                    reason = "file not found"
            if reason is not None:
                message = f"Reference image {position} skipped: {reason}"
                logger.warning(message)
                warnings.append(message)
                continue
            references.append(candidate)

        parts: list = [
            ImagePart(data=await asyncio.to_thread(source.read_bytes), mime_type=mime_type_for(source)),
            prompt,
        ]
        for reference in references:
            parts.append(
                ImagePart(
                    data=await asyncio.to_thread(reference.read_bytes),
                    mime_type=mime_type_for(reference),
                )
            )

        selected_model = self.resolve_edit_model(session)
        selected_format = self.resolve_format(session)
        logger.info(
            f"Editing image (model: {selected_model}, format: {selected_format}, "
            f"reference images: {len(references)})"
        )

        result = await self.retry_policy.run(
            lambda: backend.generate_content(selected_model, parts)
        )

        parent = self.store.find_by_path(source)
        outcome = await self._store_result(
            session,
            result,
            kind=ImageKind.EDITED,
            prompt=prompt,
            model=selected_model,
            image_format=selected_format,
            reference_images=[str(reference) for reference in references],
            parent_id=parent.id if parent else None,
        )
        outcome.warnings[:0] = warnings
        return outcome

    async def continue_from_last(
        self,
        session: Session,
        prompt: str,
        reference_paths: list[str] | None = None,
    ) -> GenerationOutcome:
        """Edit the most recent image produced in this session.

        Raises:
            NotConfigured: If the session has no API credential.
            NoPriorImage: If nothing was produced yet or the file is gone.
        """
        session.require_backend()
        last = session.last_image_path
        if last is None:
            raise NoPriorImage("No previous image found. Please generate or edit an image first.")
        if not Path(last).is_file():
            raise NoPriorImage("Last image file no longer exists. Please generate a new image first.")
        return await self.edit(session, last, prompt, reference_paths)

    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------

    def _new_unique_id(self) -> str:
        image_id = new_image_id()
        while image_id in self.store:
            image_id = new_image_id()
        return image_id

    async def _store_result(
        self,
        session: Session,
        result: UpstreamResult,
        *,
        kind: ImageKind,
        prompt: str,
        model: str,
        image_format: str,
        reference_images: list[str] | None = None,
        parent_id: str | None = None,
    ) -> GenerationOutcome:
        reference_images = reference_images or []
        if not result.has_image:
            logger.info("Upstream returned no image data")
            return GenerationOutcome(
                record=None,
                text=result.text,
                model=model,
                image_format=image_format,
                reference_images=reference_images,
            )

        image = result.images[0]
        stored_format = format_from_mime_type(image.mime_type) or image_format
        warnings: list[str] = []
        if len(image.data) > self.config.max_image_size:
            message = (
                f"Image is larger than the configured limit "
                f"({len(image.data)} > {self.config.max_image_size} bytes)"
            )
            logger.warning(message)
            warnings.append(message)

        image_id = self._new_unique_id()
        prefix = "generated" if kind is ImageKind.GENERATED else "edited"
        await asyncio.to_thread(self.images_dir.mkdir, mode=0o755, parents=True, exist_ok=True)
        target = self.validator.validate(self.images_dir / f"{prefix}-{image_id}.{stored_format}")
        await asyncio.to_thread(target.write_bytes, image.data)

        record = ImageRecord(
            id=image_id,
            storage_path=str(target),
            uri=image_uri(image_id),
            prompt=prompt,
            kind=kind,
            created_at=utc_now(),
            model=model,
            format=stored_format,
            size_bytes=len(image.data),
            reference_images=reference_images,
            parent_id=parent_id,
        )
        await asyncio.to_thread(self.store.put, record)
        session.last_image_path = target
        logger.info(f"Saved {prefix} image {image_id}")

        return GenerationOutcome(
            record=record,
            text=result.text,
            image_data=image.data,
            mime_type=image.mime_type,
            model=model,
            image_format=stored_format,
            reference_images=reference_images,
            warnings=warnings,
        )
