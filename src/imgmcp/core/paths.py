"""Path validation and access control for image files.

Every path that arrives from an MCP client (source images, reference images)
and every path the server writes to goes through :class:`PathValidator`
before it touches the filesystem.

Checks, in order:

1. The raw string (and its percent-decoded form) must not contain a ``..``
   segment.  This runs before normalisation so that ``a/../../etc/passwd``
   is rejected even though ``resolve()`` would hide the traversal.
2. The path is made absolute and canonical with symlinks resolved, so a
   symlink inside an allowed directory pointing outside it is caught.
3. The canonical path must be contained in one of the allowed roots.
   Containment is computed with :func:`os.path.relpath`, not with a string
   prefix test: ``/data/images-evil`` is *not* inside ``/data/images``.

Rejections raise :class:`~imgmcp.core.errors.PathDenied` with a fixed
message.  Neither the allowed roots nor any part of the rejected path is
echoed back to the caller.
"""

from __future__ import annotations

import logging
import os
import re
from collections.abc import Iterable
from pathlib import Path
from urllib.parse import unquote

from .errors import PathDenied

logger = logging.getLogger(__name__)

SUPPORTED_IMAGE_EXTENSIONS = frozenset({".png", ".jpg", ".jpeg", ".webp"})

_MIME_TYPES = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".webp": "image/webp",
}

_FORMATS_BY_MIME = {
    "image/png": "png",
    "image/jpeg": "jpeg",
    "image/jpg": "jpeg",
    "image/webp": "webp",
}

_SEPARATORS = re.compile(r"[\\/]+")


def has_parent_segment(raw_path: str) -> bool:
    """Return True if ``raw_path`` contains a ``..`` path segment.

    Both ``/`` and ``\\`` count as separators regardless of platform.
    """
    return any(part == os.pardir for part in _SEPARATORS.split(raw_path))


def is_supported_image_file(path: str | os.PathLike[str]) -> bool:
    """Check the file extension against the supported image formats.

    Pure string check, no I/O.

    Args:
        path: File path or name.

    Returns:
        True for ``.png``, ``.jpg``, ``.jpeg`` and ``.webp`` (any case).
    """
    return Path(os.fspath(path)).suffix.lower() in SUPPORTED_IMAGE_EXTENSIONS


def mime_type_for(path: str | os.PathLike[str]) -> str:
    """Return the MIME type for an image path, ``image/jpeg`` if unknown."""
    return _MIME_TYPES.get(Path(os.fspath(path)).suffix.lower(), "image/jpeg")


def format_from_mime_type(mime_type: str | None) -> str | None:
    """Map an upstream MIME type to ``png``/``jpeg``/``webp`` or None."""
    if not mime_type:
        return None
    return _FORMATS_BY_MIME.get(mime_type.split(";")[0].strip().lower())


def _canonical(path: str | os.PathLike[str]) -> str:
    return os.path.realpath(os.path.abspath(os.path.expanduser(os.fspath(path))))


def _is_within(candidate: str, root: str) -> bool:
    try:
        relative = os.path.relpath(candidate, root)
    except ValueError:
        # Different drives on Windows.
        return False
    if os.path.isabs(relative):
        return False
    return not (relative == os.pardir or relative.startswith(os.pardir + os.sep))


class PathValidator:
    """Resolve caller-supplied paths and confine them to allowed roots.

    The root set is canonicalised once at construction and never changes
    afterwards.

    Attributes:
        roots: Canonical absolute paths of the allowed directories.
    """

    def __init__(self, roots: Iterable[str | os.PathLike[str]]) -> None:
        canonical: list[str] = []
        for root in roots:
            resolved = _canonical(root)
            if resolved not in canonical:
                canonical.append(resolved)
        if not canonical:
            raise ValueError("PathValidator needs at least one allowed root")
        self._roots: tuple[str, ...] = tuple(canonical)
        logger.debug(f"PathValidator initialised with {len(self._roots)} allowed roots")

    @classmethod
    def for_output_directory(cls, output_directory: str | os.PathLike[str]) -> PathValidator:
        """Build the standard root set: output directory, cwd and home."""
        return cls([output_directory, Path.cwd(), Path.home()])

    @property
    def roots(self) -> tuple[Path, ...]:
        return tuple(Path(root) for root in self._roots)

    def validate(self, raw_path: str | os.PathLike[str]) -> Path:
        """Resolve ``raw_path`` and confirm it lies inside an allowed root.

        Args:
            raw_path: Any caller-supplied path, absolute or relative.

        Returns:
            The canonical absolute path.

        Raises:
            PathDenied: If the input is empty, contains a traversal segment
                (literal or percent-encoded), or resolves outside every
                allowed root.
        """
        raw = os.fspath(raw_path)
        if not isinstance(raw, str) or not raw.strip() or "\x00" in raw:
            raise PathDenied()

        if has_parent_segment(raw) or has_parent_segment(unquote(raw)):
            logger.warning("Rejected path containing a parent-directory segment")
            raise PathDenied()

        try:
            candidate = _canonical(raw)
        except (OSError, ValueError) as e:
            logger.warning(f"Rejected path that could not be resolved: {type(e).__name__}")
            raise PathDenied() from None

        if not any(_is_within(candidate, root) for root in self._roots):
            logger.warning("Rejected path outside the allowed directories")
            raise PathDenied()

        return Path(candidate)

    def is_allowed(self, raw_path: str | os.PathLike[str]) -> bool:
        """Non-raising variant of :meth:`validate`."""
        try:
            self.validate(raw_path)
        except PathDenied:
            return False
        return True

    def is_supported_image_file(self, path: str | os.PathLike[str]) -> bool:
        return is_supported_image_file(path)
