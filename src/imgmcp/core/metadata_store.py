"""File-backed metadata index for produced images.

The store keeps every :class:`~imgmcp.core.records.ImageRecord` in memory and
mirrors the whole collection to a single JSON file:

- metadata lives in ``<images dir>/.metadata.json`` as a JSON array
- every mutation rewrites the file immediately (write-through, no batching)
- the file is created with owner-only permissions because prompts and file
  paths may be sensitive
- list order is reverse-chronological (newest first)

Users can delete image files behind the server's back, so :meth:`load`
reconciles the metadata against the file system and drops entries whose
image no longer exists.

If a write fails, :class:`~imgmcp.core.errors.PersistenceFailure` is raised
to the caller but the in-memory change stays applied; the next successful
persist brings the file back in line.  All mutations go through one lock so
concurrent callers cannot interleave their read-modify-write cycles.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from datetime import datetime
from pathlib import Path

from pydantic import ValidationError

from .errors import NotFound, PersistenceFailure, redact_secrets
from .records import ImageKind, ImageRecord

logger = logging.getLogger(__name__)

METADATA_FILENAME = ".metadata.json"
DEFAULT_LIST_LIMIT = 50
FILE_MODE = 0o600


def _newest_first(records: list[ImageRecord]) -> list[ImageRecord]:
    return sorted(records, key=lambda record: record.created_at, reverse=True)


class MetadataStore:
    """Authoritative in-memory index of image records with a JSON mirror.

    Args:
        metadata_path: Path of the JSON file backing the store.
        default_limit: Cap applied by :meth:`list` when no limit is given.
    """

    def __init__(self, metadata_path: Path, default_limit: int = DEFAULT_LIST_LIMIT) -> None:
        self.metadata_path = Path(metadata_path)
        self.default_limit = default_limit
        self._records: dict[str, ImageRecord] = {}
        self._lock = threading.RLock()

    @classmethod
    def for_directory(cls, images_dir: Path, default_limit: int = DEFAULT_LIST_LIMIT) -> MetadataStore:
        return cls(Path(images_dir) / METADATA_FILENAME, default_limit=default_limit)

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, image_id: object) -> bool:
        return image_id in self._records

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def load(self) -> int:
        """Load the metadata file and reconcile it against the disk.

        The reconciliation rule is conservative:

        - a missing, unreadable or malformed file yields an empty index
        - entries that fail validation are skipped
        - entries whose image file no longer exists are dropped

        Returns:
            Number of records admitted to the index.
        """
        with self._lock:
            self._records = {}

            if not self.metadata_path.exists():
                logger.debug(f"No metadata file at {self.metadata_path}")
                return 0

            try:
                with open(self.metadata_path, encoding="utf-8") as handle:
                    raw_entries = json.load(handle)
            except (OSError, ValueError) as e:
                logger.warning(f"Ignoring unreadable metadata file: {redact_secrets(str(e))}")
                return 0

            if not isinstance(raw_entries, list):
                logger.warning("Ignoring metadata file that does not contain a list")
                return 0

            for entry in raw_entries:
                try:
                    record = ImageRecord.model_validate(entry)
                except ValidationError:
                    logger.warning("Skipping malformed metadata entry")
                    continue

                # The image may have been removed outside the server.
                if not Path(record.storage_path).exists():
                    logger.debug(f"Skipping metadata for missing file: {record.id}")
                    continue

                self._records[record.id] = record

            logger.info(f"Loaded image metadata: {len(self._records)} records")
            return len(self._records)

    def persist(self) -> None:
        """Write the whole collection to the metadata file.

        The file is written to a temporary sibling created with mode 0600 and
        then atomically moved into place.

        Raises:
            PersistenceFailure: If the file cannot be written.
        """
        with self._lock:
            payload = [record.to_json_dict() for record in self._records.values()]
            directory = self.metadata_path.parent
            tmp_name: str | None = None
            try:
                directory.mkdir(parents=True, exist_ok=True)
                fd, tmp_name = tempfile.mkstemp(
                    prefix=".metadata-", suffix=".tmp", dir=str(directory)
                )
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    json.dump(payload, handle, indent=2)
                os.chmod(tmp_name, FILE_MODE)
                os.replace(tmp_name, self.metadata_path)
                tmp_name = None
                os.chmod(self.metadata_path, FILE_MODE)
            except OSError as e:
                logger.error(f"Failed to persist image metadata: {redact_secrets(str(e))}")
                raise PersistenceFailure(
                    f"Failed to save image metadata ({type(e).__name__})"
                ) from e
            finally:
                if tmp_name is not None:
                    try:
                        os.unlink(tmp_name)
                    except OSError:
                        pass

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def put(self, record: ImageRecord) -> None:
        """Insert or replace a record and persist immediately."""
        with self._lock:
            self._records[record.id] = record
            self.persist()
        logger.debug(f"Stored metadata for image {record.id}")

    def delete(self, image_id: str) -> ImageRecord:
        """Remove a record, persist, then try to remove its image file.

        A file that cannot be removed (already gone, permissions) is logged
        and otherwise ignored: the metadata deletion still succeeds.

        Raises:
            NotFound: If no record has this id.  Nothing is changed.
        """
        with self._lock:
            record = self._records.get(image_id)
            if record is None:
                raise NotFound(f"Image not found: {image_id}")
            del self._records[image_id]
            self.persist()

        try:
            Path(record.storage_path).unlink()
        except OSError as e:
            logger.warning(f"Failed to delete image file for {image_id}: {type(e).__name__}")

        logger.info(f"Image deleted: {image_id}")
        return record

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, image_id: str) -> ImageRecord:
        """Return the record with this id.

        Raises:
            NotFound: If no record has this id.
        """
        with self._lock:
            record = self._records.get(image_id)
        if record is None:
            raise NotFound(f"Image not found: {image_id}")
        return record

    def find_by_path(self, path: str | os.PathLike[str]) -> ImageRecord | None:
        target = os.fspath(path)
        return next((record for record in self.all() if record.storage_path == target), None)

    def all(self) -> list[ImageRecord]:
        with self._lock:
            return list(self._records.values())

    def list(self, kind: ImageKind | None = None, limit: int | None = None) -> list[ImageRecord]:
        """Return records newest first, optionally filtered by kind.

        Args:
            kind: Only return records of this kind.
            limit: Maximum number of records (defaults to ``default_limit``).
        """
        records = self.all()
        if kind is not None:
            records = [record for record in records if record.kind == kind]
        cap = self.default_limit if limit is None else limit
        return _newest_first(records)[: max(cap, 0)]

    def search(
        self,
        query: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
        kind: ImageKind | None = None,
    ) -> list[ImageRecord]:
        """Linear scan over all records.

        Args:
            query: Case-insensitive substring matched against prompt and id.
            start: Inclusive lower bound on ``created_at``.
            end: Inclusive upper bound on ``created_at``.
            kind: Only return records of this kind.

        Returns:
            Matching records, newest first.
        """
        records = self.all()
        if kind is not None:
            records = [record for record in records if record.kind == kind]
        if start is not None:
            records = [record for record in records if record.created_at >= start]
        if end is not None:
            records = [record for record in records if record.created_at <= end]
        if query:
            needle = query.lower()
            records = [
                record
                for record in records
                if needle in record.prompt.lower() or needle in record.id.lower()
            ]
        return _newest_first(records)
