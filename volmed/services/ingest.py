"""Entry point for incoming uploads: validate a batch, then write it."""
from __future__ import annotations

import contextlib
import logging
from typing import Iterable, List, Optional, Sequence

from volmed.services.collisions import CollisionPolicy
from volmed.services.record_directory import RecordDirectory
from volmed.services.staging import StagingArea
from volmed.services.storage_errors import FileTooLarge, InvalidMimeType, StorageError
from volmed.services.stored_file import IncomingFile, StoredFile, check_record_id

logger = logging.getLogger("volmed")


def normalize_content_type(content_type: Optional[str]) -> str:
    """``"Application/PDF; name=x"`` -> ``"application/pdf"``."""
    return (content_type or "").split(";", 1)[0].strip().lower()


class UploadIngestor:
    def __init__(
        self,
        records: RecordDirectory,
        staging: StagingArea,
        allowed_mime_types: Iterable[str],
        max_file_bytes: int,
        max_batch_bytes: int = 0,
    ):
        self.records = records
        self.staging = staging
        self.allowed_mime_types = tuple(normalize_content_type(t) for t in allowed_mime_types)
        self.max_file_bytes = max_file_bytes
        self.max_batch_bytes = max_batch_bytes

    def check_file(self, filename: str, content_type: Optional[str], size_bytes: Optional[int]) -> None:
        """Type first, then size; an unknown size is left for ``validate``."""
        if normalize_content_type(content_type) not in self.allowed_mime_types:
            raise InvalidMimeType(filename, content_type, self.allowed_mime_types)
        if size_bytes is not None and size_bytes > self.max_file_bytes:
            raise FileTooLarge(filename, size_bytes, self.max_file_bytes)

    def validate(self, files: Sequence[IncomingFile]) -> None:
        """Reject the batch on the first disallowed type or oversized file."""
        total = 0
        for upload in files:
            self.check_file(upload.filename, upload.content_type, upload.size_bytes)
            total += upload.size_bytes
        if self.max_batch_bytes and total > self.max_batch_bytes:
            raise FileTooLarge("", total, self.max_batch_bytes, aggregate=True)

    def accept(
        self,
        target_id: Optional[int],
        files: Iterable[IncomingFile],
        policy: CollisionPolicy = CollisionPolicy.TIMESTAMP,
    ) -> List[StoredFile]:
        """Validate every file, then write them in order.

        With ``target_id`` the files go straight into the record folder using
        ``policy``; without one they land in a fresh staging batch that the
        caller commits once the record exists. Nothing is written when
        validation fails, and a write failure removes what this batch wrote.
        """
        files = list(files)
        if target_id is not None:
            check_record_id(target_id)
        try:
            self.validate(files)
        except StorageError as exc:
            logger.info({
                "function": "ingest_accept",
                "status": "rejected",
                "record_id": target_id,
                "reason": str(exc),
            })
            raise
        if not files:
            return []
        if target_id is None:
            return self._stage(files)
        return self._write_to_record(target_id, files, policy)

    def _stage(self, files: List[IncomingFile]) -> List[StoredFile]:
        batch_id = self.staging.new_batch()
        stored: List[StoredFile] = []
        try:
            for upload in files:
                stored.append(self.staging.receive(upload, batch_id))
        except StorageError:
            self.staging.discard_quietly(batch_id)
            raise
        return stored

    def _write_to_record(self, record_id: int, files: List[IncomingFile], policy: CollisionPolicy) -> List[StoredFile]:
        stored: List[StoredFile] = []
        try:
            for upload in files:
                stored.append(self.records.write(record_id, upload, policy))
        except StorageError:
            folder = self.records.path_for(record_id)
            for written in stored:
                with contextlib.suppress(OSError):
                    (folder / written.stored_name).unlink()
            raise
        return stored


__all__ = ["UploadIngestor", "normalize_content_type"]
