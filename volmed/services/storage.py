"""Local storage for uploaded patient documents."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

from volmed.services.collisions import CollisionPolicy
from volmed.services.ingest import UploadIngestor
from volmed.services.record_directory import RecordDirectory
from volmed.services.staging import StagingArea
from volmed.services.stored_file import IncomingFile, StoredFile
from volmed.utils.app import _env_csv, _env_int, _env_str

logger = logging.getLogger("volmed")

DEFAULT_UPLOAD_DIR = Path(__file__).resolve().parent.parent / "uploads"
DEFAULT_ALLOWED_MIME_TYPES = ("application/pdf", "image/jpeg", "image/png")
DEFAULT_MAX_UPLOAD_BYTES = 10 * 1024 * 1024  # 10MB per file


@dataclass(frozen=True)
class StorageSettings:
    upload_root: Path = DEFAULT_UPLOAD_DIR
    max_upload_bytes: int = DEFAULT_MAX_UPLOAD_BYTES
    max_batch_bytes: int = 0
    allowed_mime_types: Tuple[str, ...] = DEFAULT_ALLOWED_MIME_TYPES
    public_prefix: str = "/uploads"
    staging_max_age_seconds: int = 24 * 60 * 60
    staging_sweep_interval_seconds: int = 60 * 60

    @classmethod
    def from_env(cls) -> "StorageSettings":
        return cls(
            upload_root=Path(_env_str("UPLOAD_ROOT", str(DEFAULT_UPLOAD_DIR))),
            max_upload_bytes=_env_int("MAX_UPLOAD_BYTES", DEFAULT_MAX_UPLOAD_BYTES),
            max_batch_bytes=_env_int("MAX_BATCH_BYTES", 0),
            allowed_mime_types=tuple(_env_csv("ALLOWED_MIME_TYPES", list(DEFAULT_ALLOWED_MIME_TYPES))),
            public_prefix=_env_str("UPLOAD_PUBLIC_PREFIX", "/uploads"),
            staging_max_age_seconds=_env_int("STAGING_MAX_AGE_SECONDS", 24 * 60 * 60),
            staging_sweep_interval_seconds=_env_int("STAGING_SWEEP_INTERVAL_SECONDS", 60 * 60),
        )


class DocumentStore:
    """Per-record document store: record folders, staging and the ingestor."""

    def __init__(self, settings: StorageSettings):
        self.settings = settings
        self.records = RecordDirectory(settings.upload_root, settings.public_prefix)
        self.staging = StagingArea(self.records)
        self.ingestor = UploadIngestor(
            self.records,
            self.staging,
            allowed_mime_types=settings.allowed_mime_types,
            max_file_bytes=settings.max_upload_bytes,
            max_batch_bytes=settings.max_batch_bytes,
        )

    def accept(
        self,
        record_id: Optional[int],
        files: Iterable[IncomingFile],
        policy: CollisionPolicy = CollisionPolicy.TIMESTAMP,
    ) -> List[StoredFile]:
        return self.ingestor.accept(record_id, files, policy)

    def attach(self, record_id: int, upload: IncomingFile) -> StoredFile:
        """Single-file attachment to an existing record (numbered policy)."""
        return self.ingestor.accept(record_id, [upload], CollisionPolicy.NUMBERED)[0]

    def commit(self, record_id: int, staged: Iterable[StoredFile]) -> List[StoredFile]:
        return self.staging.commit(record_id, staged)

    def discard(self, staged: Iterable[StoredFile]) -> None:
        for batch_id in {f.batch_id for f in staged if f.batch_id}:
            self.staging.discard_quietly(batch_id)

    def retract(self, record_id: int, files: Iterable[StoredFile]) -> None:
        """Undo files this request just placed in a record folder."""
        folder = self.records.path_for(record_id)
        for stored in files:
            try:
                (folder / stored.stored_name).unlink()
            except FileNotFoundError:
                continue
            except OSError:
                logger.exception("Could not retract %s from record %s", stored.stored_name, record_id)
        logger.info({"function": "store_retract", "status": "retracted", "record_id": record_id})

    def list(self, record_id: int) -> List[StoredFile]:
        return self.records.list(record_id)

    def public_path(self, record_id: int, stored_name: str) -> str:
        return self.records.public_path(record_id, stored_name)

    def sweep_staging(self, max_age_seconds: Optional[int] = None) -> List[str]:
        age = self.settings.staging_max_age_seconds if max_age_seconds is None else max_age_seconds
        return self.staging.sweep(age)


@lru_cache(maxsize=1)
def get_document_store() -> DocumentStore:
    """FastAPI dependency; settings are read from the environment once."""
    return DocumentStore(StorageSettings.from_env())


__all__ = [
    "DocumentStore",
    "StorageSettings",
    "get_document_store",
    "DEFAULT_UPLOAD_DIR",
]
