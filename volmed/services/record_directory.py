"""Mapping from a patient record id to its folder under the uploads root."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Union

from volmed.services.collisions import CollisionPolicy, write_exclusive
from volmed.services.sanitizer import sanitize
from volmed.services.storage_errors import DirectoryCreateFailed, DirectoryReadFailed
from volmed.services.stored_file import IncomingFile, StoredFile, check_record_id

logger = logging.getLogger("volmed")

PATIENTS_DIR = "patients"


class RecordDirectory:
    """Owns ``<uploads_root>/patients/<record_id>`` folders.

    Folders are created lazily on first write and never pre-created; a record
    without a folder simply has no files.
    """

    def __init__(self, uploads_root: Union[str, Path], public_prefix: str = "/uploads"):
        self.uploads_root = Path(uploads_root)
        self.public_prefix = "/" + public_prefix.strip("/") if public_prefix.strip("/") else ""

    @property
    def patients_root(self) -> Path:
        return self.uploads_root / PATIENTS_DIR

    def path_for(self, record_id: int) -> Path:
        return self.patients_root / str(check_record_id(record_id))

    def public_path(self, record_id: int, stored_name: str) -> str:
        return f"{self.public_prefix}/{PATIENTS_DIR}/{check_record_id(record_id)}/{stored_name}"

    def ensure(self, record_id: int) -> Path:
        path = self.path_for(record_id)
        try:
            path.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            logger.exception("Could not create record folder %s", path)
            raise DirectoryCreateFailed(f"Could not create {path}: {exc}") from exc
        return path

    def list(self, record_id: int) -> List[StoredFile]:
        path = self.path_for(record_id)
        if not path.is_dir():
            return []
        try:
            entries = sorted(path.iterdir(), key=lambda p: p.name)
        except FileNotFoundError:
            # folder removed underneath us; same as never created
            return []
        except OSError as exc:
            logger.exception("Could not read record folder %s", path)
            raise DirectoryReadFailed(f"Could not read {path}: {exc}") from exc

        files: List[StoredFile] = []
        for entry in entries:
            try:
                if not entry.is_file():
                    continue
                size_bytes = entry.stat().st_size
            except FileNotFoundError:
                # unlinked by a concurrent retract or rollback
                continue
            except OSError as exc:
                logger.exception("Could not read record folder %s", path)
                raise DirectoryReadFailed(f"Could not read {entry}: {exc}") from exc
            files.append(
                StoredFile(
                    original_name=entry.name,
                    stored_name=entry.name,
                    size_bytes=size_bytes,
                    directory=record_id,
                )
            )
        return files

    def write(
        self,
        record_id: int,
        upload: IncomingFile,
        policy: CollisionPolicy = CollisionPolicy.TIMESTAMP,
    ) -> StoredFile:
        folder = self.ensure(record_id)
        stored_name = write_exclusive(folder, sanitize(upload.filename), upload.data, policy)
        logger.info({
            "function": "record_write",
            "status": "stored",
            "record_id": record_id,
            "stored_name": stored_name,
            "size_bytes": upload.size_bytes,
        })
        return StoredFile(
            original_name=upload.filename,
            stored_name=stored_name,
            size_bytes=upload.size_bytes,
            directory=record_id,
            content_type=upload.content_type,
        )


__all__ = ["RecordDirectory", "PATIENTS_DIR"]
