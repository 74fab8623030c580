"""Staging for files uploaded before their patient record has an id.

Every upload batch gets its own folder ``patients/temp/<batch_id>``. Once the
database hands out the record id, ``commit`` moves the whole batch into the
record folder or, on any failure, leaves neither location holding it.
"""
from __future__ import annotations

import contextlib
import logging
import os
import re
import shutil
import time
import uuid
from pathlib import Path
from typing import Iterable, List, Optional

from volmed.services.collisions import CollisionPolicy, write_exclusive
from volmed.services.record_directory import RecordDirectory
from volmed.services.sanitizer import sanitize
from volmed.services.storage_errors import DirectoryCreateFailed, MoveFailed, StorageError
from volmed.services.stored_file import STAGING, IncomingFile, StoredFile, check_record_id

logger = logging.getLogger("volmed")

STAGING_DIR = "temp"
_BATCH_ID_RE = re.compile(r"^[0-9a-f]{32}$")


class StagingArea:
    def __init__(self, records: RecordDirectory):
        self.records = records

    @property
    def path(self) -> Path:
        return self.records.patients_root / STAGING_DIR

    def new_batch(self) -> str:
        return uuid.uuid4().hex

    def batch_path(self, batch_id: str) -> Path:
        if not isinstance(batch_id, str) or not _BATCH_ID_RE.match(batch_id):
            raise ValueError(f"Invalid staging batch id: {batch_id!r}")
        return self.path / batch_id

    def receive(self, upload: IncomingFile, batch_id: str) -> StoredFile:
        """Write one upload into the batch folder using the timestamp policy."""
        folder = self.batch_path(batch_id)
        try:
            folder.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            logger.exception("Could not create staging folder %s", folder)
            raise DirectoryCreateFailed(f"Could not create {folder}: {exc}") from exc
        stored_name = write_exclusive(folder, sanitize(upload.filename), upload.data, CollisionPolicy.TIMESTAMP)
        logger.info({
            "function": "staging_receive",
            "status": "staged",
            "batch_id": batch_id,
            "stored_name": stored_name,
            "size_bytes": upload.size_bytes,
        })
        return StoredFile(
            original_name=upload.filename,
            stored_name=stored_name,
            size_bytes=upload.size_bytes,
            directory=STAGING,
            content_type=upload.content_type,
            batch_id=batch_id,
        )

    def commit(self, record_id: int, files: Iterable[StoredFile]) -> List[StoredFile]:
        """Move a staged batch into the record folder, keeping stored names.

        All or nothing: if any file cannot be moved, the files already moved
        are removed again, the batch folder is deleted and ``MoveFailed`` is
        raised.
        """
        check_record_id(record_id)
        files = list(files)
        if not files:
            return []
        batch_ids = {f.batch_id for f in files}
        if len(batch_ids) != 1 or None in batch_ids or not all(f.is_staged for f in files):
            raise ValueError("commit expects files staged in a single batch")
        batch_id = batch_ids.pop()
        source_dir = self.batch_path(batch_id)

        try:
            target_dir = self.records.ensure(record_id)
        except StorageError:
            self.discard_quietly(batch_id)
            raise

        moved = []
        try:
            for staged in files:
                src = source_dir / staged.stored_name
                dst = target_dir / staged.stored_name
                # link fails if dst exists, unlike rename which replaces it
                try:
                    os.link(src, dst)
                except FileExistsError:
                    raise MoveFailed(f"{dst} already exists") from None
                moved.append(dst)
                os.unlink(src)
        except (OSError, MoveFailed) as exc:
            logger.exception("Staging commit failed for record %s (batch %s)", record_id, batch_id)
            for dst in moved:
                with contextlib.suppress(OSError):
                    dst.unlink()
            self.discard_quietly(batch_id)
            if isinstance(exc, MoveFailed):
                raise
            raise MoveFailed(f"Could not move staged files into {target_dir}: {exc}") from exc

        self.discard(batch_id)
        logger.info({
            "function": "staging_commit",
            "status": "committed",
            "record_id": record_id,
            "batch_id": batch_id,
            "files": len(moved),
        })
        return [staged.moved_to(record_id) for staged in files]

    def discard(self, batch_id: str) -> None:
        folder = self.batch_path(batch_id)
        try:
            shutil.rmtree(folder)
        except FileNotFoundError:
            return
        logger.info({"function": "staging_discard", "status": "removed", "batch_id": batch_id})

    def discard_quietly(self, batch_id: str) -> None:
        try:
            self.discard(batch_id)
        except OSError:
            logger.exception("Could not remove staging batch %s", batch_id)

    def sweep(self, max_age_seconds: float, now: Optional[float] = None) -> List[str]:
        """Remove staging entries not modified for ``max_age_seconds``.

        Committed batches are already gone, so anything this old belongs to a
        record creation that never finished.
        """
        if not self.path.is_dir():
            return []
        cutoff = (time.time() if now is None else now) - max_age_seconds
        removed: List[str] = []
        for entry in sorted(self.path.iterdir(), key=lambda p: p.name):
            try:
                if entry.stat().st_mtime >= cutoff:
                    continue
                if entry.is_dir() and not entry.is_symlink():
                    shutil.rmtree(entry)
                else:
                    entry.unlink()
            except FileNotFoundError:
                continue
            removed.append(entry.name)
        if removed:
            logger.info({
                "function": "staging_sweep",
                "status": "removed",
                "entries": removed,
            })
        return removed


__all__ = ["StagingArea", "STAGING_DIR"]
