"""Value types passed between the upload ingestor and the on-disk folders."""
from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Optional, Union

from volmed.services.storage_errors import InvalidRecordId

STAGING = "staging"


@dataclass(frozen=True)
class IncomingFile:
    """A file as received from the client, before validation."""

    filename: str
    content_type: str
    data: bytes

    @property
    def size_bytes(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class StoredFile:
    original_name: str
    stored_name: str
    size_bytes: int
    directory: Union[int, str]
    content_type: Optional[str] = None
    batch_id: Optional[str] = None

    @property
    def is_staged(self) -> bool:
        return self.directory == STAGING

    def moved_to(self, record_id: int) -> "StoredFile":
        return replace(self, directory=record_id, batch_id=None)


def check_record_id(record_id) -> int:
    """Return ``record_id`` if it is a positive integer, raise otherwise."""
    if isinstance(record_id, bool) or not isinstance(record_id, int) or record_id <= 0:
        raise InvalidRecordId(record_id)
    return record_id


__all__ = ["IncomingFile", "StoredFile", "STAGING", "check_record_id"]
