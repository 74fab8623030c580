"""Error kinds raised by the per-record document store.

The store never encodes transport concerns; ``volmed.utils.exceptions`` maps
these to HTTP responses.
"""
from __future__ import annotations


class StorageError(Exception):
    """Base class for every document store failure."""


class InvalidMimeType(StorageError):
    def __init__(self, filename: str, content_type: str, allowed):
        self.filename = filename
        self.content_type = content_type
        self.allowed = tuple(allowed)
        super().__init__(
            f"{filename!r} has type {content_type or 'unknown'!r}; "
            f"allowed types: {', '.join(self.allowed)}"
        )


class FileTooLarge(StorageError):
    def __init__(self, filename: str, size_bytes: int, limit_bytes: int, aggregate: bool = False):
        self.filename = filename
        self.size_bytes = size_bytes
        self.limit_bytes = limit_bytes
        self.aggregate = aggregate
        what = "batch" if aggregate else repr(filename)
        super().__init__(f"{what} is {size_bytes} bytes; limit is {limit_bytes} bytes")


class InvalidRecordId(StorageError, ValueError):
    def __init__(self, record_id):
        self.record_id = record_id
        super().__init__(f"Invalid record id: {record_id!r}")


class RecordNotFound(StorageError):
    def __init__(self, record_id):
        self.record_id = record_id
        super().__init__(f"Record {record_id} not found")


class DirectoryCreateFailed(StorageError):
    pass


class DirectoryReadFailed(StorageError):
    pass


class WriteFailed(StorageError):
    pass


class MoveFailed(StorageError):
    pass


__all__ = [
    "StorageError",
    "InvalidMimeType",
    "FileTooLarge",
    "InvalidRecordId",
    "RecordNotFound",
    "DirectoryCreateFailed",
    "DirectoryReadFailed",
    "WriteFailed",
    "MoveFailed",
]
