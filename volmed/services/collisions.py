"""Collision-free naming inside a storage folder.

Two policies exist, picked by the call site:

* ``TIMESTAMP``: ``stem-<unixMillis>ext`` (staged and multi-file uploads)
* ``NUMBERED``: ``stem (1)ext``, ``stem (2)ext``, ... (single attachments)

``resolve`` only looks at the folder. ``write_exclusive`` walks the same
candidate sequence but claims each name with an exclusive create, so two
writers racing on one name never overwrite each other.
"""
from __future__ import annotations

import contextlib
import enum
import itertools
import logging
import time
from pathlib import Path
from typing import Callable, Iterator, Union

from volmed.services.sanitizer import SafeName, split_name
from volmed.services.storage_errors import WriteFailed

logger = logging.getLogger("volmed")

MAX_ATTEMPTS = 10_000
FALLBACK_STEM = "upload"

Clock = Callable[[], int]
NameLike = Union[SafeName, str]


class CollisionPolicy(str, enum.Enum):
    TIMESTAMP = "timestamp"
    NUMBERED = "numbered"


def now_millis() -> int:
    return time.time_ns() // 1_000_000


def _as_safe_name(desired: NameLike) -> SafeName:
    name = desired if isinstance(desired, SafeName) else split_name(str(desired))
    # "" and "." are folder paths, not file names
    if name.filename in {"", ".", ".."}:
        return SafeName(FALLBACK_STEM, name.ext)
    return name


def candidate_names(desired: NameLike, policy: CollisionPolicy, clock: Clock = now_millis) -> Iterator[str]:
    """Yield ``desired`` first, then the policy's fallbacks, never repeating."""
    name = _as_safe_name(desired)
    yield name.filename
    if policy is CollisionPolicy.NUMBERED:
        for counter in itertools.count(1):
            yield f"{name.stem} ({counter}){name.ext}"
    else:
        last = 0
        while True:
            stamp = max(clock(), last + 1)
            last = stamp
            yield f"{name.stem}-{stamp}{name.ext}"


def resolve(
    directory: Union[str, Path],
    desired: NameLike,
    policy: CollisionPolicy = CollisionPolicy.TIMESTAMP,
    clock: Clock = now_millis,
) -> str:
    """Return the first candidate that does not exist in ``directory`` right now."""
    directory = Path(directory)
    for candidate in itertools.islice(candidate_names(desired, policy, clock), MAX_ATTEMPTS):
        if not (directory / candidate).exists():
            return candidate
    raise WriteFailed(f"No free name for {_as_safe_name(desired).filename!r} in {directory}")


def write_exclusive(
    directory: Union[str, Path],
    desired: NameLike,
    data: bytes,
    policy: CollisionPolicy = CollisionPolicy.TIMESTAMP,
    clock: Clock = now_millis,
) -> str:
    """Write ``data`` under the first candidate name that can be created exclusively.

    Returns the chosen name. A half-written file is removed before
    ``WriteFailed`` propagates.
    """
    directory = Path(directory)
    for candidate in itertools.islice(candidate_names(desired, policy, clock), MAX_ATTEMPTS):
        target = directory / candidate
        try:
            handle = open(target, "xb")
        except FileExistsError:
            continue
        except (OSError, ValueError) as exc:
            raise WriteFailed(f"Could not create {target}: {exc}") from exc
        try:
            with handle:
                handle.write(data)
        except OSError as exc:
            with contextlib.suppress(OSError):
                target.unlink()
            raise WriteFailed(f"Could not write {target}: {exc}") from exc
        if candidate != _as_safe_name(desired).filename:
            logger.info({
                "function": "write_exclusive",
                "status": "renamed",
                "policy": policy.value,
                "stored_name": candidate,
            })
        return candidate
    raise WriteFailed(
        f"No free name for {_as_safe_name(desired).filename!r} in {directory} after {MAX_ATTEMPTS} attempts"
    )


__all__ = ["CollisionPolicy", "candidate_names", "resolve", "write_exclusive", "now_millis"]
