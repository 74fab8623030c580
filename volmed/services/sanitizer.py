"""Filename sanitizing for uploaded documents."""
from __future__ import annotations

import os
import re
from typing import NamedTuple

_UNSAFE_STEM_CHARS = re.compile(r"[^A-Za-z0-9_-]")


class SafeName(NamedTuple):
    stem: str
    ext: str

    @property
    def filename(self) -> str:
        return f"{self.stem}{self.ext}"


def split_name(name: str) -> SafeName:
    """Split ``name`` into (stem, extension) without altering either part."""
    stem, ext = os.path.splitext(name)
    return SafeName(stem, ext)


def sanitize(original_name: str | None) -> SafeName:
    """Reduce a client-supplied filename to a filesystem-safe (stem, ext) pair.

    Only the last path segment is kept. The stem loses every character outside
    ``[A-Za-z0-9_-]``; the extension (from the last dot, dot included) is kept
    as sent. An entirely stripped stem gives ``""``.
    """
    base = (original_name or "").replace("\\", "/").rsplit("/", 1)[-1]
    stem, ext = split_name(base)
    return SafeName(_UNSAFE_STEM_CHARS.sub("", stem), ext)


__all__ = ["SafeName", "sanitize", "split_name"]
