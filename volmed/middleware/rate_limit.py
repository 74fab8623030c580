"""Shared slowapi limiter for the upload endpoints."""
from slowapi import Limiter
from slowapi.util import get_remote_address

from volmed.utils.app import _env_str

UPLOAD_RATE_LIMIT = _env_str("UPLOAD_RATE_LIMIT", "60/minute")

limiter = Limiter(key_func=get_remote_address, default_limits=[])


def reset_limiter() -> None:
    """Forget all hits; used between tests."""
    limiter.reset()


__all__ = ["limiter", "reset_limiter", "UPLOAD_RATE_LIMIT", "get_remote_address"]
