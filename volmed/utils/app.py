import os
from typing import List, Optional


# ---------------- Environment Helpers ----------------
def _env_str(name: str, default: str) -> str:
    value = (os.getenv(name) or "").strip()
    return value or default


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, default))
    except (ValueError, TypeError):
        return default


def _env_csv(name: str, default: List[str]) -> List[str]:
    raw: Optional[str] = os.getenv(name)
    if raw is None:
        return list(default)
    items = [item.strip() for item in raw.split(",") if item.strip()]
    return items or list(default)
