from __future__ import annotations

import os
from typing import List, Optional

from dotenv import load_dotenv

# Load .env once on import so every NOCAP_* reader sees it.
load_dotenv()


def _env_str(name: str, default: str = "") -> str:
    """Read a string env var, stripping whitespace."""
    return (os.getenv(name, default) or "").strip()


def _env_bool(name: str, default: bool = False) -> bool:
    """Read a boolean env var with common truthy values."""
    raw = _env_str(name, str(default)).lower()
    return raw in {"y", "yes", "t", "true", "on", "1"}


def _test_override(name: str) -> str:
    if _env_bool("TESTING", False):
        return _env_str(f"TEST_{name}", "")
    return ""


def _env_int(name: str, default: int = 0, *, test_default: Optional[int] = None) -> int:
    """
    Read an int env var.

    If TESTING=true, `TEST_<NAME>` (or `test_default`) wins over `<NAME>`.
    """
    v = _test_override(name)
    if v:
        return int(v)
    if test_default is not None and _env_bool("TESTING", False):
        return int(test_default)
    return int(_env_str(name, str(default)) or default)


def _env_float(name: str, default: float = 0.0, *, test_default: Optional[float] = None) -> float:
    """Float counterpart of :func:`_env_int`, with the same TESTING override."""
    v = _test_override(name)
    if v:
        return float(v)
    if test_default is not None and _env_bool("TESTING", False):
        return float(test_default)
    return float(_env_str(name, str(default)) or default)


def _env_csv(name: str, default: str = "") -> List[str]:
    raw = _env_str(name, default)
    if not raw:
        return []
    return [x.strip() for x in raw.split(",") if x.strip()]
