from __future__ import annotations

import os
from decimal import Decimal, InvalidOperation

from dotenv import load_dotenv

# Load .env once on import.
load_dotenv()


def _env_str(name: str, default: str = "") -> str:
    """Read a string env var, stripping whitespace."""
    return (os.getenv(name, default) or "").strip()


def _env_bool(name: str, default: bool = False) -> bool:
    """Read a boolean env var with common truthy values."""
    raw = _env_str(name, str(default)).lower()
    return raw in {"y", "yes", "t", "true", "on", "1"}


def _env_int(name: str, default: int = 0) -> int:
    """
    Read an int env var.

    If TESTING=true, `TEST_<NAME>` overrides the regular variable.
    """
    if _env_bool("TESTING", False):
        v = _env_str(f"TEST_{name}", "")
        if v:
            return int(v)
    v = _env_str(name, str(default))
    return int(v)


def _env_float(name: str, default: float = 0.0) -> float:
    """
    Read a float env var.

    If TESTING=true, `TEST_<NAME>` overrides the regular variable.
    """
    if _env_bool("TESTING", False):
        v = _env_str(f"TEST_{name}", "")
        if v:
            return float(v)
    v = _env_str(name, str(default))
    return float(v)


def _env_decimal(name: str, default: str = "0") -> Decimal:
    raw = _env_str(name, default) or default
    try:
        return Decimal(raw)
    except InvalidOperation as exc:
        raise ValueError(f"{name}={raw!r} is not a decimal number") from exc
