"""Normalization helpers.

Lenient parsing of loosely typed telemetry values.
"""

from __future__ import annotations

import math
from typing import Any


def is_number(value: Any) -> bool:
    """Return True for real numbers (``bool`` excluded)."""
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def safe_float(value: Any) -> float | None:
    if value is None or value == "" or value == "--":
        return None
    try:
        result = float(value)
    except (TypeError, ValueError, OverflowError):
        return None
    if math.isnan(result):
        return None
    return result


def safe_int(value: Any) -> int | None:
    parsed = safe_float(value)
    if parsed is None or math.isinf(parsed):
        return None
    return int(parsed)
