"""Defensive numeric coercion shared by every bounded component.

Nothing here raises: unparseable or non-finite input maps to ``None`` (or to
the caller's fallback), so configuration and telemetry never fail on bad data.
"""

from __future__ import annotations

import math
from typing import Any


def is_finite_number(value: Any) -> bool:
    """True for real int/float values that are finite (bools excluded)."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def finite_or_none(value: Any) -> float | None:
    """Parse ``value`` as a float, returning None when it is not finite."""
    if value is None or isinstance(value, bool):
        return None
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(parsed):
        return None
    return parsed


def normalize_int(
    value: Any,
    fallback: int,
    minimum: int | None = None,
    maximum: int | None = None,
) -> int:
    """Floor ``value`` to an int clamped to [minimum, maximum].

    Returns ``fallback`` untouched when the value cannot be parsed.
    """
    parsed = finite_or_none(value)
    if parsed is None:
        return fallback
    result = math.floor(parsed)
    if minimum is not None:
        result = max(minimum, result)
    if maximum is not None:
        result = min(maximum, result)
    return result


def normalize_float(value: Any, fallback: float, minimum: float | None = None) -> float:
    parsed = finite_or_none(value)
    if parsed is None:
        return fallback
    if minimum is not None:
        parsed = max(minimum, parsed)
    return parsed


__all__ = ["is_finite_number", "finite_or_none", "normalize_int", "normalize_float"]
