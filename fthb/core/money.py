"""Numeric coercion and whole-dollar rounding helpers."""

from __future__ import annotations

import math


def _safe_float(value: float | int | str | None, default: float = 0.0) -> float:
    """Return a finite float, otherwise ``default``.

    Calculators are fed from JSON payloads and CLI flags; this keeps NaN/inf
    out of totals.
    """
    try:
        x = float(value)  # type: ignore[arg-type]
    except Exception:
        return float(default)
    return x if math.isfinite(x) else float(default)


def round_half_up(value: float) -> int:
    """Round to the nearest whole dollar, halves away from zero.

    ``round()`` uses banker's rounding (``round(12.5) == 12``), which makes
    displayed totals drift from hand calculations.
    """
    x = _safe_float(value)
    if x < 0:
        return -int(math.floor(-x + 0.5))
    return int(math.floor(x + 0.5))


def floor_dollars(value: float) -> int:
    """Truncate towards negative infinity to whole dollars."""
    return int(math.floor(_safe_float(value)))
