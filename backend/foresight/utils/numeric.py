# foresight/utils/numeric.py
from __future__ import annotations

import math
from typing import Optional, Union

Number = Union[int, float]


def parse_finite(value) -> Optional[float]:
    """
    Parse a string-encoded prediction/actual value into a finite float.
    Returns None for blanks, junk, NaN and infinities.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip().replace(",", "")
        if not value:
            return None
    try:
        out = float(value)
    except (TypeError, ValueError):
        return None
    return out if math.isfinite(out) else None


def safe_divide(numerator, denominator) -> Optional[float]:
    """
    Divide while guarding against None/zero/invalid values.
    """
    if numerator is None or denominator in (None, 0):
        return None
    try:
        return float(numerator) / float(denominator)
    except (TypeError, ValueError, ZeroDivisionError):
        return None


__all__ = ["parse_finite", "safe_divide"]
