"""Fixed-scale decimal helpers.

Prices, quantities and confidences are carried as ``Decimal`` at the scale of
their database column so that threshold comparisons are exact.
"""

import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Optional

QUANTITY_SCALE = 3
PRICE_SCALE = 2
CONFIDENCE_SCALE = 3

_NUMERIC_RE = re.compile(r"^-?\d+(\.\d+)?$")


def _quantum(scale: int) -> Decimal:
    return Decimal(1).scaleb(-scale)


def quantize(value: Decimal, scale: int) -> Decimal:
    return value.quantize(_quantum(scale), rounding=ROUND_HALF_UP)


def to_decimal(value: Any, scale: int) -> Optional[Decimal]:
    """Parse a number or numeric string into a Decimal at ``scale``.

    Returns None for missing, boolean, non-finite or non-numeric input.
    Floats go through ``str`` so ``0.1`` becomes ``Decimal("0.1")``.
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, Decimal):
        parsed = value
    elif isinstance(value, int):
        parsed = Decimal(value)
    elif isinstance(value, float):
        parsed = Decimal(repr(value))
    elif isinstance(value, str):
        trimmed = value.strip()
        if not _NUMERIC_RE.match(trimmed):
            return None
        parsed = Decimal(trimmed)
    else:
        return None

    if not parsed.is_finite():
        return None

    try:
        return quantize(parsed, scale)
    except InvalidOperation:
        return None


def decimal_to_str(value: Optional[Decimal]) -> Optional[str]:
    """Render a Decimal for JSON snapshots and history values."""
    if value is None:
        return None
    return format(value, "f")
