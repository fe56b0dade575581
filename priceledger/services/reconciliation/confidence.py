"""System confidence scoring for extracted line items."""

from decimal import Decimal
from typing import Any, Optional

from priceledger.utils.normalize import normalize_text
from priceledger.utils.numeric import CONFIDENCE_SCALE, quantize, to_decimal

DEFAULT_MODEL_CONFIDENCE = Decimal("0.60")

NAME_BONUS = Decimal("0.05")
SPEC_BONUS = Decimal("0.05")
CONSISTENCY_ADJUSTMENT = Decimal("0.10")

AMOUNT_TOLERANCE_FLOOR = Decimal("1")
AMOUNT_TOLERANCE_RATIO = Decimal("0.02")

_ZERO = Decimal("0")
_ONE = Decimal("1")


def clamp01(value: Decimal) -> Decimal:
    return max(_ZERO, min(_ONE, value))


def amounts_consistent(
    quantity: Optional[Decimal],
    unit_price: Optional[Decimal],
    amount: Optional[Decimal],
) -> bool:
    """True when ``quantity * unit_price`` matches ``amount`` within tolerance.

    Tolerance is ``max(1, |amount| * 0.02)``. A missing value means the
    triple cannot be checked and counts as inconsistent.
    """
    if quantity is None or unit_price is None or amount is None:
        return False
    tolerance = max(AMOUNT_TOLERANCE_FLOOR, abs(amount) * AMOUNT_TOLERANCE_RATIO)
    return abs(quantity * unit_price - amount) <= tolerance


def compute_system_confidence(
    model_confidence: Any,
    product_name: Optional[str],
    spec: Optional[str],
    quantity: Optional[Decimal],
    unit_price: Optional[Decimal],
    amount: Optional[Decimal],
) -> Decimal:
    """Score a line item from the model's confidence and its internal consistency.

    Starts at the model confidence (0.60 when absent), adds 0.05 each for a
    product name and a spec, then adds 0.10 when quantity, unit price and
    amount agree or subtracts 0.10 when they do not. Clamped to [0, 1].
    """
    base = to_decimal(model_confidence, CONFIDENCE_SCALE)
    score = clamp01(base) if base is not None else DEFAULT_MODEL_CONFIDENCE

    if normalize_text(product_name):
        score += NAME_BONUS
    if normalize_text(spec):
        score += SPEC_BONUS

    if amounts_consistent(quantity, unit_price, amount):
        score += CONSISTENCY_ADJUSTMENT
    else:
        score -= CONSISTENCY_ADJUSTMENT

    return quantize(clamp01(score), CONFIDENCE_SCALE)
