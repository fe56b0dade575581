"""Confidence-gated update policy and price recency rule."""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Optional, Union

from priceledger.models.enums import BlockReason

SYSTEM_CONFIDENCE_MIN = Decimal("0.85")
SPEC_UPDATE_MIN = Decimal("0.90")
NEW_PRODUCT_MIN = Decimal("0.90")
PRICE_DEVIATION_MAX = Decimal("0.30")

Number = Union[Decimal, float, int]


def _as_decimal(value: Optional[Number]) -> Optional[Decimal]:
    if value is None:
        return None
    if isinstance(value, Decimal):
        return value
    # str() keeps the literal value of a float such as 0.8499
    return Decimal(str(value))


@dataclass(frozen=True)
class PolicyDecision:
    allowed: bool
    reason: Optional[BlockReason] = None


def price_deviation_ratio(
    new_price: Optional[Number], old_price: Optional[Number]
) -> Optional[Decimal]:
    """Relative deviation of a new price from the stored one.

    Returns 0 when there is no stored price, since a first price is never
    deviant, and None when the ratio cannot be determined.
    """
    new = _as_decimal(new_price)
    old = _as_decimal(old_price)
    if old is None:
        return Decimal("0")
    if new is None or old <= 0:
        return None
    return abs(new - old) / old


def evaluate_update_policy(
    system_confidence: Optional[Number],
    spec_update_requested: bool,
    price_update_requested: bool,
    price_deviation: Optional[Number],
) -> PolicyDecision:
    confidence = _as_decimal(system_confidence)
    if confidence is None or confidence < SYSTEM_CONFIDENCE_MIN:
        return PolicyDecision(False, BlockReason.LOW_CONFIDENCE)

    if spec_update_requested and confidence < SPEC_UPDATE_MIN:
        return PolicyDecision(False, BlockReason.SPEC_CONFIDENCE_LOW)

    if price_update_requested:
        deviation = _as_decimal(price_deviation)
        if deviation is None:
            return PolicyDecision(False, BlockReason.PRICE_UNKNOWN)
        if deviation > PRICE_DEVIATION_MAX:
            return PolicyDecision(False, BlockReason.PRICE_DEVIATION_HIGH)

    return PolicyDecision(True)


def is_newer_price_date(
    invoice_date: Optional[date],
    stored_date: Optional[date],
    has_stored_price: bool = True,
) -> bool:
    """Whether a price from ``invoice_date`` may replace the stored price.

    A dated invoice wins over an undated stored price or a strictly older one.
    An undated invoice only writes where there is no stored date either.
    """
    if not has_stored_price:
        return True
    if stored_date is None:
        return True
    if invoice_date is None:
        return False
    return invoice_date > stored_date


def can_create_product(system_confidence: Optional[Number], product_name: Optional[str]) -> bool:
    confidence = _as_decimal(system_confidence)
    return bool(product_name) and confidence is not None and confidence >= NEW_PRODUCT_MIN
