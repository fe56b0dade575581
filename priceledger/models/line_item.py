"""In-memory line item built during finalize, before it is persisted."""

import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, Optional

from priceledger.models.invoice import ParsedLineItem
from priceledger.services.reconciliation.confidence import compute_system_confidence
from priceledger.utils.normalize import make_product_key, normalize_optional_text
from priceledger.utils.numeric import CONFIDENCE_SCALE, PRICE_SCALE, QUANTITY_SCALE, to_decimal


@dataclass
class LineItemDraft:
    parse_run_id: uuid.UUID
    line_no: int
    product_name_raw: Optional[str]
    spec_raw: Optional[str]
    product_key: Optional[str]
    category: Optional[str]
    quantity: Optional[Decimal]
    unit_price: Optional[Decimal]
    amount: Optional[Decimal]
    model_confidence: Optional[Decimal]
    system_confidence: Decimal
    matched_product_id: Optional[uuid.UUID] = None
    id: uuid.UUID = field(default_factory=uuid.uuid4)

    @classmethod
    def from_parsed(cls, parse_run_id: uuid.UUID, item: ParsedLineItem) -> "LineItemDraft":
        quantity = to_decimal(item.quantity, QUANTITY_SCALE)
        unit_price = to_decimal(item.unit_price, PRICE_SCALE)
        amount = to_decimal(item.amount, PRICE_SCALE)
        return cls(
            parse_run_id=parse_run_id,
            line_no=item.line_no,
            product_name_raw=item.product_name,
            spec_raw=item.spec,
            product_key=make_product_key(item.product_name, item.spec),
            category=normalize_optional_text(item.category),
            quantity=quantity,
            unit_price=unit_price,
            amount=amount,
            model_confidence=to_decimal(item.confidence, CONFIDENCE_SCALE),
            system_confidence=compute_system_confidence(
                item.confidence, item.product_name, item.spec, quantity, unit_price, amount
            ),
        )

    def to_row(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "parse_run_id": self.parse_run_id,
            "line_no": self.line_no,
            "product_name_raw": self.product_name_raw,
            "spec_raw": self.spec_raw,
            "product_key_candidate": self.product_key,
            "category": self.category,
            "quantity": self.quantity,
            "unit_price": self.unit_price,
            "amount": self.amount,
            "model_confidence": self.model_confidence,
            "system_confidence": self.system_confidence,
            "matched_product_id": self.matched_product_id,
        }
