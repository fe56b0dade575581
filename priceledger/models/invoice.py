"""Structured invoice payload returned by the extraction model.

Field names follow the model's camelCase wire format through aliases; Python
code uses the snake_case attribute names. The same shape is stored as the
``parsed_json`` of each parse page and produced by the page merge.
"""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

MAX_LINE_ITEMS_PER_PAGE = 500

# Largest magnitudes the Numeric(12, 2) money and Numeric(12, 3) quantity columns hold.
MAX_MONEY = 9_999_999_999.99
MAX_QUANTITY = 999_999_999.999


class ParsedLineItem(BaseModel):
    """One product line as read from the page."""

    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    line_no: int = Field(..., alias="lineNo", gt=0)
    product_name: str = Field(..., alias="productName", min_length=1)
    spec: Optional[str] = None
    quantity: Optional[float] = Field(default=None, ge=-MAX_QUANTITY, le=MAX_QUANTITY)
    unit_price: Optional[float] = Field(
        default=None, alias="unitPrice", ge=-MAX_MONEY, le=MAX_MONEY
    )
    amount: Optional[float] = Field(default=None, ge=-MAX_MONEY, le=MAX_MONEY)
    confidence: Optional[float] = Field(default=None, ge=0, le=1)
    category: Optional[str] = None


class ParsedInvoice(BaseModel):
    """Vendor, invoice date and line items read from one page or a merged document."""

    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    vendor_name: Optional[str] = Field(default=None, alias="vendorName")
    invoice_date: Optional[str] = Field(
        default=None, alias="invoiceDate", pattern=r"^\d{4}-\d{2}-\d{2}$"
    )
    line_items: List[ParsedLineItem] = Field(
        default_factory=list, alias="lineItems", max_length=MAX_LINE_ITEMS_PER_PAGE
    )

    @field_validator("vendor_name")
    @classmethod
    def _blank_vendor_is_missing(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not value:
            raise ValueError("vendorName must be non-empty or null")
        return value

    def to_json(self) -> dict:
        """Serialize with wire-format keys for JSONB storage."""
        return self.model_dump(by_alias=True, mode="json")


# JSON schema handed to the model as its structured-output contract.
INVOICE_RESPONSE_SCHEMA = {
    "type": "object",
    "properties": {
        "vendorName": {"type": ["string", "null"]},
        "invoiceDate": {"type": ["string", "null"], "pattern": r"\d{4}-\d{2}-\d{2}"},
        "lineItems": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "lineNo": {"type": "number"},
                    "productName": {"type": "string"},
                    "spec": {"type": ["string", "null"]},
                    "quantity": {"type": ["number", "null"]},
                    "unitPrice": {"type": ["number", "null"]},
                    "amount": {"type": ["number", "null"]},
                    "confidence": {"type": ["number", "null"], "minimum": 0, "maximum": 1},
                    "category": {"type": ["string", "null"]},
                },
                "required": ["lineNo", "productName"],
            },
        },
    },
    "required": ["vendorName", "lineItems"],
}
