"""Read-side payloads for parse runs, line items and diff items."""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from priceledger.models.stats import ParseRunStats


class ParseStartedResponse(BaseModel):
    document_id: UUID
    parse_run_id: UUID
    status: str = Field(..., description="Initial run status")


class ParseRunResponse(BaseModel):
    """A parse run with its status and stats."""

    parse_run_id: UUID
    document_id: UUID
    status: str
    model: str
    prompt_version: str
    stats: ParseRunStats
    failed_page_nos: List[int] = Field(default_factory=list)
    error_detail: Optional[str] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None


class LineItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    line_item_id: UUID = Field(validation_alias="id")
    line_no: int
    product_name_raw: Optional[str] = None
    spec_raw: Optional[str] = None
    product_key_candidate: Optional[str] = None
    category: Optional[str] = None
    quantity: Optional[Decimal] = None
    unit_price: Optional[Decimal] = None
    amount: Optional[Decimal] = None
    model_confidence: Optional[Decimal] = None
    system_confidence: Optional[Decimal] = None
    matched_product_id: Optional[UUID] = None


class DiffItemResponse(BaseModel):
    diff_item_id: UUID
    line_item_id: UUID
    line_no: int
    classification: str
    reason: Optional[str] = None
    vendor_name: Optional[str] = None
    invoice_date: Optional[date] = None
    before: Dict[str, Any] = Field(default_factory=dict)
    after: Dict[str, Any] = Field(default_factory=dict)


class DiffSummaryResponse(BaseModel):
    parse_run_id: UUID
    total: int
    counts: Dict[str, int]
