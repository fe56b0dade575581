"""SQLAlchemy models for all database tables."""

import uuid
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    Date,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    TIMESTAMP,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from priceledger.core.database import Base


class Document(Base):
    """Uploaded invoice file, or one page of a multi-page upload group."""

    __tablename__ = "documents"

    id: Mapped[uuid.UUID] = mapped_column(
        "document_id", UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    file_name: Mapped[str] = mapped_column(String, nullable=False)
    file_hash: Mapped[str] = mapped_column(String, nullable=False)
    storage_key: Mapped[str] = mapped_column(String, nullable=False)
    upload_group_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)
    page_number: Mapped[int | None] = mapped_column(Integer, nullable=True)
    page_total: Mapped[int | None] = mapped_column(Integer, nullable=True)
    status: Mapped[str] = mapped_column(
        String, nullable=False, default="UPLOADED"
    )  # UPLOADED | PARSING | PARSED | PARSED_PARTIAL | FAILED | DELETED
    vendor_name: Mapped[str | None] = mapped_column(String, nullable=True)
    invoice_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    parse_error_summary: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    deleted_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    uploaded_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )

    parse_runs: Mapped[list["DocumentParseRun"]] = relationship(
        "DocumentParseRun", back_populates="document", cascade="all, delete-orphan"
    )
    page_assets: Mapped[list["DocumentPageAsset"]] = relationship(
        "DocumentPageAsset", back_populates="document", cascade="all, delete-orphan"
    )


class DocumentParseRun(Base):
    """One attempt to parse a document."""

    __tablename__ = "document_parse_runs"

    id: Mapped[uuid.UUID] = mapped_column(
        "parse_run_id", UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    document_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("documents.document_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    status: Mapped[str] = mapped_column(String, nullable=False)  # RUNNING | SUCCEEDED | PARTIAL | FAILED
    model: Mapped[str] = mapped_column(String, nullable=False)
    prompt_version: Mapped[str] = mapped_column(String, nullable=False)
    stats: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
    error_detail: Mapped[str | None] = mapped_column(Text, nullable=True)
    started_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )
    finished_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)

    document: Mapped["Document"] = relationship("Document", back_populates="parse_runs")


class DocumentPageAsset(Base):
    """Single-page PDF blob derived from one page of a document."""

    __tablename__ = "document_page_assets"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    document_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("documents.document_id", ondelete="CASCADE"), nullable=False
    )
    page_no: Mapped[int] = mapped_column(Integer, nullable=False)
    storage_key: Mapped[str] = mapped_column(String(1024), nullable=False)
    page_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    byte_size: Mapped[int] = mapped_column(Integer, nullable=False)
    mime_type: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )

    document: Mapped["Document"] = relationship("Document", back_populates="page_assets")

    __table_args__ = (
        UniqueConstraint("document_id", "page_no", name="uq_document_page_asset"),
    )


class DocumentParsePage(Base):
    """Per-page parse attempt record; the resume anchor of a parse run."""

    __tablename__ = "document_parse_pages"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    parse_run_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("document_parse_runs.parse_run_id", ondelete="CASCADE"),
        nullable=False,
    )
    page_no: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False)  # RUNNING | SUCCEEDED | FAILED
    parsed_json: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    error_summary: Mapped[str | None] = mapped_column(String(500), nullable=True)
    step_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    attempt: Mapped[int | None] = mapped_column(Integer, nullable=True)
    started_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    finished_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        UniqueConstraint("parse_run_id", "page_no", name="uq_parse_page_run_page"),
    )


class DocumentLineItem(Base):
    """One extracted product line, scoped to a parse run."""

    __tablename__ = "document_line_items"

    id: Mapped[uuid.UUID] = mapped_column(
        "line_item_id", UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    parse_run_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("document_parse_runs.parse_run_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    line_no: Mapped[int] = mapped_column(Integer, nullable=False)
    product_name_raw: Mapped[str | None] = mapped_column(Text, nullable=True)
    spec_raw: Mapped[str | None] = mapped_column(Text, nullable=True)
    product_key_candidate: Mapped[str | None] = mapped_column(Text, nullable=True)
    category: Mapped[str | None] = mapped_column(String, nullable=True)
    quantity: Mapped[Decimal | None] = mapped_column(Numeric(12, 3), nullable=True)
    unit_price: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    amount: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    model_confidence: Mapped[Decimal | None] = mapped_column(Numeric(4, 3), nullable=True)
    system_confidence: Mapped[Decimal | None] = mapped_column(Numeric(4, 3), nullable=True)
    matched_product_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)


class DocumentDiffItem(Base):
    """One reconciliation decision for one line item. Never updated in place."""

    __tablename__ = "document_diff_items"

    id: Mapped[uuid.UUID] = mapped_column(
        "diff_item_id", UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    parse_run_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("document_parse_runs.parse_run_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    line_item_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("document_line_items.line_item_id", ondelete="CASCADE"),
        nullable=False,
    )
    classification: Mapped[str] = mapped_column(String, nullable=False)
    reason: Mapped[str | None] = mapped_column(String, nullable=True)
    vendor_name: Mapped[str | None] = mapped_column(String, nullable=True)
    invoice_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    before: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
    after: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)


class ProductMaster(Base):
    """Canonical product record keyed by its normalized product key."""

    __tablename__ = "product_master"

    id: Mapped[uuid.UUID] = mapped_column(
        "product_id", UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    product_key: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    product_name: Mapped[str] = mapped_column(Text, nullable=False)
    spec: Mapped[str | None] = mapped_column(Text, nullable=True)
    category: Mapped[str | None] = mapped_column(String, nullable=True)
    default_unit_price: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    quality_flag: Mapped[str] = mapped_column(String, nullable=False)  # OK | WARN_KEY_WEAK
    last_updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )
    last_source_type: Mapped[str | None] = mapped_column(String, nullable=True)
    last_source_id: Mapped[str | None] = mapped_column(String, nullable=True)

    vendor_prices: Mapped[list["VendorPrice"]] = relationship(
        "VendorPrice", back_populates="product", cascade="all, delete-orphan"
    )


class VendorPrice(Base):
    """Per-(product, vendor) price point."""

    __tablename__ = "vendor_prices"

    id: Mapped[uuid.UUID] = mapped_column(
        "vendor_price_id", UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    product_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("product_master.product_id", ondelete="CASCADE"), nullable=False
    )
    vendor_name: Mapped[str] = mapped_column(String, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    price_updated_on: Mapped[date | None] = mapped_column(Date, nullable=True)
    source_type: Mapped[str] = mapped_column(String, nullable=False)
    source_id: Mapped[str] = mapped_column(String, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )

    product: Mapped["ProductMaster"] = relationship("ProductMaster", back_populates="vendor_prices")

    __table_args__ = (
        UniqueConstraint("product_id", "vendor_name", name="uq_vendor_price_product_vendor"),
    )


class UpdateHistory(Base):
    """Append-only audit record of one accepted field mutation."""

    __tablename__ = "update_history"

    id: Mapped[uuid.UUID] = mapped_column(
        "history_id", UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    update_key: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    product_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    field_name: Mapped[str] = mapped_column(String, nullable=False)
    vendor_name: Mapped[str | None] = mapped_column(String, nullable=True)
    before_value: Mapped[str | None] = mapped_column(Text, nullable=True)
    after_value: Mapped[str | None] = mapped_column(Text, nullable=True)
    source_type: Mapped[str] = mapped_column(String, nullable=False)
    source_id: Mapped[str] = mapped_column(String, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )
    updated_by: Mapped[str | None] = mapped_column(String, nullable=True)

    __table_args__ = (
        Index("ix_update_history_source", "source_type", "source_id"),
    )
