"""Status and classification enums persisted as plain strings."""

from enum import Enum


class DocumentStatus(str, Enum):
    UPLOADED = "UPLOADED"
    PARSING = "PARSING"
    PARSED = "PARSED"
    PARSED_PARTIAL = "PARSED_PARTIAL"
    FAILED = "FAILED"
    DELETED = "DELETED"


class ParseRunStatus(str, Enum):
    RUNNING = "RUNNING"
    SUCCEEDED = "SUCCEEDED"
    PARTIAL = "PARTIAL"
    FAILED = "FAILED"


class ParsePageStatus(str, Enum):
    """Per-page parse status.

    ``SKIPPED`` is never persisted. The page step returns it when it finds
    the page already ``SUCCEEDED``.
    """

    RUNNING = "RUNNING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    SKIPPED = "SKIPPED"


class DiffClassification(str, Enum):
    NEW_CANDIDATE = "NEW_CANDIDATE"
    UPDATE = "UPDATE"
    BLOCKED = "BLOCKED"
    NO_CHANGE = "NO_CHANGE"
    UNMATCHED = "UNMATCHED"


class BlockReason(str, Enum):
    NO_PRODUCT_MATCH = "NO_PRODUCT_MATCH"
    LOW_CONFIDENCE = "LOW_CONFIDENCE"
    SPEC_CONFIDENCE_LOW = "SPEC_CONFIDENCE_LOW"
    PRICE_UNKNOWN = "PRICE_UNKNOWN"
    PRICE_DEVIATION_HIGH = "PRICE_DEVIATION_HIGH"


class QualityFlag(str, Enum):
    OK = "OK"
    WARN_KEY_WEAK = "WARN_KEY_WEAK"


class HistoryField(str, Enum):
    PRODUCT_CREATE = "product_create"
    SPEC = "spec"
    UNIT_PRICE = "unit_price"
    CATEGORY = "category"


SOURCE_TYPE_PDF = "PDF"
