"""Text, date and category normalization shared by merge and reconciliation."""

import re
import unicodedata
from datetime import date, datetime
from typing import Any, Optional

# \s covers U+3000 (ideographic space) in Python's Unicode-aware regex
_WHITESPACE_RE = re.compile(r"\s+")
_LINE_BREAK_RE = re.compile(r"[\r\n\t]+")
_ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

DEFAULT_CATEGORY = "Uncategorized"


def normalize_text(value: Optional[str]) -> str:
    """NFKC-normalize, turn line breaks into spaces, collapse whitespace and trim."""
    if not value:
        return ""
    normalized = unicodedata.normalize("NFKC", value)
    normalized = _LINE_BREAK_RE.sub(" ", normalized)
    normalized = _WHITESPACE_RE.sub(" ", normalized)
    return normalized.strip()


def normalize_optional_text(value: Optional[str]) -> Optional[str]:
    normalized = normalize_text(value)
    return normalized or None


def same_text(left: Optional[str], right: Optional[str]) -> bool:
    """Compare two values the way product keys compare them."""
    return normalize_text(left).casefold() == normalize_text(right).casefold()


def make_product_key(name: Optional[str], spec: Optional[str] = None) -> Optional[str]:
    """Derive the product match key from a product name and spec.

    The key is the whitespace-collapsed, case-folded join of name and spec,
    so ``("  Widget ", "Spec A")`` and ``("widget", " spec a ")`` collide.
    Returns None when there is no usable name.
    """
    name_n = normalize_text(name)
    if not name_n:
        return None
    joined = " ".join(part for part in (name_n, normalize_text(spec)) if part)
    return normalize_text(joined).casefold()


def parse_invoice_date(value: Any) -> Optional[date]:
    """Accept a date, a datetime or a ``YYYY-MM-DD`` string; anything else is None."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        candidate = value.strip()
        if not _ISO_DATE_RE.match(candidate):
            return None
        try:
            return date.fromisoformat(candidate)
        except ValueError:
            return None
    return None


def normalize_category(value: Optional[str]) -> Optional[str]:
    """Normalize an incoming category; empty and placeholder values become None."""
    if not isinstance(value, str):
        return None
    normalized = normalize_text(value)
    if not normalized:
        return None
    if normalized.casefold() == DEFAULT_CATEGORY.casefold():
        return None
    return normalized


def resolve_category(existing: Optional[str], incoming: Optional[str]) -> str:
    """Prefer the incoming category, then the existing one, then the default."""
    return normalize_category(incoming) or normalize_category(existing) or DEFAULT_CATEGORY
