import json
from typing import Any, Dict, List, Union

from priceledger.utils.logging import get_logger

LOGGER = get_logger(__name__)


def strip_code_fence(text: str) -> str:
    """Remove a surrounding markdown code fence (```json ... ``` or ``` ... ```)."""
    cleaned_text = text.strip()
    if not cleaned_text.startswith("```"):
        return cleaned_text

    lines = cleaned_text.split("\n")
    # First line is the opening fence, with or without a language tag
    lines = lines[1:]
    if lines and lines[-1].strip().startswith("```"):
        lines = lines[:-1]
    return "\n".join(lines).strip()


def parse_json_safely(text: str) -> Union[Dict[str, Any], List[Any], None]:
    """Parse JSON from model output, tolerating markdown code fences.

    Unlike a best-effort repair, a payload that is not valid JSON after the
    fence is stripped yields None; callers treat that as a hard failure
    rather than working with a truncated object.

    Args:
        text: The text containing JSON

    Returns:
        Parsed JSON value or None if parsing fails
    """
    if not text:
        return None

    cleaned_text = strip_code_fence(text)
    if not cleaned_text:
        return None

    try:
        return json.loads(cleaned_text)
    except json.JSONDecodeError as e:
        LOGGER.warning(f"Failed to parse JSON: {e}", extra={"preview": cleaned_text[:200]})
        return None
