"""Invoice extraction from a single-page PDF through Gemini structured output."""

import base64
import binascii
from typing import Optional

from google.genai import types
from pydantic import ValidationError as PydanticValidationError

from priceledger.core.config import settings
from priceledger.core.exceptions import ConfigurationError, ExtractionError
from priceledger.core.llm_client import GeminiClient
from priceledger.models.invoice import INVOICE_RESPONSE_SCHEMA, ParsedInvoice
from priceledger.services.extraction.prompt import SYSTEM_PROMPT, build_page_prompt
from priceledger.utils.json_parser import parse_json_safely
from priceledger.utils.logging import get_logger

LOGGER = get_logger(__name__)

RESPONSE_EMPTY = "GEMINI_RESPONSE_EMPTY"
RESPONSE_INVALID_JSON = "GEMINI_RESPONSE_INVALID_JSON"
RESPONSE_INVALID_SCHEMA = "GEMINI_RESPONSE_INVALID_SCHEMA"


class InvoiceExtractionService:
    """Turns one page of PDF bytes into a validated ``ParsedInvoice``.

    Any response that is empty, not JSON, or does not match the invoice
    schema raises ``ExtractionError``; partial payloads are never returned.
    Error messages are fixed codes so they never look transient to the
    page retry classifier.
    """

    def __init__(self, client: Optional[GeminiClient] = None):
        self._client = client

    @property
    def client(self) -> GeminiClient:
        if self._client is None:
            if not settings.gemini_api_key:
                raise ConfigurationError("GEMINI_API_KEY is not configured")
            self._client = GeminiClient(
                api_key=settings.gemini_api_key,
                model=settings.gemini_model,
                timeout=settings.llm.timeout,
                max_retries=settings.llm.max_retries,
            )
        return self._client

    async def extract_page(self, page_bytes_b64: str, page_no: int) -> ParsedInvoice:
        try:
            pdf_bytes = base64.b64decode(page_bytes_b64, validate=True)
        except (binascii.Error, ValueError) as e:
            raise ExtractionError("PAGE_BYTES_INVALID_BASE64", original_error=e) from e

        contents = [
            types.Part.from_bytes(data=pdf_bytes, mime_type="application/pdf"),
            build_page_prompt(page_no),
        ]

        raw_text = await self.client.generate_content(
            contents=contents,
            system_instruction=SYSTEM_PROMPT,
            generation_config={
                "temperature": 0.0,
                "response_mime_type": "application/json",
                "response_json_schema": INVOICE_RESPONSE_SCHEMA,
            },
        )
        return self.parse_response(raw_text, page_no)

    def parse_response(self, raw_text: Optional[str], page_no: int) -> ParsedInvoice:
        if not raw_text or not raw_text.strip():
            LOGGER.warning("Extraction returned no text", extra={"page_no": page_no})
            raise ExtractionError(RESPONSE_EMPTY)

        payload = parse_json_safely(raw_text)
        if payload is None:
            raise ExtractionError(RESPONSE_INVALID_JSON)

        try:
            parsed = ParsedInvoice.model_validate(payload)
        except PydanticValidationError as e:
            LOGGER.warning(
                "Extraction response failed schema validation",
                extra={"page_no": page_no, "errors": e.errors(include_url=False)[:5]},
            )
            raise ExtractionError(RESPONSE_INVALID_SCHEMA, original_error=e) from e

        LOGGER.info(
            "Extracted invoice page",
            extra={"page_no": page_no, "line_items": len(parsed.line_items)},
        )
        return parsed
