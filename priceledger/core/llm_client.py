import asyncio
from typing import Any, Dict, List, Optional, Union

from google import genai
from google.genai import types

from priceledger.core.exceptions import APIClientError, APITimeoutError
from priceledger.utils.logging import get_logger

LOGGER = get_logger(__name__)


class GeminiClient:
    """Wrapper for Google Gemini API client."""

    def __init__(
        self,
        api_key: str,
        model: str = "gemini-2.0-flash",
        timeout: int = 120,
        max_retries: int = 1,
    ):
        """Initialize Gemini client.

        Args:
            api_key: Gemini API key
            model: Model name to use
            timeout: Request timeout in seconds
            max_retries: Attempts made inside a single call. Page-level retries
                with backoff are handled by the pipeline's step runner, so this
                defaults to one.
        """
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self.max_retries = max(1, max_retries)

        try:
            self.client = genai.Client(
                api_key=self.api_key,
                http_options=types.HttpOptions(timeout=self.timeout * 1000),
            )
            LOGGER.info(f"Initialized Gemini client with model {self.model}")
        except Exception as e:
            LOGGER.error(f"Failed to initialize Gemini client: {e}")
            raise APIClientError(f"Failed to initialize Gemini client: {e}", original_error=e)

    async def generate_content(
        self,
        contents: Union[str, List[Any]],
        system_instruction: Optional[str] = None,
        generation_config: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Generate content using Gemini model.

        Args:
            contents: Input content (string or list of parts)
            system_instruction: Optional system instruction
            generation_config: Optional generation config (temperature, etc.)

        Returns:
            Generated text response, empty if the model returned no text

        Raises:
            APITimeoutError: If the request timed out
            APIClientError: If generation fails; the provider message is kept
                so rate-limit and 5xx errors remain recognizable
        """
        config = types.GenerateContentConfig(
            temperature=0.0,  # Default to deterministic
        )

        if generation_config:
            if "temperature" in generation_config:
                config.temperature = generation_config["temperature"]
            if "max_output_tokens" in generation_config:
                config.max_output_tokens = generation_config["max_output_tokens"]
            if "response_mime_type" in generation_config:
                config.response_mime_type = generation_config["response_mime_type"]
            if "response_json_schema" in generation_config:
                config.response_json_schema = generation_config["response_json_schema"]

        if system_instruction:
            config.system_instruction = system_instruction

        for attempt in range(self.max_retries):
            try:
                response = await self.client.aio.models.generate_content(
                    model=self.model,
                    contents=contents,
                    config=config
                )

                if not response.text:
                    LOGGER.warning("Empty response from Gemini")
                    return ""

                return response.text

            except asyncio.TimeoutError as e:
                LOGGER.warning(f"Gemini API timeout (Attempt {attempt + 1}/{self.max_retries})")
                if attempt < self.max_retries - 1:
                    await asyncio.sleep(2 ** attempt)
                else:
                    raise APITimeoutError(f"Gemini generation timeout: {e}", original_error=e) from e

            except Exception as e:
                LOGGER.warning(
                    f"Gemini API error (Attempt {attempt + 1}/{self.max_retries}): {e}"
                )
                if attempt < self.max_retries - 1:
                    await asyncio.sleep(2 ** attempt)
                else:
                    LOGGER.error(f"Gemini generation failed: {e}", exc_info=True)
                    code = getattr(e, "code", None)
                    raise APIClientError(
                        f"Gemini generation failed: {e}",
                        original_error=e,
                        status_code=code if isinstance(code, int) else None,
                    ) from e

        raise APIClientError("Gemini generation failed")
