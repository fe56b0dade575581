"""Object store access backed by Supabase Storage."""

from typing import Optional

import httpx

from priceledger.core.config import settings
from priceledger.core.exceptions import APITimeoutError, StorageError
from priceledger.utils.logging import get_logger

LOGGER = get_logger(__name__)


class StorageService:
    """Whole-object reads and writes against one Supabase storage bucket."""

    def __init__(
        self,
        url: Optional[str] = None,
        service_role_key: Optional[str] = None,
        bucket: Optional[str] = None,
        timeout: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = (url if url is not None else settings.storage.url).rstrip("/")
        self.service_role_key = (
            service_role_key if service_role_key is not None else settings.storage.service_role_key
        )
        self.bucket = bucket or settings.storage.bucket
        self.timeout = timeout or settings.http_timeout
        self.base_api_url = f"{self.url}/storage/v1"
        self.headers = {
            "Authorization": f"Bearer {self.service_role_key}",
            "apikey": self.service_role_key,
        }
        self._transport = transport

    def _object_url(self, key: str) -> str:
        return f"{self.base_api_url}/object/{self.bucket}/{key.lstrip('/')}"

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    async def get_bytes(self, key: str) -> bytes:
        """Download a whole object.

        Raises:
            APITimeoutError: If the request times out.
            StorageError: On any non-2xx response or transport failure.
        """
        try:
            async with self._client() as client:
                response = await client.get(self._object_url(key), headers=self.headers)
        except httpx.TimeoutException as e:
            LOGGER.warning("Storage download timed out", extra={"key": key})
            raise APITimeoutError(f"Storage download timeout for {key}", original_error=e) from e
        except httpx.HTTPError as e:
            LOGGER.error(f"Storage download error: {e}", exc_info=True, extra={"key": key})
            raise StorageError(f"Storage download error for {key}: {e}", original_error=e) from e

        if not response.is_success:
            LOGGER.error(
                "Failed to download object from storage",
                extra={"key": key, "status_code": response.status_code},
            )
            # The status code stays in the message so it reads as transient for 429/5xx
            raise StorageError(
                f"Storage download failed {response.status_code} for {key}: {response.text[:200]}",
                status_code=response.status_code,
            )

        return response.content

    async def put_bytes(
        self, key: str, data: bytes, content_type: str = "application/octet-stream"
    ) -> None:
        """Upload a whole object, overwriting any existing one at ``key``."""
        try:
            async with self._client() as client:
                response = await client.post(
                    self._object_url(key),
                    headers={**self.headers, "Content-Type": content_type, "x-upsert": "true"},
                    content=data,
                )
        except httpx.TimeoutException as e:
            LOGGER.warning("Storage upload timed out", extra={"key": key})
            raise APITimeoutError(f"Storage upload timeout for {key}", original_error=e) from e
        except httpx.HTTPError as e:
            LOGGER.error(f"Storage upload error: {e}", exc_info=True, extra={"key": key})
            raise StorageError(f"Storage upload error for {key}: {e}", original_error=e) from e

        if not response.is_success:
            LOGGER.error(
                f"Failed to upload object to storage: {response.text[:200]}",
                extra={"key": key, "status_code": response.status_code},
            )
            raise StorageError(
                f"Storage upload failed {response.status_code} for {key}: {response.text[:200]}",
                status_code=response.status_code,
            )

        LOGGER.debug("Uploaded object", extra={"key": key, "bytes": len(data)})
