"""
Object Storage Client - Supabase Storage REST API over httpx
"""

from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx

from scenegen.config.settings import settings
from scenegen.config.constants import STORAGE_LIST_LIMIT
from scenegen.services.observability import logger


class StorageError(Exception):
    """Storage request failed"""

    def __init__(self, message: str, endpoint: str, status: Optional[int] = None, body: Optional[str] = None):
        super().__init__(message)
        self.endpoint = endpoint
        self.status = status
        self.body = body


class StorageClient:
    """
    Async client for a Supabase storage bucket set

    All methods take object keys relative to a bucket; bucket defaults to
    settings.media_bucket.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        service_key: Optional[str] = None,
        bucket: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = (base_url or settings.supabase_url).rstrip("/")
        self.service_key = service_key if service_key is not None else settings.supabase_service_key
        self.bucket = bucket or settings.media_bucket
        self.client = client or httpx.AsyncClient(timeout=timeout or settings.storage_timeout_s)

    @property
    def storage_url(self) -> str:
        return f"{self.base_url}/storage/v1"

    def _headers(self, content_type: Optional[str] = None) -> Dict[str, str]:
        headers = {
            "apikey": self.service_key,
            "Authorization": f"Bearer {self.service_key}",
        }
        if content_type:
            headers["Content-Type"] = content_type
        return headers

    @staticmethod
    def _quote_key(key: str) -> str:
        return quote(key.strip().lstrip("/"), safe="/")

    async def _request(self, method: str, endpoint: str, **kwargs) -> httpx.Response:
        try:
            response = await self.client.request(method, endpoint, **kwargs)
        except httpx.HTTPError as e:
            logger.error("storage_request_failed", method=method, endpoint=endpoint, error=str(e))
            raise StorageError(f"Storage request failed: {e}", endpoint) from e

        if not response.is_success:
            logger.error(
                "storage_request_failed",
                method=method,
                endpoint=endpoint,
                status=response.status_code,
            )
            raise StorageError(
                f"Storage request failed with status {response.status_code}",
                endpoint,
                status=response.status_code,
                body=response.text,
            )
        return response

    async def list(self, prefix: str, bucket: Optional[str] = None) -> List[str]:
        """
        List object keys directly under prefix

        Args:
            prefix: Folder prefix (no trailing slash required)
            bucket: Bucket name

        Returns:
            Full object keys
        """
        bucket = bucket or self.bucket
        prefix = prefix.strip("/")
        endpoint = f"{self.storage_url}/object/list/{bucket}"
        response = await self._request(
            "POST",
            endpoint,
            json={"prefix": prefix, "limit": STORAGE_LIST_LIMIT, "offset": 0},
            headers=self._headers("application/json"),
        )
        entries = response.json() or []
        return [f"{prefix}/{entry['name']}" for entry in entries if entry.get("name")]

    async def upload(
        self,
        key: str,
        data: bytes,
        content_type: str,
        bucket: Optional[str] = None,
        upsert: bool = True,
    ) -> str:
        """
        Upload bytes to key

        Returns:
            The stored object key
        """
        bucket = bucket or self.bucket
        endpoint = f"{self.storage_url}/object/{bucket}/{self._quote_key(key)}"
        headers = self._headers(content_type)
        headers["x-upsert"] = "true" if upsert else "false"
        await self._request("POST", endpoint, content=data, headers=headers)
        logger.info("storage_uploaded", bucket=bucket, key=key, size_bytes=len(data))
        return key

    async def remove(self, keys: List[str], bucket: Optional[str] = None) -> int:
        """Remove objects; returns the number of keys requested"""
        if not keys:
            return 0
        bucket = bucket or self.bucket
        endpoint = f"{self.storage_url}/object/{bucket}"
        await self._request(
            "DELETE",
            endpoint,
            json={"prefixes": keys},
            headers=self._headers("application/json"),
        )
        logger.info("storage_removed", bucket=bucket, count=len(keys))
        return len(keys)

    async def create_signed_url(self, key: str, ttl_seconds: int, bucket: Optional[str] = None) -> str:
        """
        Create a time-limited URL for a private object

        Returns:
            Absolute signed URL
        """
        bucket = bucket or self.bucket
        endpoint = f"{self.storage_url}/object/sign/{bucket}/{self._quote_key(key)}"
        response = await self._request(
            "POST",
            endpoint,
            json={"expiresIn": ttl_seconds},
            headers=self._headers("application/json"),
        )
        data: Dict[str, Any] = response.json()
        signed_path = data.get("signedURL") or data.get("signedUrl")
        if not signed_path:
            raise StorageError("Storage returned no signed URL", endpoint, status=response.status_code)
        if signed_path.startswith("http"):
            return signed_path
        return f"{self.storage_url}{signed_path}"

    async def copy(self, source_key: str, destination_key: str, destination_bucket: Optional[str] = None) -> str:
        """Copy an object from the media bucket, optionally into another bucket"""
        endpoint = f"{self.storage_url}/object/copy"
        body = {
            "bucketId": self.bucket,
            "sourceKey": source_key,
            "destinationKey": destination_key,
        }
        if destination_bucket:
            body["destinationBucket"] = destination_bucket
        await self._request("POST", endpoint, json=body, headers=self._headers("application/json"))
        logger.info("storage_copied", source_key=source_key, destination_key=destination_key)
        return destination_key

    def public_url(self, key: str, bucket: Optional[str] = None) -> str:
        bucket = bucket or settings.public_bucket
        return f"{self.storage_url}/object/public/{bucket}/{self._quote_key(key)}"

    async def close(self):
        """Close HTTP client"""
        await self.client.aclose()
