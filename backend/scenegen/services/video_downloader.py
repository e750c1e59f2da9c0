"""
Video Downloader - Fetch rendered videos from the provider CDN
"""

import httpx
from typing import Optional

from scenegen.config.constants import DOWNLOAD_TIMEOUT_S
from scenegen.services.observability import logger


class VideoDownloader:
    """
    Download generated videos from provider URLs
    """

    def __init__(self, client: Optional[httpx.AsyncClient] = None):
        """Initialize downloader"""
        self.client = client or httpx.AsyncClient(timeout=DOWNLOAD_TIMEOUT_S, follow_redirects=True)

    async def download_video(self, video_url: str) -> bytes:
        """
        Download video from a provider URL into memory

        Args:
            video_url: URL of video to download

        Returns:
            Video bytes

        Raises:
            httpx.HTTPError: If download fails
        """
        try:
            logger.info("video_download_start")

            chunks = []
            async with self.client.stream("GET", video_url) as response:
                response.raise_for_status()
                async for chunk in response.aiter_bytes(chunk_size=8192):
                    chunks.append(chunk)
            data = b"".join(chunks)

            logger.info("video_download_complete", size_bytes=len(data))
            return data

        except httpx.HTTPError as e:
            logger.error(
                "video_download_failed",
                error_type=type(e).__name__,
                error=str(e),
            )
            raise

    async def close(self):
        """Close HTTP client"""
        await self.client.aclose()
