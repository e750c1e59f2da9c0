"""
Unit Tests for VideoDownloader
"""

import httpx
import pytest


@pytest.mark.asyncio
async def test_download_returns_body(downloader_factory):
    downloader = downloader_factory(lambda request: httpx.Response(200, content=b"x" * 20000))

    data = await downloader.download_video("https://cdn.test/video.mp4")

    assert data == b"x" * 20000
    await downloader.close()


@pytest.mark.asyncio
async def test_download_error_status_raises(downloader_factory):
    downloader = downloader_factory(lambda request: httpx.Response(404))

    with pytest.raises(httpx.HTTPStatusError):
        await downloader.download_video("https://cdn.test/missing.mp4")


@pytest.mark.asyncio
async def test_download_transport_error_raises(downloader_factory):
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    downloader = downloader_factory(handler)

    with pytest.raises(httpx.ConnectError):
        await downloader.download_video("https://cdn.test/video.mp4")
