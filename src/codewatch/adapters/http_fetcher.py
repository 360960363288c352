"""HTTP image fetcher used by the /testocr command."""

from __future__ import annotations

import asyncio
import urllib.error
import urllib.request

from codewatch.core.models import ImageAttachment

MAX_IMAGE_BYTES = 10 * 1024 * 1024


class UrlImageFetcher:
    """ImageFetcherPort that downloads ``attachment.ref`` over HTTP(S)."""

    def __init__(self, timeout_seconds: int = 15, max_bytes: int = MAX_IMAGE_BYTES) -> None:
        self._timeout = timeout_seconds
        self._max_bytes = max_bytes

    def _download(self, url: str) -> bytes:
        if not url.startswith(("http://", "https://")):
            raise ValueError(f"Unsupported image URL: {url}")
        request = urllib.request.Request(url, headers={"User-Agent": "codewatch"})
        try:
            with urllib.request.urlopen(request, timeout=self._timeout) as response:
                data = response.read(self._max_bytes + 1)
        except urllib.error.HTTPError as e:
            raise RuntimeError(f"HTTP {e.code} while downloading {url}") from e
        if len(data) > self._max_bytes:
            raise ValueError(f"Image larger than {self._max_bytes} bytes")
        return data

    async def fetch(self, attachment: ImageAttachment) -> bytes:
        # urllib blocks, so keep it off the event loop.
        return await asyncio.to_thread(self._download, attachment.ref)
