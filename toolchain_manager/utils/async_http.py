"""Async HTTP client utilities."""

import aiohttp
from typing import Optional, Dict, Any


class AsyncHTTPClient:
    """Reusable async HTTP client."""

    def __init__(self, headers: Optional[Dict[str, str]] = None, timeout: Optional[float] = None):
        self.default_headers = headers or {}
        self.timeout = aiohttp.ClientTimeout(total=timeout)

    async def __aenter__(self):
        self.session = aiohttp.ClientSession(headers=self.default_headers, timeout=self.timeout)
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.session.close()

    async def get(self, url: str, headers: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        """GET a JSON document."""
        req_headers = {**self.session.headers, **(headers or {})}
        async with self.session.get(url, headers=req_headers) as resp:
            resp.raise_for_status()
            # Catalog hosts often serve JSON as text/plain
            return await resp.json(content_type=None)
