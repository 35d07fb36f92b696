"""Catalog fetching and caching."""

import asyncio
import json
import logging
from pathlib import Path
from typing import Optional

import aiohttp

from .models import Catalog
from ..utils.async_http import AsyncHTTPClient

logger = logging.getLogger(__name__)


class CatalogClient:
    CACHE_NAME = "catalog.json"

    def __init__(self, url: str, cache_dir: Path, timeout: Optional[float] = 30.0):
        self.url = url
        self.cache_dir = Path(cache_dir)
        self.timeout = timeout

    @property
    def cache_path(self) -> Path:
        return self.cache_dir / self.CACHE_NAME

    async def fetch(self) -> Catalog:
        """Fetch the catalog, falling back to the cached copy when offline."""
        try:
            async with AsyncHTTPClient(timeout=self.timeout) as client:
                data = await client.get(self.url)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            cached = self.load_cached()
            if cached is None:
                raise
            logger.warning("Catalog fetch failed (%s); using cached copy", e)
            return cached

        catalog = Catalog(**data)
        self._write_cache(data)
        return catalog

    def load_cached(self) -> Optional[Catalog]:
        if not self.cache_path.exists():
            return None
        try:
            with open(self.cache_path, 'r', encoding='utf-8') as f:
                return Catalog(**json.load(f))
        except (OSError, ValueError) as e:
            logger.warning("Discarding unreadable catalog cache: %s", e)
            return None

    def _write_cache(self, data: dict):
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            with open(self.cache_path, 'w', encoding='utf-8') as f:
                json.dump(data, f)
        except OSError as e:
            logger.warning("Could not cache catalog: %s", e)
