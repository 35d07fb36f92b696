"""Archive downloads with checksum verification."""

import aiohttp
import aiofiles
import asyncio
import hashlib
import logging
from pathlib import Path
from typing import Awaitable, Callable, Optional

from ..errors import ChecksumMismatch

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str, int, int], Awaitable[None]]


class Downloader:
    def __init__(self, concurrent_downloads: int = 4):
        self.concurrent_downloads = concurrent_downloads
        self.semaphore = asyncio.Semaphore(concurrent_downloads)

    async def download_file(self, url: str, dest: Path, expected_sha1: Optional[str] = None,
                            progress_callback: Optional[ProgressCallback] = None) -> Path:
        """Download a file, verifying SHA1 when one is given.

        The file is written next to ``dest`` and only renamed into place once
        complete and verified, so a failed or cancelled download leaves
        nothing behind.
        """
        partial = dest.with_name(dest.name + ".part")
        dest.parent.mkdir(parents=True, exist_ok=True)
        async with self.semaphore:
            try:
                async with aiohttp.ClientSession() as session:
                    async with session.get(url) as resp:
                        resp.raise_for_status()
                        total_size = int(resp.headers.get('Content-Length', 0))
                        downloaded = 0

                        async with aiofiles.open(partial, 'wb') as f:
                            async for chunk_data, _ in resp.content.iter_chunks():
                                if not chunk_data:
                                    continue
                                await f.write(chunk_data)
                                downloaded += len(chunk_data)
                                if progress_callback:
                                    await progress_callback(dest.name, downloaded, total_size)

                if expected_sha1:
                    actual = await self.sha1_of(partial)
                    if actual != expected_sha1.lower():
                        raise ChecksumMismatch(dest, expected_sha1, actual)

                partial.replace(dest)
            except BaseException:
                partial.unlink(missing_ok=True)
                raise

        logger.debug("Downloaded %s to %s", url, dest)
        return dest

    @staticmethod
    async def sha1_of(file_path: Path) -> str:
        hash_sha1 = hashlib.sha1()
        async with aiofiles.open(file_path, 'rb') as f:
            while chunk := await f.read(8192):
                hash_sha1.update(chunk)
        return hash_sha1.hexdigest()
