"""Installer backend interface consumed by the lifecycle coordinator."""

from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel

from .downloader import ProgressCallback
from ..versions.models import Catalog, InstalledVersion


class LocalArchive(BaseModel):
    version_id: str
    path: Path


class InstallerBackend:
    """Filesystem and network operations behind each lifecycle action.

    Implementations raise ``BackendError`` subclasses, ``OSError`` or
    ``aiohttp.ClientError`` on failure. None of them touch the registry.
    """

    async def fetch_catalog(self) -> Catalog:
        raise NotImplementedError

    async def scan_installed(self) -> List[InstalledVersion]:
        raise NotImplementedError

    async def active_path(self) -> Optional[Path]:
        """Path the system-active pointer currently targets, if any."""
        raise NotImplementedError

    def install_destination(self, version_id: str) -> Path:
        raise NotImplementedError

    async def download(self, version_id: str,
                       progress_callback: Optional[ProgressCallback] = None) -> LocalArchive:
        raise NotImplementedError

    async def unpack(self, archive: LocalArchive, destination: Path) -> Path:
        raise NotImplementedError

    async def activate(self, path: Path):
        raise NotImplementedError

    async def trash(self, path: Path) -> Path:
        """Move an install somewhere recoverable; returns the new location."""
        raise NotImplementedError

    async def launch(self, path: Path):
        raise NotImplementedError

    async def reveal(self, path: Path):
        raise NotImplementedError
