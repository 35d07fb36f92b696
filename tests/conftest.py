"""Shared fixtures: a scripted installer backend and a loaded coordinator."""

import asyncio
from pathlib import Path
from typing import Dict, List, Optional

import pytest

from toolchain_manager.core import LifecycleCoordinator
from toolchain_manager.installer.backend import InstallerBackend, LocalArchive
from toolchain_manager.utils.clipboard import MemoryClipboard
from toolchain_manager.versions.models import Catalog, CatalogEntry, InstalledVersion
from toolchain_manager.versions.registry import VersionRegistry

INSTALL_ROOT = Path("/opt/ide")


class FakeBackend(InstallerBackend):
    """Records every call; failures and pauses are scripted per method."""

    def __init__(self, catalog_ids=("15.0", "14.3", "14.2"), installed=(), active=None):
        self.catalog = Catalog(versions=[
            CatalogEntry(id=v, description=f"IDE {v}", url=f"https://example.com/ide-{v}.zip")
            for v in catalog_ids
        ])
        self.installed: List[InstalledVersion] = [
            InstalledVersion(id=v, path=INSTALL_ROOT / v) for v in installed
        ]
        self.active: Optional[Path] = INSTALL_ROOT / active if active else None
        self.calls: List[tuple] = []
        self.failures: Dict[str, BaseException] = {}
        self.gate: Optional[asyncio.Event] = None
        self.started = asyncio.Event()

    def calls_to(self, method: str) -> List[tuple]:
        return [c for c in self.calls if c[0] == method]

    async def _step(self, method: str, *args):
        self.calls.append((method, *args))
        if method in self.failures:
            raise self.failures[method]

    async def fetch_catalog(self) -> Catalog:
        await self._step("fetch_catalog")
        return self.catalog

    async def scan_installed(self) -> List[InstalledVersion]:
        await self._step("scan_installed")
        return list(self.installed)

    async def active_path(self) -> Optional[Path]:
        return self.active

    def install_destination(self, version_id: str) -> Path:
        return INSTALL_ROOT / version_id

    async def download(self, version_id, progress_callback=None) -> LocalArchive:
        await self._step("download", version_id)
        self.started.set()
        if self.gate is not None:
            await self.gate.wait()
        if progress_callback:
            await progress_callback(f"ide-{version_id}.zip", 100, 100)
        return LocalArchive(version_id=version_id, path=Path(f"/tmp/ide-{version_id}.zip"))

    async def unpack(self, archive: LocalArchive, destination: Path) -> Path:
        await self._step("unpack", archive.version_id, destination)
        return destination

    async def activate(self, path: Path):
        await self._step("activate", path)
        self.active = path

    async def trash(self, path: Path) -> Path:
        await self._step("trash", path)
        if self.active == path:
            self.active = None
        return Path("/trash") / path.name

    async def launch(self, path: Path):
        await self._step("launch", path)

    async def reveal(self, path: Path):
        await self._step("reveal", path)


@pytest.fixture
def backend():
    return FakeBackend(installed=("14.3",), active="14.3")


@pytest.fixture
def registry():
    return VersionRegistry()


@pytest.fixture
def clipboard():
    return MemoryClipboard()


@pytest.fixture
def coordinator(registry, backend, clipboard):
    return LifecycleCoordinator(registry, backend, clipboard)


@pytest.fixture
def snapshots(registry):
    received = []
    registry.subscribe(received.append)
    return received
