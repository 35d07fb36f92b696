"""Filesystem-backed installer: downloads, unpacks and switches installs."""

import asyncio
import logging
import os
import platform
import shutil
import subprocess
import tarfile
import threading
import zipfile
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from .backend import InstallerBackend, LocalArchive
from .downloader import Downloader, ProgressCallback
from ..config import Settings
from ..errors import BackendError, BackendTimeout
from ..versions.catalog import CatalogClient
from ..versions.models import Catalog, InstalledVersion

logger = logging.getLogger(__name__)


class LocalInstallerBackend(InstallerBackend):
    """Keeps one directory per version under ``install_root``.

    The system-active version is a ``current`` symlink in the same
    directory. Uninstalled versions are moved to ``trash_dir``.
    """

    ACTIVE_LINK = "current"

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or Settings()
        self.install_root = Path(self.settings.install_root)
        self.downloads_dir = Path(self.settings.downloads_dir)
        self.trash_dir = Path(self.settings.trash_dir)
        self.install_root.mkdir(parents=True, exist_ok=True)
        self.catalog_client = CatalogClient(self.settings.catalog_url, self.settings.cache_dir)
        self.downloader = Downloader(self.settings.concurrent_downloads)
        self._executor = ThreadPoolExecutor(max_workers=self.settings.concurrent_downloads,
                                            thread_name_prefix="unpack")
        self._catalog: Optional[Catalog] = None

    @property
    def active_link(self) -> Path:
        return self.install_root / self.ACTIVE_LINK

    async def fetch_catalog(self) -> Catalog:
        self._catalog = await self.catalog_client.fetch()
        return self._catalog

    async def scan_installed(self) -> List[InstalledVersion]:
        installed = []
        for item in sorted(self.install_root.iterdir()):
            if item.name.startswith(".") or item.is_symlink() or not item.is_dir():
                continue
            installed.append(InstalledVersion(id=item.name, path=item))
        return installed

    def _link_target(self) -> Optional[Path]:
        link = self.active_link
        if not link.is_symlink():
            return None
        target = Path(os.readlink(link))
        if not target.is_absolute():
            target = link.parent / target
        return target

    async def active_path(self) -> Optional[Path]:
        target = self._link_target()
        return target if target is not None and target.exists() else None

    def install_destination(self, version_id: str) -> Path:
        separators = {"/", "\\", os.sep, os.altsep} - {None}
        if version_id in ("", ".", "..") or any(sep in version_id for sep in separators):
            raise BackendError(f"{version_id!r} is not a valid install directory name")
        return self.install_root / version_id

    async def download(self, version_id: str,
                       progress_callback: Optional[ProgressCallback] = None) -> LocalArchive:
        catalog = self._catalog or await self.fetch_catalog()
        entry = catalog.find(version_id)
        if entry is None:
            raise BackendError(f"{version_id} is not in the catalog")

        archive_name = entry.url.rstrip("/").rsplit("/", 1)[-1] or f"{version_id}.zip"
        dest = self.downloads_dir / archive_name
        try:
            await asyncio.wait_for(
                self.downloader.download_file(entry.url, dest, entry.sha1, progress_callback),
                timeout=self.settings.download_timeout,
            )
        except asyncio.TimeoutError:
            raise BackendTimeout(
                f"Download of {version_id} exceeded {self.settings.download_timeout:.0f}s")
        return LocalArchive(version_id=version_id, path=dest)

    async def unpack(self, archive: LocalArchive, destination: Path) -> Path:
        """Extract into a staging directory, then move it into place."""
        destination = Path(destination)
        if destination.exists():
            raise BackendError(f"{destination} already exists")

        staging = destination.with_name(f".{destination.name}.staging")
        shutil.rmtree(staging, ignore_errors=True)
        stop = threading.Event()

        future = self._executor.submit(self._extract, archive.path, staging, stop)
        try:
            await asyncio.wrap_future(future)
        except BaseException:
            stop.set()
            # Runs now if extraction already ended, else when the worker exits
            future.add_done_callback(lambda _: shutil.rmtree(staging, ignore_errors=True))
            raise

        self._promote(staging, destination)
        archive.path.unlink(missing_ok=True)
        logger.info("Unpacked %s into %s", archive.version_id, destination)
        return destination

    @staticmethod
    def _extract(archive_path: Path, staging: Path, stop: threading.Event):
        staging.mkdir(parents=True)
        if zipfile.is_zipfile(archive_path):
            with zipfile.ZipFile(archive_path, 'r') as zf:
                for member in zf.infolist():
                    if stop.is_set():
                        raise BackendError("extraction stopped")
                    zf.extract(member, staging)
        elif tarfile.is_tarfile(archive_path):
            with tarfile.open(archive_path, 'r:*') as tf:
                for member in tf:
                    if stop.is_set():
                        raise BackendError("extraction stopped")
                    tf.extract(member, staging, filter="data")
        else:
            raise BackendError(f"Unsupported archive format: {archive_path.name}")

    @staticmethod
    def _promote(staging: Path, destination: Path):
        # Archives usually wrap everything in one top-level folder
        children = list(staging.iterdir())
        if len(children) == 1 and children[0].is_dir():
            os.replace(children[0], destination)
            staging.rmdir()
        else:
            os.replace(staging, destination)

    async def activate(self, path: Path):
        path = Path(path)
        if not path.is_dir():
            raise BackendError(f"{path} is not an installed version")
        tmp_link = self.install_root / f".{self.ACTIVE_LINK}.{os.getpid()}"
        tmp_link.unlink(missing_ok=True)
        os.symlink(path, tmp_link, target_is_directory=True)
        os.replace(tmp_link, self.active_link)
        logger.info("Active version now points to %s", path)

    async def trash(self, path: Path) -> Path:
        path = Path(path)
        if not path.exists():
            raise BackendError(f"{path} does not exist")

        self.trash_dir.mkdir(parents=True, exist_ok=True)
        stamp = datetime.now().strftime("%Y%m%d-%H%M%S-%f")
        target = self.trash_dir / f"{path.name}-{stamp}"

        loop = asyncio.get_running_loop()
        await loop.run_in_executor(self._executor, shutil.move, str(path), str(target))
        # The link may have been repointed while the move ran
        if self._link_target() == path:
            self.active_link.unlink(missing_ok=True)
        logger.info("Moved %s to %s", path, target)
        return target

    def launch_command(self, path: Path) -> List[str]:
        if self.settings.launch_executable:
            executable = path / self.settings.launch_executable
            if executable.exists():
                return [str(executable)]

        system = platform.system()
        if system == "Darwin":
            return ["open", str(path)]
        if system == "Windows":
            return ["explorer", str(path)]
        return ["xdg-open", str(path)]

    @staticmethod
    def reveal_command(path: Path) -> List[str]:
        system = platform.system()
        if system == "Darwin":
            return ["open", "-R", str(path)]
        if system == "Windows":
            return ["explorer", f"/select,{path}"]
        return ["xdg-open", str(path.parent)]

    async def launch(self, path: Path):
        self._spawn(self.launch_command(Path(path)))

    async def reveal(self, path: Path):
        self._spawn(self.reveal_command(Path(path)))

    @staticmethod
    def _spawn(command: List[str]) -> subprocess.Popen:
        logger.debug("Spawning %s", command)
        return subprocess.Popen(
            command,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            stdin=subprocess.DEVNULL,
            start_new_session=platform.system() != "Windows",
        )
