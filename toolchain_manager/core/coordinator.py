"""Version lifecycle coordinator.

Every user-facing verb (install, select, open, reveal, copy path, uninstall)
goes through :class:`LifecycleCoordinator`. It validates the request against
the registry, serializes mutating work per version id, calls the installer
backend, and only then tells the registry about the new state. A failed
backend call therefore never reaches the registry.
"""

import asyncio
import contextlib
import logging
import secrets
from pathlib import Path
from typing import Awaitable, Dict, Optional, Set, Type

import aiohttp
from pydantic import BaseModel, ConfigDict

from ..errors import (
    AlreadyInstalled,
    BackendError,
    BackendTimeout,
    BackendUnavailable,
    ConfirmationRequired,
    InstallCancelled,
    InstallFailed,
    LaunchFailed,
    LifecycleError,
    NotInstalled,
    OperationInProgress,
    RevealFailed,
    SelectFailed,
    UninstallFailed,
    UnknownId,
)
from ..installer.backend import InstallerBackend
from ..installer.downloader import ProgressCallback
from ..utils.clipboard import ClipboardSink, MemoryClipboard
from ..versions.models import Catalog, VersionRecord
from ..versions.registry import VersionRegistry, build_records

logger = logging.getLogger(__name__)

EXPECTED_BACKEND_ERRORS = (BackendError, OSError, aiohttp.ClientError)


class ActionResult(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    version_id: Optional[str] = None
    ok: bool
    # False when the version was already in the requested state
    changed: bool = False
    error: Optional[LifecycleError] = None
    record: Optional[VersionRecord] = None

    def __bool__(self) -> bool:
        return self.ok


class UninstallConfirmation(BaseModel):
    """Proof that the user agreed to uninstall one specific version."""
    model_config = ConfigDict(frozen=True)

    version_id: str
    token: str


class LifecycleCoordinator:
    def __init__(self, registry: VersionRegistry, backend: InstallerBackend,
                 clipboard: Optional[ClipboardSink] = None):
        self.registry = registry
        self.backend = backend
        self.clipboard = clipboard or MemoryClipboard()
        self._locks: Dict[str, asyncio.Lock] = {}
        self._install_tasks: Dict[str, asyncio.Task] = {}
        self._cancel_requested: Set[str] = set()
        self._confirmations: Dict[str, str] = {}
        # Guards the system-active pointer, the one resource shared across ids
        self._active_lock = asyncio.Lock()
        self._refreshing = False

    # -- state helpers ---------------------------------------------------

    def is_busy(self, version_id: str) -> bool:
        lock = self._locks.get(version_id)
        return lock is not None and lock.locked()

    def _require(self, version_id: str) -> VersionRecord:
        record = self.registry.get(version_id)
        if record is None:
            raise UnknownId(version_id)
        return record

    def _require_installed(self, version_id: str) -> VersionRecord:
        record = self._require(version_id)
        if not record.installed:
            raise NotInstalled(version_id)
        return record

    @contextlib.asynccontextmanager
    async def _operation(self, version_id: str):
        """Hold the per-id lock, failing fast if it is already taken."""
        if self._refreshing:
            raise OperationInProgress(version_id, "The version list is being refreshed")
        lock = self._locks.setdefault(version_id, asyncio.Lock())
        if lock.locked():
            raise OperationInProgress(version_id)
        async with lock:
            yield

    async def _call_backend(self, error_cls: Type[LifecycleError], version_id: str,
                            awaitable: Awaitable):
        try:
            return await awaitable
        except EXPECTED_BACKEND_ERRORS as e:
            raise error_cls(version_id, e) from e
        except Exception as e:
            logger.exception("Unexpected backend error for %s", version_id)
            raise error_cls(version_id, e) from e

    async def _perform(self, verb: str, version_id: str, action, *args) -> ActionResult:
        try:
            changed = await action(version_id, *args)
        except LifecycleError as e:
            logger.warning("%s %s failed: %s", verb, version_id, e)
            return ActionResult(version_id=version_id, ok=False, error=e,
                                record=self.registry.get(version_id))
        logger.info("%s %s: %s", verb, version_id, "done" if changed else "no change")
        return ActionResult(version_id=version_id, ok=True, changed=changed,
                            record=self.registry.get(version_id))

    # -- catalog ---------------------------------------------------------

    async def refresh(self) -> ActionResult:
        """Rebuild the registry from the catalog and the local installs.

        Local installs are still loaded when the catalog cannot be fetched;
        the result then carries ``BackendUnavailable``. Mutating actions are
        refused until the refresh finishes.
        """
        if self._refreshing:
            return ActionResult(ok=False, error=OperationInProgress(None, "A refresh is already running"))
        if any(lock.locked() for lock in self._locks.values()):
            return ActionResult(ok=False, error=OperationInProgress(None, "Operations are still running"))

        self._refreshing = True
        try:
            return await self._refresh()
        finally:
            self._refreshing = False

    async def _refresh(self) -> ActionResult:
        error = None
        try:
            catalog = await self.backend.fetch_catalog()
        except Exception as e:
            logger.warning("Catalog unavailable: %s", e)
            catalog = Catalog()
            error = BackendUnavailable(e)

        try:
            installed = await self.backend.scan_installed()
            active = await self.backend.active_path()
        except OSError as e:
            logger.error("Could not scan local installs: %s", e)
            return ActionResult(ok=False, error=BackendUnavailable(e))

        self.registry.replace(build_records(catalog, installed, active))
        logger.info("Loaded %d versions (%d installed)",
                    len(self.registry.all()), len(installed))
        return ActionResult(ok=error is None, changed=True, error=error)

    # -- install ---------------------------------------------------------

    async def install(self, version_id: str,
                      progress_callback: Optional[ProgressCallback] = None) -> ActionResult:
        return await self._perform("install", version_id, self._install, progress_callback)

    async def _install(self, version_id: str, progress_callback) -> bool:
        self._require(version_id)
        async with self._operation(version_id):
            if self._require(version_id).installed:
                raise AlreadyInstalled(version_id)
            path = await self._run_install(version_id, progress_callback)
            self.registry.set_installed(version_id, path)
        return True

    async def _run_install(self, version_id: str, progress_callback) -> Path:
        task = asyncio.ensure_future(self._download_and_unpack(version_id, progress_callback))
        self._install_tasks[version_id] = task
        try:
            return await task
        except asyncio.CancelledError:
            # Only a cancel_install() is turned into a result; our own
            # cancellation keeps propagating.
            if task.cancelled() and version_id in self._cancel_requested:
                raise InstallFailed(version_id, InstallCancelled(version_id))
            raise
        except asyncio.TimeoutError as e:
            raise InstallFailed(version_id, BackendTimeout(str(e) or "timed out")) from e
        except EXPECTED_BACKEND_ERRORS as e:
            raise InstallFailed(version_id, e) from e
        except Exception as e:
            logger.exception("Unexpected error installing %s", version_id)
            raise InstallFailed(version_id, e) from e
        finally:
            self._install_tasks.pop(version_id, None)
            self._cancel_requested.discard(version_id)

    async def _download_and_unpack(self, version_id: str, progress_callback) -> Path:
        destination = self.backend.install_destination(version_id)
        archive = await self.backend.download(version_id, progress_callback)
        return await self.backend.unpack(archive, destination)

    def cancel_install(self, version_id: str) -> bool:
        """Request cancellation of an in-flight install; False if none is running."""
        task = self._install_tasks.get(version_id)
        if task is None or task.done():
            return False
        self._cancel_requested.add(version_id)
        task.cancel()
        logger.info("Cancelling install of %s", version_id)
        return True

    # -- select ----------------------------------------------------------

    async def select(self, version_id: str) -> ActionResult:
        return await self._perform("select", version_id, self._select)

    async def _select(self, version_id: str) -> bool:
        self._require_installed(version_id)
        async with self._operation(version_id):
            record = self._require_installed(version_id)
            if record.selected:
                return False
            async with self._active_lock:
                await self._call_backend(SelectFailed, version_id, self.backend.activate(record.path))
                self.registry.set_selected(version_id)
        return True

    # -- read-side actions -----------------------------------------------

    def _require_idle_install(self, version_id: str) -> VersionRecord:
        record = self._require_installed(version_id)
        if self.is_busy(version_id):
            raise OperationInProgress(version_id)
        return record

    async def open(self, version_id: str) -> ActionResult:
        return await self._perform("open", version_id, self._open)

    async def _open(self, version_id: str) -> bool:
        record = self._require_idle_install(version_id)
        await self._call_backend(LaunchFailed, version_id, self.backend.launch(record.path))
        return False

    async def reveal(self, version_id: str) -> ActionResult:
        return await self._perform("reveal", version_id, self._reveal)

    async def _reveal(self, version_id: str) -> bool:
        record = self._require_idle_install(version_id)
        await self._call_backend(RevealFailed, version_id, self.backend.reveal(record.path))
        return False

    async def copy_path(self, version_id: str) -> ActionResult:
        return await self._perform("copy path", version_id, self._copy_path)

    async def _copy_path(self, version_id: str) -> bool:
        record = self._require_idle_install(version_id)
        self.clipboard.set_text(str(record.path))
        return False

    # -- uninstall -------------------------------------------------------

    def confirm_uninstall(self, version_id: str) -> UninstallConfirmation:
        """Issue a single-use token once the user has agreed to uninstall."""
        token = secrets.token_hex(16)
        self._confirmations[version_id] = token
        return UninstallConfirmation(version_id=version_id, token=token)

    def _check_confirmation(self, version_id: str, confirmation: Optional[UninstallConfirmation]):
        if (confirmation is None
                or confirmation.version_id != version_id
                or self._confirmations.get(version_id) != confirmation.token):
            raise ConfirmationRequired(version_id)

    async def uninstall(self, version_id: str,
                        confirmation: Optional[UninstallConfirmation] = None) -> ActionResult:
        return await self._perform("uninstall", version_id, self._uninstall, confirmation)

    async def _uninstall(self, version_id: str, confirmation) -> bool:
        self._require_installed(version_id)
        self._check_confirmation(version_id, confirmation)
        async with self._operation(version_id):
            record = self._require_installed(version_id)
            self._check_confirmation(version_id, confirmation)
            del self._confirmations[version_id]
            # Only the selected version can be pointed at; no other id can
            # make this one selected while its own lock is held
            guard = self._active_lock if record.selected else contextlib.nullcontext()
            async with guard:
                await self._call_backend(UninstallFailed, version_id, self.backend.trash(record.path))
                self.registry.set_uninstalled(version_id)
        return True
