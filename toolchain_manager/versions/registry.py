"""Authoritative in-memory collection of version records."""

import logging
import threading
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from .models import Catalog, InstalledVersion, VersionRecord
from ..errors import NotInstalled, UnknownId

logger = logging.getLogger(__name__)

Snapshot = Tuple[VersionRecord, ...]
Listener = Callable[[Snapshot], None]


class VersionRegistry:
    """Owns the version records and the active-version flag.

    Each mutation and its notification happen under one re-entrant lock, so
    readers never see a half-applied transition and listeners receive
    snapshots in mutation order. Listeners may read the registry from inside
    the callback.
    """

    def __init__(self, records: Iterable[VersionRecord] = ()):
        self._lock = threading.RLock()
        self._records: Dict[str, VersionRecord] = {}
        self._listeners: List[Listener] = []
        self._load(records)
        self._last_delivered: Optional[Snapshot] = tuple(self._records.values())

    def _load(self, records: Iterable[VersionRecord]):
        records = list(records)
        if sum(1 for r in records if r.selected) > 1:
            raise ValueError("At most one version can be selected")
        self._records = {r.id: r for r in records}

    def get(self, version_id: str) -> Optional[VersionRecord]:
        with self._lock:
            return self._records.get(version_id)

    def all(self) -> Snapshot:
        with self._lock:
            return tuple(self._records.values())

    def selected(self) -> Optional[VersionRecord]:
        with self._lock:
            for record in self._records.values():
                if record.selected:
                    return record
            return None

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener; returns a callable that removes it."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe():
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def replace(self, records: Iterable[VersionRecord]):
        """Swap in a freshly scanned set of records."""
        with self._lock:
            self._load(records)
            self._notify()

    def set_installed(self, version_id: str, path: Path):
        with self._lock:
            record = self._require(version_id)
            self._records[version_id] = record.as_installed(path)
            self._notify()

    def set_selected(self, version_id: str):
        with self._lock:
            record = self._require(version_id)
            if not record.installed:
                raise NotInstalled(version_id)
            for other in self._records.values():
                if other.selected and other.id != version_id:
                    self._records[other.id] = other.as_selected(False)
            self._records[version_id] = record.as_selected(True)
            self._notify()

    def set_uninstalled(self, version_id: str):
        """Revert a catalog version to available, or drop a local-only one."""
        with self._lock:
            record = self._require(version_id)
            if record.listed:
                self._records[version_id] = record.as_available()
            else:
                del self._records[version_id]
            self._notify()

    def _require(self, version_id: str) -> VersionRecord:
        record = self._records.get(version_id)
        if record is None:
            raise UnknownId(version_id)
        return record

    def _notify(self):
        snapshot = tuple(self._records.values())
        if snapshot == self._last_delivered:
            return
        self._last_delivered = snapshot
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("Registry listener %r failed", listener)


def build_records(catalog: Catalog, installed: Iterable[InstalledVersion],
                  active_path: Optional[Path] = None) -> List[VersionRecord]:
    """Merge catalog entries with scanned installs.

    Catalog order comes first; installs the catalog does not list follow,
    sorted by id.
    """
    local = {inst.id: inst for inst in installed}
    records = []

    def finish(record: VersionRecord, inst: Optional[InstalledVersion]) -> VersionRecord:
        if inst is None:
            return record
        record = record.as_installed(inst.path)
        if active_path is not None and Path(inst.path) == Path(active_path):
            record = record.as_selected()
        return record

    for entry in catalog.versions:
        records.append(finish(VersionRecord.available(entry), local.pop(entry.id, None)))
    for version_id in sorted(local):
        inst = local[version_id]
        records.append(finish(VersionRecord(id=version_id, description=version_id, listed=False), inst))
    return records
