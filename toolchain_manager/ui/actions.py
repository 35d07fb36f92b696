"""Action enablement and focus tracking for the version views.

Nothing here holds on to a ``VersionRecord``. The focused version is kept
by id and looked up again on every call, so a version that disappears
(uninstalled while focused) resolves to ``None`` instead of stale data.
"""

from typing import Callable, Dict, List, Optional, Tuple

from pydantic import BaseModel

from ..versions.models import VersionRecord
from ..versions.registry import VersionRegistry

INSTALL = "install"
SELECT = "select"
OPEN = "open"
REVEAL = "reveal"
COPY_PATH = "copy_path"
UNINSTALL = "uninstall"

ACTIONS = (INSTALL, SELECT, OPEN, REVEAL, COPY_PATH, UNINSTALL)

# (label, tooltip, Qt shortcut)
ACTION_META = {
    INSTALL: ("Install", "Install", "Ctrl+Alt+I"),
    SELECT: ("Make active", "Select", "Ctrl+Alt+S"),
    OPEN: ("Open", "Open", "Ctrl+Down"),
    REVEAL: ("Reveal in File Manager", "Reveal in file manager", "Ctrl+Alt+R"),
    COPY_PATH: ("Copy Path", "Copy path", "Ctrl+Alt+C"),
    UNINSTALL: ("Uninstall", "Uninstall", "Ctrl+Alt+U"),
}


class ActionState(BaseModel):
    enabled: bool
    label: str


def action_states(record: Optional[VersionRecord], busy: bool = False) -> Dict[str, ActionState]:
    """Work out which actions apply to ``record``, from its fields alone."""
    installed = record is not None and record.installed
    enabled = {
        INSTALL: record is not None and not record.installed,
        SELECT: installed and not record.selected,
        OPEN: installed,
        REVEAL: installed,
        COPY_PATH: installed,
        UNINSTALL: installed,
    }

    states = {}
    for action in ACTIONS:
        label = ACTION_META[action][0]
        if action == SELECT and record is not None and record.selected:
            label = "Active"
        states[action] = ActionState(enabled=enabled[action] and not busy, label=label)
    return states


class FocusTracker:
    """Remembers which version the user is pointing at, by id."""

    def __init__(self, registry: VersionRegistry, is_busy: Optional[Callable[[str], bool]] = None):
        self.registry = registry
        self.is_busy = is_busy or (lambda _id: False)
        self.focused_id: Optional[str] = None

    def focus(self, version_id: Optional[str]):
        self.focused_id = version_id

    def resolve(self) -> Optional[VersionRecord]:
        if self.focused_id is None:
            return None
        return self.registry.get(self.focused_id)

    def states(self) -> Dict[str, ActionState]:
        record = self.resolve()
        busy = record is not None and self.is_busy(record.id)
        return action_states(record, busy)


class InstallTracker:
    """Progress of every install the window started, keyed by version id."""

    def __init__(self):
        self._progress: Dict[str, Tuple[int, int]] = {}

    def start(self, version_id: str):
        self._progress[version_id] = (0, 0)

    def update(self, version_id: str, done: int, total: int):
        if version_id in self._progress:
            self._progress[version_id] = (done, total)

    def finish(self, version_id: str):
        self._progress.pop(version_id, None)

    @property
    def running(self) -> List[str]:
        return list(self._progress)

    def percent(self, version_id: str) -> Optional[int]:
        """Whole percent done, or None while the size is unknown."""
        done, total = self._progress.get(version_id, (0, 0))
        if not total:
            return None
        return min(100, done * 100 // total)

    def overall(self) -> Tuple[int, int]:
        done = sum(d for d, t in self._progress.values() if t)
        total = sum(t for _, t in self._progress.values())
        return done, total

    def cancel_targets(self, focused_id: Optional[str]) -> List[str]:
        """The focused install if it is running, otherwise all of them."""
        if focused_id in self._progress:
            return [focused_id]
        return self.running
