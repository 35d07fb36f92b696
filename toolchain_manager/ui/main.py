"""Main UI window for the toolchain manager."""

import asyncio
import functools
import sys
from datetime import datetime
from typing import Dict, Optional

from qasync import QEventLoop
from PyQt6.QtWidgets import (
    QApplication, QMainWindow, QWidget, QVBoxLayout, QHBoxLayout, QPushButton,
    QTextEdit, QProgressBar, QLabel, QListWidget, QListWidgetItem, QStatusBar,
    QSplitter
)
from PyQt6.QtCore import Qt
from PyQt6.QtGui import QAction, QKeySequence

from .actions import (
    ACTIONS, ACTION_META, COPY_PATH, INSTALL, OPEN, REVEAL, SELECT, UNINSTALL, FocusTracker,
    InstallTracker
)
from .confirm_dialog import UninstallDialog
from ..config import load_settings
from ..core import LifecycleCoordinator
from ..errors import InstallCancelled
from ..installer import LocalInstallerBackend
from ..utils import ClipboardSink, setup_logging
from ..versions import VersionRegistry


class QtClipboard(ClipboardSink):
    def set_text(self, text: str):
        QApplication.clipboard().setText(text)


class MainWindow(QMainWindow):
    def __init__(self, coordinator: LifecycleCoordinator):
        super().__init__()
        self.coordinator = coordinator
        self.registry = coordinator.registry
        self.focus = FocusTracker(self.registry, coordinator.is_busy)
        self.installs = InstallTracker()
        self.buttons: Dict[str, QPushButton] = {}
        self.menu_actions: Dict[str, QAction] = {}
        self._tasks = set()

        self.init_ui()
        self.init_menu()
        self.unsubscribe = self.registry.subscribe(self.on_snapshot)
        self.on_snapshot(self.registry.all())

    def init_ui(self):
        """Initialize the user interface."""
        self.setWindowTitle("Toolchain Manager")
        self.setGeometry(100, 100, 1000, 700)

        central_widget = QWidget()
        self.setCentralWidget(central_widget)
        layout = QVBoxLayout(central_widget)

        splitter = QSplitter()

        # Left panel - versions
        self.version_list = QListWidget()
        self.version_list.currentItemChanged.connect(self.on_current_item_changed)
        splitter.addWidget(self.version_list)

        # Right panel - actions and log
        right_panel = QVBoxLayout()

        self.detail_label = QLabel("No version selected")
        right_panel.addWidget(self.detail_label)

        button_layout = QHBoxLayout()
        for action in ACTIONS:
            label, tooltip, _ = ACTION_META[action]
            button = QPushButton(label)
            button.setToolTip(tooltip)
            button.clicked.connect(lambda _checked, a=action: self.trigger(a))
            button_layout.addWidget(button)
            self.buttons[action] = button
        self.buttons[UNINSTALL].setStyleSheet("color: #e53e3e;")

        self.cancel_btn = QPushButton("Cancel")
        self.cancel_btn.setVisible(False)
        self.cancel_btn.clicked.connect(self.cancel_install)
        button_layout.addWidget(self.cancel_btn)
        button_layout.addStretch()
        right_panel.addLayout(button_layout)

        self.console = QTextEdit()
        self.console.setReadOnly(True)
        right_panel.addWidget(self.console)

        self.progress_bar = QProgressBar()
        self.progress_bar.setVisible(False)
        right_panel.addWidget(self.progress_bar)

        right_widget = QWidget()
        right_widget.setLayout(right_panel)
        splitter.addWidget(right_widget)
        layout.addWidget(splitter)

        self.status = QStatusBar()
        self.setStatusBar(self.status)
        self.status.showMessage("Ready")

    def init_menu(self):
        menu = self.menuBar().addMenu("Versions")
        for action in ACTIONS:
            label, tooltip, shortcut = ACTION_META[action]
            if action == SELECT:
                menu.addSeparator()
            menu_action = QAction(label, self)
            menu_action.setToolTip(tooltip)
            menu_action.setShortcut(QKeySequence(shortcut))
            menu_action.triggered.connect(lambda _checked=False, a=action: self.trigger(a))
            menu.addAction(menu_action)
            self.menu_actions[action] = menu_action

        menu.addSeparator()
        refresh = QAction("Refresh", self)
        refresh.setShortcut(QKeySequence.StandardKey.Refresh)
        refresh.triggered.connect(lambda: self.schedule(self.refresh()))
        menu.addAction(refresh)

    # -- rendering -------------------------------------------------------

    def on_snapshot(self, snapshot):
        """Re-render the list, keeping focus on the same id if it still exists."""
        focused_id = self.focus.focused_id
        self.version_list.blockSignals(True)
        self.version_list.clear()
        for record in snapshot:
            item = QListWidgetItem(self.item_text(record))
            item.setData(Qt.ItemDataRole.UserRole, record.id)
            self.version_list.addItem(item)
            if record.id == focused_id:
                self.version_list.setCurrentItem(item)
        self.version_list.blockSignals(False)
        self.update_actions()

    def item_text(self, record) -> str:
        text = record.description or record.id
        if record.selected:
            text += "  (active)"
        elif record.installed:
            text += "  (installed)"
        elif record.id in self.installs.running:
            percent = self.installs.percent(record.id)
            text += "  (installing...)" if percent is None else f"  (installing {percent}%)"
        return text

    def update_install_progress(self):
        for row in range(self.version_list.count()):
            item = self.version_list.item(row)
            record = self.registry.get(item.data(Qt.ItemDataRole.UserRole))
            if record is not None:
                item.setText(self.item_text(record))

        running = bool(self.installs.running)
        self.progress_bar.setVisible(running)
        self.cancel_btn.setVisible(running)
        done, total = self.installs.overall()
        if total:
            self.progress_bar.setRange(0, total)
            self.progress_bar.setValue(done)
        else:
            self.progress_bar.setRange(0, 0)

    def on_current_item_changed(self, current: Optional[QListWidgetItem], _previous):
        self.focus.focus(current.data(Qt.ItemDataRole.UserRole) if current else None)
        self.update_actions()

    def update_actions(self):
        record = self.focus.resolve()
        if record is None:
            self.detail_label.setText("No version selected")
        else:
            location = str(record.path) if record.path else "not installed"
            self.detail_label.setText(f"{record.description or record.id}: {location}")

        for action, state in self.focus.states().items():
            self.buttons[action].setEnabled(state.enabled)
            self.buttons[action].setText(state.label)
            self.menu_actions[action].setEnabled(state.enabled)

    # -- actions ---------------------------------------------------------

    def schedule(self, coro):
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def trigger(self, action: str):
        record = self.focus.resolve()
        if record is None:
            return

        if action == UNINSTALL:
            dialog = UninstallDialog(record, self)
            if not dialog.exec():
                return
            confirmation = self.coordinator.confirm_uninstall(record.id)
            self.schedule(self.run_action(action, record.id, confirmation))
        else:
            self.schedule(self.run_action(action, record.id))

    async def run_action(self, action: str, version_id: str, *args):
        handlers = {
            INSTALL: self.coordinator.install,
            SELECT: self.coordinator.select,
            OPEN: self.coordinator.open,
            REVEAL: self.coordinator.reveal,
            COPY_PATH: self.coordinator.copy_path,
            UNINSTALL: self.coordinator.uninstall,
        }
        # A second install of the same id is refused by the coordinator
        tracked = action == INSTALL and version_id not in self.installs.running
        if tracked:
            args = (functools.partial(self.on_install_progress, version_id),)
            self.installs.start(version_id)
            self.update_install_progress()
            self.status.showMessage(f"Installing {version_id}...")

        # Runs once the handler has taken the version's lock
        asyncio.get_running_loop().call_soon(self.update_actions)
        try:
            result = await handlers[action](version_id, *args)
        finally:
            if tracked:
                self.installs.finish(version_id)
                self.update_install_progress()
            self.update_actions()

        if result.ok:
            if action == COPY_PATH:
                self.status.showMessage("Path copied to clipboard")
            elif result.changed:
                self.append_console(f"{ACTION_META[action][0]}: {version_id}")
                self.status.showMessage("Ready")
        elif isinstance(getattr(result.error, "cause", None), InstallCancelled):
            self.append_console(f"Install of {version_id} cancelled")
            self.status.showMessage("Ready")
        else:
            self.append_console(f"Error: {result.error}")
            self.status.showMessage(f"{ACTION_META[action][0]} failed")

    async def on_install_progress(self, version_id: str, name: str, done: int, total: int):
        self.installs.update(version_id, done, total)
        self.update_install_progress()

    def cancel_install(self):
        for version_id in self.installs.cancel_targets(self.focus.focused_id):
            self.coordinator.cancel_install(version_id)

    async def refresh(self):
        self.status.showMessage("Loading versions...")
        result = await self.coordinator.refresh()
        if result.ok:
            self.status.showMessage("Ready")
        else:
            self.append_console(f"Failed to load versions: {result.error}")
            self.status.showMessage("Error loading versions")

    def append_console(self, text):
        """Append text to console with timestamp."""
        timestamp = datetime.now().strftime("%H:%M:%S")
        self.console.append(f"[{timestamp}] {text}")

    def closeEvent(self, event):
        self.unsubscribe()
        for task in list(self._tasks):
            task.cancel()
        event.accept()


def main():
    """Main entry point."""
    settings = load_settings()
    setup_logging(settings)

    app = QApplication(sys.argv)
    loop = QEventLoop(app)
    asyncio.set_event_loop(loop)

    registry = VersionRegistry()
    backend = LocalInstallerBackend(settings)
    coordinator = LifecycleCoordinator(registry, backend, QtClipboard())

    window = MainWindow(coordinator)
    window.show()
    window.schedule(window.refresh())

    app.aboutToQuit.connect(loop.stop)
    with loop:
        loop.run_forever()


if __name__ == "__main__":
    main()
