"""Uninstall confirmation dialog."""

from PyQt6.QtWidgets import QDialog, QHBoxLayout, QLabel, QPushButton, QVBoxLayout

from ..versions.models import VersionRecord


class UninstallDialog(QDialog):
    def __init__(self, record: VersionRecord, parent=None):
        super().__init__(parent)
        self.record = record
        self.init_ui()

    def init_ui(self):
        self.setWindowTitle("Uninstall")
        layout = QVBoxLayout()

        title = QLabel(f"Uninstall {self.record.description or self.record.id}?")
        title.setStyleSheet("font-weight: bold;")
        layout.addWidget(title)
        layout.addWidget(QLabel("It will be moved to the Trash, but won't be emptied."))

        btn_layout = QHBoxLayout()
        btn_layout.addStretch()
        cancel_btn = QPushButton("Cancel")
        cancel_btn.setDefault(True)
        cancel_btn.clicked.connect(self.reject)
        btn_layout.addWidget(cancel_btn)

        uninstall_btn = QPushButton("Uninstall")
        uninstall_btn.setStyleSheet("color: #e53e3e;")
        uninstall_btn.clicked.connect(self.accept)
        btn_layout.addWidget(uninstall_btn)

        layout.addLayout(btn_layout)
        self.setLayout(layout)
