"""Clipboard sinks used by the copy-path action."""

from typing import Optional


class ClipboardSink:
    """Anything that can receive text for the system clipboard."""

    def set_text(self, text: str):
        raise NotImplementedError


class MemoryClipboard(ClipboardSink):
    """Keeps the last copied text in memory; for headless use and tests."""

    def __init__(self):
        self.text: Optional[str] = None

    def set_text(self, text: str):
        self.text = text
