"""Common utilities."""

from .async_http import AsyncHTTPClient
from .clipboard import ClipboardSink, MemoryClipboard
from .logger import setup_logging

__all__ = ["AsyncHTTPClient", "ClipboardSink", "MemoryClipboard", "setup_logging"]
