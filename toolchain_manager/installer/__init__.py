"""Installer backends."""

from .backend import InstallerBackend, LocalArchive
from .downloader import Downloader
from .local import LocalInstallerBackend

__all__ = ["InstallerBackend", "LocalArchive", "Downloader", "LocalInstallerBackend"]
