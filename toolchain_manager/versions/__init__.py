"""Version catalog, records and registry."""

from .catalog import CatalogClient
from .models import Catalog, CatalogEntry, InstalledVersion, VersionRecord
from .registry import VersionRegistry, build_records

__all__ = ["CatalogClient", "Catalog", "CatalogEntry", "InstalledVersion",
           "VersionRecord", "VersionRegistry", "build_records"]
