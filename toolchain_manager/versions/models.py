"""Data models for toolchain versions."""

from pydantic import BaseModel, ConfigDict, model_validator
from typing import List, Optional
from datetime import datetime
from pathlib import Path


class CatalogEntry(BaseModel):
    id: str
    description: Optional[str] = None
    url: str
    sha1: Optional[str] = None
    release_date: Optional[datetime] = None

    @property
    def label(self) -> str:
        return self.description or self.id


class Catalog(BaseModel):
    """Parsed catalog document published by the installer backend."""
    versions: List[CatalogEntry] = []

    def find(self, version_id: str) -> Optional[CatalogEntry]:
        for entry in self.versions:
            if entry.id == version_id:
                return entry
        return None


class InstalledVersion(BaseModel):
    id: str
    path: Path


class VersionRecord(BaseModel):
    """One discoverable or installed version as seen by the registry."""
    model_config = ConfigDict(frozen=True)

    id: str
    description: str = ""
    installed: bool = False
    selected: bool = False
    path: Optional[Path] = None
    listed: bool = True

    @model_validator(mode="after")
    def _check_flags(self):
        if self.selected and not self.installed:
            raise ValueError(f"{self.id}: selected version must be installed")
        if self.installed != (self.path is not None):
            raise ValueError(f"{self.id}: path must be set exactly when installed")
        return self

    @classmethod
    def available(cls, entry: CatalogEntry) -> "VersionRecord":
        return cls(id=entry.id, description=entry.label)

    def as_installed(self, path: Path) -> "VersionRecord":
        return self.model_copy(update={"installed": True, "path": Path(path)})

    def as_selected(self, selected: bool = True) -> "VersionRecord":
        return self.model_copy(update={"selected": selected})

    def as_available(self) -> "VersionRecord":
        return self.model_copy(update={"installed": False, "selected": False, "path": None})
