"""Settings for the toolchain manager."""

import json
import logging
import os
import platform
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ValidationError

logger = logging.getLogger(__name__)

APP_NAME = "toolchain-manager"


def default_config_dir() -> Path:
    """Get cross-platform config directory path."""
    if platform.system() == "Windows":
        appdata = os.environ.get("APPDATA", str(Path.home()))
        return Path(appdata) / APP_NAME
    return Path.home() / ".config" / APP_NAME


def default_data_dir() -> Path:
    return Path.home() / ".local" / "share" / APP_NAME


class Settings(BaseModel):
    catalog_url: str = "https://downloads.example.com/ide/catalog.json"
    install_root: Path = default_data_dir() / "versions"
    downloads_dir: Path = default_data_dir() / "downloads"
    trash_dir: Path = default_data_dir() / "trash"
    cache_dir: Path = Path.home() / ".cache" / APP_NAME
    log_dir: Path = Path.home() / ".cache" / APP_NAME / "logs"
    download_timeout: float = 1800.0
    concurrent_downloads: int = 4
    log_level: str = "INFO"
    # Relative to an install, e.g. "bin/idea.sh"; the platform opener is used when unset
    launch_executable: Optional[str] = None

    @staticmethod
    def default_path() -> Path:
        return default_config_dir() / "settings.json"

    def save(self, path: Optional[Path] = None) -> Path:
        """Write settings as JSON, creating the directory if needed."""
        path = Path(path or self.default_path())
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            f.write(self.model_dump_json(indent=2))
        return path


def load_settings(path: Optional[Path] = None) -> Settings:
    """Load settings from disk, merged over the defaults."""
    path = Path(path or Settings.default_path())
    if not path.exists():
        return Settings()

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        return Settings(**data)
    except (json.JSONDecodeError, OSError, TypeError, ValidationError) as e:
        logger.warning("Ignoring unreadable settings file %s: %s", path, e)
        return Settings()
