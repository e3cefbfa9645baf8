"""
Storage module for the Bug Watcher monitor.

Persists one JSON file per concern in the data directory:
- config.json: the user configuration
- state.json: {"lastStats": Stats}, used to detect changes across restarts
- changelog.json: array of change-log entries, newest first

Missing or unparsable files fall back to defaults and never prevent startup.
"""

import os
import sys
from pathlib import Path
from typing import List, Optional

from bug_watcher.config import Config, default_config, sanitize_config
from bug_watcher.errors import PersistenceError
from bug_watcher.models import ChangeLogEntry, Stats
from bug_watcher.utils import MAX_ENTRIES, get_logger, safe_read_json, safe_write_json


# Module logger
logger = get_logger("storage")

APP_DIR_NAME = "ZenTaoBugMonitor"
ENV_DATA_DIR = "BUG_WATCHER_DATA_DIR"

CONFIG_FILE_NAME = "config.json"
STATE_FILE_NAME = "state.json"
CHANGELOG_FILE_NAME = "changelog.json"


def user_config_dir() -> Path:
    """Platform configuration directory (APPDATA, Application Support, XDG)."""
    if sys.platform.startswith("win"):
        appdata = os.environ.get("APPDATA", "").strip()
        if appdata:
            return Path(appdata)
    elif sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support"

    xdg = os.environ.get("XDG_CONFIG_HOME", "").strip()
    if xdg:
        return Path(xdg)
    return Path.home() / ".config"


def resolve_data_dir(data_dir: Optional[str] = None) -> Path:
    """
    Resolve the directory holding the persistence files.

    Priority:
    1. Explicit data_dir argument
    2. BUG_WATCHER_DATA_DIR environment variable
    3. <user config dir>/ZenTaoBugMonitor

    Returns:
        Path of the data directory (not created here).
    """
    if data_dir:
        return Path(data_dir)

    env_dir = os.environ.get(ENV_DATA_DIR, "").strip()
    if env_dir:
        return Path(env_dir)

    try:
        return user_config_dir() / APP_DIR_NAME
    except RuntimeError:
        # Home directory cannot be determined
        return Path(".") / APP_DIR_NAME


class Storage:
    """Reads and writes the monitor's JSON files."""

    def __init__(self, data_dir: Optional[str] = None):
        self.data_dir = resolve_data_dir(data_dir)

    def _path(self, name: str) -> str:
        return str(self.data_dir / name)

    def _write(self, name: str, data) -> None:
        path = self._path(name)
        if not safe_write_json(path, data):
            raise PersistenceError(f"Failed to write {path}", path=path)

    def _remove(self, name: str) -> None:
        path = Path(self._path(name))
        try:
            path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            raise PersistenceError(f"Failed to remove {path}: {e}", path=str(path)) from e

    def load_config(self) -> Config:
        """Load the configuration, or the defaults if unavailable."""
        data = safe_read_json(self._path(CONFIG_FILE_NAME), default=None)
        if data is None:
            logger.info("No saved configuration, using defaults")
            return default_config()
        return sanitize_config(Config.from_dict(data))

    def save_config(self, cfg: Config) -> None:
        """
        Persist the configuration.

        Raises:
            PersistenceError: If the file cannot be written.
        """
        self._write(CONFIG_FILE_NAME, cfg.to_dict())

    def load_state(self) -> Stats:
        """Load the last committed snapshot, or the empty sentinel."""
        data = safe_read_json(self._path(STATE_FILE_NAME), default=None)
        if not isinstance(data, dict):
            return Stats()
        return Stats.from_dict(data.get("lastStats"))

    def save_state(self, stats: Stats) -> None:
        """
        Persist the last snapshot.

        Raises:
            PersistenceError: If the file cannot be written.
        """
        self._write(STATE_FILE_NAME, {"lastStats": stats.to_dict()})

    def remove_state(self) -> None:
        self._remove(STATE_FILE_NAME)

    def load_change_log(self) -> List[ChangeLogEntry]:
        """Load the change-log, newest first, capped to MAX_ENTRIES."""
        data = safe_read_json(self._path(CHANGELOG_FILE_NAME), default=None)
        if not isinstance(data, list):
            return []
        entries = [ChangeLogEntry.from_dict(item) for item in data if isinstance(item, dict)]
        return entries[:MAX_ENTRIES]

    def save_change_log(self, entries: List[ChangeLogEntry]) -> None:
        """
        Persist the change-log.

        Raises:
            PersistenceError: If the file cannot be written.
        """
        self._write(CHANGELOG_FILE_NAME, [entry.to_dict() for entry in entries])

    def remove_change_log(self) -> None:
        self._remove(CHANGELOG_FILE_NAME)
