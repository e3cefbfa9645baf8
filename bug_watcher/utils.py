"""
Utility functions for the Bug Watcher monitor.

This module provides:
- Central logging configuration
- Safe JSON read/write helpers
- Text cleanup and number extraction helpers
- Capped, newest-first list insertion shared by the log buffers
"""

import json
import logging
import os
import re
import shutil
import sys
import tempfile
from pathlib import Path
from typing import Any, List, Optional, TypeVar


T = TypeVar("T")

# Maximum entries kept in the diagnostic log and the change-log
MAX_ENTRIES = 200

NUMBER_PATTERN = re.compile(r"\d+")


def setup_logging(level: str = "INFO") -> logging.Logger:
    """
    Configure and return the root logger for the application.

    Args:
        level: Logging level as string (DEBUG, INFO, WARNING, ERROR, CRITICAL).
               Defaults to INFO.

    Returns:
        Configured logger instance.
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=[
            logging.StreamHandler(sys.stdout)
        ]
    )

    logger = logging.getLogger("bug_watcher")
    logger.setLevel(log_level)

    return logger


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance with the specified name.

    Args:
        name: Name for the logger, typically the module name.

    Returns:
        Logger instance configured as a child of the main application logger.
    """
    return logging.getLogger(f"bug_watcher.{name}")


def safe_read_json(filepath: str, default: Optional[Any] = None) -> Any:
    """
    Safely read JSON data from a file.

    Missing, unreadable or malformed files never raise; the default is
    returned instead.

    Args:
        filepath: Path to the JSON file.
        default: Value to return if the file doesn't exist or is invalid.

    Returns:
        Parsed JSON data or the default value on failure.
    """
    logger = get_logger("utils")

    try:
        path = Path(filepath)
        if not path.exists():
            logger.debug(f"File does not exist: {filepath}, returning default")
            return default

        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
            logger.debug(f"Successfully read JSON from {filepath}")
            return data

    except json.JSONDecodeError as e:
        logger.warning(f"Invalid JSON in {filepath}: {e}")
        return default
    except PermissionError as e:
        logger.error(f"Permission denied reading {filepath}: {e}")
        return default
    except OSError as e:
        logger.error(f"Unexpected error reading {filepath}: {e}")
        return default


def safe_write_json(filepath: str, data: Any, indent: int = 2) -> bool:
    """
    Safely write JSON data to a file using atomic write operation.

    Uses a temporary file and atomic rename to prevent data corruption
    if the write operation is interrupted.

    Args:
        filepath: Path to the JSON file.
        data: Data to serialize as JSON.
        indent: JSON indentation level. Defaults to 2.

    Returns:
        True if write was successful, False otherwise.
    """
    logger = get_logger("utils")

    try:
        path = Path(filepath)
        path.parent.mkdir(parents=True, exist_ok=True)

        fd, temp_path = tempfile.mkstemp(
            suffix=".json",
            prefix="bugwatcher_",
            dir=path.parent
        )

        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=indent, ensure_ascii=False)

            shutil.move(temp_path, filepath)
            logger.debug(f"Successfully wrote JSON to {filepath}")
            return True

        except Exception:
            if os.path.exists(temp_path):
                os.unlink(temp_path)
            raise

    except PermissionError as e:
        logger.error(f"Permission denied writing {filepath}: {e}")
        return False
    except (OSError, TypeError, ValueError) as e:
        logger.error(f"Unexpected error writing {filepath}: {e}")
        return False


def sanitize_text(text: Optional[str]) -> str:
    """
    Clean and normalize text content.

    Collapses runs of whitespace (including newlines) to single spaces.

    Args:
        text: Raw text to sanitize.

    Returns:
        Cleaned text string.
    """
    if not text:
        return ""

    cleaned = re.sub(r"\s+", " ", text)
    return cleaned.strip()


def parse_number(text: Optional[str]) -> int:
    """
    Extract the first integer embedded in a piece of text.

    Args:
        text: Text such as "共 42 条".

    Returns:
        The first run of digits as an int, or 0 if there is none.
    """
    if not text:
        return 0

    match = NUMBER_PATTERN.search(text)
    if not match:
        return 0

    return int(match.group())


def prepend_capped(items: List[T], item: T, limit: int = MAX_ENTRIES) -> List[T]:
    """
    Return a new list with item at the head, keeping at most limit entries.

    The oldest entries (at the tail) are discarded first.
    """
    return ([item] + list(items))[:limit]
