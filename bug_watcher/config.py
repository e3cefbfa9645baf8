"""
Configuration for the Bug Watcher monitor.

Handles defaults, sanitization (interval clamping, default URL) and
environment variable overrides. Reading and writing the configuration file
is done by the storage module.
"""

import os
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List

from bug_watcher.severity import SEVERITY_LEVELS, resolve_level
from bug_watcher.utils import get_logger


# Module logger
logger = get_logger("config")

DEFAULT_URL = "https://zentao.sskuaixiu.com/my-work-bug.html?tid=r6xl1evk"
DEFAULT_INTERVAL_MINUTES = 15
MIN_INTERVAL_MINUTES = 1
MAX_INTERVAL_MINUTES = 60

# Environment variables that override values from the config file
ENV_URL = "BUG_WATCHER_URL"
ENV_COOKIE = "BUG_WATCHER_COOKIE"
ENV_INTERVAL = "BUG_WATCHER_INTERVAL"


@dataclass
class Config:
    """
    User configuration for the monitor.

    Attributes:
        url: Bug list page to scrape.
        cookie: Optional session cookie sent with the request.
        interval_minutes: Polling interval, clamped to [1, 60].
        enable_notifications: Send a desktop alert on relevant changes.
        enable_sound: Trigger the alert sound on relevant changes.
        notify_on_increase: Alert when the total goes up.
        notify_on_decrease: Alert when the total goes down.
        notify_levels: Severity levels of interest; empty means all.
    """
    url: str = DEFAULT_URL
    cookie: str = ""
    interval_minutes: int = DEFAULT_INTERVAL_MINUTES
    enable_notifications: bool = True
    enable_sound: bool = True
    notify_on_increase: bool = True
    notify_on_decrease: bool = False
    notify_levels: List[str] = field(default_factory=lambda: list(SEVERITY_LEVELS))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "url": self.url,
            "cookie": self.cookie,
            "intervalMinutes": self.interval_minutes,
            "enableNotifications": self.enable_notifications,
            "enableSound": self.enable_sound,
            "notifyOnIncrease": self.notify_on_increase,
            "notifyOnDecrease": self.notify_on_decrease,
            "notifyLevels": list(self.notify_levels),
        }

    @classmethod
    def from_dict(cls, data: Any) -> "Config":
        """
        Build a Config from its JSON form, using defaults for missing keys.

        The result is not sanitized; call sanitize_config() on it.
        """
        defaults = cls()
        if not isinstance(data, dict):
            return defaults

        interval = data.get("intervalMinutes", defaults.interval_minutes)
        try:
            interval = int(interval)
        except (TypeError, ValueError):
            interval = defaults.interval_minutes

        levels = data.get("notifyLevels", defaults.notify_levels)

        return cls(
            url=str(data.get("url") or ""),
            cookie=str(data.get("cookie") or ""),
            interval_minutes=interval,
            enable_notifications=_as_bool(
                data.get("enableNotifications"), defaults.enable_notifications
            ),
            enable_sound=_as_bool(data.get("enableSound"), defaults.enable_sound),
            notify_on_increase=_as_bool(
                data.get("notifyOnIncrease"), defaults.notify_on_increase
            ),
            notify_on_decrease=_as_bool(
                data.get("notifyOnDecrease"), defaults.notify_on_decrease
            ),
            notify_levels=parse_levels(levels),
        )


def _as_bool(value: Any, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).lower() in ("true", "1", "yes")


def parse_levels(value: Any) -> List[str]:
    """
    Normalize configured severity levels to canonical, ordered names.

    Accepts a list of names/aliases or a mapping of name -> enabled flag
    (e.g. {"level1": true, "level3": false}). Unknown names are dropped.
    """
    if isinstance(value, dict):
        names = [name for name, enabled in value.items() if enabled]
    elif isinstance(value, (list, tuple, set)):
        names = list(value)
    else:
        names = []

    selected = {resolve_level(str(name)) for name in names}
    return [level for level in SEVERITY_LEVELS if level in selected]


def default_config() -> Config:
    """Return the built-in default configuration."""
    return Config()


def sanitize_config(cfg: Config) -> Config:
    """
    Return a copy of cfg that satisfies the configuration invariants.

    - url and cookie are stripped; an empty url becomes DEFAULT_URL
    - interval_minutes is clamped to [1, 60]
    - notify_levels is reduced to known, ordered level names
    """
    url = (cfg.url or "").strip() or DEFAULT_URL
    cookie = (cfg.cookie or "").strip()
    interval = max(MIN_INTERVAL_MINUTES, min(MAX_INTERVAL_MINUTES, cfg.interval_minutes))

    return replace(
        cfg,
        url=url,
        cookie=cookie,
        interval_minutes=interval,
        notify_levels=parse_levels(cfg.notify_levels),
    )


def apply_env_overrides(cfg: Config) -> Config:
    """
    Apply environment variable overrides on top of a configuration.

    Recognized variables: BUG_WATCHER_URL, BUG_WATCHER_COOKIE and
    BUG_WATCHER_INTERVAL (minutes). The result is sanitized.
    """
    updates: Dict[str, Any] = {}

    url = os.environ.get(ENV_URL, "").strip()
    if url:
        updates["url"] = url

    cookie = os.environ.get(ENV_COOKIE, "").strip()
    if cookie:
        updates["cookie"] = cookie

    interval = os.environ.get(ENV_INTERVAL, "").strip()
    if interval:
        try:
            updates["interval_minutes"] = int(interval)
        except ValueError:
            logger.warning(f"Ignoring invalid {ENV_INTERVAL}: {interval!r}")

    if updates:
        logger.info(f"Applying environment overrides: {sorted(updates)}")

    return sanitize_config(replace(cfg, **updates))
