"""
Data types shared across the Bug Watcher pipeline.

All types serialize to the camelCase JSON layout used by the persistence
files and by the push updates sent to the UI shell.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    """Render a timestamp as ISO-8601, or None for "never"."""
    if value is None:
        return None
    return value.isoformat()


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp, returning None for missing or bad input."""
    if not value or not isinstance(value, str):
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _as_int(value: Any) -> int:
    try:
        return max(0, int(value))
    except (TypeError, ValueError):
        return 0


@dataclass
class SeverityCounts:
    """Number of bugs per severity level."""
    critical: int = 0
    severe: int = 0
    major: int = 0
    minor: int = 0

    def get(self, level: str) -> int:
        return getattr(self, level, 0)

    def increment(self, level: str) -> None:
        if level in ("critical", "severe", "major", "minor"):
            setattr(self, level, getattr(self, level) + 1)

    def total(self) -> int:
        return self.critical + self.severe + self.major + self.minor

    def to_dict(self) -> Dict[str, int]:
        return {
            "critical": self.critical,
            "severe": self.severe,
            "major": self.major,
            "minor": self.minor,
        }

    @classmethod
    def from_dict(cls, data: Any) -> "SeverityCounts":
        if not isinstance(data, dict):
            return cls()
        return cls(
            critical=_as_int(data.get("critical")),
            severe=_as_int(data.get("severe")),
            major=_as_int(data.get("major")),
            minor=_as_int(data.get("minor")),
        )


@dataclass
class Stats:
    """
    One point-in-time observation of the bug page.

    Attributes:
        total: Declared total on the page, or the row count when absent.
        severity: Per-level counts of classifiable rows.
        last_updated: Capture time; None means nothing was observed yet.
    """
    total: int = 0
    severity: SeverityCounts = field(default_factory=SeverityCounts)
    last_updated: Optional[datetime] = None

    @property
    def observed(self) -> bool:
        return self.last_updated is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "severity": self.severity.to_dict(),
            "lastUpdated": format_timestamp(self.last_updated),
        }

    @classmethod
    def from_dict(cls, data: Any) -> "Stats":
        if not isinstance(data, dict):
            return cls()
        return cls(
            total=_as_int(data.get("total")),
            severity=SeverityCounts.from_dict(data.get("severity")),
            last_updated=parse_timestamp(data.get("lastUpdated")),
        )


@dataclass
class ChangeLogEntry:
    """A transition of the total bug count."""
    timestamp: Optional[datetime]
    total: int
    delta: int
    severity: SeverityCounts = field(default_factory=SeverityCounts)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": format_timestamp(self.timestamp),
            "total": self.total,
            "delta": self.delta,
            "severity": self.severity.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChangeLogEntry":
        try:
            delta = int(data.get("delta", 0))
        except (TypeError, ValueError):
            delta = 0
        return cls(
            timestamp=parse_timestamp(data.get("timestamp")),
            total=_as_int(data.get("total")),
            delta=delta,
            severity=SeverityCounts.from_dict(data.get("severity")),
        )


@dataclass
class LogEntry:
    """A diagnostic message shown in the operator log feed."""
    timestamp: datetime
    level: str
    status: int
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": format_timestamp(self.timestamp),
            "level": self.level,
            "status": self.status,
            "message": self.message,
        }
