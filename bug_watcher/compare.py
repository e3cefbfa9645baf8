"""
Compare module for the Bug Watcher pipeline.

This module compares a new snapshot against the previous one to detect
movement of the total bug count, and builds the change-log entries that
record every such movement.
"""

from typing import Dict, List, Tuple

from bug_watcher.models import ChangeLogEntry, SeverityCounts, Stats
from bug_watcher.severity import SEVERITY_LEVELS
from bug_watcher.utils import MAX_ENTRIES, get_logger, prepend_capped


# Module logger
logger = get_logger("compare")


def detect_change(previous: Stats, current: Stats) -> Tuple[bool, int]:
    """
    Detect a change of the total bug count between two snapshots.

    The first observation after a restart (previous never observed) is
    never a change.

    Args:
        previous: Last committed snapshot, possibly the empty sentinel.
        current: Newly scraped snapshot.

    Returns:
        Tuple of (total_changed, delta). delta is current.total minus
        previous.total when changed, 0 otherwise.
    """
    if not previous.observed:
        logger.debug("No previous observation, not treating as a change")
        return False, 0

    if previous.total == current.total:
        return False, 0

    delta = current.total - previous.total
    logger.info(f"Total changed: {previous.total} -> {current.total} ({delta:+d})")
    return True, delta


def severity_deltas(previous: SeverityCounts, current: SeverityCounts) -> Dict[str, int]:
    """Per-level difference (current - previous) for every severity level."""
    return {
        level: current.get(level) - previous.get(level)
        for level in SEVERITY_LEVELS
    }


def build_change_entry(stats: Stats, delta: int) -> ChangeLogEntry:
    """Build the change-log entry recording a total-count transition."""
    return ChangeLogEntry(
        timestamp=stats.last_updated,
        total=stats.total,
        delta=delta,
        severity=SeverityCounts(**stats.severity.to_dict()),
    )


def add_change_entry(
    entries: List[ChangeLogEntry],
    entry: ChangeLogEntry,
    limit: int = MAX_ENTRIES
) -> List[ChangeLogEntry]:
    """
    Insert a change-log entry at the head of the log.

    Returns:
        New list, newest first, holding at most limit entries.
    """
    return prepend_capped(entries, entry, limit)
