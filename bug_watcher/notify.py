"""
Notify module for the Bug Watcher pipeline.

This module decides whether a change of the bug counts deserves an alert
and delivers it through a Notifier collaborator. The decision combines:
- Direction: the user may only care about increases or decreases
- Severity levels: only changes in the selected levels are relevant

Desktop alert and alert sound are toggled independently in the
configuration. The Notifier also receives the push updates (config, stats,
change-log, logs, monitoring state) consumed by the UI shell.
"""

from dataclasses import dataclass
from typing import Any, Iterable, List, Optional

from bug_watcher.compare import severity_deltas
from bug_watcher.config import Config
from bug_watcher.models import SeverityCounts
from bug_watcher.severity import SEVERITY_LEVELS, resolve_level
from bug_watcher.utils import get_logger


# Module logger
logger = get_logger("notify")

NOTIFICATION_TITLE = "ZenTao Bug Monitor"
TEST_NOTIFICATION_MESSAGE = "Test notification: desktop alert and sound triggered."

LEVEL_LABELS = {
    "critical": "Critical",
    "severe": "Severe",
    "major": "Major",
    "minor": "Minor",
}


class NotificationError(Exception):
    """Raised by a Notifier when an alert cannot be delivered."""


class Notifier:
    """
    Collaborator that delivers alerts and UI updates.

    Subclasses override the hooks they support; the defaults do nothing.
    """

    def send_notification(self, title: str, message: str) -> None:
        """Show a desktop notification."""

    def play_sound(self, force: bool = False) -> None:
        """Trigger the alert sound. force is set for test triggers."""

    def emit(self, event: str, payload: Any) -> None:
        """Push an updated value ("config", "stats", "changelog", ...)."""


class LogNotifier(Notifier):
    """Notifier that writes alerts to the application log."""

    def send_notification(self, title: str, message: str) -> None:
        logger.info(f"[{title}] {message}")

    def play_sound(self, force: bool = False) -> None:
        logger.info(f"Alert sound triggered (force={force})")

    def emit(self, event: str, payload: Any) -> None:
        logger.debug(f"Update '{event}' emitted")


@dataclass
class NotificationDecision:
    """Outcome of the notification gate."""
    notify: bool
    message: str = ""
    title: str = NOTIFICATION_TITLE


def effective_levels(levels: Optional[Iterable[str]]) -> List[str]:
    """Canonical selected levels; an empty selection means all levels."""
    selected = {resolve_level(level) for level in (levels or [])}
    selected.discard("")
    if not selected:
        return list(SEVERITY_LEVELS)
    return [level for level in SEVERITY_LEVELS if level in selected]


def should_notify_on_delta(delta: int, on_increase: bool, on_decrease: bool) -> bool:
    """
    Apply the direction filter to a total delta.

    Returns:
        on_increase for a positive delta, on_decrease for a negative one,
        False when nothing changed.
    """
    if delta > 0:
        return on_increase
    if delta < 0:
        return on_decrease
    return False


def changed_levels(
    previous: SeverityCounts,
    current: SeverityCounts,
    levels: Optional[Iterable[str]]
) -> List[str]:
    """Selected levels whose count differs between the two snapshots."""
    deltas = severity_deltas(previous, current)
    return [level for level in effective_levels(levels) if deltas[level] != 0]


def selected_levels_changed(
    previous: SeverityCounts,
    current: SeverityCounts,
    levels: Optional[Iterable[str]]
) -> bool:
    """True if any selected severity level changed its count."""
    return bool(changed_levels(previous, current, levels))


def build_notify_message(
    previous: SeverityCounts,
    current: SeverityCounts,
    levels: Optional[Iterable[str]],
    total: int
) -> str:
    """
    Format the alert message for a severity change.

    Example: "Severity changed: Critical 2→3, Major 1→0, total now 7"
    """
    parts = [
        f"{LEVEL_LABELS[level]} {previous.get(level)}→{current.get(level)}"
        for level in changed_levels(previous, current, levels)
    ]

    if not parts:
        return f"Selected levels changed, total now {total}"

    return f"Severity changed: {', '.join(parts)}, total now {total}"


def evaluate_notification(
    previous: SeverityCounts,
    current: SeverityCounts,
    cfg: Config,
    delta: int,
    total: int
) -> NotificationDecision:
    """
    Run the notification gate for a detected total change.

    Args:
        previous: Severity counts of the previous snapshot.
        current: Severity counts of the new snapshot.
        cfg: Configuration holding the direction flags and level selection.
        delta: Signed change of the total.
        total: New total.

    Returns:
        NotificationDecision; message is set only when notify is True.
    """
    if not should_notify_on_delta(delta, cfg.notify_on_increase, cfg.notify_on_decrease):
        logger.debug(f"Delta {delta:+d} suppressed by direction settings")
        return NotificationDecision(notify=False)

    if not selected_levels_changed(previous, current, cfg.notify_levels):
        logger.debug("No selected severity level changed, suppressing alert")
        return NotificationDecision(notify=False)

    message = build_notify_message(previous, current, cfg.notify_levels, total)
    return NotificationDecision(notify=True, message=message)


def dispatch_notification(
    notifier: Notifier,
    cfg: Config,
    title: str,
    message: str
) -> bool:
    """
    Deliver an alert according to the notification and sound toggles.

    Delivery failures are logged and never propagate.

    Returns:
        True if every enabled channel was delivered.
    """
    delivered = True

    if cfg.enable_notifications:
        try:
            notifier.send_notification(title, message)
        except NotificationError as e:
            logger.error(f"Failed to send desktop notification: {e}")
            delivered = False
        except Exception as e:
            logger.exception(f"Unexpected error sending desktop notification: {e}")
            delivered = False

    if cfg.enable_sound:
        try:
            notifier.play_sound(False)
        except NotificationError as e:
            logger.error(f"Failed to trigger alert sound: {e}")
            delivered = False
        except Exception as e:
            logger.exception(f"Unexpected error triggering alert sound: {e}")
            delivered = False

    return delivered
