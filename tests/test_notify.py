"""
Tests for the notify module.

Tests cover:
- Direction filter
- Severity level filter and its empty-selection default
- Message formatting
- Dispatch according to the notification and sound toggles
"""

from unittest.mock import Mock

from bug_watcher.config import Config
from bug_watcher.models import SeverityCounts
from bug_watcher.notify import (
    NOTIFICATION_TITLE,
    LogNotifier,
    NotificationError,
    Notifier,
    build_notify_message,
    dispatch_notification,
    effective_levels,
    evaluate_notification,
    selected_levels_changed,
    should_notify_on_delta,
)


PREVIOUS = SeverityCounts(critical=2, severe=1, major=0, minor=0)
CURRENT = SeverityCounts(critical=3, severe=1, major=0, minor=0)


class TestShouldNotifyOnDelta:
    """Tests for the direction filter."""

    def test_increase(self):
        """Test that increases follow notify_on_increase."""
        assert should_notify_on_delta(2, True, False) is True
        assert should_notify_on_delta(2, False, True) is False

    def test_decrease(self):
        """Test that decreases follow notify_on_decrease."""
        assert should_notify_on_delta(-1, False, True) is True
        assert should_notify_on_delta(-1, True, False) is False

    def test_no_change(self):
        """Test that a zero delta never notifies."""
        assert should_notify_on_delta(0, True, True) is False


class TestLevelFilter:
    """Tests for the severity level filter."""

    def test_empty_selection_means_all(self):
        """Test that no selection falls back to all four levels."""
        assert effective_levels([]) == ["critical", "severe", "major", "minor"]
        assert effective_levels(None) == ["critical", "severe", "major", "minor"]

    def test_aliases_accepted(self):
        """Test that level1..level4 aliases are understood."""
        assert effective_levels(["level3", "level1"]) == ["critical", "major"]

    def test_selected_level_changed(self):
        """Test relevance when a selected level changed."""
        assert selected_levels_changed(PREVIOUS, CURRENT, ["critical"]) is True

    def test_unselected_level_changed(self):
        """Test that changes outside the selection are ignored."""
        assert selected_levels_changed(PREVIOUS, CURRENT, ["severe", "minor"]) is False

    def test_default_selection_detects_any_change(self):
        """Test that the empty selection reacts to any level."""
        previous = SeverityCounts(minor=1)
        current = SeverityCounts(minor=4)

        assert selected_levels_changed(previous, current, []) is True


class TestBuildNotifyMessage:
    """Tests for alert message formatting."""

    def test_single_level(self):
        """Test the fragment for one changed level."""
        message = build_notify_message(PREVIOUS, CURRENT, ["critical"], 9)

        assert message == "Severity changed: Critical 2→3, total now 9"

    def test_multiple_levels_in_order(self):
        """Test that fragments follow severity order."""
        previous = SeverityCounts(critical=1, major=4, minor=2)
        current = SeverityCounts(critical=0, major=5, minor=2)

        message = build_notify_message(previous, current, ["major", "critical", "minor"], 7)

        assert message == "Severity changed: Critical 1→0, Major 4→5, total now 7"

    def test_generic_message(self):
        """Test the generic message when no selected level changed."""
        message = build_notify_message(PREVIOUS, PREVIOUS, ["critical"], 4)

        assert message == "Selected levels changed, total now 4"


class TestEvaluateNotification:
    """Tests for the full notification gate."""

    def test_fires_on_selected_increase(self):
        """Test that a selected level increase with notify_on_increase fires."""
        cfg = Config(notify_on_increase=True, notify_levels=["level1"])

        decision = evaluate_notification(PREVIOUS, CURRENT, cfg, 1, 4)

        assert decision.notify is True
        assert "2→3" in decision.message
        assert "4" in decision.message
        assert decision.title == NOTIFICATION_TITLE

    def test_suppressed_without_notify_on_increase(self):
        """Test that the same change is suppressed when increases are off."""
        cfg = Config(notify_on_increase=False, notify_levels=["level1"])

        decision = evaluate_notification(PREVIOUS, CURRENT, cfg, 1, 4)

        assert decision.notify is False
        assert decision.message == ""

    def test_suppressed_when_level_not_selected(self):
        """Test that changes outside the selection do not fire."""
        cfg = Config(notify_on_increase=True, notify_levels=["minor"])

        decision = evaluate_notification(PREVIOUS, CURRENT, cfg, 1, 4)

        assert decision.notify is False

    def test_decrease(self):
        """Test decreases with notify_on_decrease enabled."""
        cfg = Config(notify_on_decrease=True, notify_levels=[])

        decision = evaluate_notification(CURRENT, PREVIOUS, cfg, -1, 3)

        assert decision.notify is True
        assert decision.message == "Severity changed: Critical 3→2, total now 3"

    def test_zero_delta(self):
        """Test that a zero delta never fires."""
        cfg = Config(notify_on_increase=True, notify_on_decrease=True)

        assert evaluate_notification(PREVIOUS, CURRENT, cfg, 0, 3).notify is False


class TestDispatchNotification:
    """Tests for alert delivery."""

    def test_both_channels(self):
        """Test that notification and sound fire when both are enabled."""
        notifier = Mock(spec=Notifier)
        cfg = Config(enable_notifications=True, enable_sound=True)

        assert dispatch_notification(notifier, cfg, "title", "msg") is True

        notifier.send_notification.assert_called_once_with("title", "msg")
        notifier.play_sound.assert_called_once_with(False)

    def test_notification_only(self):
        """Test that sound is skipped when disabled."""
        notifier = Mock(spec=Notifier)
        cfg = Config(enable_notifications=True, enable_sound=False)

        dispatch_notification(notifier, cfg, "title", "msg")

        notifier.send_notification.assert_called_once()
        notifier.play_sound.assert_not_called()

    def test_sound_only(self):
        """Test that the desktop alert is skipped when disabled."""
        notifier = Mock(spec=Notifier)
        cfg = Config(enable_notifications=False, enable_sound=True)

        dispatch_notification(notifier, cfg, "title", "msg")

        notifier.send_notification.assert_not_called()
        notifier.play_sound.assert_called_once_with(False)

    def test_neither(self):
        """Test that nothing is delivered when both are disabled."""
        notifier = Mock(spec=Notifier)
        cfg = Config(enable_notifications=False, enable_sound=False)

        dispatch_notification(notifier, cfg, "title", "msg")

        notifier.send_notification.assert_not_called()
        notifier.play_sound.assert_not_called()

    def test_delivery_failure_is_contained(self):
        """Test that a failing channel does not block the other."""
        notifier = Mock(spec=Notifier)
        notifier.send_notification.side_effect = NotificationError("no daemon")
        cfg = Config(enable_notifications=True, enable_sound=True)

        assert dispatch_notification(notifier, cfg, "title", "msg") is False

        notifier.play_sound.assert_called_once_with(False)

    def test_unexpected_error_is_contained(self):
        """Test that any exception from a channel is logged, not raised."""
        notifier = Mock(spec=Notifier)
        notifier.send_notification.side_effect = RuntimeError("shell gone")
        notifier.play_sound.side_effect = OSError("no audio device")
        cfg = Config(enable_notifications=True, enable_sound=True)

        assert dispatch_notification(notifier, cfg, "title", "msg") is False

        notifier.play_sound.assert_called_once_with(False)


class TestLogNotifier:
    """Tests for the default notifier."""

    def test_does_not_raise(self):
        """Test that the logging notifier accepts every call."""
        notifier = LogNotifier()

        notifier.send_notification("title", "message")
        notifier.play_sound(True)
        notifier.emit("stats", {"total": 1})
