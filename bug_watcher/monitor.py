"""
Monitor module for the Bug Watcher pipeline.

The Monitor owns all live state (configuration, last snapshot, change-log
and diagnostic log) behind a single lock, and coordinates the pipeline:

    scheduler -> fetch/parse -> compare -> notify -> persistence

At most one scrape runs at a time. Triggers arriving while a scrape is in
flight (ticker, manual "fetch now", startup) are dropped with a log entry,
not queued. The lock is only held for short copies and swaps, never across
the network call or HTML parsing.
"""

import threading
import time
from dataclasses import replace
from enum import Enum
from typing import List, Optional

import requests

from bug_watcher.compare import add_change_entry, build_change_entry, detect_change
from bug_watcher.config import (
    DEFAULT_INTERVAL_MINUTES,
    Config,
    apply_env_overrides,
    default_config,
    sanitize_config,
)
from bug_watcher.errors import (
    BugWatcherError,
    ConfigInvalidError,
    PersistenceError,
    ScrapeError,
)
from bug_watcher.fetch import create_session, scrape
from bug_watcher.models import ChangeLogEntry, LogEntry, Stats, utc_now
from bug_watcher.notify import (
    NOTIFICATION_TITLE,
    TEST_NOTIFICATION_MESSAGE,
    LogNotifier,
    NotificationDecision,
    Notifier,
    dispatch_notification,
    evaluate_notification,
)
from bug_watcher.storage import Storage
from bug_watcher.utils import get_logger, prepend_capped


# Module logger
logger = get_logger("monitor")

SECONDS_PER_MINUTE = 60

LOG_INFO = "info"
LOG_ERROR = "error"


def next_tick(deadline: float, interval: float, now: float) -> float:
    """
    Deadline of the tick after the one due at deadline.

    Ticks keep a fixed rate from the start of polling. Ticks missed while
    a scrape overran are dropped rather than fired back to back.
    """
    deadline += interval
    while deadline <= now:
        deadline += interval
    return deadline


class ScrapeState(Enum):
    IDLE = "idle"
    SCRAPING = "scraping"


class Monitor:
    """
    State owner and scheduler for the bug monitor.

    Args:
        storage: Persistence backend; defaults to the user data directory.
        notifier: Alert and UI update collaborator; defaults to LogNotifier.
        session: HTTP session used for every scrape; created if None.
    """

    def __init__(
        self,
        storage: Optional[Storage] = None,
        notifier: Optional[Notifier] = None,
        session: Optional[requests.Session] = None
    ):
        self.storage = storage or Storage()
        self.notifier = notifier or LogNotifier()
        self._owns_session = session is None
        self.session = session if session is not None else create_session()

        self._lock = threading.Lock()
        self._persist_lock = threading.Lock()
        self._gate = threading.Semaphore(1)
        self._cancel = threading.Event()

        self._state = ScrapeState.IDLE
        self._config = default_config()
        self._stats = Stats()
        self._change_log: List[ChangeLogEntry] = []
        self._logs: List[LogEntry] = []
        self._monitoring_enabled = True
        self._poller_stop: Optional[threading.Event] = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def startup(self, fetch: bool = True) -> Optional[threading.Thread]:
        """
        Load persisted state, start polling and kick off a first fetch.

        Returns:
            The background fetch thread, or None if fetch is False.
        """
        self._cancel.clear()
        cfg = apply_env_overrides(self.storage.load_config())
        stats = self.storage.load_state()
        change_log = self.storage.load_change_log()

        with self._lock:
            self._config = cfg
            self._stats = stats
            self._change_log = change_log

        logger.info(
            f"Loaded configuration for {cfg.url} "
            f"(every {cfg.interval_minutes} min, {len(change_log)} change-log entries)"
        )

        self.start_polling()
        self.emit_all()

        if fetch:
            return self.trigger_fetch()
        return None

    def shutdown(self) -> None:
        """Stop polling and abandon scrapes that have not started yet."""
        self.stop_polling()
        self._cancel.set()
        if self._owns_session:
            self.session.close()
        logger.info("Monitor shut down")

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def scrape_state(self) -> ScrapeState:
        with self._lock:
            return self._state

    def get_config(self) -> Config:
        with self._lock:
            return replace(self._config, notify_levels=list(self._config.notify_levels))

    def get_stats(self) -> Stats:
        with self._lock:
            return replace(self._stats, severity=replace(self._stats.severity))

    def get_change_log(self) -> List[ChangeLogEntry]:
        with self._lock:
            return list(self._change_log)

    def get_logs(self) -> List[LogEntry]:
        with self._lock:
            return list(self._logs)

    def get_monitoring_status(self) -> bool:
        with self._lock:
            return self._monitoring_enabled

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def save_config(self, cfg: Config) -> Config:
        """
        Replace the configuration, persist it and restart polling.

        The in-memory configuration is updated even if persisting fails.

        Returns:
            The sanitized configuration now in effect.

        Raises:
            PersistenceError: If the configuration file cannot be written.
        """
        cfg = sanitize_config(cfg)
        with self._lock:
            self._config = cfg

        self.storage.save_config(cfg)

        monitoring = self.get_monitoring_status()
        if monitoring:
            self.start_polling()
        self.emit_config()
        if monitoring:
            self.trigger_fetch()

        return cfg

    def start_monitoring(self) -> None:
        self.set_monitoring_enabled(True)

    def stop_monitoring(self) -> None:
        self.set_monitoring_enabled(False)

    def set_monitoring_enabled(self, enabled: bool) -> None:
        with self._lock:
            if self._monitoring_enabled == enabled:
                return
            self._monitoring_enabled = enabled

        if enabled:
            self.add_log(LOG_INFO, "Monitoring resumed")
            self.start_polling()
        else:
            self.stop_polling()
            self.add_log(LOG_INFO, "Monitoring paused")
        self.emit_monitoring()

    def trigger_fetch(self) -> threading.Thread:
        """Run fetch_now() in a background thread."""
        thread = threading.Thread(
            target=self._fetch_in_background,
            name="bug-watcher-fetch",
            daemon=True
        )
        thread.start()
        return thread

    def fetch_now(self) -> Optional[Stats]:
        """
        Scrape the bug page once and commit the result.

        Returns:
            The new snapshot, or None if another scrape was already running.

        Raises:
            ScrapeError: If fetching or parsing failed (already logged).
        """
        if not self._gate.acquire(blocking=False):
            self.add_log(LOG_INFO, "Scrape skipped: previous sync still running")
            return None

        try:
            self._set_state(ScrapeState.SCRAPING)
            return self._run_scrape()
        finally:
            self._set_state(ScrapeState.IDLE)
            self._gate.release()

    def test_notification(self) -> None:
        """Send a test alert and force the alert sound."""
        self.notifier.send_notification(NOTIFICATION_TITLE, TEST_NOTIFICATION_MESSAGE)
        self.notifier.play_sound(True)
        self.add_log(LOG_INFO, "Test notification triggered")

    def clear_change_log(self) -> None:
        with self._persist_lock:
            with self._lock:
                self._change_log = []
            self._persist(self.storage.remove_change_log)
        self.emit_change_log()

    def clear_monitoring_data(self) -> None:
        """Forget the last snapshot, the change-log and the diagnostic log."""
        with self._persist_lock:
            with self._lock:
                self._stats = Stats()
                self._change_log = []
                self._logs = []
            self._persist(self.storage.remove_change_log)
            self._persist(self.storage.remove_state)
        self.emit_all()

    # ------------------------------------------------------------------
    # Scheduler
    # ------------------------------------------------------------------

    def start_polling(self) -> None:
        """(Re)start the ticker using the configured interval."""
        stop = None
        with self._lock:
            previous = self._poller_stop
            self._poller_stop = None
            if self._monitoring_enabled:
                minutes = self._config.interval_minutes
                if minutes <= 0:
                    minutes = DEFAULT_INTERVAL_MINUTES
                stop = threading.Event()
                self._poller_stop = stop

        if previous is not None:
            previous.set()
        if stop is None:
            return

        self.add_log(LOG_INFO, f"Polling started: every {minutes} minutes")
        threading.Thread(
            target=self._poll_loop,
            args=(stop, minutes),
            name="bug-watcher-poller",
            daemon=True
        ).start()

    def stop_polling(self) -> None:
        with self._lock:
            stop = self._poller_stop
            self._poller_stop = None
        if stop is not None:
            stop.set()

    @property
    def polling(self) -> bool:
        with self._lock:
            return self._poller_stop is not None

    def _poll_loop(self, stop: threading.Event, minutes: int) -> None:
        interval = minutes * SECONDS_PER_MINUTE
        deadline = time.monotonic() + interval
        while not stop.wait(max(0.0, deadline - time.monotonic())):
            deadline = next_tick(deadline, interval, time.monotonic())
            try:
                self.add_log(LOG_INFO, f"Auto sync triggered (every {minutes} minutes)")
                self.fetch_now()
            except BugWatcherError as e:
                # Recorded in the log feed; wait for the next tick
                logger.debug(f"Scheduled scrape failed: {e}")
            except Exception as e:
                logger.exception(f"Unexpected error in scheduled scrape: {e}")

    def _fetch_in_background(self) -> None:
        try:
            self.fetch_now()
        except BugWatcherError as e:
            logger.debug(f"Background scrape failed: {e}")
        except Exception as e:
            logger.exception(f"Unexpected error in background scrape: {e}")

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    def _set_state(self, state: ScrapeState) -> None:
        with self._lock:
            self._state = state

    def _run_scrape(self) -> Stats:
        cfg = self.get_config()
        self.add_log(LOG_INFO, f"Scraping {cfg.url}")

        try:
            stats, status = scrape(cfg, session=self.session, cancel_event=self._cancel)
        except ScrapeError as e:
            self.add_log(LOG_ERROR, f"Scrape failed: {e}", e.status_code)
            raise
        except ConfigInvalidError as e:
            self.add_log(LOG_ERROR, f"Scrape failed: {e}")
            raise

        self.add_log(LOG_INFO, f"HTTP {status} - parsed {stats.total} bugs", status)

        decision = NotificationDecision(notify=False)
        change_log: Optional[List[ChangeLogEntry]] = None
        with self._lock:
            previous = self._stats
            self._stats = stats
            changed, delta = detect_change(previous, stats)
            if changed:
                decision = evaluate_notification(
                    previous.severity, stats.severity, cfg, delta, stats.total
                )
                change_log = add_change_entry(
                    self._change_log, build_change_entry(stats, delta)
                )
                self._change_log = change_log

        # Skip writes whose data a concurrent clear has already dropped
        with self._persist_lock:
            with self._lock:
                state_current = self._stats is stats
                log_current = change_log is not None and self._change_log is change_log
            if state_current:
                self._persist(self.storage.save_state, stats)
            if log_current:
                self._persist(self.storage.save_change_log, list(change_log))

        self.emit_stats()
        if change_log is not None:
            self.emit_change_log()

        if decision.notify:
            dispatch_notification(self.notifier, cfg, decision.title, decision.message)

        return stats

    def _persist(self, action, *args) -> bool:
        try:
            action(*args)
            return True
        except PersistenceError as e:
            logger.warning(f"Persistence failed, keeping in-memory state: {e}")
            return False

    # ------------------------------------------------------------------
    # Log feed and UI updates
    # ------------------------------------------------------------------

    def add_log(self, level: str, message: str, status: int = 0) -> None:
        entry = LogEntry(timestamp=utc_now(), level=level, status=status, message=message)
        with self._lock:
            self._logs = prepend_capped(self._logs, entry)

        if level == LOG_ERROR:
            logger.error(f"{message} (status {status})" if status else message)
        else:
            logger.info(message)
        self.emit_logs()

    def emit_all(self) -> None:
        self.emit_config()
        self.emit_stats()
        self.emit_change_log()
        self.emit_logs()
        self.emit_monitoring()

    def emit_config(self) -> None:
        self._emit("config", self.get_config().to_dict())

    def emit_stats(self) -> None:
        self._emit("stats", self.get_stats().to_dict())

    def emit_change_log(self) -> None:
        self._emit("changelog", [entry.to_dict() for entry in self.get_change_log()])

    def emit_logs(self) -> None:
        self._emit("logs", [entry.to_dict() for entry in self.get_logs()])

    def emit_monitoring(self) -> None:
        self._emit("monitoring", self.get_monitoring_status())

    def _emit(self, event: str, payload) -> None:
        try:
            self.notifier.emit(event, payload)
        except Exception as e:
            logger.exception(f"Failed to push {event} update: {e}")
