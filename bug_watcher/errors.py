"""
Error types for the Bug Watcher monitor.

Scrape failures carry the HTTP status code when one is known (0 otherwise)
so they can be recorded in the diagnostic log feed.
"""


class BugWatcherError(Exception):
    """Base class for all Bug Watcher errors."""


class ConfigInvalidError(BugWatcherError):
    """Raised when a configuration cannot be used (e.g. empty URL)."""


class PersistenceError(BugWatcherError):
    """Raised when a persistence file cannot be written."""

    def __init__(self, message: str, path: str = ""):
        super().__init__(message)
        self.path = path


class ScrapeError(BugWatcherError):
    """Base exception for a failed scrape."""

    def __init__(self, message: str, status_code: int = 0):
        super().__init__(message)
        self.status_code = status_code


class TransportError(ScrapeError):
    """DNS, connection or timeout failure before a response was received."""


class HTTPStatusError(ScrapeError):
    """The server answered with a status code of 400 or above."""


class ParseError(ScrapeError):
    """The response body could not be parsed as HTML."""


class ScrapeCancelledError(ScrapeError):
    """The scrape was cancelled before the request was sent."""
