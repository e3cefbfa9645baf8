"""
Fetch module for the Bug Watcher pipeline.

This module performs the HTTP request for the bug list page and turns the
response into a timestamped Stats snapshot. Failures are classified into
transport, HTTP status and parse errors; nothing is retried, the next
scheduled tick simply tries again.

The body is read in a streaming fashion against a deadline so that the
timeout bounds the whole request, not only each socket read. It is kept as
bytes and decoded by BeautifulSoup, so pages without a charset in the
Content-Type header are not forced to ISO-8859-1.
"""

import re
import threading
import time
from dataclasses import dataclass
from typing import Optional, Tuple

import requests
from requests.adapters import HTTPAdapter
from urllib3.exceptions import DecodeError, ProtocolError, ReadTimeoutError
from urllib3.util.retry import Retry

from bug_watcher.config import Config
from bug_watcher.errors import (
    ConfigInvalidError,
    HTTPStatusError,
    ParseError,
    ScrapeCancelledError,
    TransportError,
)
from bug_watcher.models import Stats, utc_now
from bug_watcher.parse import parse_html_content
from bug_watcher.utils import get_logger


# Module logger
logger = get_logger("fetch")

# Default configuration
DEFAULT_TIMEOUT = 25  # seconds, whole request
DEFAULT_MAX_RETRIES = 0
CHUNK_SIZE = 16 * 1024
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

CHARSET_PATTERN = re.compile(r"charset\s*=\s*[\"']?([\w.:-]+)", re.IGNORECASE)


@dataclass
class FetchResult:
    """
    Represents the result of fetching the bug page.

    Attributes:
        source_url: The URL that was fetched.
        html_content: Raw response body if successful, None otherwise.
        success: Whether the fetch was successful.
        error_message: Error description if fetch failed, None otherwise.
        status_code: HTTP status code, 0 if no response was received.
        encoding: Encoding to decode html_content with, None to let the
                  parser sniff it from <meta charset> and the bytes.
    """
    source_url: str
    html_content: Optional[bytes]
    success: bool
    error_message: Optional[str] = None
    status_code: int = 0
    encoding: Optional[str] = None


def create_session(max_retries: int = DEFAULT_MAX_RETRIES) -> requests.Session:
    """
    Create a requests session with browser-like default headers.

    Args:
        max_retries: Retry attempts for transient failures. The monitor
                     uses 0 and relies on the next tick instead.

    Returns:
        Configured requests.Session instance.
    """
    session = requests.Session()

    retry_strategy = Retry(
        total=max_retries,
        allowed_methods=["GET", "HEAD"],
        raise_on_status=False
    )

    adapter = HTTPAdapter(max_retries=retry_strategy)
    session.mount("http://", adapter)
    session.mount("https://", adapter)

    session.headers.update({
        "User-Agent": DEFAULT_USER_AGENT,
        "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    })

    return session


def build_headers(cfg: Config) -> dict:
    """Request headers for a scrape; the cookie is only sent when set."""
    headers = {"User-Agent": DEFAULT_USER_AGENT}
    if cfg.cookie:
        headers["Cookie"] = cfg.cookie
    return headers


def read_body(response: requests.Response, deadline: float) -> bytes:
    """
    Read a streamed response body, giving up once the deadline has passed.

    Each read returns as soon as some data is available, so a server that
    trickles its body is cut off at the deadline.

    Raises:
        requests.exceptions.Timeout: If the deadline passes before the end.
        requests.exceptions.RequestException: On broken or undecodable bodies.
    """
    chunks = []
    try:
        while True:
            if time.monotonic() > deadline:
                raise requests.exceptions.Timeout("Response body not received in time")
            chunk = response.raw.read1(CHUNK_SIZE, decode_content=True)
            if not chunk:
                break
            chunks.append(chunk)
    except ReadTimeoutError as e:
        raise requests.exceptions.Timeout(e) from e
    except ProtocolError as e:
        raise requests.exceptions.ChunkedEncodingError(e) from e
    except DecodeError as e:
        raise requests.exceptions.ContentDecodingError(e) from e
    return b"".join(chunks)


def detect_encoding(content_type: Optional[str], content: bytes) -> Optional[str]:
    """
    Choose the encoding for a response body.

    A charset in the Content-Type header wins. Without one, bodies that are
    valid UTF-8 are treated as UTF-8; anything else is left to the parser.
    """
    match = CHARSET_PATTERN.search(content_type or "")
    if match:
        return match.group(1)

    try:
        content.decode("utf-8")
    except UnicodeDecodeError:
        return None
    return "utf-8"


def fetch_page(
    cfg: Config,
    session: requests.Session,
    timeout: float = DEFAULT_TIMEOUT
) -> FetchResult:
    """
    Fetch the configured bug page and return the result.

    Args:
        cfg: Monitor configuration (url and cookie are used).
        session: Configured requests session.
        timeout: Limit in seconds for the whole request, body included.

    Returns:
        FetchResult containing the fetch outcome.
    """
    url = cfg.url
    logger.debug(f"Fetching URL: {url}")
    deadline = time.monotonic() + timeout

    try:
        response = session.get(url, headers=build_headers(cfg), timeout=timeout, stream=True)

        try:
            if response.status_code >= 400:
                logger.warning(f"HTTP {response.status_code} for {url}")
                return FetchResult(
                    source_url=url,
                    html_content=None,
                    success=False,
                    error_message=f"bad response: HTTP {response.status_code}",
                    status_code=response.status_code
                )

            content = read_body(response, deadline)
        finally:
            response.close()

        encoding = detect_encoding(response.headers.get("Content-Type"), content)
        logger.debug(f"Fetched {url} ({len(content)} bytes, encoding {encoding or 'unknown'})")
        return FetchResult(
            source_url=url,
            html_content=content,
            success=True,
            status_code=response.status_code,
            encoding=encoding
        )

    except requests.exceptions.Timeout:
        logger.warning(f"Timeout fetching {url}")
        return FetchResult(
            source_url=url,
            html_content=None,
            success=False,
            error_message="Request timeout"
        )

    except requests.exceptions.ConnectionError as e:
        logger.warning(f"Connection error for {url}: {e}")
        return FetchResult(
            source_url=url,
            html_content=None,
            success=False,
            error_message=f"Connection error: {str(e)}"
        )

    except requests.exceptions.RequestException as e:
        logger.error(f"Request exception for {url}: {e}")
        return FetchResult(
            source_url=url,
            html_content=None,
            success=False,
            error_message=f"Request failed: {str(e)}"
        )


def scrape(
    cfg: Config,
    session: Optional[requests.Session] = None,
    cancel_event: Optional[threading.Event] = None,
    timeout: float = DEFAULT_TIMEOUT
) -> Tuple[Stats, int]:
    """
    Fetch and parse the bug page once.

    Args:
        cfg: Sanitized monitor configuration.
        session: Session to use; a temporary one is created if None.
        cancel_event: When already set, the scrape is abandoned before
                      the request is sent.
        timeout: Limit in seconds for the whole request.

    Returns:
        Tuple of (stats stamped with the capture time, HTTP status code).

    Raises:
        ConfigInvalidError: If the URL is empty.
        ScrapeCancelledError: If cancel_event is set.
        TransportError: On DNS, connection or timeout failures.
        HTTPStatusError: On a status code of 400 or above.
        ParseError: If the body cannot be parsed.
    """
    if not cfg.url:
        raise ConfigInvalidError("missing URL")

    if cancel_event is not None and cancel_event.is_set():
        raise ScrapeCancelledError("scrape cancelled")

    owns_session = session is None
    if session is None:
        session = create_session()

    try:
        result = fetch_page(cfg, session, timeout)
    finally:
        if owns_session:
            session.close()

    if not result.success:
        message = result.error_message or "request failed"
        if result.status_code:
            raise HTTPStatusError(message, status_code=result.status_code)
        raise TransportError(message)

    try:
        stats = parse_html_content(result.html_content, result.encoding)
    except ParseError as e:
        raise ParseError(str(e), status_code=result.status_code) from e

    stats.last_updated = utc_now()
    return stats, result.status_code
