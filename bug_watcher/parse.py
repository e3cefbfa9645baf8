"""
Parse module for the Bug Watcher pipeline.

This module extracts bug statistics from a ZenTao bug list page:
- Locating the bug rows across the known table layouts
- Finding the severity column and classifying each row
- Reading the declared total from the pager/summary, with row-count fallback

Every lookup is best effort. A page that matches none of the known layouts
yields zero counts rather than an error.
"""

from typing import Callable, List, Optional, Union

from bs4 import BeautifulSoup, Tag

from bug_watcher.errors import ParseError
from bug_watcher.models import SeverityCounts, Stats
from bug_watcher.severity import normalize_severity
from bug_watcher.utils import get_logger, parse_number, sanitize_text


# Module logger
logger = get_logger("parse")


# Bug row selectors, most specific first. The last entry also covers tables
# without an explicit <tbody>, which html.parser does not insert.
ROW_SELECTORS = [
    "table#bugList tbody tr",
    "#bugList tbody tr",
    "table.datatable tbody tr",
    "table tbody tr",
    "table tr",
]

HEADER_SELECTORS = [
    "table#bugList thead th",
    "table thead th",
    "table tr th",
]

# Header text fragments that mark the severity column
SEVERITY_HEADER_KEYWORDS = ["severity", "严重", "致命"]

# Cells explicitly marked as holding the severity
SEVERITY_CELL_SELECTORS = [
    "td.c-severity",
    "td.severity",
    "td[data-col='severity']",
    "td[data-type='severity']",
]

# Elements known to hold the result count, in priority order
TOTAL_SELECTORS = [
    "#bugCount",
    ".pager .page-summary",
    ".pager .total",
    ".page-summary",
    ".table-footer",
    ".table-actions",
]


def find_bug_rows(soup: BeautifulSoup) -> List[Tag]:
    """
    Locate the bug table rows.

    Tries ROW_SELECTORS in order and keeps only rows with at least one data
    cell. The first selector yielding a row wins.

    Args:
        soup: Parsed page.

    Returns:
        List of <tr> elements, possibly empty.
    """
    for selector in ROW_SELECTORS:
        rows = [row for row in soup.select(selector) if row.find("td") is not None]
        if rows:
            logger.debug(f"Matched {len(rows)} row(s) with '{selector}'")
            return rows

    return []


def find_severity_index(soup: BeautifulSoup) -> int:
    """
    Find the column index of the severity header.

    When several headers match, the right-most one is used.

    Returns:
        Zero-based column index, or -1 if no header matches.
    """
    headers: List[Tag] = []
    for selector in HEADER_SELECTORS:
        headers = soup.select(selector)
        if headers:
            break

    index = -1
    for i, header in enumerate(headers):
        text = sanitize_text(header.get_text()).lower()
        if any(keyword in text for keyword in SEVERITY_HEADER_KEYWORDS):
            index = i

    return index


def _labeled_span_text(row: Tag, index: int) -> str:
    span = row.select_one("td:nth-child(3) span")
    return sanitize_text(span.get_text()) if span else ""


def _marked_cell_text(row: Tag, index: int) -> str:
    for selector in SEVERITY_CELL_SELECTORS:
        cell = row.select_one(selector)
        if cell:
            text = sanitize_text(cell.get_text())
            if text:
                return text
    return ""


def _header_column_text(row: Tag, index: int) -> str:
    if index < 0:
        return ""
    cells = row.find_all("td")
    if index < len(cells):
        return sanitize_text(cells[index].get_text())
    return ""


# Severity text strategies, tried in order until one yields text
SEVERITY_STRATEGIES: List[Callable[[Tag, int], str]] = [
    _labeled_span_text,
    _marked_cell_text,
    _header_column_text,
]


def extract_severity_text(row: Tag, index: int) -> str:
    """
    Extract the raw severity text of a bug row.

    Args:
        row: A <tr> element.
        index: Severity column index from find_severity_index(), or -1.

    Returns:
        The first non-empty candidate text, or "".
    """
    for strategy in SEVERITY_STRATEGIES:
        text = strategy(row, index)
        if text:
            return text
    return ""


def parse_total_count(soup: BeautifulSoup) -> int:
    """
    Read the total bug count declared by the page.

    Returns:
        The first positive integer found via TOTAL_SELECTORS, or 0.
    """
    for selector in TOTAL_SELECTORS:
        element = soup.select_one(selector)
        if element is None:
            continue
        count = parse_number(element.get_text())
        if count > 0:
            logger.debug(f"Declared total {count} from '{selector}'")
            return count

    return 0


def parse_stats(soup: BeautifulSoup) -> Stats:
    """
    Compute bug statistics from a parsed page.

    The declared total takes precedence over the row count because the
    page header may count rows not rendered on the current page.

    Returns:
        Stats with last_updated left unset.
    """
    severity_index = find_severity_index(soup)
    rows = find_bug_rows(soup)
    severity = SeverityCounts()

    for row in rows:
        level = normalize_severity(extract_severity_text(row, severity_index))
        if level:
            severity.increment(level)

    total = parse_total_count(soup)
    if total == 0:
        total = len(rows)

    return Stats(total=total, severity=severity)


def parse_html_content(
    html: Optional[Union[str, bytes]],
    encoding: Optional[str] = None
) -> Stats:
    """
    Parse raw HTML and extract bug statistics.

    Args:
        html: Response body, decoded text or raw bytes.
        encoding: Encoding of a bytes body; None lets BeautifulSoup detect
                  it from <meta charset> and the content.

    Returns:
        Stats for the page (zero counts if nothing matched).

    Raises:
        ParseError: If the document cannot be parsed at all.
    """
    if not html:
        logger.warning("Empty HTML content, no bugs found")
        return Stats()

    try:
        if isinstance(html, bytes):
            soup = BeautifulSoup(html, "html.parser", from_encoding=encoding)
        else:
            soup = BeautifulSoup(html, "html.parser")
    except Exception as e:
        raise ParseError(f"Failed to parse HTML: {e}") from e

    stats = parse_stats(soup)
    logger.info(
        f"Extracted total={stats.total} "
        f"(critical={stats.severity.critical}, severe={stats.severity.severe}, "
        f"major={stats.severity.major}, minor={stats.severity.minor})"
    )
    return stats
