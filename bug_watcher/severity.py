"""
Severity classification for bug table cells.

ZenTao renders severity either as a label ("严重", "Major", ...) or as a bare
ordinal (1-4), possibly wrapped in extra markup and whitespace. Everything is
mapped onto four ordered levels: critical > severe > major > minor.
"""

from typing import Dict, List, Optional, Tuple

from bug_watcher.utils import NUMBER_PATTERN


CRITICAL = "critical"
SEVERE = "severe"
MAJOR = "major"
MINOR = "minor"

# Ordered from most to least urgent
SEVERITY_LEVELS: List[str] = [CRITICAL, SEVERE, MAJOR, MINOR]

# Alternative names accepted in configuration
LEVEL_ALIASES: Dict[str, str] = {
    "level1": CRITICAL,
    "level2": SEVERE,
    "level3": MAJOR,
    "level4": MINOR,
}

# Substring vocabulary per level, checked in this order (first match wins)
SEVERITY_KEYWORDS: List[Tuple[str, Tuple[str, ...]]] = [
    (CRITICAL, ("致命", "fatal", "critical", "blocker")),
    (SEVERE, ("严重", "high", "severe")),
    (MAJOR, ("主要", "major")),
    (MINOR, ("次要", "轻微", "minor", "trivial")),
]

# Numeric severity codes rendered without a label
ORDINAL_LEVELS: Dict[int, str] = {
    1: CRITICAL,
    2: SEVERE,
    3: MAJOR,
    4: MINOR,
}


def normalize_severity(text: Optional[str]) -> str:
    """
    Classify raw cell text into a severity level.

    Args:
        text: Cell text, possibly with surrounding whitespace.

    Returns:
        One of "critical", "severe", "major", "minor", or "" when the text
        cannot be classified.
    """
    if not text:
        return ""

    lower = text.strip().lower()
    if not lower:
        return ""

    for level, keywords in SEVERITY_KEYWORDS:
        if any(keyword in lower for keyword in keywords):
            return level

    match = NUMBER_PATTERN.search(lower)
    if match:
        return ORDINAL_LEVELS.get(int(match.group()), "")

    return ""


def resolve_level(name: str) -> str:
    """
    Resolve a configured level name or alias to a canonical level.

    Returns "" for unknown names.
    """
    key = name.strip().lower()
    if key in SEVERITY_LEVELS:
        return key
    return LEVEL_ALIASES.get(key, "")
