"""
Bug Watcher - ZenTao bug list monitor.

This package provides functionality to:
- Fetch the bug list page on a fixed interval
- Parse the page to count bugs by severity
- Compare results with the previous snapshot to detect changes
- Notify when selected severity levels change
"""

__version__ = "1.0.0"
__author__ = "Bug Watcher Team"
