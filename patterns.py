"""Centralized regex patterns for ledger import."""

import re


class Patterns:
    """Regex patterns used throughout the import process."""

    # One duration token: 2h, 13m, 1.5h, 90 seconds
    DURATION_TOKEN = re.compile(
        r"(\d+(?:[.,]\d+)?)\s*"
        r"(weeks?|w|days?|d|hours?|hrs?|h|minutes?|mins?|m|seconds?|secs?|s)"
        r"(?![a-z])",
        re.IGNORECASE,
    )

    # Clock duration: 2:13 or 2:13:30
    CLOCK_DURATION = re.compile(r"^\s*(\d+):([0-5]?\d)(?::([0-5]?\d))?\s*$")

    # Bare number, read as seconds: 3600, 5400.5
    BARE_NUMBER = re.compile(r"^\s*(\d+(?:[.,]\d+)?)\s*$")

    # Jira ticket key: ABC-123. Jira project keys start with a letter and
    # hold at least two uppercase letters, digits or underscores
    ISSUE_KEY = re.compile(r"^[A-Z][A-Z0-9_]+-\d+$")

    # Date format: YYYY-MM-DD
    DATE_FORMAT = re.compile(r"^\d{4}-\d{2}-\d{2}$")
