"""Tests for regex patterns.

These tests verify the patterns the ledger loader and CLI rely on without
touching Jira or Tempo.
"""

import pytest

from patterns import Patterns


# ---------------------------------------------------------------------------
# DURATION_TOKEN: 2h, 13m, 1.5 hours
# ---------------------------------------------------------------------------

class TestDurationToken:
    """Patterns.DURATION_TOKEN must split unit expressions into tokens."""

    @pytest.mark.parametrize(
        "text, expected",
        [
            ("2h13m", [("2", "h"), ("13", "m")]),
            ("1h 30m", [("1", "h"), ("30", "m")]),
            ("3 hours", [("3", "hours")]),
            ("45 min", [("45", "min")]),
            ("1,5h", [("1,5", "h")]),
            ("1d 2hrs", [("1", "d"), ("2", "hrs")]),
            ("90S", [("90", "S")]),
        ],
    )
    def test_tokens(self, text, expected):
        tokens = [m.groups() for m in Patterns.DURATION_TOKEN.finditer(text)]
        assert tokens == expected

    @pytest.mark.parametrize("text", ["1 month", "abc", "h2", ""])
    def test_no_tokens(self, text):
        assert Patterns.DURATION_TOKEN.search(text) is None


# ---------------------------------------------------------------------------
# CLOCK_DURATION: 2:13, 2:13:30
# ---------------------------------------------------------------------------

class TestClockDuration:

    @pytest.mark.parametrize(
        "text, expected",
        [
            ("2:13", ("2", "13", None)),
            ("0:45", ("0", "45", None)),
            ("10:05:30", ("10", "05", "30")),
            (" 1:00 ", ("1", "00", None)),
        ],
    )
    def test_matches(self, text, expected):
        m = Patterns.CLOCK_DURATION.match(text)
        assert m is not None
        assert m.groups() == expected

    @pytest.mark.parametrize("text", ["2:75", "2h13m", ":30", "1:2:3:4"])
    def test_rejects(self, text):
        assert Patterns.CLOCK_DURATION.match(text) is None


# ---------------------------------------------------------------------------
# BARE_NUMBER: seconds fallback
# ---------------------------------------------------------------------------

class TestBareNumber:

    @pytest.mark.parametrize("text", ["3", "3600", " 5400.5 ", "7,5"])
    def test_matches(self, text):
        assert Patterns.BARE_NUMBER.match(text)

    @pytest.mark.parametrize("text", ["3h", "-3", "1 2", ""])
    def test_rejects(self, text):
        assert Patterns.BARE_NUMBER.match(text) is None


# ---------------------------------------------------------------------------
# ISSUE_KEY: ABC-123
# ---------------------------------------------------------------------------

class TestIssueKey:

    @pytest.mark.parametrize("key", ["PRJ-1234", "AB-1", "A1_B-42"])
    def test_valid(self, key):
        assert Patterns.ISSUE_KEY.match(key)

    @pytest.mark.parametrize("key", ["prj-1", "PRJ", "PRJ-", "A-1", "PRJ-12a", "PRJ 1"])
    def test_invalid(self, key):
        assert Patterns.ISSUE_KEY.match(key) is None


# ---------------------------------------------------------------------------
# DATE_FORMAT: YYYY-MM-DD
# ---------------------------------------------------------------------------

class TestDateFormat:

    def test_iso(self):
        assert Patterns.DATE_FORMAT.match("2023-10-01")

    @pytest.mark.parametrize("text", ["01.10.2023", "2023/10/01", "2023-1-1"])
    def test_rejects(self, text):
        assert Patterns.DATE_FORMAT.match(text) is None
