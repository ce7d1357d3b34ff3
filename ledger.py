"""Ledger loading: CSV rows to LedgerRow records."""

import csv
import os
import sys
from typing import IO

from models import LedgerRow
from patterns import Patterns
from utils import DATE_FORMATS, parse_date, parse_duration

REQUIRED_COLUMNS = ("Date", "Time", "IssueKey")
DESCRIPTION_COLUMN = "Description"


class LedgerError(Exception):
    """The ledger cannot be imported. Carries every problem found."""

    def __init__(self, errors: list[str]):
        super().__init__("; ".join(errors))
        self.errors = errors


def _header_index(fieldnames: list[str]) -> dict[str, str]:
    """Map canonical column names to the header spelling used in the file."""
    by_lower = {name.strip().lower(): name for name in fieldnames if name}
    columns = {}
    for column in REQUIRED_COLUMNS + (DESCRIPTION_COLUMN,):
        if column.lower() in by_lower:
            columns[column] = by_lower[column.lower()]
    return columns


def read_ledger(stream: IO[str], date_formats: tuple[str, ...] = DATE_FORMATS) -> list[LedgerRow]:
    """Read and validate ledger rows from a CSV stream.

    All row errors are collected before failing, so the user can fix the
    whole file in one go.

    Raises:
        LedgerError: if headers are missing or any row is invalid.
    """
    reader = csv.DictReader(stream)
    if not reader.fieldnames:
        raise LedgerError(
            ["Invalid CSV file. Column headers are required and must include Date, Time, and IssueKey."]
        )

    columns = _header_index(reader.fieldnames)
    missing = [c for c in REQUIRED_COLUMNS if c not in columns]
    if missing:
        raise LedgerError(
            [
                "Invalid CSV file. Column headers are required and must include Date, Time, and IssueKey. "
                f"Missing: {', '.join(missing)}"
            ]
        )

    rows = []
    errors = []
    for record in reader:
        line = reader.line_num
        if not any((value or "").strip() for value in record.values() if isinstance(value, str)):
            continue

        date_text = record.get(columns["Date"])
        time_text = record.get(columns["Time"])
        key = (record.get(columns["IssueKey"]) or "").strip().upper()
        description = None
        if DESCRIPTION_COLUMN in columns:
            description = (record.get(columns[DESCRIPTION_COLUMN]) or "").strip() or None

        row_date = parse_date(date_text, date_formats)
        if row_date is None:
            errors.append(f"Invalid or missing Date on line {line}: '{date_text or ''}'")

        duration = parse_duration(time_text)
        if duration is None:
            errors.append(f"Invalid or missing Time on line {line}: '{time_text or ''}'")
        elif duration.total_seconds() <= 0:
            errors.append(f"Time must be greater than zero on line {line}: '{time_text}'")
            duration = None

        key_ok = bool(key) and Patterns.ISSUE_KEY.match(key) is not None
        if not key:
            errors.append(f"Missing IssueKey on line {line}")
        elif not key_ok:
            errors.append(f"Invalid IssueKey on line {line}: '{key}'")

        if row_date is not None and duration is not None and key_ok:
            rows.append(
                LedgerRow(
                    date=row_date,
                    duration=duration,
                    issue_key=key,
                    description=description,
                    line=line,
                )
            )

    if errors:
        raise LedgerError(errors)

    return rows


def load_ledger(path: str | None = None, date_formats: tuple[str, ...] = DATE_FORMATS) -> list[LedgerRow]:
    """Load the ledger from a file, or from standard input when no path is given.

    Raises:
        LedgerError: if the file cannot be read or decoded, or holds invalid rows.
    """
    if not path or path == "-":
        try:
            return read_ledger(sys.stdin, date_formats)
        except UnicodeDecodeError as e:
            raise LedgerError([f"Cannot decode standard input as UTF-8: {e.reason} at byte {e.start}"])
        except csv.Error as e:
            raise LedgerError([f"Cannot parse standard input as CSV: {e}"])

    path = os.path.expanduser(path)
    if not os.path.exists(path):
        raise LedgerError([f"Ledger file not found: {path}"])

    try:
        with open(path, newline="", encoding="utf-8-sig") as f:
            return read_ledger(f, date_formats)
    except UnicodeDecodeError as e:
        raise LedgerError(
            [f"Cannot decode {path} as UTF-8: {e.reason} at byte {e.start}. Save the file as UTF-8 and retry."]
        )
    except csv.Error as e:
        raise LedgerError([f"Cannot parse {path} as CSV: {e}"])
    except OSError as e:
        raise LedgerError([f"Cannot read {path}: {e.strerror or e}"])
