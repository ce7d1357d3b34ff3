"""Reconciliation of ledger rows against remote worklogs.

The engine pairs each remote worklog with a ledger row for the same issue
and date. Pairing is first-fit: rows sharing an (issue, date) pair are
claimed in ledger order, remote worklogs are processed in start order.
Remote worklogs left without a row are deleted, rows left without a
worklog are created.

The scheduling pass then lays the rows of each date out back to back from
08:00 local time, one minute apart, since the source data has no time of
day.
"""

from collections import defaultdict, deque
from datetime import date, datetime, time, timedelta, tzinfo

from models import (
    Create,
    Delete,
    IssueIdentityMap,
    LedgerRow,
    ReconciliationPlan,
    RemoteWorklog,
    ScheduledEntry,
    Update,
)
from utils import localize

DAY_START = timedelta(hours=8)
GAP = timedelta(minutes=1)
DAY = timedelta(days=1)


def default_description(issue_key: str) -> str:
    return f"Working on issue {issue_key}"


def target_description(row: LedgerRow) -> str:
    """Worklog text for a row: its description, or a generic one."""
    return row.description or default_description(row.issue_key)


class RowIndex:
    """Unmatched ledger rows, queued per (issue key, date) in ledger order."""

    def __init__(self, rows: list[LedgerRow]):
        self._queues: dict[tuple[str, date], deque[LedgerRow]] = defaultdict(deque)
        for row in sorted(rows, key=lambda r: r.line):
            self._queues[(row.issue_key, row.date)].append(row)

    def claim(self, issue_key: str, day: date) -> LedgerRow | None:
        """Take the earliest unmatched row for the pair, if any."""
        queue = self._queues.get((issue_key, day))
        if not queue:
            return None
        return queue.popleft()

    def remaining(self) -> list[LedgerRow]:
        return [row for queue in self._queues.values() for row in queue]


def reconcile(
    rows: list[LedgerRow],
    identities: IssueIdentityMap,
    worklogs: list[RemoteWorklog],
) -> ReconciliationPlan:
    """Decide which worklogs to create, update and delete.

    Upserts come back sorted by (date, ledger line), the order the
    scheduling pass needs. Worklogs on issues the ledger never mentions are
    returned as orphaned and left alone.
    """
    plan = ReconciliationPlan()
    index = RowIndex(rows)
    updates = []

    for worklog in sorted(worklogs, key=lambda w: (w.start, w.worklog_id)):
        key = identities.key_for(worklog.issue_id)
        if key is None:
            plan.orphaned.append(worklog)
            continue

        row = index.claim(key, worklog.start_date)
        if row is None:
            plan.deletes.append(Delete(existing=worklog, issue_key=key))
        else:
            updates.append(Update(row=row, existing=worklog))

    creates = [Create(row=row) for row in index.remaining()]
    plan.upserts = sorted(updates + creates, key=lambda d: (d.row.date, d.row.line))
    return plan


class ScheduleCursor:
    """Next free start time for each date, as an offset from local midnight."""

    def __init__(self, tz: tzinfo | None = None, day_start: timedelta = DAY_START, gap: timedelta = GAP):
        self.tz = tz
        self.day_start = day_start
        self.gap = gap
        self._offsets: dict[date, timedelta] = {}

    def peek(self, day: date) -> timedelta:
        return self._offsets.get(day, self.day_start)

    def assign(self, row: LedgerRow) -> datetime:
        """Return the row's start and move the cursor past it."""
        offset = self.peek(row.date)
        # Wrap like a clock so a start never leaves its ledger date
        self._offsets[row.date] = (offset + row.duration + self.gap) % DAY
        wall_time = datetime.combine(row.date, time()) + offset
        return localize(wall_time, self.tz)


def schedule(upserts: list[Create | Update], tz: tzinfo | None = None) -> list[ScheduledEntry]:
    """Give every upsert a synthesized start, in the given order."""
    cursor = ScheduleCursor(tz)
    return [ScheduledEntry(decision=d, start=cursor.assign(d.row)) for d in upserts]


def is_unchanged(entry: ScheduledEntry) -> bool:
    """True when an update's target already matches the remote worklog."""
    decision = entry.decision
    if not isinstance(decision, Update):
        return False
    existing = decision.existing
    return (
        existing.description == target_description(decision.row)
        and existing.start == entry.start
        and existing.duration_seconds == int(decision.row.duration.total_seconds())
    )
