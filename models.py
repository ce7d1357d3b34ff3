"""Data models for ledger to Tempo reconciliation."""

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta


@dataclass(frozen=True)
class LedgerRow:
    """A row of the imported ledger."""

    date: date
    duration: timedelta
    issue_key: str
    description: str | None
    line: int  # Source line, fixes ledger order


@dataclass(frozen=True)
class RemoteWorklog:
    """A worklog entry from Tempo."""

    worklog_id: int
    issue_id: int
    start: datetime  # Timezone-aware
    duration_seconds: int
    description: str | None
    author_account_id: str | None

    @property
    def start_date(self) -> date:
        return self.start.date()


@dataclass(frozen=True)
class IssueIdentity:
    """A Jira issue key with its numeric id."""

    key: str
    issue_id: int


class IssueIdentityMap:
    """Bidirectional lookup between issue keys and numeric ids."""

    def __init__(self, identities: list[IssueIdentity] | None = None):
        self._by_key: dict[str, int] = {}
        self._by_id: dict[int, str] = {}
        for identity in identities or []:
            self.add(identity)

    def add(self, identity: IssueIdentity) -> None:
        known = self._by_key.get(identity.key)
        if known is not None and known != identity.issue_id:
            raise ValueError(
                f"Issue {identity.key} resolved to two ids: {known} and {identity.issue_id}"
            )
        self._by_key[identity.key] = identity.issue_id
        self._by_id[identity.issue_id] = identity.key

    def key_for(self, issue_id: int) -> str | None:
        return self._by_id.get(issue_id)

    def id_for(self, key: str) -> int | None:
        return self._by_key.get(key)

    def __contains__(self, key: str) -> bool:
        return key in self._by_key

    def __len__(self) -> int:
        return len(self._by_key)


# ============================================================================
# Decisions
# ============================================================================


@dataclass(frozen=True)
class Create:
    """No remote worklog matches the row."""

    row: LedgerRow


@dataclass(frozen=True)
class Update:
    """A remote worklog matches the row by issue and date."""

    row: LedgerRow
    existing: RemoteWorklog


@dataclass(frozen=True)
class Delete:
    """A remote worklog has no ledger row left for its issue and date."""

    existing: RemoteWorklog
    issue_key: str


@dataclass
class ReconciliationPlan:
    """Decisions for one run, in the order they are applied."""

    deletes: list[Delete] = field(default_factory=list)
    upserts: list[Create | Update] = field(default_factory=list)
    orphaned: list[RemoteWorklog] = field(default_factory=list)


@dataclass(frozen=True)
class ScheduledEntry:
    """An upsert with its synthesized start."""

    decision: Create | Update
    start: datetime

    @property
    def row(self) -> LedgerRow:
        return self.decision.row


# ============================================================================
# Config & State
# ============================================================================


@dataclass(frozen=True)
class Settings:
    """Connection settings for Jira and Tempo."""

    jira_domain: str | None = None
    jira_user: str | None = None
    jira_token: str | None = None
    tempo_token: str | None = None
    timezone: str | None = None  # IANA name, None means system local time
    timeout: float = 30.0


@dataclass
class SyncState:
    """State tracking for a sync operation."""

    created: int = 0
    updated: int = 0
    deleted: int = 0
    unchanged: int = 0
    skipped: int = 0
