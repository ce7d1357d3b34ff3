"""
Reconcile a CSV ledger of time entries with Jira/Tempo worklogs.

Usage:
    # Replace the worklogs of every date in the ledger with its rows
    python tempo_reporter.py import -f hours.csv

    # Read the ledger from standard input, only show what would happen
    cat hours.csv | python tempo_reporter.py import --dry-run

    # Delete all worklogs on specific dates
    python tempo_reporter.py clear 2023-10-01 2023-10-02
"""

import argparse
import asyncio
import logging
from datetime import date, timedelta

from clients import ApiError, JiraClient, TempoClient
from ledger import LedgerError, load_ledger
from models import (
    Create,
    IssueIdentityMap,
    LedgerRow,
    ReconciliationPlan,
    RemoteWorklog,
    Settings,
    SyncState,
)
from patterns import Patterns
from reconcile import is_unchanged, reconcile, schedule, target_description
from utils import (
    CONFIG_FILE,
    DATE_FORMATS,
    format_hours_minutes,
    get_timezone,
    load_settings_safe,
    parse_date,
)

logger = logging.getLogger("tempo_reporter")


# ============================================================================
# Snapshot
# ============================================================================


async def fetch_snapshot(
    jira: JiraClient, tempo: TempoClient, rows: list[LedgerRow]
) -> tuple[IssueIdentityMap, list[RemoteWorklog]]:
    """Resolve issue ids and fetch existing worklogs at the same time."""
    loop = asyncio.get_running_loop()
    keys = [row.issue_key for row in rows]
    dates = [row.date for row in rows]
    identities, worklogs = await asyncio.gather(
        loop.run_in_executor(None, jira.resolve_issue_ids, keys),
        loop.run_in_executor(None, tempo.fetch_worklogs, dates),
    )
    return identities, worklogs


# ============================================================================
# Apply
# ============================================================================


def _report(marker: str, text: str, dry_run: bool) -> None:
    print(f"    {'[DRY-RUN]' if dry_run else marker} {text}")


def _seconds(duration: timedelta) -> int:
    return int(duration.total_seconds())


def delete_worklog(
    tempo: TempoClient, worklog: RemoteWorklog, issue_label: str, dry_run: bool = False
) -> None:
    spent = format_hours_minutes(timedelta(seconds=worklog.duration_seconds))
    _report(
        "[-]",
        f"Deleting worklog {worklog.worklog_id} for {spent} on {worklog.start_date:%Y-%m-%d} "
        f"for issue {issue_label}",
        dry_run,
    )
    if not dry_run:
        tempo.delete_worklog(worklog.worklog_id)


def apply_plan(
    plan: ReconciliationPlan,
    jira: JiraClient,
    tempo: TempoClient,
    tz=None,
    dry_run: bool = False,
) -> SyncState:
    """Apply a plan one call at a time: deletes first, then scheduled upserts.

    Updates whose target already matches the remote worklog are skipped, so
    running the same ledger twice changes nothing the second time.
    """
    state = SyncState(skipped=len(plan.orphaned))

    for decision in plan.deletes:
        delete_worklog(tempo, decision.existing, decision.issue_key, dry_run)
        state.deleted += 1

    for entry in schedule(plan.upserts, tz):
        row = entry.row
        spent = format_hours_minutes(row.duration)
        description = target_description(row)

        if isinstance(entry.decision, Create):
            _report("[+]", f"Creating worklog for issue {row.issue_key} on {row.date:%Y-%m-%d} for {spent}", dry_run)
            if not dry_run:
                jira.create_worklog(row.issue_key, entry.start, _seconds(row.duration), description)
            state.created += 1
            continue

        if is_unchanged(entry):
            logger.debug("Worklog %s for %s is up to date", entry.decision.existing.worklog_id, row.issue_key)
            state.unchanged += 1
            continue

        existing = entry.decision.existing
        old_spent = format_hours_minutes(timedelta(seconds=existing.duration_seconds))
        _report(
            "[~]",
            f"Updating worklog for issue {row.issue_key} on {row.date:%Y-%m-%d} from {old_spent} to {spent}",
            dry_run,
        )
        if not dry_run:
            tempo.update_worklog(
                existing.worklog_id,
                existing.author_account_id,
                description,
                entry.start,
                _seconds(row.duration),
            )
        state.updated += 1

    return state


def print_summary(state: SyncState, dry_run: bool) -> None:
    verb = "Would apply" if dry_run else "Applied"
    print()
    print(
        f"[*] {verb}: {state.created} created, {state.updated} updated, "
        f"{state.deleted} deleted, {state.unchanged} unchanged"
    )
    if state.skipped:
        print(f"    Left {state.skipped} worklogs on issues outside the ledger untouched")


# ============================================================================
# Commands
# ============================================================================


def run_import(
    settings: Settings,
    rows: list[LedgerRow],
    dry_run: bool = False,
    jira: JiraClient | None = None,
    tempo: TempoClient | None = None,
) -> SyncState:
    """Make the worklogs of every ledger date match the ledger."""
    if not rows:
        print("[*] Ledger is empty. Nothing to do.")
        return SyncState()

    jira = jira or JiraClient(settings)
    tempo = tempo or TempoClient(settings)
    tz = get_timezone(settings.timezone)

    dates = sorted({row.date for row in rows})
    print(f"[*] Ledger: {len(rows)} rows on {len(dates)} dates ({dates[0]} to {dates[-1]})")

    print()
    print("[1] Resolving issues and fetching existing worklogs...")
    identities, worklogs = asyncio.run(fetch_snapshot(jira, tempo, rows))
    print(f"    Resolved {len(identities)} issues, found {len(worklogs)} worklogs")

    unresolved = sorted({row.issue_key for row in rows if row.issue_key not in identities})
    if unresolved:
        print(f"    [!] Not found in Jira: {', '.join(unresolved)}")

    print()
    print("[2] Reconciling...")
    plan = reconcile(rows, identities, worklogs)
    state = apply_plan(plan, jira, tempo, tz, dry_run)
    print_summary(state, dry_run)
    return state


def run_clear(
    settings: Settings,
    dates: list[date],
    dry_run: bool = False,
    tempo: TempoClient | None = None,
) -> SyncState:
    """Delete every worklog on the given dates."""
    tempo = tempo or TempoClient(settings)
    state = SyncState()

    print(f"[1] Fetching worklogs for {len(set(dates))} dates...")
    worklogs = tempo.fetch_worklogs(dates)
    print(f"    Found {len(worklogs)} worklogs")

    print()
    print("[2] Deleting...")
    for worklog in worklogs:
        delete_worklog(tempo, worklog, str(worklog.issue_id), dry_run)
        state.deleted += 1

    print_summary(state, dry_run)
    return state


# ============================================================================
# CLI
# ============================================================================


def _date_arg(text: str) -> date:
    parsed = parse_date(text) if Patterns.DATE_FORMAT.match(text) else None
    if parsed is None:
        raise argparse.ArgumentTypeError(f"Invalid date '{text}'. Expected YYYY-MM-DD")
    return parsed


def _add_connection_options(parser: argparse.ArgumentParser, jira: bool) -> None:
    if jira:
        parser.add_argument(
            "--jira-domain", help="Domain of your Jira Cloud instance, e.g. my-jira.atlassian.net (env: JIRA_DOMAIN)"
        )
        parser.add_argument("--jira-user", help="Jira user name / email (env: JIRA_USER)")
        parser.add_argument("--jira-token", help="Jira API token (env: JIRA_TOKEN)")
    parser.add_argument("--tempo-token", help="Tempo API token (env: TEMPO_TOKEN)")
    parser.add_argument(
        "--timezone", help="IANA time zone of your worklogs, default: system local time (env: TEMPO_TIMEZONE)"
    )
    parser.add_argument(
        "--timeout", type=float, help="HTTP timeout in seconds, default: 30 (env: TEMPO_REPORTER_TIMEOUT)"
    )
    parser.add_argument("--config", default=CONFIG_FILE, help=f"Config file, default: {CONFIG_FILE}")
    parser.add_argument("--dry-run", action="store_true", help="Only show what would change")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log HTTP requests")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Reconcile a CSV ledger of time entries with Jira/Tempo worklogs",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Import from a file
    python tempo_reporter.py import -f hours.csv

    # Import from standard input, dry-run
    cat hours.csv | python tempo_reporter.py import --dry-run

    # Delete all worklogs on two dates
    python tempo_reporter.py clear 2023-10-01 2023-10-02

The CSV needs the columns Date, Time and IssueKey, Description is optional:
    Date,Time,IssueKey,Description
    2023-10-01,2h13m,PRJ-1234,code review
        """,
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    import_parser = subparsers.add_parser(
        "import", help="Replace the worklogs of the ledger's dates with the ledger rows"
    )
    import_parser.add_argument("-f", "--file", help="CSV file to import, default: standard input")
    import_parser.add_argument(
        "--date-format",
        action="append",
        default=[],
        help="Extra strptime format for the Date column (repeatable)",
    )
    _add_connection_options(import_parser, jira=True)

    clear_parser = subparsers.add_parser("clear", help="Delete all worklogs on specific dates")
    clear_parser.add_argument("dates", nargs="+", type=_date_arg, help="Dates to clear (YYYY-MM-DD)")
    _add_connection_options(clear_parser, jira=False)

    return parser


def _overrides(args: argparse.Namespace) -> dict:
    names = ("jira_domain", "jira_user", "jira_token", "tempo_token", "timezone", "timeout")
    return {name: getattr(args, name, None) for name in names}


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )

    is_import = args.command == "import"
    settings = load_settings_safe(_overrides(args), require_jira=is_import, config_path=args.config)
    if settings is None:
        return 1

    mode = "DRY-RUN" if args.dry_run else "EXECUTE"
    print()
    print("=" * 70)
    print(f"TEMPO REPORTER | {args.command} | Mode: {mode}")
    print("=" * 70)
    print()

    try:
        if is_import:
            rows = load_ledger(args.file, tuple(args.date_format) + DATE_FORMATS)
            run_import(settings, rows, args.dry_run)
        else:
            run_clear(settings, args.dates, args.dry_run)
    except LedgerError as e:
        print("[!] ERROR: the ledger cannot be imported:")
        for err in e.errors:
            print(f"    - {err}")
        print()
        print("    Please fix the CSV data and retry the command.")
        return 1
    except ApiError as e:
        print(f"[!] ERROR: {e}")
        print("    Changes applied before the error are kept. Rerun to continue.")
        return 1
    except KeyboardInterrupt:
        print()
        print("[!] Interrupted. Changes applied so far are kept.")
        return 130

    print()
    print("[*] Done.")
    return 0


if __name__ == "__main__":
    exit(main())
