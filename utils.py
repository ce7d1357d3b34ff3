"""Utility functions for ledger import."""

import json
import os
from datetime import date, datetime, timedelta, timezone, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from models import Settings
from patterns import Patterns

# File paths
CONFIG_FILE = "config.json"

# Fallback date formats tried after ISO-8601
DATE_FORMATS = ("%d.%m.%Y", "%Y/%m/%d")

DEFAULT_TIMEOUT = 30.0

ENV_VARS = {
    "jira_domain": "JIRA_DOMAIN",
    "jira_user": "JIRA_USER",
    "jira_token": "JIRA_TOKEN",
    "tempo_token": "TEMPO_TOKEN",
    "timezone": "TEMPO_TIMEZONE",
    "timeout": "TEMPO_REPORTER_TIMEOUT",
}

UNIT_SECONDS = {
    "w": 7 * 86400,
    "d": 86400,
    "h": 3600,
    "m": 60,
    "s": 1,
}


# ============================================================================
# Durations
# ============================================================================


def _to_float(text: str) -> float:
    return float(text.replace(",", "."))


def parse_duration(text: str | None) -> timedelta | None:
    """Parse free-form duration text.

    Accepts unit expressions ("2h13m", "1h 30m", "1.5h", "45 min"), clock
    notation ("2:13", "2:13:30") and bare numbers, which count as seconds.
    The result is rounded to whole seconds.

    Returns:
        The duration, or None if the text is not a duration.
    """
    if text is None or not text.strip():
        return None

    m = Patterns.BARE_NUMBER.match(text)
    if m:
        return timedelta(seconds=round(_to_float(m.group(1))))

    m = Patterns.CLOCK_DURATION.match(text)
    if m:
        hours, minutes, seconds = m.groups()
        return timedelta(hours=int(hours), minutes=int(minutes), seconds=int(seconds or 0))

    tokens = list(Patterns.DURATION_TOKEN.finditer(text))
    if not tokens or Patterns.DURATION_TOKEN.sub("", text).strip():
        return None

    total = 0.0
    for token in tokens:
        unit = token.group(2).lower()
        # "mins", "min", "minutes" all start with m; "hrs" with h
        total += _to_float(token.group(1)) * UNIT_SECONDS[unit[0]]
    # Worklogs hold whole seconds
    return timedelta(seconds=round(total))


def format_hours_minutes(duration: timedelta) -> str:
    """Format a duration as "Xh Ym", or "Ym" below one hour."""
    total_minutes = int(duration.total_seconds()) // 60
    hours, minutes = divmod(total_minutes, 60)
    if hours > 0:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"


# ============================================================================
# Dates & Time Zones
# ============================================================================


def parse_date(text: str | None, formats: tuple[str, ...] = DATE_FORMATS) -> date | None:
    """Parse an ISO-8601 date, falling back to the given formats."""
    if text is None:
        return None
    text = text.strip()
    if not text:
        return None
    try:
        return date.fromisoformat(text)
    except ValueError:
        pass
    for fmt in formats:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None


def get_timezone(name: str | None) -> tzinfo | None:
    """Resolve an IANA zone name. None means the system's local time."""
    if not name:
        return None
    if name.upper() in ("UTC", "Z"):
        return timezone.utc
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        raise ValueError(f"Unknown time zone '{name}'")


def localize(wall_time: datetime, tz: tzinfo | None) -> datetime:
    """Attach a zone to a naive wall-clock datetime."""
    if tz is None:
        # Naive astimezone() applies the system's rules for that date
        return wall_time.astimezone()
    return wall_time.replace(tzinfo=tz)


# ============================================================================
# Settings
# ============================================================================


def load_config(path: str = CONFIG_FILE) -> dict:
    """Load config.json with Jira and Tempo credentials, if present."""
    if not os.path.exists(path):
        return {}
    with open(path) as f:
        return json.load(f)


def _from_config(config: dict) -> dict:
    jira = config.get("jira", {})
    tempo = config.get("tempo", {})
    return {
        "jira_domain": jira.get("domain"),
        "jira_user": jira.get("user_email"),
        "jira_token": jira.get("api_token"),
        "tempo_token": tempo.get("api_token"),
        "timezone": tempo.get("timezone"),
        "timeout": config.get("timeout"),
    }


def resolve_settings(
    overrides: dict, environ: dict | None = None, config: dict | None = None
) -> Settings:
    """Merge settings: command line flags, then environment, then config.json."""
    environ = os.environ if environ is None else environ
    from_config = _from_config(config or {})

    values = {}
    for name, env_var in ENV_VARS.items():
        value = overrides.get(name)
        if value in (None, ""):
            value = environ.get(env_var)
        if value in (None, ""):
            value = from_config.get(name)
        values[name] = value

    timeout = values.pop("timeout")
    try:
        timeout = float(timeout) if timeout not in (None, "") else DEFAULT_TIMEOUT
    except (TypeError, ValueError):
        raise ValueError(f"Invalid timeout '{timeout}'. Expected a number of seconds")

    return Settings(timeout=timeout, **values)


def validate_settings(settings: Settings, require_jira: bool = True) -> list[str]:
    """Validate settings and return list of error messages.

    Returns:
        Empty list if valid, otherwise list of error messages.
    """
    errors = []

    required = ["tempo_token"]
    if require_jira:
        required = ["jira_domain", "jira_user", "jira_token"] + required

    for name in required:
        if not getattr(settings, name):
            flag = "--" + name.replace("_", "-")
            errors.append(f"Missing {flag} (or environment variable {ENV_VARS[name]})")

    if settings.jira_domain and "/" in settings.jira_domain:
        errors.append(
            f"Invalid Jira domain '{settings.jira_domain}'. Expected a host name like my-jira.atlassian.net"
        )

    if settings.timeout <= 0:
        errors.append("Timeout must be greater than zero")

    if settings.timezone:
        try:
            get_timezone(settings.timezone)
        except ValueError as e:
            errors.append(str(e))

    return errors


def load_settings_safe(
    overrides: dict, require_jira: bool = True, config_path: str = CONFIG_FILE
) -> Settings | None:
    """Load settings with user-friendly error messages.

    Returns:
        Settings if valid, None if errors occurred.
    """
    try:
        config = load_config(config_path)
    except json.JSONDecodeError as e:
        print(f"[!] ERROR: {config_path} is not valid JSON!")
        print(f"    Line {e.lineno}, column {e.colno}: {e.msg}")
        return None

    try:
        settings = resolve_settings(overrides, config=config)
    except ValueError as e:
        print(f"[!] ERROR: {e}")
        return None

    errors = validate_settings(settings, require_jira=require_jira)
    if errors:
        print("[!] ERROR: configuration is incomplete:")
        for err in errors:
            print(f"    - {err}")
        print()
        print("    Pass the options on the command line, set the environment")
        print(f"    variables, or add them to {config_path}.")
        print("    See config.example.json for the required structure.")
        return None

    return settings
