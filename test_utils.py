"""Tests for duration parsing, date parsing and settings resolution."""

import json
from datetime import date, datetime, timedelta, timezone

import pytest

from models import Settings
from utils import (
    format_hours_minutes,
    get_timezone,
    load_settings_safe,
    localize,
    parse_date,
    parse_duration,
    resolve_settings,
    validate_settings,
)


# ---------------------------------------------------------------------------
# parse_duration
# ---------------------------------------------------------------------------

class TestParseDuration:

    @pytest.mark.parametrize(
        "text, expected",
        [
            ("2h13m", timedelta(hours=2, minutes=13)),
            ("3h", timedelta(hours=3)),
            ("45m", timedelta(minutes=45)),
            ("1h 30m", timedelta(hours=1, minutes=30)),
            ("1.5h", timedelta(hours=1, minutes=30)),
            ("1,5 hours", timedelta(hours=1, minutes=30)),
            ("20 min", timedelta(minutes=20)),
            ("1d", timedelta(days=1)),
            ("90s", timedelta(seconds=90)),
            ("2:13", timedelta(hours=2, minutes=13)),
            ("0:45:30", timedelta(minutes=45, seconds=30)),
        ],
    )
    def test_parses(self, text, expected):
        assert parse_duration(text) == expected

    def test_bare_number_is_seconds(self):
        assert parse_duration("3") == timedelta(seconds=3)
        assert parse_duration("3600") == timedelta(hours=1)

    @pytest.mark.parametrize("text", [None, "", "   ", "abc", "2h13", "1 month", "-1h", "h"])
    def test_rejects(self, text):
        assert parse_duration(text) is None

    @pytest.mark.parametrize(
        "text, seconds",
        [
            ("1.333h", 4799),
            ("0.4", 0),
            ("0.6", 1),
            ("0.01m", 1),
        ],
    )
    def test_rounds_to_whole_seconds(self, text, seconds):
        assert parse_duration(text) == timedelta(seconds=seconds)

    def test_zero_is_parsed(self):
        # The loader rejects it, parsing itself succeeds
        assert parse_duration("0m") == timedelta(0)


# ---------------------------------------------------------------------------
# format_hours_minutes
# ---------------------------------------------------------------------------

class TestFormatHoursMinutes:

    @pytest.mark.parametrize(
        "duration, expected",
        [
            (timedelta(hours=2, minutes=13), "2h 13m"),
            (timedelta(hours=3), "3h 0m"),
            (timedelta(minutes=45), "45m"),
            (timedelta(seconds=59), "0m"),
            (timedelta(days=1, minutes=5), "24h 5m"),
        ],
    )
    def test_format(self, duration, expected):
        assert format_hours_minutes(duration) == expected


# ---------------------------------------------------------------------------
# Dates & time zones
# ---------------------------------------------------------------------------

class TestParseDate:

    def test_iso(self):
        assert parse_date("2023-10-01") == date(2023, 10, 1)

    def test_fallback_formats(self):
        assert parse_date("01.10.2023") == date(2023, 10, 1)
        assert parse_date("2023/10/01") == date(2023, 10, 1)

    def test_custom_format(self):
        assert parse_date("10/01/2023", ("%m/%d/%Y",)) == date(2023, 10, 1)

    @pytest.mark.parametrize("text", [None, "", "2023-13-01", "yesterday", "10/01/2023"])
    def test_rejects(self, text):
        assert parse_date(text) is None


class TestTimezone:

    def test_none_means_local(self):
        assert get_timezone(None) is None
        assert get_timezone("") is None

    def test_unknown_zone(self):
        with pytest.raises(ValueError, match="Unknown time zone"):
            get_timezone("Mars/Olympus_Mons")

    def test_localize_with_zone(self):
        tz = timezone(timedelta(hours=2))
        result = localize(datetime(2023, 10, 1, 8, 0), tz)
        assert result.tzinfo is tz
        assert result.astimezone(timezone.utc) == datetime(2023, 10, 1, 6, 0, tzinfo=timezone.utc)

    def test_localize_system_local(self):
        result = localize(datetime(2023, 10, 1, 8, 0), None)
        assert result.tzinfo is not None
        assert result.replace(tzinfo=None) == datetime(2023, 10, 1, 8, 0)


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

FULL_ENV = {
    "JIRA_DOMAIN": "env.atlassian.net",
    "JIRA_USER": "env@example.com",
    "JIRA_TOKEN": "env-jira",
    "TEMPO_TOKEN": "env-tempo",
}


class TestResolveSettings:

    def test_environment(self):
        settings = resolve_settings({}, environ=FULL_ENV)
        assert settings.jira_domain == "env.atlassian.net"
        assert settings.tempo_token == "env-tempo"
        assert settings.timeout == 30.0
        assert settings.timezone is None

    def test_flags_win_over_environment(self):
        settings = resolve_settings({"jira_token": "flag-jira", "tempo_token": None}, environ=FULL_ENV)
        assert settings.jira_token == "flag-jira"
        assert settings.tempo_token == "env-tempo"

    def test_config_file_is_last(self):
        config = {
            "jira": {"domain": "cfg.atlassian.net", "user_email": "cfg@example.com", "api_token": "cfg-jira"},
            "tempo": {"api_token": "cfg-tempo", "timezone": "UTC"},
            "timeout": 5,
        }
        settings = resolve_settings({}, environ={"JIRA_DOMAIN": "env.atlassian.net"}, config=config)
        assert settings.jira_domain == "env.atlassian.net"
        assert settings.jira_user == "cfg@example.com"
        assert settings.tempo_token == "cfg-tempo"
        assert settings.timezone == "UTC"
        assert settings.timeout == 5.0

    def test_invalid_timeout(self):
        with pytest.raises(ValueError, match="Invalid timeout"):
            resolve_settings({}, environ={"TEMPO_REPORTER_TIMEOUT": "soon"})


class TestValidateSettings:

    def test_complete(self):
        settings = resolve_settings({}, environ=FULL_ENV)
        assert validate_settings(settings) == []

    def test_missing_everything(self):
        errors = validate_settings(Settings())
        assert len(errors) == 4
        assert any("--jira-domain" in e and "JIRA_DOMAIN" in e for e in errors)
        assert any("--tempo-token" in e for e in errors)

    def test_clear_only_needs_tempo(self):
        assert validate_settings(Settings(tempo_token="t"), require_jira=False) == []

    def test_domain_must_be_host(self):
        settings = Settings("https://x.atlassian.net", "u", "j", "t")
        assert any("Invalid Jira domain" in e for e in validate_settings(settings))

    def test_unknown_timezone(self):
        settings = Settings("x.atlassian.net", "u", "j", "t", timezone="Nowhere/Land")
        assert any("Unknown time zone" in e for e in validate_settings(settings))


class TestLoadSettingsSafe:

    def test_reports_invalid_json(self, tmp_path, capsys):
        path = tmp_path / "config.json"
        path.write_text("{not json")
        assert load_settings_safe({}, config_path=str(path)) is None
        assert "not valid JSON" in capsys.readouterr().out

    def test_reports_missing(self, tmp_path, monkeypatch, capsys):
        for var in FULL_ENV:
            monkeypatch.delenv(var, raising=False)
        assert load_settings_safe({}, config_path=str(tmp_path / "absent.json")) is None
        out = capsys.readouterr().out
        assert "configuration is incomplete" in out
        assert "--jira-user" in out

    def test_loads_from_file(self, tmp_path, monkeypatch):
        for var in FULL_ENV:
            monkeypatch.delenv(var, raising=False)
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"tempo": {"api_token": "cfg-tempo"}}))
        settings = load_settings_safe({}, require_jira=False, config_path=str(path))
        assert settings is not None
        assert settings.tempo_token == "cfg-tempo"
