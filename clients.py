"""API clients for Jira and Tempo."""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Iterable

import requests

from models import IssueIdentity, IssueIdentityMap, RemoteWorklog, Settings
from utils import get_timezone, localize

logger = logging.getLogger("tempo_reporter.clients")

PAGE_SIZE = 500
TEMPO_BASE_URL = "https://api.tempo.io/4"


class ApiError(Exception):
    """User-friendly API error."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        messages: list[str] | None = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.messages = messages or []


class TooManyResultsError(ApiError):
    """A query matched more results than one page holds."""


class UnexpectedResponseError(ApiError):
    """The service answered with an empty or malformed body."""


@dataclass(frozen=True)
class ErrorEnvelope:
    """Error details decoded from a failed response body.

    Jira sends {"errorMessages": [...], "errors": {field: message}},
    Tempo sends {"errors": [{"message": ...}]}. Anything else yields no
    messages.
    """

    messages: list[str] | None = None

    @classmethod
    def from_response(cls, response: requests.Response) -> "ErrorEnvelope":
        try:
            body = response.json()
        except ValueError:
            return cls()
        return cls.from_body(body)

    @classmethod
    def from_body(cls, body) -> "ErrorEnvelope":
        if not isinstance(body, dict):
            return cls()

        messages = []
        error_messages = body.get("errorMessages")
        if isinstance(error_messages, list):
            messages.extend(str(m) for m in error_messages if m)

        errors = body.get("errors")
        if isinstance(errors, dict):
            messages.extend(f"{field}: {message}" for field, message in errors.items() if message)
        elif isinstance(errors, list):
            for error in errors:
                if isinstance(error, dict) and error.get("message"):
                    messages.append(str(error["message"]))
                elif isinstance(error, str) and error:
                    messages.append(error)

        message = body.get("message")
        if isinstance(message, str) and message and not messages:
            messages.append(message)

        return cls(messages or None)


def _handle_api_error(response: requests.Response, service: str) -> str:
    """Convert HTTP errors to user-friendly messages."""
    status = response.status_code

    messages = {
        400: f"{service}: Bad request. The service rejected the data that was sent.",
        401: f"{service}: Authentication failed. Check your API token!",
        403: f"{service}: Access denied. Check your permissions or API token!",
        404: f"{service}: Resource not found. Check the domain and issue keys!",
        429: f"{service}: Too many requests. Wait a moment and try again.",
        500: f"{service}: Server error. The service may be temporarily unavailable.",
        502: f"{service}: Bad gateway. The service may be temporarily unavailable.",
        503: f"{service}: Service unavailable. Try again later.",
    }

    return messages.get(status, f"{service}: HTTP {status} - {response.reason}")


def _send(
    session: requests.Session,
    service: str,
    method: str,
    url: str,
    timeout: float,
    **kwargs,
) -> requests.Response:
    """Send a request and raise ApiError on any failure."""
    logger.debug("%s %s %s", service, method, url)
    try:
        r = session.request(method, url, timeout=timeout, **kwargs)
    except requests.exceptions.ConnectionError:
        raise ApiError(f"{service}: Cannot connect to {url}. Check your network!")
    except requests.exceptions.Timeout:
        raise ApiError(f"{service}: Connection timed out. The server may be slow.")

    logger.debug("%s %s %s -> %s", service, method, url, r.status_code)
    if not r.ok:
        envelope = ErrorEnvelope.from_response(r)
        message = _handle_api_error(r, service)
        if envelope.messages:
            message = f"{message} ({'; '.join(envelope.messages)})"
        raise ApiError(message, r.status_code, envelope.messages)
    return r


def _json(response: requests.Response, service: str, what: str) -> dict:
    """Decode a JSON object body, treating anything else as a defect."""
    try:
        data = response.json()
    except ValueError:
        raise UnexpectedResponseError(f"{service}: {what} returned a response that is not JSON")
    if not data:
        raise UnexpectedResponseError(f"{service}: {what} returned an empty response")
    if not isinstance(data, dict):
        raise UnexpectedResponseError(f"{service}: {what} returned an unexpected response")
    return data


def format_jira_timestamp(start: datetime) -> str:
    """Format an aware datetime the way Jira expects: UTC, milliseconds, +0000."""
    utc = start.astimezone(timezone.utc)
    return utc.strftime("%Y-%m-%dT%H:%M:%S.") + f"{utc.microsecond // 1000:03d}+0000"


def build_session() -> requests.Session:
    """Create the HTTP session shared by all calls to one service."""
    session = requests.Session()
    session.headers.update({"Accept": "application/json"})
    return session


class JiraClient:
    """Client for Jira REST API."""

    def __init__(self, settings: Settings, session: requests.Session | None = None):
        self.base_url = f"https://{settings.jira_domain}"
        self.email = settings.jira_user
        self.token = settings.jira_token
        self.timeout = settings.timeout
        self.session = session or build_session()

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        return _send(
            self.session,
            "Jira",
            method,
            f"{self.base_url}{path}",
            self.timeout,
            auth=(self.email, self.token),
            **kwargs,
        )

    def resolve_issue_ids(self, keys: Iterable[str]) -> IssueIdentityMap:
        """Look up numeric ids for issue keys with a single search.

        Keys Jira does not return are left out of the map.

        Raises:
            TooManyResultsError: if the search matched more than one page.
        """
        keys = list(dict.fromkeys(keys))
        if not keys:
            return IssueIdentityMap()

        quoted = ", ".join('"' + k.replace('"', '\\"') + '"' for k in keys)
        payload = {
            "jql": f"key in ({quoted})",
            "maxResults": PAGE_SIZE,
            "fields": ["id", "key"],
        }
        r = self._request(
            "POST",
            "/rest/api/3/search/jql",
            headers={"Content-Type": "application/json"},
            json=payload,
        )
        data = _json(r, "Jira", "Issue search")

        issues = data.get("issues")
        if not isinstance(issues, list):
            raise UnexpectedResponseError("Jira: Issue search returned no issues list")

        total = data.get("total")
        more_pages = data.get("isLast") is False or bool(data.get("nextPageToken"))
        if (isinstance(total, int) and total > PAGE_SIZE) or more_pages or len(issues) > PAGE_SIZE:
            raise TooManyResultsError(
                f"Jira: The issue search returned more than the maximum allowed results: {PAGE_SIZE}"
            )

        identities = IssueIdentityMap()
        for issue in issues:
            try:
                identities.add(IssueIdentity(key=issue["key"], issue_id=int(issue["id"])))
            except (KeyError, TypeError, ValueError):
                raise UnexpectedResponseError(f"Jira: Issue search returned a malformed issue: {issue!r}")
        logger.debug("Resolved %d of %d issue keys", len(identities), len(keys))
        return identities

    def create_worklog(
        self, issue_key: str, start: datetime, duration_seconds: int, description: str
    ) -> None:
        """Create a worklog on an issue."""
        payload = {
            "comment": description,
            "started": format_jira_timestamp(start),
            "timeSpentSeconds": duration_seconds,
        }
        self._request(
            "POST",
            f"/rest/api/2/issue/{issue_key}/worklog",
            params={"adjustEstimate": "leave", "notifyUsers": "true"},
            headers={"Content-Type": "application/json"},
            json=payload,
        )


class TempoClient:
    """Client for Tempo REST API."""

    def __init__(self, settings: Settings, session: requests.Session | None = None):
        self.token = settings.tempo_token
        self.timeout = settings.timeout
        self.tz = get_timezone(settings.timezone)
        self.session = session or build_session()

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        return _send(
            self.session,
            "Tempo",
            method,
            f"{TEMPO_BASE_URL}{path}",
            self.timeout,
            headers={
                "Authorization": f"Bearer {self.token}",
                "Accept": "application/json",
            },
            **kwargs,
        )

    def _parse_worklog(self, raw: dict) -> RemoteWorklog:
        try:
            wall_time = datetime.strptime(
                f"{raw['startDate']} {raw.get('startTime') or '00:00:00'}", "%Y-%m-%d %H:%M:%S"
            )
            return RemoteWorklog(
                worklog_id=int(raw["tempoWorklogId"]),
                issue_id=int(raw["issue"]["id"]),
                start=localize(wall_time, self.tz),
                duration_seconds=int(raw["timeSpentSeconds"]),
                description=raw.get("description"),
                author_account_id=(raw.get("author") or {}).get("accountId"),
            )
        except (KeyError, TypeError, ValueError):
            raise UnexpectedResponseError(f"Tempo: Malformed worklog in response: {raw!r}")

    def fetch_worklogs(self, dates: Iterable[date]) -> list[RemoteWorklog]:
        """Fetch all worklogs starting on the given dates, one query per date.

        Raises:
            TooManyResultsError: if a date has more worklogs than one page holds.
        """
        worklogs = []
        for day in dict.fromkeys(dates):
            day_str = day.isoformat()
            r = self._request(
                "GET",
                "/worklogs",
                params={"from": day_str, "to": day_str, "limit": PAGE_SIZE},
            )
            data = _json(r, "Tempo", f"Worklog query for {day_str}")

            metadata = data.get("metadata")
            results = data.get("results")
            if not isinstance(metadata, dict) or not isinstance(results, list):
                raise UnexpectedResponseError(f"Tempo: Worklog query for {day_str} returned an unexpected response")

            count = metadata.get("count", len(results))
            if not isinstance(count, int) or count > PAGE_SIZE or metadata.get("next"):
                raise TooManyResultsError(
                    f"Tempo: Worklog query for {day_str} returned {count} results, "
                    f"which is more than the maximum: {PAGE_SIZE}"
                )

            for raw in results:
                worklog = self._parse_worklog(raw)
                # Tempo dates are the worker's calendar days; keep exact matches only
                if worklog.start_date == day:
                    worklogs.append(worklog)

        return worklogs

    def update_worklog(
        self,
        worklog_id: int,
        author_account_id: str | None,
        description: str,
        start: datetime,
        duration_seconds: int,
    ) -> None:
        """Replace a worklog's description, start and duration."""
        local = start.astimezone(self.tz) if self.tz else start.astimezone()
        payload = {
            "authorAccountId": author_account_id,
            "description": description,
            "startDate": local.strftime("%Y-%m-%d"),
            "startTime": local.strftime("%H:%M:%S"),
            "timeSpentSeconds": duration_seconds,
        }
        self._request("PUT", f"/worklogs/{worklog_id}", json=payload)

    def delete_worklog(self, worklog_id: int) -> None:
        """Delete a worklog."""
        self._request("DELETE", f"/worklogs/{worklog_id}")
