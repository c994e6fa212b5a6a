"""
Sentry integration for error tracking.

API Docs: https://docs.sentry.io/api/

Thin fetch wrappers plus the parsing that turns a Sentry event into the
frames and error time the resolution engine consumes.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

import httpx

from tracelink.core.errors import UpstreamUnavailableError
from tracelink.core.models import UNKNOWN_LINE, StackFrame
from tracelink.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class ExceptionEvent:
    """The first exception of a Sentry event."""
    event_id: str
    exception_type: str
    value: str
    frames: list[StackFrame] = field(default_factory=list)  # innermost first
    timestamp: datetime | None = None
    first_seen: datetime | None = None
    last_seen: datetime | None = None
    project: str | None = None

    @property
    def error_time(self) -> datetime | None:
        """Time used to pin links: the event's own timestamp, else last/first seen."""
        return self.timestamp or self.last_seen or self.first_seen

    @property
    def header(self) -> str:
        return f"{self.exception_type}: {self.value}" if self.value else self.exception_type


def _parse_time(value: Any) -> datetime | None:
    if not value:
        return None
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=UTC)
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def _frame_line(frame: dict) -> int:
    for key in ("lineno", "lineNo"):
        value = frame.get(key)
        if isinstance(value, int):
            return value
    return UNKNOWN_LINE


def _exception_values(event: dict) -> list[dict]:
    for entry in event.get("entries", []):
        if entry.get("type") == "exception":
            return (entry.get("data") or {}).get("values") or []
    return (event.get("exception") or {}).get("values") or []


def parse_exception_event(event: dict, issue: dict | None = None) -> ExceptionEvent | None:
    """
    Parse a Sentry event payload.

    Sentry lists frames oldest call first; the returned frames are innermost
    first, the way JVM traces print them.

    Args:
        event: Event JSON from the events API
        issue: Optional issue JSON supplying firstSeen/lastSeen

    Returns:
        ExceptionEvent, or None if the event carries no exception
    """
    values = _exception_values(event)
    if not values:
        return None

    exception = values[0]
    frames_data = (exception.get("stacktrace") or {}).get("frames") or []
    frames = [
        StackFrame(
            module=frame.get("module") or "",
            function=frame.get("function") or "",
            filename=frame.get("filename") or "",
            lineno=_frame_line(frame),
        )
        for frame in reversed(frames_data)
    ]

    issue = issue or {}
    return ExceptionEvent(
        event_id=str(event.get("eventID") or event.get("id") or ""),
        exception_type=exception.get("type") or exception.get("name") or "UnknownException",
        value=exception.get("value") or "",
        frames=frames,
        timestamp=_parse_time(event.get("dateCreated") or event.get("timestamp")),
        first_seen=_parse_time(issue.get("firstSeen") or event.get("firstSeen")),
        last_seen=_parse_time(issue.get("lastSeen") or event.get("lastSeen")),
        project=(issue.get("project") or {}).get("slug") if isinstance(issue.get("project"), dict) else None,
    )


def format_java_trace(event: ExceptionEvent) -> str:
    """Render an event as a JVM-style trace."""
    lines = [event.header]
    lines.extend(f"    at {frame.describe()}" for frame in event.frames)
    return "\n".join(lines) + "\n"


class SentryClient:
    """
    Sentry REST API client.

    Usage:
        sentry = SentryClient(auth_token="...", organization="acme")
        issues = await sentry.list_issues("android")
        event = await sentry.get_event(issues[0]["id"])
    """

    def __init__(
        self,
        auth_token: str | None,
        organization: str,
        base_url: str = "https://sentry.io",
        timeout: float = 30.0,
        http: httpx.AsyncClient | None = None,
    ):
        self.auth_token = auth_token
        self.organization = organization
        self.base_url = f"{base_url.rstrip('/')}/api/0"
        self.http = http or httpx.AsyncClient(timeout=timeout)
        self.log = logger.bind(component="sentry", organization=organization)

    @property
    def headers(self) -> dict:
        headers = {"Content-Type": "application/json"}
        if self.auth_token:
            headers["Authorization"] = f"Bearer {self.auth_token}"
        return headers

    async def _get_json(self, url: str, params: dict | None = None) -> Any:
        try:
            response = await self.http.get(url, headers=self.headers, params=params)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            self.log.warning("Sentry API error", url=url, status=status)
            raise UpstreamUnavailableError(
                f"Sentry API returned {status} for {url}", status_code=status, url=url
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            self.log.warning("Sentry request failed", url=url, error=str(e))
            raise UpstreamUnavailableError(f"Sentry request failed: {e}", url=url) from e

    async def list_projects(self) -> list[dict]:
        data = await self._get_json(f"{self.base_url}/projects/")
        return [{"id": str(p.get("id", "")), "name": p.get("name", ""), "slug": p.get("slug", "")} for p in data]

    async def list_issues(self, project: str, query: str = "is:unresolved", limit: int = 25) -> list[dict]:
        return await self._get_json(
            f"{self.base_url}/projects/{self.organization}/{project}/issues/",
            params={"query": query, "sort": "date", "limit": limit},
        )

    async def get_issue(self, issue_id: str) -> dict:
        return await self._get_json(f"{self.base_url}/organizations/{self.organization}/issues/{issue_id}/")

    async def list_event_ids(self, issue_id: str) -> list[str]:
        data = await self._get_json(
            f"{self.base_url}/organizations/{self.organization}/issues/{issue_id}/events/"
        )
        return [str(item.get("eventID") or item.get("id")) for item in data if item.get("eventID") or item.get("id")]

    async def get_event(self, issue_id: str, event_id: str = "latest") -> dict:
        return await self._get_json(
            f"{self.base_url}/organizations/{self.organization}/issues/{issue_id}/events/{event_id}/"
        )

    async def fetch_exception_event(self, issue_id: str, event_id: str = "latest") -> ExceptionEvent | None:
        """Fetch an event and its issue and parse them together."""
        issue = await self.get_issue(issue_id)
        event = await self.get_event(issue_id, event_id)
        return parse_exception_event(event, issue)

    async def close(self):
        await self.http.aclose()


def create_sentry_client(settings) -> SentryClient:
    """Factory function for creating a SentryClient from settings."""
    token = settings.sentry_api_token.get_secret_value() if settings.sentry_api_token else None
    return SentryClient(
        auth_token=token,
        organization=settings.sentry_organization or "",
        base_url=settings.sentry_api_url,
        timeout=settings.request_timeout_seconds,
    )
