from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import requests

from .errors import TransportError, UnexpectedResponseShape, request_error
from .models import GitHubUser, SourceComment, SourceIssue
from .retry import RetryPolicy, run_with_backoff

DEFAULT_API_URL = "https://api.github.com"
USER_AGENT = "issuesync/0.1.0"
HTTP_ERROR_STATUS = 400
REQUEST_TIMEOUT = 30
PER_PAGE = 100


def parse_github_time(value: Any) -> datetime | None:
    if not isinstance(value, str) or not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def format_since(since: datetime) -> str:
    if since.tzinfo is None:
        since = since.replace(tzinfo=timezone.utc)
    return since.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _login_of(payload: Any) -> str:
    if isinstance(payload, dict):
        login = payload.get("login")
        if isinstance(login, str):
            return login
    return ""


def _int_field(data: Any, key: str, operation: str, expected: str) -> int:
    value = data.get(key) if isinstance(data, dict) else None
    if isinstance(value, bool) or not isinstance(value, int):
        raise UnexpectedResponseShape(operation, expected, data)
    return value


def issue_from_api(data: dict[str, Any]) -> SourceIssue:
    external_id = _int_field(data, "id", "GitHub list issues", "issue object")
    number = _int_field(data, "number", "GitHub list issues", "issue object")
    labels: list[str] = []
    raw_labels = data.get("labels")
    for entry in raw_labels if isinstance(raw_labels, list) else []:
        if isinstance(entry, dict) and isinstance(entry.get("name"), str):
            labels.append(entry["name"])
        elif isinstance(entry, str):
            labels.append(entry)
    count = data.get("comments")
    return SourceIssue(
        external_id=external_id,
        number=number,
        title=data.get("title") or "",
        body=data.get("body") or "",
        state=data.get("state") or "open",
        labels=tuple(labels),
        reporter_login=_login_of(data.get("user")),
        comment_count=count if isinstance(count, int) else 0,
        updated_at=parse_github_time(data.get("updated_at")),
        is_pull_request=bool(data.get("pull_request")),
    )


def comment_from_api(data: dict[str, Any]) -> SourceComment:
    external_id = _int_field(data, "id", "GitHub list comments", "comment object")
    created = parse_github_time(data.get("created_at"))
    return SourceComment(
        external_id=external_id,
        author_login=_login_of(data.get("user")),
        body=data.get("body") or "",
        created_at=created or datetime.fromtimestamp(0, tz=timezone.utc),
    )


@dataclass
class GitHubRestClient:
    """Read-only GitHub REST client for one repository."""

    token: str
    repo: str
    base_url: str = DEFAULT_API_URL
    policy: RetryPolicy | None = None
    session: requests.Session | None = None
    _session: requests.Session = field(init=False, repr=False)

    def __post_init__(self) -> None:  # pragma: no cover - simple wiring
        self._session = self.session or requests.Session()
        self._session.headers.setdefault("Authorization", f"Bearer {self.token}")
        self._session.headers.setdefault("Accept", "application/vnd.github+json")
        self._session.headers.setdefault("User-Agent", USER_AGENT)

    # ---- REST helpers -------------------------------------------------
    def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
    ) -> Any:
        url = (
            path
            if path.startswith("http")
            else f"{self.base_url.rstrip('/')}/{path.lstrip('/')}"
        )

        def _run() -> requests.Response:
            try:
                response = self._session.request(
                    method,
                    url,
                    params=params,
                    headers=self._session.headers,
                    timeout=REQUEST_TIMEOUT,
                )
            except requests.RequestException as exc:
                raise request_error(f"GitHub API {method} {url} failed", exc) from exc
            if response.status_code >= HTTP_ERROR_STATUS:
                raise TransportError(
                    f"GitHub API {method} {url} failed with {response.status_code}",
                    status=response.status_code,
                    response_text=response.text,
                )
            return response

        response = run_with_backoff(
            _run, policy=self.policy, operation=f"GitHub {method} {path}"
        )
        if not response.text:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise UnexpectedResponseShape(
                f"GitHub {method} {path}", "JSON document", response.text
            ) from exc

    def _paginate(self, path: str, *, params: dict[str, Any] | None = None) -> list[Any]:
        params = dict(params or {})
        per_page = params.setdefault("per_page", PER_PAGE)
        params.setdefault("page", 1)
        results: list[Any] = []
        while True:
            data = self._request("GET", path, params=params)
            if not isinstance(data, list):
                raise UnexpectedResponseShape(f"GitHub GET {path}", "list", data)
            results.extend(data)
            if len(data) < per_page:
                break
            params["page"] = params["page"] + 1
        return results

    # ---- Source tracker -----------------------------------------------
    def list_issues(self, since: datetime, state: str = "all") -> list[SourceIssue]:
        """Issues (pull requests included) updated since ``since``, oldest first."""
        params = {
            "state": state,
            "since": format_since(since),
            "sort": "created",
            "direction": "asc",
        }
        data = self._paginate(f"/repos/{self.repo}/issues", params=params)
        issues: list[SourceIssue] = []
        for entry in data:
            if not isinstance(entry, dict):
                raise UnexpectedResponseShape("GitHub list issues", "issue object", entry)
            issues.append(issue_from_api(entry))
        return issues

    def list_comments(self, issue_number: int) -> list[SourceComment]:
        data = self._paginate(f"/repos/{self.repo}/issues/{issue_number}/comments")
        comments: list[SourceComment] = []
        for entry in data:
            if not isinstance(entry, dict):
                raise UnexpectedResponseShape("GitHub list comments", "comment object", entry)
            comments.append(comment_from_api(entry))
        comments.sort(key=lambda c: c.created_at)
        return comments

    def get_user(self, login: str) -> GitHubUser:
        data = self._request("GET", f"/users/{login}")
        if not isinstance(data, dict):
            raise UnexpectedResponseShape("GitHub get user", "user object", data)
        name = data.get("name")
        return GitHubUser(
            login=data.get("login") or login,
            display_name=name if isinstance(name, str) and name else None,
        )

    def get_rate_limit(self) -> dict[str, Any]:
        """Cheap authenticated call used to verify the token before a pass."""
        data = self._request("GET", "/rate_limit")
        if not isinstance(data, dict):
            raise UnexpectedResponseShape("GitHub rate limit", "object", data)
        return data


__all__ = [
    "DEFAULT_API_URL",
    "GitHubRestClient",
    "comment_from_api",
    "format_since",
    "issue_from_api",
    "parse_github_time",
]
