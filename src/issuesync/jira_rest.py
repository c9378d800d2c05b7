"""JIRA REST (v2) client implementing :class:`issuesync.trackers.MirrorTracker`.

The six linkage custom fields are located once by name through ``GET /field``
and addressed by their resolved ``customfield_<id>`` keys afterwards.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

import requests

from .diffing import DESCRIPTION, SUMMARY, apply_changes
from .errors import TransportError, UnexpectedResponseShape, ValidationError, request_error
from .identity import coerce_github_id
from .logging import get_logger
from .models import (
    CUSTOM_FIELD_NAMES,
    GITHUB_ID,
    GITHUB_LABELS,
    GITHUB_NUMBER,
    GITHUB_REPORTER,
    GITHUB_STATUS,
    LAST_SYNC,
    CustomFieldIds,
    FieldChangeSet,
    MirrorComment,
    MirrorIssue,
)
from .retry import RetryPolicy, run_with_backoff

API_PATH = "rest/api/2"
HTTP_ERROR_STATUS = 400
REQUEST_TIMEOUT = 30
SEARCH_PAGE_SIZE = 50
DEFAULT_ISSUE_TYPE = "Task"


def _text_or_none(value: Any) -> str | None:
    return value if isinstance(value, str) else None


def resolve_custom_fields(metadata: Any) -> CustomFieldIds:
    """Map the ``GET /field`` listing onto the six linkage fields by name."""
    if not isinstance(metadata, list):
        raise UnexpectedResponseShape("JIRA list fields", "list", metadata)
    by_name = {jira_name: logical for logical, jira_name in CUSTOM_FIELD_NAMES.items()}
    found: dict[str, str] = {}
    for entry in metadata:
        if not isinstance(entry, dict):
            continue
        logical = by_name.get(entry.get("name"))  # type: ignore[arg-type]
        if logical is None or logical in found:
            continue
        schema = entry.get("schema")
        custom_id = schema.get("customId") if isinstance(schema, dict) else None
        if custom_id is None:
            continue
        found[logical] = str(custom_id)
    for logical, jira_name in CUSTOM_FIELD_NAMES.items():
        if logical not in found:
            raise ValidationError(
                f"Could not find ID of '{jira_name}' custom field. "
                "Check that it is named correctly."
            )
    return CustomFieldIds(**found)


def issue_from_api(data: Any, custom: CustomFieldIds) -> MirrorIssue:
    if not isinstance(data, dict):
        raise UnexpectedResponseShape("JIRA read issue", "issue object", data)
    fields = data.get("fields")
    if not isinstance(fields, dict):
        raise UnexpectedResponseShape("JIRA read issue", "fields object", fields)
    comments: list[MirrorComment] = []
    comment_block = fields.get("comment")
    if isinstance(comment_block, dict):
        for entry in comment_block.get("comments") or []:
            if isinstance(entry, dict) and entry.get("id") is not None:
                comments.append(MirrorComment(id=str(entry["id"]), body=entry.get("body") or ""))
    issue_type = fields.get("issuetype")
    return MirrorIssue(
        key=str(data.get("key", "")),
        id=str(data.get("id", "")),
        summary=fields.get("summary") or "",
        description=fields.get("description") or "",
        github_id=coerce_github_id(fields.get(custom.key(GITHUB_ID))),
        github_number=coerce_github_id(fields.get(custom.key(GITHUB_NUMBER))),
        github_labels=_text_or_none(fields.get(custom.key(GITHUB_LABELS))),
        github_status=_text_or_none(fields.get(custom.key(GITHUB_STATUS))),
        github_reporter=_text_or_none(fields.get(custom.key(GITHUB_REPORTER))),
        last_sync=_text_or_none(fields.get(custom.key(LAST_SYNC))),
        issue_type=issue_type if isinstance(issue_type, dict) else None,
        comments=comments,
    )


def comment_from_api(data: Any, operation: str) -> MirrorComment:
    if not isinstance(data, dict) or data.get("id") is None:
        raise UnexpectedResponseShape(operation, "comment object", data)
    return MirrorComment(id=str(data["id"]), body=data.get("body") or "")


def update_payload(
    mirror: MirrorIssue, changes: FieldChangeSet, custom: CustomFieldIds
) -> dict[str, Any]:
    """``fields`` body for ``PUT /issue/{key}``.

    Only changed fields are sent; the summary and issue type are always
    carried over from the existing issue so JIRA never resets them.
    """
    payload: dict[str, Any] = {"summary": changes.get(SUMMARY, mirror.summary)}
    if DESCRIPTION in changes:
        payload["description"] = changes.get(DESCRIPTION)
    for name in CUSTOM_FIELD_NAMES:
        if name in changes:
            payload[custom.key(name)] = changes.get(name)
    if mirror.issue_type:
        payload["issuetype"] = mirror.issue_type
    return payload


def create_payload(
    fields: Mapping[str, Any], project_key: str, custom: CustomFieldIds
) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "project": {"key": project_key},
        "summary": fields.get(SUMMARY, ""),
        "description": fields.get(DESCRIPTION, ""),
        "issuetype": {"name": fields.get("issue_type") or DEFAULT_ISSUE_TYPE},
    }
    for name in CUSTOM_FIELD_NAMES:
        if name in fields:
            payload[custom.key(name)] = fields[name]
    return payload


@dataclass
class JiraRestClient:
    """Basic-auth JIRA client bound to a single project."""

    base_url: str
    user: str
    password: str
    project_key: str
    policy: RetryPolicy | None = None
    session: requests.Session | None = None
    _session: requests.Session = field(init=False, repr=False)
    _custom_fields: CustomFieldIds | None = field(default=None, init=False, repr=False)

    def __post_init__(self) -> None:  # pragma: no cover - simple wiring
        self._session = self.session or requests.Session()
        if getattr(self._session, "auth", None) is None:
            self._session.auth = (self.user, self.password)
        self._session.headers.setdefault("Accept", "application/json")

    # ---- REST helpers -------------------------------------------------
    def _url(self, path: str) -> str:
        return f"{self.base_url.rstrip('/')}/{API_PATH}/{path.lstrip('/')}"

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json_body: Any | None = None,
    ) -> Any:
        url = self._url(path)

        def _run() -> requests.Response:
            try:
                response = self._session.request(
                    method,
                    url,
                    params=params,
                    json=json_body,
                    headers=self._session.headers,
                    timeout=REQUEST_TIMEOUT,
                )
            except requests.RequestException as exc:
                raise request_error(f"JIRA API {method} {url} failed", exc) from exc
            if response.status_code >= HTTP_ERROR_STATUS:
                raise TransportError(
                    f"JIRA API {method} {url} failed with {response.status_code}",
                    status=response.status_code,
                    response_text=response.text,
                )
            return response

        response = run_with_backoff(
            _run, policy=self.policy, operation=f"JIRA {method} {path}"
        )
        if not response.text:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise UnexpectedResponseShape(
                f"JIRA {method} {path}", "JSON document", response.text
            ) from exc

    # ---- Metadata -----------------------------------------------------
    def load_custom_fields(self) -> CustomFieldIds:
        get_logger().debug("Collecting field IDs.")
        self._custom_fields = resolve_custom_fields(self._request("GET", "/field"))
        return self._custom_fields

    @property
    def custom_fields(self) -> CustomFieldIds:
        if self._custom_fields is None:
            return self.load_custom_fields()
        return self._custom_fields

    def get_project(self) -> dict[str, Any]:
        data = self._request("GET", f"/project/{self.project_key}")
        if not isinstance(data, dict):
            raise UnexpectedResponseShape("JIRA get project", "project object", data)
        return data

    # ---- Issues -------------------------------------------------------
    def _search_fields(self) -> str:
        custom = self.custom_fields
        return ",".join(
            ["summary", "description", "issuetype", *custom.keys().values()]
        )

    def search_issues(self, jql: str) -> list[MirrorIssue]:
        custom = self.custom_fields
        issues: list[MirrorIssue] = []
        start_at = 0
        while True:
            params = {
                "jql": jql,
                "startAt": start_at,
                "maxResults": SEARCH_PAGE_SIZE,
                "fields": self._search_fields(),
            }
            data = self._request("GET", "/search", params=params)
            if not isinstance(data, dict) or not isinstance(data.get("issues"), list):
                raise UnexpectedResponseShape("JIRA search", "search result object", data)
            page = data["issues"]
            issues.extend(issue_from_api(entry, custom) for entry in page)
            start_at += len(page)
            total = data.get("total")
            if not page or not isinstance(total, int) or start_at >= total:
                break
        return issues

    def get_issue(self, key: str) -> MirrorIssue:
        data = self._request("GET", f"/issue/{key}", params={"fields": "*all"})
        return issue_from_api(data, self.custom_fields)

    def create_issue(self, fields: Mapping[str, Any]) -> MirrorIssue:
        custom = self.custom_fields
        payload = create_payload(fields, self.project_key, custom)
        data = self._request("POST", "/issue", json_body={"fields": payload})
        if not isinstance(data, dict) or not data.get("key"):
            raise UnexpectedResponseShape("JIRA create issue", "created issue object", data)
        return MirrorIssue(
            key=str(data["key"]),
            id=str(data.get("id", "")),
            summary=payload["summary"],
            description=payload["description"],
            github_id=coerce_github_id(fields.get(GITHUB_ID)),
            github_number=coerce_github_id(fields.get(GITHUB_NUMBER)),
            github_labels=_text_or_none(fields.get(GITHUB_LABELS)),
            github_status=_text_or_none(fields.get(GITHUB_STATUS)),
            github_reporter=_text_or_none(fields.get(GITHUB_REPORTER)),
            last_sync=_text_or_none(fields.get(LAST_SYNC)),
            issue_type=payload["issuetype"],
        )

    def update_issue(self, mirror: MirrorIssue, changes: FieldChangeSet) -> MirrorIssue:
        payload = update_payload(mirror, changes, self.custom_fields)
        self._request("PUT", f"/issue/{mirror.key}", json_body={"fields": payload})
        return apply_changes(mirror, changes)

    # ---- Comments -----------------------------------------------------
    def create_comment(self, issue: MirrorIssue, body: str) -> MirrorComment:
        data = self._request("POST", f"/issue/{issue.id}/comment", json_body={"body": body})
        return comment_from_api(data, "JIRA create comment")

    def update_comment(self, issue: MirrorIssue, comment_id: str, body: str) -> MirrorComment:
        data = self._request(
            "PUT", f"/issue/{issue.key}/comment/{comment_id}", json_body={"body": body}
        )
        return comment_from_api(data, "JIRA update comment")


__all__ = [
    "DEFAULT_ISSUE_TYPE",
    "JiraRestClient",
    "comment_from_api",
    "create_payload",
    "issue_from_api",
    "resolve_custom_fields",
    "update_payload",
]
