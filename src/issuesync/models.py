from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

# Logical names of the JIRA custom fields that carry GitHub linkage data.
GITHUB_ID = "github_id"
GITHUB_NUMBER = "github_number"
GITHUB_LABELS = "github_labels"
GITHUB_STATUS = "github_status"
GITHUB_REPORTER = "github_reporter"
LAST_SYNC = "last_sync"

CUSTOM_FIELD_NAMES: dict[str, str] = {
    GITHUB_ID: "GitHub ID",
    GITHUB_NUMBER: "GitHub Number",
    GITHUB_LABELS: "GitHub Labels",
    GITHUB_STATUS: "GitHub Status",
    GITHUB_REPORTER: "GitHub Reporter",
    LAST_SYNC: "Last Issue-Sync Update",
}


@dataclass(frozen=True)
class SourceIssue:
    """Read-only snapshot of a GitHub issue, fetched fresh every pass."""

    external_id: int
    number: int
    title: str
    body: str
    state: str  # open | closed
    labels: tuple[str, ...]
    reporter_login: str
    comment_count: int
    updated_at: datetime | None = None
    is_pull_request: bool = False


@dataclass(frozen=True)
class SourceComment:
    external_id: int
    author_login: str
    body: str
    created_at: datetime
    author_display_name: str | None = None


@dataclass(frozen=True)
class GitHubUser:
    login: str
    display_name: str | None = None


@dataclass
class MirrorComment:
    id: str
    body: str


@dataclass
class MirrorIssue:
    """A JIRA issue as seen by the sync engine.

    Custom field values that are missing or of the wrong kind are ``None``;
    callers treat ``None`` as "unknown", never as an error.
    """

    key: str
    id: str
    summary: str = ""
    description: str = ""
    github_id: int | None = None
    github_number: int | None = None
    github_labels: str | None = None
    github_status: str | None = None
    github_reporter: str | None = None
    last_sync: str | None = None
    issue_type: dict[str, Any] | None = None
    comments: list[MirrorComment] = field(default_factory=list)


@dataclass(frozen=True)
class CustomFieldIds:
    """Resolved numeric ids of the linkage custom fields (``customfield_<id>``)."""

    github_id: str
    github_number: str
    github_labels: str
    github_status: str
    github_reporter: str
    last_sync: str

    def id_for(self, name: str) -> str:
        return str(getattr(self, name))

    def key(self, name: str) -> str:
        return f"customfield_{self.id_for(name)}"

    def jql_ref(self, name: str) -> str:
        return f"cf[{self.id_for(name)}]"

    def keys(self) -> dict[str, str]:
        return {name: self.key(name) for name in CUSTOM_FIELD_NAMES}


@dataclass
class FieldChangeSet:
    """Fields of a mirror issue that need rewriting, keyed by logical name."""

    changes: dict[str, Any] = field(default_factory=dict)

    @property
    def any_changed(self) -> bool:
        return bool(self.changes)

    def __contains__(self, name: object) -> bool:
        return name in self.changes

    def get(self, name: str, default: Any = None) -> Any:
        return self.changes.get(name, default)


__all__ = [
    "CUSTOM_FIELD_NAMES",
    "CustomFieldIds",
    "FieldChangeSet",
    "GITHUB_ID",
    "GITHUB_LABELS",
    "GITHUB_NUMBER",
    "GITHUB_REPORTER",
    "GITHUB_STATUS",
    "GitHubUser",
    "LAST_SYNC",
    "MirrorComment",
    "MirrorIssue",
    "SourceComment",
    "SourceIssue",
]
