"""Capabilities the reconcilers need from GitHub and JIRA.

The REST clients in :mod:`issuesync.github_rest` and :mod:`issuesync.jira_rest`
implement these; tests use in-memory fakes.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from typing import Any, Protocol

from .models import (
    CustomFieldIds,
    FieldChangeSet,
    GitHubUser,
    MirrorComment,
    MirrorIssue,
    SourceComment,
    SourceIssue,
)


class SourceTracker(Protocol):
    def list_issues(self, since: datetime, state: str = "all") -> list[SourceIssue]: ...

    def list_comments(self, issue_number: int) -> list[SourceComment]: ...

    def get_user(self, login: str) -> GitHubUser: ...


class MirrorTracker(Protocol):
    project_key: str

    @property
    def custom_fields(self) -> CustomFieldIds: ...

    def search_issues(self, jql: str) -> list[MirrorIssue]: ...

    def get_issue(self, key: str) -> MirrorIssue: ...

    def create_issue(self, fields: Mapping[str, Any]) -> MirrorIssue: ...

    def update_issue(self, mirror: MirrorIssue, changes: FieldChangeSet) -> MirrorIssue: ...

    def create_comment(self, issue: MirrorIssue, body: str) -> MirrorComment: ...

    def update_comment(
        self, issue: MirrorIssue, comment_id: str, body: str
    ) -> MirrorComment: ...


__all__ = ["MirrorTracker", "SourceTracker"]
