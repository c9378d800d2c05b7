"""Mirror tracker wrapper that previews writes instead of performing them.

Reads go to the wrapped tracker. Each mutating call logs what would be sent
and returns the value the live tracker would have returned, so the rest of a
pass (comment matching on a freshly "created" issue included) runs unchanged.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any

from .diffing import DESCRIPTION, SUMMARY, apply_changes
from .errors import DecodeFailure
from .identity import coerce_github_id, decode_comment
from .logging import get_logger
from .models import (
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
from .trackers import MirrorTracker

DESCRIPTION_PREVIEW = 50
COMMENT_PREVIEW = 100
NEW_ID = "(new)"

_NEWLINE = re.compile(r"\r?\n")


def truncate(text: str | None, length: int) -> str:
    """Single-line preview: newlines escaped as ``\\n``, cut after ``length`` chars."""
    if not text:
        return "empty"
    text = _NEWLINE.sub(r"\\n", text)
    if len(text) <= length:
        return text
    return f"{text[:length]}..."


class DryRunMirrorTracker:
    def __init__(self, real: MirrorTracker) -> None:
        self._real = real
        self.project_key = real.project_key
        self._log = get_logger()

    @property
    def custom_fields(self) -> CustomFieldIds:
        return self._real.custom_fields

    # ---- reads ----------------------------------------------------------
    def search_issues(self, jql: str) -> list[MirrorIssue]:
        return self._real.search_issues(jql)

    def get_issue(self, key: str) -> MirrorIssue:
        return self._real.get_issue(key)

    def load_custom_fields(self) -> CustomFieldIds:
        loader = getattr(self._real, "load_custom_fields", None)
        if loader is None:
            return self._real.custom_fields
        return loader()

    # ---- writes ---------------------------------------------------------
    def create_issue(self, fields: Mapping[str, Any]) -> MirrorIssue:
        lines = [
            "Create new JIRA issue:",
            f"  Summary: {fields.get(SUMMARY, '')}",
            f"  Description: {truncate(fields.get(DESCRIPTION), DESCRIPTION_PREVIEW)}",
            f"  GitHub ID: {fields.get(GITHUB_ID)}",
            f"  GitHub Number: {fields.get(GITHUB_NUMBER)}",
            f"  Labels: {fields.get(GITHUB_LABELS)}",
            f"  State: {fields.get(GITHUB_STATUS)}",
            f"  Reporter: {fields.get(GITHUB_REPORTER)}",
        ]
        self._log.info("\n".join(lines), operation="dry_run_create_issue", dry_run=True)
        issue_type = fields.get("issue_type")
        return MirrorIssue(
            key=f"{self.project_key}-{NEW_ID}",
            id=NEW_ID,
            summary=fields.get(SUMMARY, ""),
            description=fields.get(DESCRIPTION, ""),
            github_id=coerce_github_id(fields.get(GITHUB_ID)),
            github_number=coerce_github_id(fields.get(GITHUB_NUMBER)),
            github_labels=fields.get(GITHUB_LABELS),
            github_status=fields.get(GITHUB_STATUS),
            github_reporter=fields.get(GITHUB_REPORTER),
            last_sync=fields.get(LAST_SYNC),
            issue_type={"name": issue_type} if issue_type else None,
        )

    def update_issue(self, mirror: MirrorIssue, changes: FieldChangeSet) -> MirrorIssue:
        updated = apply_changes(mirror, changes)
        lines = [
            f"Update JIRA issue {mirror.key}:",
            f"  Summary: {updated.summary}",
            f"  Description: {truncate(updated.description, DESCRIPTION_PREVIEW)}",
        ]
        if GITHUB_LABELS in changes:
            lines.append(f"  Labels: {updated.github_labels}")
        if GITHUB_STATUS in changes:
            lines.append(f"  State: {updated.github_status}")
        self._log.info(
            "\n".join(lines),
            operation="dry_run_update_issue",
            jira_key=mirror.key,
            dry_run=True,
        )
        return updated

    def create_comment(self, issue: MirrorIssue, body: str) -> MirrorComment:
        self._log.info(
            "\n".join([f"Create comment on JIRA issue {issue.key}:", *self._comment_lines(body)]),
            operation="dry_run_create_comment",
            jira_key=issue.key,
            dry_run=True,
        )
        return MirrorComment(id=NEW_ID, body=body)

    def update_comment(self, issue: MirrorIssue, comment_id: str, body: str) -> MirrorComment:
        self._log.info(
            "\n".join(
                [
                    f"Update JIRA comment {comment_id} on issue {issue.key}:",
                    *self._comment_lines(body),
                ]
            ),
            operation="dry_run_update_comment",
            jira_key=issue.key,
            dry_run=True,
        )
        return MirrorComment(id=comment_id, body=body)

    @staticmethod
    def _comment_lines(body: str) -> list[str]:
        try:
            decoded = decode_comment(body)
        except DecodeFailure:
            return [f"  Body: {truncate(body, COMMENT_PREVIEW)}"]
        user = decoded.login
        if decoded.display_name:
            user = f"{user} ({decoded.display_name})"
        return [
            f"  GitHub ID: {decoded.external_id}",
            f"  User: {user}",
            f"  Posted at: {decoded.created}",
            f"  Body: {truncate(decoded.body, COMMENT_PREVIEW)}",
        ]


__all__ = ["DryRunMirrorTracker", "NEW_ID", "truncate"]
