"""Issue reconciliation: the GitHub -> JIRA pass.

One pass lists GitHub issues updated since the watermark, looks up their
JIRA mirrors by the ``GitHub ID`` custom field, creates or updates each
mirror, then hands the issue to :class:`issuesync.comments.CommentReconciler`.
A failure on one issue is logged and counted; only failing to enumerate the
two issue sets aborts the pass.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from .comments import CommentReconciler, CommentTotals
from .diffing import DESCRIPTION, SUMMARY, compare, describe, format_timestamp, join_labels
from .dryrun import DryRunMirrorTracker
from .errors import IssueSyncError, RetryExhausted, classify_error
from .identity import github_id_of, index_mirror_issues
from .logging import get_logger
from .models import (
    GITHUB_ID,
    GITHUB_LABELS,
    GITHUB_NUMBER,
    GITHUB_REPORTER,
    GITHUB_STATUS,
    LAST_SYNC,
    MirrorIssue,
    SourceIssue,
)
from .retry import RetryPolicy
from .trackers import MirrorTracker, SourceTracker

# Longest GitHub id list sent in a single JQL ``in (...)`` clause.
MAX_JQL_ISSUE_IDS = 100

DEFAULT_ISSUE_TYPE = "Task"


@dataclass
class SyncOptions:
    repo: str
    project_key: str
    since: datetime
    dry_run: bool = False
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    issue_type: str = DEFAULT_ISSUE_TYPE


@dataclass
class SyncSummary:
    issues: int = 0
    created: list[dict[str, Any]] = field(default_factory=list)
    updated: list[dict[str, Any]] = field(default_factory=list)
    unchanged: int = 0
    failed: list[dict[str, Any]] = field(default_factory=list)
    comments: CommentTotals = field(default_factory=CommentTotals)
    dry_run: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "totals": {
                "issues": self.issues,
                "created": len(self.created),
                "updated": len(self.updated),
                "unchanged": self.unchanged,
                "failed": len(self.failed),
                "comments_created": self.comments.created,
                "comments_updated": self.comments.updated,
                "comments_failed": self.comments.failed,
            },
            "changes": {
                "created": self.created,
                "updated": self.updated,
                "failed": self.failed,
            },
            "dry_run": self.dry_run,
        }


def build_search_jql(mirror: MirrorTracker, ids: list[int]) -> str:
    base = f"project = '{mirror.project_key}'"
    if len(ids) > MAX_JQL_ISSUE_IDS:
        return base
    id_list = ",".join(str(i) for i in ids)
    return f"{base} AND {mirror.custom_fields.jql_ref(GITHUB_ID)} in ({id_list})"


def fetch_mirror_issues(mirror: MirrorTracker, ids: Iterable[int]) -> dict[int, MirrorIssue]:
    """JIRA issues mirroring ``ids``, keyed by GitHub id.

    Up to ``MAX_JQL_ISSUE_IDS`` ids are filtered server side; beyond that the
    whole project is listed and filtered here.
    """
    wanted = list(dict.fromkeys(ids))
    if not wanted:
        return {}
    found = mirror.search_issues(build_search_jql(mirror, wanted))
    members = set(wanted)
    return index_mirror_issues(m for m in found if github_id_of(m) in members)


def creation_fields(issue: SourceIssue, issue_type: str, now: datetime) -> dict[str, Any]:
    return {
        SUMMARY: issue.title,
        DESCRIPTION: issue.body,
        "issue_type": issue_type,
        GITHUB_ID: issue.external_id,
        GITHUB_NUMBER: issue.number,
        GITHUB_STATUS: issue.state,
        GITHUB_REPORTER: issue.reporter_login,
        GITHUB_LABELS: join_labels(issue.labels),
        LAST_SYNC: format_timestamp(now),
    }


def _error_detail(exc: BaseException) -> str:
    if isinstance(exc, RetryExhausted):
        return exc.detail
    return str(exc)


class IssueReconciler:
    def __init__(
        self,
        source: SourceTracker,
        mirror: MirrorTracker,
        *,
        comments: CommentReconciler | None = None,
        clock: Callable[[], datetime] | None = None,
        dry_run: bool = False,
    ) -> None:
        self._source = source
        self._mirror = mirror
        self._dry_run = dry_run
        self._comments = comments or CommentReconciler(source, mirror, dry_run=dry_run)
        self._clock = clock or (lambda: datetime.now().astimezone())
        self._log = get_logger()

    def reconcile(self, options: SyncOptions) -> SyncSummary:
        summary = SyncSummary(dry_run=self._dry_run)
        listed = self._source.list_issues(since=options.since, state="all")
        issues = [i for i in listed if not i.is_pull_request]
        summary.issues = len(issues)
        if not issues:
            self._log.info(
                f"No GitHub issues in {options.repo} updated since {format_timestamp(options.since)}",
                operation="sync_noop",
            )
            return summary
        mirrors = fetch_mirror_issues(self._mirror, (i.external_id for i in issues))
        self._log.debug(
            f"Matched {len(mirrors)} of {len(issues)} GitHub issues to JIRA issues",
            operation="fetch_mirror_issues",
        )
        for issue in issues:
            mirror = mirrors.get(issue.external_id)
            try:
                self._sync_issue(issue, mirror, options, summary)
            except IssueSyncError as exc:
                detail = _error_detail(exc)
                self._log.log_error(
                    f"Failed to sync GitHub issue #{issue.number}",
                    error=detail,
                    github_number=issue.number,
                    jira_key=mirror.key if mirror else None,
                )
                summary.failed.append(
                    {
                        "github_number": issue.number,
                        "jira_key": mirror.key if mirror else None,
                        "error": detail,
                    }
                )
        return summary

    def _sync_issue(
        self,
        issue: SourceIssue,
        mirror: MirrorIssue | None,
        options: SyncOptions,
        summary: SyncSummary,
    ) -> None:
        if mirror is None:
            created = self._mirror.create_issue(
                creation_fields(issue, options.issue_type, self._clock())
            )
            self._log.log_issue_action(
                "created", issue.number, jira_key=created.key, dry_run=self._dry_run
            )
            summary.created.append({"github_number": issue.number, "jira_key": created.key})
            summary.comments += self._comments.reconcile(issue, created, [])
            return
        changes = compare(issue, mirror, now=self._clock())
        if changes.any_changed:
            self._mirror.update_issue(mirror, changes)
            fields = describe(changes)
            self._log.log_issue_action(
                "updated",
                issue.number,
                jira_key=mirror.key,
                dry_run=self._dry_run,
                fields=fields,
            )
            summary.updated.append(
                {"github_number": issue.number, "jira_key": mirror.key, "fields": fields}
            )
        else:
            self._log.debug(
                f"JIRA issue {mirror.key} is up to date with #{issue.number}",
                github_number=issue.number,
                jira_key=mirror.key,
            )
            summary.unchanged += 1
        current = self._mirror.get_issue(mirror.key)
        summary.comments += self._comments.reconcile(issue, current, current.comments)


class IssueSync:
    """Runs one logged, timed pass for a configured repository and project."""

    def __init__(
        self,
        source: SourceTracker,
        mirror: MirrorTracker,
        options: SyncOptions,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.options = options
        self._source = source
        self._mirror: MirrorTracker = DryRunMirrorTracker(mirror) if options.dry_run else mirror
        self._clock = clock
        self._logger = get_logger()
        self.last_error: dict[str, Any] | None = None

    def sync(self) -> dict[str, Any]:
        opts = self.options
        try:
            with self._logger.timed_operation(
                "sync", repo=opts.repo, project=opts.project_key, dry_run=opts.dry_run
            ):
                reconciler = IssueReconciler(
                    self._source, self._mirror, clock=self._clock, dry_run=opts.dry_run
                )
                summary = reconciler.reconcile(opts).to_dict()
                totals = summary["totals"]
                self._logger.log_operation(
                    "sync_complete",
                    issues=totals["issues"],
                    issues_created=totals["created"],
                    issues_updated=totals["updated"],
                    issues_failed=totals["failed"],
                    comments_created=totals["comments_created"],
                    comments_updated=totals["comments_updated"],
                )
                return summary
        except Exception as exc:  # broad catch to enrich logging then re-raise
            info = classify_error(exc)
            self._logger.log_error(
                "sync_failed",
                category=info.category,
                transient=info.transient,
                original_type=info.original_type,
                error=info.message,
            )
            self.last_error = {
                "category": info.category,
                "transient": info.transient,
                "original_type": info.original_type,
                "message": info.message,
            }
            raise


def format_summary(summary: dict[str, Any]) -> str:
    totals = summary["totals"]
    prefix = "[dry-run] " if summary.get("dry_run") else ""
    lines = [
        f"{prefix}issues={totals['issues']} created={totals['created']} "
        f"updated={totals['updated']} unchanged={totals['unchanged']} failed={totals['failed']}",
        f"{prefix}comments created={totals['comments_created']} "
        f"updated={totals['comments_updated']} failed={totals['comments_failed']}",
    ]
    for entry in summary["changes"]["created"]:
        lines.append(f"  + #{entry['github_number']} -> {entry['jira_key']}")
    for entry in summary["changes"]["updated"]:
        fields = ", ".join(entry.get("fields") or [])
        lines.append(f"  ~ #{entry['github_number']} -> {entry['jira_key']} ({fields})")
    for entry in summary["changes"]["failed"]:
        target = entry.get("jira_key") or "new"
        lines.append(f"  ! #{entry['github_number']} -> {target}: {entry['error']}")
    return "\n".join(lines)


__all__ = [
    "DEFAULT_ISSUE_TYPE",
    "IssueReconciler",
    "IssueSync",
    "MAX_JQL_ISSUE_IDS",
    "SyncOptions",
    "SyncSummary",
    "build_search_jql",
    "creation_fields",
    "fetch_mirror_issues",
    "format_summary",
]
