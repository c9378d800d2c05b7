from __future__ import annotations

from dataclasses import dataclass

from .errors import DecodeFailure, IssueSyncError
from .identity import DecodedComment, decode_comment, index_mirror_comments, render_comment
from .logging import get_logger
from .models import GitHubUser, MirrorComment, MirrorIssue, SourceComment, SourceIssue
from .trackers import MirrorTracker, SourceTracker

# JIRA rejects comment bodies longer than this.
MAX_COMMENT_LENGTH = 32768


def truncate_body(body: str, limit: int = MAX_COMMENT_LENGTH) -> str:
    return body if len(body) <= limit else body[:limit]


@dataclass
class CommentTotals:
    created: int = 0
    updated: int = 0
    unchanged: int = 0
    failed: int = 0

    def __iadd__(self, other: CommentTotals) -> CommentTotals:
        self.created += other.created
        self.updated += other.updated
        self.unchanged += other.unchanged
        self.failed += other.failed
        return self


@dataclass
class _Match:
    comment: MirrorComment | None
    decoded: DecodedComment | None
    undecodable: str = ""


def body_unchanged(mirror_body: str, decoded: DecodedComment, source: SourceComment) -> bool:
    if decoded.body == source.body:
        return True
    # A body cut at the length limit still matches its untruncated source.
    return len(mirror_body) >= MAX_COMMENT_LENGTH and source.body.startswith(decoded.body)


class CommentReconciler:
    """Create or update generated JIRA comments for one issue at a time."""

    def __init__(
        self, source: SourceTracker, mirror: MirrorTracker, *, dry_run: bool = False
    ) -> None:
        self._source = source
        self._mirror = mirror
        self._dry_run = dry_run
        self._users: dict[str, GitHubUser] = {}
        self._log = get_logger()

    def reconcile(
        self,
        source_issue: SourceIssue,
        mirror_issue: MirrorIssue,
        existing: list[MirrorComment],
    ) -> CommentTotals:
        totals = CommentTotals()
        if source_issue.comment_count == 0:
            return totals
        comments = self._source.list_comments(source_issue.number)
        matches = self._index(existing, source_issue, mirror_issue)
        for comment in comments:
            try:
                outcome = self._sync_comment(comment, matches.get(comment.external_id), mirror_issue)
            except IssueSyncError as exc:
                self._log.log_error(
                    f"Failed to sync comment {comment.external_id} on #{source_issue.number}",
                    error=str(exc),
                    github_number=source_issue.number,
                    jira_key=mirror_issue.key,
                    comment_id=comment.external_id,
                )
                totals.failed += 1
                continue
            setattr(totals, outcome, getattr(totals, outcome) + 1)
        return totals

    def _index(
        self,
        existing: list[MirrorComment],
        source_issue: SourceIssue,
        mirror_issue: MirrorIssue,
    ) -> dict[int, _Match]:
        """First decodable generated comment per GitHub comment id.

        Undecodable candidates and duplicates are logged; an id whose
        candidates all fail to decode maps to an empty match.
        """
        matches: dict[int, _Match] = {}
        for gid, candidates in index_mirror_comments(existing).items():
            found = _Match(None, None, candidates[0].body)
            for candidate in candidates:
                try:
                    decoded = decode_comment(candidate.body)
                except DecodeFailure as exc:
                    self._log.log_error(
                        f"Skipping JIRA comment {candidate.id}",
                        error=str(exc),
                        github_number=source_issue.number,
                        jira_key=mirror_issue.key,
                    )
                    continue
                if found.comment is None:
                    found = _Match(candidate, decoded)
                else:
                    self._log.log_error(
                        f"Duplicate JIRA comments for GitHub comment {gid}",
                        error=f"{found.comment.id} and {candidate.id}; keeping {found.comment.id}",
                        github_number=source_issue.number,
                        jira_key=mirror_issue.key,
                    )
            matches[gid] = found
        return matches

    def _sync_comment(
        self, comment: SourceComment, match: _Match | None, mirror_issue: MirrorIssue
    ) -> str:
        if match is not None and match.comment is None:
            raise DecodeFailure(match.undecodable)
        if match is not None and match.comment is not None and match.decoded is not None:
            if body_unchanged(match.comment.body, match.decoded, comment):
                return "unchanged"
            body = self._render(comment)
            self._mirror.update_comment(mirror_issue, match.comment.id, body)
            self._log.info(
                f"comment updated {comment.external_id} -> {mirror_issue.key}/{match.comment.id}"
                + (" [DRY]" if self._dry_run else ""),
                operation="comment_updated",
                jira_key=mirror_issue.key,
                comment_id=comment.external_id,
                dry_run=self._dry_run,
            )
            return "updated"
        body = self._render(comment)
        created = self._mirror.create_comment(mirror_issue, body)
        self._log.info(
            f"comment created {comment.external_id} -> {mirror_issue.key}/{created.id}"
            + (" [DRY]" if self._dry_run else ""),
            operation="comment_created",
            jira_key=mirror_issue.key,
            comment_id=comment.external_id,
            dry_run=self._dry_run,
        )
        return "created"

    def _render(self, comment: SourceComment) -> str:
        return truncate_body(render_comment(comment, self._user(comment.author_login)))

    def _user(self, login: str) -> GitHubUser:
        user = self._users.get(login)
        if user is None:
            user = self._source.get_user(login)
            self._users[login] = user
        return user


__all__ = ["CommentReconciler", "CommentTotals", "MAX_COMMENT_LENGTH", "body_unchanged", "truncate_body"]
