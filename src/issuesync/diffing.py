from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timezone

from .models import (
    GITHUB_LABELS,
    GITHUB_REPORTER,
    GITHUB_STATUS,
    LAST_SYNC,
    FieldChangeSet,
    MirrorIssue,
    SourceIssue,
)

DATE_FORMAT = "%Y-%m-%dT%H:%M:%S%z"

SUMMARY = "summary"
DESCRIPTION = "description"

# Order used when reporting changes.
COMPARED_FIELDS = (SUMMARY, DESCRIPTION, GITHUB_STATUS, GITHUB_REPORTER, GITHUB_LABELS)


def format_timestamp(moment: datetime) -> str:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.strftime(DATE_FORMAT)


def parse_timestamp(text: str) -> datetime:
    """Inverse of :func:`format_timestamp`; raises ``ValueError`` on other layouts."""
    return datetime.strptime(text, DATE_FORMAT)


def join_labels(labels: tuple[str, ...] | list[str]) -> str:
    return ",".join(labels)


def _text_or_none(value: object) -> str | None:
    return value if isinstance(value, str) else None


def _labels_differ(source: SourceIssue, mirror_value: object) -> bool:
    wanted = join_labels(source.labels)
    if mirror_value is None:
        # JIRA stores an empty text field as null
        return wanted != ""
    if not isinstance(mirror_value, str):
        return True
    return mirror_value != wanted


def compare(
    source: SourceIssue, mirror: MirrorIssue, *, now: datetime | None = None
) -> FieldChangeSet:
    """Fields of ``mirror`` that no longer reflect ``source``.

    Custom fields that are absent or hold the wrong kind of value count as
    changed. When anything differs ``last_sync`` is stamped with ``now``
    (defaults to the current local time).
    """
    changes: dict[str, object] = {}
    if source.title != (mirror.summary or ""):
        changes[SUMMARY] = source.title
    if source.body != (mirror.description or ""):
        changes[DESCRIPTION] = source.body
    status = _text_or_none(mirror.github_status)
    if status is None or status != source.state:
        changes[GITHUB_STATUS] = source.state
    reporter = _text_or_none(mirror.github_reporter)
    if reporter is None or reporter != source.reporter_login:
        changes[GITHUB_REPORTER] = source.reporter_login
    if _labels_differ(source, mirror.github_labels):
        changes[GITHUB_LABELS] = join_labels(source.labels)
    if changes:
        moment = now or datetime.now().astimezone()
        changes[LAST_SYNC] = format_timestamp(moment)
    return FieldChangeSet(changes)


def describe(change_set: FieldChangeSet) -> list[str]:
    """Changed field names in reporting order, without the sync stamp."""
    return [name for name in COMPARED_FIELDS if name in change_set]


def apply_changes(mirror: MirrorIssue, change_set: FieldChangeSet) -> MirrorIssue:
    """Copy of ``mirror`` as it reads after ``change_set`` has been written."""
    return replace(mirror, **change_set.changes)


__all__ = [
    "COMPARED_FIELDS",
    "DATE_FORMAT",
    "DESCRIPTION",
    "SUMMARY",
    "apply_changes",
    "compare",
    "describe",
    "format_timestamp",
    "join_labels",
    "parse_timestamp",
]
