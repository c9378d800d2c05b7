"""Cross-system identity for issues and comments.

Issues: the numeric GitHub issue id is stored verbatim in the JIRA
``GitHub ID`` custom field at creation time and never changed afterwards.

Comments: JIRA has no per-comment custom field, so the generated comment
text is the encoding::

    Comment (ID 42) from GitHub user octocat (The Octocat) at 16:27 PM, April 17 2019:

    <body>

The display-name clause is only present when the author has one. Decoding
tries each entry of ``COMMENT_PATTERNS`` in order, so a new template can be
introduced while older generated comments keep matching. The cheap
``COMMENT_ID_PATTERN`` pre-filter runs first; bodies it rejects are foreign
(written by hand in JIRA) and never decoded.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime

from .errors import DecodeFailure
from .logging import get_logger
from .models import GitHubUser, MirrorComment, MirrorIssue, SourceComment, SourceIssue

COMMENT_ID_PATTERN = re.compile(r"^Comment \[?\(ID (\d+)\)")

# Anchored to the format_comment_date layout so a display name containing
# ") at " cannot end the name early.
_CREATED = r"(?P<created>\d{1,2}:\d{2} [AP]M, [A-Z][a-z]+ \d{1,2} \d{4})"

COMMENT_PATTERNS: tuple[re.Pattern[str], ...] = (
    # current template
    re.compile(
        r"\AComment \(ID (?P<id>\d+)\) from GitHub user (?P<login>\S+)"
        r"(?: \((?P<name>[^\n]*?)\))? at " + _CREATED + r":\n\n(?P<body>.*)\Z",
        re.DOTALL,
    ),
    # legacy template with JIRA link markup around the id and login
    re.compile(
        r"\AComment \[\(ID (?P<id>\d+)\)\|[^\]\n]*\] from GitHub user \[(?P<login>[^|\]\s]+)\|[^\]\n]*\]"
        r"(?: \((?P<name>[^\n]*?)\))? at " + _CREATED + r":\n\n(?P<body>.*)\Z",
        re.DOTALL,
    ),
)

_MONTHS = (
    "January",
    "February",
    "March",
    "April",
    "May",
    "June",
    "July",
    "August",
    "September",
    "October",
    "November",
    "December",
)


@dataclass(frozen=True)
class DecodedComment:
    external_id: int
    login: str
    display_name: str | None
    created: str
    body: str


# --- issues ---------------------------------------------------------------


def coerce_github_id(value: object) -> int | None:
    """Interpret a stored custom field value as a GitHub id, or ``None``."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    if isinstance(value, str):
        text = value.strip()
        if text.isdigit():
            return int(text)
        try:
            as_float = float(text)
        except ValueError:
            return None
        return int(as_float) if as_float.is_integer() else None
    return None


def github_id_of(mirror: MirrorIssue) -> int | None:
    return coerce_github_id(mirror.github_id)


def matches(source: SourceIssue, mirror: MirrorIssue) -> bool:
    mirror_id = github_id_of(mirror)
    return mirror_id is not None and mirror_id == source.external_id


def match_issue(source: SourceIssue, mirrors: Iterable[MirrorIssue]) -> MirrorIssue | None:
    for mirror in mirrors:
        if matches(source, mirror):
            return mirror
    return None


def index_mirror_issues(mirrors: Iterable[MirrorIssue]) -> dict[int, MirrorIssue]:
    """Index mirrors by GitHub id; the first mirror wins on a duplicate id."""
    index: dict[int, MirrorIssue] = {}
    for mirror in mirrors:
        gid = github_id_of(mirror)
        if gid is None:
            continue
        if gid in index:
            get_logger().log_error(
                "Duplicate JIRA issues for one GitHub issue",
                error=f"{index[gid].key} and {mirror.key} both carry GitHub ID {gid}",
                jira_key=mirror.key,
            )
            continue
        index[gid] = mirror
    return index


# --- comments -------------------------------------------------------------


def format_comment_date(created: datetime) -> str:
    """``16:27 PM, April 17 2019`` style: 24h clock, AM/PM marker, unpadded day."""
    meridiem = "AM" if created.hour < 12 else "PM"
    return (
        f"{created.hour:02d}:{created.minute:02d} {meridiem}, "
        f"{_MONTHS[created.month - 1]} {created.day} {created.year}"
    )


def render_comment(comment: SourceComment, user: GitHubUser | None = None) -> str:
    login = user.login if user else comment.author_login
    name = user.display_name if user else comment.author_display_name
    header = f"Comment (ID {comment.external_id}) from GitHub user {login}"
    if name:
        header = f"{header} ({name})"
    return f"{header} at {format_comment_date(comment.created_at)}:\n\n{comment.body}"


def comment_id_of(body: str | None) -> int | None:
    """Pre-filter: the GitHub comment id of a generated comment, else ``None``."""
    if not body:
        return None
    m = COMMENT_ID_PATTERN.match(body)
    if not m:
        return None
    return int(m.group(1))


def decode_comment(body: str) -> DecodedComment:
    for pattern in COMMENT_PATTERNS:
        m = pattern.match(body)
        if m:
            return DecodedComment(
                external_id=int(m.group("id")),
                login=m.group("login"),
                display_name=m.group("name") or None,
                created=m.group("created"),
                body=m.group("body"),
            )
    raise DecodeFailure(body)


def index_mirror_comments(comments: Iterable[MirrorComment]) -> dict[int, list[MirrorComment]]:
    """Group generated mirror comments by embedded GitHub id, preserving order."""
    index: dict[int, list[MirrorComment]] = {}
    for comment in comments:
        gid = comment_id_of(comment.body)
        if gid is None:
            continue
        index.setdefault(gid, []).append(comment)
    return index


__all__ = [
    "COMMENT_ID_PATTERN",
    "COMMENT_PATTERNS",
    "DecodedComment",
    "coerce_github_id",
    "comment_id_of",
    "decode_comment",
    "format_comment_date",
    "github_id_of",
    "index_mirror_comments",
    "index_mirror_issues",
    "match_issue",
    "matches",
    "render_comment",
]
