from __future__ import annotations

from datetime import datetime, timezone

import pytest

from fakes import make_comment, make_issue
from issuesync.errors import DecodeFailure
from issuesync.identity import (
    coerce_github_id,
    comment_id_of,
    decode_comment,
    format_comment_date,
    github_id_of,
    index_mirror_comments,
    index_mirror_issues,
    match_issue,
    render_comment,
)
from issuesync.models import GitHubUser, MirrorComment, MirrorIssue


@pytest.mark.parametrize(
    ("stored", "expected"),
    [
        (555, 555),
        (555.0, 555),
        ("555", 555),
        (" 555 ", 555),
        ("555.0", 555),
        (555.5, None),
        (True, None),
        (None, None),
        ("abc", None),
        ({"value": 555}, None),
    ],
)
def test_coerce_github_id(stored, expected):
    assert coerce_github_id(stored) == expected


def test_match_issue_tolerates_missing_and_garbage_ids():
    mirrors = [
        MirrorIssue(key="PROJ-1", id="1", github_id=None),
        MirrorIssue(key="PROJ-2", id="2", github_id="not-a-number"),  # type: ignore[arg-type]
        MirrorIssue(key="PROJ-3", id="3", github_id=555.0),  # type: ignore[arg-type]
    ]
    found = match_issue(make_issue(external_id=555), mirrors)
    assert found is not None and found.key == "PROJ-3"
    assert match_issue(make_issue(external_id=999), mirrors) is None
    assert github_id_of(mirrors[0]) is None


def test_index_mirror_issues_first_duplicate_wins(capsys):
    mirrors = [
        MirrorIssue(key="PROJ-1", id="1", github_id=7),
        MirrorIssue(key="PROJ-9", id="9", github_id=7),
    ]
    index = index_mirror_issues(mirrors)
    assert index[7].key == "PROJ-1"
    assert "Duplicate JIRA issues" in capsys.readouterr().out


def test_comment_date_uses_24h_clock_with_marker():
    assert format_comment_date(datetime(2019, 4, 17, 16, 27)) == "16:27 PM, April 17 2019"
    assert format_comment_date(datetime(2021, 1, 5, 9, 3)) == "09:03 AM, January 5 2021"


def test_render_with_and_without_display_name():
    comment = make_comment(42, "hello")
    plain = render_comment(comment, GitHubUser(login="octocat"))
    named = render_comment(comment, GitHubUser(login="octocat", display_name="The Octocat"))
    assert plain == "Comment (ID 42) from GitHub user octocat at 16:27 PM, April 17 2019:\n\nhello"
    assert named.startswith("Comment (ID 42) from GitHub user octocat (The Octocat) at ")


@pytest.mark.parametrize(
    ("login", "name", "body"),
    [
        ("octocat", None, "hello"),
        ("bilbo-baggins", "Bilbo Baggins", "line one\nline two\n\nparagraph"),
        ("dependabot[bot]", None, ""),
        ("a_b.c", "Name (with parens)", "trailing newline\n"),
        ("octocat", "Team (bots) at large", "body mentions 09:00 AM, May 1 2020:\n\ntoo"),
    ],
)
def test_render_then_decode_round_trip(login, name, body):
    created = datetime(2023, 11, 2, 8, 15, tzinfo=timezone.utc)
    comment = make_comment(123456789, body, login=login, created=created)
    decoded = decode_comment(render_comment(comment, GitHubUser(login=login, display_name=name)))
    assert decoded.external_id == 123456789
    assert decoded.login == login
    assert decoded.display_name == name
    assert decoded.created == "08:15 AM, November 2 2023"
    assert decoded.body == body


def test_decode_legacy_linked_template():
    body = (
        "Comment [(ID 484163403)|https://github.com] from GitHub user "
        "[bilbo-baggins|https://github.com/bilbo-baggins] (Bilbo Baggins) at "
        "16:27 PM, April 17 2019:\n\nBla blibidy bloo bla"
    )
    decoded = decode_comment(body)
    assert decoded.external_id == 484163403
    assert decoded.login == "bilbo-baggins"
    assert decoded.display_name == "Bilbo Baggins"
    assert decoded.body == "Bla blibidy bloo bla"
    assert comment_id_of(body) == 484163403


def test_prefilter_skips_foreign_comments():
    assert comment_id_of("Looks good to me") is None
    assert comment_id_of("") is None
    assert comment_id_of("Comment (ID 42) from GitHub user x at 1:\n\nhi") == 42


def test_decode_failure_after_prefilter():
    with pytest.raises(DecodeFailure):
        decode_comment("Comment (ID 42) but the rest was edited away")


def test_index_mirror_comments_groups_in_order():
    comments = [
        MirrorComment("1", "manual note"),
        MirrorComment("2", "Comment (ID 42) from GitHub user a at t:\n\nx"),
        MirrorComment("3", "Comment (ID 43) from GitHub user a at t:\n\ny"),
        MirrorComment("4", "Comment (ID 42) from GitHub user a at t:\n\nz"),
    ]
    index = index_mirror_comments(comments)
    assert [c.id for c in index[42]] == ["2", "4"]
    assert [c.id for c in index[43]] == ["3"]
    assert set(index) == {42, 43}
