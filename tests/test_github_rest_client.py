from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from http_doubles import DummyResponse, DummySession, connection_error
from issuesync.errors import RetryExhausted, UnexpectedResponseShape
from issuesync.github_rest import GitHubRestClient, format_since
from issuesync.retry import RetryPolicy

SINCE = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _issue(n: int, **extra):
    data = {
        "id": 1000 + n,
        "number": n,
        "title": f"Issue {n}",
        "body": None,
        "state": "open",
        "labels": [{"name": "bug"}, {"name": "p1"}],
        "user": {"login": "octocat"},
        "comments": 0,
        "updated_at": "2024-02-01T10:00:00Z",
    }
    data.update(extra)
    return data


def _client(session: DummySession, **kw) -> GitHubRestClient:
    policy = RetryPolicy(max_elapsed_time=kw.pop("budget", 10.0), initial_interval=0.01, jitter=0.0)
    return GitHubRestClient(token="tkn", repo="acme/widgets", session=session, policy=policy, **kw)


def test_list_issues_paginates_and_parses():
    first_page = [_issue(n) for n in range(1, 101)]
    second_page = [_issue(101, pull_request={"url": "x"}, body="text", labels=[])]
    session = DummySession([DummyResponse(200, first_page), DummyResponse(200, second_page)])

    issues = _client(session).list_issues(SINCE)

    assert len(issues) == 101
    assert issues[0].external_id == 1001
    assert issues[0].body == ""
    assert issues[0].labels == ("bug", "p1")
    assert issues[0].reporter_login == "octocat"
    assert issues[-1].is_pull_request
    method, url, meta = session.request_log[0]
    assert method == "GET" and url.endswith("/repos/acme/widgets/issues")
    assert meta["params"] == {
        "state": "all",
        "since": "2024-01-01T00:00:00Z",
        "sort": "created",
        "direction": "asc",
        "per_page": 100,
        "page": 1,
    }
    assert session.request_log[1][2]["params"]["page"] == 2
    assert session.headers["Authorization"] == "Bearer tkn"


def test_list_comments_sorted_ascending():
    session = DummySession(
        [
            DummyResponse(
                200,
                [
                    {"id": 2, "user": {"login": "b"}, "body": "later", "created_at": "2024-01-02T00:00:00Z"},
                    {"id": 1, "user": {"login": "a"}, "body": "first", "created_at": "2024-01-01T00:00:00Z"},
                ],
            )
        ]
    )
    comments = _client(session).list_comments(7)
    assert [c.external_id for c in comments] == [1, 2]
    assert session.request_log[0][1].endswith("/repos/acme/widgets/issues/7/comments")


def test_get_user_display_name():
    session = DummySession(
        [DummyResponse(200, {"login": "octocat", "name": "The Octocat"}), DummyResponse(200, {"login": "ghost", "name": None})]
    )
    client = _client(session)
    assert client.get_user("octocat").display_name == "The Octocat"
    assert client.get_user("ghost").display_name is None


def test_transient_errors_are_retried():
    session = DummySession([connection_error(), DummyResponse(502, "bad gateway"), DummyResponse(200, {"resources": {}})])
    assert _client(session).get_rate_limit() == {"resources": {}}
    assert len(session.request_log) == 3


def test_exhausted_retries_keep_response_body():
    session = DummySession([DummyResponse(500, {"message": "boom"})] * 50)
    with pytest.raises(RetryExhausted) as excinfo:
        _client(session, budget=0.05).get_user("octocat")
    assert excinfo.value.status == 500
    assert '"boom"' in excinfo.value.detail


def test_wrong_shape_is_reported():
    session = DummySession([DummyResponse(200, {"not": "a list"})])
    with pytest.raises(UnexpectedResponseShape) as excinfo:
        _client(session).list_comments(1)
    assert "expected list" in str(excinfo.value)
    assert "dict" in str(excinfo.value)


def test_format_since_converts_to_utc():
    local = datetime(2024, 1, 1, 2, 0, tzinfo=timezone(timedelta(hours=2)))
    assert format_since(local) == "2024-01-01T00:00:00Z"


@pytest.mark.parametrize(
    "entry",
    [
        {"body": "hi", "user": {"login": "a"}},
        {"id": "12", "body": "hi"},
        {"id": None, "body": "hi"},
        {"id": True, "body": "hi"},
    ],
)
def test_malformed_comment_is_a_shape_error(entry):
    session = DummySession([DummyResponse(200, [entry])])
    with pytest.raises(UnexpectedResponseShape) as excinfo:
        _client(session).list_comments(1)
    assert excinfo.value.operation == "GitHub list comments"
    assert excinfo.value.expected == "comment object"


@pytest.mark.parametrize("missing", ["id", "number"])
def test_malformed_issue_is_a_shape_error(missing):
    entry = _issue(3)
    del entry[missing]
    session = DummySession([DummyResponse(200, [entry])])
    with pytest.raises(UnexpectedResponseShape, match="issue object"):
        _client(session).list_issues(SINCE)


def test_odd_optional_issue_fields_fall_back():
    session = DummySession([DummyResponse(200, [_issue(4, labels="bug", comments="many")])])
    issue = _client(session).list_issues(SINCE)[0]
    assert issue.labels == ()
    assert issue.comment_count == 0
