"""Pytest configuration for issuesync tests.

Ensures the in-repo `src` directory is on `sys.path` so the package can be
imported without an editable install (`pip install -e .`).
"""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
TESTS = ROOT / "tests"
for entry in (SRC, TESTS):
    if str(entry) not in sys.path:
        sys.path.insert(0, str(entry))

_CREDENTIAL_VARS = (
    "ISSUESYNC_GITHUB_TOKEN",
    "GITHUB_TOKEN",
    "GH_TOKEN",
    "ISSUESYNC_JIRA_PASS",
    "JIRA_API_TOKEN",
    "ISSUESYNC_REPO_NAME",
    "ISSUESYNC_JIRA_URI",
    "ISSUESYNC_JIRA_USER",
    "ISSUESYNC_JIRA_PROJECT",
    "ISSUESYNC_SINCE",
    "ISSUESYNC_TIMEOUT",
    "ISSUESYNC_DRY_RUN",
    "ISSUESYNC_LOG_LEVEL",
    "ISSUESYNC_LOG_JSON",
    "ISSUESYNC_ISSUE_TYPE",
    "ISSUESYNC_RETRY_TIMEOUT",
    "ISSUESYNC_RETRY_BASE",
    "ISSUESYNC_RETRY_MAX_SLEEP",
)


@pytest.fixture(autouse=True)
def _clean_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    # CI runners export GITHUB_TOKEN; keep config tests hermetic.
    for name in _CREDENTIAL_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture(autouse=True)
def _no_sleep(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("issuesync.retry.time.sleep", lambda _s: None)


@pytest.fixture(autouse=True)
def _fresh_logger(monkeypatch: pytest.MonkeyPatch) -> None:
    # The process logger binds sys.stdout when created; rebuild it lazily per
    # test so capsys sees its output.
    monkeypatch.setattr("issuesync.logging._GLOBAL", None)
