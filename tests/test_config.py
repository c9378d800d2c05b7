from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
import yaml

from issuesync.config import (
    ConfigError,
    load_config,
    parse_duration,
    save_watermark,
)
from issuesync.env_auth import EnvAuthConfig, EnvAuthManager
from issuesync.errors import ValidationError

BASE = {
    "github-token": "ghp_" + "a" * 36,
    "repo-name": "octo-org/octo-repo",
    "jira-uri": "https://example.atlassian.net/",
    "jira-user": "bot@example.com",
    "jira-pass": "hunter2",
    "jira-project": "OCTO",
}


def _auth() -> EnvAuthManager:
    return EnvAuthManager(EnvAuthConfig(load_dotenv=False))


def _write(tmp_path: Path, data: dict) -> Path:
    path = tmp_path / ".issuesync.yaml"
    path.write_text(yaml.safe_dump(data))
    return path


def test_defaults_applied(tmp_path: Path):
    cfg = load_config(_write(tmp_path, BASE), auth=_auth())
    assert cfg.since == datetime(1970, 1, 1, tzinfo=timezone.utc)
    assert cfg.timeout == 60.0
    assert cfg.issue_type == "Task"
    assert cfg.log_level == "info"
    assert cfg.dry_run is False


def test_precedence_cli_over_env_over_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    path = _write(tmp_path, {**BASE, "jira-project": "FILE", "timeout": "5m"})
    monkeypatch.setenv("ISSUESYNC_JIRA_PROJECT", "ENV")
    monkeypatch.setenv("ISSUESYNC_DRY_RUN", "true")
    cfg = load_config(path, auth=_auth())
    assert cfg.jira_project == "ENV"
    assert cfg.timeout == 300.0
    assert cfg.dry_run is True

    cfg = load_config(path, {"jira-project": "CLI", "timeout": None}, auth=_auth())
    assert cfg.jira_project == "CLI"
    assert cfg.timeout == 300.0


def test_credentials_from_alternative_env_vars(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    data = {k: v for k, v in BASE.items() if k not in ("github-token", "jira-pass")}
    monkeypatch.setenv("GH_TOKEN", "from-gh-token")
    monkeypatch.setenv("JIRA_API_TOKEN", "api-token")
    cfg = load_config(_write(tmp_path, data), auth=_auth())
    assert cfg.github_token == "from-gh-token"
    assert cfg.jira_pass == "api-token"


def test_to_options_threads_timeout_into_retry(tmp_path: Path):
    cfg = load_config(
        _write(tmp_path, {**BASE, "since": "2024-03-01T10:00:00+0200", "timeout": 90}),
        auth=_auth(),
    )
    options = cfg.to_options()
    assert options.repo == "octo-org/octo-repo"
    assert options.project_key == "OCTO"
    assert options.since == datetime(2024, 3, 1, 10, tzinfo=timezone(timedelta(hours=2)))
    assert options.retry.max_elapsed_time == 90.0


@pytest.mark.parametrize(
    ("override", "message"),
    [
        ({"repo-name": "no-slash"}, "owner/name"),
        ({"jira-uri": "example.com"}, "absolute http"),
        ({"since": "2024-01-01"}, "since"),
        ({"jira-user": ""}, "jira-user"),
        ({"timeout": "-3"}, "timeout"),
        ({"log-level": "loud"}, "log-level"),
    ],
)
def test_validation_errors(tmp_path: Path, override: dict, message: str):
    with pytest.raises(ValidationError, match=message):
        load_config(_write(tmp_path, {**BASE, **override}), auth=_auth())


def test_missing_explicit_file_and_unknown_keys(tmp_path: Path):
    with pytest.raises(ConfigError, match="not found"):
        load_config(tmp_path / "nope.yaml", auth=_auth())
    with pytest.raises(ConfigError, match="Unknown configuration keys"):
        load_config(_write(tmp_path, {**BASE, "jira-pasword": "typo"}), auth=_auth())


def test_default_path_may_be_absent(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.chdir(tmp_path)
    cfg = load_config(None, BASE, auth=_auth())
    assert cfg.path == Path(".issuesync.yaml")


@pytest.mark.parametrize(
    ("raw", "seconds"), [(30, 30.0), ("45", 45.0), ("30s", 30.0), ("5m", 300.0), ("1h", 3600.0), (1.5, 1.5)]
)
def test_parse_duration(raw, seconds):
    assert parse_duration(raw) == seconds


def test_parse_duration_rejects_garbage():
    for raw in ("soon", "0", True, "10d"):
        with pytest.raises(ValidationError):
            parse_duration(raw)


def test_save_watermark_keeps_keys_and_drops_password(tmp_path: Path):
    path = _write(tmp_path, {**BASE, "timeout": "5m"})
    moment = datetime(2024, 5, 2, 12, 30, tzinfo=timezone(timedelta(hours=-7)))

    save_watermark(path, moment)

    saved = yaml.safe_load(path.read_text())
    assert saved["since"] == "2024-05-02T12:30:00-0700"
    assert saved["timeout"] == "5m"
    assert saved["repo-name"] == "octo-org/octo-repo"
    assert "jira-pass" not in saved
    assert [p.name for p in tmp_path.iterdir()] == [".issuesync.yaml"]

    cfg = load_config(path, {"jira-pass": "x"}, auth=_auth())
    assert cfg.since == moment


def test_missing_credentials_name_every_env_var(tmp_path: Path):
    data = {k: v for k, v in BASE.items() if k != "github-token"}
    with pytest.raises(ValidationError) as excinfo:
        load_config(_write(tmp_path, data), auth=_auth())
    message = str(excinfo.value)
    assert "'github-token'" in message
    assert "ISSUESYNC_GITHUB_TOKEN or GITHUB_TOKEN or GH_TOKEN" in message

    data = {k: v for k, v in BASE.items() if k != "jira-pass"}
    with pytest.raises(ValidationError, match="ISSUESYNC_JIRA_PASS or JIRA_API_TOKEN"):
        load_config(_write(tmp_path, data), auth=_auth())
