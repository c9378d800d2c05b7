"""Flat YAML configuration with environment and command line overrides.

Example ``.issuesync.yaml``::

    repo-name: octo-org/octo-repo
    jira-uri: https://example.atlassian.net/
    jira-user: sync-bot@example.com
    jira-project: OCTO
    since: 2024-01-01T00:00:00+0000
    timeout: 5m

Precedence, highest first: explicit overrides (the CLI), ``ISSUESYNC_<KEY>``
environment variables (``-`` becomes ``_``), the file, built-in defaults.
"""

from __future__ import annotations

import os
import re
import tempfile
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, cast
from urllib.parse import urlparse

import yaml

from .core import DEFAULT_ISSUE_TYPE, SyncOptions
from .diffing import format_timestamp, parse_timestamp
from .env_auth import EnvAuthManager
from .errors import ValidationError
from .retry import RetryPolicy

# Kept for callers that catch configuration problems by the loader's name.
ConfigError = ValidationError

DEFAULT_CONFIG_PATH = ".issuesync.yaml"
DEFAULT_SINCE = "1970-01-01T00:00:00+0000"
DEFAULT_TIMEOUT = 60.0

KEYS = (
    "log-level",
    "log-json",
    "github-token",
    "repo-name",
    "jira-uri",
    "jira-user",
    "jira-pass",
    "jira-project",
    "issue-type",
    "since",
    "timeout",
    "dry-run",
)

DEFAULTS: dict[str, Any] = {
    "log-level": "info",
    "log-json": False,
    "issue-type": DEFAULT_ISSUE_TYPE,
    "since": DEFAULT_SINCE,
    "timeout": DEFAULT_TIMEOUT,
    "dry-run": False,
}

# Never written back by save_watermark.
SECRET_KEYS = ("jira-pass",)

_DURATION = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*([smh]?)\s*$")
_DURATION_UNITS = {"": 1, "s": 1, "m": 60, "h": 3600}
_REPO = re.compile(r"^[\w.-]+/[\w.-]+$")
_TRUE = {"1", "true", "yes", "on"}


@dataclass
class SyncConfig:
    path: Path
    log_level: str
    log_json: bool
    github_token: str
    repo_name: str
    jira_uri: str
    jira_user: str
    jira_pass: str
    jira_project: str
    issue_type: str
    since: datetime
    timeout: float
    dry_run: bool

    def to_options(self) -> SyncOptions:
        return SyncOptions(
            repo=self.repo_name,
            project_key=self.jira_project,
            since=self.since,
            dry_run=self.dry_run,
            retry=RetryPolicy(max_elapsed_time=self.timeout),
            issue_type=self.issue_type,
        )


def env_var_for(key: str) -> str:
    return "ISSUESYNC_" + key.upper().replace("-", "_")


def parse_duration(value: Any) -> float:
    """Seconds from ``90``, ``"90"``, ``"30s"``, ``"5m"`` or ``"1h"``."""
    if isinstance(value, bool):
        raise ValidationError(f"invalid timeout: {value!r}")
    if isinstance(value, (int, float)):
        seconds = float(value)
    else:
        m = _DURATION.match(str(value))
        if not m:
            raise ValidationError(f"invalid timeout: {value!r} (use seconds or 30s, 5m, 1h)")
        seconds = float(m.group(1)) * _DURATION_UNITS[m.group(2)]
    if seconds <= 0:
        raise ValidationError(f"timeout must be positive, got {value!r}")
    return seconds


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in _TRUE
    return bool(value)


def _read_file(path: Path, required: bool) -> dict[str, Any]:
    if not path.exists():
        if required:
            raise ConfigError(f"Configuration file not found: {path}")
        return {}
    try:
        raw = yaml.safe_load(path.read_text()) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Configuration file {path} is not valid YAML: {exc}") from exc
    if not isinstance(raw, dict):
        raise ConfigError(f"Configuration file {path} must contain a mapping")
    unknown = sorted(k for k in raw if k not in KEYS)
    if unknown:
        raise ConfigError(f"Unknown configuration keys in {path}: {', '.join(map(str, unknown))}")
    return cast(dict[str, Any], raw)


def _from_env(auth: EnvAuthManager) -> dict[str, Any]:
    values: dict[str, Any] = {}
    for key in KEYS:
        raw = os.getenv(env_var_for(key))
        if raw:
            values[key] = raw
    token = auth.get_github_token()
    if token:
        values["github-token"] = token
    password = auth.get_jira_password()
    if password:
        values["jira-pass"] = password
    return values


def _require(merged: Mapping[str, Any], key: str) -> str:
    value = merged.get(key)
    if value is None or str(value).strip() == "":
        raise ValidationError(
            f"missing required setting '{key}' (config file, {env_var_for(key)} or --{key})"
        )
    return str(value).strip()


def _validate(path: Path, merged: Mapping[str, Any]) -> SyncConfig:
    repo = _require(merged, "repo-name")
    if not _REPO.match(repo):
        raise ValidationError(f"repo-name must look like owner/name, got {repo!r}")
    uri = _require(merged, "jira-uri")
    parsed = urlparse(uri)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValidationError(f"jira-uri must be an absolute http(s) URL, got {uri!r}")
    since_value = merged.get("since") or DEFAULT_SINCE
    if isinstance(since_value, datetime):
        # YAML resolves "+hh:mm" offsets to a datetime on its own
        since = since_value if since_value.tzinfo else since_value.replace(tzinfo=timezone.utc)
    else:
        try:
            since = parse_timestamp(str(since_value).strip())
        except ValueError as exc:
            raise ValidationError(
                f"since must use the layout YYYY-MM-DDThh:mm:ss+hhmm, got {since_value!r}"
            ) from exc
    log_level = str(merged.get("log-level") or "info").lower()
    if log_level not in ("debug", "info", "warning", "warn", "error", "critical"):
        raise ValidationError(f"unknown log-level {log_level!r}")
    return SyncConfig(
        path=path,
        log_level="warning" if log_level == "warn" else log_level,
        log_json=_as_bool(merged.get("log-json")),
        github_token=_require(merged, "github-token"),
        repo_name=repo,
        jira_uri=uri,
        jira_user=_require(merged, "jira-user"),
        jira_pass=_require(merged, "jira-pass"),
        jira_project=_require(merged, "jira-project"),
        issue_type=str(merged.get("issue-type") or DEFAULT_ISSUE_TYPE),
        since=since,
        timeout=parse_duration(merged.get("timeout", DEFAULT_TIMEOUT)),
        dry_run=_as_bool(merged.get("dry-run")),
    )


def load_config(
    path: str | Path | None = None,
    overrides: Mapping[str, Any] | None = None,
    *,
    auth: EnvAuthManager | None = None,
) -> SyncConfig:
    """Merge defaults, file, environment and ``overrides`` into a validated config.

    A missing file is only an error when ``path`` was given explicitly.
    """
    p = Path(path) if path else Path(DEFAULT_CONFIG_PATH)
    merged: dict[str, Any] = dict(DEFAULTS)
    merged.update(_read_file(p, required=path is not None))
    auth = auth or EnvAuthManager()
    merged.update(_from_env(auth))
    for key, value in (overrides or {}).items():
        if value is not None:
            merged[key] = value
    for key, env_names in auth.missing_credentials().items():
        if not str(merged.get(key) or "").strip():
            raise ValidationError(
                f"missing required setting '{key}' (config file, {env_names} or --{key})"
            )
    return _validate(p, merged)


def save_watermark(path: str | Path, since: datetime) -> None:
    """Rewrite ``since`` in the config file, keeping the other keys.

    The JIRA password is dropped rather than persisted. The file is replaced
    atomically so an interrupted write never leaves a truncated config.
    """
    p = Path(path)
    data: dict[str, Any] = {}
    if p.exists():
        loaded = yaml.safe_load(p.read_text()) or {}
        if isinstance(loaded, dict):
            data = dict(loaded)
    for key in SECRET_KEYS:
        data.pop(key, None)
    data["since"] = format_timestamp(since)
    p.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(prefix=f".{p.name}.", dir=str(p.parent))
    try:
        with os.fdopen(fd, "w") as fh:
            yaml.safe_dump(data, fh, default_flow_style=False, sort_keys=False)
        os.replace(tmp, p)
    except BaseException:
        Path(tmp).unlink(missing_ok=True)
        raise


__all__ = [
    "ConfigError",
    "DEFAULT_CONFIG_PATH",
    "DEFAULT_SINCE",
    "SyncConfig",
    "env_var_for",
    "load_config",
    "parse_duration",
    "save_watermark",
]
