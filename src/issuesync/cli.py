"""issuesync command line.

Runs one GitHub -> JIRA pass and, unless ``--dry-run`` is given, advances
the ``since`` watermark in the config file afterwards.

Exit status: 0 pass completed, 1 pass failed, 2 configuration problem.
"""

from __future__ import annotations

import argparse
import json
import sys
from collections.abc import Sequence
from datetime import datetime
from pathlib import Path
from typing import Any

from issuesync.config import DEFAULT_CONFIG_PATH, load_config, save_watermark
from issuesync.core import IssueSync, format_summary
from issuesync.errors import IssueSyncError, ValidationError
from issuesync.github_rest import GitHubRestClient
from issuesync.jira_rest import JiraRestClient
from issuesync.logging import configure_logging

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CONFIG = 2

_MAX_HELP_WIDTH = 100


class _HelpFormatter(argparse.HelpFormatter):
    def __init__(self, prog: str) -> None:
        super().__init__(prog, max_help_position=30, width=_MAX_HELP_WIDTH)


class _FormatterArgumentParser(argparse.ArgumentParser):
    def __init__(self, *args: Any, **kwargs: Any) -> None:
        kwargs.setdefault("formatter_class", _HelpFormatter)
        super().__init__(*args, **kwargs)


def _build_parser() -> argparse.ArgumentParser:
    p = _FormatterArgumentParser(
        prog="issuesync", description="Mirror GitHub issues and comments into JIRA"
    )
    p.add_argument(
        "--config", help=f"Config file (default {DEFAULT_CONFIG_PATH}, optional when absent)"
    )
    p.add_argument("--log-level", help="debug, info, warning or error (default info)")
    p.add_argument("--log-json", action="store_true", help="Emit one JSON object per log line")
    p.add_argument("-t", "--github-token", help="GitHub token (env: GITHUB_TOKEN)")
    p.add_argument("-u", "--jira-user", help="JIRA username")
    p.add_argument("-p", "--jira-pass", help="JIRA password or API token (env: JIRA_API_TOKEN)")
    p.add_argument("-r", "--repo-name", help="GitHub repository (owner/name)")
    p.add_argument("-U", "--jira-uri", help="Base URL of the JIRA instance")
    p.add_argument("-P", "--jira-project", help="JIRA project key")
    p.add_argument("-s", "--since", help="Only sync issues updated after YYYY-MM-DDThh:mm:ss+hhmm")
    p.add_argument("-T", "--timeout", help="Retry budget per API call (seconds or 30s, 5m, 1h)")
    p.add_argument("-d", "--dry-run", action="store_true", help="Print changes instead of writing to JIRA")
    p.add_argument("--summary-json", help="Also write the pass summary as JSON to this path")
    return p


def _overrides(args: argparse.Namespace) -> dict[str, Any]:
    return {
        "log-level": args.log_level,
        "log-json": True if args.log_json else None,
        "github-token": args.github_token,
        "jira-user": args.jira_user,
        "jira-pass": args.jira_pass,
        "repo-name": args.repo_name,
        "jira-uri": args.jira_uri,
        "jira-project": args.jira_project,
        "since": args.since,
        "timeout": args.timeout,
        "dry-run": True if args.dry_run else None,
    }


def main(argv: Sequence[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    try:
        cfg = load_config(args.config, _overrides(args))
    except ValidationError as exc:
        print(f"configuration error: {exc}", file=sys.stderr)
        return EXIT_CONFIG

    logger = configure_logging(json_logging=cfg.log_json, level=cfg.log_level)
    options = cfg.to_options()
    github = GitHubRestClient(cfg.github_token, cfg.repo_name, policy=options.retry)
    jira = JiraRestClient(
        cfg.jira_uri, cfg.jira_user, cfg.jira_pass, cfg.jira_project, policy=options.retry
    )

    try:
        github.get_rate_limit()
        jira.get_project()
        jira.load_custom_fields()
    except ValidationError as exc:
        logger.log_error("JIRA is not set up for issuesync", error=str(exc))
        return EXIT_CONFIG
    except IssueSyncError as exc:
        logger.log_error("Could not connect to GitHub and JIRA", error=str(exc))
        return EXIT_FAILED

    started = datetime.now().astimezone()
    try:
        summary = IssueSync(github, jira, options).sync()
    except IssueSyncError:
        # already classified and logged by IssueSync
        return EXIT_FAILED

    print(format_summary(summary))
    if args.summary_json:
        Path(args.summary_json).write_text(json.dumps(summary, indent=2))
    if not cfg.dry_run:
        save_watermark(cfg.path, started)
        logger.debug(f"Saved since watermark to {cfg.path}")
    return EXIT_OK


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
