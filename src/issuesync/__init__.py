"""issuesync - one-way GitHub to JIRA issue and comment mirroring.

High-level public API:

from issuesync import IssueSync, load_config

cfg = load_config('.issuesync.yaml')
summary = IssueSync(github_client, jira_client, cfg.to_options()).sync()
print(summary['totals'])

GitHub is the source of truth; JIRA issues are created and updated to match,
never deleted. The CLI (``issuesync``) wires the REST clients to this API.
"""

from __future__ import annotations

from .config import SyncConfig, load_config, save_watermark
from .core import IssueReconciler, IssueSync, SyncOptions, format_summary

__version__ = "0.1.0"

__all__ = [
    "IssueReconciler",
    "IssueSync",
    "SyncConfig",
    "SyncOptions",
    "__version__",
    "format_summary",
    "load_config",
    "save_watermark",
]
