"""Credentials from environment variables and ``.env`` files.

Tokens are never read from the YAML config by preference: the environment
(optionally seeded from a ``.env`` file) is consulted first so secrets can
stay out of the checked-in configuration.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

from .logging import get_logger

DOTENV_LOCATIONS = (".env", ".env.local")


@dataclass
class EnvAuthConfig:
    load_dotenv: bool = True
    dotenv_path: str | None = None
    github_token_vars: tuple[str, ...] = field(
        default=("ISSUESYNC_GITHUB_TOKEN", "GITHUB_TOKEN", "GH_TOKEN")
    )
    jira_password_vars: tuple[str, ...] = field(
        default=("ISSUESYNC_JIRA_PASS", "JIRA_API_TOKEN")
    )


class EnvAuthManager:
    """Resolves the GitHub token and JIRA password from the environment."""

    def __init__(self, config: EnvAuthConfig | None = None):
        self.config = config or EnvAuthConfig()
        self.logger = get_logger()
        self.dotenv_loaded: Path | None = None
        if self.config.load_dotenv:
            self._load_dotenv()

    def _load_dotenv(self) -> None:
        candidates = (
            [self.config.dotenv_path] if self.config.dotenv_path else list(DOTENV_LOCATIONS)
        )
        for location in candidates:
            env_file = Path(location)
            if env_file.is_file():
                # existing environment variables win over the file
                load_dotenv(str(env_file), override=False)
                self.dotenv_loaded = env_file
                self.logger.debug(f"Loaded environment variables from {env_file}")
                return

    def _first(self, names: tuple[str, ...], what: str) -> str | None:
        for name in names:
            value = os.getenv(name)
            if value:
                self.logger.debug(f"Found {what} in {name}")
                return value
        return None

    def get_github_token(self) -> str | None:
        return self._first(self.config.github_token_vars, "GitHub token")

    def get_jira_password(self) -> str | None:
        return self._first(self.config.jira_password_vars, "JIRA password")

    def missing_credentials(self) -> dict[str, str]:
        """Setting name -> environment variables to set, for each missing secret."""
        missing: dict[str, str] = {}
        if not self.get_github_token():
            missing["github-token"] = " or ".join(self.config.github_token_vars)
        if not self.get_jira_password():
            missing["jira-pass"] = " or ".join(self.config.jira_password_vars)
        return missing


__all__ = ["EnvAuthConfig", "EnvAuthManager"]
