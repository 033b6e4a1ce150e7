"""Configuration loaded from environment variables."""

import os
from typing import Optional

from .errors import ConfigurationError

DEFAULT_BUGZILLA_HOST = "https://bugzilla.mozilla.org"
DEFAULT_MODEL = "openai:gpt-5"
DEFAULT_DAYS = 8


class DigestConfig:
    """Credentials and endpoints for the trackers and the summarizer."""

    def __init__(self) -> None:
        """Initialize configuration from environment variables."""
        self.bugzilla_api_key: Optional[str] = os.getenv("BUGZILLA_API_KEY")
        self.bugzilla_host: str = (
            os.getenv("BUGZILLA_HOST") or DEFAULT_BUGZILLA_HOST
        ).rstrip("/")
        self.openai_api_key: Optional[str] = os.getenv("OPENAI_API_KEY")
        self.jira_url: Optional[str] = os.getenv("JIRA_URL")
        self.jira_api_key: Optional[str] = os.getenv("JIRA_API_KEY")
        self.github_token: Optional[str] = os.getenv("GITHUB_TOKEN")

    def missing(self, jira: bool = False) -> list[str]:
        """Names of required variables that are not set."""
        missing_vars = []
        if not self.bugzilla_api_key:
            missing_vars.append("BUGZILLA_API_KEY")
        if not self.openai_api_key:
            missing_vars.append("OPENAI_API_KEY")
        if jira:
            missing_vars.extend(self.missing_jira())
        return missing_vars

    def missing_jira(self) -> list[str]:
        missing_vars = []
        if not self.jira_url:
            missing_vars.append("JIRA_URL")
        if not self.jira_api_key:
            missing_vars.append("JIRA_API_KEY")
        return missing_vars

    def is_jira_configured(self) -> bool:
        return not self.missing_jira()

    def validate(self, jira: bool = False) -> None:
        """Validate configuration and raise error if invalid.

        Args:
            jira: Also require the Jira endpoint and credential.

        Raises:
            ConfigurationError: Naming every missing variable.
        """
        missing_vars = self.missing(jira=jira)
        if missing_vars:
            raise ConfigurationError(
                f"Environment variables required: {', '.join(missing_vars)}",
                missing=missing_vars,
            )

    def require_jira(self) -> None:
        """Raise unless both Jira settings are present.

        Raises:
            ConfigurationError: Naming the first missing Jira variable.
        """
        missing_vars = self.missing_jira()
        if missing_vars:
            raise ConfigurationError(
                f"{missing_vars[0]} is required", missing=missing_vars
            )
