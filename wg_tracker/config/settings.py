"""
Configuration system using Pydantic for type-safe settings management.

The tracker is configured by a single YAML file passed on the command line::

    github:
      token: ${GITHUB_TOKEN}
    wg_repo: w3c/csswg-drafts
    decisions_repo: example/csswg-decisions
    state_directory: /var/lib/wg-tracker
    start_date: "2024-01-01"
    bugzilla:
      base_url: https://bugzilla.example.org
      api_key: ${BUGZILLA_API_KEY}
"""

from __future__ import annotations

import os
import re
from datetime import UTC, datetime
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from wg_tracker.exceptions import ConfigurationError
from wg_tracker.models.domain import RepositoryRef

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


class GitHubConfig(BaseModel):
    """GitHub API access."""

    token: SecretStr = Field(..., description="Token with repo scope on both repositories")
    api_url: str = Field(default="https://api.github.com/graphql", description="GraphQL endpoint")
    web_url: str = Field(default="https://github.com", description="Base URL for issue links")

    @field_validator("web_url", "api_url")
    @classmethod
    def strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")


class BugzillaConfig(BaseModel):
    """Bug tracker access."""

    base_url: str = Field(..., description="Bugzilla base URL, e.g. https://bugzilla.mozilla.org")
    api_key: SecretStr = Field(..., description="Bugzilla API key")

    @field_validator("base_url")
    @classmethod
    def strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")


class PolicySourceConfig(BaseModel):
    """Where to read the decisions repository policy from.

    ``file`` wins over ``url``. With neither, the policy is read from
    ``config.yaml`` on ``branch`` of the decisions repository.
    """

    file: str | None = Field(default=None, description="Local policy file path")
    url: str | None = Field(default=None, description="Policy file URL")
    branch: str = Field(default="master", description="Branch holding config.yaml")


class TrackerSettings(BaseSettings):
    """Main tracker settings.

    Combines all configuration sections and provides loading from YAML
    files with environment variable interpolation.
    """

    model_config = SettingsConfigDict(
        env_prefix="WG_TRACKER_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    github: GitHubConfig
    wg_repo: str = Field(..., description="Working group repository, 'owner/repo'")
    decisions_repo: str = Field(..., description="Decisions repository, 'owner/repo'")
    state_directory: str = Field(default=".wg-tracker", description="Directory for snapshot and lock")
    start_date: str = Field(..., description="Initial watermark date, 'YYYY-MM-DD'")
    bugzilla: BugzillaConfig
    policy: PolicySourceConfig = Field(default_factory=PolicySourceConfig)

    @field_validator("wg_repo", "decisions_repo")
    @classmethod
    def validate_repo(cls, value: str) -> str:
        RepositoryRef.parse(value)
        return value

    @field_validator("start_date")
    @classmethod
    def validate_start_date(cls, value: str) -> str:
        if not _DATE_RE.match(value):
            raise ValueError("start_date must have 'YYYY-MM-DD' syntax")
        datetime.strptime(value, "%Y-%m-%d")
        return value

    @property
    def state_dir(self) -> Path:
        """Get state directory as Path object."""
        return Path(self.state_directory)

    @property
    def wg(self) -> RepositoryRef:
        return RepositoryRef.parse(self.wg_repo)

    @property
    def decisions(self) -> RepositoryRef:
        return RepositoryRef.parse(self.decisions_repo)

    @property
    def start_time(self) -> datetime:
        """Midnight UTC on ``start_date``; the watermark of a fresh state."""
        return datetime.strptime(self.start_date, "%Y-%m-%d").replace(tzinfo=UTC)

    def wg_repo_url(self) -> str:
        return f"{self.github.web_url}/{self.wg_repo}"

    def decisions_repo_url(self) -> str:
        return f"{self.github.web_url}/{self.decisions_repo}"

    def policy_url(self) -> str:
        """URL of the policy file when no local file is configured."""
        if self.policy.url:
            return self.policy.url
        return f"https://raw.githubusercontent.com/{self.decisions_repo}/{self.policy.branch}/config.yaml"

    @classmethod
    def from_yaml(cls, config_path: str) -> TrackerSettings:
        """Load settings from YAML file with environment variable interpolation.

        Supports ${VAR_NAME} syntax for environment variable substitution.

        Args:
            config_path: Path to YAML configuration file

        Returns:
            TrackerSettings instance

        Raises:
            ConfigurationError: If config file is invalid or missing required fields
        """
        config_file = Path(config_path)
        if not config_file.exists():
            raise ConfigurationError(f"Configuration file not found: {config_path}")

        try:
            yaml_content = config_file.read_text()
        except OSError as e:
            raise ConfigurationError(f"Cannot read configuration file: {config_path}") from e

        try:
            yaml_content = cls._interpolate_env_vars(yaml_content)
        except ValueError as e:
            raise ConfigurationError(f"Invalid environment variable reference in config: {e}") from e

        try:
            config_dict = yaml.safe_load(yaml_content)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML syntax in {config_path}: {e}") from e
        if not isinstance(config_dict, dict):
            raise ConfigurationError("Configuration must be a YAML object, not a list or scalar")

        try:
            return cls(**config_dict)
        except Exception as e:
            raise ConfigurationError(f"Failed to validate configuration: {e}") from e

    @staticmethod
    def _interpolate_env_vars(content: str) -> str:
        """Interpolate ${VAR_NAME} placeholders with environment variables.

        Supports two syntaxes:
        - ${VAR_NAME} - Required environment variable (raises if not set)
        - ${VAR_NAME:-default} - Optional with default value

        YAML comment lines are left untouched.

        Raises:
            ValueError: If a required environment variable is not set
        """
        pattern = re.compile(r"\$\{([A-Z_][A-Z0-9_]*)(?::-([^}]*))?\}")

        def replace_var(match: re.Match[str]) -> str:
            var_name = match.group(1)
            default_value = match.group(2)
            value = os.getenv(var_name)

            if value is not None:
                return value
            elif default_value is not None:
                return default_value
            else:
                raise ValueError(f"Environment variable {var_name} is not set")

        def process_line(line: str) -> str:
            if line.lstrip().startswith("#"):
                return line
            return pattern.sub(replace_var, line)

        return "\n".join(process_line(line) for line in content.split("\n"))
