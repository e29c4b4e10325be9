"""Configuration for upstream-notify, loaded from YAML.

Example ``upstream-notify.yaml``:

    debug_mode: true
    resolver:
      default_suffix: "@example.com"
      excluded_users: [jenkins, release-bot]
      excluded_domains: [users.noreply.github.com]
      addresses:
        alice: [alice@example.com, "cc:team-lead@example.com"]
    jenkins:
      url: https://ci.example.com
      user: notifier

Secrets (the Jenkins token) should come from the environment, not the file.
"""

from __future__ import annotations

import os
from pathlib import Path

import yaml
from pydantic import BaseModel, Field

DEFAULT_CONFIG_PATH = "upstream-notify.yaml"


class ResolverConfig(BaseModel):
    """Settings for turning SCM users into email addresses."""

    addresses: dict[str, list[str]] = Field(
        default_factory=dict, description="user id -> addresses ('cc:'/'bcc:' prefixes route)"
    )
    default_suffix: str | None = Field(
        None, description="Appended to bare user ids, e.g. '@example.com'"
    )
    allow_unregistered: bool = Field(
        True, description="Fall back to default_suffix for users with no address"
    )
    excluded_users: list[str] = Field(default_factory=list)
    excluded_domains: list[str] = Field(default_factory=list)


class JenkinsConfig(BaseModel):
    """Connection settings for the Jenkins history loader."""

    url: str | None = None
    user: str | None = None
    token: str | None = None
    timeout: float = Field(30.0, gt=0)


class NotifierConfig(BaseModel):
    """Top-level configuration."""

    debug_mode: bool = False
    resolver: ResolverConfig = Field(default_factory=ResolverConfig)
    jenkins: JenkinsConfig = Field(default_factory=JenkinsConfig)


def load_config(path: str | Path | None = None) -> NotifierConfig:
    """Load and validate the YAML configuration.

    Resolution order for the path: the argument, then UPSTREAM_NOTIFY_CONFIG,
    then ./upstream-notify.yaml. Environment overrides are applied last.

    Args:
        path: Path to the YAML configuration file.

    Returns:
        A validated NotifierConfig. Returns defaults if the file doesn't exist.

    Raises:
        ValueError: If the YAML content is invalid or fails validation.
    """
    config_path = Path(path or os.environ.get("UPSTREAM_NOTIFY_CONFIG", DEFAULT_CONFIG_PATH))
    if config_path.exists():
        try:
            raw = yaml.safe_load(config_path.read_text()) or {}
        except yaml.YAMLError as exc:
            raise ValueError(f"Invalid YAML in {config_path}: {exc}") from exc

        try:
            config = NotifierConfig.model_validate(raw)
        except Exception as exc:
            raise ValueError(f"Invalid config in {config_path}: {exc}") from exc
    else:
        config = NotifierConfig()

    return apply_env_overrides(config)


def apply_env_overrides(config: NotifierConfig) -> NotifierConfig:
    """Fill Jenkins credentials and debug mode from the environment."""
    jenkins = config.jenkins.model_copy(
        update={
            "url": os.environ.get("JENKINS_URL") or config.jenkins.url,
            "user": os.environ.get("JENKINS_USER") or config.jenkins.user,
            "token": os.environ.get("JENKINS_TOKEN") or config.jenkins.token,
        }
    )
    debug = os.environ.get("UPSTREAM_NOTIFY_DEBUG")
    debug_mode = config.debug_mode if debug is None else debug.lower() in ("1", "true", "yes")
    return config.model_copy(update={"jenkins": jenkins, "debug_mode": debug_mode})
