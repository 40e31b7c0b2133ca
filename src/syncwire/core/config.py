"""
Syncwire configuration management.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

DEFAULT_CONFIG_PATH = Path(".syncwire") / "config.yaml"


class ConfigError(Exception):
    """Raised when configuration is invalid or incomplete."""


@dataclass
class StorageConfig:
    """SQLite storage location."""

    path: str = ".syncwire/data.db"


@dataclass
class WebhooksConfig:
    """Outbound webhook delivery settings."""

    timeout_seconds: float = 30.0
    max_attempts: int = 3
    # Delay before the next attempt, indexed by attempts already made
    retry_delays: list[int] = field(default_factory=lambda: [300, 1800, 7200])
    batch_limit: int = 50
    user_agent: str = "Syncwire-Webhook/1.0"


@dataclass
class LinearConfig:
    """Issue tracker (Linear) integration settings."""

    enabled: bool = True
    team_id: str | None = None  # Required to create issues from projects
    api_url: str = "https://api.linear.app/graphql"
    timeout_seconds: float = 20.0


@dataclass
class NotionConfig:
    """Workspace (Notion) integration settings."""

    enabled: bool = True
    projects_database_id: str | None = None
    api_url: str = "https://api.notion.com/v1"
    notion_version: str = "2022-06-28"
    timeout_seconds: float = 20.0


@dataclass
class IntegrationsConfig:
    linear: LinearConfig = field(default_factory=LinearConfig)
    notion: NotionConfig = field(default_factory=NotionConfig)


@dataclass
class SecurityConfig:
    """Credential encryption settings."""

    master_key_env: str = "SYNCWIRE_MASTER_KEY"
    kdf_iterations: int = 100_000

    def master_key(self) -> str:
        """
        Read the master key from the configured environment variable.

        Raises:
            ConfigError: if the variable is unset.
        """
        value = os.getenv(self.master_key_env, "")
        if not value:
            raise ConfigError(
                f"Environment variable {self.master_key_env} must hold the "
                "credential master key"
            )
        return value


@dataclass
class SyncwireConfig:
    """
    Complete Syncwire configuration.

    Loaded from .syncwire/config.yaml with environment overrides.
    """

    version: str = "1"
    storage: StorageConfig = field(default_factory=StorageConfig)
    webhooks: WebhooksConfig = field(default_factory=WebhooksConfig)
    integrations: IntegrationsConfig = field(default_factory=IntegrationsConfig)
    security: SecurityConfig = field(default_factory=SecurityConfig)

    @classmethod
    def from_file(cls, path: Path) -> "SyncwireConfig":
        """Load configuration from YAML file."""
        if not path.exists():
            return cls()

        with open(path) as f:
            data = yaml.safe_load(f) or {}

        if not isinstance(data, dict):
            raise ConfigError(f"{path} must contain a mapping")

        return cls.from_dict(data.get("syncwire", data))

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SyncwireConfig":
        """Create config from dictionary."""
        config = cls()

        if "version" in data:
            config.version = str(data["version"])

        if "storage" in data:
            config.storage.path = data["storage"].get("path", config.storage.path)

        if "webhooks" in data:
            w = data["webhooks"]
            config.webhooks = WebhooksConfig(
                timeout_seconds=float(w.get("timeout_seconds", 30.0)),
                max_attempts=int(w.get("max_attempts", 3)),
                retry_delays=[int(d) for d in w.get("retry_delays", [300, 1800, 7200])],
                batch_limit=int(w.get("batch_limit", 50)),
                user_agent=w.get("user_agent", "Syncwire-Webhook/1.0"),
            )

        if "integrations" in data:
            i = data["integrations"]
            if "linear" in i:
                lin = i["linear"] or {}
                config.integrations.linear = LinearConfig(
                    enabled=lin.get("enabled", True),
                    team_id=lin.get("team_id"),
                    api_url=lin.get("api_url", LinearConfig.api_url),
                    timeout_seconds=float(lin.get("timeout_seconds", 20.0)),
                )
            if "notion" in i:
                no = i["notion"] or {}
                config.integrations.notion = NotionConfig(
                    enabled=no.get("enabled", True),
                    projects_database_id=no.get("projects_database_id"),
                    api_url=no.get("api_url", NotionConfig.api_url),
                    notion_version=no.get("notion_version", NotionConfig.notion_version),
                    timeout_seconds=float(no.get("timeout_seconds", 20.0)),
                )

        if "security" in data:
            s = data["security"]
            config.security = SecurityConfig(
                master_key_env=s.get("master_key_env", "SYNCWIRE_MASTER_KEY"),
                kdf_iterations=int(s.get("kdf_iterations", 100_000)),
            )

        config.validate()
        return config

    def apply_env(self) -> "SyncwireConfig":
        """Apply environment variable overrides in place."""
        if os.getenv("SYNCWIRE_DB"):
            self.storage.path = os.environ["SYNCWIRE_DB"]
        if os.getenv("SYNCWIRE_WEBHOOK_TIMEOUT"):
            self.webhooks.timeout_seconds = float(os.environ["SYNCWIRE_WEBHOOK_TIMEOUT"])
        if os.getenv("SYNCWIRE_WEBHOOK_MAX_ATTEMPTS"):
            self.webhooks.max_attempts = int(os.environ["SYNCWIRE_WEBHOOK_MAX_ATTEMPTS"])
        if os.getenv("SYNCWIRE_LINEAR_TEAM_ID"):
            self.integrations.linear.team_id = os.environ["SYNCWIRE_LINEAR_TEAM_ID"]
        if os.getenv("SYNCWIRE_NOTION_DATABASE_ID"):
            self.integrations.notion.projects_database_id = os.environ[
                "SYNCWIRE_NOTION_DATABASE_ID"
            ]
        self.validate()
        return self

    def validate(self) -> None:
        """
        Raises:
            ConfigError: on values the delivery engine cannot work with.
        """
        if self.webhooks.max_attempts < 1:
            raise ConfigError("webhooks.max_attempts must be at least 1")
        if not self.webhooks.retry_delays:
            raise ConfigError("webhooks.retry_delays must not be empty")
        if any(d < 0 for d in self.webhooks.retry_delays):
            raise ConfigError("webhooks.retry_delays must be non-negative")
        if self.webhooks.batch_limit < 1:
            raise ConfigError("webhooks.batch_limit must be at least 1")
        if self.webhooks.timeout_seconds <= 0:
            raise ConfigError("webhooks.timeout_seconds must be positive")

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for YAML serialization."""
        return {
            "syncwire": {
                "version": self.version,
                "storage": {"path": self.storage.path},
                "webhooks": {
                    "timeout_seconds": self.webhooks.timeout_seconds,
                    "max_attempts": self.webhooks.max_attempts,
                    "retry_delays": list(self.webhooks.retry_delays),
                    "batch_limit": self.webhooks.batch_limit,
                    "user_agent": self.webhooks.user_agent,
                },
                "integrations": {
                    "linear": {
                        "enabled": self.integrations.linear.enabled,
                        "team_id": self.integrations.linear.team_id,
                        "api_url": self.integrations.linear.api_url,
                        "timeout_seconds": self.integrations.linear.timeout_seconds,
                    },
                    "notion": {
                        "enabled": self.integrations.notion.enabled,
                        "projects_database_id": self.integrations.notion.projects_database_id,
                        "api_url": self.integrations.notion.api_url,
                        "notion_version": self.integrations.notion.notion_version,
                        "timeout_seconds": self.integrations.notion.timeout_seconds,
                    },
                },
                "security": {
                    "master_key_env": self.security.master_key_env,
                    "kdf_iterations": self.security.kdf_iterations,
                },
            }
        }

    def save(self, path: Path) -> None:
        """Save configuration to YAML file."""
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            yaml.dump(self.to_dict(), f, default_flow_style=False, sort_keys=False)


def load_config(path: Path | None = None) -> SyncwireConfig:
    """
    Load configuration from ``path``, ``$SYNCWIRE_CONFIG`` or the default
    location, then apply environment overrides.
    """
    if path is None:
        path = Path(os.getenv("SYNCWIRE_CONFIG", str(DEFAULT_CONFIG_PATH)))
    return SyncwireConfig.from_file(path).apply_env()
