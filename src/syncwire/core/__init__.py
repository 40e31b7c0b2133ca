"""Syncwire core: configuration and the application context."""

from syncwire.core.config import (
    ConfigError,
    IntegrationsConfig,
    LinearConfig,
    NotionConfig,
    SecurityConfig,
    StorageConfig,
    SyncwireConfig,
    WebhooksConfig,
    load_config,
)

__all__ = [
    # Config
    "ConfigError",
    "IntegrationsConfig",
    "LinearConfig",
    "NotionConfig",
    "SecurityConfig",
    "StorageConfig",
    "SyncwireConfig",
    "WebhooksConfig",
    "load_config",
]
