"""Unified configuration schema for notesync.

Defines Pydantic models for the YAML config structure with dedicated
sections for replication, the HTTP server, backups and logging. Includes
adapter functions that feed the ``Config`` dataclass used at runtime.

Usage:
    from notesync.config_schema import (
        UnifiedConfig, build_config, to_legacy_config,
    )

    raw = load_hierarchical_config()
    unified = build_config(raw)
    legacy = to_legacy_config(unified, cli_overrides={"sync_server_host": "https://..."})
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field

if TYPE_CHECKING:
    from .config import Config

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class SyncConfig(BaseModel):
    """Replication settings.

    All fields are optional to support zero-config: env vars and CLI args
    can supply them at runtime instead.
    """

    server_host: str | None = Field(
        default=None, description="Peer instance URL"
    )
    document_secret: str | None = Field(
        default=None, description="Shared HMAC secret"
    )
    timeout: float = Field(
        default=5.0, gt=0, le=600, description="Per-request timeout (s)"
    )
    interval: int = Field(
        default=60,
        ge=1,
        le=86400,
        description="Seconds between scheduled sync cycles",
    )
    initial_delay: float = Field(
        default=1.0, ge=0, description="Delay before the first cycle (s)"
    )
    page_size: int = Field(
        default=1_000_000,
        ge=1024,
        description="Max characters per pushed request body",
    )
    pull_batch_size: int = Field(
        default=1000,
        ge=1,
        le=100000,
        description="Max entity changes returned per pull request",
    )
    partial_request_ttl: int = Field(
        default=300,
        ge=1,
        description="Seconds before an unfinished chunked push is dropped",
    )
    insecure: bool = Field(
        default=False,
        description="Disable SSL verification (development only)",
    )

    model_config = {"frozen": True}


class ServerConfig(BaseModel):
    """HTTP server and storage location."""

    host: str = Field(default="127.0.0.1", description="Bind address")
    port: int = Field(default=8480, ge=1, le=65535, description="Bind port")
    data_dir: str | None = Field(
        default=None, description="Directory for database and backups"
    )
    debug: bool = Field(default=False, description="Enable debug mode")

    model_config = {"frozen": True}


class BackupConfig(BaseModel):
    """Periodic backup settings."""

    enabled: bool = Field(default=True, description="Run periodic backups")
    interval: int = Field(
        default=4 * 3600,
        ge=60,
        description="Seconds between backup checks",
    )

    model_config = {"frozen": True}


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        file: Optional log file path.
    """

    level: str = Field(default="INFO", description="Log level")
    file: str | None = Field(default=None, description="Log file path")

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Top-level unified config
# ---------------------------------------------------------------------------


class UnifiedConfig(BaseModel):
    """Top-level unified configuration.

    Every section has sensible defaults, so ``UnifiedConfig()``
    (zero-config) is always valid.
    """

    sync: SyncConfig = Field(default_factory=SyncConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    backup: BackupConfig = Field(default_factory=BackupConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Factory function
# ---------------------------------------------------------------------------


def build_config(raw_data: dict) -> UnifiedConfig:
    """Construct a ``UnifiedConfig`` from the raw dict returned by
    ``load_hierarchical_config()``.

    Handles missing sections gracefully; anything absent gets defaults.
    """
    if not raw_data:
        return UnifiedConfig()

    return UnifiedConfig(**raw_data)


# ---------------------------------------------------------------------------
# Adapters: UnifiedConfig -> Config dataclass
# ---------------------------------------------------------------------------


def to_fallbacks(unified: UnifiedConfig) -> dict[str, Any]:
    """Flatten the YAML sections into the fallback dict ``load_config()``
    consumes. ``None`` values are dropped so they never mask defaults."""
    values = {
        "sync_server_host": unified.sync.server_host,
        "document_secret": unified.sync.document_secret,
        "timeout": unified.sync.timeout,
        "interval": unified.sync.interval,
        "initial_delay": unified.sync.initial_delay,
        "page_size": unified.sync.page_size,
        "pull_batch_size": unified.sync.pull_batch_size,
        "partial_request_ttl": unified.sync.partial_request_ttl,
        "insecure": unified.sync.insecure,
        "data_dir": unified.server.data_dir,
        "debug": unified.server.debug,
        "backup_interval": unified.backup.interval,
    }
    return {k: v for k, v in values.items() if v is not None}


def to_legacy_config(
    unified: UnifiedConfig,
    cli_overrides: dict | None = None,
) -> Config:
    """Convert a ``UnifiedConfig`` into the ``Config`` dataclass,
    applying CLI overrides on top.

    The precedence applied here is:
        CLI override > unified config value > dataclass default

    Returns:
        ``Config`` instance (NOT validated; caller should run
        ``validate_config()`` separately if needed).
    """
    # config.py is imported lazily to keep this module import-cycle free
    from .config import Config

    overrides = cli_overrides or {}
    defaults = Config()

    return Config(
        sync_server_host=overrides.get("sync_server_host")
        or unified.sync.server_host,
        data_dir=overrides.get("data_dir")
        or unified.server.data_dir
        or defaults.data_dir,
        document_secret=overrides.get("document_secret")
        or unified.sync.document_secret,
        sync_timeout=unified.sync.timeout,
        sync_interval=unified.sync.interval,
        initial_delay=unified.sync.initial_delay,
        page_size=unified.sync.page_size,
        pull_batch_size=unified.sync.pull_batch_size,
        partial_request_ttl=unified.sync.partial_request_ttl,
        backup_interval=unified.backup.interval,
        insecure=overrides.get("insecure", False) or unified.sync.insecure,
        debug=overrides.get("debug", False) or unified.server.debug,
    )
