"""Wiring of one running notesync instance.

``load_runtime_config()`` merges the configuration sources and
``build_context()`` opens the store and creates the components shared by
the HTTP API, the CLI and the MCP tools. ``AppContext.start()`` and
``stop()`` manage the background timers: sync, partial-request reaper and
periodic backup.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Any

from dotenv import load_dotenv

from .backup import BackupService
from .config import Config, load_config
from .config_loader import discover_config_files, load_hierarchical_config
from .config_schema import UnifiedConfig, build_config, to_fallbacks
from .core.client import SyncClient
from .db.repository import NoteRepository
from .db.store import NoteStore
from .sync.content_hash import ContentHasher
from .sync.entity_changes import EntityChangeLog
from .sync.mutex import SyncMutex
from .sync.partial import PartialRequestStore
from .sync.scheduler import PeriodicTask, SyncScheduler
from .sync.session import ClientFactory, SyncSession
from .sync.updater import EntityUpdater

logger = logging.getLogger(__name__)

REAPER_INTERVAL = 60
BACKUP_INITIAL_DELAY = 5 * 60


@dataclass
class AppContext:
    config: Config
    store: NoteStore
    mutex: SyncMutex
    session: SyncSession
    scheduler: SyncScheduler
    partials: PartialRequestStore
    backups: BackupService
    changes: EntityChangeLog
    hasher: ContentHasher
    updater: EntityUpdater
    repository: NoteRepository
    backup_enabled: bool = True
    _tasks: list[PeriodicTask] = field(default_factory=list)

    def start(self) -> None:
        """Start the sync, reaper and backup timers."""
        self.scheduler.start()

        self._tasks = [
            PeriodicTask("reaper", self.partials.reap, interval=REAPER_INTERVAL)
        ]
        if self.backup_enabled:
            self._tasks.append(
                PeriodicTask(
                    "backup",
                    self.backups.regular_backup,
                    interval=self.config.backup_interval,
                    initial_delay=BACKUP_INITIAL_DELAY,
                )
            )
        for task in self._tasks:
            task.start()

    def stop(self) -> None:
        self.scheduler.stop()
        for task in self._tasks:
            task.stop()
        self._tasks = []

    def kick_off_sync(self) -> threading.Thread:
        """Run one sync cycle on a background thread."""
        thread = threading.Thread(
            target=self.scheduler.tick, name="notesync-sync-now", daemon=True
        )
        thread.start()
        return thread

    def close(self) -> None:
        self.stop()
        self.store.close()


def load_runtime_config(
    overrides: dict[str, Any] | None = None,
) -> tuple[Config, UnifiedConfig, list[str]]:
    """Merge every configuration source.

    Precedence: CLI overrides > env vars (``.env`` loaded first) > YAML
    config > defaults.

    Returns:
        The runtime ``Config``, the parsed YAML ``UnifiedConfig`` and a
        list describing the sources that contributed.

    Raises:
        ValueError: If a value is invalid.
    """
    # .env first so ${VAR} interpolation in YAML can use its values
    load_dotenv()

    sources: list[str] = []
    unified = UnifiedConfig()
    config_files = discover_config_files()
    if config_files:
        unified = build_config(load_hierarchical_config())
        sources.append(f"config file: {config_files[0]}")

    overrides = overrides or {}
    config = load_config(
        sync_server_host=overrides.get("sync_server_host"),
        data_dir=overrides.get("data_dir"),
        document_secret=overrides.get("document_secret"),
        insecure=overrides.get("insecure", False),
        debug=overrides.get("debug", False),
        yaml_fallbacks=to_fallbacks(unified),
    )
    if overrides:
        sources.append("CLI arguments")
    sources.append("environment variables")
    return config, unified, sources


def build_context(
    config: Config,
    client_factory: ClientFactory = SyncClient,
    store: NoteStore | None = None,
    backup_enabled: bool = True,
) -> AppContext:
    """Open (and initialize if needed) the store and wire all components.

    Args:
        config: Runtime configuration.
        client_factory: Builds the per-cycle HTTP client.
        store: Pre-opened store; ``config.db_path`` is opened if omitted.
        backup_enabled: Whether ``start()`` runs the periodic backup.
    """
    if store is None:
        store = NoteStore(config.db_path)
    if not store.schema_exists():
        logger.info("Creating document database at %s", store.db_path)
    store.initialize(document_secret=config.document_secret)

    mutex = SyncMutex()
    session = SyncSession(store, config, mutex, client_factory)
    return AppContext(
        config=config,
        store=store,
        mutex=mutex,
        session=session,
        scheduler=SyncScheduler(
            session,
            interval=config.sync_interval,
            initial_delay=config.initial_delay,
        ),
        partials=PartialRequestStore(ttl=config.partial_request_ttl),
        backups=BackupService(store, config.backup_dir, mutex),
        changes=EntityChangeLog(store),
        hasher=ContentHasher(store),
        updater=session.updater,
        repository=NoteRepository(store),
        backup_enabled=backup_enabled,
    )
