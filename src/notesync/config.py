"""Runtime configuration for a notesync instance.

Reads settings from CLI args, environment variables, .env files, and YAML
config file fallbacks.

Precedence (highest to lowest):
    CLI args > Environment variables > .env file > YAML config > Built-in defaults

Environment variables:
    NOTESYNC_SYNC_SERVER_HOST: Peer instance URL (optional; sync timer is
        not started without it)
    NOTESYNC_DATA_DIR: Directory holding the database and backups
        (optional, default: ~/.notesync)
    NOTESYNC_DOCUMENT_SECRET: Shared HMAC secret (optional; seeded into the
        database on first start)
    NOTESYNC_SYNC_TIMEOUT: Per-request timeout in seconds (optional, default: 5)
    NOTESYNC_SYNC_INTERVAL: Seconds between sync cycles (optional, default: 60)
    NOTESYNC_PAGE_SIZE: Max characters per pushed request body before it is
        split into pages (optional, default: 1000000)
    NOTESYNC_INSECURE: Skip SSL verification (optional, default: false)
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import urlparse

logger = logging.getLogger(__name__)


@dataclass
class Config:
    sync_server_host: str | None = None
    data_dir: str = "~/.notesync"
    document_secret: str | None = None
    sync_timeout: float = 5.0
    sync_interval: int = 60
    initial_delay: float = 1.0
    page_size: int = 1_000_000
    pull_batch_size: int = 1000
    partial_request_ttl: int = 300
    backup_interval: int = 4 * 3600
    insecure: bool = False
    debug: bool = False

    @property
    def is_sync_setup(self) -> bool:
        return bool(self.sync_server_host)

    @property
    def db_path(self) -> Path:
        return Path(self.data_dir).expanduser() / "document.db"

    @property
    def backup_dir(self) -> Path:
        return Path(self.data_dir).expanduser() / "backup"


def validate_config(config: Config) -> None:
    """Validate configuration values and raise ValueError if invalid.

    Args:
        config: Config instance to validate.

    Raises:
        ValueError: If the peer URL is malformed or a numeric setting is
            out of range.
    """
    if config.sync_server_host is not None:
        config.sync_server_host = config.sync_server_host.strip()

    if config.sync_server_host:
        if not config.sync_server_host.startswith(("http://", "https://")):
            raise ValueError(
                f"Invalid sync server host '{config.sync_server_host}': must start with http:// or https://"
            )

        parsed = urlparse(config.sync_server_host)
        if not parsed.hostname:
            raise ValueError(
                f"Invalid sync server host '{config.sync_server_host}': URL must include a hostname"
            )

        config.sync_server_host = config.sync_server_host.removesuffix("/")

    if config.sync_timeout <= 0:
        raise ValueError(
            f"Invalid sync timeout {config.sync_timeout}: must be positive"
        )

    if not (1 <= config.sync_interval <= 86400):
        raise ValueError(
            f"Invalid sync interval {config.sync_interval}: must be between 1 and 86400 seconds"
        )

    if config.page_size < 1024:
        raise ValueError(
            f"Invalid page size {config.page_size}: must be at least 1024 characters"
        )

    if config.insecure:
        logger.warning(
            "WARNING: SSL verification disabled (insecure=True). Use only for development."
        )


def _get_bool_env(key: str) -> bool | None:
    """Return True/False from env var, or None if unset."""
    val = os.getenv(key)
    if val is None:
        return None
    return val.lower() in ("true", "1", "yes", "on")


def _get_number_env(key: str, kind: type, fallback):
    raw = os.getenv(key)
    if raw is None:
        return fallback
    try:
        return kind(raw)
    except ValueError:
        raise ValueError(f"Invalid {key} '{raw}': must be a number") from None


def load_config(
    sync_server_host: str | None = None,
    data_dir: str | None = None,
    document_secret: str | None = None,
    insecure: bool = False,
    debug: bool = False,
    yaml_fallbacks: dict | None = None,
) -> Config:
    """Load configuration with unified precedence.

    Resolution order for each field (highest to lowest):
        CLI arg > env var / .env > yaml_fallbacks > built-in default

    The caller is responsible for calling ``load_dotenv()`` before this
    function so that .env values are available via ``os.getenv()``.

    Args:
        sync_server_host: Override peer URL.
        data_dir: Override data directory.
        document_secret: Override shared secret.
        insecure: Skip SSL verification (CLI flag).
        debug: Enable debug logging (CLI flag).
        yaml_fallbacks: Flattened values from the YAML config file.
            Used as fallback when CLI arg and env var are both unset.

    Returns:
        Validated Config instance.
    """
    fb = yaml_fallbacks or {}
    defaults = Config()

    final_host = (
        sync_server_host
        or os.getenv("NOTESYNC_SYNC_SERVER_HOST")
        or fb.get("sync_server_host")
    )
    final_data_dir = (
        data_dir
        or os.getenv("NOTESYNC_DATA_DIR")
        or fb.get("data_dir")
        or defaults.data_dir
    )
    final_secret = (
        document_secret
        or os.getenv("NOTESYNC_DOCUMENT_SECRET")
        or fb.get("document_secret")
    )

    if insecure:
        final_insecure = True
    else:
        env_insecure = _get_bool_env("NOTESYNC_INSECURE")
        if env_insecure is not None:
            final_insecure = env_insecure
        else:
            final_insecure = bool(fb.get("insecure", False))

    if debug:
        final_debug = True
    else:
        env_debug = _get_bool_env("NOTESYNC_DEBUG")
        if env_debug is not None:
            final_debug = env_debug
        else:
            final_debug = bool(fb.get("debug", False))

    config = Config(
        sync_server_host=final_host or None,
        data_dir=final_data_dir,
        document_secret=final_secret or None,
        sync_timeout=_get_number_env(
            "NOTESYNC_SYNC_TIMEOUT",
            float,
            float(fb.get("timeout", defaults.sync_timeout)),
        ),
        sync_interval=_get_number_env(
            "NOTESYNC_SYNC_INTERVAL",
            int,
            int(fb.get("interval", defaults.sync_interval)),
        ),
        initial_delay=float(fb.get("initial_delay", defaults.initial_delay)),
        page_size=_get_number_env(
            "NOTESYNC_PAGE_SIZE",
            int,
            int(fb.get("page_size", defaults.page_size)),
        ),
        pull_batch_size=int(
            fb.get("pull_batch_size", defaults.pull_batch_size)
        ),
        partial_request_ttl=int(
            fb.get("partial_request_ttl", defaults.partial_request_ttl)
        ),
        backup_interval=int(
            fb.get("backup_interval", defaults.backup_interval)
        ),
        insecure=final_insecure,
        debug=final_debug,
    )

    validate_config(config)

    return config
