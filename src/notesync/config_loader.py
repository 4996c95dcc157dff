"""
Layered YAML configuration for notesync.

Config files are discovered by convention, may pull in fragments with
``!include``, may reference the environment with ``${VAR}`` /
``${VAR:-default}`` and are merged so that the project-level file wins
over the global one.

Usage:
    from notesync.config_loader import load_hierarchical_config

    raw = load_hierarchical_config()
"""

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "NOTESYNC_CONFIG"
PROJECT_DIR_NAME = ".notesync"

# ${VAR} or ${VAR:-default}
_ENV_REF = re.compile(r"\$\{([^}:]+?)(?::-(.*?))?\}")


# ---------------------------------------------------------------------------
# Environment references
# ---------------------------------------------------------------------------


def interpolate_env_vars(value: str) -> str:
    """Expand ``${VAR}`` and ``${VAR:-default}`` references in *value*.

    An unset or empty variable expands to its default, or to ``""`` when
    no default is given. An unterminated ``${`` is left as is.
    """

    def _expand(match: re.Match) -> str:
        current = os.environ.get(match.group(1))
        if current:
            return current
        return match.group(2) if match.group(2) is not None else ""

    return _ENV_REF.sub(_expand, value)


def _interpolate_recursive(obj: Any) -> Any:
    """Apply ``interpolate_env_vars`` to every string inside *obj*."""
    if isinstance(obj, dict):
        return {key: _interpolate_recursive(val) for key, val in obj.items()}
    if isinstance(obj, list):
        return [_interpolate_recursive(item) for item in obj]
    if isinstance(obj, str):
        return interpolate_env_vars(obj)
    return obj


# ---------------------------------------------------------------------------
# YAML with !include
# ---------------------------------------------------------------------------


class ConfigLoader(yaml.SafeLoader):
    """SafeLoader that understands ``!include <path>``.

    A private subclass keeps the global ``yaml.SafeLoader`` untouched. The
    chain of files being loaded is carried on the instance so that a file
    including itself, directly or not, is reported instead of recursing.
    """

    include_chain: list[Path]


def _include_constructor(loader: ConfigLoader, node: yaml.ScalarNode) -> Any:
    target = Path(loader.construct_scalar(node))
    including_file = Path(loader.name).resolve()
    if not target.is_absolute():
        target = including_file.parent / target
    target = target.resolve()

    chain = getattr(loader, "include_chain", [including_file])
    if target in chain:
        cycle = " -> ".join(str(p) for p in [*chain, target])
        raise ValueError(f"Circular include detected: {cycle}")
    if not target.exists():
        raise FileNotFoundError(
            f"Include file not found: {target} (referenced from {including_file})"
        )
    return _load_yaml_with_includes(target, _include_stack=[*chain, target])


ConfigLoader.add_constructor("!include", _include_constructor)


def _load_yaml_with_includes(
    path: Path,
    *,
    _include_stack: list[Path] | None = None,
) -> Any:
    """Parse *path* with ``ConfigLoader``."""
    path = path.resolve()
    with open(path, encoding="utf-8") as fh:
        loader = ConfigLoader(fh)
        loader.include_chain = _include_stack or [path]
        try:
            return loader.get_single_data()
        finally:
            loader.dispose()


# ---------------------------------------------------------------------------
# Discovery
# ---------------------------------------------------------------------------


def _candidate_paths() -> list[Path]:
    candidates: list[Path] = []
    explicit = os.environ.get(CONFIG_ENV_VAR)
    if explicit:
        candidates.append(Path(explicit).expanduser().resolve())
    project_dir = Path.cwd() / PROJECT_DIR_NAME
    candidates += [project_dir / "config.yml", project_dir / "config.yaml"]
    candidates.append(Path.home() / ".config" / "notesync" / "config.yml")
    return candidates


def discover_config_files() -> list[Path]:
    """Return the config files that exist, highest precedence first.

    Search order:
        1. ``NOTESYNC_CONFIG`` env var (explicit single path)
        2. ``.notesync/config.yml`` in CWD (project-level)
        3. ``.notesync/config.yaml`` in CWD (alternate extension)
        4. ``~/.config/notesync/config.yml`` (XDG global)
    """
    return [p for p in _candidate_paths() if p.exists()]


_STARTER_CONFIG = """\
# notesync configuration
#
# Every value can also be supplied through the environment:
#   NOTESYNC_SYNC_SERVER_HOST, NOTESYNC_DATA_DIR, NOTESYNC_DOCUMENT_SECRET,
#   NOTESYNC_SYNC_TIMEOUT, NOTESYNC_SYNC_INTERVAL, NOTESYNC_PAGE_SIZE
#
# sync:
#   server_host: https://notes.example.com
#   document_secret: ${NOTESYNC_DOCUMENT_SECRET}
#   timeout: 5
#   interval: 60
#
# server:
#   host: 127.0.0.1
#   port: 8480
#   data_dir: ~/.notesync
#
# backup:
#   enabled: true
#   interval: 14400
#
# logging:
#   level: INFO
#   file: null
"""


def resolve_config_path() -> Path:
    """Return the active config file, or the project-level default path
    when none exists yet. Nothing is created."""
    existing = discover_config_files()
    if existing:
        return existing[0]
    return Path.cwd() / PROJECT_DIR_NAME / "config.yml"


def ensure_config(target: Path | None = None) -> Path:
    """Return the active config file, writing a commented starter file
    first when no config exists anywhere."""
    existing = discover_config_files()
    if existing:
        logger.debug("Config file already exists: %s", existing[0])
        return existing[0]

    config_path = target or resolve_config_path()
    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(_STARTER_CONFIG, encoding="utf-8")
    logger.info("Created starter config: %s", config_path)
    return config_path


# ---------------------------------------------------------------------------
# Merge
# ---------------------------------------------------------------------------


def load_hierarchical_config() -> dict[str, Any]:
    """Load and merge all discovered config files.

    Files are applied from lowest to highest precedence and top-level keys
    of a later file replace those of an earlier one (no deep merge).
    Environment references are expanded after merging. Returns ``{}`` when
    no file exists.
    """
    paths = discover_config_files()
    if not paths:
        logger.debug("No config files found, using defaults")
        return {}

    merged: dict[str, Any] = {}
    for path in reversed(paths):
        logger.debug("Loading config: %s", path)
        try:
            data = _load_yaml_with_includes(path)
        except Exception:
            logger.exception("Failed to load config file %s", path)
            raise

        if isinstance(data, dict):
            merged.update(data)
        elif data is not None:
            logger.warning(
                "Config file %s has non-dict root (%s), skipping",
                path,
                type(data).__name__,
            )

    return _interpolate_recursive(merged)
