"""
Provider config persistence (~/.claude-providers.json).

The file holds API tokens, so it is written 0600 and the previous
version is kept next to it as ``.backup``.
"""

from __future__ import annotations

import logging
from pathlib import Path

from pydantic import ValidationError

from ..fileutil import atomic_write, copy_file
from .models import ProviderConfig, ProviderError

logger = logging.getLogger("zzk.claude.store")

CONFIG_FILENAME = ".claude-providers.json"
MAX_CONFIG_SIZE = 10 * 1024 * 1024


def config_path(home: Path) -> Path:
    return Path(home) / CONFIG_FILENAME


def load_config(home: Path) -> ProviderConfig:
    """Load the provider config.

    A missing file is an empty config. An ``active`` that names no
    provider is cleared with a warning.

    Args:
        home: User home directory.

    Returns:
        ProviderConfig.

    Raises:
        ProviderError: The file is too large, unreadable, or invalid.
    """
    path = config_path(home)
    try:
        size = path.stat().st_size
    except FileNotFoundError:
        return ProviderConfig()
    except OSError as exc:
        raise ProviderError(f"failed to stat config: {exc}") from exc

    if size > MAX_CONFIG_SIZE:
        raise ProviderError("config file too large (max 10MB)")

    try:
        config = ProviderConfig.model_validate_json(path.read_bytes())
    except OSError as exc:
        raise ProviderError(f"failed to read config: {exc}") from exc
    except ValidationError as exc:
        raise ProviderError(f"invalid config file {path}: {exc.errors()[0]['msg']}") from exc

    if config.active and not config.has_provider(config.active):
        logger.warning("Active provider '%s' not found, clearing", config.active)
        config.active = None
    return config


def save_config(config: ProviderConfig, home: Path) -> Path:
    """Write the provider config, keeping the previous file as ``.backup``.

    Args:
        config: Config to persist.
        home: User home directory.

    Returns:
        Path: The written file.
    """
    path = config_path(home)
    if path.exists():
        backup = path.with_name(path.name + ".backup")
        try:
            copy_file(path, backup)
        except OSError as exc:
            logger.warning("Failed to create backup of %s: %s", path, exc)

    atomic_write(path, config.model_dump_json(indent=2, exclude_none=True) + "\n", mode=0o600)
    return path
