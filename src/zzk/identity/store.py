"""
Identity store and run state persistence.

Identities live in ~/.git-identities.json, edited by hand. The run
state lives in ~/.config/zzk/git-state.json and is owned by sync.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from pydantic import ValidationError

from .. import CONFIG_SUBDIR
from ..fileutil import atomic_write
from .models import Identity, IdentityConfig, RunState

logger = logging.getLogger("zzk.identity.store")

CONFIG_FILENAME = ".git-identities.json"
STATE_FILENAME = "git-state.json"

EXAMPLE_CONFIG = """{
  "identities": {
    "github-work": {
      "user": "Your GitHub Work Username",
      "email": "work@company.com",
      "domain": "github.com",
      "folders": [
        "~/Work/Github"
      ]
    },
    "github-personal": {
      "user": "Your GitHub Personal Username",
      "email": "personal@example.com",
      "domain": "github.com",
      "folders": [
        "~/Personal/Github"
      ]
    },
    "gitlab": {
      "user": "Your GitLab Username",
      "email": "user@gitlab.com",
      "domain": "gitlab.com",
      "folders": [
        "~/Gitlab"
      ]
    },
    "codeberg": {
      "user": "Your Codeberg Username",
      "email": "username@noreply.codeberg.org",
      "domain": "codeberg.org",
      "folders": [
        "~/Codeberg"
      ]
    }
  }
}
"""


class IdentityConfigError(Exception):
    """Base class for identity config problems."""


class ConfigNotFoundError(IdentityConfigError):
    """Raised when the identity store file does not exist."""


class ConfigParseError(IdentityConfigError):
    """Raised when the identity store is not valid JSON or lacks identities."""


class IdentityValidationError(IdentityConfigError):
    """Raised when any identity record fails validation."""


def config_path(home: Path) -> Path:
    return Path(home) / CONFIG_FILENAME


def state_path(home: Path) -> Path:
    return Path(home) / CONFIG_SUBDIR / STATE_FILENAME


def load_config(home: Path) -> IdentityConfig:
    """Load and validate the identity store.

    The mapping key becomes each identity's ``name``. One invalid
    identity fails the whole load.

    Args:
        home: User home directory.

    Returns:
        IdentityConfig with identities in declaration order.

    Raises:
        ConfigNotFoundError: The file does not exist.
        ConfigParseError: The file is unreadable, not JSON, or has no identities.
        IdentityValidationError: An identity is invalid.
    """
    path = config_path(home)
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise ConfigNotFoundError(f"config file not found: {path}") from None
    except OSError as exc:
        raise ConfigParseError(f"failed to read config file: {exc}") from exc

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ConfigParseError(f"failed to parse config file: {exc}") from exc

    if not isinstance(data, dict) or not isinstance(data.get("identities"), dict):
        raise ConfigParseError("no identities defined in config")

    identities: dict[str, Identity] = {}
    for name, record in data["identities"].items():
        if not isinstance(record, dict):
            raise IdentityValidationError(f"invalid identity {name}: expected an object")
        try:
            identity = Identity.model_validate({**record, "name": name})
        except ValidationError as exc:
            first = exc.errors()[0]
            field = ".".join(str(p) for p in first["loc"])
            raise IdentityValidationError(
                f"invalid identity {name}: {field}: {first['msg']}"
            ) from exc

        problem = identity.problem()
        if problem:
            raise IdentityValidationError(f"invalid identity {name}: {problem}")
        identities[name] = identity

    return IdentityConfig(identities=identities)


def save_config(config: IdentityConfig, home: Path) -> Path:
    """Write the identity store with stable, indented formatting.

    Args:
        config: Identities to persist.
        home: User home directory.

    Returns:
        Path: The written file.
    """
    path = config_path(home)
    data = {
        "identities": {
            name: identity.model_dump() for name, identity in config.identities.items()
        }
    }
    atomic_write(path, json.dumps(data, indent=2) + "\n")
    logger.info("Saved identity config: %s", path)
    return path


def create_example_config(home: Path) -> Path:
    """Write the example identity store for first-time users.

    Args:
        home: User home directory.

    Returns:
        Path: The created file.
    """
    path = config_path(home)
    atomic_write(path, EXAMPLE_CONFIG)
    logger.info("Created example identity config: %s", path)
    return path


def load_state(home: Path) -> RunState:
    """Load the run state, or a fresh one when none was saved yet.

    Args:
        home: User home directory.

    Returns:
        RunState.
    """
    path = state_path(home)
    if not path.exists():
        return RunState()
    return RunState.model_validate_json(path.read_text(encoding="utf-8"))


def save_state(state: RunState, home: Path) -> Path:
    """Persist the run state.

    Args:
        state: State to write.
        home: User home directory.

    Returns:
        Path: The written file.
    """
    path = state_path(home)
    atomic_write(path, state.model_dump_json(indent=2, by_alias=True) + "\n")
    return path
