"""
Identity lookups for directories and on-disk status checks.
"""

from __future__ import annotations

import logging
import os
import subprocess
from pathlib import Path
from typing import Optional

from .models import Identity, IdentityConfig, IdentityStatus
from .ssh import key_exists

logger = logging.getLogger("zzk.identity.detector")


def _run(cmd: list[str], cwd: Optional[Path] = None) -> subprocess.CompletedProcess:
    return subprocess.run(cmd, capture_output=True, text=True, cwd=cwd)


def _absolute(path: Path) -> Path:
    return Path(os.path.abspath(os.path.expanduser(str(path))))


def _is_within(directory: Path, folder: Path) -> bool:
    # Component-wise: ~/Work does not match ~/Workshop.
    return directory == folder or folder in directory.parents


def matching_folder(identity: Identity, directory: Path, home: Path) -> Optional[str]:
    """The first folder pattern of an identity that contains a directory.

    Args:
        identity: Identity to check.
        directory: Directory being looked up.
        home: Home directory ``~`` expands to.

    Returns:
        str: The folder pattern as written in the config, or None.
    """
    target = _absolute(directory)
    for pattern, folder in zip(identity.folders, identity.expanded_folders(home)):
        if _is_within(target, _absolute(folder)):
            return pattern
    return None


def detect_identity(
    config: IdentityConfig,
    directory: Path,
    home: Path,
) -> Optional[tuple[Identity, str]]:
    """Find the identity governing a directory.

    Identities are tried in declaration order and the first match wins,
    even when a later identity has a more specific folder.

    Args:
        config: Identity config.
        directory: Directory to look up.
        home: Home directory ``~`` expands to.

    Returns:
        tuple: (identity, matched folder pattern), or None.
    """
    for identity in config.identities.values():
        folder = matching_folder(identity, directory, home)
        if folder is not None:
            return identity, folder
    return None


def identity_status(identity: Identity, home: Path) -> IdentityStatus:
    """On-disk readiness: the keypair is checked before the git config."""
    if not key_exists(identity, home):
        return IdentityStatus.KEY_MISSING
    if not identity.git_config_path(home).exists():
        return IdentityStatus.CONFIG_MISSING
    return IdentityStatus.ACTIVE


def count_git_repos(directory: Path) -> int:
    """Immediate subdirectories that contain a ``.git`` entry."""
    try:
        entries = list(Path(directory).iterdir())
    except OSError:
        return 0
    return sum(1 for entry in entries if entry.is_dir() and (entry / ".git").exists())


def in_git_repo(directory: Path) -> bool:
    try:
        result = _run(["git", "rev-parse", "--is-inside-work-tree"], cwd=directory)
    except OSError:
        return False
    return result.returncode == 0


def git_config_value(key: str, directory: Path) -> Optional[str]:
    """Effective ``git config <key>`` in a directory, or None."""
    try:
        result = _run(["git", "config", key], cwd=directory)
    except OSError:
        return None
    if result.returncode != 0:
        return None
    return result.stdout.strip()


def effective_git_identity_matches(identity: Identity, directory: Path) -> bool:
    """True when git resolves the identity's user and email in a directory."""
    return (
        git_config_value("user.email", directory) == identity.email
        and git_config_value("user.name", directory) == identity.user
    )
