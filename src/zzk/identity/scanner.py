"""
Filesystem scanner and orphan detection.

Finds the SSH keys and git config files zzk generated, keyed by the
identity they belong to, and diffs them against the current config.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterator

from .markers import parse_marker
from .models import IdentityConfig

logger = logging.getLogger("zzk.identity.scanner")

PUB_SUFFIX = ".pub"
GITCONFIG_PREFIX = ".gitconfig-"


def _marked_public_keys(home: Path) -> Iterator[tuple[str, Path]]:
    """Yield (identity name, public key path) for every marked ``~/.ssh/*.pub``."""
    ssh_dir = Path(home) / ".ssh"
    if not ssh_dir.is_dir():
        return
    for entry in sorted(ssh_dir.iterdir()):
        if not entry.name.endswith(PUB_SUFFIX) or not entry.is_file():
            continue
        try:
            content = entry.read_text(encoding="utf-8", errors="replace")
        except OSError as exc:
            logger.debug("Skipping unreadable key %s: %s", entry, exc)
            continue
        name = parse_marker(content)
        if name:
            yield name, entry


def _private_half(pub: Path) -> Path:
    return pub.with_name(pub.name[: -len(PUB_SUFFIX)])


def find_managed_keys(home: Path) -> dict[str, Path]:
    """Map identity name -> private key path for every marked public key.

    Args:
        home: User home directory (scans ``~/.ssh``).

    Returns:
        dict: Empty when ``~/.ssh`` does not exist.
    """
    return {name: _private_half(pub) for name, pub in _marked_public_keys(home)}


def find_managed_git_configs(home: Path) -> dict[str, Path]:
    """Map identity name -> path for every ``~/.gitconfig-<name>`` file.

    Args:
        home: User home directory.

    Returns:
        dict: Empty when the home directory does not exist.
    """
    home = Path(home)
    if not home.is_dir():
        return {}

    managed: dict[str, Path] = {}
    for entry in sorted(home.glob(GITCONFIG_PREFIX + "*")):
        name = entry.name[len(GITCONFIG_PREFIX):]
        if name and entry.is_file():
            managed[name] = entry
    return managed


def find_managed_files(home: Path) -> dict[str, set[Path]]:
    """Map identity name -> every managed file on disk that belongs to it.

    A marked public key counts wherever it sits in ``~/.ssh``, together
    with its private half when present, so keys renamed by hand are
    still found.
    """
    found: dict[str, set[Path]] = {}
    for name, pub in _marked_public_keys(home):
        paths = found.setdefault(name, set())
        paths.add(pub)
        private = _private_half(pub)
        if private.is_file():
            paths.add(private)
    for name, path in find_managed_git_configs(home).items():
        found.setdefault(name, set()).add(path)
    return found

def detect_orphan_files(config: IdentityConfig, home: Path) -> dict[str, set[Path]]:
    """Managed files grouped by orphaned identity name."""
    return {
        name: paths
        for name, paths in sorted(find_managed_files(home).items())
        if not config.has_identity(name)
    }


def detect_orphans(config: IdentityConfig, home: Path) -> list[str]:
    """Names found in managed artifacts but absent from config.

    A renamed identity shows up here under its old name; there is no
    rename detection.

    Args:
        config: Current identity config.
        home: User home directory.

    Returns:
        list[str]: Sorted orphan names.
    """
    return list(detect_orphan_files(config, home))
