"""
Config file rendering for git identities.

Pure renderers turn the identity set into file text; the writers splice
that text into ~/.gitconfig and ~/.ssh/config between managed-block
markers and regenerate ~/.ssh/allowed_signers outright. Rendering is
deterministic, so re-running with the same config writes identical bytes.
"""

from __future__ import annotations

import logging
from pathlib import Path

from ..fileutil import atomic_write
from .models import Identity, IdentityConfig
from .ssh import read_public_key

logger = logging.getLogger("zzk.identity.render")

BLOCK_BEGIN = "# >>> zzk managed >>>"
BLOCK_END = "# <<< zzk managed <<<"

ALLOWED_SIGNERS = Path(".ssh") / "allowed_signers"
GLOBAL_GITCONFIG = Path(".gitconfig")
SSH_CONFIG = Path(".ssh") / "config"


def allowed_signers_path(home: Path) -> Path:
    return Path(home) / ALLOWED_SIGNERS


def global_gitconfig_path(home: Path) -> Path:
    return Path(home) / GLOBAL_GITCONFIG


def ssh_config_path(home: Path) -> Path:
    return Path(home) / SSH_CONFIG


def render_identity_gitconfig(identity: Identity, home: Path) -> str:
    """Per-identity git config: author, SSH signing and key pinning.

    Args:
        identity: Identity to render.
        home: User home directory.

    Returns:
        str: Content for ``~/.gitconfig-<name>``.
    """
    key = identity.ssh_key_path(home)
    pub = identity.ssh_pub_key_path(home)
    lines = [
        f"# Managed by zzk for identity {identity.name}",
        "[user]",
        f"\tname = {identity.user}",
        f"\temail = {identity.email}",
        f"\tsigningkey = {pub}",
        "[gpg]",
        "\tformat = ssh",
        '[gpg "ssh"]',
        f"\tallowedSignersFile = {allowed_signers_path(home)}",
        "[commit]",
        "\tgpgsign = true",
        "[tag]",
        "\tgpgsign = true",
        "[core]",
        f"\tsshCommand = ssh -i {key} -o IdentitiesOnly=yes",
        f'[url "git@{identity.domain}:"]',
        f"\tinsteadOf = https://{identity.domain}/",
    ]
    return "\n".join(lines) + "\n"


def render_global_gitconfig_block(config: IdentityConfig, home: Path) -> str:
    """Conditional includes routing each folder to its identity config.

    Args:
        config: All identities.
        home: User home directory.

    Returns:
        str: Managed block body (without the markers).
    """
    lines = []
    for identity in config.identities.values():
        for folder in identity.expanded_folders(home):
            lines.append(f'[includeIf "gitdir:{folder}/"]')
            lines.append(f"\tpath = {identity.git_config_path(home)}")
    return "\n".join(lines) + ("\n" if lines else "")


def render_ssh_config_block(config: IdentityConfig, home: Path) -> str:
    """One ``Host <name>`` alias per identity pinned to its key.

    Args:
        config: All identities.
        home: User home directory.

    Returns:
        str: Managed block body (without the markers).
    """
    blocks = []
    for identity in config.identities.values():
        blocks.append("\n".join([
            f"Host {identity.name}",
            f"\tHostName {identity.domain}",
            "\tUser git",
            f"\tIdentityFile {identity.ssh_key_path(home)}",
            "\tIdentitiesOnly yes",
        ]))
    return "\n\n".join(blocks) + ("\n" if blocks else "")


def render_allowed_signers(config: IdentityConfig, home: Path) -> str:
    """``<email> <type> <blob>`` for every identity with a readable key."""
    lines = []
    for identity in config.identities.values():
        key = read_public_key(identity.ssh_pub_key_path(home))
        if key is None:
            logger.debug("No public key for %s, not listed as signer", identity.name)
            continue
        lines.append(f"{identity.email} {key[0]} {key[1]}")
    return "\n".join(lines) + ("\n" if lines else "")


def splice_managed_block(existing: str, body: str) -> str:
    """Replace the managed block in existing text, or append one.

    Everything outside the markers is preserved byte for byte.

    Args:
        existing: Current file content ("" for a new file).
        body: New block body.

    Returns:
        str: Updated file content.
    """
    block = f"{BLOCK_BEGIN}\n{body}{BLOCK_END}\n"
    start = existing.find(BLOCK_BEGIN)
    end = existing.find(BLOCK_END, start) if start != -1 else -1

    if start == -1 or end == -1:
        if not existing:
            return block
        sep = "" if existing.endswith("\n") else "\n"
        return f"{existing}{sep}\n{block}"

    tail = existing[end + len(BLOCK_END):]
    if tail.startswith("\n"):
        tail = tail[1:]
    return existing[:start] + block + tail


def _splice_into(path: Path, body: str, mode: int) -> None:
    existing = path.read_text(encoding="utf-8") if path.exists() else ""
    updated = splice_managed_block(existing, body)
    if updated != existing or not path.exists():
        atomic_write(path, updated, mode=mode)


def write_identity_gitconfig(identity: Identity, home: Path) -> Path:
    """Write ``~/.gitconfig-<name>``.

    Raises:
        OSError: The file cannot be written.
    """
    path = identity.git_config_path(home)
    atomic_write(path, render_identity_gitconfig(identity, home))
    return path


def write_global_gitconfig(config: IdentityConfig, home: Path) -> Path:
    """Regenerate the managed block in ``~/.gitconfig``."""
    path = global_gitconfig_path(home)
    _splice_into(path, render_global_gitconfig_block(config, home), 0o644)
    logger.info("Updated %s", path)
    return path


def write_ssh_config(config: IdentityConfig, home: Path) -> Path:
    """Regenerate the managed block in ``~/.ssh/config``."""
    path = ssh_config_path(home)
    path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
    _splice_into(path, render_ssh_config_block(config, home), 0o600)
    logger.info("Updated %s", path)
    return path


def write_allowed_signers(config: IdentityConfig, home: Path) -> Path:
    """Rewrite ``~/.ssh/allowed_signers`` from scratch."""
    path = allowed_signers_path(home)
    path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
    atomic_write(path, render_allowed_signers(config, home))
    logger.info("Updated %s", path)
    return path
