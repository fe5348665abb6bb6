"""
SSH key management for git identities.

Wraps ssh-keygen, ssh-add and ``ssh -T`` probes. Every process goes
through :func:`_run` so tests can stand in for the real binaries.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import logging
import subprocess
from pathlib import Path
from typing import Optional

from ..fileutil import atomic_write
from .models import Identity, ProbeOutcome

logger = logging.getLogger("zzk.identity.ssh")

# Substrings forges print on a successful ``ssh -T`` (GitHub, GitLab, Codeberg).
SUCCESS_PATTERNS = (
    "successfully authenticated",
    "You've successfully authenticated",
    "Hi ",
    "Welcome to ",
)

PERMISSION_DENIED = "Permission denied"


class KeyGenerationError(Exception):
    """Raised when ssh-keygen fails for an identity."""


def _run(cmd: list[str], cwd: Optional[Path] = None) -> subprocess.CompletedProcess:
    """Run a command, capturing combined text output.

    Args:
        cmd: Command and arguments.
        cwd: Working directory.

    Returns:
        CompletedProcess with stdout/stderr.
    """
    return subprocess.run(cmd, capture_output=True, text=True, cwd=cwd)


def key_exists(identity: Identity, home: Path) -> bool:
    """True only when both halves of the keypair are on disk."""
    return identity.ssh_key_path(home).exists() and identity.ssh_pub_key_path(home).exists()


def generate_key(identity: Identity, home: Path) -> Path:
    """Generate a passphrase-less ed25519 keypair for an identity.

    Stray halves of a previous pair are removed first so ssh-keygen
    never prompts about overwriting.

    Args:
        identity: Identity to generate for.
        home: User home directory.

    Returns:
        Path: The private key.

    Raises:
        KeyGenerationError: The .ssh dir cannot be created or ssh-keygen fails.
    """
    key_path = identity.ssh_key_path(home)
    pub_path = identity.ssh_pub_key_path(home)
    key_path.unlink(missing_ok=True)
    pub_path.unlink(missing_ok=True)

    try:
        key_path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
    except OSError as exc:
        raise KeyGenerationError(f"failed to create .ssh directory: {exc}") from exc

    try:
        result = _run([
            "ssh-keygen",
            "-t", "ed25519",
            "-C", identity.ssh_key_comment(),
            "-f", str(key_path),
            "-N", "",
        ])
    except OSError as exc:
        raise KeyGenerationError(f"failed to run ssh-keygen: {exc}") from exc

    if result.returncode != 0:
        detail = (result.stderr or result.stdout or "").strip()
        raise KeyGenerationError(f"ssh-keygen exited {result.returncode}: {detail}")

    logger.info("Generated SSH key for %s: %s", identity.name, key_path)
    return key_path


def copy_public_key_to_home(identity: Identity, home: Path) -> bool:
    """Drop a copy of the public key in the home dir for easy pasting.

    Args:
        identity: Identity whose key to copy.
        home: User home directory.

    Returns:
        bool: False when an identical copy was already there.
    """
    data = identity.ssh_pub_key_path(home).read_text(encoding="utf-8")
    dest = identity.home_pub_key_path(home)
    if dest.exists() and dest.read_text(encoding="utf-8") == data:
        return False
    atomic_write(dest, data)
    return True


def add_to_agent(identity: Identity, home: Path) -> None:
    """Re-register the identity key with the running ssh-agent.

    Raises:
        RuntimeError: ssh-add could not add the key.
    """
    key_path = str(identity.ssh_key_path(home))
    try:
        _run(["ssh-add", "-d", key_path])
    except OSError:
        pass

    try:
        result = _run(["ssh-add", key_path])
    except OSError as exc:
        raise RuntimeError(f"failed to run ssh-add: {exc}") from exc
    if result.returncode != 0:
        detail = (result.stderr or result.stdout or "").strip()
        raise RuntimeError(f"failed to add key to SSH agent: {detail}")


def classify_probe(output: str, exit_code: int) -> ProbeOutcome:
    """Classify the text of an ``ssh -T git@host`` probe.

    Forges reject shell access with a non-zero exit even on successful
    auth, so the greeting text wins over the exit code. This is a
    substring heuristic.

    Args:
        output: Combined stdout and stderr.
        exit_code: Process exit status.

    Returns:
        ProbeOutcome.
    """
    if any(pattern in output for pattern in SUCCESS_PATTERNS):
        return ProbeOutcome.SUCCESS
    if PERMISSION_DENIED in output:
        return ProbeOutcome.PERMISSION_DENIED
    if exit_code != 0:
        return ProbeOutcome.FAILED
    return ProbeOutcome.SUCCESS


def probe_connection(identity: Identity, from_dir: Path) -> tuple[ProbeOutcome, str]:
    """Run an auth-only SSH probe against the identity's domain.

    The probe runs inside ``from_dir`` so folder-scoped git and ssh
    settings apply.

    Args:
        identity: Identity to test.
        from_dir: Directory to run the probe from.

    Returns:
        tuple: (outcome, combined output).
    """
    try:
        result = _run(["ssh", "-T", f"git@{identity.domain}"], cwd=from_dir)
    except OSError as exc:
        return ProbeOutcome.FAILED, str(exc)
    output = (result.stdout or "") + (result.stderr or "")
    return classify_probe(output, result.returncode), output.strip()


def read_public_key(pub_path: Path) -> Optional[tuple[str, str]]:
    """Return (key type, base64 blob) from a public key file."""
    try:
        parts = Path(pub_path).read_text(encoding="utf-8").split()
    except OSError:
        return None
    if len(parts) < 2:
        return None
    return parts[0], parts[1]


def key_fingerprint(pub_path: Path) -> str:
    """SHA256 fingerprint of a public key, as ``ssh-keygen -l`` prints it.

    Args:
        pub_path: Public key file.

    Returns:
        str: ``SHA256:<base64>``, or "" when the key is missing or malformed.
    """
    key = read_public_key(pub_path)
    if key is None:
        return ""
    try:
        blob = base64.b64decode(key[1], validate=True)
    except (binascii.Error, ValueError):
        return ""
    digest = base64.b64encode(hashlib.sha256(blob).digest()).decode("ascii").rstrip("=")
    return f"SHA256:{digest}"
