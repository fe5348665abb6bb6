"""
Shell integration for Claude providers.

The active provider is applied by writing ~/.config/zzk/claude-env.sh,
which the user's rc file sources. Switching providers only rewrites
that file; the shell picks it up on reload.
"""

from __future__ import annotations

import logging
import os
import shlex
from pathlib import Path
from typing import Optional

from .. import CONFIG_SUBDIR
from ..fileutil import atomic_write
from .models import ENV_VARS, Provider

logger = logging.getLogger("zzk.claude.shell")

ENV_FILENAME = "claude-env.sh"

ENV_HEADER = (
    "# Managed by zzk - do not edit manually\n"
    "# Generated for Claude Code provider configuration\n\n"
)

RESET_HEADER = (
    "# No active provider - using official Anthropic API\n"
    "# Unset any previously set Claude variables\n"
)


def env_file_path(home: Path) -> Path:
    return Path(home) / CONFIG_SUBDIR / ENV_FILENAME


def render_env(provider: Provider) -> str:
    return ENV_HEADER + provider.shell_exports()


def render_reset_env() -> str:
    return RESET_HEADER + "".join(f"unset {var}\n" for var in ENV_VARS)


def write_env_file(provider: Provider, home: Path) -> Path:
    """Point the env file at a provider (mode 0600)."""
    path = env_file_path(home)
    atomic_write(path, render_env(provider), mode=0o600)
    logger.info("Wrote Claude env file: %s", path)
    return path


def clear_env_file(home: Path) -> Path:
    """Reset the env file to the official API (only ``unset`` lines)."""
    path = env_file_path(home)
    atomic_write(path, render_reset_env(), mode=0o600)
    logger.info("Cleared Claude env file: %s", path)
    return path


def detect_shell() -> str:
    """Base name of ``$SHELL``, defaulting to bash."""
    shell = os.environ.get("SHELL", "")
    return os.path.basename(shell) if shell else "bash"


def rc_file_path(shell: str, home: Path) -> Optional[Path]:
    """The rc file for a shell, or None for shells we do not know.

    Bash prefers ~/.bashrc and falls back to ~/.bash_profile.
    """
    home = Path(home)
    if shell == "zsh":
        return home / ".zshrc"
    if shell == "bash":
        bashrc = home / ".bashrc"
        return bashrc if bashrc.exists() else home / ".bash_profile"
    if shell == "fish":
        return home / ".config" / "fish" / "config.fish"
    return None


def source_line(shell: str, home: Path) -> str:
    """The line to add to the rc file."""
    env = env_file_path(home)
    if shell == "fish":
        return f"[ -f {env} ]; and source {env}"
    return f"[ -f {env} ] && source {env}"


def _is_source_of(line: str, command: str) -> bool:
    return line == command or line.startswith(command + " ") or line.startswith(command + ";")


def rc_file_sources_env(rc_file: Path, home: Path) -> bool:
    """Whether a non-comment line of the rc file sources the env file.

    Recognizes ``source <env>``, ``. <env>`` and
    ``[ -f <env> ] && source <env>``.

    Raises:
        OSError: The rc file exists but cannot be read.
    """
    try:
        text = Path(rc_file).read_text(encoding="utf-8", errors="replace")
    except FileNotFoundError:
        return False

    env = env_file_path(home)
    forms = (
        f"source {env}",
        f". {env}",
        f"[ -f {env} ] && source {env}",
    )
    for raw in text.splitlines():
        line = raw.strip()
        if line.startswith("#"):
            continue
        if any(_is_source_of(line, form) for form in forms):
            return True
    return False


def setup_hint(home: Path) -> Optional[str]:
    """One-time setup instructions, or None when the rc file is ready.

    Raises:
        OSError: The rc file cannot be read.
    """
    shell = detect_shell()
    rc_file = rc_file_path(shell, home)
    line = source_line(shell, home)
    if rc_file is None:
        return f"Add this line to your shell configuration and reload it:\n  {line}"
    if rc_file_sources_env(rc_file, home):
        return None
    quoted_rc = shlex.quote(str(rc_file))
    return (
        f"One-time setup: add this line to {rc_file}\n"
        f"  {line}\n"
        f"or run:\n"
        f"  grep -q {ENV_FILENAME} {quoted_rc} || echo {shlex.quote(line)} >> {quoted_rc}"
    )


def shell_out_of_sync(base_url: Optional[str]) -> bool:
    """Whether the current shell still exports a different base URL."""
    return os.environ.get("ANTHROPIC_BASE_URL", "") != (base_url or "")


def reload_hint(home: Path) -> str:
    rc_file = rc_file_path(detect_shell(), home)
    target = shlex.quote(str(rc_file)) if rc_file else "your shell config file"
    return f"Reload your shell to apply changes:\n  source {target}"
