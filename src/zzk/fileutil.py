"""File helpers shared by every subsystem.

Config, state and generated files are written through
:func:`atomic_write` so a crash never leaves a half-written file.
"""

from __future__ import annotations

import os
import shutil
import tempfile
from pathlib import Path


def atomic_write(path: Path, text: str, mode: int = 0o644) -> None:
    """Write text to a file atomically.

    The content goes to a temp file in the destination directory which
    is then renamed over the target. The temp file is removed if anything
    fails before the rename.

    Args:
        path: Destination file.
        text: Full file content.
        mode: Permission bits applied to the final file.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
            f.flush()
            os.fsync(f.fileno())
        os.chmod(tmp_name, mode)
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise


def copy_file(src: Path, dst: Path) -> None:
    """Copy file bytes and permission bits.

    Args:
        src: Source file.
        dst: Destination file (overwritten).
    """
    shutil.copyfile(src, dst)
    shutil.copymode(src, dst)


def expand_home(pattern: str, home: Path) -> Path:
    """Expand a ``~/`` prefixed pattern against an explicit home.

    Args:
        pattern: Path pattern, possibly starting with ``~`` or ``~/``.
        home: Directory that ``~`` stands for.

    Returns:
        Path: The expanded path (other patterns are returned as-is).
    """
    if pattern == "~":
        return Path(home)
    if pattern.startswith("~/"):
        return Path(home) / pattern[2:]
    return Path(pattern)
