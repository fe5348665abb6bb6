"""
Backup-before-delete for orphaned identity files.

Orphaned keys and git configs are bundled into a gzip tarball under
~/.config/zzk/backups before removal. Members are stored flat under
their base names, so two orphans sharing a base name collide.
"""

from __future__ import annotations

import logging
import tarfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable

from .. import CONFIG_SUBDIR

logger = logging.getLogger("zzk.identity.archive")

ARCHIVE_PREFIX = "git-orphans-"
ARCHIVE_SUFFIX = ".tar.gz"
DEFAULT_KEEP = 10


class BackupError(Exception):
    """Raised when an orphan backup cannot be created or rotated."""


def backup_dir(home: Path) -> Path:
    return Path(home) / CONFIG_SUBDIR / "backups"


def backup_files(files: Iterable[Path], out_dir: Path) -> Path:
    """Archive files into a timestamped tarball.

    Args:
        files: Files to include. Ones that no longer exist are skipped.
        out_dir: Directory for the archive (created if needed).

    Returns:
        Path: The archive.

    Raises:
        BackupError: The file list is empty or the archive cannot be written.
    """
    files = [Path(f) for f in files]
    if not files:
        raise BackupError("no files to backup")

    out_dir = Path(out_dir)
    timestamp = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S-%f")
    archive_path = out_dir / f"{ARCHIVE_PREFIX}{timestamp}{ARCHIVE_SUFFIX}"

    added = 0
    try:
        out_dir.mkdir(parents=True, exist_ok=True)
        with tarfile.open(archive_path, "w:gz") as tar:
            for filepath in files:
                if not filepath.is_file():
                    logger.debug("Skipping missing file: %s", filepath)
                    continue
                tar.add(filepath, arcname=filepath.name)
                added += 1
    except (OSError, tarfile.TarError) as exc:
        archive_path.unlink(missing_ok=True)
        raise BackupError(f"failed to create backup: {exc}") from exc

    logger.info("Orphan backup created: %s (%d files)", archive_path, added)
    return archive_path


def list_backups(out_dir: Path) -> list[Path]:
    """Orphan archives in a directory, newest first by mtime."""
    out_dir = Path(out_dir)
    if not out_dir.is_dir():
        return []
    archives = [p for p in out_dir.glob(f"{ARCHIVE_PREFIX}*{ARCHIVE_SUFFIX}") if p.is_file()]
    return sorted(archives, key=lambda p: (p.stat().st_mtime, p.name), reverse=True)


def describe_backups(out_dir: Path) -> list[dict[str, Any]]:
    """Archive metadata for display.

    Returns:
        list[dict]: 'filename', 'filepath', 'size', 'created', 'members' per archive.
    """
    described = []
    for archive in list_backups(out_dir):
        stat = archive.stat()
        try:
            with tarfile.open(archive, "r:gz") as tar:
                members = tar.getnames()
        except (OSError, tarfile.TarError):
            members = []
        described.append({
            "filename": archive.name,
            "filepath": str(archive),
            "size": stat.st_size,
            "created": datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc).isoformat(),
            "members": members,
        })
    return described


def rotate_backups(out_dir: Path, keep: int = DEFAULT_KEEP) -> list[Path]:
    """Delete all but the ``keep`` newest orphan archives.

    Every deletion is attempted; failures are collected and reported
    together once the pass is done.

    Args:
        out_dir: Backup directory.
        keep: How many archives to keep.

    Returns:
        list[Path]: Archives that were deleted.

    Raises:
        BackupError: One or more archives could not be deleted.
    """
    removed: list[Path] = []
    errors: list[str] = []
    for archive in list_backups(out_dir)[keep:]:
        try:
            archive.unlink()
            removed.append(archive)
        except OSError as exc:
            errors.append(f"{archive.name}: {exc}")

    if removed:
        logger.info("Rotated %d old orphan backup(s)", len(removed))
    if errors:
        raise BackupError("failed to remove old backups: " + "; ".join(errors))
    return removed
