"""Remote directory backups through a public file drop.

A target directory under the home is packed into a ``.tar.xz``,
uploaded to https://envs.sh, and downloaded again to prove the upload
is a real archive. The URL basename (minus ``.tar.xz``) is the restore
code.

Restore reverses it: download, verify, test-extract into a scratch dir,
move the current directory aside as ``<prefix><timestamp>``, extract
into the home. The aside copy is moved back if extraction fails.
"""

from __future__ import annotations

import fnmatch
import logging
import os
import platform
import re
import shutil
import tarfile
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Optional

import requests
from pydantic import BaseModel, ConfigDict

logger = logging.getLogger("zzk.backup")

BACKUP_SERVICE_URL = "https://envs.sh"
USER_AGENT = "zzk-backup/1.0"
ARCHIVE_SUFFIX = ".tar.xz"
XZ_MAGIC = b"\xfd7zXZ\x00"
REQUEST_TIMEOUT = 300

CODE_RE = re.compile(r"^[A-Za-z0-9._-]+$")

# Applied to every path component of every target.
EXCLUDE_GLOBS = (
    "*.DS_Store",
    "._*",
    "Thumbs.db",
    "desktop.ini",
    "*.swp",
    "*.swo",
    "*~",
    ".Spotlight-V100",
    ".Trashes",
    ".fseventsd",
    ".TemporaryItems",
    "__pycache__",
    "*.pyc",
    ".git",
    ".svn",
    "node_modules",
    ".claude",
    "*.claude",
)

ProgressCallback = Callable[[str], None]


class BackupError(Exception):
    """Raised when a remote backup or restore fails."""


class BackupTarget(BaseModel):
    """A directory under the home that can be backed up.

    Attributes:
        name: Target name used on the command line.
        path: Directory relative to the home.
        allowed_os: Operating systems the target exists on.
        backup_prefix: Name prefix for local copies made during restore.
        keep: How many local copies to keep.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    path: str
    allowed_os: tuple[str, ...]
    backup_prefix: str
    keep: int = 3


TARGETS: dict[str, BackupTarget] = {
    "bio": BackupTarget(
        name="bio",
        path=".bio",
        allowed_os=("darwin", "linux"),
        backup_prefix=".bio.backup-",
    ),
    "openemu": BackupTarget(
        name="openemu",
        path="Library/Application Support/OpenEmu",
        allowed_os=("darwin",),
        backup_prefix=".openemu.backup-",
    ),
}


def current_os() -> str:
    """``darwin``, ``linux`` or ``windows``."""
    return platform.system().lower()


def check_os(target: BackupTarget, os_name: Optional[str] = None) -> None:
    """Raise BackupError when the target is not available on this OS."""
    os_name = os_name or current_os()
    if os_name not in target.allowed_os:
        raise BackupError(
            f"{target.name} backup is only supported on {', '.join(target.allowed_os)} "
            f"(current OS: {os_name})"
        )


def is_excluded(name: str) -> bool:
    """Whether any component of an archive path matches an exclude glob."""
    parts = [p for p in name.replace(os.sep, "/").split("/") if p]
    return any(fnmatch.fnmatch(part, glob) for part in parts for glob in EXCLUDE_GLOBS)


def _exclude_filter(info: tarfile.TarInfo) -> Optional[tarfile.TarInfo]:
    return None if is_excluded(info.name) else info


def _notify(progress: Optional[ProgressCallback], message: str) -> None:
    logger.info(message)
    if progress is not None:
        progress(message)


def create_archive(target: BackupTarget, home: Path, out_path: Path) -> Path:
    """Pack ``~/<target.path>`` into ``out_path`` as xz-compressed tar.

    Members are stored relative to the home, so extracting into a home
    recreates the target in place.

    Raises:
        BackupError: The target is missing or the archive cannot be written.
    """
    source = Path(home) / target.path
    if not source.is_dir():
        raise BackupError(f"{target.name} directory not found at {source}")
    try:
        with tarfile.open(out_path, "w:xz") as tar:
            tar.add(source, arcname=target.path, filter=_exclude_filter)
    except (OSError, tarfile.TarError) as exc:
        raise BackupError(f"failed to create archive: {exc}") from exc
    return Path(out_path)


def verify_archive(path: Path) -> list[str]:
    """Check the XZ magic bytes and that tar can list the archive.

    Returns:
        list[str]: Member names.

    Raises:
        BackupError: The file is not a readable ``.tar.xz``.
    """
    try:
        with open(path, "rb") as f:
            magic = f.read(len(XZ_MAGIC))
    except OSError as exc:
        raise BackupError(f"failed to read file: {exc}") from exc
    if len(magic) < len(XZ_MAGIC):
        raise BackupError("file too small to be a valid tar.xz")
    if magic != XZ_MAGIC:
        raise BackupError("file is not a valid XZ archive (wrong magic bytes)")
    try:
        with tarfile.open(path, "r:xz") as tar:
            return tar.getnames()
    except (OSError, EOFError, tarfile.TarError) as exc:
        raise BackupError(f"failed to verify tar archive: {exc}") from exc


def clean_response(text: str) -> str:
    """Keep printable, non-space ASCII only."""
    return "".join(ch for ch in text if 32 < ord(ch) < 127)


def restore_code(url: str) -> str:
    name = url.rstrip("/").rsplit("/", 1)[-1]
    return name[: -len(ARCHIVE_SUFFIX)] if name.endswith(ARCHIVE_SUFFIX) else name


def upload_file(path: Path, service_url: str = BACKUP_SERVICE_URL) -> str:
    """POST a file as multipart ``file=`` and return the URL in the response.

    Raises:
        BackupError: The request fails or the response is not a URL.
    """
    try:
        with open(path, "rb") as f:
            resp = requests.post(
                service_url,
                files={"file": (Path(path).name, f)},
                headers={"User-Agent": USER_AGENT},
                timeout=REQUEST_TIMEOUT,
            )
    except (OSError, requests.RequestException) as exc:
        raise BackupError(f"failed to upload: {exc}") from exc

    url = clean_response(resp.text)
    if not url:
        raise BackupError("upload failed: empty response")
    if not url.startswith(("http://", "https://")):
        raise BackupError(f"upload failed: invalid URL response: {url}")
    return url


def download_file(url: str, dest: Path) -> Path:
    """Stream a URL to a file, following redirects.

    Raises:
        BackupError: The download fails.
    """
    try:
        with requests.get(
            url,
            headers={"User-Agent": USER_AGENT},
            stream=True,
            timeout=REQUEST_TIMEOUT,
        ) as resp:
            resp.raise_for_status()
            with open(dest, "wb") as f:
                for chunk in resp.iter_content(chunk_size=65536):
                    f.write(chunk)
    except (OSError, requests.RequestException) as exc:
        raise BackupError(f"failed to download {url}: {exc}") from exc
    return Path(dest)


def upload_backup(
    target: BackupTarget,
    home: Path,
    service_url: str = BACKUP_SERVICE_URL,
    progress: Optional[ProgressCallback] = None,
) -> dict[str, Any]:
    """Archive a target, upload it and verify the uploaded copy.

    Args:
        target: What to back up.
        home: Home directory the target lives in.
        service_url: Upload endpoint.
        progress: Called with human-readable progress lines.

    Returns:
        dict: 'url', 'code', 'size' (archive bytes).

    Raises:
        BackupError: Any step fails. Temp files are removed regardless.
    """
    home = Path(home)
    _notify(progress, f"Found {target.name} directory at {home / target.path}")

    with tempfile.TemporaryDirectory(prefix=f"zzk-{target.name}-") as tmp:
        archive = Path(tmp) / f"{target.name}-backup{ARCHIVE_SUFFIX}"
        _notify(progress, "Creating compressed archive...")
        create_archive(target, home, archive)
        size = archive.stat().st_size
        _notify(progress, f"Archive created ({size / (1024 * 1024):.2f} MB)")

        _notify(progress, "Uploading...")
        url = upload_file(archive, service_url)

        _notify(progress, "Verifying upload...")
        check = Path(tmp) / f"verify{ARCHIVE_SUFFIX}"
        download_file(url, check)
        try:
            verify_archive(check)
        except BackupError as exc:
            raise BackupError(
                f"upload verification failed: {exc} (the service may have returned an error page)"
            ) from exc

    code = restore_code(url)
    _notify(progress, "Upload verified")
    return {"url": url, "code": code, "size": size}


COPY_STAMP_FORMAT = "%Y%m%d-%H%M%S"


def _copy_time(path: Path, prefix: str) -> float:
    """When a local copy was made: the stamp in its name, else its mtime."""
    try:
        return datetime.strptime(path.name[len(prefix):], COPY_STAMP_FORMAT).timestamp()
    except ValueError:
        return path.stat().st_mtime


def rotate_local_copies(
    home: Path,
    prefix: str,
    keep: int,
    protect: Optional[Path] = None,
) -> list[Path]:
    """Delete all but the ``keep`` newest ``<prefix>*`` entries in the home.

    Copies are ordered by the timestamp in their name, since a renamed
    directory keeps its old mtime. ``protect`` is never deleted and counts
    towards ``keep``. Every deletion is attempted before failures are
    reported.

    Raises:
        BackupError: One or more copies could not be removed.
    """
    copies = []
    for path in Path(home).glob(prefix + "*"):
        try:
            copies.append((_copy_time(path, prefix), path))
        except OSError:
            continue
    copies.sort(key=lambda item: (item[1] == protect, item[0], item[1].name), reverse=True)

    removed: list[Path] = []
    errors: list[str] = []
    for _, path in copies[keep:]:
        if protect is not None and path == protect:
            continue
        try:
            if path.is_dir() and not path.is_symlink():
                shutil.rmtree(path)
            else:
                path.unlink()
            removed.append(path)
        except OSError as exc:
            errors.append(f"{path.name}: {exc}")
    if errors:
        raise BackupError("failed to remove old backups: " + "; ".join(errors))
    return removed


def restore_backup(
    target: BackupTarget,
    code: str,
    home: Path,
    service_url: str = BACKUP_SERVICE_URL,
    progress: Optional[ProgressCallback] = None,
) -> dict[str, Any]:
    """Download a backup by code and restore it into the home.

    Args:
        target: What to restore.
        code: Restore code printed by the upload.
        home: Home directory to restore into.
        service_url: Service the code belongs to.
        progress: Called with human-readable progress lines.

    Returns:
        dict: 'target' (restored path), 'previous' (aside copy or None),
        'warnings' (list of non-fatal problems).

    Raises:
        BackupError: Download, verification or extraction fails.
    """
    if not CODE_RE.match(code):
        raise BackupError(f"invalid restore code: {code!r}")

    home = Path(home)
    target_path = home / target.path
    url = f"{service_url.rstrip('/')}/{code}{ARCHIVE_SUFFIX}"
    warnings: list[str] = []
    previous: Optional[Path] = None

    with tempfile.TemporaryDirectory(prefix=f"zzk-{target.name}-") as tmp:
        archive = Path(tmp) / f"{code}{ARCHIVE_SUFFIX}"
        _notify(progress, "Downloading...")
        download_file(url, archive)

        _notify(progress, "Verifying downloaded archive...")
        try:
            verify_archive(archive)
        except BackupError as exc:
            raise BackupError(
                f"downloaded file is not a valid tar.xz archive: {exc} "
                "(wrong code, or the file may have expired)"
            ) from exc

        _notify(progress, "Testing archive extraction...")
        test_dir = Path(tmp) / "test"
        try:
            with tarfile.open(archive, "r:xz") as tar:
                tar.extractall(test_dir, filter="data")
        except (OSError, tarfile.TarError) as exc:
            raise BackupError(f"archive extraction test failed: {exc}") from exc
        if not (test_dir / target.path).exists():
            raise BackupError(f"archive does not contain a {target.path} directory")

        if target_path.exists():
            stamp = datetime.now().strftime(COPY_STAMP_FORMAT)
            previous = home / f"{target.backup_prefix}{stamp}"
            try:
                os.rename(target_path, previous)
            except OSError as exc:
                raise BackupError(f"failed to backup existing {target.name}: {exc}") from exc
            _notify(progress, f"Existing {target.name} moved to {previous}")

        _notify(progress, f"Extracting archive to {home}...")
        try:
            with tarfile.open(archive, "r:xz") as tar:
                tar.extractall(home, filter="data")
        except (OSError, tarfile.TarError) as exc:
            if previous is not None:
                shutil.rmtree(target_path, ignore_errors=True)
                try:
                    os.rename(previous, target_path)
                except OSError as rename_exc:
                    raise BackupError(
                        f"failed to extract archive: {exc}; previous {target.name} "
                        f"could not be put back and is kept at {previous}: {rename_exc}"
                    ) from exc
                _notify(progress, f"Extraction failed, restored previous {target.name}")
            raise BackupError(f"failed to extract archive: {exc}") from exc

        if previous is not None:
            try:
                rotate_local_copies(home, target.backup_prefix, target.keep, protect=previous)
            except BackupError as exc:
                logger.warning("%s", exc)
                warnings.append(str(exc))

    _notify(progress, f"{target.name} restored")
    return {"target": target_path, "previous": previous, "warnings": warnings}
