"""
Media downloads through yt-dlp with aria2c as the external downloader.

The yt-dlp binary is kept in the user cache dir and refreshed when the
GitHub latest release tag differs from ``yt-dlp --version``.
"""

from __future__ import annotations

import logging
import os
import platform
import shutil
import subprocess
import tempfile
from pathlib import Path
from typing import Optional

import requests

logger = logging.getLogger("zzk.media")

RELEASE_API = "https://api.github.com/repos/yt-dlp/yt-dlp/releases/latest"
DOWNLOAD_BASE = "https://github.com/yt-dlp/yt-dlp/releases/latest/download/"
RELEASE_ASSETS = {
    "linux": "yt-dlp_linux",
    "darwin": "yt-dlp_macos",
    "windows": "yt-dlp.exe",
}
HTTP_TIMEOUT = 60

ARIA2C_ARGS = (
    "--no-netrc=true",
    "--log-level=error",
    "--summary-interval=0",
    "--auto-save-interval=0",
    "--file-allocation=falloc",
    "--console-log-level=error",
    "--split=16",
    "--min-split-size=1M",
    "--http-no-cache=true",
    "--max-connection-per-server=16",
    "--max-overall-download-limit=6M",
)

AUDIO_ARGS = (
    "-o", "%(title)s.%(ext)s",
    "-f", "bestaudio/best",
    "--no-playlist",
)

ALBUM_ARGS = (
    "-o", "%(uploader,artist|Unknown Artist)s-%(playlist_title)s/%(autonumber)s-%(title)s.%(ext)s",
    "-f", "bestaudio/best",
    "--yes-playlist",
)

VIDEO_ARGS = (
    "--sub-langs", "en.*",
    "--write-subs",
    "--no-playlist",
    "-o", "%(upload_date)s_%(title)s-[%(id)s].%(ext)s",
)

ARIA2C_INSTALL_HINT = """aria2c is not installed. Please install aria2c first.
  macOS: brew install aria2
  Linux (Debian/Ubuntu): sudo apt install aria2
  Linux (Fedora): sudo dnf install aria2
  Windows: scoop install aria2 or choco install aria2"""


class MediaError(Exception):
    """Raised when a download cannot be prepared or yt-dlp fails."""


def _os_name() -> str:
    return platform.system().lower()


def _run(cmd: list[str]) -> subprocess.CompletedProcess:
    return subprocess.run(cmd, capture_output=True, text=True)


def _run_attached(cmd: list[str], cwd: Path) -> int:
    """Run with the terminal attached so yt-dlp can draw progress."""
    return subprocess.run(cmd, cwd=cwd).returncode


# ---------------------------------------------------------------------------
# Argument sets
# ---------------------------------------------------------------------------


def base_args() -> list[str]:
    return [
        "--geo-bypass",
        "--no-cache-dir",
        "--restrict-filenames",
        "--external-downloader", "aria2c",
        "--external-downloader-args", "aria2c:" + " ".join(ARIA2C_ARGS),
    ]


def audio_args() -> list[str]:
    return base_args() + list(AUDIO_ARGS)


def album_args() -> list[str]:
    return base_args() + list(ALBUM_ARGS)


def video_args(max_height: int) -> list[str]:
    """Video args with the format capped at the given screen height."""
    quality = f"bestvideo[height<={max_height}]+bestaudio/best[height<={max_height}]/best"
    return base_args() + list(VIDEO_ARGS) + ["-f", quality]


# ---------------------------------------------------------------------------
# Screen height
# ---------------------------------------------------------------------------


def parse_system_profiler_height(output: str) -> int:
    """Tallest ``Resolution: W x H`` in system_profiler output (0 if none)."""
    best = 0
    for line in output.splitlines():
        if "Resolution:" not in line:
            continue
        parts = line.split()
        for i, part in enumerate(parts[:-1]):
            if part == "x" and parts[i + 1].isdigit():
                best = max(best, int(parts[i + 1]))
    return best


def parse_xrandr_height(output: str) -> int:
    """Tallest ``WxH`` leading token on xrandr lines with an offset."""
    best = 0
    for line in output.splitlines():
        if "x" not in line or "+" not in line:
            continue
        parts = line.split()
        if not parts:
            continue
        res = parts[0].split("x")
        if len(res) == 2 and res[1].isdigit():
            best = max(best, int(res[1]))
    return best


def parse_wmic_height(output: str) -> int:
    best = 0
    for line in output.splitlines():
        line = line.strip()
        if line.isdigit():
            best = max(best, int(line))
    return best


_SCREEN_PROBES = {
    "darwin": (["system_profiler", "SPDisplaysDataType"], parse_system_profiler_height),
    "linux": (["xrandr"], parse_xrandr_height),
    "windows": (
        ["wmic", "path", "Win32_VideoController", "get", "CurrentVerticalResolution"],
        parse_wmic_height,
    ),
}


def screen_height(os_name: Optional[str] = None) -> int:
    """Largest vertical resolution among attached displays.

    Raises:
        MediaError: Unsupported OS, probe failure, or nothing parsed.
    """
    os_name = os_name or _os_name()
    if os_name not in _SCREEN_PROBES:
        raise MediaError(f"unsupported OS: {os_name}")
    cmd, parse = _SCREEN_PROBES[os_name]
    try:
        result = _run(cmd)
    except OSError as exc:
        raise MediaError(f"failed to get screen resolution: {exc}") from exc
    if result.returncode != 0:
        raise MediaError(f"failed to get screen resolution: {cmd[0]} exited {result.returncode}")
    height = parse(result.stdout)
    if height == 0:
        raise MediaError("could not detect screen resolution")
    return height


# ---------------------------------------------------------------------------
# yt-dlp binary management
# ---------------------------------------------------------------------------


def user_cache_dir(home: Path, os_name: Optional[str] = None) -> Path:
    os_name = os_name or _os_name()
    if os_name == "darwin":
        return Path(home) / "Library" / "Caches"
    if os_name == "windows":
        local = os.environ.get("LOCALAPPDATA")
        return Path(local) if local else Path(tempfile.gettempdir())
    xdg = os.environ.get("XDG_CACHE_HOME")
    return Path(xdg) if xdg else Path(home) / ".cache"


def yt_dlp_path(home: Path, os_name: Optional[str] = None) -> Path:
    os_name = os_name or _os_name()
    name = "yt-dlp.exe" if os_name == "windows" else "yt-dlp"
    return user_cache_dir(home, os_name) / "zzk" / name


def check_aria2c() -> None:
    if shutil.which("aria2c") is None:
        raise MediaError(ARIA2C_INSTALL_HINT)


def latest_release_tag() -> str:
    """tag_name of the latest yt-dlp GitHub release.

    Raises:
        MediaError: The API cannot be reached or returns no tag.
    """
    try:
        resp = requests.get(RELEASE_API, timeout=HTTP_TIMEOUT)
        resp.raise_for_status()
        tag = resp.json().get("tag_name", "")
    except (requests.RequestException, ValueError) as exc:
        raise MediaError(f"failed to check latest version: {exc}") from exc
    if not tag:
        raise MediaError("could not parse latest version")
    return tag.strip()


def installed_version(binary: Path) -> Optional[str]:
    try:
        result = _run([str(binary), "--version"])
    except OSError:
        return None
    if result.returncode != 0:
        return None
    return result.stdout.strip() or None


def needs_update(binary: Path) -> bool:
    """True when the cached binary is unusable or behind the latest release.

    A failed release lookup never forces an update.
    """
    current = installed_version(binary)
    if current is None:
        return True
    try:
        latest = latest_release_tag()
    except MediaError as exc:
        logger.debug("Skipping yt-dlp update check: %s", exc)
        return False
    return current != latest


def download_yt_dlp(binary: Path, os_name: Optional[str] = None) -> Path:
    """Fetch the release asset for the OS into ``binary``.

    Raises:
        MediaError: Unsupported OS or download failure.
    """
    os_name = os_name or _os_name()
    asset = RELEASE_ASSETS.get(os_name)
    if asset is None:
        raise MediaError(f"unsupported OS: {os_name}")

    binary.parent.mkdir(parents=True, exist_ok=True)
    tmp = binary.with_name(binary.name + ".part")
    try:
        with requests.get(DOWNLOAD_BASE + asset, stream=True, timeout=HTTP_TIMEOUT) as resp:
            resp.raise_for_status()
            with open(tmp, "wb") as f:
                for chunk in resp.iter_content(chunk_size=65536):
                    f.write(chunk)
        if os_name != "windows":
            os.chmod(tmp, 0o755)
        os.replace(tmp, binary)
    except (OSError, requests.RequestException) as exc:
        tmp.unlink(missing_ok=True)
        raise MediaError(f"download failed: {exc}") from exc

    logger.info("Downloaded yt-dlp to %s", binary)
    return binary


def ensure_yt_dlp(home: Path, os_name: Optional[str] = None) -> Path:
    """Path to a current yt-dlp binary, downloading it when needed."""
    binary = yt_dlp_path(home, os_name)
    if binary.exists() and not needs_update(binary):
        return binary
    logger.info("yt-dlp %s, downloading", "update available" if binary.exists() else "not found")
    return download_yt_dlp(binary, os_name)


# ---------------------------------------------------------------------------
# Downloads
# ---------------------------------------------------------------------------


def destination(kind: str, home: Path, use_tmp: bool = False) -> Path:
    """``~/Music`` for audio and albums, ``~/Movies`` for video."""
    if use_tmp:
        return Path(tempfile.gettempdir()) / "zzk-debug"
    return Path(home) / ("Movies" if kind == "vid" else "Music")


def build_args(kind: str, os_name: Optional[str] = None) -> list[str]:
    if kind == "aud":
        return audio_args()
    if kind == "alb":
        return album_args()
    if kind == "vid":
        return video_args(screen_height(os_name))
    raise MediaError(f"unknown download kind: {kind}")


def download(
    kind: str,
    urls: list[str],
    home: Path,
    use_tmp: bool = False,
    os_name: Optional[str] = None,
) -> Path:
    """Download URLs with yt-dlp into the destination for ``kind``.

    Args:
        kind: ``aud``, ``alb`` or ``vid``.
        urls: One or more media URLs.
        home: User home directory.
        use_tmp: Download to a scratch dir instead of ~/Music or ~/Movies.
        os_name: Target OS. Defaults to this OS.

    Returns:
        Path: The destination directory.

    Raises:
        MediaError: Missing tools, setup failure, or yt-dlp failed.
    """
    if not urls:
        raise MediaError("at least one URL is required")
    check_aria2c()
    binary = ensure_yt_dlp(home, os_name)
    args = build_args(kind, os_name)

    dest = destination(kind, home, use_tmp)
    try:
        dest.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise MediaError(f"failed to create directory {dest}: {exc}") from exc

    try:
        code = _run_attached([str(binary), *args, *urls], cwd=dest)
    except OSError as exc:
        raise MediaError(f"failed to run yt-dlp: {exc}") from exc
    if code != 0:
        raise MediaError(f"yt-dlp failed with exit code {code}")
    return dest
