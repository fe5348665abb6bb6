"""User-level font installation (no admin rights needed)."""

from __future__ import annotations

import logging
import os
import platform
import subprocess
import tempfile
import zipfile
from pathlib import Path
from typing import Optional

import requests
from pydantic import BaseModel, ConfigDict

from .fileutil import copy_file

logger = logging.getLogger("zzk.font")

DOWNLOAD_TIMEOUT = 120


class FontError(Exception):
    """Raised when a font cannot be downloaded or installed."""


class FontSpec(BaseModel):
    """A downloadable font bundle."""

    model_config = ConfigDict(frozen=True)

    key: str
    name: str
    url: str

    @property
    def filename(self) -> str:
        return self.url.rsplit("/", 1)[-1]


KNOWN_FONTS: dict[str, FontSpec] = {
    "dmca": FontSpec(
        key="dmca",
        name="DMCA Sans Serif",
        url="https://typedesign.replit.app/DMCAsansserif9.0-20252.zip",
    ),
}


def _run(cmd: list[str]) -> subprocess.CompletedProcess:
    return subprocess.run(cmd, capture_output=True, text=True)


def user_font_dir(home: Path, os_name: Optional[str] = None) -> Path:
    """Per-user font directory for the OS.

    Args:
        home: User home directory.
        os_name: ``darwin``, ``linux`` or ``windows``. Defaults to this OS.

    Returns:
        Path: The font directory (may not exist yet).

    Raises:
        FontError: Unsupported OS, or LOCALAPPDATA unset on Windows.
    """
    os_name = os_name or platform.system().lower()
    if os_name == "darwin":
        return Path(home) / "Library" / "Fonts"
    if os_name == "linux":
        return Path(home) / ".local" / "share" / "fonts"
    if os_name == "windows":
        local = os.environ.get("LOCALAPPDATA")
        if not local:
            raise FontError("LOCALAPPDATA environment variable not set")
        return Path(local) / "Microsoft" / "Windows" / "Fonts"
    raise FontError(f"unsupported operating system: {os_name}")


def download(url: str, dest: Path) -> Path:
    """Stream a URL to disk.

    Raises:
        FontError: Network failure or non-200 status.
    """
    try:
        with requests.get(url, stream=True, timeout=DOWNLOAD_TIMEOUT) as resp:
            if resp.status_code != 200:
                raise FontError(f"bad status: {resp.status_code} {resp.reason}")
            with open(dest, "wb") as f:
                for chunk in resp.iter_content(chunk_size=65536):
                    f.write(chunk)
    except (OSError, requests.RequestException) as exc:
        raise FontError(f"failed to download {url}: {exc}") from exc
    return Path(dest)


def safe_extract(zip_path: Path, dest: Path) -> None:
    """Extract a zip, refusing members that would land outside ``dest``.

    Raises:
        FontError: A member escapes the destination or the zip is corrupt.
    """
    dest = Path(dest).resolve()
    try:
        with zipfile.ZipFile(zip_path) as zf:
            for member in zf.infolist():
                target = (dest / member.filename).resolve()
                if target != dest and dest not in target.parents:
                    raise FontError(f"illegal file path: {member.filename}")
            zf.extractall(dest)
    except zipfile.BadZipFile as exc:
        raise FontError(f"failed to extract zip file: {exc}") from exc


def refresh_font_cache(os_name: Optional[str] = None) -> None:
    """Best-effort ``fc-cache -f``; Windows picks fonts up by itself."""
    os_name = os_name or platform.system().lower()
    if os_name not in ("linux", "darwin"):
        return
    try:
        _run(["fc-cache", "-f"])
    except OSError as exc:
        logger.debug("fc-cache unavailable: %s", exc)


def install_font(spec: FontSpec, home: Path, os_name: Optional[str] = None) -> list[Path]:
    """Download a font bundle and copy its top-level TTFs to the font dir.

    Args:
        spec: Font to install.
        home: User home directory.
        os_name: Target OS. Defaults to this OS.

    Returns:
        list[Path]: Installed font files.

    Raises:
        FontError: Any step fails, or the bundle holds no TTF files.
    """
    font_dir = user_font_dir(home, os_name)
    try:
        font_dir.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise FontError(f"failed to create font directory: {exc}") from exc

    installed: list[Path] = []
    with tempfile.TemporaryDirectory(prefix=f"zzk-{spec.key}-") as tmp:
        tmp_dir = Path(tmp)
        zip_path = tmp_dir / spec.filename
        logger.info("Downloading %s from %s", spec.name, spec.url)
        download(spec.url, zip_path)
        safe_extract(zip_path, tmp_dir)

        for entry in sorted(tmp_dir.iterdir()):
            if not entry.is_file() or entry.suffix.lower() != ".ttf":
                continue
            dst = font_dir / entry.name
            try:
                copy_file(entry, dst)
            except OSError as exc:
                raise FontError(f"failed to copy font file {entry.name}: {exc}") from exc
            installed.append(dst)

    if not installed:
        raise FontError("no TTF font files found in archive")

    refresh_font_cache(os_name)
    logger.info("Installed %d font file(s) to %s", len(installed), font_dir)
    return installed
