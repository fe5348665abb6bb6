"""
System output volume via the platform's own tools.

    macOS    osascript
    Linux    pactl (when a PulseAudio/PipeWire server answers), else amixer
    Windows  powershell + winmm
"""

from __future__ import annotations

import logging
import platform
import re
import shutil
import subprocess
from typing import Optional

logger = logging.getLogger("zzk.volume")

DEFAULT_VOLUME = 17

_PULSE_RE = re.compile(r"(\d+)%")
_ALSA_RE = re.compile(r"\[(\d+)%\]")

_WINDOWS_SET = """
Add-Type -TypeDefinition @"
using System;
using System.Runtime.InteropServices;
public class Audio {{
    [DllImport("winmm.dll")]
    public static extern int waveOutSetVolume(IntPtr hwo, uint dwVolume);
    public static void SetVolume(int volume) {{
        uint vol = (uint)(volume * 655.35);
        waveOutSetVolume(IntPtr.Zero, (vol << 16) | vol);
    }}
}}
"@
[Audio]::SetVolume({level})
"""

_WINDOWS_GET = """
Add-Type -TypeDefinition @"
using System;
using System.Runtime.InteropServices;
public class Audio {
    [DllImport("winmm.dll")]
    public static extern int waveOutGetVolume(IntPtr hwo, out uint dwVolume);
    public static int GetVolume() {
        uint volume;
        waveOutGetVolume(IntPtr.Zero, out volume);
        return (int)((volume & 0xFFFF) / 655.35);
    }
}
"@
[Audio]::GetVolume()
"""


class VolumeError(Exception):
    """Raised when the volume cannot be set."""


def _run(cmd: list[str]) -> subprocess.CompletedProcess:
    return subprocess.run(cmd, capture_output=True, text=True)


def parse_pulse_volume(output: str) -> Optional[int]:
    """First ``NN%`` in ``pactl get-sink-volume`` output."""
    match = _PULSE_RE.search(output)
    return int(match.group(1)) if match else None


def parse_alsa_volume(output: str) -> Optional[int]:
    """First ``[NN%]`` in ``amixer get Master`` output."""
    match = _ALSA_RE.search(output)
    return int(match.group(1)) if match else None


def validate_level(level: int) -> int:
    if not 0 <= level <= 100:
        raise VolumeError("volume must be between 0 and 100")
    return level


def linux_audio_system() -> str:
    """``pulseaudio`` or ``alsa``.

    Raises:
        VolumeError: Neither pactl nor amixer is usable.
    """
    if shutil.which("pactl"):
        try:
            if _run(["pactl", "info"]).returncode == 0:
                return "pulseaudio"
        except OSError:
            pass
    if shutil.which("amixer"):
        return "alsa"
    raise VolumeError("no supported audio control command found (pactl, amixer)")


def _check(result: subprocess.CompletedProcess, what: str) -> subprocess.CompletedProcess:
    if result.returncode != 0:
        detail = (result.stderr or result.stdout or "").strip()
        raise VolumeError(f"{what} failed: {detail}" if detail else f"{what} failed")
    return result


def set_volume(level: int, os_name: Optional[str] = None) -> None:
    """Set the output volume (0-100).

    Raises:
        VolumeError: Out of range, unsupported OS, or the tool failed.
    """
    validate_level(level)
    os_name = os_name or platform.system().lower()
    try:
        if os_name == "darwin":
            _check(_run(["osascript", "-e", f"set volume output volume {level}"]), "osascript")
        elif os_name == "linux":
            if linux_audio_system() == "pulseaudio":
                _check(_run(["pactl", "set-sink-volume", "0", f"{level}%"]), "pactl")
            else:
                _check(_run(["amixer", "set", "Master", f"{level}%"]), "amixer")
        elif os_name == "windows":
            _check(_run(["powershell", "-Command", _WINDOWS_SET.format(level=level)]), "powershell")
        else:
            raise VolumeError(f"unsupported operating system: {os_name}")
    except OSError as exc:
        raise VolumeError(f"failed to set volume: {exc}") from exc
    logger.info("Volume set to %d", level)


def get_volume(os_name: Optional[str] = None) -> Optional[int]:
    """Current output volume, or None when it cannot be determined."""
    os_name = os_name or platform.system().lower()
    try:
        if os_name == "darwin":
            result = _run(["osascript", "-e", "get output volume of (get volume settings)"])
            text = result.stdout.strip()
            return int(text) if result.returncode == 0 and text.isdigit() else None
        if os_name == "linux":
            if linux_audio_system() == "pulseaudio":
                result = _run(["pactl", "get-sink-volume", "0"])
                parse = parse_pulse_volume
            else:
                result = _run(["amixer", "get", "Master"])
                parse = parse_alsa_volume
            return parse(result.stdout) if result.returncode == 0 else None
        if os_name == "windows":
            result = _run(["powershell", "-Command", _WINDOWS_GET])
            text = result.stdout.strip()
            if result.returncode != 0 or not text.isdigit():
                return None
            return max(0, min(100, int(text)))
    except (OSError, VolumeError) as exc:
        logger.debug("Could not read volume: %s", exc)
    return None
