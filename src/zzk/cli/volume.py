"""Volume commands: vol, macos vol."""

from __future__ import annotations

from typing import Optional

import click

from ._common import console, current_os, fail


def _set_volume(level: Optional[int], os_name: Optional[str] = None) -> None:
    from ..volume import DEFAULT_VOLUME, VolumeError, get_volume, set_volume

    previous = get_volume(os_name)
    target = DEFAULT_VOLUME if level is None else level
    try:
        set_volume(target, os_name)
    except VolumeError as exc:
        fail(f"Failed to set volume: {exc}")

    note = "default" if level is None else ""
    if previous is not None:
        note = f"{note}, was {previous}" if note else f"was {previous}"
    console.print(f"Volume set to {target}" + (f" ({note})" if note else ""))


def register_volume_commands(main: click.Group) -> None:
    """Register vol and the macos group."""

    @main.command("vol")
    @click.argument("level", required=False, type=int)
    def vol(level: Optional[int]):
        """Set the output volume (0-100, default 17).

        Examples:

            zzk vol

            zzk vol 40
        """
        _set_volume(level)

    @main.group()
    def macos():
        """macOS-only helpers."""

    @macos.command("vol")
    @click.argument("level", required=False, type=int)
    def macos_vol(level: Optional[int]):
        """Set the macOS output volume (0-100, default 17)."""
        if current_os() != "darwin":
            fail("This command is only supported on macOS")
        _set_volume(level, "darwin")
