"""
zzk CLI -- a personal swiss army knife.

The main Click group is defined here; every command group lives in
its own module and is attached through a register function.

Entry point: zzk.cli:main
"""

from __future__ import annotations

import logging

import click

from .. import __version__


@click.group()
@click.version_option(version=__version__, prog_name="zzk")
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging.")
def main(verbose: bool):
    """zzk -- git identities, provider switching and everyday chores."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


# ---------------------------------------------------------------------------
# Register all command groups/commands from modular files
# ---------------------------------------------------------------------------

from .git import register_git_commands
from .claude import register_claude_commands
from .backup import register_backup_commands
from .font import register_font_commands
from .volume import register_volume_commands
from .yt import register_yt_commands

register_git_commands(main)
register_claude_commands(main)
register_backup_commands(main)
register_font_commands(main)
register_volume_commands(main)
register_yt_commands(main)
