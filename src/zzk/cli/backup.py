"""Remote backup commands: backup bio, backup openemu."""

from __future__ import annotations

from typing import Optional

import click
from rich.panel import Panel

from ._common import HOME_HELP, USER_HOME, console, fail, home_path


def _progress(message: str) -> None:
    console.print(f"  [dim]·[/] {message}", highlight=False)


def _run_backup(target_name: str, code: Optional[str], home: str) -> None:
    from ..backup import TARGETS, BackupError, check_os, restore_backup, upload_backup

    target = TARGETS[target_name]
    home_dir = home_path(home)
    try:
        check_os(target)
    except BackupError as exc:
        fail(str(exc))

    if code:
        console.print(f"\nRestoring [bold]{target.name}[/] from code [cyan]{code}[/]\n")
        try:
            result = restore_backup(target, code, home_dir, progress=_progress)
        except BackupError as exc:
            fail(f"Restore failed: {exc}")
        for warning in result["warnings"]:
            console.print(f"[yellow]Warning: {warning}[/]")
        lines = [f"[bold green]Restored[/] {result['target']}"]
        if result["previous"] is not None:
            lines.append(f"Previous copy: [cyan]{result['previous']}[/]")
        console.print()
        console.print(Panel("\n".join(lines), title=f"zzk backup {target.name}", border_style="green"))
        return

    console.print(f"\nBacking up [bold]{target.name}[/]\n")
    try:
        result = upload_backup(target, home_dir, progress=_progress)
    except BackupError as exc:
        fail(f"Backup failed: {exc}")
    console.print()
    console.print(
        Panel(
            f"[bold green]Backup uploaded[/] ({result['size'] / (1024 * 1024):.2f} MB)\n"
            f"URL:  [cyan]{result['url']}[/]\n"
            f"Code: [bold]{result['code']}[/]\n\n"
            f"Restore with: zzk backup {target.name} {result['code']}",
            title=f"zzk backup {target.name}",
            border_style="green",
        )
    )


def register_backup_commands(main: click.Group) -> None:
    """Register the backup command group."""

    @main.group()
    def backup():
        """Upload a directory to a file host, or restore it by code.

        Without CODE the directory is archived (xz), uploaded and verified.
        With CODE the archive is downloaded and restored in place; the
        current copy is kept alongside.
        """

    @backup.command("bio")
    @click.argument("code", required=False)
    @click.option("--home", default=USER_HOME, type=click.Path(), help=HOME_HELP)
    def backup_bio(code: Optional[str], home: str):
        """Back up or restore ~/.bio.

        Examples:

            zzk backup bio

            zzk backup bio AbC1
        """
        _run_backup("bio", code, home)

    @backup.command("openemu")
    @click.argument("code", required=False)
    @click.option("--home", default=USER_HOME, type=click.Path(), help=HOME_HELP)
    def backup_openemu(code: Optional[str], home: str):
        """Back up or restore OpenEmu (macOS only)."""
        _run_backup("openemu", code, home)
