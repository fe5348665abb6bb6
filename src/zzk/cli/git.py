"""Git identity commands: sync, where, ls, status, info, backups."""

from __future__ import annotations

import os
from pathlib import Path

import click
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from ._common import HOME_HELP, USER_HOME, console, fail, home_path, time_ago

EXAMPLE_IDENTITY = """{
  "identities": {
    "github-work": {
      "user": "your-username",
      "email": "work@company.com",
      "domain": "github.com",
      "folders": ["~/Work/Github"]
    }
  }
}"""

_EVENT_STYLE = {
    "info": "[dim]·[/]",
    "ok": "[green]✓[/]",
    "warn": "[yellow]⚠[/]",
    "error": "[red]✗[/]",
}


def status_label(status) -> str:
    """Map identity status to a Rich-formatted indicator."""
    from ..identity.models import IdentityStatus

    return {
        IdentityStatus.ACTIVE: "[green]✓ Active[/]",
        IdentityStatus.KEY_MISSING: "[yellow]⚠ Key missing[/]",
        IdentityStatus.CONFIG_MISSING: "[red]✗ Config missing[/]",
    }.get(status, "[dim]unknown[/]")


def _load_or_exit(home: Path):
    from ..identity.store import IdentityConfigError, load_config

    try:
        return load_config(home)
    except IdentityConfigError as exc:
        console.print(f"[red]Error loading config:[/] {exc}")
        console.print("[dim]Run 'zzk git sync' to create an example config.[/]")
        raise SystemExit(1)


def _print_legend() -> None:
    console.print("\n[bold]Status legend:[/]")
    console.print("  [green]✓ Active[/]          fully configured and ready")
    console.print("  [yellow]⚠ Key missing[/]     SSH key not found (run: zzk git sync)")
    console.print("  [red]✗ Config missing[/]  per-identity git config not found")


def register_git_commands(main: click.Group) -> None:
    """Register the git command group."""

    @main.group()
    def git():
        """Declarative git identities.

        Identities live in ~/.git-identities.json. Each one gets its own
        SSH key, signing setup and folder-scoped git config.
        """

    @git.command("sync")
    @click.option("--home", default=USER_HOME, type=click.Path(), help=HOME_HELP)
    def git_sync(home: str):
        """Reconcile SSH keys and git configs with ~/.git-identities.json.

        Creates missing keys, rewrites git and SSH configs, backs up and
        removes identities that left the config, and probes each forge.

        Examples:

            zzk git sync
        """
        from ..identity.engine import GlobalConfigError, IdentitySyncEngine, OrphanScanError
        from ..identity.store import (
            ConfigNotFoundError,
            IdentityConfigError,
            config_path,
            create_example_config,
            load_config,
        )

        home_dir = home_path(home)
        try:
            config = load_config(home_dir)
        except ConfigNotFoundError as exc:
            console.print(f"[yellow]{exc}[/]\n")
            try:
                path = create_example_config(home_dir)
            except OSError as write_exc:
                fail(f"Failed to create example config: {write_exc}")
            console.print(f"Created example config at: [cyan]{path}[/]\n")
            console.print("Edit it with your identities, then run 'zzk git sync' again.")
            return
        except IdentityConfigError as exc:
            console.print(f"[red]Error in {config_path(home_dir)}:[/]\n{exc}\n")
            console.print("Fix the config file and run 'zzk git sync' again.\n")
            console.print("[dim]Example identity structure:[/]")
            console.print(EXAMPLE_IDENTITY, markup=False, highlight=False)
            raise SystemExit(1)

        console.print(f"\nReading config: [cyan]{config_path(home_dir)}[/]")

        def show(event) -> None:
            icon = _EVENT_STYLE.get(event.level.value, "")
            prefix = f"[bold]{event.identity}[/] " if event.identity else ""
            console.print(f"  {icon} {prefix}{escape(event.message)}", highlight=False)

        try:
            result = IdentitySyncEngine(home_dir).sync(config, on_event=show)
        except (GlobalConfigError, OrphanScanError) as exc:
            fail(f"Sync failed: {escape(str(exc))}")

        lines = ["[bold green]Sync complete[/]"]
        if result.orphans_removed:
            lines.append(f"Orphans removed: {len(result.orphans_removed)}")
        if result.backup_path:
            lines.append(f"Orphan backup: [cyan]{result.backup_path}[/]")
        if result.created:
            lines.append(f"Identities created: {len(result.created)}")
        if result.verified:
            lines.append(f"SSH connections verified: {len(result.verified)}")
        if result.warnings:
            lines.append(f"[yellow]Warnings: {len(result.warnings)}[/]")
        if result.failed:
            lines.append(f"[red]Failed: {len(result.failed)}[/]")
            lines.extend(f"  [red]{name}[/]: {escape(err)}" for name, err in result.failed.items())
        console.print()
        console.print(Panel("\n".join(lines), title="zzk git sync", border_style="green"))

        if result.needs_key_upload:
            console.print("\n[bold]New keys need to be added to their forges:[/]")
            for name in result.created:
                identity = config.get_identity(name)
                console.print(
                    f"  {name}: [cyan]{identity.home_pub_key_path(home_dir)}[/] "
                    f"-> {identity.domain}"
                )
        if result.skipped_folders:
            console.print("\n[dim]Non-empty folders left in place:[/]")
            for folder in result.skipped_folders:
                console.print(f"  [dim]{folder}[/]")
        console.print()

    @git.command("where")
    @click.argument("path", required=False, type=click.Path())
    @click.option("--home", default=USER_HOME, type=click.Path(), help=HOME_HELP)
    def git_where(path: str, home: str):
        """Show which identity applies to a directory (default: cwd).

        Examples:

            zzk git where

            zzk git where ~/Work/Github/project
        """
        from ..fileutil import expand_home
        from ..identity.detector import detect_identity, effective_git_identity_matches, in_git_repo
        from ..identity.ssh import key_exists

        home_dir = home_path(home)
        config = _load_or_exit(home_dir)
        directory = Path(path).expanduser() if path else Path(os.getcwd())

        match = detect_identity(config, directory, home_dir)
        if match is None:
            console.print("[yellow]⚠ No identity detected for this directory[/]\n")
            console.print(f"Directory: {directory}\n")
            console.print("Available identities:")
            for identity in config.identities.values():
                console.print(f"  [bold]{identity.name}[/]: {', '.join(identity.folders)}")
            console.print("\nMove your repository into one of these folders to use an identity.")
            raise SystemExit(1)

        identity, folder = match
        console.print(f"[green]✓ Identity detected:[/] [bold]{identity.name}[/]\n")
        table = Table(show_header=False, box=None, padding=(0, 2))
        table.add_column("Field", style="bold")
        table.add_column("Value")
        table.add_row("User", identity.user)
        table.add_row("Email", identity.email)
        table.add_row("Domain", identity.domain)
        table.add_row("SSH key", str(identity.ssh_key_path(home_dir)))
        table.add_row("Folder", f"{directory} (matches {folder}/)")
        table.add_row("Git config", str(identity.git_config_path(home_dir)))
        table.add_row("Applied via", escape(f'[includeIf "gitdir:{expand_home(folder, home_dir)}/"]'))
        console.print(table)

        console.print("\n[bold]Verification:[/]")
        if in_git_repo(directory):
            if effective_git_identity_matches(identity, directory):
                console.print("  [green]✓[/] Git configuration matches identity")
            else:
                console.print("  [yellow]⚠[/] Git configuration does not match (run 'zzk git sync')")
        else:
            console.print("  [dim]ℹ Not in a git repository[/]")
        if key_exists(identity, home_dir):
            console.print("  [green]✓[/] SSH key exists")
        else:
            console.print("  [yellow]⚠[/] SSH key missing (run 'zzk git sync')")

    @git.command("ls")
    @click.option("--home", default=USER_HOME, type=click.Path(), help=HOME_HELP)
    def git_ls(home: str):
        """List identities with their on-disk status."""
        from ..identity.detector import identity_status

        home_dir = home_path(home)
        config = _load_or_exit(home_dir)
        if not config.identities:
            console.print("\n[dim]No identities configured.[/]\n")
            return

        table = Table(show_header=True, header_style="bold", box=None, padding=(0, 2))
        table.add_column("Identity", style="cyan")
        table.add_column("User")
        table.add_column("Email")
        table.add_column("Domain")
        table.add_column("Folders")
        table.add_column("Status")
        for identity in config.identities.values():
            table.add_row(
                identity.name,
                identity.user,
                identity.email,
                identity.domain,
                "\n".join(identity.folders),
                status_label(identity_status(identity, home_dir)),
            )
        console.print()
        console.print(table)
        _print_legend()
        console.print()

    @git.command("status")
    @click.option("--home", default=USER_HOME, type=click.Path(), help=HOME_HELP)
    def git_status(home: str):
        """Identity status with last sync times."""
        from ..identity.detector import identity_status
        from ..identity.models import IdentityStatus
        from ..identity.store import load_state

        home_dir = home_path(home)
        config = _load_or_exit(home_dir)
        try:
            state = load_state(home_dir)
        except (OSError, ValueError) as exc:
            console.print(f"[yellow]Warning: could not load state: {exc}[/]")
            state = None

        if not config.identities:
            console.print("\n[dim]No identities configured.[/]\n")
            return

        table = Table(show_header=True, header_style="bold", box=None, padding=(0, 2))
        table.add_column("Identity", style="cyan")
        table.add_column("Domain")
        table.add_column("Folders")
        table.add_column("Status")
        table.add_column("Last sync", style="dim")

        active = 0
        for identity in config.identities.values():
            status = identity_status(identity, home_dir)
            if status != IdentityStatus.KEY_MISSING:
                active += 1
            entry = state.identities.get(identity.name) if state else None
            table.add_row(
                identity.name,
                identity.domain,
                "\n".join(identity.folders),
                status_label(status),
                time_ago(entry.last_sync if entry else None),
            )
        console.print()
        console.print(table)

        last = time_ago(state.last_sync) if state and state.last_sync else "never synced"
        console.print(f"\nSummary: [bold]{active}[/] identities active | Last global sync: {last}")
        _print_legend()
        console.print()

    @git.command("info")
    @click.argument("name")
    @click.option("--home", default=USER_HOME, type=click.Path(), help=HOME_HELP)
    def git_info(name: str, home: str):
        """Detailed information about one identity."""
        from datetime import datetime

        from ..identity.detector import count_git_repos, identity_status
        from ..identity.models import IdentityStatus
        from ..identity.ssh import key_fingerprint

        home_dir = home_path(home)
        config = _load_or_exit(home_dir)
        identity = config.get_identity(name)
        if identity is None:
            console.print(f"[red]Identity '{name}' not found[/]\n")
            console.print("Available identities:")
            for other in config.names:
                console.print(f"  - {other}")
            raise SystemExit(1)

        key = identity.ssh_key_path(home_dir)
        gitconfig = identity.git_config_path(home_dir)

        lines = [
            f"[bold]Identity:[/] {identity.name}",
            f"[bold]Domain:[/]   {identity.domain}",
            f"[bold]User:[/]     {identity.user}",
            f"[bold]Email:[/]    {identity.email}",
            "",
            f"[bold]SSH key:[/]  {key}",
        ]
        if key.exists():
            fingerprint = key_fingerprint(identity.ssh_pub_key_path(home_dir))
            if fingerprint:
                lines.append(f"  Fingerprint: {fingerprint}")
            modified = datetime.fromtimestamp(key.stat().st_mtime)
            lines.append(f"  Modified:    {modified:%Y-%m-%d %H:%M:%S}")
        else:
            lines.append("  Status:      [yellow]⚠ Not found[/]")
        lines.append(f"  Public key:  {identity.ssh_pub_key_path(home_dir)}")
        lines.append("")
        lines.append(f"[bold]Git config:[/] {gitconfig}")
        if gitconfig.exists():
            lines.append("  Status:      [green]✓ Exists[/]")
            lines.append("  Signing:     enabled (SSH)")
            lines.append(f"  SSH command: ssh -i {key}")
        else:
            lines.append("  Status:      [yellow]⚠ Not found[/]")
        lines.append("")
        lines.append(f"[bold]Folders ({len(identity.folders)}):[/]")
        for i, (pattern, folder) in enumerate(
            zip(identity.folders, identity.expanded_folders(home_dir)), start=1
        ):
            if folder.is_dir():
                repos = count_git_repos(folder)
                note = f"[green]✓ exists[/] ({repos} repos)" if repos else "[green]✓ exists[/]"
            else:
                note = "[yellow]⚠ does not exist[/]"
            lines.append(f"  {i}. {pattern}  {note}")

        status = identity_status(identity, home_dir)
        lines.append("")
        lines.append(f"[bold]Status:[/] {status_label(status)}")
        if status != IdentityStatus.ACTIVE:
            lines.append("[dim]Run 'zzk git sync' to fix issues.[/]")

        console.print()
        console.print(Panel("\n".join(lines), title=f"git identity: {identity.name}", border_style="cyan"))
        console.print()

    @git.command("backups")
    @click.option("--home", default=USER_HOME, type=click.Path(), help=HOME_HELP)
    def git_backups(home: str):
        """List orphan backups (newest first)."""
        from ..identity.archive import backup_dir, describe_backups

        backups = describe_backups(backup_dir(home_path(home)))
        if not backups:
            console.print("\n[dim]No orphan backups found.[/]\n")
            return

        table = Table(show_header=True, header_style="bold", box=None, padding=(0, 2))
        table.add_column("Filename", style="cyan")
        table.add_column("Size", justify="right")
        table.add_column("Created", style="dim")
        table.add_column("Files")
        for b in backups:
            table.add_row(
                b["filename"],
                f"{b['size'] / 1024:.1f} KB",
                b["created"][:19],
                ", ".join(b["members"]),
            )
        console.print(f"\n[bold]{len(backups)}[/] backup(s):\n")
        console.print(table)
        console.print()
