"""Claude provider commands: ls, use, set, add, edit, rm, reset."""

from __future__ import annotations

import os
from pathlib import Path

import click

from ._common import HOME_HELP, USER_HOME, console, current_os, fail, home_path


def _ensure_supported() -> None:
    if current_os() == "windows":
        fail("zzk claude is not supported on Windows (requires a POSIX shell)")


def _load(home: Path):
    from ..claude.store import load_config
    from ..claude.models import ProviderError

    try:
        return load_config(home)
    except ProviderError as exc:
        fail(f"Failed to load config: {exc}")


def _save(config, home: Path) -> None:
    from ..claude.store import save_config

    try:
        save_config(config, home)
    except OSError as exc:
        fail(f"Failed to save config: {exc}")


def _print_setup_hint(home: Path) -> None:
    from ..claude.shell import setup_hint

    try:
        hint = setup_hint(home)
    except OSError as exc:
        console.print(f"[yellow]Warning: could not check shell config: {exc}[/]")
        return
    if hint:
        console.print(f"\n{hint}", highlight=False)


def _apply(name: str, provider, home: Path) -> None:
    """Write the env file for the active provider and tell the user how to load it."""
    from ..claude.shell import reload_hint, write_env_file

    try:
        write_env_file(provider, home)
    except OSError as exc:
        fail(f"Failed to write env file: {exc}")
    console.print(f"[green]✓[/] Switched to [bold]{name}[/]")
    _print_setup_hint(home)
    console.print(f"\n{reload_hint(home)}", highlight=False)


def register_claude_commands(main: click.Group) -> None:
    """Register the claude command group."""

    @main.group()
    def claude():
        """Switch Claude Code between API providers.

        Providers are stored in ~/.claude-providers.json. The active one is
        exported through ~/.config/zzk/claude-env.sh, which your shell sources.
        """
        _ensure_supported()

    @claude.command("ls")
    @click.option("--home", default=USER_HOME, type=click.Path(), help=HOME_HELP)
    def claude_ls(home: str):
        """List providers; * marks the active one."""
        from ..claude.shell import reload_hint, shell_out_of_sync

        home_dir = home_path(home)
        config = _load(home_dir)
        if not config.providers:
            console.print("No providers configured.")
            console.print("[dim]Add one with 'zzk claude set <template>' or 'zzk claude add <name>'.[/]")
            return

        for name in sorted(config.providers):
            marker = "*" if name == config.active else " "
            style = "bold green" if name == config.active else ""
            console.print(f"{marker} [{style}]{name}[/]" if style else f"{marker} {name}")

        active = config.get_provider(config.active) if config.active else None
        expected = active.base_url if active else ""
        if shell_out_of_sync(expected):
            current = os.environ.get("ANTHROPIC_BASE_URL", "") or "(official API)"
            console.print(
                f"\n[yellow]⚠ Shell is out of sync: ANTHROPIC_BASE_URL is {current}[/]",
                highlight=False,
            )
            console.print(reload_hint(home_dir), highlight=False)

    @claude.command("use")
    @click.argument("name")
    @click.option("--home", default=USER_HOME, type=click.Path(), help=HOME_HELP)
    def claude_use(name: str, home: str):
        """Make NAME the active provider."""
        from ..claude.models import ProviderError

        home_dir = home_path(home)
        config = _load(home_dir)
        try:
            config.set_active(name)
        except ProviderError as exc:
            fail(str(exc))
        _save(config, home_dir)
        _apply(name, config.get_provider(name), home_dir)

    @claude.command("set")
    @click.argument("template")
    @click.option("--home", default=USER_HOME, type=click.Path(), help=HOME_HELP)
    def claude_set(template: str, home: str):
        """Configure a provider from a built-in template.

        TEMPLATE is a template id or an unambiguous prefix of one
        (synthetic, openrouter, zai).

        Examples:

            zzk claude set openrouter

            zzk claude set syn
        """
        from ..claude.models import ProviderError
        from ..claude.prompt import prompt_for_provider
        from ..claude.templates import resolve_template

        home_dir = home_path(home)
        try:
            tmpl = resolve_template(template)
        except ProviderError as exc:
            fail(str(exc))

        config = _load(home_dir)
        existing = config.get_provider(tmpl.id)
        console.print(f"Configuring [bold]{tmpl.name}[/] ({tmpl.base_url})", highlight=False)
        try:
            provider = prompt_for_provider(tmpl, existing)
            config.add_provider(tmpl.id, provider)
        except ProviderError as exc:
            fail(str(exc))
        _save(config, home_dir)
        console.print(f"[green]✓[/] Saved provider [bold]{tmpl.id}[/]")

        if config.active == tmpl.id or os.environ.get("ANTHROPIC_BASE_URL", "") == tmpl.base_url:
            _apply(tmpl.id, provider, home_dir)
        else:
            console.print(f"\nActivate it with: zzk claude use {tmpl.id}")

    @claude.command("add")
    @click.argument("name")
    @click.option("--home", default=USER_HOME, type=click.Path(), help=HOME_HELP)
    def claude_add(name: str, home: str):
        """Add a custom provider in your $EDITOR."""
        from ..claude.editor import NoChangesError, edit_provider
        from ..claude.models import ProviderError, validate_provider_name

        home_dir = home_path(home)
        try:
            validate_provider_name(name)
        except ProviderError as exc:
            fail(f"Invalid provider name: {exc}")

        config = _load(home_dir)
        if config.has_provider(name):
            fail(f"Provider '{name}' already exists. Use 'zzk claude edit {name}' to modify it.")

        try:
            provider = edit_provider()
            config.add_provider(name, provider)
        except NoChangesError:
            console.print("No changes made.")
            return
        except ProviderError as exc:
            fail(str(exc))
        _save(config, home_dir)
        console.print(f"[green]✓[/] Added provider [bold]{name}[/]")
        console.print(f"\nActivate it with: zzk claude use {name}")

    @claude.command("edit")
    @click.argument("name")
    @click.option("--home", default=USER_HOME, type=click.Path(), help=HOME_HELP)
    def claude_edit(name: str, home: str):
        """Edit an existing provider in your $EDITOR."""
        from ..claude.editor import NoChangesError, edit_provider
        from ..claude.models import ProviderError

        home_dir = home_path(home)
        config = _load(home_dir)
        existing = config.get_provider(name)
        if existing is None:
            fail(f"provider '{name}' not found")

        old_url = existing.base_url
        try:
            provider = edit_provider(existing)
            config.add_provider(name, provider)
        except NoChangesError:
            console.print("No changes made.")
            return
        except ProviderError as exc:
            fail(str(exc))
        _save(config, home_dir)
        console.print(f"[green]✓[/] Updated provider [bold]{name}[/]")

        if config.active == name or os.environ.get("ANTHROPIC_BASE_URL", "") == old_url:
            _apply(name, provider, home_dir)

    @claude.command("rm")
    @click.argument("name")
    @click.option("--force", "-f", is_flag=True, help="Skip confirmation.")
    @click.option("--home", default=USER_HOME, type=click.Path(), help=HOME_HELP)
    def claude_rm(name: str, force: bool, home: str):
        """Remove a provider."""
        from ..claude.models import ProviderError
        from ..claude.shell import clear_env_file, reload_hint

        home_dir = home_path(home)
        config = _load(home_dir)
        if not config.has_provider(name):
            fail(f"provider '{name}' not found")

        if not force and not click.confirm(f"Remove provider '{name}'?", default=False):
            console.print("Cancelled")
            return

        was_active = config.active == name
        try:
            config.remove_provider(name)
        except ProviderError as exc:
            fail(str(exc))
        _save(config, home_dir)
        console.print(f"[green]✓[/] Removed provider [bold]{name}[/]")

        if was_active:
            try:
                clear_env_file(home_dir)
            except OSError as exc:
                fail(f"Failed to reset env file: {exc}")
            console.print("Active provider removed; reverted to the official Anthropic API.")
            console.print(f"\n{reload_hint(home_dir)}", highlight=False)

    @claude.command("reset")
    @click.option("--home", default=USER_HOME, type=click.Path(), help=HOME_HELP)
    def claude_reset(home: str):
        """Go back to the official Anthropic API."""
        from ..claude.shell import clear_env_file, reload_hint

        home_dir = home_path(home)
        config = _load(home_dir)
        config.clear_active()
        _save(config, home_dir)
        try:
            clear_env_file(home_dir)
        except OSError as exc:
            fail(f"Failed to reset env file: {exc}")
        console.print("[green]✓[/] Reset to the official Anthropic API")
        _print_setup_hint(home_dir)
        console.print(f"\n{reload_hint(home_dir)}", highlight=False)
