"""Font installation commands."""

from __future__ import annotations

import click

from ._common import HOME_HELP, USER_HOME, console, fail, home_path


def register_font_commands(main: click.Group) -> None:
    """Register the font-install command group."""

    @main.group("font-install")
    def font_install():
        """Download and install fonts for the current user."""

    @font_install.command("dmca")
    @click.option("--home", default=USER_HOME, type=click.Path(), help=HOME_HELP)
    def font_dmca(home: str):
        """Install DMCA Sans Serif."""
        from ..font import KNOWN_FONTS, FontError, install_font

        spec = KNOWN_FONTS["dmca"]
        console.print(f"Installing [bold]{spec.name}[/]...")
        try:
            installed = install_font(spec, home_path(home))
        except FontError as exc:
            fail(f"Font install failed: {exc}")
        for path in installed:
            console.print(f"  [green]✓[/] {path.name}")
        console.print(f"\n[green]✓[/] Installed {len(installed)} font file(s) to {installed[0].parent}")
