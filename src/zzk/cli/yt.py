"""Media download commands: yt aud, yt alb, yt vid."""

from __future__ import annotations

import click

from ._common import HOME_HELP, USER_HOME, console, fail, home_path

_KINDS = {
    "aud": "Download audio only (best quality) to ~/Music.",
    "alb": "Download a whole album or playlist as audio to ~/Music.",
    "vid": "Download video capped at your screen height to ~/Movies.",
}


def _download(kind: str, urls: tuple, tmp: bool, home: str) -> None:
    from ..media import MediaError, download

    try:
        dest = download(kind, list(urls), home_path(home), use_tmp=tmp)
    except MediaError as exc:
        fail(str(exc))
    console.print(f"\n[green]✓[/] Downloaded to {dest}")


def register_yt_commands(main: click.Group) -> None:
    """Register the yt command group."""

    @main.group()
    def yt():
        """Download media with yt-dlp and aria2c.

        yt-dlp is fetched into the user cache directory and refreshed when a
        newer release is out. aria2c must be installed.
        """

    def _make(kind: str, help_text: str) -> None:
        @yt.command(kind, help=help_text)
        @click.argument("urls", nargs=-1, required=True)
        @click.option("--tmp", is_flag=True, help="Download to a scratch directory instead.")
        @click.option("--home", default=USER_HOME, type=click.Path(), help=HOME_HELP)
        def command(urls: tuple, tmp: bool, home: str):
            _download(kind, urls, tmp, home)

    for kind, help_text in _KINDS.items():
        _make(kind, help_text)
