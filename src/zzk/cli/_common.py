"""Shared utilities for all CLI command modules.

Provides the Rich console instance and small formatting helpers
used across every command group.
"""

from __future__ import annotations

import platform
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from rich.console import Console

from .. import USER_HOME

console = Console()

HOME_HELP = "Home directory to operate on (default: $ZZK_HOME or ~)."


def home_path(home: str) -> Path:
    return Path(home or USER_HOME).expanduser()


def fail(message: str) -> None:
    """Print an error and exit with status 1."""
    console.print(f"[red]{message}[/]")
    raise SystemExit(1)


def current_os() -> str:
    return platform.system().lower()


def time_ago(when: Optional[datetime], now: Optional[datetime] = None) -> str:
    """Coarse relative time such as ``3 hours ago``.

    Args:
        when: Past timestamp (naive values are taken as UTC).
        now: Reference time. Defaults to the current time.

    Returns:
        str: ``Never`` when ``when`` is None.
    """
    if when is None:
        return "Never"
    now = now or datetime.now(timezone.utc)
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    seconds = int((now - when).total_seconds())
    if seconds < 60:
        return "just now"
    for size, unit in ((86400 * 365, "year"), (86400 * 30, "month"), (86400, "day"),
                       (3600, "hour"), (60, "minute")):
        if seconds >= size:
            count = seconds // size
            return f"{count} {unit}{'s' if count != 1 else ''} ago"
    return "just now"

