"""Ownership markers embedded in generated SSH key comments.

A managed public key ends with ``[zzk:<identity>]``. The marker is
the only link back to the identity once it leaves the config.
"""

from __future__ import annotations

import re
from typing import Optional

MARKER_TAG = "zzk"

_MARKER_RE = re.compile(r"\[" + MARKER_TAG + r":([^\]]+)\]")


def format_marker(name: str) -> str:
    """Build the marker for an identity name."""
    return f"[{MARKER_TAG}:{name}]"


def parse_marker(text: str) -> Optional[str]:
    """Extract the identity name from the first marker in text.

    Args:
        text: Public key line (or any text).

    Returns:
        The identity name, or None when no marker is present.
    """
    match = _MARKER_RE.search(text)
    if match is None:
        return None
    return match.group(1)
