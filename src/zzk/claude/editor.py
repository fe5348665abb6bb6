"""
Edit providers in $EDITOR as a YAML document.

The document is regenerated from the provider each time, so comments
the user adds do not survive a round trip.
"""

from __future__ import annotations

import logging
from typing import Optional

import click
import yaml
from pydantic import ValidationError

from .models import MODEL_ENV_VARS, Provider, ProviderError

logger = logging.getLogger("zzk.claude.editor")

PLACEHOLDER = Provider(
    base_url="https://api.example.com/anthropic",
    api_token="your-token-here",
)

HEADER = """\
# Provider configuration for Claude Code
#
# base_url and api_token are required.
# Model overrides are optional: leave them empty to use the provider default.
# Set disable_telemetry to true to turn off nonessential traffic.

"""


class NoChangesError(Exception):
    """Raised when the editor was closed without changing anything."""


def provider_to_yaml(provider: Optional[Provider] = None) -> str:
    """Render a provider (or the blank placeholder) as an editable document."""
    provider = provider or PLACEHOLDER
    data = {"base_url": provider.base_url, "api_token": provider.api_token}
    for _, attr in MODEL_ENV_VARS:
        data[attr] = getattr(provider, attr)
    data["disable_telemetry"] = provider.disable_telemetry
    return HEADER + yaml.safe_dump(data, default_flow_style=False, sort_keys=False)


def parse_provider_yaml(text: str) -> Provider:
    """Parse and validate an edited document.

    Raises:
        ProviderError: The text is not a valid provider document.
    """
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ProviderError(f"invalid YAML: {exc}") from exc
    if not isinstance(data, dict):
        raise ProviderError("expected a mapping of provider fields")

    # An empty value in YAML loads as None.
    cleaned = {key: ("" if value is None else value) for key, value in data.items()}
    try:
        provider = Provider.model_validate(cleaned)
    except ValidationError as exc:
        first = exc.errors()[0]
        field = ".".join(str(p) for p in first["loc"])
        raise ProviderError(f"{field}: {first['msg']}") from exc

    provider.validate_fields()
    return provider


def edit_provider(existing: Optional[Provider] = None) -> Provider:
    """Open the editor until it yields a valid provider.

    On a validation error the user may re-open the editor on their
    last attempt or give up.

    Args:
        existing: Provider to edit, or None for a new one.

    Returns:
        Provider: The validated result.

    Raises:
        NoChangesError: The document came back unchanged.
        ProviderError: The last attempt was invalid and the user gave up.
    """
    original = provider_to_yaml(existing)
    text = original
    while True:
        edited = click.edit(text, extension=".yaml")
        if edited is None or edited == original:
            raise NoChangesError("no changes made")
        try:
            return parse_provider_yaml(edited)
        except ProviderError as exc:
            logger.debug("Edited provider rejected: %s", exc)
            click.echo(f"Invalid provider: {exc}", err=True)
            if not click.confirm("Edit again?", default=True):
                raise
            text = edited
