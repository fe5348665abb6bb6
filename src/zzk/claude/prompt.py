"""Interactive prompts for template-based providers (``zzk claude set``)."""

from __future__ import annotations

from typing import Optional

import click

from .models import MODEL_ENV_VARS, Provider, ProviderError
from .templates import ProviderTemplate

RESET_WORD = "default"

MODEL_LABELS = {
    "opus_model": "Opus model",
    "sonnet_model": "Sonnet model",
    "haiku_model": "Haiku model",
    "subagent_model": "Subagent model",
}


def mask_token(token: str) -> str:
    """Show only the ends of a token."""
    if len(token) <= 8:
        return "********"
    return f"{token[:4]}...{token[-4:]}"


def _prompt_token(existing: Optional[Provider]) -> str:
    if existing and existing.api_token:
        value = click.prompt(
            f"API token [current: {mask_token(existing.api_token)}]",
            default="",
            show_default=False,
            hide_input=True,
        ).strip()
        return value or existing.api_token

    value = click.prompt("API token", hide_input=True).strip()
    if not value:
        raise ProviderError("API token is required")
    return value


def _prompt_model(label: str, current: str, is_current: bool) -> str:
    if not current:
        return click.prompt(f"  {label}", default="", show_default=False).strip()

    source = "current" if is_current else "default"
    value = click.prompt(
        f"  {label} [{source}: {current}] ('{RESET_WORD}' to reset)",
        default="",
        show_default=False,
    ).strip()
    if not value:
        return current
    if value == RESET_WORD:
        return ""
    return value


def prompt_for_provider(
    template: ProviderTemplate,
    existing: Optional[Provider] = None,
) -> Provider:
    """Ask for the token and, where allowed, model overrides.

    Empty answers keep the shown value. Answering ``default`` to a
    model clears the override.

    Args:
        template: Template supplying the base URL and default model.
        existing: Previously saved provider, used as defaults.

    Returns:
        Provider: Validated provider.

    Raises:
        ProviderError: The answers do not form a valid provider.
    """
    provider = Provider(
        base_url=template.base_url,
        api_token=_prompt_token(existing),
        disable_telemetry=existing.disable_telemetry if existing else False,
    )

    if template.allow_models:
        click.echo("\nModel overrides (leave empty to keep shown value):")
        for _, attr in MODEL_ENV_VARS:
            current = getattr(existing, attr) if existing else ""
            shown = current or template.default_model
            value = _prompt_model(MODEL_LABELS[attr], shown, bool(current))
            setattr(provider, attr, value)

    try:
        provider.validate_fields()
    except ProviderError as exc:
        raise ProviderError(f"validation failed: {exc}") from exc
    return provider
