"""Built-in provider templates for ``zzk claude set``."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict

from .models import ProviderError


class ProviderTemplate(BaseModel):
    """A known provider with a fixed base URL."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    base_url: str
    allow_models: bool = False
    default_model: str = ""


TEMPLATES: tuple[ProviderTemplate, ...] = (
    ProviderTemplate(
        id="synthetic",
        name="Synthetic",
        base_url="https://api.synthetic.new/anthropic",
        allow_models=True,
        default_model="hf:zai-org/GLM-4.7",
    ),
    ProviderTemplate(
        id="openrouter",
        name="OpenRouter",
        base_url="https://openrouter.ai/api",
        allow_models=True,
        default_model="openai/gpt-oss-120b:free",
    ),
    ProviderTemplate(
        id="zai",
        name="Z.AI",
        base_url="https://api.z.ai/api/anthropic",
    ),
)


def template_ids() -> list[str]:
    return [t.id for t in TEMPLATES]


def get_template(template_id: str) -> Optional[ProviderTemplate]:
    for template in TEMPLATES:
        if template.id == template_id:
            return template
    return None


def resolve_template(prefix: str) -> ProviderTemplate:
    """Resolve an exact id or an unambiguous prefix of one.

    Args:
        prefix: What the user typed, e.g. ``syn``.

    Returns:
        ProviderTemplate.

    Raises:
        ProviderError: No template matches, or more than one does.
    """
    exact = get_template(prefix)
    if exact is not None:
        return exact

    matches = [t for t in TEMPLATES if prefix and t.id.startswith(prefix)]
    if not matches:
        raise ProviderError(
            f"unknown provider '{prefix}' (available: {', '.join(template_ids())})"
        )
    if len(matches) > 1:
        raise ProviderError(
            f"ambiguous provider '{prefix}' matches: {', '.join(t.id for t in matches)}"
        )
    return matches[0]
