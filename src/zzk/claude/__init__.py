"""
Claude provider switching.

Providers live in ~/.claude-providers.json; the active one is exported
through ~/.config/zzk/claude-env.sh for the shell to source.
"""

from .models import Provider, ProviderConfig, ProviderError, ProviderNotFoundError
from .store import load_config, save_config
from .templates import TEMPLATES, resolve_template

__all__ = [
    "Provider",
    "ProviderConfig",
    "ProviderError",
    "ProviderNotFoundError",
    "TEMPLATES",
    "load_config",
    "resolve_template",
    "save_config",
]
