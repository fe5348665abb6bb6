"""
Claude provider models and validation.

A provider is an Anthropic-compatible endpoint plus a token and
optional model overrides. Everything here ends up in a shell file that
gets sourced, so validation is strict about what may reach it.
"""

from __future__ import annotations

import re
import shlex
from typing import Optional
from urllib.parse import urlsplit

from pydantic import BaseModel, Field

RESERVED_NAMES = frozenset({"anthropic", "official", "reset", "default"})

NAME_RE = re.compile(r"^[a-zA-Z0-9_-]+$")

SHELL_METACHARACTERS = "$`\\;|&<>(){}[]"
MAX_MODEL_LENGTH = 256
MIN_TOKEN_LENGTH = 8

# Env var name -> Provider attribute. Order is the env file order.
MODEL_ENV_VARS = (
    ("ANTHROPIC_DEFAULT_OPUS_MODEL", "opus_model"),
    ("ANTHROPIC_DEFAULT_SONNET_MODEL", "sonnet_model"),
    ("ANTHROPIC_DEFAULT_HAIKU_MODEL", "haiku_model"),
    ("CLAUDE_CODE_SUBAGENT_MODEL", "subagent_model"),
)
TELEMETRY_ENV_VAR = "CLAUDE_CODE_DISABLE_NONESSENTIAL_TRAFFIC"

ENV_VARS = (
    "ANTHROPIC_BASE_URL",
    "ANTHROPIC_AUTH_TOKEN",
    *(var for var, _ in MODEL_ENV_VARS),
    TELEMETRY_ENV_VAR,
)


class ProviderError(Exception):
    """Raised when a provider or provider name is invalid."""


class ProviderNotFoundError(ProviderError):
    """Raised when a named provider is not configured."""


def validate_provider_name(name: str) -> None:
    """Check a user-chosen provider name.

    Raises:
        ProviderError: With the first rule the name breaks.
    """
    if not name:
        raise ProviderError("provider name cannot be empty")
    if len(name) < 2:
        raise ProviderError("provider name too short (min 2 characters)")
    if len(name) > 64:
        raise ProviderError("provider name too long (max 64 characters)")
    if not NAME_RE.match(name):
        raise ProviderError(
            "provider name must contain only letters, numbers, hyphens, and underscores"
        )
    if name[0] in "-_" or name[-1] in "-_":
        raise ProviderError("provider name cannot start or end with hyphen or underscore")
    if name in RESERVED_NAMES:
        raise ProviderError(f"'{name}' is a reserved name, please choose another")


def _validate_model(label: str, model: str) -> None:
    if not model:
        return
    if any(c in model for c in "\n\r\x00"):
        raise ProviderError(f"{label} contains invalid characters (newlines or null bytes)")
    if any(c.isspace() for c in model):
        raise ProviderError(f"{label} must not contain spaces")
    if any(c in SHELL_METACHARACTERS for c in model):
        raise ProviderError(f"{label} contains shell metacharacters")
    if len(model) > MAX_MODEL_LENGTH:
        raise ProviderError(f"{label} too long (max {MAX_MODEL_LENGTH} characters)")


class Provider(BaseModel):
    """One configured API provider.

    Attributes:
        base_url: HTTPS endpoint, no credentials, no trailing slash.
        api_token: Bearer token exported as ANTHROPIC_AUTH_TOKEN.
        opus_model: Optional override for the opus tier.
        sonnet_model: Optional override for the sonnet tier.
        haiku_model: Optional override for the haiku tier.
        subagent_model: Optional override for subagents.
        disable_telemetry: Export the nonessential-traffic kill switch.
    """

    base_url: str = ""
    api_token: str = ""
    opus_model: str = ""
    sonnet_model: str = ""
    haiku_model: str = ""
    subagent_model: str = ""
    disable_telemetry: bool = False

    def validate_fields(self) -> None:
        """Check every field.

        Raises:
            ProviderError: With the first problem found.
        """
        if not self.base_url:
            raise ProviderError("base_url is required")
        try:
            parts = urlsplit(self.base_url)
            _ = parts.port
        except ValueError as exc:
            raise ProviderError(f"invalid base_url {self.base_url!r}: {exc}") from exc
        if parts.scheme not in ("http", "https"):
            raise ProviderError(f"base_url must use http or https scheme, got {parts.scheme!r}")
        if parts.scheme == "http":
            raise ProviderError(
                "base_url uses insecure HTTP scheme, API tokens would be sent in plaintext"
            )
        if not parts.hostname:
            raise ProviderError("base_url must have a valid host")
        if parts.username is not None or parts.password is not None:
            raise ProviderError("base_url must not contain credentials (user:pass@)")
        if self.base_url.endswith("/"):
            raise ProviderError("base_url must not have trailing slash")

        if not self.api_token:
            raise ProviderError("api_token is required")
        if "\n" in self.api_token or "\r" in self.api_token:
            raise ProviderError("api_token must not contain newlines")
        if len(self.api_token) < MIN_TOKEN_LENGTH:
            raise ProviderError(f"api_token must be at least {MIN_TOKEN_LENGTH} characters")
        if self.api_token.strip() != self.api_token:
            raise ProviderError("api_token must not have leading or trailing whitespace")

        for _, attr in MODEL_ENV_VARS:
            _validate_model(attr, getattr(self, attr))

    def shell_exports(self) -> str:
        """``export``/``unset`` lines that apply this provider to a shell."""
        lines = [
            f"export ANTHROPIC_BASE_URL={shlex.quote(self.base_url)}",
            f"export ANTHROPIC_AUTH_TOKEN={shlex.quote(self.api_token)}",
        ]
        for var, attr in MODEL_ENV_VARS:
            value = getattr(self, attr)
            lines.append(f"export {var}={shlex.quote(value)}" if value else f"unset {var}")
        if self.disable_telemetry:
            lines.append(f"export {TELEMETRY_ENV_VAR}=1")
        else:
            lines.append(f"unset {TELEMETRY_ENV_VAR}")
        return "\n".join(lines) + "\n"


class ProviderConfig(BaseModel):
    """Contents of ~/.claude-providers.json."""

    providers: dict[str, Provider] = Field(default_factory=dict)
    active: Optional[str] = None

    def has_provider(self, name: str) -> bool:
        return name in self.providers

    def get_provider(self, name: str) -> Optional[Provider]:
        return self.providers.get(name)

    def add_provider(self, name: str, provider: Provider) -> None:
        """Add or replace a provider after validating name and fields.

        Raises:
            ProviderError: The name or provider is invalid.
        """
        validate_provider_name(name)
        try:
            provider.validate_fields()
        except ProviderError as exc:
            raise ProviderError(f"invalid provider: {exc}") from exc
        self.providers[name] = provider

    def remove_provider(self, name: str) -> Provider:
        """Remove a provider, clearing ``active`` when it pointed there."""
        if name not in self.providers:
            raise ProviderNotFoundError(f"provider '{name}' not found")
        if self.active == name:
            self.active = None
        return self.providers.pop(name)

    def set_active(self, name: str) -> None:
        if name not in self.providers:
            raise ProviderNotFoundError(f"provider '{name}' not found")
        self.active = name

    def clear_active(self) -> None:
        self.active = None
