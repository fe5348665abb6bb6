"""
Declarative git identities.

Identities declared in ~/.git-identities.json are reconciled with SSH
keys, per-identity git configs and the global git/SSH configs.
"""

from .detector import detect_identity, identity_status
from .engine import GlobalConfigError, IdentitySyncEngine
from .models import Identity, IdentityConfig, IdentityStatus, SyncResult
from .store import (
    ConfigNotFoundError,
    ConfigParseError,
    IdentityConfigError,
    IdentityValidationError,
    load_config,
)

__all__ = [
    "ConfigNotFoundError",
    "ConfigParseError",
    "GlobalConfigError",
    "Identity",
    "IdentityConfig",
    "IdentityConfigError",
    "IdentityStatus",
    "IdentitySyncEngine",
    "IdentityValidationError",
    "SyncResult",
    "detect_identity",
    "identity_status",
    "load_config",
]
