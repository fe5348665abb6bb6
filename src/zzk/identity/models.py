"""
Identity data models: the declared config and the recorded run state.

An identity is a named bundle of git author, signing key and folder
scope. Its name is the key in the config mapping; every managed path
is derived from that name and never stored.
"""

from __future__ import annotations

import re
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from ..fileutil import expand_home
from .markers import format_marker

EMAIL_RE = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")

STATE_VERSION = "1.0"


class Identity(BaseModel):
    """A single git identity as declared in ~/.git-identities.json.

    Attributes:
        name: Identity name (the config key, not serialized).
        user: Display name used for commit authorship.
        email: Commit email, also the allowed-signers principal.
        domain: Forge host the key is registered with.
        folders: Folder patterns this identity governs.
    """

    name: str = Field(default="", exclude=True)
    user: str = ""
    email: str = ""
    domain: str = ""
    folders: list[str] = Field(default_factory=list)

    def problem(self) -> Optional[str]:
        """Return the first validation failure, or None when valid."""
        if not self.user:
            return "user must not be empty"
        if not self.email:
            return "email must not be empty"
        if not self.domain:
            return "domain must not be empty"
        if not self.folders:
            return "at least one folder must be specified"
        if not EMAIL_RE.match(self.email):
            return f"invalid email address: {self.email}"
        if any(not folder for folder in self.folders):
            return "folder path must not be empty"
        return None

    # Derived paths, all relative to a home directory.

    def ssh_key_path(self, home: Path) -> Path:
        return Path(home) / ".ssh" / f"{self.name}_key"

    def ssh_pub_key_path(self, home: Path) -> Path:
        return Path(home) / ".ssh" / f"{self.name}_key.pub"

    def git_config_path(self, home: Path) -> Path:
        return Path(home) / f".gitconfig-{self.name}"

    def home_pub_key_path(self, home: Path) -> Path:
        return Path(home) / f"{self.name}_key.pub"

    def ssh_key_comment(self) -> str:
        """Key comment embedding the ownership marker."""
        return f"{self.email} {format_marker(self.name)}"

    def expanded_folders(self, home: Path) -> list[Path]:
        return [expand_home(folder, home) for folder in self.folders]


class IdentityConfig(BaseModel):
    """The whole identity store, in declaration order."""

    identities: dict[str, Identity] = Field(default_factory=dict)

    def has_identity(self, name: str) -> bool:
        return name in self.identities

    def get_identity(self, name: str) -> Optional[Identity]:
        return self.identities.get(name)

    @property
    def names(self) -> list[str]:
        return list(self.identities)


class IdentityRunState(BaseModel):
    """What the last sync recorded for one identity."""

    model_config = ConfigDict(populate_by_name=True)

    last_sync: Optional[datetime] = Field(default=None, alias="lastSync")
    ssh_key_fingerprint: str = Field(default="", alias="sshKeyFingerprint")


class RunState(BaseModel):
    """Persisted sync history (~/.config/zzk/git-state.json)."""

    model_config = ConfigDict(populate_by_name=True)

    version: str = STATE_VERSION
    last_sync: Optional[datetime] = Field(default=None, alias="lastSync")
    identities: dict[str, IdentityRunState] = Field(default_factory=dict)


class IdentityStatus(str, Enum):
    """On-disk readiness of a configured identity."""

    ACTIVE = "active"
    KEY_MISSING = "key-missing"
    CONFIG_MISSING = "config-missing"


class ProbeOutcome(str, Enum):
    """Classification of an ``ssh -T`` connectivity probe."""

    SUCCESS = "success"
    PERMISSION_DENIED = "permission-denied"
    FAILED = "failed"


class EventLevel(str, Enum):
    """Severity of a sync progress event."""

    INFO = "info"
    OK = "ok"
    WARN = "warn"
    ERROR = "error"


class SyncEvent(BaseModel):
    """One line of the sync progress log."""

    level: EventLevel = EventLevel.INFO
    message: str
    identity: Optional[str] = None


class SyncResult(BaseModel):
    """Aggregate outcome of one sync run.

    Attributes:
        orphans_removed: Orphan identities whose files were cleaned up.
        created: Identities that got a freshly generated keypair.
        verified: Identities whose connectivity probe succeeded.
        failed: Identity name -> error for per-identity hard stops.
        warnings: Non-fatal problems, in the order they happened.
        skipped_folders: Service folders left in place during cleanup.
        backup_path: Archive holding the orphan files, when one was made.
    """

    orphans_removed: list[str] = Field(default_factory=list)
    created: list[str] = Field(default_factory=list)
    verified: list[str] = Field(default_factory=list)
    failed: dict[str, str] = Field(default_factory=dict)
    warnings: list[str] = Field(default_factory=list)
    skipped_folders: list[str] = Field(default_factory=list)
    backup_path: Optional[Path] = None

    @property
    def needs_key_upload(self) -> bool:
        return bool(self.created)
