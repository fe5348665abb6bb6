"""
Identity sync engine -- reconciles the declared identities with disk.

    zzk git sync  ->  orphans: backup -> rotate -> remove
                      each identity: folders -> key -> gitconfig -> agent -> probe
                      global: ~/.gitconfig, ~/.ssh/config, allowed_signers
                      state: ~/.config/zzk/git-state.json

Per-identity failures never stop the run; a failed global writer does.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Iterable, Optional

from .. import USER_HOME
from . import archive, render, ssh
from .models import (
    EventLevel,
    Identity,
    IdentityConfig,
    IdentityRunState,
    ProbeOutcome,
    RunState,
    SyncEvent,
    SyncResult,
)
from .scanner import detect_orphan_files
from .store import IdentityConfigError, load_state, save_state

logger = logging.getLogger("zzk.identity.engine")

EventCallback = Callable[[SyncEvent], None]

_LOG_LEVELS = {
    EventLevel.INFO: logging.INFO,
    EventLevel.OK: logging.INFO,
    EventLevel.WARN: logging.WARNING,
    EventLevel.ERROR: logging.ERROR,
}


class GlobalConfigError(IdentityConfigError):
    """Raised when a global config file cannot be regenerated."""


class OrphanScanError(IdentityConfigError):
    """Raised when the managed files on disk cannot be scanned."""


def orphan_files(name: str, home: Path, found: Iterable[Path] = ()) -> list[Path]:
    """Existing managed files of an orphaned identity worth backing up.

    ``found`` holds paths the scanner attributed to the identity; they are
    merged with the paths derived from its name.
    """
    ghost = Identity(name=name)
    candidates = {
        ghost.ssh_key_path(home),
        ghost.ssh_pub_key_path(home),
        ghost.git_config_path(home),
        *found,
    }
    return sorted(path for path in candidates if path.exists())


def cleanup_identity(name: str, home: Path, found: Iterable[Path] = ()) -> Optional[Path]:
    """Remove every managed file of an identity.

    Each removal is independent; a file that is already gone is fine.
    The ``~/<Name>`` service folder is removed only when empty.

    Args:
        name: Identity name.
        home: User home directory.
        found: Extra files the scanner attributed to the identity.

    Returns:
        Path: The service folder when it exists but was left in place.
    """
    ghost = Identity(name=name)
    for path in (
        ghost.ssh_key_path(home),
        ghost.ssh_pub_key_path(home),
        ghost.home_pub_key_path(home),
        ghost.git_config_path(home),
        *found,
    ):
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            logger.debug("Could not remove %s: %s", path, exc)

    service_folder = Path(home) / name.title()
    if not service_folder.is_dir():
        return None
    try:
        service_folder.rmdir()
    except OSError as exc:
        logger.debug("Leaving service folder %s: %s", service_folder, exc)
        return service_folder
    return None


class IdentitySyncEngine:
    """Drives one reconciliation pass over a home directory.

    Owns the run state for the duration of the pass and persists it at
    the end. Progress is reported through an optional callback so the
    CLI can render a live log.
    """

    def __init__(self, home: Optional[Path] = None):
        """Initialize the engine.

        Args:
            home: Home directory to reconcile. Defaults to the user home.
        """
        self.home = Path(home or USER_HOME).expanduser()
        self.state = self._load_state()
        self._on_event: Optional[EventCallback] = None

    def _load_state(self) -> RunState:
        try:
            return load_state(self.home)
        except (OSError, ValueError) as exc:
            logger.warning("Failed to load sync state, starting fresh: %s", exc)
            return RunState()

    def _emit(
        self,
        level: EventLevel,
        message: str,
        identity: Optional[str] = None,
    ) -> None:
        logger.log(_LOG_LEVELS[level], "%s%s", f"[{identity}] " if identity else "", message)
        if self._on_event is not None:
            self._on_event(SyncEvent(level=level, message=message, identity=identity))

    def _warn(self, result: SyncResult, message: str, identity: Optional[str] = None) -> None:
        result.warnings.append(f"{identity}: {message}" if identity else message)
        self._emit(EventLevel.WARN, message, identity)

    def sync(
        self,
        config: IdentityConfig,
        on_event: Optional[EventCallback] = None,
    ) -> SyncResult:
        """Reconcile disk with the identity config.

        Args:
            config: Validated identity config.
            on_event: Called with every progress event.

        Returns:
            SyncResult: What happened, per identity.

        Raises:
            GlobalConfigError: A global config file could not be written.
            OrphanScanError: ``~/.ssh`` or the home directory could not be read.
        """
        self._on_event = on_event
        result = SyncResult()
        try:
            self._emit(
                EventLevel.INFO,
                f"Found {len(config.identities)} identities: {', '.join(config.names)}",
            )
            self._remove_orphans(config, result)
            for identity in config.identities.values():
                self._sync_identity(identity, result)
            self._write_global_configs(config)
            self._record_state(config, result)
        finally:
            self._on_event = None
        return result

    def _remove_orphans(self, config: IdentityConfig, result: SyncResult) -> None:
        try:
            orphans = detect_orphan_files(config, self.home)
        except OSError as exc:
            raise OrphanScanError(f"failed to scan managed files: {exc}") from exc
        if not orphans:
            self._emit(EventLevel.INFO, "No orphans found")
            return

        self._emit(
            EventLevel.INFO,
            f"Found {len(orphans)} orphaned identities: {', '.join(orphans)}",
        )

        files = [
            path
            for name, found in orphans.items()
            for path in orphan_files(name, self.home, found)
        ]
        if files:
            out_dir = archive.backup_dir(self.home)
            try:
                result.backup_path = archive.backup_files(files, out_dir)
            except archive.BackupError as exc:
                self._warn(result, f"failed to create backup: {exc}")
            else:
                self._emit(EventLevel.INFO, f"Backed up orphaned files to: {result.backup_path}")
                try:
                    archive.rotate_backups(out_dir, archive.DEFAULT_KEEP)
                except archive.BackupError as exc:
                    self._warn(result, f"failed to rotate backups: {exc}")

        for name, found in orphans.items():
            skipped = cleanup_identity(name, self.home, found)
            if skipped is not None:
                result.skipped_folders.append(str(skipped))
                self._emit(EventLevel.INFO, f"Kept non-empty folder {skipped}", name)
            result.orphans_removed.append(name)
            self.state.identities.pop(name, None)
            self._emit(EventLevel.OK, f"Removed orphan: {name}", name)

    def _sync_identity(self, identity: Identity, result: SyncResult) -> None:
        name = identity.name
        self._emit(EventLevel.INFO, f"Processing: {name}", name)

        for folder in identity.expanded_folders(self.home):
            existed = folder.is_dir()
            try:
                folder.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                self._warn(result, f"failed to create folder {folder}: {exc}", name)
                continue
            verb = "Folder exists" if existed else "Created folder"
            self._emit(EventLevel.OK, f"{verb}: {folder}", name)

        key_path = identity.ssh_key_path(self.home)
        created = False
        if ssh.key_exists(identity, self.home):
            self._emit(EventLevel.OK, f"SSH key exists: {key_path}", name)
        else:
            try:
                ssh.generate_key(identity, self.home)
            except ssh.KeyGenerationError as exc:
                result.failed[name] = str(exc)
                self._emit(EventLevel.ERROR, f"Failed to generate SSH key: {exc}", name)
                return
            created = True
            result.created.append(name)
            self._emit(EventLevel.OK, f"Generated SSH key: {key_path}", name)

        if created:
            try:
                if ssh.copy_public_key_to_home(identity, self.home):
                    self._emit(
                        EventLevel.OK,
                        f"Copied public key to {identity.home_pub_key_path(self.home)}",
                        name,
                    )
            except OSError as exc:
                self._warn(result, f"failed to copy public key: {exc}", name)

        try:
            gitconfig = render.write_identity_gitconfig(identity, self.home)
        except OSError as exc:
            result.failed[name] = f"failed to write git config: {exc}"
            self._emit(EventLevel.ERROR, f"Failed to create git config: {exc}", name)
            return
        self._emit(EventLevel.OK, f"Updated {gitconfig}", name)

        try:
            ssh.add_to_agent(identity, self.home)
        except RuntimeError as exc:
            self._warn(result, str(exc), name)
        else:
            self._emit(EventLevel.OK, "Added key to SSH agent", name)

        self._probe(identity, result)

    def _probe(self, identity: Identity, result: SyncResult) -> None:
        name = identity.name
        probe_dir = next(
            (f for f in identity.expanded_folders(self.home) if f.is_dir()), None
        )
        if probe_dir is None:
            self._warn(result, "SSH test skipped (no valid folders)", name)
            return

        outcome, output = ssh.probe_connection(identity, probe_dir)
        if outcome == ProbeOutcome.SUCCESS:
            result.verified.append(name)
            self._emit(EventLevel.OK, "SSH connection verified", name)
            return

        reason = "permission denied" if outcome == ProbeOutcome.PERMISSION_DENIED else output
        self._warn(
            result,
            f"SSH test failed ({reason}); add {identity.ssh_pub_key_path(self.home)} "
            f"to {identity.domain}",
            name,
        )

    def _write_global_configs(self, config: IdentityConfig) -> None:
        writers = (
            ("global git config", render.write_global_gitconfig),
            ("SSH config", render.write_ssh_config),
            ("allowed signers", render.write_allowed_signers),
        )
        for label, writer in writers:
            try:
                path = writer(config, self.home)
            except OSError as exc:
                raise GlobalConfigError(f"failed to update {label}: {exc}") from exc
            self._emit(EventLevel.OK, f"Updated {path}")

    def _record_state(self, config: IdentityConfig, result: SyncResult) -> None:
        now = datetime.now(timezone.utc)
        self.state.last_sync = now
        for identity in config.identities.values():
            self.state.identities[identity.name] = IdentityRunState(
                last_sync=now,
                ssh_key_fingerprint=ssh.key_fingerprint(identity.ssh_pub_key_path(self.home)),
            )
        try:
            save_state(self.state, self.home)
        except OSError as exc:
            self._warn(result, f"failed to save state: {exc}")
