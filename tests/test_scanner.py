"""Tests for managed-file scanning, orphan detection and orphan backups."""

from __future__ import annotations

import os
import tarfile
from pathlib import Path

import pytest

from conftest import PUB_BLOB, make_config, make_identity, write_keypair
from zzk.identity.archive import (
    BackupError,
    backup_dir,
    backup_files,
    describe_backups,
    list_backups,
    rotate_backups,
)
from zzk.identity.scanner import (
    detect_orphan_files,
    detect_orphans,
    find_managed_files,
    find_managed_git_configs,
    find_managed_keys,
)


class TestFindManaged:
    """Discovering what zzk generated."""

    def test_no_ssh_dir(self, home: Path):
        assert find_managed_keys(home) == {}

    def test_only_marked_keys_count(self, home: Path):
        write_keypair(make_identity("work"), home)
        (home / ".ssh" / "id_ed25519.pub").write_text("ssh-ed25519 AAAA me@laptop\n")

        keys = find_managed_keys(home)
        assert keys == {"work": home / ".ssh" / "work_key"}

    def test_git_configs_by_prefix(self, home: Path):
        (home / ".gitconfig-work").write_text("[user]\n")
        (home / ".gitconfig").write_text("[core]\n")
        assert find_managed_git_configs(home) == {"work": home / ".gitconfig-work"}

    def test_managed_files_follow_the_marker_not_the_name(self, home: Path):
        ssh_dir = home / ".ssh"
        ssh_dir.mkdir()
        (ssh_dir / "legacy").write_text("private")
        (ssh_dir / "legacy.pub").write_text(f"ssh-ed25519 {PUB_BLOB} jane [zzk:old]\n")
        (home / ".gitconfig-old").write_text("[user]\n")

        assert find_managed_files(home) == {
            "old": {ssh_dir / "legacy", ssh_dir / "legacy.pub", home / ".gitconfig-old"},
        }

    def test_managed_files_without_private_half(self, home: Path):
        ssh_dir = home / ".ssh"
        ssh_dir.mkdir()
        (ssh_dir / "stray.pub").write_text(f"ssh-ed25519 {PUB_BLOB} [zzk:old]\n")
        assert find_managed_files(home) == {"old": {ssh_dir / "stray.pub"}}


class TestDetectOrphans:
    """Diffing disk against the config."""

    def test_nothing_on_disk(self, home: Path):
        assert detect_orphans(make_config(make_identity("work")), home) == []

    def test_configured_identities_are_not_orphans(self, home: Path):
        work = make_identity("work")
        write_keypair(work, home)
        (home / ".gitconfig-work").write_text("")
        assert detect_orphans(make_config(work), home) == []

    def test_removed_identity_is_orphan(self, home: Path):
        write_keypair(make_identity("old"), home)
        (home / ".gitconfig-stale").write_text("")
        orphans = detect_orphans(make_config(make_identity("work")), home)
        assert orphans == ["old", "stale"]

    def test_renamed_identity_reports_old_name(self, home: Path):
        write_keypair(make_identity("github"), home)
        orphans = detect_orphans(make_config(make_identity("github-work")), home)
        assert orphans == ["github"]

    def test_orphan_files_skip_configured_names(self, home: Path):
        work = make_identity("work")
        write_keypair(work, home)
        write_keypair(make_identity("old"), home)

        found = detect_orphan_files(make_config(work), home)

        assert list(found) == ["old"]
        assert found["old"] == {home / ".ssh" / "old_key", home / ".ssh" / "old_key.pub"}


class TestOrphanBackups:
    """Backup-before-delete archives."""

    def test_backup_stores_flat_names(self, home: Path, tmp_path: Path):
        old = make_identity("old")
        write_keypair(old, home)
        out = backup_dir(home)

        archive = backup_files(
            [old.ssh_key_path(home), old.ssh_pub_key_path(home), home / ".gitconfig-old"],
            out,
        )

        assert archive.parent == out
        assert archive.name.startswith("git-orphans-")
        with tarfile.open(archive, "r:gz") as tar:
            assert sorted(tar.getnames()) == ["old_key", "old_key.pub"]

    def test_empty_list_is_an_error(self, tmp_path: Path):
        with pytest.raises(BackupError, match="no files"):
            backup_files([], tmp_path / "backups")

    def _make_archives(self, out: Path, count: int) -> list[Path]:
        out.mkdir(parents=True, exist_ok=True)
        paths = []
        for i in range(count):
            path = out / f"git-orphans-2026010{i}.tar.gz"
            with tarfile.open(path, "w:gz"):
                pass
            os.utime(path, (1_700_000_000 + i, 1_700_000_000 + i))
            paths.append(path)
        return paths

    def test_list_newest_first(self, tmp_path: Path):
        paths = self._make_archives(tmp_path / "b", 3)
        assert list_backups(tmp_path / "b") == list(reversed(paths))

    def test_list_missing_dir(self, tmp_path: Path):
        assert list_backups(tmp_path / "nope") == []

    def test_rotate_keeps_newest(self, tmp_path: Path):
        paths = self._make_archives(tmp_path / "b", 5)
        removed = rotate_backups(tmp_path / "b", keep=2)
        assert sorted(removed) == sorted(paths[:3])
        assert list_backups(tmp_path / "b") == [paths[4], paths[3]]

    def test_describe(self, tmp_path: Path):
        self._make_archives(tmp_path / "b", 1)
        described = describe_backups(tmp_path / "b")
        assert described[0]["filename"] == "git-orphans-20260100.tar.gz"
        assert described[0]["members"] == []
