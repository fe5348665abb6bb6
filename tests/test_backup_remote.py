"""Tests for remote directory backups, with the file host faked out."""

from __future__ import annotations

import os
import tarfile
from pathlib import Path

import pytest
import requests

from zzk import backup
from zzk.backup import (
    TARGETS,
    XZ_MAGIC,
    BackupError,
    check_os,
    clean_response,
    create_archive,
    is_excluded,
    restore_backup,
    restore_code,
    rotate_local_copies,
    upload_backup,
    upload_file,
    verify_archive,
)


class FakeResponse:
    def __init__(self, body: bytes = b"", status: int = 200):
        self.content = body
        self.text = body.decode("utf-8", errors="replace")
        self.status_code = status

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def iter_content(self, chunk_size=1):
        for i in range(0, len(self.content), chunk_size):
            yield self.content[i:i + chunk_size]

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False


class FakeFileHost:
    """Stores uploads in memory and serves them back by URL."""

    def __init__(self):
        self.files: dict[str, bytes] = {}
        self.posts = 0

    def post(self, url, files=None, headers=None, timeout=None):
        self.posts += 1
        name, handle = files["file"]
        code = f"Ab{self.posts}"
        self.files[f"https://envs.sh/{code}.tar.xz"] = handle.read()
        return FakeResponse(f"https://envs.sh/{code}.tar.xz\n".encode())

    def get(self, url, headers=None, stream=False, timeout=None):
        if url not in self.files:
            return FakeResponse(b"not found", status=404)
        return FakeResponse(self.files[url])


@pytest.fixture
def file_host(monkeypatch) -> FakeFileHost:
    host = FakeFileHost()
    monkeypatch.setattr(backup.requests, "post", host.post)
    monkeypatch.setattr(backup.requests, "get", host.get)
    return host


def _bio(home: Path) -> Path:
    bio = home / ".bio"
    (bio / "notes").mkdir(parents=True)
    (bio / "notes" / "today.md").write_text("hello")
    (bio / ".DS_Store").write_text("junk")
    (bio / "node_modules" / "dep").mkdir(parents=True)
    (bio / "node_modules" / "dep" / "index.js").write_text("x")
    return bio


class TestArchive:
    """Packing and verifying .tar.xz archives."""

    @pytest.mark.parametrize(
        "name", [".bio/.DS_Store", ".bio/a/node_modules/x.js", ".bio/._foo", ".bio/x.swp", ".bio/.git/HEAD"]
    )
    def test_excluded(self, name):
        assert is_excluded(name)

    def test_not_excluded(self):
        assert not is_excluded(".bio/notes/today.md")

    def test_create_skips_junk(self, home: Path, tmp_path: Path):
        _bio(home)
        out = create_archive(TARGETS["bio"], home, tmp_path / "b.tar.xz")
        names = verify_archive(out)
        assert ".bio/notes/today.md" in names
        assert not any("DS_Store" in n or "node_modules" in n for n in names)

    def test_missing_target(self, home: Path, tmp_path: Path):
        with pytest.raises(BackupError, match="not found"):
            create_archive(TARGETS["bio"], home, tmp_path / "b.tar.xz")

    def test_wrong_magic(self, tmp_path: Path):
        bad = tmp_path / "page.html"
        bad.write_text("<html>error page</html>")
        with pytest.raises(BackupError, match="magic"):
            verify_archive(bad)

    def test_too_small(self, tmp_path: Path):
        tiny = tmp_path / "tiny"
        tiny.write_bytes(XZ_MAGIC[:3])
        with pytest.raises(BackupError, match="too small"):
            verify_archive(tiny)


class TestHelpers:
    """OS gating, response cleanup and restore codes."""

    def test_openemu_is_macos_only(self):
        check_os(TARGETS["openemu"], "darwin")
        with pytest.raises(BackupError, match="only supported on darwin"):
            check_os(TARGETS["openemu"], "linux")

    def test_bio_on_windows(self):
        with pytest.raises(BackupError):
            check_os(TARGETS["bio"], "windows")

    def test_clean_response(self):
        assert clean_response(" https://envs.sh/x.tar.xz\r\n\x00") == "https://envs.sh/x.tar.xz"

    def test_restore_code(self):
        assert restore_code("https://envs.sh/AbC.tar.xz") == "AbC"
        assert restore_code("https://envs.sh/AbC") == "AbC"

    def test_upload_rejects_non_url(self, tmp_path: Path, monkeypatch):
        monkeypatch.setattr(backup.requests, "post", lambda *a, **kw: FakeResponse(b"rate limited"))
        f = tmp_path / "x"
        f.write_bytes(b"x")
        with pytest.raises(BackupError, match="invalid URL"):
            upload_file(f)

    def test_rotate_local_copies_without_stamp_uses_mtime(self, home: Path):
        for i in range(5):
            d = home / f".bio.backup-old{i}"
            d.mkdir()
            os.utime(d, (1_700_000_000 + i, 1_700_000_000 + i))
        removed = rotate_local_copies(home, ".bio.backup-", keep=3)
        assert sorted(p.name for p in removed) == [".bio.backup-old0", ".bio.backup-old1"]
        assert len(list(home.glob(".bio.backup-*"))) == 3

    def test_rotate_local_copies_orders_by_name_stamp(self, home: Path):
        # Renamed directories keep old mtimes, so mtime order is reversed here.
        for i in range(5):
            d = home / f".bio.backup-2020010{i}-120000"
            d.mkdir()
            os.utime(d, (1_700_000_000 - i, 1_700_000_000 - i))
        removed = rotate_local_copies(home, ".bio.backup-", keep=3)
        assert sorted(p.name for p in removed) == [
            ".bio.backup-20200100-120000",
            ".bio.backup-20200101-120000",
        ]

    def test_rotate_local_copies_keeps_protected(self, home: Path):
        for i in range(4):
            (home / f".bio.backup-2020010{i}-120000").mkdir()
        protected = home / ".bio.backup-20200100-120000"

        removed = rotate_local_copies(home, ".bio.backup-", keep=2, protect=protected)

        assert protected.exists()
        assert sorted(p.name for p in removed) == [
            ".bio.backup-20200101-120000",
            ".bio.backup-20200102-120000",
        ]


class TestUploadAndRestore:
    """End to end against the fake host."""

    def test_upload_returns_code(self, home: Path, file_host):
        _bio(home)
        progress = []
        result = upload_backup(TARGETS["bio"], home, progress=progress.append)
        assert result["code"] == "Ab1"
        assert result["url"] == "https://envs.sh/Ab1.tar.xz"
        assert result["size"] > 0
        assert "Upload verified" in progress

    def test_upload_verification_failure(self, home: Path, file_host, monkeypatch):
        _bio(home)
        monkeypatch.setattr(backup.requests, "get", lambda *a, **kw: FakeResponse(b"<html>oops</html>"))
        with pytest.raises(BackupError, match="verification failed"):
            upload_backup(TARGETS["bio"], home)

    def test_restore_moves_current_aside(self, home: Path, file_host):
        _bio(home)
        code = upload_backup(TARGETS["bio"], home)["code"]
        (home / ".bio" / "notes" / "today.md").write_text("changed since backup")

        result = restore_backup(TARGETS["bio"], code, home)

        assert (home / ".bio" / "notes" / "today.md").read_text() == "hello"
        assert result["previous"] is not None
        assert (result["previous"] / "notes" / "today.md").read_text() == "changed since backup"

    def test_restore_into_empty_home(self, home: Path, file_host, tmp_path: Path):
        _bio(home)
        code = upload_backup(TARGETS["bio"], home)["code"]
        fresh = tmp_path / "fresh"
        fresh.mkdir()

        result = restore_backup(TARGETS["bio"], code, fresh)

        assert result["previous"] is None
        assert (fresh / ".bio" / "notes" / "today.md").exists()

    def test_unknown_code(self, home: Path, file_host):
        with pytest.raises(BackupError, match="failed to download"):
            restore_backup(TARGETS["bio"], "missing", home)

    def test_invalid_code(self, home: Path):
        with pytest.raises(BackupError, match="invalid restore code"):
            restore_backup(TARGETS["bio"], "../etc", home)

    def test_archive_without_target_dir(self, home: Path, file_host, tmp_path: Path):
        other = tmp_path / "other.tar.xz"
        (tmp_path / "stuff").mkdir()
        with tarfile.open(other, "w:xz") as tar:
            tar.add(tmp_path / "stuff", arcname="stuff")
        file_host.files["https://envs.sh/odd.tar.xz"] = other.read_bytes()

        with pytest.raises(BackupError, match="does not contain"):
            restore_backup(TARGETS["bio"], "odd", home)

    def test_restore_keeps_the_copy_it_just_made(self, home: Path, file_host):
        _bio(home)
        code = upload_backup(TARGETS["bio"], home)["code"]
        for i in range(3):
            (home / f".bio.backup-2020010{i}-120000").mkdir()
        ten_days_ago = 1_700_000_000
        os.utime(home / ".bio", (ten_days_ago, ten_days_ago))

        result = restore_backup(TARGETS["bio"], code, home)

        assert result["previous"].exists()
        assert (result["previous"] / "notes" / "today.md").read_text() == "hello"
        assert sorted(p.name for p in home.glob(".bio.backup-*")) == sorted(
            [".bio.backup-20200101-120000", ".bio.backup-20200102-120000", result["previous"].name]
        )

    def test_failed_extraction_puts_previous_back(self, home: Path, file_host, monkeypatch):
        _bio(home)
        code = upload_backup(TARGETS["bio"], home)["code"]
        (home / ".bio" / "notes" / "today.md").write_text("current")
        _fail_second_extraction(monkeypatch)

        with pytest.raises(BackupError, match="failed to extract archive"):
            restore_backup(TARGETS["bio"], code, home)

        assert (home / ".bio" / "notes" / "today.md").read_text() == "current"
        assert list(home.glob(".bio.backup-*")) == []

    def test_failed_rollback_reports_where_the_copy_is(self, home: Path, file_host, monkeypatch):
        _bio(home)
        code = upload_backup(TARGETS["bio"], home)["code"]
        _fail_second_extraction(monkeypatch)
        real_rename = os.rename
        renames = []

        def rename_once(src, dst):
            renames.append((src, dst))
            if len(renames) > 1:
                raise OSError("device busy")
            real_rename(src, dst)

        monkeypatch.setattr(backup.os, "rename", rename_once)

        with pytest.raises(BackupError, match="could not be put back and is kept at"):
            restore_backup(TARGETS["bio"], code, home)

        kept = list(home.glob(".bio.backup-*"))
        assert len(kept) == 1
        assert (kept[0] / "notes" / "today.md").read_text() == "hello"


def _fail_second_extraction(monkeypatch):
    """Let the test extraction succeed and fail the real one."""
    real_extractall = tarfile.TarFile.extractall
    calls = []

    def extractall(self, path=".", *args, **kwargs):
        calls.append(path)
        if len(calls) > 1:
            raise tarfile.ExtractError("disk full")
        return real_extractall(self, path, *args, **kwargs)

    monkeypatch.setattr(tarfile.TarFile, "extractall", extractall)
