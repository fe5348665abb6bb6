"""Tests for Claude provider models, templates, persistence and shell files."""

from __future__ import annotations

import json
import stat
from pathlib import Path

import pytest

from zzk.claude.models import (
    ENV_VARS,
    Provider,
    ProviderConfig,
    ProviderError,
    ProviderNotFoundError,
    validate_provider_name,
)
from zzk.claude.shell import (
    clear_env_file,
    env_file_path,
    rc_file_path,
    rc_file_sources_env,
    setup_hint,
    shell_out_of_sync,
    source_line,
    write_env_file,
)
from zzk.claude.store import config_path, load_config, save_config
from zzk.claude.templates import resolve_template, template_ids


def _provider(**overrides) -> Provider:
    fields = {"base_url": "https://api.example.com/anthropic", "api_token": "sk-test-12345678"}
    fields.update(overrides)
    return Provider(**fields)


class TestProviderName:
    """Name rules."""

    @pytest.mark.parametrize("name", ["zai", "my-provider", "work_2"])
    def test_valid(self, name):
        validate_provider_name(name)

    @pytest.mark.parametrize(
        "name,message",
        [
            ("", "empty"),
            ("a", "too short"),
            ("x" * 65, "too long"),
            ("has space", "only letters"),
            ("-lead", "start or end"),
            ("trail_", "start or end"),
            ("official", "reserved"),
        ],
    )
    def test_invalid(self, name, message):
        with pytest.raises(ProviderError, match=message):
            validate_provider_name(name)


class TestProviderFields:
    """Field validation."""

    def test_valid(self):
        _provider(opus_model="hf:zai-org/GLM-4.7").validate_fields()

    @pytest.mark.parametrize(
        "overrides,message",
        [
            ({"base_url": ""}, "base_url is required"),
            ({"base_url": "http://api.example.com"}, "insecure HTTP"),
            ({"base_url": "ftp://api.example.com"}, "http or https"),
            ({"base_url": "https://user:pw@api.example.com"}, "credentials"),
            ({"base_url": "https://api.example.com/"}, "trailing slash"),
            ({"api_token": ""}, "api_token is required"),
            ({"api_token": "short"}, "at least 8"),
            ({"api_token": " sk-test-12345678"}, "whitespace"),
            ({"api_token": "sk-test\n12345678"}, "newlines"),
            ({"sonnet_model": "model name"}, "spaces"),
            ({"haiku_model": "m;rm"}, "metacharacters"),
            ({"opus_model": "x" * 257}, "too long"),
        ],
    )
    def test_invalid(self, overrides, message):
        with pytest.raises(ProviderError, match=message):
            _provider(**overrides).validate_fields()

    def test_shell_exports_quote_and_unset(self):
        text = _provider(api_token="sk-it's-12345678", opus_model="big").shell_exports()
        assert "export ANTHROPIC_BASE_URL=https://api.example.com/anthropic\n" in text
        assert "export ANTHROPIC_AUTH_TOKEN='sk-it'\"'\"'s-12345678'\n" in text
        assert "export ANTHROPIC_DEFAULT_OPUS_MODEL=big\n" in text
        assert "unset ANTHROPIC_DEFAULT_SONNET_MODEL\n" in text
        assert "unset CLAUDE_CODE_DISABLE_NONESSENTIAL_TRAFFIC\n" in text

    def test_telemetry_flag(self):
        text = _provider(disable_telemetry=True).shell_exports()
        assert "export CLAUDE_CODE_DISABLE_NONESSENTIAL_TRAFFIC=1\n" in text


class TestProviderConfig:
    """Add, remove and activate."""

    def test_add_validates(self):
        config = ProviderConfig()
        with pytest.raises(ProviderError, match="invalid provider"):
            config.add_provider("work", _provider(base_url="http://x.io"))
        assert not config.has_provider("work")

    def test_remove_active_clears_it(self):
        config = ProviderConfig()
        config.add_provider("work", _provider())
        config.set_active("work")
        config.remove_provider("work")
        assert config.active is None

    def test_unknown_provider(self):
        with pytest.raises(ProviderNotFoundError):
            ProviderConfig().set_active("ghost")
        with pytest.raises(ProviderNotFoundError):
            ProviderConfig().remove_provider("ghost")


class TestTemplates:
    """Built-in templates and prefix lookup."""

    def test_ids(self):
        assert template_ids() == ["synthetic", "openrouter", "zai"]

    def test_exact_and_prefix(self):
        assert resolve_template("zai").id == "zai"
        assert resolve_template("open").id == "openrouter"
        assert resolve_template("s").id == "synthetic"

    def test_unknown(self):
        with pytest.raises(ProviderError):
            resolve_template("nope")


class TestStore:
    """~/.claude-providers.json."""

    def test_missing_is_empty(self, home: Path):
        config = load_config(home)
        assert config.providers == {}
        assert config.active is None

    def test_save_is_private_and_backed_up(self, home: Path):
        config = ProviderConfig()
        config.add_provider("work", _provider())
        save_config(config, home)
        config.set_active("work")
        save_config(config, home)

        path = config_path(home)
        assert stat.S_IMODE(path.stat().st_mode) == 0o600
        assert json.loads(path.read_text())["active"] == "work"
        backup = json.loads(path.with_name(path.name + ".backup").read_text())
        assert "active" not in backup

    def test_dangling_active_cleared(self, home: Path):
        config_path(home).write_text(json.dumps({"providers": {}, "active": "gone"}))
        assert load_config(home).active is None

    def test_invalid_file(self, home: Path):
        config_path(home).write_text("[]")
        with pytest.raises(ProviderError, match="invalid config"):
            load_config(home)


class TestShell:
    """Env file and rc file integration."""

    def test_env_file(self, home: Path):
        path = write_env_file(_provider(), home)
        assert path == env_file_path(home)
        assert stat.S_IMODE(path.stat().st_mode) == 0o600
        assert path.read_text().startswith("# Managed by zzk")

    def test_reset_only_unsets(self, home: Path):
        text = clear_env_file(home).read_text()
        assert "export" not in text
        for var in ENV_VARS:
            assert f"unset {var}\n" in text

    def test_rc_file_selection(self, home: Path):
        assert rc_file_path("zsh", home) == home / ".zshrc"
        assert rc_file_path("bash", home) == home / ".bash_profile"
        (home / ".bashrc").write_text("")
        assert rc_file_path("bash", home) == home / ".bashrc"
        assert rc_file_path("fish", home) == home / ".config" / "fish" / "config.fish"
        assert rc_file_path("tcsh", home) is None

    @pytest.mark.parametrize("prefix", ["source ", ". "])
    def test_rc_file_detection(self, home: Path, prefix):
        rc = home / ".zshrc"
        rc.write_text(f"export PATH=/bin\n{prefix}{env_file_path(home)}\n")
        assert rc_file_sources_env(rc, home)

    def test_guarded_source_line_detected(self, home: Path):
        rc = home / ".zshrc"
        rc.write_text(source_line("zsh", home) + "\n")
        assert rc_file_sources_env(rc, home)

    def test_commented_line_ignored(self, home: Path):
        rc = home / ".zshrc"
        rc.write_text(f"# source {env_file_path(home)}\n")
        assert not rc_file_sources_env(rc, home)

    def test_setup_hint(self, home: Path, monkeypatch):
        monkeypatch.setenv("SHELL", "/bin/zsh")
        hint = setup_hint(home)
        assert "One-time setup" in hint
        (home / ".zshrc").write_text(source_line("zsh", home) + "\n")
        assert setup_hint(home) is None

    def test_out_of_sync(self, monkeypatch):
        monkeypatch.setenv("ANTHROPIC_BASE_URL", "https://a.io")
        assert not shell_out_of_sync("https://a.io")
        assert shell_out_of_sync("https://b.io")
        monkeypatch.delenv("ANTHROPIC_BASE_URL")
        assert not shell_out_of_sync(None)
