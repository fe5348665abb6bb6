"""Tests for the YAML editor flow and the template prompts."""

from __future__ import annotations

import pytest

from zzk.claude import editor
from zzk.claude.editor import NoChangesError, edit_provider, parse_provider_yaml, provider_to_yaml
from zzk.claude.models import Provider, ProviderError
from zzk.claude.prompt import mask_token, prompt_for_provider
from zzk.claude.templates import get_template

GOOD_DOC = """\
base_url: https://api.example.com/anthropic
api_token: sk-test-12345678
opus_model:
sonnet_model: fast-model
haiku_model:
subagent_model:
disable_telemetry: true
"""


class TestYamlDocument:
    """Rendering and parsing the editable document."""

    def test_placeholder_document(self):
        text = provider_to_yaml()
        assert text.startswith("# Provider configuration")
        assert "base_url: https://api.example.com/anthropic" in text

    def test_parse_turns_empty_values_into_blanks(self):
        provider = parse_provider_yaml(GOOD_DOC)
        assert provider.opus_model == ""
        assert provider.sonnet_model == "fast-model"
        assert provider.disable_telemetry is True

    def test_round_trip_of_existing(self):
        existing = Provider(base_url="https://a.io", api_token="sk-abcdefgh", haiku_model="h")
        assert parse_provider_yaml(provider_to_yaml(existing)) == existing

    @pytest.mark.parametrize("doc", ["- a\n- b\n", "base_url: [unclosed\n"])
    def test_bad_documents(self, doc):
        with pytest.raises(ProviderError):
            parse_provider_yaml(doc)

    def test_validation_applies(self):
        with pytest.raises(ProviderError, match="insecure"):
            parse_provider_yaml(GOOD_DOC.replace("https://", "http://"))


class TestEditProvider:
    """The edit loop around click.edit."""

    def test_unchanged_document(self, monkeypatch):
        monkeypatch.setattr(editor.click, "edit", lambda text, extension: text)
        with pytest.raises(NoChangesError):
            edit_provider()

    def test_editor_aborted(self, monkeypatch):
        monkeypatch.setattr(editor.click, "edit", lambda text, extension: None)
        with pytest.raises(NoChangesError):
            edit_provider()

    def test_valid_edit(self, monkeypatch):
        monkeypatch.setattr(editor.click, "edit", lambda text, extension: GOOD_DOC)
        assert edit_provider().sonnet_model == "fast-model"

    def test_retry_after_invalid(self, monkeypatch):
        answers = iter([GOOD_DOC.replace("https://", "http://"), GOOD_DOC])
        seen = []

        def fake_edit(text, extension):
            seen.append(text)
            return next(answers)

        monkeypatch.setattr(editor.click, "edit", fake_edit)
        monkeypatch.setattr(editor.click, "confirm", lambda *a, **kw: True)

        assert edit_provider().base_url == "https://api.example.com/anthropic"
        # The second round reopens the user's last attempt.
        assert seen[1].startswith("base_url: http://")

    def test_give_up_after_invalid(self, monkeypatch):
        monkeypatch.setattr(editor.click, "edit", lambda text, extension: "- nope\n")
        monkeypatch.setattr(editor.click, "confirm", lambda *a, **kw: False)
        with pytest.raises(ProviderError):
            edit_provider()


class TestPrompt:
    """Template-based prompting."""

    def test_mask_token(self):
        assert mask_token("sk-abcdefghijkl") == "sk-a...ijkl"
        assert mask_token("short") == "********"

    def test_new_provider_from_template(self, monkeypatch):
        answers = iter(["sk-new-token-123", "", "custom-sonnet", "default", ""])
        monkeypatch.setattr("zzk.claude.prompt.click.prompt", lambda *a, **kw: next(answers))

        provider = prompt_for_provider(get_template("openrouter"))

        assert provider.base_url == "https://openrouter.ai/api"
        assert provider.api_token == "sk-new-token-123"
        assert provider.opus_model == "openai/gpt-oss-120b:free"
        assert provider.sonnet_model == "custom-sonnet"
        assert provider.haiku_model == ""

    def test_keep_existing_token(self, monkeypatch):
        existing = Provider(base_url="https://api.z.ai/api/anthropic", api_token="sk-existing-999")
        monkeypatch.setattr("zzk.claude.prompt.click.prompt", lambda *a, **kw: "")
        provider = prompt_for_provider(get_template("zai"), existing)
        assert provider.api_token == "sk-existing-999"

    def test_invalid_answers(self, monkeypatch):
        monkeypatch.setattr("zzk.claude.prompt.click.prompt", lambda *a, **kw: "short")
        with pytest.raises(ProviderError, match="validation failed"):
            prompt_for_provider(get_template("zai"))
