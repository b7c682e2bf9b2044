"""
Tests for chronicle/llm_client.py and chronicle/tier2.py.

Covers:
    - Reply parsing (plain JSON, fenced, embedded, junk)
    - Tier 2 merge rules (Tier 1 ownership, provenance, new entities)
    - Classifier configuration errors raised before any network call
    - Provider calls with the Anthropic SDK and httpx replaced by fakes
"""

from unittest.mock import MagicMock, patch

import anthropic
import httpx
import pytest

from chronicle.config import Settings
from chronicle.errors import ClassifierConfigError, ClassifierUnavailableError
from chronicle.llm_client import (
    ClassifierClient,
    Tier2Result,
    Tier2Value,
    build_prompt,
    parse_response,
)
from chronicle.models.base import ExtractedFact, RegistryEntry
from chronicle.tier2 import eligible_entities, merge_tier2


REPLY = '{"Elena": {"Mood": {"value": "anxious", "quote": "Elena trembled."}}}'


@pytest.fixture
def characters(sample_entries):
    return [e for e in sample_entries if e.kind == "character"]


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

class TestParseResponse:
    """Tests for parse_response()."""

    def test_plain_json(self, characters):
        result = parse_response(REPLY, characters)
        assert result.status == "ok"
        assert result.facts == {"Elena": {"mood": Tier2Value("anxious", "Elena trembled.")}}

    def test_fenced_json(self, characters):
        result = parse_response(f"```json\n{REPLY}\n```", characters)
        assert result.facts["Elena"]["mood"].value == "anxious"

    def test_embedded_object(self, characters):
        result = parse_response(f"Here you go: {REPLY} Hope that helps.", characters)
        assert "mood" in result.facts["Elena"]

    def test_alias_key_resolved(self, characters):
        result = parse_response('{"ellie": {"goal": {"value": "escape"}}}', characters)
        assert result.facts["Elena"]["goal"] == Tier2Value("escape", "")

    @pytest.mark.parametrize("raw", ["", "not json", "[1, 2]", "```\nnope\n```"])
    def test_unusable_reply_is_empty(self, characters, raw):
        result = parse_response(raw, characters)
        assert result.status == "empty"
        assert result.is_empty

    def test_bad_entries_dropped(self, characters):
        raw = (
            '{"Stranger": {"mood": {"value": "calm"}},'
            ' "Marcus": {"mood": "calm", "goal": {"value": "  "}, "job": {"value": 3}}}'
        )
        result = parse_response(raw, characters)
        assert result.status == "ok"
        assert result.facts == {"Marcus": {}}

    def test_prompt_lists_entities(self, characters):
        prompt = build_prompt("Scene text.", characters)
        assert "- Elena (also known as: Ellie) [character]" in prompt
        assert prompt.endswith("Scene text.")


# ---------------------------------------------------------------------------
# Tier 2 merge
# ---------------------------------------------------------------------------

def _tier1(attribute, value):
    return ExtractedFact(attribute=attribute, value=value, source_scene="s.md", source_line=2)


class TestMergeTier2:
    """Tests for merge_tier2() and eligible_entities()."""

    def test_non_tier1_attribute_appended(self):
        tier1 = {"Elena": [_tier1("hair", "copper")]}
        reply = Tier2Result("ok", {"Elena": {"mood": Tier2Value("anxious", "She shook.")}})
        merged = merge_tier2(tier1, reply, "s.md")
        added = merged["Elena"][1]
        assert (added.attribute, added.value) == ("mood", "anxious")
        assert added.extracted_by == "tier2"
        assert added.source_line == 0
        assert added.source_quote == "She shook."
        assert len(tier1["Elena"]) == 1

    def test_tier1_owned_attribute_kept(self):
        tier1 = {"Elena": [_tier1("hair", "copper")]}
        reply = Tier2Result("ok", {"Elena": {"hair": Tier2Value("black")}})
        merged = merge_tier2(tier1, reply, "s.md")
        assert [f.value for f in merged["Elena"]] == ["copper"]

    def test_tier1_category_without_tier1_value_accepted(self):
        reply = Tier2Result("ok", {"Elena": {"eyes": Tier2Value("grey")}})
        merged = merge_tier2({"Elena": []}, reply, "s.md")
        assert merged["Elena"][0].value == "grey"

    def test_entity_only_in_reply_added(self):
        reply = Tier2Result("ok", {"Marcus": {"job": Tier2Value("smuggler")}})
        merged = merge_tier2({"Elena": []}, reply, "s.md")
        assert list(merged) == ["Elena", "Marcus"]

    def test_empty_reply(self):
        tier1 = {"Elena": [_tier1("hair", "copper")]}
        assert merge_tier2(tier1, Tier2Result.empty(), "s.md") == tier1

    def test_long_quote_truncated_without_ellipsis(self):
        quote = " ".join(["word"] * 40)
        reply = Tier2Result("ok", {"Elena": {"mood": Tier2Value("tired", quote)}})
        fact = merge_tier2({}, reply, "s.md")["Elena"][0]
        assert len(fact.source_quote.split()) == 30
        assert not fact.source_quote.endswith("…")

    def test_eligible_entities(self):
        entries = [
            RegistryEntry(name="Elena"),
            RegistryEntry(name="Marcus", llm_opt_in=False),
            RegistryEntry(name="Ada", excluded=True),
            RegistryEntry(name="The Vault", kind="location"),
            RegistryEntry(name="Iris", llm_opt_in=True),
        ]
        assert [e.name for e in eligible_entities(entries)] == ["Elena", "Iris"]


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------

class TestClassifierClient:
    """Tests for ClassifierClient."""

    def test_missing_api_key(self, characters):
        client = ClassifierClient(Settings(llm_enabled=True, llm_api_key=""))
        with patch("anthropic.Anthropic") as sdk:
            with pytest.raises(ClassifierConfigError):
                client.extract("Scene.", characters)
        sdk.assert_not_called()

    def test_unknown_provider(self):
        settings = Settings.model_construct(llm_provider="openai", llm_api_key="k")
        with pytest.raises(ClassifierConfigError):
            ClassifierClient(settings).validate_config()

    def test_no_entities_skips_call(self):
        client = ClassifierClient(Settings(llm_api_key=""))
        assert client.extract("Scene.", []).status == "ok"

    def test_anthropic_call(self, characters):
        settings = Settings(llm_enabled=True, llm_api_key="sk-test", llm_timeout=5)
        block = MagicMock(type="text", text=REPLY)
        with patch("anthropic.Anthropic") as sdk:
            sdk.return_value.messages.create.return_value = MagicMock(content=[block])
            result = ClassifierClient(settings).extract("Elena trembled.", characters)

        sdk.assert_called_once_with(api_key="sk-test", timeout=5)
        kwargs = sdk.return_value.messages.create.call_args.kwargs
        assert kwargs["model"] == settings.llm_model
        assert "Elena trembled." in kwargs["messages"][0]["content"]
        assert result.facts["Elena"]["mood"].value == "anxious"

    def test_anthropic_error_is_unavailable(self, characters):
        settings = Settings(llm_enabled=True, llm_api_key="sk-test")
        error = anthropic.APIConnectionError(
            request=httpx.Request("POST", "https://api.anthropic.com/v1/messages"),
        )
        with patch("anthropic.Anthropic") as sdk:
            sdk.return_value.messages.create.side_effect = error
            with pytest.raises(ClassifierUnavailableError):
                ClassifierClient(settings).extract("Scene.", characters)


class TestOllama:
    """Ollama provider over a mocked HTTP transport."""

    @pytest.fixture
    def use_transport(self, monkeypatch):
        real_client = httpx.Client

        def install(handler):
            def factory(**kwargs):
                return real_client(transport=httpx.MockTransport(handler), **kwargs)
            monkeypatch.setattr(httpx, "Client", factory)

        return install

    @pytest.fixture
    def settings(self):
        return Settings(llm_enabled=True, llm_provider="ollama",
                        ollama_endpoint="http://ollama.test/")

    def test_generate_call(self, use_transport, settings, characters):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["body"] = request.read()
            return httpx.Response(200, json={"response": REPLY})

        use_transport(handler)
        result = ClassifierClient(settings).extract("Scene.", characters)
        assert seen["url"] == "http://ollama.test/api/generate"
        assert b'"stream": false' in seen["body"] or b'"stream":false' in seen["body"]
        assert result.facts["Elena"]["mood"].value == "anxious"

    def test_no_api_key_needed(self, use_transport, settings, characters):
        use_transport(lambda request: httpx.Response(200, json={"response": "{}"}))
        assert ClassifierClient(settings).extract("Scene.", characters).status == "ok"

    def test_http_error_status(self, use_transport, settings, characters):
        use_transport(lambda request: httpx.Response(500, text="model not loaded"))
        with pytest.raises(ClassifierUnavailableError, match="500"):
            ClassifierClient(settings).extract("Scene.", characters)

    def test_connection_error(self, use_transport, settings, characters):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        use_transport(handler)
        with pytest.raises(ClassifierUnavailableError):
            ClassifierClient(settings).extract("Scene.", characters)

    def test_non_json_body_is_empty(self, use_transport, settings, characters):
        use_transport(lambda request: httpx.Response(200, text="<html>"))
        assert ClassifierClient(settings).extract("Scene.", characters).status == "empty"
