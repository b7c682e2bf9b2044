"""
chronicle/llm_client.py -- Tier 2 classifier client.

Sends a scene body plus the list of eligible entities to a language model
and turns its JSON reply into per-entity attribute values.  Two providers
are supported:

    anthropic   Anthropic Messages API through the ``anthropic`` SDK
    ollama      a local Ollama server over HTTP (``httpx``)

Failure modes are kept apart so the engine can react differently:

    ClassifierConfigError       settings make a call impossible (raised
                                before any network traffic)
    ClassifierUnavailableError  the provider could not be reached or
                                returned an error status
    Tier2Result(status="empty") the provider answered with something that
                                is not the expected JSON object
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Literal

import httpx

from chronicle.config import DEFAULT_OLLAMA_MODEL, Settings
from chronicle.errors import ClassifierConfigError, ClassifierUnavailableError
from chronicle.models.base import RegistryEntry
from chronicle.resolver import match_entity_name

logger = logging.getLogger(__name__)

PROVIDERS = ("anthropic", "ollama")
MAX_TOKENS = 1024

_FENCE_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)```")
_OBJECT_RE = re.compile(r"\{[\s\S]*\}")


@dataclass(frozen=True)
class Tier2Value:
    """One attribute value returned by the classifier."""
    value: str
    quote: str = ""


@dataclass
class Tier2Result:
    """Parsed classifier reply.

    ``status`` is ``"empty"`` when the reply could not be used at all, which
    is distinct from an ``"ok"`` reply that happens to contain no facts.
    """
    status: Literal["ok", "empty"] = "empty"
    facts: dict[str, dict[str, Tier2Value]] = field(default_factory=dict)

    @classmethod
    def empty(cls) -> Tier2Result:
        return cls(status="empty")

    @property
    def is_empty(self) -> bool:
        return self.status == "empty" or not self.facts


# ---------------------------------------------------------------------------
# Prompt
# ---------------------------------------------------------------------------

def build_prompt(scene_body: str, entities: list[RegistryEntry]) -> str:
    """Assemble the extraction prompt for *entities* over *scene_body*."""
    entity_lines = []
    for entry in entities:
        aliases = f" (also known as: {', '.join(entry.aliases)})" if entry.aliases else ""
        entity_lines.append(f"- {entry.name}{aliases} [{entry.kind}]")

    return "\n".join([
        "You are a story continuity assistant. Given the scene below, extract new "
        "factual information about the listed entities.",
        "Return ONLY a JSON object matching the schema. Do not infer or speculate; "
        "only extract facts that are directly stated.",
        "",
        "Entities:",
        *entity_lines,
        "",
        'Schema: { "entity_name": { "attribute_name": { "value": "extracted value", '
        '"quote": "verbatim passage of at most 30 words" } } }',
        "",
        "Extract attributes such as: emotional state, relationships, occupation, goals, "
        "beliefs, and physical details not covered by standard patterns.",
        "Do not include: hair color, eye color, height, build, age, voice, complexion, "
        "or location. Those are handled separately.",
        "Return ONLY the JSON object. No markdown, no explanation.",
        "",
        "Scene:",
        scene_body,
    ])


# ---------------------------------------------------------------------------
# Response parsing
# ---------------------------------------------------------------------------

def _load_json_object(raw: str) -> Any:
    text = raw.strip()
    fenced = _FENCE_RE.search(text)
    if fenced:
        text = fenced.group(1).strip()
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass
    outer = _OBJECT_RE.search(text)
    if not outer:
        return None
    try:
        return json.loads(outer.group(0))
    except json.JSONDecodeError:
        return None


def parse_response(raw: str, entities: list[RegistryEntry]) -> Tier2Result:
    """Turn a raw classifier reply into a ``Tier2Result``.

    Never raises.  Anything that is not a JSON object yields an empty
    result; inside the object, unknown entity keys, non-object attribute
    entries and blank or non-string values are dropped.
    """
    parsed = _load_json_object(raw or "")
    if not isinstance(parsed, dict):
        logger.warning("Classifier reply is not a JSON object; ignoring it")
        return Tier2Result.empty()

    facts: dict[str, dict[str, Tier2Value]] = {}
    for key, attrs in parsed.items():
        canonical = match_entity_name(str(key), entities)
        if canonical is None:
            logger.debug("Classifier returned unknown entity %r", key)
            continue
        if not isinstance(attrs, dict):
            continue
        bucket = facts.setdefault(canonical, {})
        for attribute, entry in attrs.items():
            if not isinstance(entry, dict):
                continue
            value = entry.get("value")
            if not isinstance(value, str) or not value.strip():
                continue
            quote = entry.get("quote")
            name = str(attribute).lower().strip()
            if not name:
                continue
            bucket[name] = Tier2Value(
                value=value.strip(),
                quote=quote.strip() if isinstance(quote, str) else "",
            )
    return Tier2Result(status="ok", facts=facts)


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------

class ClassifierClient:
    """Calls the configured Tier 2 provider.

    Parameters
    ----------
    settings : Settings
        Provider, credentials, model names and timeout.
    """

    def __init__(self, settings: Settings):
        self._settings = settings

    @property
    def provider(self) -> str:
        return self._settings.llm_provider

    def validate_config(self) -> None:
        """Raise ``ClassifierConfigError`` if no call could succeed."""
        provider = self._settings.llm_provider
        if provider not in PROVIDERS:
            raise ClassifierConfigError(f"Unknown classifier provider '{provider}'")
        if provider == "anthropic" and not self._settings.llm_api_key.strip():
            raise ClassifierConfigError(
                "Tier 2 extraction is enabled but no Anthropic API key is set "
                "(llm_api_key or ANTHROPIC_API_KEY)"
            )

    def extract(self, scene_body: str, entities: list[RegistryEntry]) -> Tier2Result:
        """Classify *scene_body* for *entities*.

        Raises
        ------
        ClassifierConfigError
            Before any network call when the settings are unusable.
        ClassifierUnavailableError
            When the provider cannot be reached or reports an error.
        """
        if not entities:
            return Tier2Result(status="ok")
        self.validate_config()

        prompt = build_prompt(scene_body, entities)
        if self.provider == "anthropic":
            raw = self._call_anthropic(prompt)
        else:
            raw = self._call_ollama(prompt)
        return parse_response(raw, entities)

    # ------------------------------------------------------------------
    # Providers
    # ------------------------------------------------------------------

    def _call_anthropic(self, prompt: str) -> str:
        import anthropic

        client = anthropic.Anthropic(
            api_key=self._settings.llm_api_key,
            timeout=self._settings.llm_timeout,
        )
        try:
            response = client.messages.create(
                model=self._settings.llm_model,
                max_tokens=MAX_TOKENS,
                messages=[{"role": "user", "content": prompt}],
            )
        except anthropic.APIError as exc:
            raise ClassifierUnavailableError(f"Anthropic API error: {exc}") from exc

        return "".join(
            block.text for block in response.content
            if getattr(block, "type", "") == "text"
        )

    def _call_ollama(self, prompt: str) -> str:
        endpoint = self._settings.ollama_endpoint.rstrip("/")
        payload = {
            "model": self._settings.ollama_model or DEFAULT_OLLAMA_MODEL,
            "prompt": prompt,
            "stream": False,
        }
        try:
            with httpx.Client(timeout=self._settings.llm_timeout) as client:
                response = client.post(f"{endpoint}/api/generate", json=payload)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise ClassifierUnavailableError(
                f"Ollama API error {exc.response.status_code}: {exc.response.text[:200]}"
            ) from exc
        except httpx.HTTPError as exc:
            raise ClassifierUnavailableError(f"Ollama unreachable at {endpoint}: {exc}") from exc

        try:
            data = response.json()
        except ValueError:
            logger.warning("Ollama reply from %s is not JSON", endpoint)
            return ""
        if not isinstance(data, dict):
            return ""
        text = data.get("response", "")
        return text if isinstance(text, str) else ""
