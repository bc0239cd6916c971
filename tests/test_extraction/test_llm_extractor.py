from __future__ import annotations

from typing import Dict, List

import pytest

from mountaingraph.extraction.llm_extractor import (
    ExtractionParseError,
    LLMExtractor,
    parse_extraction_response,
    repair_json_text,
)
from mountaingraph.utils.config import LLMConfig


def _noop_sleep(_: float) -> None:
    return None


def _extractor(provider: str = "openai", retry_attempts: int = 1) -> LLMExtractor:
    config = LLMConfig(provider=provider, retry_attempts=retry_attempts, model="test-model")
    return LLMExtractor(
        config=config, prompts_path="config/extraction_prompts.yaml", sleep_fn=_noop_sleep
    )


def test_repair_strips_code_fences() -> None:
    raw = '```json\n{"entities": []}\n```'

    assert repair_json_text(raw) == '{"entities": []}'


def test_repair_truncates_trailing_garbage() -> None:
    raw = '{"entities": [{"name": "Acme Fund"}]} Hope this helps!'

    assert parse_extraction_response(raw) == {"entities": [{"name": "Acme Fund"}]}


def test_parse_rejects_non_object() -> None:
    with pytest.raises(ExtractionParseError):
        parse_extraction_response("[1, 2, 3]")
    with pytest.raises(ExtractionParseError):
        parse_extraction_response("no json here")


def test_extractor_parses_fenced_response(monkeypatch: pytest.MonkeyPatch) -> None:
    extractor = _extractor()
    calls: Dict[str, str] = {}

    def fake_openai(*, system: str, user: str) -> str:
        calls["system"] = system
        calls["user"] = user
        return """```json
        {
          "entities": [
            {"name": "Acme Fund", "type": "Organization", "ein": "12-3456789",
             "description": "A charitable fund", "aliases": ["Acme", {"name": "AF", "type": "dba"}]},
            {"name": "Jane Doe", "type": "Person", "ein": "12345"}
          ],
          "relationships": [
            {"from": "Jane Doe", "to": "Acme Fund", "type": "ASSOCIATED_WITH"}
          ]
        }
        ```"""

    monkeypatch.setattr(extractor, "_call_openai", fake_openai)

    result = extractor.extract("Jane Doe directs the Acme Fund (EIN 12-3456789).")

    assert [e.name for e in result.entities] == ["Acme Fund", "Jane Doe"]
    acme, jane = result.entities
    assert acme.ein == "123456789"
    assert [(a.name, a.type) for a in acme.aliases] == [("Acme", "AKA"), ("AF", "DBA")]
    assert jane.ein is None
    assert result.relationships[0].source == "Jane Doe"
    assert result.relationships[0].target == "Acme Fund"
    assert result.events == []
    assert result.chunk_text.startswith("Jane Doe directs")
    assert "Jane Doe directs the Acme Fund" in calls["user"]
    assert "Organization" in calls["user"]


def test_extractor_drops_malformed_records(monkeypatch: pytest.MonkeyPatch) -> None:
    extractor = _extractor()

    def fake_openai(*, system: str, user: str) -> str:
        return """{
          "entities": [{"name": "  "}, "just a string", {"name": "Valid Org"}],
          "relationships": [{"from": "Valid Org"}, {"from_name": "A", "to_name": "B"}]
        }"""

    monkeypatch.setattr(extractor, "_call_openai", fake_openai)

    result = extractor.extract("text")

    assert [e.name for e in result.entities] == ["Valid Org"]
    assert [(r.source, r.target) for r in result.relationships] == [("A", "B")]
    assert len(result.rejected) == 3
    assert {m.kind for m in result.rejected} == {"entities", "relationships"}


def test_extractor_events_only_in_extended_mode(monkeypatch: pytest.MonkeyPatch) -> None:
    extractor = _extractor()
    prompts: List[str] = []

    def fake_openai(*, system: str, user: str) -> str:
        prompts.append(user)
        return """{
          "entities": [],
          "relationships": [],
          "events": [{"year": "2019-04-02", "title": "Fund launched", "mountains": ["Business"]},
                     {"title": "No year"}]
        }"""

    monkeypatch.setattr(extractor, "_call_openai", fake_openai)

    simple = extractor.extract("text")
    extended = extractor.extract("text", include_events=True)

    assert simple.events == []
    assert len(extended.events) == 1
    event = extended.events[0]
    assert (event.year, event.month, event.day) == (2019, 4, 2)
    assert event.mountains == ["Business"]
    assert len(extended.rejected) == 1
    assert "Mountains" not in prompts[0]
    assert "Religion" in prompts[1]


def test_extractor_retries_transport_errors(monkeypatch: pytest.MonkeyPatch) -> None:
    extractor = _extractor(provider="anthropic", retry_attempts=3)
    attempts = {"n": 0}

    def flaky(*, system: str, user: str) -> str:
        attempts["n"] += 1
        if attempts["n"] < 3:
            raise ConnectionError("temporary outage")
        return '{"entities": [{"name": "Acme Fund"}]}'

    monkeypatch.setattr(extractor, "_call_anthropic", flaky)

    result = extractor.extract("text")

    assert attempts["n"] == 3
    assert result.entities[0].name == "Acme Fund"


def test_extractor_raises_on_unparseable_response(monkeypatch: pytest.MonkeyPatch) -> None:
    extractor = _extractor()
    monkeypatch.setattr(extractor, "_call_openai", lambda *, system, user: "I cannot help")

    with pytest.raises(ExtractionParseError):
        extractor.extract("text")


def test_missing_prompt_file_raises(tmp_path) -> None:
    with pytest.raises(FileNotFoundError):
        LLMExtractor(LLMConfig(), prompts_path=tmp_path / "missing.yaml")
