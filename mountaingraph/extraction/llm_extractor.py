"""LLM-powered entity, relationship and event extraction.

This module provides a provider-agnostic interface over OpenAI-compatible and
Anthropic chat APIs. Prompts are rendered from YAML templates; responses are
repaired (code fences, trailing garbage), parsed and validated into typed records
for the reconciler.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

import yaml
from loguru import logger

from mountaingraph.extraction.models import ChunkExtraction, Malformed, coerce_record
from mountaingraph.utils.config import (
    DEFAULT_ENTITY_TYPES,
    DEFAULT_RELATIONSHIP_TYPES,
    SEVEN_MOUNTAINS,
    LLMConfig,
)
from mountaingraph.utils.llm_client import ChatClient, create_llm_client
from mountaingraph.utils.retry import RetryPolicy, run_with_retry


class ExtractionParseError(ValueError):
    """Raised when a model response cannot be turned into a JSON object."""


def repair_json_text(text: str) -> str:
    """Strip code fences and trailing garbage from a model response.

    If the cleaned text does not end with ``}``, it is cut after the last ``}``.
    """
    cleaned = (text or "").replace("```json", "").replace("```", "").strip()
    if not cleaned.endswith("}"):
        last_brace = cleaned.rfind("}")
        if last_brace != -1:
            cleaned = cleaned[: last_brace + 1]
    return cleaned


def parse_extraction_response(text: str) -> Dict[str, Any]:
    """Repair and parse a model response into a JSON object.

    Raises:
        ExtractionParseError: If the text is not a JSON object after repair.
    """
    cleaned = repair_json_text(text)
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        raise ExtractionParseError(f"Model response is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise ExtractionParseError(
            f"Model response must be a JSON object, got {type(data).__name__}"
        )
    return data


class LLMExtractor:
    """LLM extractor with provider switch, retries, and structured parsing."""

    def __init__(
        self,
        config: Optional[LLMConfig] = None,
        prompts_path: str | Path = "config/extraction_prompts.yaml",
        *,
        entity_types: Optional[List[str]] = None,
        relationship_types: Optional[List[str]] = None,
        mountains: Optional[List[str]] = None,
        sleep_fn: Callable[[float], None] | None = None,
    ) -> None:
        self.config = config or LLMConfig()
        self.prompts_path = Path(prompts_path)
        self.prompts = self._load_prompts(self.prompts_path)
        self.entity_types = entity_types or list(DEFAULT_ENTITY_TYPES)
        self.relationship_types = relationship_types or list(DEFAULT_RELATIONSHIP_TYPES)
        self.mountains = mountains or list(SEVEN_MOUNTAINS)
        self._sleep = sleep_fn
        self._client: Optional[ChatClient] = None

        logger.info(
            "Initialized LLMExtractor",
            provider=self.config.provider,
            model=self.config.model,
            prompts=str(self.prompts_path),
        )

    # -----------------------
    # Public API
    # -----------------------
    def extract(self, chunk_text: str, *, include_events: bool = False) -> ChunkExtraction:
        """Extract graph records from one chunk.

        Raises:
            ExtractionParseError: If the model response is not a JSON object.
            Exception: Whatever the provider raised once retries are exhausted.
        """
        key = "graph_event_extraction" if include_events else "graph_extraction"
        context = {
            "chunk_text": chunk_text,
            "entity_types": ", ".join(self.entity_types),
            "relationship_types": ", ".join(self.relationship_types),
            "mountains": ", ".join(self.mountains),
        }
        system, user = self._render_prompt(key, context)
        raw_response = self._call_llm(system=system, user=user)
        data = parse_extraction_response(raw_response)
        return self._validate(data, chunk_text=chunk_text, include_events=include_events)

    # -----------------------
    # Prompt handling
    # -----------------------
    def _load_prompts(self, path: Path) -> Dict[str, Any]:
        if not path.exists():
            raise FileNotFoundError(f"Extraction prompt template not found: {path}")
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        if not isinstance(data, dict):
            raise ValueError(f"Prompt template root must be a mapping/dict: {path}")
        return data

    def _render_prompt(self, key: str, context: Dict[str, Any]) -> Tuple[str, str]:
        if key not in self.prompts:
            raise KeyError(f"Prompt key not found in template: {key}")

        prompt = self.prompts.get(key) or {}
        system = str(prompt.get("system", "")).strip()
        user_template = str(prompt.get("user_template", "{chunk_text}"))

        try:
            user = user_template.format(**context)
        except KeyError as exc:
            missing = exc.args[0]
            raise KeyError(f"Missing placeholder '{missing}' in prompt context for '{key}'")
        return system, user

    # -----------------------
    # LLM invocation
    # -----------------------
    def _call_llm(self, *, system: str, user: str) -> str:
        policy = RetryPolicy(
            max_attempts=max(1, self.config.retry_attempts),
            initial_delay=1.0,
            backoff_multiplier=2.0,
            max_delay=8.0,
        )

        def attempt() -> str:
            if self.config.provider == "openai":
                return self._call_openai(system=system, user=user)
            if self.config.provider == "anthropic":
                return self._call_anthropic(system=system, user=user)
            raise ValueError(f"Unsupported LLM provider: {self.config.provider}")

        logger.debug(f"Calling LLM for extraction using {self.config.provider}: {self.config.model}")
        return run_with_retry(
            attempt,
            policy,
            description=f"LLM request ({self.config.model})",
            sleep_fn=self._sleep,
        )

    @property
    def client(self) -> ChatClient:
        """Provider SDK client, created on first use."""
        if self._client is None:
            self._client = create_llm_client(self.config)
        return self._client

    def _call_openai(self, *, system: str, user: str) -> str:
        response = self.client.chat.completions.create(
            model=self.config.model,
            temperature=self.config.temperature,
            max_tokens=self.config.max_tokens,
            messages=[
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            response_format={"type": "json_object"},
        )

        content = response.choices[0].message.content
        if isinstance(content, list):
            parts = []
            for item in content:
                if isinstance(item, dict):
                    parts.append(str(item.get("text", "")))
                else:
                    parts.append(str(item))
            return "\n".join(parts).strip()
        return str(content or "")

    def _call_anthropic(self, *, system: str, user: str) -> str:
        message = self.client.messages.create(
            model=self.config.model,
            system=system,
            messages=[{"role": "user", "content": user}],
            max_tokens=self.config.max_tokens,
        )
        parts = []
        for block in message.content:
            if getattr(block, "type", None) == "text":
                parts.append(getattr(block, "text", ""))
        return "\n".join(parts).strip()

    # -----------------------
    # Validation
    # -----------------------
    def _validate(
        self, data: Dict[str, Any], *, chunk_text: str, include_events: bool
    ) -> ChunkExtraction:
        result = ChunkExtraction.empty(chunk_text)
        kinds = ["entities", "relationships"] + (["events"] if include_events else [])

        for kind in kinds:
            raw_records = data.get(kind) or []
            if not isinstance(raw_records, list):
                result.rejected.append(
                    Malformed(kind=kind, reason="expected a list", raw=raw_records)
                )
                continue
            target = getattr(result, kind)
            for raw in raw_records:
                record = coerce_record(kind, raw)
                if isinstance(record, Malformed):
                    result.rejected.append(record)
                else:
                    target.append(record)

        if result.rejected:
            logger.debug(
                f"Rejected {len(result.rejected)} malformed records: "
                + "; ".join(f"{m.kind}: {m.reason}" for m in result.rejected[:5])
            )
        return result
