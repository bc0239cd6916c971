"""Shared data models for extraction modules.

Model output has no guaranteed shape, so every raw record is coerced into one of
the typed records below or rejected as :class:`Malformed`.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from mountaingraph.extraction.normalize import normalize_ein


class EntityType(str, Enum):
    """Entity types in the research graph."""

    PERSON = "Person"
    ORGANIZATION = "Organization"
    EVENT = "Event"
    ACTOR = "Actor"
    POLITY = "Polity"
    CONCEPT = "Concept"
    LOCATION = "Location"
    IMPACT = "Impact"
    TOPIC = "Topic"
    SYSTEM = "System"
    OTHER = "Other"


class RelationshipType(str, Enum):
    """Relationship types produced by text extraction."""

    TRIGGERED = "TRIGGERED"
    PARTICIPATED_IN = "PARTICIPATED_IN"
    AFFECTED = "AFFECTED"
    LOCATED_IN = "LOCATED_IN"
    PRECEDES = "PRECEDES"
    FOLLOWS = "FOLLOWS"
    ASSOCIATED_WITH = "ASSOCIATED_WITH"
    MENTIONS = "MENTIONS"


class LedgerRelationshipType(str, Enum):
    """Relationship types produced by ledger sync."""

    CONTRACT = "Contract"
    GRANT = "Grant"
    EMPLOYMENT = "Employment"
    BOARD = "Board"
    OFFICER = "Officer"
    KEY_EMPLOYEE = "KeyEmployee"
    OTHER = "Other"


def _clean(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


class ExtractedAlias(BaseModel):
    """Alternate name for an entity, tagged with its kind (AKA, DBA, ...)."""

    model_config = ConfigDict(extra="ignore")

    name: str
    type: str = "AKA"

    @model_validator(mode="before")
    @classmethod
    def _from_string(cls, data: Any) -> Any:
        if isinstance(data, str):
            return {"name": data}
        return data

    @field_validator("name")
    @classmethod
    def _require_name(cls, v: str) -> str:
        v = _clean(v)
        if not v:
            raise ValueError("alias name is empty")
        return v

    @field_validator("type", mode="before")
    @classmethod
    def _alias_kind(cls, v: Any) -> str:
        return _clean(v).upper() or "AKA"


class ExtractedEntity(BaseModel):
    """Structured representation of an extracted entity."""

    model_config = ConfigDict(extra="ignore")

    name: str
    type: str = "Other"
    ein: Optional[str] = None
    description: str = ""
    aliases: List[ExtractedAlias] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("name", mode="before")
    @classmethod
    def _require_name(cls, v: Any) -> str:
        v = _clean(v)
        if not v:
            raise ValueError("entity name is empty")
        return v

    @field_validator("type", "description", mode="before")
    @classmethod
    def _strip(cls, v: Any) -> str:
        return _clean(v)

    @field_validator("ein", mode="before")
    @classmethod
    def _normalize_ein(cls, v: Any) -> Optional[str]:
        return normalize_ein(v)

    @field_validator("aliases", mode="before")
    @classmethod
    def _drop_bad_aliases(cls, v: Any) -> List[Any]:
        if v is None:
            return []
        if isinstance(v, (str, dict)):
            v = [v]
        kept = []
        for item in v:
            try:
                kept.append(ExtractedAlias.model_validate(item))
            except ValidationError:
                continue
        return kept


class ExtractedRelationship(BaseModel):
    """Structured representation of an extracted relationship."""

    model_config = ConfigDict(extra="ignore")

    source: str
    target: str
    type: str = ""
    description: str = ""

    @model_validator(mode="before")
    @classmethod
    def _endpoint_aliases(cls, data: Any) -> Any:
        if isinstance(data, dict):
            data = dict(data)
            data.setdefault("source", data.get("from") or data.get("from_name"))
            data.setdefault("target", data.get("to") or data.get("to_name"))
        return data

    @field_validator("source", "target", mode="before")
    @classmethod
    def _require_endpoint(cls, v: Any) -> str:
        v = _clean(v)
        if not v:
            raise ValueError("relationship endpoint is empty")
        return v

    @field_validator("type", "description", mode="before")
    @classmethod
    def _strip(cls, v: Any) -> str:
        return _clean(v)


_DATE_PARTS = re.compile(r"^\s*(\d{3,4})(?:-(\d{1,2}))?(?:-(\d{1,2}))?\s*$")


class ExtractedEvent(BaseModel):
    """A dated occurrence pulled out of a chunk (extended pipeline only)."""

    model_config = ConfigDict(extra="ignore")

    year: int
    month: Optional[int] = Field(default=None, ge=1, le=12)
    day: Optional[int] = Field(default=None, ge=1, le=31)
    title: str
    description: str = ""
    mountains: List[str] = Field(default_factory=list)
    entities: List[str] = Field(default_factory=list)
    convergence: bool = False
    quote: str = ""

    @model_validator(mode="before")
    @classmethod
    def _split_date(cls, data: Any) -> Any:
        # "2024-05" style years carry the month (and maybe day) with them.
        if isinstance(data, dict) and isinstance(data.get("year"), str):
            match = _DATE_PARTS.match(data["year"])
            if match:
                data = dict(data)
                data["year"] = int(match.group(1))
                if match.group(2) and not data.get("month"):
                    data["month"] = int(match.group(2))
                if match.group(3) and not data.get("day"):
                    data["day"] = int(match.group(3))
        return data

    @field_validator("title", mode="before")
    @classmethod
    def _require_title(cls, v: Any) -> str:
        v = _clean(v)
        if not v:
            raise ValueError("event title is empty")
        return v

    @field_validator("month", "day", mode="before")
    @classmethod
    def _optional_int(cls, v: Any) -> Any:
        return None if v in ("", None, 0, "0") else v

    @field_validator("description", "quote", mode="before")
    @classmethod
    def _strip(cls, v: Any) -> str:
        return _clean(v)

    @field_validator("mountains", "entities", mode="before")
    @classmethod
    def _string_list(cls, v: Any) -> List[str]:
        if v is None:
            return []
        if isinstance(v, str):
            v = [v]
        names = []
        for item in v:
            if isinstance(item, dict):
                item = item.get("name") or item.get("title")
            item = _clean(item)
            if item:
                names.append(item)
        return names


class Malformed(BaseModel):
    """A raw record that could not be coerced into a typed extraction record."""

    kind: str
    reason: str
    raw: Any = None


ExtractionRecord = Union[ExtractedEntity, ExtractedRelationship, ExtractedEvent]


class ChunkExtraction(BaseModel):
    """Typed extraction output for one chunk."""

    entities: List[ExtractedEntity] = Field(default_factory=list)
    relationships: List[ExtractedRelationship] = Field(default_factory=list)
    events: List[ExtractedEvent] = Field(default_factory=list)
    rejected: List[Malformed] = Field(default_factory=list)
    chunk_text: str = ""

    @classmethod
    def empty(cls, chunk_text: str = "") -> "ChunkExtraction":
        return cls(chunk_text=chunk_text)

    @property
    def is_empty(self) -> bool:
        return not (self.entities or self.relationships or self.events)


_RECORD_MODELS = {
    "entities": ExtractedEntity,
    "relationships": ExtractedRelationship,
    "events": ExtractedEvent,
}


def coerce_record(kind: str, raw: Any) -> Union[ExtractionRecord, Malformed]:
    """Validate one raw record of ``kind`` ("entities", "relationships", "events")."""
    model = _RECORD_MODELS[kind]
    if not isinstance(raw, dict):
        return Malformed(kind=kind, reason="record is not an object", raw=raw)
    try:
        return model.model_validate(raw)
    except ValidationError as exc:
        first = exc.errors()[0]
        location = ".".join(str(part) for part in first.get("loc", ())) or kind
        return Malformed(kind=kind, reason=f"{location}: {first.get('msg')}", raw=raw)
