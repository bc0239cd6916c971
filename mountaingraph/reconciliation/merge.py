"""Merge per-chunk extraction results for one document.

Merging happens *within a document* and is keyed on the exact entity name:
- An incoming record replaces the kept one when nothing is kept yet, when it carries
  an EIN the kept record lacks, or when its description is strictly longer.
- Replacement never loses information: the EIN, a specific type and aliases
  missing from the winner are carried over, and the longest description wins.
- Records with different names but the same EIN collapse onto the first-seen name;
  the other names become ``AKA`` aliases and resolve to the same entity.

Relationship endpoints that were never extracted as entities get a bare ``Other``
record so the edge can still be created.
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field

from mountaingraph.extraction.models import (
    ChunkExtraction,
    ExtractedAlias,
    ExtractedEntity,
    ExtractedEvent,
    ExtractedRelationship,
)


class MergedEntity(BaseModel):
    """Best-known record for one entity name within a document."""

    model_config = ConfigDict(extra="forbid")

    name: str
    type: str = "Other"
    ein: Optional[str] = None
    description: str = ""
    aliases: List[ExtractedAlias] = Field(default_factory=list)
    metadata: Dict[str, object] = Field(default_factory=dict)
    inferred: bool = False

    @classmethod
    def from_extracted(cls, entity: ExtractedEntity) -> "MergedEntity":
        return cls(
            name=entity.name,
            type=entity.type or "Other",
            ein=entity.ein,
            description=entity.description,
            aliases=_unique_aliases(entity.aliases, exclude=entity.name),
            metadata=dict(entity.metadata),
        )

    def add_aliases(self, aliases: Iterable[ExtractedAlias]) -> None:
        self.aliases = _unique_aliases([*self.aliases, *aliases], exclude=self.name)


class MergedEvent(BaseModel):
    """An extracted event plus the chunk text it came from."""

    event: ExtractedEvent
    chunk_text: str = ""

    @property
    def key(self) -> tuple:
        return (self.event.year, self.event.title)


class DocumentMerge(BaseModel):
    """Everything extracted from one document, deduplicated by name."""

    entities: Dict[str, MergedEntity] = Field(default_factory=dict)
    alternate_names: Dict[str, str] = Field(default_factory=dict)
    relationships: List[ExtractedRelationship] = Field(default_factory=list)
    events: List[MergedEvent] = Field(default_factory=list)

    def referenced_names(self) -> List[str]:
        """Every distinct name the resolution phase should look up, in first-seen order."""
        names: Dict[str, None] = {}
        for name in self.entities:
            names.setdefault(name, None)
        for name in self.alternate_names:
            names.setdefault(name, None)
        for rel in self.relationships:
            names.setdefault(rel.source, None)
            names.setdefault(rel.target, None)
        for merged in self.events:
            for name in merged.event.entities:
                names.setdefault(name, None)
        return list(names)

    def referenced_eins(self) -> List[str]:
        eins: Dict[str, None] = {}
        for entity in self.entities.values():
            if entity.ein:
                eins.setdefault(entity.ein, None)
        return list(eins)


def _unique_aliases(
    aliases: Iterable[ExtractedAlias], *, exclude: str
) -> List[ExtractedAlias]:
    seen = {exclude.casefold()}
    unique: List[ExtractedAlias] = []
    for alias in aliases:
        folded = alias.name.casefold()
        if folded in seen:
            continue
        seen.add(folded)
        unique.append(alias)
    return unique


def _is_generic_type(value: str) -> bool:
    return not value or value.casefold() == "other"


def _combine(kept: MergedEntity, incoming: ExtractedEntity, *, replace: bool) -> MergedEntity:
    winner = MergedEntity.from_extracted(incoming) if replace else kept.model_copy(deep=True)
    loser_ein = kept.ein if replace else incoming.ein
    loser_type = kept.type if replace else incoming.type

    if not winner.ein and loser_ein:
        winner.ein = loser_ein
    if _is_generic_type(winner.type) and not _is_generic_type(loser_type):
        winner.type = loser_type
    if len(kept.description) > len(winner.description):
        winner.description = kept.description
    if len(incoming.description) > len(winner.description):
        winner.description = incoming.description

    winner.add_aliases([*kept.aliases, *incoming.aliases])
    for key, value in (kept.metadata if replace else incoming.metadata).items():
        winner.metadata.setdefault(key, value)
    return winner


def _should_replace(kept: MergedEntity, incoming: ExtractedEntity) -> bool:
    if incoming.ein and not kept.ein:
        return True
    return len(incoming.description) > len(kept.description)


def merge_extractions(extractions: Iterable[ChunkExtraction]) -> DocumentMerge:
    """Fold chunk results (in document order) into one :class:`DocumentMerge`."""
    merged = DocumentMerge()

    for extraction in extractions:
        for entity in extraction.entities:
            kept = merged.entities.get(entity.name)
            if kept is None:
                merged.entities[entity.name] = MergedEntity.from_extracted(entity)
            else:
                merged.entities[entity.name] = _combine(
                    kept, entity, replace=_should_replace(kept, entity)
                )
        merged.relationships.extend(extraction.relationships)
        merged.events.extend(
            MergedEvent(event=event, chunk_text=extraction.chunk_text)
            for event in extraction.events
        )

    _consolidate_by_ein(merged)
    _add_missing_endpoints(merged)
    return merged


def _consolidate_by_ein(merged: DocumentMerge) -> None:
    keeper_by_ein: Dict[str, str] = {}
    for name in list(merged.entities):
        entity = merged.entities[name]
        if not entity.ein:
            continue
        keeper_name = keeper_by_ein.setdefault(entity.ein, name)
        if keeper_name == name:
            continue

        keeper = merged.entities[keeper_name]
        if len(entity.description) > len(keeper.description):
            keeper.description = entity.description
        if _is_generic_type(keeper.type) and not _is_generic_type(entity.type):
            keeper.type = entity.type
        keeper.add_aliases([ExtractedAlias(name=name, type="AKA"), *entity.aliases])
        merged.alternate_names[name] = keeper_name
        del merged.entities[name]
        logger.debug(f"Consolidated '{name}' into '{keeper_name}' (shared EIN {entity.ein})")


def _add_missing_endpoints(merged: DocumentMerge) -> None:
    for rel in merged.relationships:
        for name in (rel.source, rel.target):
            if name not in merged.entities and name not in merged.alternate_names:
                merged.entities[name] = MergedEntity(name=name, inferred=True)
