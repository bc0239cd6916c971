"""Extraction package exports."""

from mountaingraph.extraction.llm_extractor import (
    ExtractionParseError,
    LLMExtractor,
    parse_extraction_response,
    repair_json_text,
)
from mountaingraph.extraction.models import (
    ChunkExtraction,
    EntityType,
    ExtractedAlias,
    ExtractedEntity,
    ExtractedEvent,
    ExtractedRelationship,
    LedgerRelationshipType,
    Malformed,
    RelationshipType,
    coerce_record,
)
from mountaingraph.extraction.normalize import (
    map_ledger_edge_type,
    normalize_ein,
    normalize_entity_type,
    normalize_relationship_type,
)

__all__ = [
    "ChunkExtraction",
    "EntityType",
    "ExtractedAlias",
    "ExtractedEntity",
    "ExtractedEvent",
    "ExtractedRelationship",
    "ExtractionParseError",
    "LLMExtractor",
    "LedgerRelationshipType",
    "Malformed",
    "RelationshipType",
    "coerce_record",
    "map_ledger_edge_type",
    "normalize_ein",
    "normalize_entity_type",
    "normalize_relationship_type",
    "parse_extraction_response",
    "repair_json_text",
]
