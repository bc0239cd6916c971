from __future__ import annotations

from mountaingraph.extraction.models import (
    ChunkExtraction,
    ExtractedEntity,
    ExtractedEvent,
    ExtractedRelationship,
)
from mountaingraph.reconciliation.merge import merge_extractions


def _chunk(entities=(), relationships=(), events=(), text: str = "") -> ChunkExtraction:
    return ChunkExtraction(
        entities=[ExtractedEntity.model_validate(e) for e in entities],
        relationships=[ExtractedRelationship.model_validate(r) for r in relationships],
        events=[ExtractedEvent.model_validate(e) for e in events],
        chunk_text=text,
    )


def test_ein_and_description_from_different_chunks_combine() -> None:
    merged = merge_extractions(
        [
            _chunk(entities=[{"name": "Acme Fund", "ein": "12-3456789"}]),
            _chunk(entities=[{"name": "Acme Fund", "description": "A 501c3"}]),
        ]
    )

    acme = merged.entities["Acme Fund"]
    assert acme.ein == "123456789"
    assert acme.description == "A 501c3"


def test_longer_description_wins_without_losing_type() -> None:
    merged = merge_extractions(
        [
            _chunk(entities=[{"name": "Acme Fund", "type": "Organization", "description": "fund"}]),
            _chunk(entities=[{"name": "Acme Fund", "description": "A much longer description"}]),
            _chunk(entities=[{"name": "Acme Fund", "description": "short"}]),
        ]
    )

    acme = merged.entities["Acme Fund"]
    assert acme.type == "Organization"
    assert acme.description == "A much longer description"


def test_incoming_ein_replaces_but_keeps_longest_description() -> None:
    merged = merge_extractions(
        [
            _chunk(entities=[{"name": "Acme Fund", "description": "A long description of the fund"}]),
            _chunk(entities=[{"name": "Acme Fund", "ein": "123456789", "description": "x"}]),
        ]
    )

    acme = merged.entities["Acme Fund"]
    assert acme.ein == "123456789"
    assert acme.description == "A long description of the fund"


def test_aliases_are_unioned_without_self_reference() -> None:
    merged = merge_extractions(
        [
            _chunk(entities=[{"name": "Acme Fund", "aliases": ["Acme", "acme fund"]}]),
            _chunk(entities=[{"name": "Acme Fund", "aliases": ["ACME", {"name": "AF", "type": "DBA"}]}]),
        ]
    )

    aliases = [(a.name, a.type) for a in merged.entities["Acme Fund"].aliases]
    assert aliases == [("Acme", "AKA"), ("AF", "DBA")]


def test_same_ein_different_names_consolidate() -> None:
    merged = merge_extractions(
        [
            _chunk(entities=[{"name": "Acme Fund", "ein": "123456789", "description": "short"}]),
            _chunk(
                entities=[
                    {
                        "name": "Acme Charitable Fund",
                        "ein": "12-3456789",
                        "description": "The longest description here",
                    }
                ]
            ),
        ]
    )

    assert list(merged.entities) == ["Acme Fund"]
    keeper = merged.entities["Acme Fund"]
    assert keeper.ein == "123456789"
    assert keeper.description == "The longest description here"
    assert ("Acme Charitable Fund", "AKA") in [(a.name, a.type) for a in keeper.aliases]
    assert merged.alternate_names == {"Acme Charitable Fund": "Acme Fund"}


def test_relationship_endpoints_become_inferred_entities() -> None:
    merged = merge_extractions(
        [
            _chunk(
                entities=[{"name": "Acme Fund"}],
                relationships=[{"from": "Acme Fund", "to": "Jane Doe", "type": "BOARD"}],
            )
        ]
    )

    jane = merged.entities["Jane Doe"]
    assert jane.inferred is True
    assert jane.type == "Other"
    assert merged.entities["Acme Fund"].inferred is False


def test_referenced_names_cover_every_phase() -> None:
    merged = merge_extractions(
        [
            _chunk(
                entities=[{"name": "Acme Fund", "ein": "123456789"}],
                relationships=[{"from": "Acme Fund", "to": "Jane Doe"}],
                events=[{"year": 2020, "title": "Launch", "entities": ["Beacon Trust"]}],
                text="chunk one",
            )
        ]
    )

    assert merged.referenced_names() == ["Acme Fund", "Jane Doe", "Beacon Trust"]
    assert merged.referenced_eins() == ["123456789"]
    assert merged.events[0].chunk_text == "chunk one"
    assert merged.events[0].key == (2020, "Launch")


def test_empty_input_merges_to_nothing() -> None:
    merged = merge_extractions([ChunkExtraction.empty("x")])

    assert merged.entities == {}
    assert merged.relationships == []
    assert merged.referenced_names() == []
