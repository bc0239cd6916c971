from __future__ import annotations

import pytest

from mountaingraph.storage import ENTITIES, RELATIONSHIPS, GraphStoreError, InMemoryGraphStore, equals, one_of
from mountaingraph.storage.base import matches


@pytest.fixture
def store() -> InMemoryGraphStore:
    return InMemoryGraphStore(
        seed={
            ENTITIES: [
                {"id": "e1", "name": "Acme Fund", "ein": "123456789"},
                {"id": "e2", "name": "Jane Doe"},
                {"id": "e3", "name": "Beacon Trust", "ein": "987654321"},
            ]
        }
    )


def test_seed_does_not_count_as_calls(store: InMemoryGraphStore) -> None:
    assert store.calls == []
    assert store.count(ENTITIES) == 3


def test_find_with_or_of_in_clauses(store: InMemoryGraphStore) -> None:
    result = store.find(
        ENTITIES,
        {"or": [one_of("name", ["Jane Doe"]), one_of("ein", ["987654321"])]},
        limit=10,
    )

    assert sorted(doc["id"] for doc in result.docs) == ["e2", "e3"]
    assert result.total_docs == 2


def test_find_respects_limit(store: InMemoryGraphStore) -> None:
    result = store.find(ENTITIES, None, limit=1)

    assert len(result.docs) == 1
    assert result.total_docs == 3


def test_create_assigns_id_and_copies(store: InMemoryGraphStore) -> None:
    data = {"name": "New Org", "aliases": [{"name": "NO", "type": "AKA"}]}

    created = store.create(ENTITIES, data)
    created["aliases"].append({"name": "mutated"})

    stored = store.find(ENTITIES, equals("name", "New Org")).docs[0]
    assert stored["id"] == created["id"]
    assert stored["aliases"] == [{"name": "NO", "type": "AKA"}]
    assert "id" not in data


def test_create_duplicate_id_rejected(store: InMemoryGraphStore) -> None:
    with pytest.raises(GraphStoreError):
        store.create(ENTITIES, {"id": "e1", "name": "Clash"})


def test_update_merges_fields(store: InMemoryGraphStore) -> None:
    updated = store.update(ENTITIES, "e2", {"ein": "111222333"})

    assert updated == {"id": "e2", "name": "Jane Doe", "ein": "111222333"}


def test_update_missing_document_raises(store: InMemoryGraphStore) -> None:
    with pytest.raises(GraphStoreError):
        store.update(ENTITIES, "nope", {"name": "x"})


def test_and_clause_on_relationships() -> None:
    store = InMemoryGraphStore()
    store.create(RELATIONSHIPS, {"from": "e1", "to": "e2", "type": "MENTIONS"})

    hit = store.find(
        RELATIONSHIPS,
        {"and": [equals("from", "e1"), equals("to", "e2"), equals("type", "MENTIONS")]},
    )
    miss = store.find(
        RELATIONSHIPS,
        {"and": [equals("from", "e1"), equals("to", "e2"), equals("type", "AFFECTED")]},
    )

    assert len(hit.docs) == 1
    assert miss.docs == []


def test_matches_compares_populated_references_by_id() -> None:
    doc = {"from": {"id": "e1", "name": "Acme"}}

    assert matches(doc, equals("from", "e1"))


def test_unsupported_operator_rejected(store: InMemoryGraphStore) -> None:
    with pytest.raises(GraphStoreError, match="Unsupported where operator"):
        store.find(ENTITIES, {"name": {"like": "Acme"}})
