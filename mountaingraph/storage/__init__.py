"""Graph store backends."""

from mountaingraph.storage.base import (
    ENTITIES,
    MOUNTAINS,
    RELATIONSHIPS,
    TIMELINE_EVENTS,
    FindResult,
    GraphStore,
    GraphStoreError,
    doc_id,
    equals,
    matches,
    one_of,
)
from mountaingraph.storage.memory_store import InMemoryGraphStore
from mountaingraph.utils.config import StoreConfig

__all__ = [
    "ENTITIES",
    "MOUNTAINS",
    "RELATIONSHIPS",
    "TIMELINE_EVENTS",
    "FindResult",
    "GraphStore",
    "GraphStoreError",
    "InMemoryGraphStore",
    "build_store",
    "doc_id",
    "equals",
    "matches",
    "one_of",
]


def build_store(config: StoreConfig) -> GraphStore:
    """Create the store backend selected by ``config.backend``."""
    if config.backend == "payload":
        from mountaingraph.storage.payload_store import PayloadGraphStore

        return PayloadGraphStore(config)
    if config.backend == "neo4j":
        from mountaingraph.storage.neo4j_store import Neo4jGraphStore

        store = Neo4jGraphStore(config)
        store.connect()
        store.create_schema()
        return store
    return InMemoryGraphStore()
