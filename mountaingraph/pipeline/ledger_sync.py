"""Mirror the external financial ledger into the graph store.

Ledger entities map onto graph entities through ``ledger_source_id``; ledger edges
become typed relationships (Contract, Grant, Employment, Board, ...) between them.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Protocol

from loguru import logger
from pydantic import BaseModel, ConfigDict, field_validator
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine

from mountaingraph.extraction.normalize import (
    map_ledger_edge_type,
    normalize_ein,
    normalize_entity_type,
)
from mountaingraph.storage.base import ENTITIES, RELATIONSHIPS, GraphStore, GraphStoreError, doc_id, equals
from mountaingraph.utils.config import DEFAULT_ENTITY_TYPES, LedgerConfig


def _as_str(value: Any) -> Any:
    return str(value) if isinstance(value, int) else value


class LedgerEntity(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    name: Optional[str] = None
    ein: Optional[str] = None
    type: Optional[str] = None

    @field_validator("id", "ein", mode="before")
    @classmethod
    def _stringify(cls, v: Any) -> Any:
        return _as_str(v)


class LedgerEdge(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    source_id: str
    target_id: str
    type: Optional[str] = None
    role: Optional[str] = None
    year: Optional[int] = None
    amount: Optional[float] = None
    attributes: Optional[str] = None

    @field_validator("id", "source_id", "target_id", mode="before")
    @classmethod
    def _stringify(cls, v: Any) -> Any:
        return _as_str(v)


class LedgerSource(Protocol):
    def fetch_entities(self, limit: int) -> List[LedgerEntity]: ...

    def fetch_edges(self, limit: int) -> List[LedgerEdge]: ...


class SqlLedgerSource:
    """Read ledger rows from a SQL database (``entities`` and ``edges`` tables)."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    @classmethod
    def from_url(cls, database_url: str) -> "SqlLedgerSource":
        return cls(create_engine(database_url, echo=False))

    def fetch_entities(self, limit: int) -> List[LedgerEntity]:
        rows = self._fetch("SELECT * FROM entities LIMIT :limit", limit)
        return [LedgerEntity.model_validate(row) for row in rows]

    def fetch_edges(self, limit: int) -> List[LedgerEdge]:
        rows = self._fetch("SELECT * FROM edges LIMIT :limit", limit)
        return [LedgerEdge.model_validate(row) for row in rows]

    def _fetch(self, query: str, limit: int) -> List[Dict[str, Any]]:
        with self.engine.connect() as conn:
            result = conn.execute(text(query), {"limit": limit})
            return [dict(row) for row in result.mappings()]


class LedgerSyncStats(BaseModel):
    entities: int = 0
    entities_created: int = 0
    edges: int = 0
    edges_synced: int = 0
    edges_skipped: int = 0
    failures: int = 0


class LedgerSync:
    """Create or update graph records for every ledger entity and edge.

    Example:
        >>> sync = LedgerSync(store, SqlLedgerSource.from_url(config.ledger.database_url))
        >>> stats = sync.sync()
    """

    def __init__(
        self,
        store: GraphStore,
        source: LedgerSource,
        config: Optional[LedgerConfig] = None,
        *,
        entity_types: Optional[List[str]] = None,
    ) -> None:
        self.store = store
        self.source = source
        self.config = config or LedgerConfig()
        self.entity_types = entity_types or list(DEFAULT_ENTITY_TYPES)

    def sync(self) -> LedgerSyncStats:
        stats = LedgerSyncStats()

        entities = self.source.fetch_entities(self.config.row_limit)
        stats.entities = len(entities)
        id_map = self._sync_entities(entities, stats)

        edges = self.source.fetch_edges(self.config.row_limit)
        stats.edges = len(edges)
        self._sync_edges(edges, id_map, stats)

        logger.info(
            f"Ledger sync complete: {stats.entities} entities ({stats.entities_created} new), "
            f"{stats.edges_synced}/{stats.edges} edges synced, {stats.failures} failures"
        )
        return stats

    def _sync_entities(self, entities: List[LedgerEntity], stats: LedgerSyncStats) -> Dict[str, str]:
        id_map: Dict[str, str] = {}
        for ent in entities:
            try:
                existing = self.store.find(ENTITIES, equals("ledger_source_id", ent.id), limit=1)
                if existing.docs:
                    graph_id = doc_id(existing.docs[0])
                else:
                    created = self.store.create(ENTITIES, self._entity_data(ent))
                    graph_id = doc_id(created)
                    stats.entities_created += 1
                if not graph_id:
                    raise GraphStoreError("store returned a document without an id")
            except Exception as exc:  # noqa: BLE001
                stats.failures += 1
                logger.warning(f"Failed to sync ledger entity {ent.id} ({ent.name}): {exc}")
                continue
            id_map[ent.id] = graph_id
        return id_map

    def _entity_data(self, ent: LedgerEntity) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "name": (ent.name or "").strip() or "Unknown Entity",
            "type": normalize_entity_type(ent.type, self.entity_types, default="Organization"),
            "ledger_source_id": ent.id,
        }
        ein = normalize_ein(ent.ein)
        if ein:
            data["ein"] = ein
        return data

    def _sync_edges(
        self, edges: List[LedgerEdge], id_map: Dict[str, str], stats: LedgerSyncStats
    ) -> None:
        for edge in edges:
            from_id = id_map.get(edge.source_id)
            to_id = id_map.get(edge.target_id)
            if not from_id or not to_id:
                stats.edges_skipped += 1
                continue

            data: Dict[str, Any] = {
                "from": from_id,
                "to": to_id,
                "type": map_ledger_edge_type(edge.type),
                "amount": edge.amount,
                "year": edge.year,
                "role": edge.role,
                "ledger_source_id": edge.id,
                "description": edge.attributes,
            }
            try:
                existing = self.store.find(RELATIONSHIPS, equals("ledger_source_id", edge.id), limit=1)
                if existing.docs:
                    self.store.update(RELATIONSHIPS, doc_id(existing.docs[0]), data)
                else:
                    self.store.create(RELATIONSHIPS, data)
                stats.edges_synced += 1
            except Exception as exc:  # noqa: BLE001
                stats.failures += 1
                logger.warning(f"Failed to sync ledger edge {edge.id}: {exc}")
