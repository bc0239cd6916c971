"""Neo4j-backed graph store.

Every collection is stored as nodes with one label. Relationship documents are
also mirrored as ``RELATED_TO`` edges between the entity nodes so the graph can be
traversed directly. Nested values (aliases, rich text, attributes) are stored as
JSON strings because Neo4j properties cannot hold maps.
"""

import json
import re
import uuid
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple

from loguru import logger
from neo4j import GraphDatabase, Session
from neo4j.exceptions import Neo4jError

from mountaingraph.storage.base import (
    ENTITIES,
    MOUNTAINS,
    RELATIONSHIPS,
    TIMELINE_EVENTS,
    FindResult,
    GraphStoreError,
    iter_conditions,
)
from mountaingraph.utils.config import StoreConfig

COLLECTION_LABELS = {
    ENTITIES: "Entity",
    RELATIONSHIPS: "Relationship",
    TIMELINE_EVENTS: "TimelineEvent",
    MOUNTAINS: "Mountain",
}

_JSON_FIELDS_KEY = "_json_fields"
_FIELD_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def _field(name: str) -> str:
    if not _FIELD_NAME.match(name):
        raise GraphStoreError(f"Invalid field name for Neo4j query: {name!r}")
    return f"n.`{name}`"


def where_to_cypher(
    where: Optional[Mapping[str, Any]], params: Optional[Dict[str, Any]] = None
) -> Tuple[str, Dict[str, Any]]:
    """Translate a where clause into a Cypher predicate over node ``n``.

    Returns the predicate (``"true"`` for an empty clause) and its parameters.
    """
    params = {} if params is None else params
    if not where:
        return "true", params

    parts: List[str] = []
    for key, condition in iter_conditions(where):
        if key in ("and", "or"):
            if not condition:
                parts.append("true" if key == "and" else "false")
                continue
            joined = f" {key.upper()} ".join(
                f"({where_to_cypher(clause, params)[0]})" for clause in condition
            )
            parts.append(f"({joined})")
            continue
        for operator, value in condition.items():
            name = f"p{len(params)}"
            if operator == "equals":
                params[name] = value
                parts.append(f"{_field(key)} = ${name}")
            else:
                params[name] = list(value or [])
                parts.append(f"{_field(key)} IN ${name}")
    return " AND ".join(parts), params


def encode_properties(data: Mapping[str, Any]) -> Dict[str, Any]:
    props: Dict[str, Any] = {}
    json_fields: List[str] = []
    for key, value in data.items():
        if isinstance(value, dict) or (
            isinstance(value, list) and any(isinstance(v, (dict, list)) for v in value)
        ):
            props[key] = json.dumps(value, sort_keys=True, default=str)
            json_fields.append(key)
        elif value is not None:
            props[key] = value
    if json_fields:
        props[_JSON_FIELDS_KEY] = sorted(json_fields)
    return props


def decode_properties(props: Mapping[str, Any]) -> Dict[str, Any]:
    doc = dict(props)
    for key in doc.pop(_JSON_FIELDS_KEY, []) or []:
        if isinstance(doc.get(key), str):
            doc[key] = json.loads(doc[key])
    return doc


class Neo4jGraphStore:
    """Store documents as labelled Neo4j nodes.

    Attributes:
        uri: Neo4j connection URI
        database: Neo4j database name
        driver: Neo4j driver instance
    """

    def __init__(self, config: StoreConfig, driver: Any = None):
        self.uri = config.neo4j_uri
        self.user = config.neo4j_user
        self.password = config.neo4j_password
        self.database = config.neo4j_database
        self.driver = driver
        self._connected = driver is not None

    def connect(self) -> None:
        """Establish connection to Neo4j database.

        Raises:
            Neo4jError: If connection fails
        """
        try:
            self.driver = GraphDatabase.driver(
                self.uri, auth=(self.user, self.password), max_connection_pool_size=50
            )
            self.driver.verify_connectivity()
            self._connected = True
            logger.info(f"Connected to Neo4j at {self.uri}")
        except Neo4jError as e:
            logger.error(f"Failed to connect to Neo4j: {e}")
            raise

    def close(self) -> None:
        """Close connection to Neo4j database."""
        if self.driver:
            self.driver.close()
            self._connected = False
            logger.info("Closed Neo4j connection")

    @contextmanager
    def session(self) -> Iterator[Session]:
        if not self._connected or not self.driver:
            raise RuntimeError("Not connected to Neo4j. Call connect() first.")

        session = self.driver.session(database=self.database)
        try:
            yield session
        finally:
            session.close()

    def create_schema(self) -> None:
        """Create id uniqueness constraints and lookup indexes."""
        with self.session() as session:
            for label in COLLECTION_LABELS.values():
                session.run(
                    f"CREATE CONSTRAINT {label.lower()}_id_unique IF NOT EXISTS "
                    f"FOR (n:{label}) REQUIRE n.id IS UNIQUE"
                )
            for label, field in (
                ("Entity", "name"),
                ("Entity", "ein"),
                ("Entity", "ledger_source_id"),
                ("Relationship", "ledger_source_id"),
                ("TimelineEvent", "title"),
                ("Mountain", "title"),
            ):
                session.run(
                    f"CREATE INDEX {label.lower()}_{field}_idx IF NOT EXISTS "
                    f"FOR (n:{label}) ON (n.{field})"
                )
        logger.info("Neo4j schema ensured")

    def find(
        self, collection: str, where: Optional[Mapping[str, Any]] = None, limit: int = 10
    ) -> FindResult:
        label = self._label(collection)
        predicate, params = where_to_cypher(where)
        params["limit"] = limit
        query = f"MATCH (n:{label}) WHERE {predicate} RETURN n LIMIT $limit"
        try:
            with self.session() as session:
                docs = [decode_properties(record["n"]) for record in session.run(query, params)]
        except Neo4jError as exc:
            raise GraphStoreError(f"Neo4j find on {collection} failed: {exc}") from exc
        return FindResult(docs=docs, total_docs=len(docs))

    def create(self, collection: str, data: Mapping[str, Any]) -> Dict[str, Any]:
        label = self._label(collection)
        props = encode_properties(data)
        props["id"] = str(props.get("id") or uuid.uuid4())
        try:
            with self.session() as session:
                record = session.run(
                    f"CREATE (n:{label}) SET n = $props RETURN n", {"props": props}
                ).single()
                if collection == RELATIONSHIPS:
                    self._mirror_edge(session, props)
        except Neo4jError as exc:
            raise GraphStoreError(f"Neo4j create on {collection} failed: {exc}") from exc
        return decode_properties(record["n"]) if record else {}

    def update(self, collection: str, id: str, data: Mapping[str, Any]) -> Dict[str, Any]:
        label = self._label(collection)
        props = encode_properties({k: v for k, v in data.items() if k != "id"})
        try:
            with self.session() as session:
                record = session.run(
                    f"MATCH (n:{label} {{id: $id}}) SET n += $props RETURN n",
                    {"id": id, "props": props},
                ).single()
                if record is None:
                    raise GraphStoreError(f"No document {id!r} in collection {collection!r}")
                if collection == RELATIONSHIPS:
                    session.run(
                        "MATCH ()-[r:RELATED_TO {relationship_id: $id}]->() DELETE r", {"id": id}
                    )
                    self._mirror_edge(session, dict(record["n"]))
        except Neo4jError as exc:
            raise GraphStoreError(f"Neo4j update on {collection} failed: {exc}") from exc
        return decode_properties(record["n"])

    def _mirror_edge(self, session: Session, props: Mapping[str, Any]) -> None:
        session.run(
            "MATCH (a:Entity {id: $from_id}), (b:Entity {id: $to_id}) "
            "MERGE (a)-[r:RELATED_TO {relationship_id: $id}]->(b) "
            "SET r.type = $type",
            {
                "from_id": props.get("from"),
                "to_id": props.get("to"),
                "id": props.get("id"),
                "type": props.get("type"),
            },
        )

    @staticmethod
    def _label(collection: str) -> str:
        try:
            return COLLECTION_LABELS[collection]
        except KeyError:
            raise GraphStoreError(f"Unknown collection: {collection}") from None
