"""Graph store interface shared by every backend.

Stores are document collections addressed by name. Queries use Payload-style
``where`` clauses::

    {"name": {"equals": "Acme Fund"}}
    {"or": [{"name": {"in": ["A", "B"]}}, {"ein": {"in": ["123456789"]}}]}
    {"and": [{"from": {"equals": "e1"}}, {"type": {"equals": "MENTIONS"}}]}

Several fields in one mapping are combined with AND.
"""

from __future__ import annotations

from typing import Any, Dict, Iterator, List, Mapping, Optional, Protocol, Tuple

from pydantic import BaseModel, Field

ENTITIES = "entities"
RELATIONSHIPS = "relationships"
TIMELINE_EVENTS = "timeline-events"
MOUNTAINS = "mountains"

SUPPORTED_OPERATORS = ("equals", "in")


class GraphStoreError(RuntimeError):
    """Raised when a store backend rejects or cannot perform an operation."""


class FindResult(BaseModel):
    """Documents returned by :meth:`GraphStore.find`."""

    docs: List[Dict[str, Any]] = Field(default_factory=list)
    total_docs: int = 0


class GraphStore(Protocol):
    def find(
        self, collection: str, where: Optional[Mapping[str, Any]] = None, limit: int = 10
    ) -> FindResult: ...

    def create(self, collection: str, data: Mapping[str, Any]) -> Dict[str, Any]: ...

    def update(self, collection: str, id: str, data: Mapping[str, Any]) -> Dict[str, Any]: ...


def equals(field: str, value: Any) -> Dict[str, Any]:
    return {field: {"equals": value}}


def one_of(field: str, values: List[Any]) -> Dict[str, Any]:
    return {field: {"in": list(values)}}


def iter_conditions(where: Mapping[str, Any]) -> Iterator[Tuple[str, Any]]:
    """Yield ``(key, value)`` pairs of a where mapping, validating the shape."""
    for key, value in where.items():
        if key in ("and", "or"):
            if not isinstance(value, list):
                raise GraphStoreError(f"'{key}' expects a list of clauses")
            yield key, value
            continue
        if not isinstance(value, Mapping) or not value:
            raise GraphStoreError(f"Condition for field '{key}' must be an operator mapping")
        for operator in value:
            if operator not in SUPPORTED_OPERATORS:
                raise GraphStoreError(f"Unsupported where operator: {operator}")
        yield key, value


def matches(doc: Mapping[str, Any], where: Optional[Mapping[str, Any]]) -> bool:
    """Evaluate a where clause against a plain document."""
    if not where:
        return True
    for key, condition in iter_conditions(where):
        if key == "and":
            if not all(matches(doc, clause) for clause in condition):
                return False
        elif key == "or":
            if not any(matches(doc, clause) for clause in condition):
                return False
        else:
            value = _reference_id(doc.get(key))
            if "equals" in condition and value != condition["equals"]:
                return False
            if "in" in condition and value not in list(condition["in"] or []):
                return False
    return True


def _reference_id(value: Any) -> Any:
    # Populated relationship fields come back as documents; compare by id.
    if isinstance(value, Mapping) and "id" in value:
        return value["id"]
    return value


def doc_id(doc: Optional[Mapping[str, Any]]) -> Optional[str]:
    """Return the id of a store document, or ``None`` for a missing/invalid result."""
    if not doc:
        return None
    value = doc.get("id")
    return str(value) if value not in (None, "") else None
