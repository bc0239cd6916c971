"""In-process graph store used for dry runs and tests."""

from __future__ import annotations

import copy
import threading
import uuid
from collections import defaultdict
from typing import Any, Dict, List, Mapping, Optional

from loguru import logger

from mountaingraph.storage.base import FindResult, GraphStoreError, matches


class InMemoryGraphStore:
    """Dictionary-backed store honouring the :class:`GraphStore` contract.

    Documents are copied on the way in and out so callers never share state with
    the store.
    """

    def __init__(self, seed: Optional[Mapping[str, List[Mapping[str, Any]]]] = None) -> None:
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = defaultdict(dict)
        self._lock = threading.Lock()
        self.calls: List[tuple] = []
        for collection, docs in (seed or {}).items():
            for doc in docs:
                self.create(collection, doc)
        self.calls.clear()

    def find(
        self, collection: str, where: Optional[Mapping[str, Any]] = None, limit: int = 10
    ) -> FindResult:
        with self._lock:
            self.calls.append(("find", collection, copy.deepcopy(where)))
            hits = [doc for doc in self._collections[collection].values() if matches(doc, where)]
            return FindResult(docs=copy.deepcopy(hits[:limit]), total_docs=len(hits))

    def create(self, collection: str, data: Mapping[str, Any]) -> Dict[str, Any]:
        with self._lock:
            doc = copy.deepcopy(dict(data))
            doc_id = str(doc.get("id") or uuid.uuid4())
            if doc_id in self._collections[collection]:
                raise GraphStoreError(f"Duplicate id {doc_id!r} in collection {collection!r}")
            doc["id"] = doc_id
            self._collections[collection][doc_id] = doc
            self.calls.append(("create", collection, doc_id))
            logger.debug(f"Created {collection}/{doc_id}")
            return copy.deepcopy(doc)

    def update(self, collection: str, id: str, data: Mapping[str, Any]) -> Dict[str, Any]:
        with self._lock:
            existing = self._collections[collection].get(id)
            if existing is None:
                raise GraphStoreError(f"No document {id!r} in collection {collection!r}")
            existing.update(copy.deepcopy(dict(data)))
            existing["id"] = id
            self.calls.append(("update", collection, id))
            return copy.deepcopy(existing)

    def all(self, collection: str) -> List[Dict[str, Any]]:
        """Return every document in ``collection`` (test/inspection helper)."""
        with self._lock:
            return copy.deepcopy(list(self._collections[collection].values()))

    def count(self, collection: str) -> int:
        with self._lock:
            return len(self._collections[collection])
