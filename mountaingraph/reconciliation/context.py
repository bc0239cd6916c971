"""Per-document resolution state shared by the entity, relationship and event phases."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Mapping, Optional, Set, Tuple

from mountaingraph.storage.base import doc_id


@dataclass
class ResolutionContext:
    """Name/EIN -> entity id maps for exactly one reconciliation pass.

    Seeded from the bulk lookup and extended as entities are created, so later
    phases see entities minted earlier in the same pass without another round-trip.
    """

    source_key: str
    name_to_id: Dict[str, str] = field(default_factory=dict)
    ein_to_id: Dict[str, str] = field(default_factory=dict)
    stored_eins: Dict[str, Optional[str]] = field(default_factory=dict)
    relationship_keys: Set[Tuple[str, str, str]] = field(default_factory=set)
    event_ids: Dict[Tuple[int, str], str] = field(default_factory=dict)
    mountain_ids: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_existing(
        cls, source_key: str, docs: Iterable[Mapping[str, Any]]
    ) -> "ResolutionContext":
        ctx = cls(source_key=source_key)
        for doc in docs:
            entity_id = doc_id(doc)
            if not entity_id:
                continue
            name = str(doc.get("name") or "").strip()
            ein = doc.get("ein") or None
            if name:
                ctx.name_to_id.setdefault(name, entity_id)
            if ein:
                ctx.ein_to_id.setdefault(str(ein), entity_id)
            ctx.stored_eins[entity_id] = str(ein) if ein else None
        return ctx

    def resolve_entity(self, name: str, ein: Optional[str] = None) -> Optional[str]:
        """EIN match first, then exact name match."""
        if ein and ein in self.ein_to_id:
            return self.ein_to_id[ein]
        return self.name_to_id.get(name)

    def entity_id(self, name: str) -> Optional[str]:
        return self.name_to_id.get(name)

    def register(self, name: str, entity_id: str, ein: Optional[str] = None) -> None:
        self.name_to_id[name] = entity_id
        if ein:
            self.ein_to_id[ein] = entity_id
            self.stored_eins[entity_id] = ein
        else:
            self.stored_eins.setdefault(entity_id, None)

    def lacks_ein(self, entity_id: str) -> bool:
        return not self.stored_eins.get(entity_id)

    def mountain_id(self, label: str) -> Optional[str]:
        return self.mountain_ids.get(label.casefold())
