"""Reconcile one document's extraction results against the graph store.

A pass runs strictly in phase order, one record at a time:

1. merge chunk results (:mod:`mountaingraph.reconciliation.merge`)
2. one bulk lookup of existing entities by name or EIN
3. entity sync (reuse / backfill EIN / create)
4. relationship sync (idempotent on ``(from, to, type)``)
5. event sync (extended variant; idempotent on ``(year, title)``)

Entities created in step 3 are registered in the :class:`ResolutionContext`
before step 4 starts. Individual store failures are logged and skipped; only a
failing bulk lookup aborts the pass.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional

from loguru import logger
from pydantic import BaseModel

from mountaingraph.extraction.models import ChunkExtraction
from mountaingraph.extraction.normalize import normalize_entity_type, normalize_relationship_type
from mountaingraph.reconciliation.context import ResolutionContext
from mountaingraph.reconciliation.merge import DocumentMerge, MergedEntity, MergedEvent, merge_extractions
from mountaingraph.storage.base import (
    ENTITIES,
    MOUNTAINS,
    RELATIONSHIPS,
    TIMELINE_EVENTS,
    GraphStore,
    GraphStoreError,
    doc_id,
    equals,
    one_of,
)
from mountaingraph.utils.config import ExtractionConfig


class ReconcileCounts(BaseModel):
    """Outcome of one reconciliation pass."""

    entities_created: int = 0
    entities_updated: int = 0
    relationships_created: int = 0
    relationships_skipped: int = 0
    events_created: int = 0
    events_updated: int = 0
    failures: int = 0


def rich_text(text: str) -> Dict[str, Any]:
    """Wrap plain text in a minimal Lexical document (one paragraph per block)."""
    blocks = [block.strip() for block in (text or "").split("\n\n") if block.strip()]
    children = [
        {
            "type": "paragraph",
            "children": [
                {
                    "type": "text",
                    "text": block,
                    "detail": 0,
                    "format": 0,
                    "mode": "normal",
                    "style": "",
                    "version": 1,
                }
            ],
            "direction": "ltr",
            "format": "",
            "indent": 0,
            "version": 1,
            "textFormat": 0,
        }
        for block in blocks
    ]
    return {
        "root": {
            "type": "root",
            "children": children,
            "direction": "ltr",
            "format": "",
            "indent": 0,
            "version": 1,
        }
    }


class GraphReconciler:
    """Merge, resolve and persist extraction results for one document at a time.

    Example:
        >>> reconciler = GraphReconciler(store, config.extraction)
        >>> counts = reconciler.reconcile(chunk_results, "uploads/notes.md")
        >>> counts.entities_created
    """

    def __init__(self, store: GraphStore, config: Optional[ExtractionConfig] = None) -> None:
        self.store = store
        self.config = config or ExtractionConfig()

    def reconcile(
        self,
        extractions: Iterable[ChunkExtraction],
        source_key: str,
        *,
        include_events: bool = False,
    ) -> ReconcileCounts:
        """Run a full reconciliation pass.

        Raises:
            GraphStoreError: (or any store exception) when the bulk entity lookup
                fails.
        """
        merged = merge_extractions(extractions)
        ctx = self.resolve(merged, source_key)
        counts = ReconcileCounts()

        self._sync_entities(merged, ctx, counts)
        self._sync_relationships(merged, ctx, counts)
        if include_events:
            self._sync_events(merged, ctx, counts)

        logger.info(
            f"Reconciled {source_key}: +{counts.entities_created} entities "
            f"({counts.entities_updated} backfilled), +{counts.relationships_created} relationships, "
            f"+{counts.events_created}/~{counts.events_updated} events, {counts.failures} failures"
        )
        return counts

    # -----------------------
    # Resolution
    # -----------------------
    def resolve(self, merged: DocumentMerge, source_key: str) -> ResolutionContext:
        names = merged.referenced_names()
        eins = merged.referenced_eins()
        if not names and not eins:
            return ResolutionContext(source_key=source_key)

        clauses = [one_of("name", names)]
        if eins:
            clauses.append(one_of("ein", eins))
        limit = max(self.config.resolution_lookup_limit, len(names) + len(eins))
        existing = self.store.find(ENTITIES, {"or": clauses}, limit=limit)

        ctx = ResolutionContext.from_existing(source_key, existing.docs)
        logger.debug(
            f"Resolved {len(ctx.name_to_id)} of {len(names)} names and "
            f"{len(ctx.ein_to_id)} of {len(eins)} EINs for {source_key}"
        )
        return ctx

    # -----------------------
    # Entities
    # -----------------------
    def _sync_entities(
        self, merged: DocumentMerge, ctx: ResolutionContext, counts: ReconcileCounts
    ) -> None:
        for name, entity in merged.entities.items():
            try:
                self._sync_entity(name, entity, ctx, counts)
            except Exception as exc:  # noqa: BLE001
                counts.failures += 1
                logger.warning(f"Error syncing entity {name!r} from {ctx.source_key}: {exc}")

        for alternate, canonical in merged.alternate_names.items():
            entity_id = ctx.entity_id(canonical)
            if entity_id:
                ctx.name_to_id[alternate] = entity_id

    def _sync_entity(
        self,
        name: str,
        entity: MergedEntity,
        ctx: ResolutionContext,
        counts: ReconcileCounts,
    ) -> None:
        existing_id = ctx.resolve_entity(name, entity.ein)
        if existing_id:
            ctx.register(name, existing_id)
            if entity.ein and ctx.lacks_ein(existing_id) and entity.ein not in ctx.ein_to_id:
                updated = self.store.update(ENTITIES, existing_id, {"ein": entity.ein})
                if doc_id(updated) is None:
                    raise GraphStoreError(f"EIN backfill for {existing_id} returned no document")
                ctx.register(name, existing_id, entity.ein)
                counts.entities_updated += 1
            return

        created = self.store.create(ENTITIES, self._entity_data(entity, ctx.source_key))
        entity_id = doc_id(created)
        if entity_id is None:
            raise GraphStoreError("Entity create returned no id")
        ctx.register(name, entity_id, entity.ein)
        counts.entities_created += 1

    def _entity_data(self, entity: MergedEntity, source_key: str) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "name": entity.name,
            "type": normalize_entity_type(entity.type, self.config.entity_types),
            "aliases": [{"name": alias.name, "type": alias.type} for alias in entity.aliases],
            "source_file": source_key,
        }
        if entity.ein:
            data["ein"] = entity.ein
        if entity.description:
            data["description"] = entity.description
        if entity.metadata:
            data["metadata"] = dict(entity.metadata)
        return data

    # -----------------------
    # Relationships
    # -----------------------
    def _sync_relationships(
        self, merged: DocumentMerge, ctx: ResolutionContext, counts: ReconcileCounts
    ) -> None:
        for rel in merged.relationships:
            from_id = ctx.entity_id(rel.source)
            to_id = ctx.entity_id(rel.target)
            if not from_id or not to_id:
                counts.relationships_skipped += 1
                continue

            rel_type = normalize_relationship_type(rel.type, self.config.relationship_types)
            triple = (from_id, to_id, rel_type)
            if triple in ctx.relationship_keys:
                continue

            try:
                existing = self.store.find(
                    RELATIONSHIPS,
                    {"and": [equals("from", from_id), equals("to", to_id), equals("type", rel_type)]},
                    limit=1,
                )
                if existing.docs:
                    ctx.relationship_keys.add(triple)
                    continue

                data: Dict[str, Any] = {
                    "from": from_id,
                    "to": to_id,
                    "type": rel_type,
                    "source_file": ctx.source_key,
                }
                if rel.description:
                    data["description"] = rel.description
                created = self.store.create(RELATIONSHIPS, data)
                if doc_id(created) is None:
                    raise GraphStoreError("Relationship create returned no id")
                ctx.relationship_keys.add(triple)
                counts.relationships_created += 1
            except Exception as exc:  # noqa: BLE001
                counts.failures += 1
                logger.warning(
                    f"Error syncing relationship {rel.source!r} -> {rel.target!r} "
                    f"from {ctx.source_key}: {exc}"
                )

    # -----------------------
    # Timeline events
    # -----------------------
    def _resolve_mountains(self, ctx: ResolutionContext) -> None:
        labels = list(self.config.mountains)
        try:
            found = self.store.find(MOUNTAINS, one_of("title", labels), limit=len(labels) or 1)
        except Exception as exc:  # noqa: BLE001
            logger.warning(f"Could not resolve mountains for {ctx.source_key}: {exc}")
            return
        for doc in found.docs:
            mountain_id = doc_id(doc)
            title = str(doc.get("title") or "")
            if mountain_id and title:
                ctx.mountain_ids[title.casefold()] = mountain_id

    def _sync_events(
        self, merged: DocumentMerge, ctx: ResolutionContext, counts: ReconcileCounts
    ) -> None:
        if not merged.events:
            return
        self._resolve_mountains(ctx)
        fallback_id = ctx.mountain_id(self.config.fallback_mountain)

        for item in merged.events:
            event = item.event
            if not event.year or not event.title:
                continue
            try:
                self._sync_event(item, ctx, counts, fallback_id)
            except Exception as exc:  # noqa: BLE001
                counts.failures += 1
                logger.warning(
                    f"Error syncing event {event.year} {event.title!r} from {ctx.source_key}: {exc}"
                )

    def _sync_event(
        self,
        item: MergedEvent,
        ctx: ResolutionContext,
        counts: ReconcileCounts,
        fallback_id: Optional[str],
    ) -> None:
        event = item.event

        mountain_ids: List[str] = []
        for label in event.mountains:
            mountain_id = ctx.mountain_id(label)
            if mountain_id and mountain_id not in mountain_ids:
                mountain_ids.append(mountain_id)
        if not mountain_ids and fallback_id:
            mountain_ids.append(fallback_id)

        involved: List[Dict[str, str]] = []
        for name in event.entities:
            entity_id = ctx.entity_id(name)
            if entity_id and all(entry["entity"] != entity_id for entry in involved):
                involved.append(
                    {
                        "entity": entity_id,
                        "context": f"{name} is named in \"{event.title}\" ({event.year}), "
                        f"extracted from {ctx.source_key}",
                    }
                )

        data: Dict[str, Any] = {
            "year": event.year,
            "title": event.title,
            "body": rich_text(event.description or event.title),
            "entities": involved,
            "mountains": mountain_ids,
            "is_convergence": event.convergence or len(mountain_ids) > 1,
            "original_text": event.quote or item.chunk_text,
            "source_file": ctx.source_key,
        }
        if event.month:
            data["month"] = event.month
        if event.day:
            data["day"] = event.day

        existing_id = ctx.event_ids.get(item.key)
        if existing_id is None:
            found = self.store.find(
                TIMELINE_EVENTS,
                {"and": [equals("year", event.year), equals("title", event.title)]},
                limit=1,
            )
            existing_id = doc_id(found.docs[0]) if found.docs else None

        if existing_id:
            updated = self.store.update(TIMELINE_EVENTS, existing_id, data)
            if doc_id(updated) is None:
                raise GraphStoreError(f"Event update for {existing_id} returned no document")
            ctx.event_ids[item.key] = existing_id
            counts.events_updated += 1
            return

        created = self.store.create(TIMELINE_EVENTS, data)
        event_id = doc_id(created)
        if event_id is None:
            raise GraphStoreError("Event create returned no id")
        ctx.event_ids[item.key] = event_id
        counts.events_created += 1
