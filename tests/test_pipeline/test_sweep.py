from __future__ import annotations

from pathlib import Path
from typing import List

import pytest

from mountaingraph.extraction.models import ChunkExtraction, ExtractedEntity
from mountaingraph.ingestion.bucket import FilesystemBucket
from mountaingraph.pipeline.extraction_pipeline import (
    ExtractionResult,
    ExtractionStats,
    GraphExtractionPipeline,
)
from mountaingraph.pipeline.sweep import BatchOrchestrator, enumerate_documents, is_document
from mountaingraph.reconciliation.reconciler import GraphReconciler
from mountaingraph.storage import ENTITIES, InMemoryGraphStore
from mountaingraph.utils.config import SweepConfig


def _bucket(tmp_path: Path, *keys: str) -> FilesystemBucket:
    for key in keys:
        path = tmp_path / key
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(f"# {key}\n" + "Report body text for the sweep. " * 5, encoding="utf-8")
    return FilesystemBucket(tmp_path)


class _RecordingPipeline:
    """Stands in for GraphExtractionPipeline; fails keys containing 'bad'."""

    def __init__(self, bucket: FilesystemBucket) -> None:
        self.buckets = {"RESEARCH_DOCS": bucket}
        self.processed: List[str] = []

    def process_file(self, bucket_name: str, key: str) -> ExtractionResult:
        self.processed.append(key)
        if "bad" in key:
            return ExtractionResult(key=key, success=False, error="boom")
        return ExtractionResult(
            key=key, success=True, stats=ExtractionStats(files=1, chunks=2, entities_created=1)
        )


def test_is_document_is_case_insensitive() -> None:
    assert is_document("uploads/a.MD")
    assert is_document("uploads/b.txt")
    assert not is_document("uploads/c.pdf")
    assert not is_document("uploads/md")


def test_sweep_pages_through_twelve_documents(tmp_path: Path) -> None:
    keys = [f"uploads/doc{i:02d}.md" for i in range(12)]
    pipeline = _RecordingPipeline(_bucket(tmp_path, *keys))
    orchestrator = BatchOrchestrator(pipeline, SweepConfig())

    first = orchestrator.sweep(limit=5)
    assert first.stats.files == 5
    assert first.next_cursor is not None

    second = orchestrator.sweep(limit=5, cursor=first.next_cursor)
    assert second.stats.files == 5
    assert second.next_cursor is not None

    third = orchestrator.sweep(limit=5, cursor=second.next_cursor)
    assert third.stats.files == 2
    assert third.next_cursor is None

    assert pipeline.processed == keys


def test_sweep_uses_default_limit(tmp_path: Path) -> None:
    keys = [f"uploads/doc{i:02d}.md" for i in range(7)]
    pipeline = _RecordingPipeline(_bucket(tmp_path, *keys))

    result = BatchOrchestrator(pipeline, SweepConfig(default_limit=3)).sweep()

    assert pipeline.processed == keys[:3]
    assert result.next_cursor == "uploads/doc02.md"


def test_sweep_skips_non_documents_and_reports_failures(tmp_path: Path) -> None:
    pipeline = _RecordingPipeline(
        _bucket(tmp_path, "uploads/a.MD", "uploads/b.pdf", "uploads/bad.txt", "uploads/c.TXT")
    )

    result = BatchOrchestrator(pipeline).sweep(limit=10)

    assert pipeline.processed == ["uploads/a.MD", "uploads/bad.txt", "uploads/c.TXT"]
    assert result.failed == ["uploads/bad.txt"]
    assert result.stats.files == 2
    assert result.stats.chunks == 4
    assert result.success is True
    assert result.next_cursor is None


def test_sweep_respects_prefix(tmp_path: Path) -> None:
    pipeline = _RecordingPipeline(_bucket(tmp_path, "uploads/a.md", "archive/b.md"))

    BatchOrchestrator(pipeline).sweep(limit=10, prefix="archive/")

    assert pipeline.processed == ["archive/b.md"]


def test_sweep_unknown_bucket_raises(tmp_path: Path) -> None:
    pipeline = _RecordingPipeline(_bucket(tmp_path, "uploads/a.md"))

    with pytest.raises(ValueError, match="Unknown bucket"):
        BatchOrchestrator(pipeline).sweep(bucket_name="MISSING")


def test_enumerate_documents_follows_cursors(tmp_path: Path) -> None:
    keys = [f"uploads/doc{i:02d}.md" for i in range(5)]
    bucket = _bucket(tmp_path, *keys, "uploads/image.png")

    assert list(enumerate_documents(bucket, "uploads/", page_size=2)) == keys


class _NamingExtractor:
    def extract(self, chunk_text: str, *, include_events: bool = False) -> ChunkExtraction:
        result = ChunkExtraction.empty(chunk_text)
        title = chunk_text.strip().split("\n")[0].lstrip("# ")
        result.entities = [ExtractedEntity(name=title, type="Organization")]
        return result


def test_sweep_with_real_pipeline_aggregates_stats(tmp_path: Path) -> None:
    bucket = _bucket(tmp_path, "uploads/one.md", "uploads/two.md")
    store = InMemoryGraphStore()
    pipeline = GraphExtractionPipeline(
        {"RESEARCH_DOCS": bucket}, _NamingExtractor(), GraphReconciler(store)
    )

    result = BatchOrchestrator(pipeline).sweep(limit=5)

    assert result.stats.files == 2
    assert result.stats.chunks == 2
    assert result.stats.entities_created == 2
    assert result.model_dump(by_alias=True)["nextCursor"] is None
    assert sorted(doc["name"] for doc in store.all(ENTITIES)) == ["uploads/one.md", "uploads/two.md"]
