"""Per-document graph extraction pipeline.

This module runs the complete workflow for one bucket object:
1. Fetch the object text from its bucket
2. Chunk it on markdown headings / fixed windows
3. Extract entities, relationships (and events in the extended variant) per chunk
4. Reconcile the merged results into the graph store
"""

from __future__ import annotations

import time
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Dict, List, Mapping, Optional

from loguru import logger
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from mountaingraph.extraction.llm_extractor import LLMExtractor
from mountaingraph.extraction.models import ChunkExtraction
from mountaingraph.ingestion.bucket import DocumentBucket
from mountaingraph.ingestion.chunker import MarkdownChunker
from mountaingraph.reconciliation.reconciler import GraphReconciler, ReconcileCounts
from mountaingraph.utils.config import ExtractionConfig


class ExtractionStats(BaseModel):
    """Running totals for one or more processed documents."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    files: int = 0
    chunks: int = 0
    entities_created: int = 0
    relationships_created: int = 0
    events_created: int = 0
    events_updated: int = 0

    @classmethod
    def from_counts(cls, counts: ReconcileCounts, *, chunks: int) -> "ExtractionStats":
        return cls(
            files=1,
            chunks=chunks,
            entities_created=counts.entities_created,
            relationships_created=counts.relationships_created,
            events_created=counts.events_created,
            events_updated=counts.events_updated,
        )

    def add(self, other: "ExtractionStats") -> None:
        self.files += other.files
        self.chunks += other.chunks
        self.entities_created += other.entities_created
        self.relationships_created += other.relationships_created
        self.events_created += other.events_created
        self.events_updated += other.events_updated


class ExtractionResult(BaseModel):
    """Result of processing one document."""

    key: str
    success: bool
    stats: Optional[ExtractionStats] = None
    processing_time: float = 0.0
    error: Optional[str] = None


class GraphExtractionPipeline:
    """Fetch, chunk, extract and reconcile one document at a time.

    Example:
        >>> pipeline = GraphExtractionPipeline(buckets, extractor, reconciler)
        >>> result = pipeline.process_file("RESEARCH_DOCS", "uploads/report.md")
        >>> result.success
    """

    def __init__(
        self,
        buckets: Mapping[str, DocumentBucket],
        extractor: LLMExtractor,
        reconciler: GraphReconciler,
        chunker: Optional[MarkdownChunker] = None,
        config: Optional[ExtractionConfig] = None,
        *,
        sleep_fn: Callable[[float], None] | None = None,
    ) -> None:
        self.buckets: Dict[str, DocumentBucket] = dict(buckets)
        self.extractor = extractor
        self.reconciler = reconciler
        self.chunker = chunker or MarkdownChunker()
        self.config = config or ExtractionConfig()
        self._sleep = sleep_fn or time.sleep

    def process_file(self, bucket_name: str, key: str) -> ExtractionResult:
        """Run the full pipeline for ``key``; never raises."""
        start_time = time.time()
        logger.info(f"Processing {bucket_name}/{key} ({self.config.variant} extraction)")

        try:
            bucket = self.buckets.get(bucket_name)
            if bucket is None:
                raise ValueError(f"Unknown bucket: {bucket_name}")
            obj = bucket.get(key)
            if obj is None:
                raise FileNotFoundError(f"Object not found: {bucket_name}/{key}")

            chunks = self.chunker.chunk_text(obj.text())
            if not chunks:
                logger.info(f"No chunks above the noise floor in {key}")

            extractions = self._extract_chunks(chunks, key)
            counts = self.reconciler.reconcile(
                extractions, key, include_events=self.config.include_events
            )
        except Exception as e:
            logger.error(f"Failed to process {bucket_name}/{key}: {e}")
            return ExtractionResult(
                key=key,
                success=False,
                processing_time=time.time() - start_time,
                error=str(e),
            )

        stats = ExtractionStats.from_counts(counts, chunks=len(chunks))
        processing_time = time.time() - start_time
        logger.success(
            f"Processed {key} in {processing_time:.2f}s: {stats.chunks} chunks, "
            f"{stats.entities_created} entities, {stats.relationships_created} relationships"
        )
        return ExtractionResult(
            key=key, success=True, stats=stats, processing_time=processing_time
        )

    # -----------------------
    # Chunk extraction
    # -----------------------
    def _extract_chunks(self, chunks: List[str], key: str) -> List[ChunkExtraction]:
        if not chunks:
            return []
        if self.config.include_events:
            return self._extract_sequential(chunks, key)

        workers = min(self.config.max_concurrent_chunks, len(chunks))
        with ThreadPoolExecutor(max_workers=workers) as executor:
            # map() keeps document order, which the merge relies on
            return list(
                executor.map(
                    lambda item: self._extract_one(item[1], key, item[0]),
                    enumerate(chunks),
                )
            )

    def _extract_sequential(self, chunks: List[str], key: str) -> List[ChunkExtraction]:
        results: List[ChunkExtraction] = []
        for index, chunk in enumerate(chunks):
            if index and self.config.inter_call_delay_seconds:
                self._sleep(self.config.inter_call_delay_seconds)
            results.append(self._extract_one(chunk, key, index))
        return results

    def _extract_one(self, chunk: str, key: str, index: int) -> ChunkExtraction:
        try:
            extraction = self.extractor.extract(chunk, include_events=self.config.include_events)
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "Chunk extraction failed",
                key=key,
                chunk_index=index,
                error=str(exc),
            )
            return ChunkExtraction.empty(chunk)
        if extraction.rejected:
            logger.debug(
                f"Dropped {len(extraction.rejected)} malformed records from chunk {index} of {key}"
            )
        return extraction
