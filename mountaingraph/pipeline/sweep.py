"""Manual, cursor-paged sweep over a document bucket."""

from __future__ import annotations

from typing import Iterable, Iterator, List, Optional

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from mountaingraph.ingestion.bucket import DocumentBucket
from mountaingraph.pipeline.extraction_pipeline import ExtractionStats, GraphExtractionPipeline
from mountaingraph.utils.config import SweepConfig

DOCUMENT_EXTENSIONS = (".md", ".txt")


def is_document(key: str, extensions: Iterable[str] = DOCUMENT_EXTENSIONS) -> bool:
    """True when ``key`` ends with one of ``extensions`` (case-insensitive)."""
    lowered = key.lower()
    return any(lowered.endswith(ext.lower()) for ext in extensions)


def enumerate_documents(
    bucket: DocumentBucket,
    prefix: str = "",
    *,
    page_size: int = 1000,
    extensions: Iterable[str] = DOCUMENT_EXTENSIONS,
) -> Iterator[str]:
    """Yield every document key under ``prefix``, following listing cursors to the end."""
    extensions = tuple(extensions)
    cursor: Optional[str] = None
    while True:
        listing = bucket.list(prefix=prefix, cursor=cursor, limit=page_size)
        for obj in listing.objects:
            if is_document(obj.key, extensions):
                yield obj.key
        if not listing.truncated or not listing.cursor:
            return
        cursor = listing.cursor


class SweepResult(BaseModel):
    """Outcome of one sweep page."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    success: bool = True
    stats: ExtractionStats = Field(default_factory=ExtractionStats)
    next_cursor: Optional[str] = None
    failed: List[str] = Field(default_factory=list)


class BatchOrchestrator:
    """Process one page of a bucket listing per call.

    The orchestrator keeps no state between calls; callers resume by passing back
    ``next_cursor`` until it is ``None``.
    """

    def __init__(
        self, pipeline: GraphExtractionPipeline, config: Optional[SweepConfig] = None
    ) -> None:
        self.pipeline = pipeline
        self.config = config or SweepConfig()

    def sweep(
        self,
        limit: Optional[int] = None,
        cursor: Optional[str] = None,
        bucket_name: str = "RESEARCH_DOCS",
        prefix: str = "uploads/",
    ) -> SweepResult:
        """List at most ``limit`` objects after ``cursor`` and process the documents.

        Raises:
            ValueError: If ``bucket_name`` is not configured.
        """
        limit = limit or self.config.default_limit
        bucket = self.pipeline.buckets.get(bucket_name)
        if bucket is None:
            raise ValueError(f"Unknown bucket: {bucket_name}")

        listing = bucket.list(prefix=prefix, cursor=cursor, limit=limit)
        keys = [obj.key for obj in listing.objects if is_document(obj.key, self.config.extensions)]
        logger.info(
            f"Sweeping {len(keys)} of {len(listing.objects)} listed objects "
            f"in {bucket_name}/{prefix} (cursor={cursor})"
        )

        result = SweepResult(next_cursor=listing.cursor if listing.truncated else None)
        for key in keys:
            file_result = self.pipeline.process_file(bucket_name, key)
            if file_result.success and file_result.stats:
                result.stats.add(file_result.stats)
            else:
                result.failed.append(key)

        logger.info(
            f"Sweep page complete: {result.stats.files}/{len(keys)} files, "
            f"{len(result.failed)} failed, next_cursor={result.next_cursor}"
        )
        return result
