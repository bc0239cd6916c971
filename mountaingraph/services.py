"""Wire configured components together for the CLI and the HTTP app."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Dict, Optional

from loguru import logger

from mountaingraph.extraction.llm_extractor import LLMExtractor
from mountaingraph.ingestion.bucket import DocumentBucket, build_buckets
from mountaingraph.ingestion.chunker import MarkdownChunker
from mountaingraph.pipeline.extraction_pipeline import GraphExtractionPipeline
from mountaingraph.pipeline.ledger_sync import LedgerSource, LedgerSync, SqlLedgerSource
from mountaingraph.pipeline.sweep import BatchOrchestrator
from mountaingraph.pipeline.workflow import (
    DispatchSummary,
    ExtractionWorkflow,
    InMemoryQueue,
    InProcessWorkflowHost,
    QueueConsumer,
)
from mountaingraph.reconciliation.reconciler import GraphReconciler
from mountaingraph.storage import GraphStore, build_store
from mountaingraph.utils.config import Config


@dataclass
class Services:
    """Everything an entry point needs, built once from a :class:`Config`."""

    config: Config
    buckets: Dict[str, DocumentBucket]
    store: GraphStore
    pipeline: GraphExtractionPipeline
    orchestrator: BatchOrchestrator
    workflow: ExtractionWorkflow
    host: InProcessWorkflowHost
    queue: InMemoryQueue = field(default_factory=InMemoryQueue)
    ledger_factory: Optional[Callable[[], LedgerSource]] = None

    @classmethod
    def from_config(
        cls,
        config: Config,
        *,
        store: Optional[GraphStore] = None,
        extractor: Optional[LLMExtractor] = None,
        buckets: Optional[Dict[str, DocumentBucket]] = None,
        ledger_factory: Optional[Callable[[], LedgerSource]] = None,
        sleep_fn: Callable[[float], None] | None = None,
    ) -> "Services":
        extraction = config.extraction
        store = store if store is not None else build_store(config.store)
        buckets = buckets if buckets is not None else build_buckets(config.buckets.roots)
        extractor = extractor or LLMExtractor(
            config.llm_credentials(),
            extraction.prompt_template,
            entity_types=extraction.entity_types,
            relationship_types=extraction.relationship_types,
            mountains=extraction.mountains,
            sleep_fn=sleep_fn,
        )

        pipeline = GraphExtractionPipeline(
            buckets,
            extractor,
            GraphReconciler(store, extraction),
            MarkdownChunker(config.chunking),
            extraction,
            sleep_fn=sleep_fn,
        )
        workflow = ExtractionWorkflow.from_config(pipeline, config.workflow, sleep_fn=sleep_fn)
        host = InProcessWorkflowHost(
            workflow.run, dedup_window_seconds=config.workflow.dedup_window_seconds
        )
        if ledger_factory is None:
            database_url = config.ledger.database_url

            def ledger_factory() -> LedgerSource:
                return SqlLedgerSource.from_url(database_url)

        logger.info(
            "Services ready",
            store=config.store.backend,
            variant=extraction.variant,
            buckets=sorted(buckets),
        )
        return cls(
            config=config,
            buckets=buckets,
            store=store,
            pipeline=pipeline,
            orchestrator=BatchOrchestrator(pipeline, config.sweep),
            workflow=workflow,
            host=host,
            ledger_factory=ledger_factory,
        )

    def consumer(self) -> QueueConsumer:
        return QueueConsumer(self.host, window_seconds=self.config.workflow.dedup_window_seconds)

    def drain_queue(self) -> DispatchSummary:
        """Dispatch every queued message and run the resulting workflows."""
        summary = self.consumer().drain(self.queue)
        self.host.run_pending()
        return summary

    def ledger_sync(self) -> LedgerSync:
        if self.ledger_factory is None:
            raise RuntimeError("No ledger source configured")
        return LedgerSync(
            self.store,
            self.ledger_factory(),
            self.config.ledger,
            entity_types=self.config.extraction.entity_types,
        )
