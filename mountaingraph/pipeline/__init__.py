"""Pipeline orchestration modules."""

from mountaingraph.pipeline.extraction_pipeline import (
    ExtractionResult,
    ExtractionStats,
    GraphExtractionPipeline,
)
from mountaingraph.pipeline.ledger_sync import (
    LedgerEdge,
    LedgerEntity,
    LedgerSource,
    LedgerSync,
    LedgerSyncStats,
    SqlLedgerSource,
)
from mountaingraph.pipeline.sweep import BatchOrchestrator, SweepResult, enumerate_documents, is_document
from mountaingraph.pipeline.workflow import (
    DispatchSummary,
    DuplicateWorkflowError,
    ExtractionWorkflow,
    InMemoryQueue,
    InProcessWorkflowHost,
    QueueConsumer,
    QueueMessage,
    WorkflowFailedError,
    WorkflowHost,
    WorkflowInstance,
    WorkflowParams,
    WorkflowStatus,
    dispatch_prefix,
    enqueue_prefix,
    workflow_id,
)

__all__ = [
    "BatchOrchestrator",
    "DispatchSummary",
    "DuplicateWorkflowError",
    "ExtractionResult",
    "ExtractionStats",
    "ExtractionWorkflow",
    "GraphExtractionPipeline",
    "InMemoryQueue",
    "InProcessWorkflowHost",
    "LedgerEdge",
    "LedgerEntity",
    "LedgerSource",
    "LedgerSync",
    "LedgerSyncStats",
    "QueueConsumer",
    "QueueMessage",
    "SqlLedgerSource",
    "SweepResult",
    "WorkflowFailedError",
    "WorkflowHost",
    "WorkflowInstance",
    "WorkflowParams",
    "WorkflowStatus",
    "dispatch_prefix",
    "enqueue_prefix",
    "enumerate_documents",
    "is_document",
    "workflow_id",
]
