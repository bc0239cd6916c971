"""Durable background mode: one retried workflow per document.

Dispatch enumerates a whole prefix (no caller limit) and creates one workflow per
document key. Workflow ids are derived from the key plus a coarse time bucket, so
dispatching the same key twice inside the dedup window is rejected by the host
and re-processing becomes possible once the window rolls over.
"""

from __future__ import annotations

import re
import threading
import time
from collections import deque
from enum import Enum
from itertools import count
from typing import Any, Callable, Deque, Dict, Iterable, List, Optional, Protocol

from loguru import logger
from pydantic import BaseModel, Field

from mountaingraph.ingestion.bucket import DocumentBucket
from mountaingraph.pipeline.extraction_pipeline import ExtractionResult, GraphExtractionPipeline
from mountaingraph.pipeline.sweep import DOCUMENT_EXTENSIONS, enumerate_documents
from mountaingraph.utils.config import WorkflowConfig
from mountaingraph.utils.retry import RetryPolicy, run_with_retry

_UNSAFE_ID_CHARS = re.compile(r"[^a-zA-Z0-9]")

STEP_NAME = "extract-graph"


class DuplicateWorkflowError(RuntimeError):
    """A workflow with the same id is still inside the host's dedup window."""


class WorkflowFailedError(RuntimeError):
    """The extraction step failed on every attempt."""

    def __init__(self, key: str, message: str) -> None:
        self.key = key
        self.message = message
        super().__init__(f"Extraction failed for {key}: {message}")


def sanitize_key(key: str) -> str:
    return _UNSAFE_ID_CHARS.sub("-", key)


def workflow_id(key: str, *, now: Optional[float] = None, window_seconds: int = 86400) -> str:
    """Deterministic workflow id for ``key`` within the current time bucket."""
    now = time.time() if now is None else now
    return f"extract-{sanitize_key(key)}-{int(now // window_seconds)}"


class WorkflowParams(BaseModel):
    key: str
    bucket: str = "RESEARCH_DOCS"


class WorkflowStatus(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETE = "complete"
    ERRORED = "errored"


class WorkflowInstance(BaseModel):
    """Host-side record of one workflow execution."""

    id: str
    params: WorkflowParams
    status: WorkflowStatus = WorkflowStatus.QUEUED
    created_at: float = 0.0
    output: Optional[Dict[str, Any]] = None
    error: Optional[str] = None


class WorkflowHost(Protocol):
    def create(self, id: str, params: WorkflowParams) -> WorkflowInstance: ...


class ExtractionWorkflow:
    """Single-step workflow wrapping :meth:`GraphExtractionPipeline.process_file`."""

    def __init__(
        self,
        pipeline: GraphExtractionPipeline,
        policy: Optional[RetryPolicy] = None,
        *,
        sleep_fn: Callable[[float], None] | None = None,
    ) -> None:
        self.pipeline = pipeline
        self.policy = policy or RetryPolicy.from_step_config(limit=3, delay=10.0)
        self._sleep = sleep_fn

    @classmethod
    def from_config(
        cls,
        pipeline: GraphExtractionPipeline,
        config: WorkflowConfig,
        *,
        sleep_fn: Callable[[float], None] | None = None,
    ) -> "ExtractionWorkflow":
        policy = RetryPolicy.from_step_config(
            limit=config.retry_limit,
            delay=config.retry_delay_seconds,
            backoff=config.backoff,
        )
        return cls(pipeline, policy, sleep_fn=sleep_fn)

    def run(self, params: WorkflowParams) -> ExtractionResult:
        """Run the extraction step under the retry policy.

        Raises:
            WorkflowFailedError: Once every attempt has failed.
        """

        def step() -> ExtractionResult:
            result = self.pipeline.process_file(params.bucket, params.key)
            if not result.success:
                raise RuntimeError(result.error or "unknown error")
            return result

        try:
            return run_with_retry(
                step,
                self.policy,
                description=f"Workflow step {STEP_NAME} for {params.key}",
                sleep_fn=self._sleep,
            )
        except Exception as exc:
            raise WorkflowFailedError(params.key, str(exc)) from exc


class InProcessWorkflowHost:
    """Workflow host that keeps instances in memory and runs them on demand.

    ``create`` only registers an instance; :meth:`run_pending` executes queued
    instances one at a time.
    """

    def __init__(
        self,
        runner: Callable[[WorkflowParams], ExtractionResult],
        *,
        dedup_window_seconds: int = 86400,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.runner = runner
        self.dedup_window_seconds = dedup_window_seconds
        self._clock = clock
        self._instances: Dict[str, WorkflowInstance] = {}
        self._lock = threading.Lock()
        # one document at a time, even across concurrent drains
        self._run_lock = threading.Lock()

    def create(self, id: str, params: WorkflowParams) -> WorkflowInstance:
        now = self._clock()
        with self._lock:
            existing = self._instances.get(id)
            if existing and now - existing.created_at < self.dedup_window_seconds:
                raise DuplicateWorkflowError(f"Workflow {id} already exists ({existing.status.value})")
            instance = WorkflowInstance(id=id, params=params, created_at=now)
            self._instances[id] = instance
        logger.debug(f"Created workflow {id} for {params.bucket}/{params.key}")
        return instance

    def get(self, id: str) -> Optional[WorkflowInstance]:
        return self._instances.get(id)

    def instances(self, status: Optional[WorkflowStatus] = None) -> List[WorkflowInstance]:
        with self._lock:
            snapshot = list(self._instances.values())
        return [
            instance
            for instance in snapshot
            if status is None or instance.status == status
        ]

    def run(self, id: str) -> WorkflowInstance:
        """Execute instance ``id`` if it is still queued.

        The queued -> running transition happens under the host lock, so
        concurrent drains never execute the same instance twice. An instance that
        is already running or finished is returned unchanged.
        """
        instance = self._claim(id)
        if instance is None:
            return self._instances[id]
        return self._execute(instance)

    def run_pending(self) -> List[WorkflowInstance]:
        """Run every queued instance; returns only the instances this call executed."""
        executed: List[WorkflowInstance] = []
        for instance in self.instances(WorkflowStatus.QUEUED):
            claimed = self._claim(instance.id)
            if claimed is not None:
                executed.append(self._execute(claimed))
        return executed

    def _claim(self, id: str) -> Optional[WorkflowInstance]:
        with self._lock:
            instance = self._instances[id]
            if instance.status != WorkflowStatus.QUEUED:
                logger.debug(f"Workflow {id} already {instance.status.value}; not running it again")
                return None
            instance.status = WorkflowStatus.RUNNING
            return instance

    def _execute(self, instance: WorkflowInstance) -> WorkflowInstance:
        try:
            with self._run_lock:
                result = self.runner(instance.params)
        except Exception as exc:
            instance.status = WorkflowStatus.ERRORED
            instance.error = str(exc)
            logger.error(f"Workflow {instance.id} errored: {exc}")
            return instance
        instance.status = WorkflowStatus.COMPLETE
        instance.output = result.model_dump(by_alias=True)
        logger.info(f"Workflow {instance.id} complete")
        return instance


class DispatchSummary(BaseModel):
    dispatched: int = 0
    skipped: int = 0
    workflow_ids: List[str] = Field(default_factory=list)


def _dispatch_one(
    host: WorkflowHost,
    params: WorkflowParams,
    summary: DispatchSummary,
    *,
    window_seconds: int,
    clock: Callable[[], float],
) -> None:
    id = workflow_id(params.key, now=clock(), window_seconds=window_seconds)
    try:
        host.create(id, params)
    except DuplicateWorkflowError:
        summary.skipped += 1
        logger.debug(f"Skipping duplicate workflow {id}")
        return
    summary.dispatched += 1
    summary.workflow_ids.append(id)


def dispatch_prefix(
    host: WorkflowHost,
    bucket: DocumentBucket,
    bucket_name: str = "RESEARCH_DOCS",
    prefix: str = "uploads/",
    *,
    page_size: int = 1000,
    extensions: Iterable[str] = DOCUMENT_EXTENSIONS,
    window_seconds: int = 86400,
    clock: Callable[[], float] = time.time,
) -> DispatchSummary:
    """Create one workflow per document under ``prefix``."""
    summary = DispatchSummary()
    for key in enumerate_documents(bucket, prefix, page_size=page_size, extensions=extensions):
        _dispatch_one(
            host,
            WorkflowParams(key=key, bucket=bucket_name),
            summary,
            window_seconds=window_seconds,
            clock=clock,
        )
    logger.info(
        f"Dispatched {summary.dispatched} workflows from {bucket_name}/{prefix} "
        f"({summary.skipped} duplicates skipped)"
    )
    return summary


# -----------------------
# Queue
# -----------------------
class QueueMessage:
    """A delivered message; call :meth:`ack` once handled or :meth:`retry` to requeue it."""

    def __init__(self, id: int, body: Dict[str, Any], queue: "InMemoryQueue") -> None:
        self.id = id
        self.body = body
        self._queue = queue
        self.acked = False
        self.deliveries = 0

    def ack(self) -> None:
        self.acked = True
        self._queue._acknowledge(self.id)

    def retry(self) -> None:
        self._queue._retry(self)


class InMemoryQueue:
    """At-least-once queue with a bounded number of deliveries per message.

    Received messages stay in flight until acked or retried. A message retried
    after ``max_deliveries`` deliveries moves to :attr:`dead_letters`.
    """

    def __init__(self, max_deliveries: int = 3) -> None:
        if max_deliveries < 1:
            raise ValueError("max_deliveries must be at least 1")
        self.max_deliveries = max_deliveries
        self._pending: Deque[QueueMessage] = deque()
        self._in_flight: Dict[int, QueueMessage] = {}
        self.dead_letters: List[QueueMessage] = []
        self._ids = count(1)
        self._lock = threading.Lock()

    def send(self, body: Dict[str, Any]) -> None:
        with self._lock:
            self._pending.append(QueueMessage(next(self._ids), dict(body), self))

    def receive_batch(self, max_messages: int = 10) -> List[QueueMessage]:
        batch: List[QueueMessage] = []
        with self._lock:
            while self._pending and len(batch) < max_messages:
                message = self._pending.popleft()
                message.deliveries += 1
                self._in_flight[message.id] = message
                batch.append(message)
        return batch

    def pending_count(self) -> int:
        return len(self._pending)

    def in_flight_count(self) -> int:
        return len(self._in_flight)

    def _acknowledge(self, id: int) -> None:
        with self._lock:
            self._in_flight.pop(id, None)

    def _retry(self, message: QueueMessage) -> None:
        with self._lock:
            if self._in_flight.pop(message.id, None) is None:
                return
            if message.deliveries >= self.max_deliveries:
                self.dead_letters.append(message)
                logger.warning(
                    f"Queue message {message.id} dead-lettered after {message.deliveries} deliveries"
                )
                return
            self._pending.append(message)


def enqueue_prefix(
    queue: InMemoryQueue,
    bucket: DocumentBucket,
    bucket_name: str = "RESEARCH_DOCS",
    prefix: str = "uploads/",
    *,
    page_size: int = 1000,
    extensions: Iterable[str] = DOCUMENT_EXTENSIONS,
) -> int:
    """Send one ``{key, bucket}`` message per document under ``prefix``."""
    enqueued = 0
    for key in enumerate_documents(bucket, prefix, page_size=page_size, extensions=extensions):
        queue.send({"key": key, "bucket": bucket_name})
        enqueued += 1
    logger.info(f"Enqueued {enqueued} files from {bucket_name}/{prefix}")
    return enqueued


class QueueConsumer:
    """Turn queue messages into workflow dispatches."""

    def __init__(
        self,
        host: WorkflowHost,
        *,
        window_seconds: int = 86400,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.host = host
        self.window_seconds = window_seconds
        self._clock = clock

    def consume(self, batch: Iterable[QueueMessage]) -> DispatchSummary:
        """Dispatch a workflow per message, acking each one once dispatched.

        Duplicates are acked as well. A message whose body cannot be parsed is
        retried, and the queue dead-letters it once its deliveries run out.
        """
        summary = DispatchSummary()
        for message in batch:
            try:
                params = WorkflowParams.model_validate(message.body)
            except ValueError as exc:
                logger.warning(f"Invalid queue message {message.id}: {exc}")
                message.retry()
                continue
            _dispatch_one(
                self.host,
                params,
                summary,
                window_seconds=self.window_seconds,
                clock=self._clock,
            )
            message.ack()
        return summary

    def drain(self, queue: InMemoryQueue, batch_size: int = 10) -> DispatchSummary:
        """Consume batches until the queue has nothing pending."""
        total = DispatchSummary()
        while True:
            batch = queue.receive_batch(batch_size)
            if not batch:
                return total
            summary = self.consume(batch)
            total.dispatched += summary.dispatched
            total.skipped += summary.skipped
            total.workflow_ids.extend(summary.workflow_ids)
