"""Merge, resolve and persist extraction results."""

from mountaingraph.reconciliation.context import ResolutionContext
from mountaingraph.reconciliation.merge import (
    DocumentMerge,
    MergedEntity,
    MergedEvent,
    merge_extractions,
)
from mountaingraph.reconciliation.reconciler import GraphReconciler, ReconcileCounts, rich_text

__all__ = [
    "DocumentMerge",
    "GraphReconciler",
    "MergedEntity",
    "MergedEvent",
    "ReconcileCounts",
    "ResolutionContext",
    "merge_extractions",
    "rich_text",
]
