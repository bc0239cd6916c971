"""Document ingestion: bucket access and chunking."""

from mountaingraph.ingestion.bucket import (
    BucketListing,
    DocumentBucket,
    FilesystemBucket,
    ListedObject,
    build_buckets,
)
from mountaingraph.ingestion.chunker import MarkdownChunker

__all__ = [
    "BucketListing",
    "DocumentBucket",
    "FilesystemBucket",
    "ListedObject",
    "MarkdownChunker",
    "build_buckets",
]
