"""Document bucket interface and a filesystem-backed implementation.

A bucket exposes object-store style paging: ``list`` returns at most ``limit``
objects after an opaque cursor, plus a flag telling whether more remain.
"""

from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Optional, Protocol

from loguru import logger
from pydantic import BaseModel, Field


class ListedObject(BaseModel):
    """One object in a bucket listing."""

    key: str
    size: int = 0


class BucketListing(BaseModel):
    """A single page of a bucket listing."""

    objects: List[ListedObject] = Field(default_factory=list)
    truncated: bool = False
    cursor: Optional[str] = None


class BucketObject(Protocol):
    def text(self) -> str: ...


class DocumentBucket(Protocol):
    def list(
        self, *, prefix: str = "", cursor: Optional[str] = None, limit: int = 1000
    ) -> BucketListing: ...

    def get(self, key: str) -> Optional[BucketObject]: ...


class FileObject:
    """Lazy handle on a file inside a :class:`FilesystemBucket`."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def text(self) -> str:
        try:
            return self.path.read_text(encoding="utf-8")
        except UnicodeDecodeError:
            return self.path.read_text(encoding="utf-8", errors="replace")


class FilesystemBucket:
    """Treat a local directory as a bucket.

    Keys are POSIX paths relative to ``root``. Listings are sorted by key and the
    cursor is the last key of the previous page, so a sweep can resume from the
    cursor alone.
    """

    def __init__(self, root: Path | str) -> None:
        self.root = Path(root)

    def list(
        self, *, prefix: str = "", cursor: Optional[str] = None, limit: int = 1000
    ) -> BucketListing:
        if limit < 1:
            raise ValueError("limit must be at least 1")

        keys = [key for key in self._all_keys() if key.startswith(prefix)]
        if cursor:
            keys = [key for key in keys if key > cursor]

        page = keys[:limit]
        truncated = len(keys) > limit
        objects = [
            ListedObject(key=key, size=(self.root / key).stat().st_size) for key in page
        ]
        logger.debug(
            f"Listed {len(objects)} objects under {self.root}/{prefix} "
            f"(cursor={cursor}, truncated={truncated})"
        )
        return BucketListing(
            objects=objects,
            truncated=truncated,
            cursor=page[-1] if truncated and page else None,
        )

    def get(self, key: str) -> Optional[FileObject]:
        path = (self.root / key).resolve()
        root = self.root.resolve()
        if root not in path.parents or not path.is_file():
            return None
        return FileObject(path)

    def _all_keys(self) -> List[str]:
        if not self.root.is_dir():
            return []
        return sorted(
            path.relative_to(self.root).as_posix()
            for path in self.root.rglob("*")
            if path.is_file()
        )


def build_buckets(roots: Dict[str, str]) -> Dict[str, DocumentBucket]:
    """Create filesystem buckets for each configured ``name -> root`` binding."""
    return {name: FilesystemBucket(root) for name, root in roots.items()}
