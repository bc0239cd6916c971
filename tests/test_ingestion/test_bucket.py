from __future__ import annotations

from pathlib import Path

import pytest

from mountaingraph.ingestion.bucket import FilesystemBucket, build_buckets


def _populate(root: Path, keys: list[str]) -> None:
    for key in keys:
        path = root / key
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(f"content of {key}", encoding="utf-8")


def test_listing_pages_with_cursor(tmp_path: Path) -> None:
    keys = [f"uploads/doc-{i:02d}.md" for i in range(7)]
    _populate(tmp_path, keys + ["other/skip.md"])
    bucket = FilesystemBucket(tmp_path)

    first = bucket.list(prefix="uploads/", limit=3)
    second = bucket.list(prefix="uploads/", cursor=first.cursor, limit=3)
    third = bucket.list(prefix="uploads/", cursor=second.cursor, limit=3)

    assert [o.key for o in first.objects] == keys[:3]
    assert first.truncated is True
    assert first.cursor == keys[2]
    assert [o.key for o in second.objects] == keys[3:6]
    assert [o.key for o in third.objects] == keys[6:]
    assert third.truncated is False
    assert third.cursor is None


def test_exact_page_is_not_truncated(tmp_path: Path) -> None:
    _populate(tmp_path, ["uploads/a.md", "uploads/b.md"])

    listing = FilesystemBucket(tmp_path).list(prefix="uploads/", limit=2)

    assert len(listing.objects) == 2
    assert listing.truncated is False
    assert listing.cursor is None


def test_get_reads_text(tmp_path: Path) -> None:
    _populate(tmp_path, ["uploads/a.md"])

    obj = FilesystemBucket(tmp_path).get("uploads/a.md")

    assert obj is not None
    assert obj.text() == "content of uploads/a.md"


def test_get_missing_or_escaping_key_returns_none(tmp_path: Path) -> None:
    root = tmp_path / "bucket"
    root.mkdir()
    (tmp_path / "secret.txt").write_text("nope", encoding="utf-8")
    bucket = FilesystemBucket(root)

    assert bucket.get("uploads/missing.md") is None
    assert bucket.get("../secret.txt") is None


def test_missing_root_lists_nothing(tmp_path: Path) -> None:
    listing = FilesystemBucket(tmp_path / "absent").list()

    assert listing.objects == []
    assert listing.truncated is False


def test_invalid_limit_rejected(tmp_path: Path) -> None:
    with pytest.raises(ValueError):
        FilesystemBucket(tmp_path).list(limit=0)


def test_build_buckets_binds_names(tmp_path: Path) -> None:
    buckets = build_buckets({"RESEARCH_DOCS": str(tmp_path)})

    assert isinstance(buckets["RESEARCH_DOCS"], FilesystemBucket)
