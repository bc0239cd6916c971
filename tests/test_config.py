"""Tests for configuration loading and override behavior."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from mountaingraph.utils.config import Config, load_config


@pytest.fixture(autouse=True)
def _clear_config_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("OPENAI_API_KEY", "OPENAI_BASE_URL", "STORE__BACKEND", "EXTRACTION__VARIANT"):
        monkeypatch.delenv(name, raising=False)


def _write_yaml(path: Path, data: dict) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.safe_dump(data), encoding="utf-8")


def test_yaml_loads_values(tmp_path: Path) -> None:
    cfg_path = tmp_path / "config.yaml"
    _write_yaml(
        cfg_path,
        {
            "extraction": {"variant": "extended", "max_concurrent_chunks": 2},
            "sweep": {"default_limit": 7},
        },
    )

    cfg = load_config(cfg_path)

    assert cfg.extraction.variant == "extended"
    assert cfg.extraction.include_events is True
    assert cfg.extraction.max_concurrent_chunks == 2
    assert cfg.sweep.default_limit == 7


def test_defaults_match_documented_values() -> None:
    cfg = Config()

    assert cfg.chunking.max_chars == 8000
    assert cfg.chunking.min_chars == 100
    assert cfg.buckets.default_bucket == "RESEARCH_DOCS"
    assert cfg.buckets.default_prefix == "uploads/"
    assert cfg.workflow.retry_limit == 3
    assert cfg.workflow.retry_delay_seconds == 10
    assert cfg.ledger.row_limit == 2000
    assert cfg.extraction.fallback_mountain in cfg.extraction.mountains
    assert len(cfg.extraction.mountains) == 7


def test_env_overrides_yaml(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    cfg_path = tmp_path / "config.yaml"
    _write_yaml(cfg_path, {"extraction": {"variant": "simple"}})

    monkeypatch.setenv("EXTRACTION__VARIANT", "extended")

    cfg = load_config(cfg_path)

    assert cfg.extraction.variant == "extended"


def test_llm_credentials_fall_back_to_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    cfg_path = tmp_path / "config.yaml"
    _write_yaml(cfg_path, {})
    monkeypatch.setenv("OPENAI_API_KEY", "sk-env")
    monkeypatch.setenv("OPENAI_BASE_URL", "https://workers.example/v1")

    llm = load_config(cfg_path).llm_credentials()

    assert llm.api_key == "sk-env"
    assert llm.base_url == "https://workers.example/v1"


def test_invalid_yaml_root_type_raises(tmp_path: Path) -> None:
    cfg_path = tmp_path / "config.yaml"
    cfg_path.write_text(yaml.safe_dump(["not", "a", "mapping"]), encoding="utf-8")

    with pytest.raises(ValueError, match="YAML config root must be a mapping"):
        load_config(cfg_path)


def test_missing_file_raises(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "nope.yaml")


def test_unknown_default_bucket_rejected(tmp_path: Path) -> None:
    cfg_path = tmp_path / "config.yaml"
    _write_yaml(cfg_path, {"buckets": {"roots": {"OTHER": "data"}, "default_bucket": "MISSING"}})

    with pytest.raises(ValueError, match="Default bucket"):
        load_config(cfg_path)


def test_fallback_mountain_must_be_configured(tmp_path: Path) -> None:
    cfg_path = tmp_path / "config.yaml"
    _write_yaml(cfg_path, {"extraction": {"fallback_mountain": "Sports"}})

    with pytest.raises(ValueError, match="Fallback mountain"):
        load_config(cfg_path)


def test_neo4j_backend_requires_password(tmp_path: Path) -> None:
    cfg_path = tmp_path / "config.yaml"
    _write_yaml(cfg_path, {"store": {"backend": "neo4j"}})

    with pytest.raises(ValueError, match="Neo4j password"):
        load_config(cfg_path)


def test_each_load_returns_its_own_config(tmp_path: Path) -> None:
    first_path = tmp_path / "first.yaml"
    second_path = tmp_path / "second.yaml"
    _write_yaml(first_path, {"sweep": {"default_limit": 3}})
    _write_yaml(second_path, {"sweep": {"default_limit": 9}})

    first = load_config(first_path)
    second = load_config(second_path)

    assert first is not second
    assert (first.sweep.default_limit, second.sweep.default_limit) == (3, 9)
