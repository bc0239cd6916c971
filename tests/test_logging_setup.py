from __future__ import annotations

import json
import sys
from pathlib import Path

from loguru import logger

from mountaingraph.utils.config import LoggingConfig
from mountaingraph.utils.logging_setup import configure_logging


def test_file_sink_receives_debug_records(tmp_path: Path) -> None:
    log_file = tmp_path / "logs" / "mountaingraph.log"
    configure_logging(LoggingConfig(level="WARNING", file=str(log_file)))
    try:
        logger.debug("chunk 3 skipped")
        logger.complete()
    finally:
        logger.remove()
        logger.add(sys.stderr)

    assert "chunk 3 skipped" in log_file.read_text(encoding="utf-8")


def test_json_format_serializes_records(tmp_path: Path) -> None:
    log_file = tmp_path / "app.jsonl"
    configure_logging(LoggingConfig(format="json", file=str(log_file)))
    try:
        logger.info("sweep finished")
        logger.complete()
    finally:
        logger.remove()
        logger.add(sys.stderr)

    record = json.loads(log_file.read_text(encoding="utf-8").splitlines()[0])
    assert record["record"]["message"] == "sweep finished"
