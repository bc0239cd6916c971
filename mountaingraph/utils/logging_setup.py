"""Loguru sink setup shared by the CLI and the HTTP app."""

import sys
from pathlib import Path

from loguru import logger

from mountaingraph.utils.config import LoggingConfig

TEXT_FORMAT = (
    "<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan> | <level>{message}</level>"
)


def configure_logging(config: LoggingConfig, *, verbose: bool = False) -> None:
    """Replace the default loguru handler with the configured sinks."""
    level = "DEBUG" if verbose else config.level.upper()

    logger.remove()
    logger.add(
        sys.stderr,
        format=TEXT_FORMAT,
        level=level,
        serialize=config.format == "json",
    )

    if config.file:
        log_file = Path(config.file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_file,
            rotation=f"{config.max_size_mb} MB",
            retention=config.backup_count,
            level="DEBUG",
            serialize=config.format == "json",
        )
