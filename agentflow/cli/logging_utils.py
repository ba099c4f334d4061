"""Loguru setup for CLI runs."""

from __future__ import annotations

import sys
from pathlib import Path

from loguru import logger

from agentflow.config.schema import LoggingConfig
from agentflow.utils.helpers import ensure_dir, get_data_path

_SINK_IDS: dict[str, int] = {}


def ensure_rotating_log_file(name: str, level: str = "INFO") -> Path:
    """Add (once per name) a rotating file sink under ~/.agentflow/logs."""
    log_path = ensure_dir(get_data_path() / "logs") / f"{name}.log"
    if name in _SINK_IDS:
        return log_path
    _SINK_IDS[name] = logger.add(
        str(log_path),
        level=level,
        rotation="10 MB",
        retention="14 days",
        enqueue=True,
        encoding="utf-8",
        backtrace=False,
        diagnose=False,
    )
    return log_path


def configure_logging(config: LoggingConfig, *, verbose: bool = False) -> None:
    """Replace the default stderr sink with the configured level; add the file sink if set."""
    level = "DEBUG" if verbose else config.level.upper()
    logger.remove()
    logger.add(sys.stderr, level=level)
    if config.file:
        ensure_rotating_log_file(config.file, level=level)
