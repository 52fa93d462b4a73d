from __future__ import annotations

import sys
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from loguru import logger


def configure_console(level: str = "INFO") -> None:
    logger.remove()
    logger.add(sys.stderr, level=level)


def job_log_path(log_dir: str | Path, job_name: str, log_id: int) -> Path:
    return Path(log_dir) / job_name / f"{log_id}.log"


@contextmanager
def job_log_sink(log_dir: str | Path, job_name: str, log_id: int) -> Iterator[tuple]:
    """Route records bound to this run's log_id into logs/<job>/<log_id>.log as JSON lines."""
    path = job_log_path(log_dir, job_name, log_id)
    path.parent.mkdir(parents=True, exist_ok=True)
    sink_id = logger.add(
        str(path),
        level="DEBUG",
        serialize=True,
        enqueue=False,
        filter=lambda record: record["extra"].get("log_id") == log_id,
    )
    try:
        yield logger.bind(job=job_name, log_id=log_id), path
    finally:
        logger.remove(sink_id)
