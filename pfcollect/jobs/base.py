from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any

from loguru import logger
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from pfcollect.config import load_settings
from pfcollect.jobs.job_logging import job_log_sink
from pfcollect.ops.run_logger import STATUS_COMPLETED, STATUS_FAILED, log_end, log_start

METHOD_MANUAL = "MANUAL"
METHOD_SYSTEM = "SYSTEM"


@dataclass(frozen=True)
class JobResult:
    state: bool
    errors: int
    log_id: int

    def to_dict(self) -> dict[str, Any]:
        return {"state": self.state, "errors": self.errors, "log": self.log_id}


@dataclass
class JobRun:
    name: str
    method: str
    log_id: int
    log: Any
    log_path: str
    errors: int = 0
    failed: bool = False
    state: bool | None = None
    stats: dict[str, Any] = field(default_factory=dict)

    def error(self, message: str, *args: Any) -> None:
        self.errors += 1
        self.log.error(message, *args)

    def result(self) -> JobResult:
        state = (not self.failed) if self.state is None else (self.state and not self.failed)
        return JobResult(state=state, errors=self.errors, log_id=self.log_id)


@contextmanager
def tracked_job(
    engine: Engine, name: str, method: str, log_dir: str | None = None
) -> Iterator[JobRun]:
    """Bracket a job with start/end rows in the run log and a per-run log file.

    An exception escaping the body marks the run FAILED, counts one error and
    is not re-raised: callers read the outcome from ``run.result()``.
    """
    log_dir = log_dir or load_settings().log_dir
    log_id = log_start(engine, name, method)
    with job_log_sink(log_dir, name, log_id) as (log, path):
        run = JobRun(name=name, method=method, log_id=log_id, log=log, log_path=str(path))
        log.info(" --- STARTING {} ({}) --- ", name, method)
        try:
            yield run
        except Exception as exc:
            run.failed = True
            run.errors += 1
            log.exception("{} aborted: {}", name, exc)
        finally:
            result = run.result()
            status = STATUS_COMPLETED if result.state else STATUS_FAILED
            try:
                log_end(engine, log_id, status, run.errors, run.log_path)
            except SQLAlchemyError as end_exc:
                logger.warning("failed to finalize run log id={}: {}", log_id, end_exc)
            log.info(" --- {} {} errors={} --- ", status, name, run.errors)
