from __future__ import annotations

from datetime import timedelta

from sqlalchemy import text
from sqlalchemy.engine import Engine

from pfcollect.utils.time import utc_now

STATUS_STARTED = "STARTED"
STATUS_COMPLETED = "COMPLETED"
STATUS_FAILED = "FAILED"


def fail_stale_running_runs(
    engine: Engine, caller: str | None = None, older_than_minutes: int = 360
) -> int:
    cutoff = utc_now() - timedelta(minutes=int(older_than_minutes))
    params: dict[str, object] = {"now": utc_now(), "cutoff": cutoff}
    caller_filter = ""
    if caller is not None:
        caller_filter = "AND caller = :caller"
        params["caller"] = caller
    with engine.begin() as conn:
        res = conn.execute(
            text(f"""
                UPDATE pfdata_logs_collect
                SET timeend = :now,
                    status = 'FAILED'
                WHERE status = 'STARTED'
                  AND timeend IS NULL
                  AND timestart < :cutoff
                  {caller_filter};
                """),
            params,
        )
        return int(getattr(res, "rowcount", 0) or 0)


def log_start(engine: Engine, caller: str, method: str) -> int:
    with engine.begin() as conn:
        row = conn.execute(
            text("""
                INSERT INTO pfdata_logs_collect (caller, method, timestart, status, errors)
                VALUES (:caller, :method, :timestart, :status, 0)
                RETURNING id;
                """),
            {
                "caller": str(caller)[:64],
                "method": str(method)[:16],
                "timestart": utc_now(),
                "status": STATUS_STARTED,
            },
        ).one()
        return int(row[0])


def log_end(
    engine: Engine,
    log_id: int,
    status: str,
    errors: int = 0,
    log_path: str | None = None,
) -> None:
    with engine.begin() as conn:
        conn.execute(
            text("""
                UPDATE pfdata_logs_collect
                SET timeend = :timeend,
                    status = :status,
                    errors = :errors,
                    logpath = :logpath
                WHERE id = :log_id
                  AND timeend IS NULL;
                """),
            {
                "log_id": int(log_id),
                "timeend": utc_now(),
                "status": str(status)[:16],
                "errors": int(errors),
                "logpath": log_path,
            },
        )
