"""Staged price-change pipeline.

initialize -> process every PENDING partition into staging -> promote staging
to production in one transaction, only when every tracking row is COMPLETED
-> empty staging. Readers of the production table never see a partial run.
"""

from __future__ import annotations

from dataclasses import dataclass

from loguru import logger
from sqlalchemy import text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from pfcollect.analytics.price_changes import Observation, compute_partition
from pfcollect.analytics.variants import PipelineVariant
from pfcollect.jobs.base import METHOD_MANUAL, JobResult, tracked_job
from pfcollect.utils.time import as_date, utc_now

PENDING = "PENDING"
IN_PROGRESS = "IN_PROGRESS"
COMPLETED = "COMPLETED"
FAILED = "FAILED"


@dataclass(frozen=True)
class PartitionOutcome:
    setid: str
    ok: bool
    record_count: int = 0
    error: str | None = None


def initialize(engine: Engine, variant: PipelineVariant) -> int:
    """Recreate an empty staging table and reset every tracking row to PENDING."""
    tracking = variant.tracking.name
    with engine.begin() as conn:
        variant.staging.drop(conn, checkfirst=True)
        variant.staging.create(conn)
        variant.tracking.create(conn, checkfirst=True)
        conn.execute(
            text(f"""
                INSERT INTO {tracking} (setid, status, record_count)
                SELECT p.setid, 'PENDING', 0
                FROM ({variant.partition_sql}) p
                WHERE NOT EXISTS (
                    SELECT 1 FROM {tracking} t WHERE t.setid = p.setid
                );
                """)
        )
        res = conn.execute(
            text(f"""
                UPDATE {tracking}
                SET status = 'PENDING',
                    processed_at = NULL,
                    record_count = 0,
                    error_message = NULL;
                """)
        )
        return int(res.rowcount or 0)


def load_observations(conn: Connection, variant: PipelineVariant, setid: str) -> list[Observation]:
    rows = conn.execute(text(variant.fact_sql), {"setid": setid}).mappings().all()
    return [
        Observation(
            key=tuple(str(row[c]) for c in variant.key_columns),
            price=float(row["price"]),
            observed=as_date(row["observed"]),
        )
        for row in rows
    ]


def _set_status(
    conn: Connection,
    variant: PipelineVariant,
    setid: str,
    status: str,
    record_count: int = 0,
    error_message: str | None = None,
) -> None:
    conn.execute(
        text(f"""
            UPDATE {variant.tracking.name}
            SET status = :status,
                processed_at = :processed_at,
                record_count = :record_count,
                error_message = :error_message
            WHERE setid = :setid;
            """),
        {
            "status": status,
            "processed_at": utc_now() if status != IN_PROGRESS else None,
            "record_count": int(record_count),
            "error_message": error_message[:2000] if error_message else None,
            "setid": setid,
        },
    )


def _mark_failed(engine: Engine, variant: PipelineVariant, setid: str, message: str, log) -> None:
    try:
        with engine.begin() as conn:
            _set_status(conn, variant, setid, FAILED, error_message=message)
    except SQLAlchemyError as exc:
        log.error("{} partition {}: could not record FAILED status: {}", variant.name, setid, exc)


def process_partition(
    engine: Engine, variant: PipelineVariant, setid: str, log=logger
) -> PartitionOutcome:
    """Stage one partition. Never raises: any failure is returned as an unsuccessful outcome."""
    try:
        with engine.begin() as conn:
            _set_status(conn, variant, setid, IN_PROGRESS)
        with engine.begin() as conn:
            observations = load_observations(conn, variant, setid)
            rows = compute_partition(observations, variant.key_columns, variant.current_scope)
            if rows:
                conn.execute(variant.staging.insert(), rows)
            _set_status(conn, variant, setid, COMPLETED, record_count=len(rows))
    except Exception as exc:
        log.exception("{} partition {} failed: {}", variant.name, setid, exc)
        _mark_failed(engine, variant, setid, str(exc), log)
        return PartitionOutcome(setid=setid, ok=False, error=str(exc))

    log.info("{} partition {} staged {} rows", variant.name, setid, len(rows))
    return PartitionOutcome(setid=setid, ok=True, record_count=len(rows))


def pending_partitions(engine: Engine, variant: PipelineVariant) -> list[str]:
    with engine.connect() as conn:
        return list(
            conn.execute(
                text(f"""
                    SELECT setid FROM {variant.tracking.name}
                    WHERE status = 'PENDING'
                    ORDER BY setid;
                    """)
            ).scalars()
        )


def process_all(engine: Engine, variant: PipelineVariant, log=logger) -> list[PartitionOutcome]:
    """Process PENDING partitions one at a time in key order; failures do not stop the loop."""
    return [
        process_partition(engine, variant, setid, log)
        for setid in pending_partitions(engine, variant)
    ]


def all_completed(engine: Engine, variant: PipelineVariant) -> bool:
    with engine.connect() as conn:
        row = conn.execute(
            text(f"""
                SELECT COUNT(*) AS total,
                       SUM(CASE WHEN status = 'COMPLETED' THEN 1 ELSE 0 END) AS completed
                FROM {variant.tracking.name};
                """)
        ).mappings().one()
    return int(row["total"] or 0) == int(row["completed"] or 0)


def failed_partitions(engine: Engine, variant: PipelineVariant) -> list[str]:
    with engine.connect() as conn:
        return list(
            conn.execute(
                text(f"""
                    SELECT setid FROM {variant.tracking.name}
                    WHERE status <> 'COMPLETED'
                    ORDER BY setid;
                    """)
            ).scalars()
        )


def finalize(engine: Engine, variant: PipelineVariant) -> int:
    """Replace production with staging in a single transaction. Errors roll back and propagate."""
    columns = ", ".join(c.name for c in variant.production.columns)
    with engine.begin() as conn:
        conn.execute(text(f"DELETE FROM {variant.production.name};"))
        res = conn.execute(
            text(f"""
                INSERT INTO {variant.production.name} ({columns})
                SELECT {columns} FROM {variant.staging.name};
                """)
        )
        return int(res.rowcount or 0)


def cleanup(engine: Engine, variant: PipelineVariant) -> None:
    with engine.begin() as conn:
        conn.execute(text(f"DELETE FROM {variant.staging.name};"))
        conn.execute(text(f"UPDATE {variant.tracking.name} SET status = 'COMPLETED';"))


def run_price_change_pipeline(
    engine: Engine,
    variant: PipelineVariant,
    method: str = METHOD_MANUAL,
    log_dir: str | None = None,
) -> JobResult:
    with tracked_job(engine, variant.job_name, method, log_dir) as run:
        reset = initialize(engine, variant)
        run.log.info("initialized staging; {} partitions reset to PENDING", reset)

        outcomes = process_all(engine, variant, run.log)
        failures = [o for o in outcomes if not o.ok]
        run.errors += len(failures)
        run.stats.update(
            partitions=len(outcomes),
            failed=len(failures),
            staged=sum(o.record_count for o in outcomes),
        )

        if not all_completed(engine, variant):
            run.state = False
            pending = failed_partitions(engine, variant)
            run.log.warning(
                "{} partitions not completed, production left untouched: {}",
                len(pending),
                ", ".join(pending),
            )
        else:
            try:
                promoted = finalize(engine, variant)
            except SQLAlchemyError as exc:
                run.state = False
                run.error("finalize rolled back, production left untouched: {}", exc)
            else:
                run.state = True
                run.log.info("promoted {} rows into {}", promoted, variant.production.name)
                try:
                    cleanup(engine, variant)
                except SQLAlchemyError as exc:
                    # production is already refreshed; the next initialize() rebuilds staging
                    run.log.warning("cleanup after promotion failed: {}", exc)
    return run.result()
