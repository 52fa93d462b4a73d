from __future__ import annotations

from typing import Any

from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from pfcollect.clients.tcgplayer import TcgPlayerClient
from pfcollect.collectors._common import (
    SOURCE_TCGPLAYER,
    fetch_market_prices,
    select_setids,
    start_progress,
    update_progress,
)
from pfcollect.config import load_settings
from pfcollect.db import schema
from pfcollect.db.writers import insert_ignore_duplicates
from pfcollect.jobs.base import METHOD_MANUAL, JobResult, JobRun, tracked_job
from pfcollect.utils.time import utc_now

JOB_NAME = "collectSealedPrices"


def set_products(engine: Engine, setid: str) -> dict[str, dict[str, Any]]:
    with engine.connect() as conn:
        rows = conn.execute(
            text("""
                SELECT sealedid, tcgp_id, name
                FROM pf_sealed
                WHERE setid = :setid
                  AND tcgp_id IS NOT NULL;
                """),
            {"setid": setid},
        ).mappings()
        return {str(r["tcgp_id"]): dict(r) for r in rows}


def collect_set(
    engine: Engine, tcgp: TcgPlayerClient, setid: str, job: JobRun, delay: float = 0.0
) -> dict[str, Any] | None:
    products = set_products(engine, setid)
    if not products:
        return None

    flagged: dict[str, list[str]] = {"skipped": [], "null_price": [], "failed": []}
    inserted = 0
    for results in fetch_market_prices(tcgp, sorted(products), job, delay):
        now = utc_now()
        rows: dict[str, dict[str, Any]] = {}
        for result in results:
            product = products.get(str(result.get("productId")))
            if product is None:
                flagged["skipped"].append(str(result.get("productId")))
                continue
            if result.get("marketPrice") is None:
                flagged["null_price"].append(product["sealedid"])
                continue
            rows.setdefault(
                product["sealedid"],
                {
                    "sealedid": product["sealedid"],
                    "price": float(result["marketPrice"]),
                    "updatedsource": now.date(),
                    "updated": now,
                    "source": SOURCE_TCGPLAYER,
                },
            )
        try:
            with engine.begin() as conn:
                inserted += insert_ignore_duplicates(
                    conn, schema.sealed_price_history, list(rows.values()), ["sealedid", "updatedsource"]
                )
        except SQLAlchemyError as exc:
            flagged["failed"].extend(rows)
            job.error("set {}: inserting {} sealed prices failed: {}", setid, len(rows), exc)

    job.log.info("set {}: {} new sealed prices", setid, inserted)
    return {"products": len(products), "inserted": inserted, "flagged": flagged}


def run(
    engine: Engine,
    setid: str | None = None,
    tcgp: TcgPlayerClient | None = None,
    delay: float | None = None,
    method: str = METHOD_MANUAL,
    log_dir: str | None = None,
) -> JobResult:
    settings = load_settings()
    tcgp = tcgp or TcgPlayerClient.from_settings(settings)
    delay = settings.http_request_delay_seconds if delay is None else delay

    with tracked_job(engine, JOB_NAME, method, log_dir) as job:
        setids = select_setids(engine, setid)
        tcgp.authenticate()
        progress_id = start_progress(engine, schema.sealed_price_update_logs)

        details: dict[str, Any] = {}
        flagged_counts: dict[str, int] = {}
        for index, current in enumerate(setids, start=1):
            summary = collect_set(engine, tcgp, current, job, delay)
            if summary is not None:
                details[current] = summary
                flagged_counts[current] = sum(len(v) for v in summary["flagged"].values())
            update_progress(
                engine,
                schema.sealed_price_update_logs,
                progress_id,
                index / len(setids) * 100,
                details,
                flagged_counts,
            )
        update_progress(engine, schema.sealed_price_update_logs, progress_id, 100, finished=True)
    return job.result()
