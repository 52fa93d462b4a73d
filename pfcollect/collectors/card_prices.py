from __future__ import annotations

from collections import defaultdict
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
from pfcollect.utils.time import utc_now, utc_today

JOB_NAME = "collectCardPrices"


def set_mappings(engine: Engine, setid: str) -> list[dict[str, Any]]:
    with engine.connect() as conn:
        rows = conn.execute(
            text("""
                SELECT DISTINCT m.cardid, m.tcgp_id, m.tcgp_variant, m.pf_variant
                FROM pf_cards_pricing_map m
                JOIN pfdata_cards c ON c.cardid = m.cardid
                WHERE c.setid = :setid
                  AND m.tcgp_id IS NOT NULL
                ORDER BY m.cardid, m.pf_variant;
                """),
            {"setid": setid},
        ).mappings()
        return [dict(r) for r in rows]


def price_rows(
    results: list[dict[str, Any]],
    by_product: dict[str, list[dict[str, Any]]],
    flagged: dict[str, list[str]],
    now,
) -> list[dict[str, Any]]:
    """One history row per card+variant; results without a mapping or a market price are flagged."""
    rows: dict[tuple[str, str], dict[str, Any]] = {}
    for result in results:
        product_id = str(result.get("productId"))
        mappings = by_product.get(product_id)
        if not mappings:
            flagged["skipped"].append(product_id)
            continue
        match = next(
            (m for m in mappings if m["tcgp_variant"] == result.get("subTypeName")), None
        )
        if match is None:
            continue
        if result.get("marketPrice") is None:
            flagged["null_price"].append(f"{match['cardid']}:{match['pf_variant']}")
            continue
        rows.setdefault(
            (match["cardid"], match["pf_variant"]),
            {
                "cardid": match["cardid"],
                "variant": match["pf_variant"],
                "price": float(result["marketPrice"]),
                "updatedsource": now.date(),
                "updated": now,
                "source": SOURCE_TCGPLAYER,
            },
        )
    return list(rows.values())


def record_set_total(engine: Engine, setid: str) -> float | None:
    """Sum of the set's card prices on its most recent price day, stored once per day."""
    with engine.begin() as conn:
        total = conn.execute(
            text("""
                SELECT SUM(h.price)
                FROM pf_cards_price_history h
                JOIN pfdata_cards c ON c.cardid = h.cardid
                WHERE c.setid = :setid
                  AND h.updatedsource = (
                      SELECT MAX(h2.updatedsource)
                      FROM pf_cards_price_history h2
                      JOIN pfdata_cards c2 ON c2.cardid = h2.cardid
                      WHERE c2.setid = :setid
                  );
                """),
            {"setid": setid},
        ).scalar()
        if not total:
            return None
        insert_ignore_duplicates(
            conn,
            schema.set_prices,
            [
                {
                    "setid": setid,
                    "price": float(total),
                    "updatedsource": utc_today(),
                    "updated": utc_now(),
                    "source": SOURCE_TCGPLAYER,
                }
            ],
            ["setid", "source", "updatedsource"],
        )
        return float(total)


def collect_set(
    engine: Engine, tcgp: TcgPlayerClient, setid: str, job: JobRun, delay: float = 0.0
) -> dict[str, Any] | None:
    mappings = set_mappings(engine, setid)
    if not mappings:
        return None

    by_product: dict[str, list[dict[str, Any]]] = defaultdict(list)
    for m in mappings:
        by_product[str(m["tcgp_id"])].append(m)

    flagged: dict[str, list[str]] = {"skipped": [], "null_price": [], "failed": []}
    inserted = 0
    now = utc_now()
    for results in fetch_market_prices(tcgp, sorted(by_product), job, delay):
        rows = price_rows(results, by_product, flagged, now)
        try:
            with engine.begin() as conn:
                inserted += insert_ignore_duplicates(
                    conn, schema.card_price_history, rows, ["cardid", "variant", "updatedsource"]
                )
        except SQLAlchemyError as exc:
            flagged["failed"].extend(f"{r['cardid']}:{r['variant']}" for r in rows)
            job.error("set {}: inserting {} prices failed: {}", setid, len(rows), exc)

    set_total = record_set_total(engine, setid)
    job.log.info("set {}: {} new prices, set total {}", setid, inserted, set_total)
    return {
        "mappings": len(mappings),
        "inserted": inserted,
        "set_price": set_total,
        "flagged": flagged,
    }


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
        progress_id = start_progress(engine, schema.price_update_logs)

        details: dict[str, Any] = {}
        flagged_counts: dict[str, int] = {}
        for index, current in enumerate(setids, start=1):
            summary = collect_set(engine, tcgp, current, job, delay)
            if summary is not None:
                details[current] = summary
                flagged_counts[current] = sum(len(v) for v in summary["flagged"].values())
            update_progress(
                engine,
                schema.price_update_logs,
                progress_id,
                index / len(setids) * 100,
                details,
                flagged_counts,
            )
        update_progress(engine, schema.price_update_logs, progress_id, 100, finished=True)
    return job.result()
