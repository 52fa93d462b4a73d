from __future__ import annotations

from typing import Any

from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from pfcollect.db import schema
from pfcollect.db.writers import insert_ignore_duplicates, json_loads
from pfcollect.jobs.base import METHOD_MANUAL, JobResult, tracked_job
from pfcollect.utils.time import utc_now

JOB_NAME = "collectAllPortfolioValues"


def market_price(prices: Any, variant: str) -> float:
    """Market price of one variant from a raw snapshot; missing or malformed entries count as 0."""
    try:
        value = (json_loads(prices) or {}).get(variant, {}).get("market")
    except (ValueError, AttributeError):
        return 0.0
    return float(value) if isinstance(value, (int, float)) else 0.0


def portfolio_value(engine: Engine, userid: str) -> float:
    with engine.connect() as conn:
        rows = conn.execute(
            text("""
                SELECT i.variant, p.prices
                FROM pf_inventory i
                JOIN pfdata_cardprices p ON p.cardid = i.cardid
                WHERE i.userid = :userid
                  AND i.status = :active
                  AND p.updated = (
                      SELECT MAX(p2.updated) FROM pfdata_cardprices p2
                      WHERE p2.cardid = i.cardid
                  );
                """),
            {"userid": userid, "active": True},
        ).all()
    return sum(market_price(prices, variant) for variant, prices in rows)


def run(engine: Engine, method: str = METHOD_MANUAL, log_dir: str | None = None) -> JobResult:
    with tracked_job(engine, JOB_NAME, method, log_dir) as job:
        with engine.connect() as conn:
            users = list(
                conn.execute(
                    text("SELECT DISTINCT userid FROM pf_inventory ORDER BY userid;")
                ).scalars()
            )
        job.log.info("valuing {} portfolios", len(users))

        now = utc_now()
        snapshots = []
        for userid in users:
            try:
                value = portfolio_value(engine, userid)
            except SQLAlchemyError as exc:
                job.error("portfolio value failed for {}: {}", userid, exc)
                continue
            snapshots.append({"userid": userid, "value": value, "date": now.date(), "timestamp": now})

        with engine.begin() as conn:
            n = insert_ignore_duplicates(conn, schema.portfolio_snapshots, snapshots, ["userid", "date"])
        job.log.info("stored {} new portfolio snapshots", n)
    return job.result()
