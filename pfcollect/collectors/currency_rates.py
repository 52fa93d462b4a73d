from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from sqlalchemy.engine import Engine

from pfcollect.clients.fxrates import FxRatesClient
from pfcollect.db import schema
from pfcollect.db.writers import upsert_rows
from pfcollect.jobs.base import METHOD_MANUAL, JobResult, tracked_job
from pfcollect.utils.time import utc_now

JOB_NAME = "collectCurrencyRates"


def _rate_timestamp(payload: dict[str, Any]) -> datetime:
    raw = payload.get("date")
    if not raw:
        return utc_now()
    stamp = datetime.fromisoformat(str(raw).replace("Z", "+00:00"))
    return stamp if stamp.tzinfo else stamp.replace(tzinfo=UTC)


def rate_rows(payload: dict[str, Any]) -> list[dict[str, Any]]:
    """Three-letter currency codes only; the feed also carries metals and crypto tickers."""
    stamp = _rate_timestamp(payload)
    return [
        {"currency": code, "rate": float(rate), "timestamp": stamp}
        for code, rate in sorted((payload.get("rates") or {}).items())
        if len(code) == 3 and rate is not None
    ]


def run(
    engine: Engine,
    client: FxRatesClient | None = None,
    method: str = METHOD_MANUAL,
    log_dir: str | None = None,
) -> JobResult:
    client = client or FxRatesClient.from_settings()

    with tracked_job(engine, JOB_NAME, method, log_dir) as job:
        rows = rate_rows(client.latest_usd())
        with engine.begin() as conn:
            upsert_rows(conn, schema.usd_pairs, rows, ["currency"])
        job.log.info("updated {} currency rates", len(rows))
    return job.result()
