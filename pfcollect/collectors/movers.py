from __future__ import annotations

from datetime import UTC, date, datetime, timedelta
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.engine import Engine

from pfcollect.db import schema
from pfcollect.db.writers import json_loads
from pfcollect.jobs.base import METHOD_MANUAL, JobResult, tracked_job
from pfcollect.utils.time import utc_today

JOB_NAME = "collectAnalysis"
LOOKBACK_DAYS = 3


def _market(prices: dict[str, Any] | None, variant: str) -> float | None:
    entry = (prices or {}).get(variant)
    if not isinstance(entry, dict):
        return None
    value = entry.get("market")
    return float(value) if isinstance(value, (int, float)) else None


def mover_rows(
    snapshots: list[tuple[str, Any, datetime]],
    cards: dict[str, dict[str, Any]],
    today: date,
) -> list[dict[str, Any]]:
    """Compare each card's latest snapshot with its snapshot from exactly LOOKBACK_DAYS ago."""
    then_day = today - timedelta(days=LOOKBACK_DAYS)
    latest: dict[str, tuple[datetime, Any]] = {}
    then: dict[str, tuple[datetime, Any]] = {}
    for cardid, prices, updated in snapshots:
        if cardid not in latest or updated > latest[cardid][0]:
            latest[cardid] = (updated, prices)
        if updated.date() == then_day and (cardid not in then or updated > then[cardid][0]):
            then[cardid] = (updated, prices)

    rows = []
    for cardid, (_, now_raw) in latest.items():
        if cardid not in then:
            continue
        now_prices = json_loads(now_raw) or {}
        then_prices = json_loads(then[cardid][1]) or {}
        card = cards.get(cardid, {})
        for variant in now_prices:
            nowprice = _market(now_prices, variant)
            thenprice = _market(then_prices, variant)
            if not nowprice or not thenprice:
                continue
            images = json_loads(card.get("images")) or {}
            rows.append(
                {
                    "cardid": cardid,
                    "card": card.get("name"),
                    "variant": variant,
                    "setname": card.get("setname"),
                    "image": images.get("large") or "",
                    "nowprice": nowprice,
                    "thenprice": thenprice,
                    "change_3d": (nowprice - thenprice) / thenprice,
                }
            )
    rows.sort(key=lambda r: r["change_3d"], reverse=True)
    return rows


def run(engine: Engine, method: str = METHOD_MANUAL, log_dir: str | None = None) -> JobResult:
    today = utc_today()
    since = datetime.combine(today - timedelta(days=LOOKBACK_DAYS), datetime.min.time(), tzinfo=UTC)
    cp, c, s = schema.card_prices, schema.cards, schema.sets

    with tracked_job(engine, JOB_NAME, method, log_dir) as job:
        with engine.connect() as conn:
            snapshots = [
                tuple(r)
                for r in conn.execute(
                    select(cp.c.cardid, cp.c.prices, cp.c.updated).where(
                        cp.c.prices.is_not(None), cp.c.updated >= since
                    )
                )
            ]
            cards = {
                r["cardid"]: dict(r)
                for r in conn.execute(
                    select(c.c.cardid, c.c.name, c.c.images, s.c.name.label("setname")).select_from(
                        c.outerjoin(s, s.c.setid == c.c.setid)
                    )
                ).mappings()
            }

        rows = mover_rows(snapshots, cards, today)
        with engine.begin() as conn:
            conn.execute(delete(schema.movers))
            if rows:
                conn.execute(schema.movers.insert(), rows)
        job.log.info("stored {} 3-day movers", len(rows))
    return job.result()
