from __future__ import annotations

from typing import Any

import requests
from sqlalchemy.engine import Engine

from pfcollect.clients.ptcg import CardCatalogClient
from pfcollect.clients.tcgplayer import TcgPlayerClient
from pfcollect.collectors._common import iter_set_card_pages, select_setids
from pfcollect.db import schema
from pfcollect.db.writers import insert_ignore_duplicates
from pfcollect.jobs.base import METHOD_MANUAL, JobResult, JobRun, tracked_job

JOB_NAME = "initPriceMap"
DEFAULT_VARIANT = "normal"

# catalog price keys -> TCGPlayer pricing subTypeName
SUBTYPE_NAMES = {
    "normal": "Normal",
    "holofoil": "Holofoil",
    "reverseHolofoil": "Reverse Holofoil",
    "1stEdition": "1st Edition",
    "1stEditionNormal": "1st Edition Normal",
    "1stEditionHolofoil": "1st Edition Holofoil",
    "unlimited": "Unlimited",
    "unlimitedNormal": "Unlimited Normal",
    "unlimitedHolofoil": "Unlimited Holofoil",
}


def card_mappings(card: dict[str, Any], product_id: str | None) -> list[dict[str, Any]]:
    prices = (card.get("tcgplayer") or {}).get("prices") or {}
    variants = list(prices) or [DEFAULT_VARIANT]
    return [
        {
            "cardid": card["id"],
            "tcgp_id": product_id,
            "tcgp_variant": SUBTYPE_NAMES.get(variant, variant),
            "pf_variant": variant,
        }
        for variant in variants
    ]


def _product_id(tcgp: TcgPlayerClient, card: dict[str, Any], job: JobRun) -> str | None:
    url = (card.get("tcgplayer") or {}).get("url")
    if not url:
        job.log.debug("no TCGPlayer url for {}", card["id"])
        return None
    try:
        return tcgp.resolve_product_id(url)
    except requests.RequestException as exc:
        job.error("product id lookup failed for {}: {}", card["id"], exc)
        return None


def run(
    engine: Engine,
    setid: str | None = None,
    client: CardCatalogClient | None = None,
    tcgp: TcgPlayerClient | None = None,
    method: str = METHOD_MANUAL,
    log_dir: str | None = None,
) -> JobResult:
    client = client or CardCatalogClient.from_settings()
    tcgp = tcgp or TcgPlayerClient.from_settings()

    with tracked_job(engine, JOB_NAME, method, log_dir) as job:
        for current in select_setids(engine, setid):
            for page in iter_set_card_pages(client, current, job):
                rows: list[dict[str, Any]] = []
                for card in page:
                    rows.extend(card_mappings(card, _product_id(tcgp, card, job)))
                with engine.begin() as conn:
                    n = insert_ignore_duplicates(
                        conn, schema.pricing_map, rows, ["cardid", "tcgp_variant", "pf_variant"]
                    )
                job.log.info("set {}: {} new pricing map rows", current, n)
    return job.result()
