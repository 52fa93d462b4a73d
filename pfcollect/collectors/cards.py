from __future__ import annotations

from typing import Any

from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from pfcollect.clients.http import ApiClient
from pfcollect.clients.ptcg import CardCatalogClient
from pfcollect.collectors._common import (
    SOURCE_TCGPLAYER,
    iter_set_card_pages,
    select_setids,
    transfer_image,
)
from pfcollect.db import schema
from pfcollect.db.writers import insert_ignore_duplicates, json_dumps, upsert_rows
from pfcollect.jobs.base import METHOD_MANUAL, JobResult, JobRun, tracked_job
from pfcollect.storage.spaces import SpacesStorage
from pfcollect.utils.time import utc_now

JOB_NAME = "collectCards"

_JSON_FIELDS = {
    "subtypes": "subtypes",
    "types": "types",
    "evolvesto": "evolvesTo",
    "rules": "rules",
    "ancienttrait": "ancientTrait",
    "abilities": "abilities",
    "attacks": "attacks",
    "weaknesses": "weaknesses",
    "resistances": "resistances",
    "retreatcost": "retreatCost",
    "nationalpokedexnumbers": "nationalPokedexNumbers",
    "legalities": "legalities",
    "tcgplayer": "tcgplayer",
    "cardmarket": "cardmarket",
}


def card_row(card: dict[str, Any], storage: SpacesStorage) -> dict[str, Any]:
    set_info = card.get("set") or {}
    setid = set_info.get("id")
    number = card.get("number")
    row = {
        "cardid": card["id"],
        "name": card.get("name") or card["id"],
        "supertype": card.get("supertype"),
        "level": card.get("level"),
        "hp": card.get("hp"),
        "evolvesfrom": card.get("evolvesFrom"),
        "convertedretreatcost": card.get("convertedRetreatCost"),
        "set_info": json_dumps(set_info),
        "number": number,
        "artist": card.get("artist"),
        "rarity": card.get("rarity"),
        "flavortext": card.get("flavorText"),
        "regulationmark": card.get("regulationMark"),
        "images": json_dumps(
            {
                "small": storage.public_url(f"images/{setid}/{number}.png"),
                "large": storage.public_url(f"images/{setid}/{number}_hires.png"),
            }
        ),
        "setid": setid,
    }
    for column, field in _JSON_FIELDS.items():
        row[column] = json_dumps(card.get(field))
    return row


def price_snapshot(card: dict[str, Any], now) -> dict[str, Any] | None:
    """Raw TCGPlayer price block as published by the catalog; None when the card has none."""
    tcgplayer = card.get("tcgplayer") or {}
    if not tcgplayer.get("prices"):
        return None
    return {
        "cardid": card["id"],
        "source": SOURCE_TCGPLAYER,
        "prices": json_dumps(tcgplayer["prices"]),
        "updatedsource": tcgplayer.get("updatedAt"),
        "updated": now,
    }


def collect_set(
    engine: Engine,
    client: CardCatalogClient,
    setid: str,
    job: JobRun,
    meta: bool = False,
    image: bool = False,
    storage: SpacesStorage | None = None,
    http: ApiClient | None = None,
) -> int:
    """Page through one set; always records price snapshots, optionally metadata and images."""
    now = utc_now()
    cards: list[dict[str, Any]] = []
    for page in iter_set_card_pages(client, setid, job):
        cards.extend(page)
    if not cards:
        return 0

    snapshots = [s for s in (price_snapshot(c, now) for c in cards) if s is not None]
    try:
        with engine.begin() as conn:
            if meta:
                upsert_rows(conn, schema.cards, [card_row(c, storage) for c in cards], ["cardid"])
            inserted = insert_ignore_duplicates(
                conn, schema.card_prices, snapshots, ["cardid", "source", "updatedsource"]
            )
    except SQLAlchemyError as exc:
        job.error("set {}: writing {} cards failed: {}", setid, len(cards), exc)
        return 0
    job.log.info("set {}: {} cards, {} new price snapshots", setid, len(cards), inserted)

    if image:
        for card in cards:
            images = card.get("images") or {}
            number = card.get("number")
            transfer_image(http, storage, images.get("small"), f"images/{setid}/{number}.png", job)
            transfer_image(
                http, storage, images.get("large"), f"images/{setid}/{number}_hires.png", job
            )
    return len(cards)


def run(
    engine: Engine,
    meta: bool = False,
    image: bool = False,
    setid: str | None = None,
    client: CardCatalogClient | None = None,
    storage: SpacesStorage | None = None,
    http: ApiClient | None = None,
    method: str = METHOD_MANUAL,
    log_dir: str | None = None,
) -> JobResult:
    client = client or CardCatalogClient.from_settings()
    storage = storage or SpacesStorage.from_settings()
    http = http or ApiClient()

    with tracked_job(engine, JOB_NAME, method, log_dir) as job:
        setids = select_setids(engine, setid)
        job.log.info("collecting cards for {} sets", len(setids))
        total = 0
        for current in setids:
            total += collect_set(engine, client, current, job, meta, image, storage, http)
        job.stats["cards"] = total
    return job.result()
