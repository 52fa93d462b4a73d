from __future__ import annotations

import time
from collections.abc import Iterator, Sequence
from typing import Any

import requests
from botocore.exceptions import BotoCoreError, ClientError
from sqlalchemy import Table, text, update
from sqlalchemy.engine import Engine

from pfcollect.clients.http import ApiClient
from pfcollect.clients.ptcg import CardCatalogClient
from pfcollect.clients.tcgplayer import TcgPlayerClient, chunked
from pfcollect.db.writers import json_dumps
from pfcollect.jobs.base import JobRun
from pfcollect.storage.spaces import SpacesStorage
from pfcollect.utils.time import utc_now

SOURCE_TCGPLAYER = "tcgplayer"
TRANSFER_ERRORS = (requests.RequestException, BotoCoreError, ClientError)


def select_setids(engine: Engine, setid: str | None = None) -> list[str]:
    """Known sets, newest release first; a single set when ``setid`` is given."""
    with engine.connect() as conn:
        if setid:
            rows = conn.execute(
                text("SELECT setid FROM pfdata_sets WHERE setid = :setid;"), {"setid": setid}
            )
        else:
            rows = conn.execute(
                text("SELECT setid FROM pfdata_sets ORDER BY releaseddate DESC, setid;")
            )
        return [str(r) for r in rows.scalars()]


def iter_set_card_pages(
    client: CardCatalogClient, setid: str, job: JobRun
) -> Iterator[list[dict[str, Any]]]:
    """Yield each page of cards for one set; a failed page is counted and skipped."""
    try:
        first = client.card_page(setid, page=1)
    except requests.RequestException as exc:
        job.error("card catalog unavailable for set {}: {}", setid, exc)
        return
    yield list(first.get("data") or [])

    for page in range(2, client.total_pages(first) + 1):
        try:
            payload = client.card_page(setid, page=page)
        except requests.RequestException as exc:
            job.error("set {} page {} failed: {}", setid, page, exc)
            continue
        yield list(payload.get("data") or [])


def transfer_image(
    http: ApiClient,
    storage: SpacesStorage,
    source_url: str | None,
    key: str,
    job: JobRun,
    content_type: str = "image/png",
) -> bool:
    if not source_url:
        job.error("no source image for {}", key)
        return False
    try:
        body = http.get_bytes(source_url)
        storage.upload(key, body, content_type)
    except TRANSFER_ERRORS as exc:
        job.error("image {} -> {} failed: {}", source_url, key, exc)
        return False
    return True


def fetch_market_prices(
    client: TcgPlayerClient,
    product_ids: Sequence[str],
    job: JobRun,
    delay: float = 0.0,
) -> Iterator[list[dict[str, Any]]]:
    """Pricing results per chunk of product ids; a failed chunk is counted and skipped."""
    for chunk in chunked(list(product_ids)):
        try:
            results = client.market_prices(chunk)
        except requests.RequestException as exc:
            job.error("pricing request for {} products failed: {}", len(chunk), exc)
            continue
        yield results
        if delay:
            time.sleep(delay)


def start_progress(engine: Engine, table: Table) -> int:
    with engine.begin() as conn:
        row = conn.execute(
            table.insert()
            .values(progress=0, time_started=utc_now(), progress_details="{}", flagged="{}")
            .returning(table.c.id)
        ).one()
        return int(row[0])


def update_progress(
    engine: Engine,
    table: Table,
    progress_id: int,
    progress: float,
    details: dict[str, Any] | None = None,
    flagged: dict[str, Any] | None = None,
    finished: bool = False,
) -> None:
    values: dict[str, Any] = {"progress": round(float(progress), 1)}
    if details is not None:
        values["progress_details"] = json_dumps(details)
    if flagged is not None:
        values["flagged"] = json_dumps(flagged)
    if finished:
        values["time_ended"] = utc_now()
    with engine.begin() as conn:
        conn.execute(update(table).where(table.c.id == progress_id).values(**values))
