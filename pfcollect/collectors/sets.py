from __future__ import annotations

from typing import Any

from sqlalchemy.engine import Engine

from pfcollect.clients.http import ApiClient
from pfcollect.clients.ptcg import CardCatalogClient
from pfcollect.collectors._common import transfer_image
from pfcollect.db import schema
from pfcollect.db.writers import json_dumps, upsert_rows
from pfcollect.jobs.base import METHOD_MANUAL, JobResult, tracked_job
from pfcollect.storage.spaces import SpacesStorage

JOB_NAME = "collectSets"


def set_row(item: dict[str, Any], storage: SpacesStorage) -> dict[str, Any]:
    setid = item["id"]
    return {
        "setid": setid,
        "name": item.get("name") or setid,
        "series": item.get("series"),
        "printedtotal": item.get("printedTotal"),
        "total": item.get("total"),
        "legalities": json_dumps(item.get("legalities")),
        "ptcgocode": item.get("ptcgoCode"),
        "releaseddate": item.get("releaseDate"),
        "updatedat": item.get("updatedAt"),
        "imgsymbol": storage.public_url(f"images/{setid}/symbol.png"),
        "imglogo": storage.public_url(f"images/{setid}/logo.png"),
    }


def run(
    engine: Engine,
    meta: bool = False,
    image: bool = False,
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
        items = client.get_sets()
        job.log.info("catalog returned {} sets", len(items))

        if meta:
            rows = [set_row(item, storage) for item in items]
            with engine.begin() as conn:
                n = upsert_rows(conn, schema.sets, rows, ["setid"])
            job.log.info("upserted {} sets", n)

        if image:
            uploaded = 0
            for item in items:
                images = item.get("images") or {}
                for kind in ("symbol", "logo"):
                    key = f"images/{item['id']}/{kind}.png"
                    uploaded += transfer_image(http, storage, images.get(kind), key, job)
            job.log.info("uploaded {} set images", uploaded)
    return job.result()
