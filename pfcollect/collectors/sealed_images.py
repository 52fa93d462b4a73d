from __future__ import annotations

import requests
from PIL import UnidentifiedImageError
from sqlalchemy import text
from sqlalchemy.engine import Engine

from pfcollect.clients.http import ApiClient
from pfcollect.collectors._common import TRANSFER_ERRORS
from pfcollect.config import load_settings
from pfcollect.imaging import convert_to_webp
from pfcollect.jobs.base import METHOD_MANUAL, JobResult, JobRun, tracked_job
from pfcollect.storage.spaces import IMMUTABLE_CACHE, SpacesStorage

JOB_NAME = "collectSealedImages"
SOURCE_FORMATS = ("png", "jpg")
_IMAGE_QUERY = "?optimizer=image&format=webp&width=1200&quality=70&strip=metadata"


def fetch_product_image(http: ApiClient, base_url: str, tcgp_id: str, job: JobRun) -> bytes | None:
    """First available source image for a product, trying each format in turn."""
    for fmt in SOURCE_FORMATS:
        url = f"{base_url}{tcgp_id}.{fmt}{_IMAGE_QUERY}"
        try:
            return http.get_bytes(url)
        except requests.RequestException as exc:
            job.log.debug("no {} image for {}: {}", fmt, tcgp_id, exc)
    return None


def run(
    engine: Engine,
    setid: str | None = None,
    storage: SpacesStorage | None = None,
    http: ApiClient | None = None,
    base_url: str | None = None,
    method: str = METHOD_MANUAL,
    log_dir: str | None = None,
) -> JobResult:
    base_url = base_url or load_settings().sealed_image_url
    storage = storage or SpacesStorage.from_settings()
    http = http or ApiClient()

    with tracked_job(engine, JOB_NAME, method, log_dir) as job:
        params = {"setid": setid} if setid else {}
        where = "AND setid = :setid" if setid else ""
        with engine.connect() as conn:
            products = conn.execute(
                text(f"""
                    SELECT tcgp_id, setid FROM pf_sealed
                    WHERE tcgp_id IS NOT NULL {where}
                    ORDER BY setid, tcgp_id;
                    """),
                params,
            ).all()
        job.log.info("{} sealed products to process", len(products))

        uploaded = 0
        for tcgp_id, product_setid in products:
            data = fetch_product_image(http, base_url, str(tcgp_id), job)
            if data is None:
                job.error("no image found for sealed product {}", tcgp_id)
                continue
            try:
                webp = convert_to_webp(data)
            except (UnidentifiedImageError, OSError) as exc:
                job.error("could not convert image for {}: {}", tcgp_id, exc)
                continue
            key = f"images/{product_setid}/sealed/{tcgp_id}.webp"
            try:
                storage.upload(key, webp, "image/webp", cache_control=IMMUTABLE_CACHE)
            except TRANSFER_ERRORS as exc:
                job.error("upload {} failed: {}", key, exc)
                continue
            uploaded += 1
        job.stats["uploaded"] = uploaded
        job.log.info("uploaded {} sealed images", uploaded)
    return job.result()
