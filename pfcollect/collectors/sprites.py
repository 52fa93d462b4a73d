from __future__ import annotations

from sqlalchemy.engine import Engine

from pfcollect.clients.http import ApiClient
from pfcollect.collectors._common import transfer_image
from pfcollect.config import load_settings
from pfcollect.jobs.base import METHOD_MANUAL, JobResult, tracked_job
from pfcollect.storage.spaces import SpacesStorage

JOB_NAME = "collectSprites"
FIRST_DEX = 1
LAST_DEX = 1025


def run(
    engine: Engine,
    first: int = FIRST_DEX,
    last: int = LAST_DEX,
    storage: SpacesStorage | None = None,
    http: ApiClient | None = None,
    base_url: str | None = None,
    method: str = METHOD_MANUAL,
    log_dir: str | None = None,
) -> JobResult:
    base_url = (base_url or load_settings().sprite_url).rstrip("/")
    storage = storage or SpacesStorage.from_settings()
    http = http or ApiClient()

    with tracked_job(engine, JOB_NAME, method, log_dir) as job:
        uploaded = 0
        for number in range(first, last + 1):
            uploaded += transfer_image(
                http,
                storage,
                f"{base_url}/{number}.gif",
                f"images/sprites/{number}.gif",
                job,
                content_type="image/gif",
            )
        job.log.info("uploaded {} of {} sprites", uploaded, last - first + 1)
    return job.result()
