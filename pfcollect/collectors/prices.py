from __future__ import annotations

from sqlalchemy.engine import Engine

from pfcollect.clients.ptcg import CardCatalogClient
from pfcollect.collectors._common import select_setids
from pfcollect.collectors.cards import collect_set
from pfcollect.jobs.base import METHOD_MANUAL, JobResult, tracked_job

JOB_NAME = "collectPrice"


def run(
    engine: Engine,
    setid: str | None = None,
    client: CardCatalogClient | None = None,
    method: str = METHOD_MANUAL,
    log_dir: str | None = None,
) -> JobResult:
    """Record the catalog's raw price snapshot for every card, without touching metadata."""
    client = client or CardCatalogClient.from_settings()

    with tracked_job(engine, JOB_NAME, method, log_dir) as job:
        for current in select_setids(engine, setid):
            collect_set(engine, client, current, job)
    return job.result()
