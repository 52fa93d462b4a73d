from __future__ import annotations

from sqlalchemy.engine import Engine

from pfcollect.clients.admin_api import AdminApiClient
from pfcollect.jobs.base import METHOD_MANUAL, JobResult, tracked_job

JOB_NAME = "discordCleanup"


def run(
    engine: Engine,
    client: AdminApiClient | None = None,
    method: str = METHOD_MANUAL,
    log_dir: str | None = None,
) -> JobResult:
    client = client or AdminApiClient.from_settings()

    with tracked_job(engine, JOB_NAME, method, log_dir) as job:
        payload = client.discord_cleanup()
        if payload.get("success"):
            job.log.info(
                "checked {} links, removed {} in {}ms (users: {})",
                payload.get("totalLinksChecked"),
                payload.get("linksRemoved"),
                payload.get("processingTimeMs"),
                payload.get("removedUsers") or "none",
            )
        else:
            job.error("discord cleanup reported failure: {}", payload)
    return job.result()
