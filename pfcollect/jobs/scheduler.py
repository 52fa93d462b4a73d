from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from apscheduler.schedulers.blocking import BlockingScheduler
from loguru import logger
from sqlalchemy.engine import Engine

from pfcollect.config import Settings, load_settings
from pfcollect.db.engine import get_engine
from pfcollect.jobs.base import METHOD_SYSTEM
from pfcollect.jobs.job_logging import configure_console
from pfcollect.jobs.registry import get_job


@dataclass(frozen=True)
class Step:
    job: str
    options: dict[str, Any] = field(default_factory=dict)


NIGHTLY_CHAIN: tuple[Step, ...] = (
    Step("collectCurrencyRates"),
    Step("collectPrice"),
    Step("collectCardPrices"),
    Step("collectSealedPrices"),
    Step("collectAllPortfolioValues"),
    Step("collectAnalysis"),
    Step("collectPriceChanges"),
    Step("collectGradedAnalysis"),
    Step("collectSealedAnalysis"),
)

WEEKLY_CATALOG: tuple[Step, ...] = (
    Step("collectSets", {"meta": True, "image": True}),
    Step("collectCards", {"meta": True, "image": True}),
    Step("initPriceMap"),
)


def run_step(engine: Engine, step: Step) -> bool:
    """Run one job; any exception is logged and reported as False so the scheduler keeps going."""
    job = get_job(step.job)
    if job is None:
        logger.error("Scheduled job '{}' is not registered", step.job)
        return False
    try:
        result = job(engine, method=METHOD_SYSTEM, **step.options)
    except Exception:
        logger.exception("Scheduled job {} failed", step.job)
        return False
    logger.info("Scheduled job {} finished: {}", step.job, result.to_dict())
    return result.state


def run_chain(engine: Engine, steps: Sequence[Step]) -> list[bool]:
    """Run steps in order; a failing step does not stop the ones after it."""
    return [run_step(engine, step) for step in steps]


def build_scheduler(engine: Engine, settings: Settings) -> BlockingScheduler:
    scheduler = BlockingScheduler(
        timezone=settings.scheduler_timezone,
        job_defaults={
            "max_instances": settings.scheduler_max_instances,
            "coalesce": settings.scheduler_coalesce,
            "misfire_grace_time": settings.scheduler_misfire_grace_seconds,
        },
    )
    scheduler.add_job(
        run_chain, "cron", args=[engine, NIGHTLY_CHAIN], hour=2, minute=0, id="nightly_chain"
    )
    scheduler.add_job(
        run_chain,
        "cron",
        args=[engine, WEEKLY_CATALOG],
        day_of_week="sun",
        hour=0,
        minute=30,
        id="weekly_catalog",
    )
    scheduler.add_job(
        run_step,
        "cron",
        args=[engine, Step("collectSprites")],
        day=1,
        hour=1,
        minute=0,
        id="monthly_sprites",
    )
    if settings.discord_cleanup_enabled:
        scheduler.add_job(
            run_step, "cron", args=[engine, Step("discordCleanup")], minute="*/5", id="discord_cleanup"
        )
    return scheduler


def main() -> int:
    configure_console()
    settings = load_settings()
    engine = get_engine(settings)
    scheduler = build_scheduler(engine, settings)

    logger.info("Scheduler starting with jobs: {}", [j.id for j in scheduler.get_jobs()])
    try:
        scheduler.start()
    except (KeyboardInterrupt, SystemExit):
        logger.info("Scheduler stopping...")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
