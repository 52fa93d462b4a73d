from __future__ import annotations

import argparse
import json

from loguru import logger
from sqlalchemy.engine import Engine

from pfcollect.config import load_settings
from pfcollect.db.engine import get_engine
from pfcollect.db.healthcheck import run_healthcheck
from pfcollect.db.schema import create_schema
from pfcollect.jobs.base import METHOD_MANUAL
from pfcollect.jobs.job_logging import configure_console
from pfcollect.jobs.registry import JOBS, get_job
from pfcollect.ops.run_logger import fail_stale_running_runs

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_UNKNOWN_JOB = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run one collector or analytics job.")
    parser.add_argument("--collect", help=f"Job name: {', '.join(sorted(JOBS))}.")
    parser.add_argument("--meta", action="store_true", help="Write catalog metadata.")
    parser.add_argument("--image", action="store_true", help="Upload images to object storage.")
    parser.add_argument("--set", dest="setid", default=None, help="Restrict to one set id.")
    parser.add_argument("--init-db", action="store_true", help="Create missing tables and exit.")
    parser.add_argument("--check-db", action="store_true", help="Probe the database and exit.")
    parser.add_argument("--log-level", default="INFO")
    return parser


def main(argv: list[str] | None = None, engine: Engine | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_console(args.log_level)
    logger.info(" --- CLI called with args: {} --- ", vars(args))

    if engine is None:
        engine = get_engine(load_settings())

    if args.check_db:
        logger.info("Database OK: {}", run_healthcheck(engine))
        return EXIT_OK
    if args.init_db:
        create_schema(engine)
        logger.info("Schema created")
        return EXIT_OK

    job = get_job(args.collect or "")
    if job is None:
        logger.error("Unknown job '{}'. Choose one of: {}", args.collect, ", ".join(sorted(JOBS)))
        return EXIT_UNKNOWN_JOB

    stale = fail_stale_running_runs(engine, job.name)
    if stale:
        logger.warning("Marked {} stale {} runs as FAILED", stale, job.name)

    logger.info("Starting {} meta={} image={} set={}", job.name, args.meta, args.image, args.setid)
    result = job(engine, method=METHOD_MANUAL, meta=args.meta, image=args.image, setid=args.setid)
    logger.info("Finished {} results: {}", job.name, json.dumps(result.to_dict()))
    return EXIT_OK if result.state else EXIT_FAILED


if __name__ == "__main__":
    raise SystemExit(main())
