"""Tests for the job registry, CLI dispatcher and scheduler wrapper."""

from unittest.mock import MagicMock

import pytest

from pfcollect.jobs import cli, registry, scheduler
from pfcollect.jobs.base import JobResult
from pfcollect.jobs.registry import JOBS, JobSpec


EXPECTED_JOBS = {
    "collectSets",
    "collectCards",
    "collectPrice",
    "initPriceMap",
    "collectCardPrices",
    "collectSealedPrices",
    "collectSealedImages",
    "collectSprites",
    "collectCurrencyRates",
    "collectAllPortfolioValues",
    "collectAnalysis",
    "collectPriceChanges",
    "collectGradedAnalysis",
    "collectSealedAnalysis",
    "discordCleanup",
}


def _stub(name: str, state: bool = True, options=("meta", "image", "setid")) -> tuple[JobSpec, MagicMock]:
    func = MagicMock(return_value=JobResult(state=state, errors=0 if state else 1, log_id=42))
    return JobSpec(name, func, options), func


class TestRegistry:
    def test_all_jobs_registered(self):
        assert set(JOBS) == EXPECTED_JOBS

    def test_filters_options(self):
        spec, func = _stub("x", options=("setid",))
        spec("engine", method="SYSTEM", meta=True, image=False, setid="s1")
        func.assert_called_once_with("engine", method="SYSTEM", setid="s1")

    def test_drops_none_options(self):
        spec, func = _stub("x")
        spec("engine", setid=None)
        func.assert_called_once_with("engine", method="MANUAL")


class TestCli:
    def test_runs_job_and_returns_zero(self, engine, monkeypatch):
        spec, func = _stub("collectSets")
        monkeypatch.setitem(registry.JOBS, "collectSets", spec)

        rc = cli.main(["--collect=collectSets", "--meta", "--image"], engine=engine)

        assert rc == cli.EXIT_OK
        func.assert_called_once_with(engine, method="MANUAL", meta=True, image=True)

    def test_set_option(self, engine, monkeypatch):
        spec, func = _stub("collectCards")
        monkeypatch.setitem(registry.JOBS, "collectCards", spec)

        cli.main(["--collect", "collectCards", "--set", "sv1"], engine=engine)

        assert func.call_args.kwargs["setid"] == "sv1"

    def test_failed_job_returns_one(self, engine, monkeypatch):
        spec, _ = _stub("collectPriceChanges", state=False)
        monkeypatch.setitem(registry.JOBS, "collectPriceChanges", spec)
        assert cli.main(["--collect=collectPriceChanges"], engine=engine) == cli.EXIT_FAILED

    def test_unknown_job(self, engine):
        assert cli.main(["--collect=nope"], engine=engine) == cli.EXIT_UNKNOWN_JOB

    def test_missing_job(self, engine):
        assert cli.main([], engine=engine) == cli.EXIT_UNKNOWN_JOB

    def test_check_db(self, engine):
        assert cli.main(["--check-db"], engine=engine) == cli.EXIT_OK

    def test_init_db(self, engine):
        assert cli.main(["--init-db"], engine=engine) == cli.EXIT_OK


class TestScheduler:
    def test_step_runs_with_system_method(self, monkeypatch):
        spec, func = _stub("collectCurrencyRates")
        monkeypatch.setitem(registry.JOBS, "collectCurrencyRates", spec)

        assert scheduler.run_step("engine", scheduler.Step("collectCurrencyRates")) is True
        func.assert_called_once_with("engine", method="SYSTEM")

    def test_exception_is_contained(self, monkeypatch):
        boom = JobSpec("collectAnalysis", MagicMock(side_effect=RuntimeError("boom")))
        monkeypatch.setitem(registry.JOBS, "collectAnalysis", boom)
        assert scheduler.run_step("engine", scheduler.Step("collectAnalysis")) is False

    def test_chain_continues_after_failure(self, monkeypatch):
        boom = JobSpec("collectAnalysis", MagicMock(side_effect=RuntimeError("boom")))
        ok, func = _stub("collectPriceChanges")
        monkeypatch.setitem(registry.JOBS, "collectAnalysis", boom)
        monkeypatch.setitem(registry.JOBS, "collectPriceChanges", ok)

        results = scheduler.run_chain(
            "engine", [scheduler.Step("collectAnalysis"), scheduler.Step("collectPriceChanges")]
        )

        assert results == [False, True]
        func.assert_called_once()

    def test_unregistered_step(self):
        assert scheduler.run_step("engine", scheduler.Step("nope")) is False

    def test_chains_only_name_registered_jobs(self):
        for step in scheduler.NIGHTLY_CHAIN + scheduler.WEEKLY_CATALOG:
            assert step.job in JOBS

    @pytest.mark.parametrize("enabled, expected", [(True, 4), (False, 3)])
    def test_build_scheduler(self, enabled, expected):
        from pfcollect.config import Settings

        settings = Settings.model_validate({"DISCORD_CLEANUP_ENABLED": enabled})
        sched = scheduler.build_scheduler("engine", settings)
        assert len(sched.get_jobs()) == expected
        assert {j.id for j in sched.get_jobs()} >= {"nightly_chain", "weekly_catalog"}
