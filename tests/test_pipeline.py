"""Tests for the staged price-change pipeline."""

from datetime import date, datetime, timedelta, timezone

import pytest
from sqlalchemy import insert, select
from sqlalchemy.exc import OperationalError

from conftest import add_card_prices, table_rows
from pfcollect.analytics import pipeline
from pfcollect.analytics.variants import CARD, GRADED, SEALED
from pfcollect.db import schema

D = date(2024, 3, 10)
WEEK_AGO = D - timedelta(days=7)
STAMP = datetime(2024, 3, 10, tzinfo=timezone.utc)


def _tracking(engine, variant) -> dict[str, dict]:
    return {r["setid"]: r for r in table_rows(engine, variant.tracking)}


def _production(engine, variant) -> list[dict]:
    rows = table_rows(engine, variant.production)
    return sorted(rows, key=lambda r: tuple(r[c] for c in variant.key_columns))


@pytest.fixture
def priced(seeded):
    add_card_prices(
        seeded,
        [
            ("A", "normal", 12.0, D),
            ("A", "normal", 10.0, WEEK_AGO),
            ("B", "holofoil", 30.0, D),
            ("B", "holofoil", 40.0, WEEK_AGO),
            ("C", "normal", 5.0, D),
        ],
    )
    return seeded


@pytest.fixture
def stale_production(priced):
    with priced.begin() as conn:
        conn.execute(
            insert(schema.card_changes),
            [{"item_id": "OLD", "variant": "normal", "current_price": 1.0}],
        )
    return priced


def _fail_on(setid: str, monkeypatch):
    original = pipeline.load_observations

    def flaky(conn, variant, partition):
        if partition == setid:
            raise RuntimeError("simulated constraint violation")
        return original(conn, variant, partition)

    monkeypatch.setattr(pipeline, "load_observations", flaky)


class TestInitialize:
    def test_seeds_and_resets_tracking(self, seeded):
        assert pipeline.initialize(seeded, CARD) == 2
        tracking = _tracking(seeded, CARD)
        assert set(tracking) == {"s1", "s2"}
        assert all(r["status"] == "PENDING" for r in tracking.values())

        with seeded.begin() as conn:
            conn.execute(
                schema.card_changes_tracking.update().values(status="FAILED", record_count=9)
            )
        pipeline.initialize(seeded, CARD)
        tracking = _tracking(seeded, CARD)
        assert all(r["status"] == "PENDING" and r["record_count"] == 0 for r in tracking.values())

    def test_recreates_empty_staging(self, seeded):
        pipeline.initialize(seeded, CARD)
        with seeded.begin() as conn:
            conn.execute(insert(schema.card_changes_staging), [{"item_id": "X", "variant": "v"}])
        pipeline.initialize(seeded, CARD)
        assert table_rows(seeded, schema.card_changes_staging) == []


class TestRunPipeline:
    def test_week_back_scenario(self, priced, log_dir):
        result = pipeline.run_price_change_pipeline(priced, CARD, log_dir=log_dir)

        assert result.state is True
        assert result.errors == 0
        rows = _production(priced, CARD)
        assert [(r["item_id"], r["variant"]) for r in rows] == [
            ("A", "normal"),
            ("B", "holofoil"),
            ("C", "normal"),
        ]
        a, b, c = rows
        assert a["previous_price_1w"] == 10.0
        assert a["percentage_change_1w"] == pytest.approx(20.0)
        assert b["previous_price_1w"] == 40.0
        assert b["percentage_change_1w"] == pytest.approx(-25.0)
        assert c["previous_price_1w"] is None
        assert c["percentage_change_1w"] is None

    def test_success_leaves_staging_empty_and_tracking_completed(self, priced, log_dir):
        pipeline.run_price_change_pipeline(priced, CARD, log_dir=log_dir)

        assert table_rows(priced, CARD.staging) == []
        tracking = _tracking(priced, CARD)
        assert {k: v["status"] for k, v in tracking.items()} == {"s1": "COMPLETED", "s2": "COMPLETED"}

    def test_production_equals_union_of_partitions(self, stale_production, log_dir):
        pipeline.run_price_change_pipeline(stale_production, CARD, log_dir=log_dir)
        ids = {r["item_id"] for r in _production(stale_production, CARD)}
        assert ids == {"A", "B", "C"}

    def test_failed_partition_leaves_production_untouched(self, stale_production, log_dir, monkeypatch):
        before = _production(stale_production, CARD)
        _fail_on("s2", monkeypatch)

        result = pipeline.run_price_change_pipeline(stale_production, CARD, log_dir=log_dir)

        assert result.state is False
        assert result.errors >= 1
        assert _production(stale_production, CARD) == before
        tracking = _tracking(stale_production, CARD)
        assert tracking["s2"]["status"] == "FAILED"
        assert "simulated" in tracking["s2"]["error_message"]

    def test_partition_isolation(self, priced, log_dir, monkeypatch):
        _fail_on("s2", monkeypatch)
        pipeline.run_price_change_pipeline(priced, CARD, log_dir=log_dir)

        s1 = _tracking(priced, CARD)["s1"]
        assert s1["status"] == "COMPLETED"
        assert s1["record_count"] == 2
        staged = {r["item_id"] for r in table_rows(priced, CARD.staging)}
        assert staged == {"A", "B"}

    def test_idempotent(self, priced, log_dir):
        pipeline.run_price_change_pipeline(priced, CARD, log_dir=log_dir)
        first = _production(priced, CARD)
        pipeline.run_price_change_pipeline(priced, CARD, log_dir=log_dir)
        assert _production(priced, CARD) == first

    def test_recovers_on_next_run(self, priced, log_dir, monkeypatch):
        _fail_on("s2", monkeypatch)
        assert pipeline.run_price_change_pipeline(priced, CARD, log_dir=log_dir).state is False
        monkeypatch.undo()
        assert pipeline.run_price_change_pipeline(priced, CARD, log_dir=log_dir).state is True
        assert len(_production(priced, CARD)) == 3

    def test_finalize_failure_rolls_back(self, stale_production, log_dir, monkeypatch):
        before = _production(stale_production, CARD)

        def broken(engine, variant):
            raise OperationalError("INSERT", {}, Exception("disk full"))

        monkeypatch.setattr(pipeline, "finalize", broken)
        result = pipeline.run_price_change_pipeline(stale_production, CARD, log_dir=log_dir)

        assert result.state is False
        assert result.errors == 1
        assert _production(stale_production, CARD) == before
        assert all(r["status"] == "COMPLETED" for r in _tracking(stale_production, CARD).values())

    def test_status_write_failure_stays_in_its_partition(self, priced, log_dir, monkeypatch):
        original = pipeline._set_status

        def broken(conn, variant, setid, status, **kwargs):
            if setid == "s1" and status == pipeline.IN_PROGRESS:
                raise OperationalError("UPDATE", {}, Exception("lock timeout"))
            return original(conn, variant, setid, status, **kwargs)

        monkeypatch.setattr(pipeline, "_set_status", broken)
        result = pipeline.run_price_change_pipeline(priced, CARD, log_dir=log_dir)

        assert result.state is False
        tracking = _tracking(priced, CARD)
        assert tracking["s1"]["status"] == "FAILED"
        assert "lock timeout" in tracking["s1"]["error_message"]
        assert tracking["s2"]["status"] == "COMPLETED"
        assert _production(priced, CARD) == []

    def test_unrecordable_failure_still_returns_outcome(self, priced, monkeypatch):
        pipeline.initialize(priced, CARD)
        original = pipeline._set_status

        def broken(conn, variant, setid, status, **kwargs):
            if setid == "s1":
                raise OperationalError("UPDATE", {}, Exception("connection lost"))
            return original(conn, variant, setid, status, **kwargs)

        monkeypatch.setattr(pipeline, "_set_status", broken)
        outcomes = pipeline.process_all(priced, CARD)

        assert [(o.setid, o.ok) for o in outcomes] == [("s1", False), ("s2", True)]
        assert "connection lost" in outcomes[0].error
        assert _tracking(priced, CARD)["s1"]["status"] == "PENDING"

    def test_cleanup_failure_after_promotion_keeps_success(self, stale_production, log_dir, monkeypatch):
        def broken(engine, variant):
            raise OperationalError("DELETE", {}, Exception("lock timeout"))

        monkeypatch.setattr(pipeline, "cleanup", broken)
        result = pipeline.run_price_change_pipeline(stale_production, CARD, log_dir=log_dir)

        assert result.state is True
        assert result.errors == 0
        assert {r["item_id"] for r in _production(stale_production, CARD)} == {"A", "B", "C"}

    def test_run_is_logged(self, priced, log_dir):
        result = pipeline.run_price_change_pipeline(priced, CARD, method="SYSTEM", log_dir=log_dir)
        with priced.connect() as conn:
            row = conn.execute(
                select(schema.collect_logs).where(schema.collect_logs.c.id == result.log_id)
            ).mappings().one()
        assert row["caller"] == "collectPriceChanges"
        assert row["method"] == "SYSTEM"
        assert row["status"] == "COMPLETED"


class TestFinalize:
    def test_swaps_in_single_step(self, stale_production):
        pipeline.initialize(stale_production, CARD)
        with stale_production.begin() as conn:
            conn.execute(
                insert(CARD.staging), [{"item_id": "NEW", "variant": "normal", "current_price": 2.0}]
            )
        assert pipeline.finalize(stale_production, CARD) == 1
        assert [r["item_id"] for r in _production(stale_production, CARD)] == ["NEW"]


class TestOtherVariants:
    def test_graded(self, seeded, log_dir):
        with seeded.begin() as conn:
            conn.execute(
                insert(schema.graded_price_history),
                [
                    {"cardid": "A", "variant": "holofoil", "grade": "10", "price": 200.0, "sold_date": D},
                    {"cardid": "A", "variant": "holofoil", "grade": "10", "price": 100.0, "sold_date": WEEK_AGO},
                    {"cardid": "B", "variant": "normal", "grade": "9", "price": 50.0, "sold_date": D - timedelta(days=3)},
                ],
            )
        result = pipeline.run_price_change_pipeline(seeded, GRADED, log_dir=log_dir)

        assert result.state is True
        rows = _production(seeded, GRADED)
        assert [(r["item_id"], r["grade"]) for r in rows] == [("A", "10"), ("B", "9")]
        assert rows[0]["percentage_change_1w"] == pytest.approx(100.0)
        assert rows[1]["latest_update_date"] == D - timedelta(days=3)

    def test_sealed(self, seeded, log_dir):
        with seeded.begin() as conn:
            conn.execute(
                insert(schema.sealed),
                [{"sealedid": "box1", "tcgp_id": 1, "name": "Booster Box", "setid": "s1"}],
            )
            conn.execute(
                insert(schema.sealed_price_history),
                [
                    {"sealedid": "box1", "price": 110.0, "updatedsource": D, "updated": STAMP, "source": "tcgplayer"},
                    {"sealedid": "box1", "price": 100.0, "updatedsource": D - timedelta(days=1), "updated": STAMP, "source": "tcgplayer"},
                ],
            )
        result = pipeline.run_price_change_pipeline(seeded, SEALED, log_dir=log_dir)

        assert result.state is True
        (row,) = _production(seeded, SEALED)
        assert row["item_id"] == "box1"
        assert row["previous_price"] == 100.0
        assert row["percentage_change"] == pytest.approx(10.0)
        assert row["price_source_previous"] == "WINDOW"
