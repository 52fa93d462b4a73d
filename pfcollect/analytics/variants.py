from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import Table

from pfcollect.analytics.price_changes import SCOPE_ITEM, SCOPE_PARTITION
from pfcollect.db import schema


@dataclass(frozen=True)
class PipelineVariant:
    """Everything that differs between the card, graded and sealed price-change runs."""

    name: str
    job_name: str
    production: Table
    staging: Table
    tracking: Table
    key_columns: tuple[str, ...]
    # selects the key columns, price and observed for one :setid
    fact_sql: str
    current_scope: str = SCOPE_PARTITION
    partition_sql: str = "SELECT setid FROM pfdata_sets WHERE setid IS NOT NULL"


CARD = PipelineVariant(
    name="card",
    job_name="collectPriceChanges",
    production=schema.card_changes,
    staging=schema.card_changes_staging,
    tracking=schema.card_changes_tracking,
    key_columns=("item_id", "variant"),
    fact_sql="""
        SELECT h.cardid AS item_id, h.variant, h.price, h.updatedsource AS observed
        FROM pf_cards_price_history h
        JOIN pfdata_cards c ON c.cardid = h.cardid
        WHERE c.setid = :setid
          AND h.price IS NOT NULL
          AND h.updatedsource IS NOT NULL
    """,
)

GRADED = PipelineVariant(
    name="graded",
    job_name="collectGradedAnalysis",
    production=schema.graded_changes,
    staging=schema.graded_changes_staging,
    tracking=schema.graded_changes_tracking,
    key_columns=("item_id", "variant", "grade"),
    fact_sql="""
        SELECT h.cardid AS item_id, h.variant, h.grade, h.price, h.sold_date AS observed
        FROM pf_graded_cards_price_history h
        JOIN pfdata_cards c ON c.cardid = h.cardid
        WHERE c.setid = :setid
          AND h.price IS NOT NULL
          AND h.sold_date IS NOT NULL
    """,
    current_scope=SCOPE_ITEM,
)

SEALED = PipelineVariant(
    name="sealed",
    job_name="collectSealedAnalysis",
    production=schema.sealed_changes,
    staging=schema.sealed_changes_staging,
    tracking=schema.sealed_changes_tracking,
    key_columns=("item_id",),
    fact_sql="""
        SELECT h.sealedid AS item_id, h.price, h.updatedsource AS observed
        FROM pf_sealed_price_history h
        JOIN pf_sealed s ON s.sealedid = h.sealedid
        WHERE s.setid = :setid
          AND h.price IS NOT NULL
          AND h.updatedsource IS NOT NULL
    """,
)

VARIANTS: dict[str, PipelineVariant] = {v.name: v for v in (CARD, GRADED, SEALED)}
