from __future__ import annotations

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
)
from sqlalchemy.engine import Connection, Engine

metadata = MetaData()

HORIZON_SUFFIXES = ("1w", "1m", "3m", "6m", "1y")


# --- catalog ---------------------------------------------------------------

sets = Table(
    "pfdata_sets",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("setid", String(64), nullable=False, unique=True),
    Column("name", String(255), nullable=False),
    Column("series", String(255)),
    Column("printedtotal", Integer),
    Column("total", Integer),
    Column("legalities", Text),
    Column("ptcgocode", String(32)),
    Column("releaseddate", String(32)),
    Column("updatedat", String(32)),
    Column("imgsymbol", Text),
    Column("imglogo", Text),
)

cards = Table(
    "pfdata_cards",
    metadata,
    Column("cardid", String(64), primary_key=True),
    Column("name", String(255), nullable=False),
    Column("supertype", String(64)),
    Column("subtypes", Text),
    Column("level", String(32)),
    Column("hp", String(32)),
    Column("types", Text),
    Column("evolvesfrom", String(255)),
    Column("evolvesto", Text),
    Column("rules", Text),
    Column("ancienttrait", Text),
    Column("abilities", Text),
    Column("attacks", Text),
    Column("weaknesses", Text),
    Column("resistances", Text),
    Column("retreatcost", Text),
    Column("convertedretreatcost", Integer),
    Column("set_info", Text),
    Column("number", String(32)),
    Column("artist", String(255)),
    Column("rarity", String(64)),
    Column("flavortext", Text),
    Column("nationalpokedexnumbers", Text),
    Column("legalities", Text),
    Column("regulationmark", String(8)),
    Column("images", Text),
    Column("tcgplayer", Text),
    Column("cardmarket", Text),
    Column("setid", String(64), index=True),
)

card_prices = Table(
    "pfdata_cardprices",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("cardid", String(64), nullable=False, index=True),
    Column("source", String(32), nullable=False),
    Column("prices", Text),
    Column("updatedsource", String(32)),
    Column("updated", DateTime(timezone=True), nullable=False),
    UniqueConstraint("cardid", "source", "updatedsource", name="uq_cardprices_source"),
)

pricing_map = Table(
    "pf_cards_pricing_map",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("cardid", String(64), nullable=False, index=True),
    Column("tcgp_id", String(32)),
    Column("tcgp_variant", String(64), nullable=False),
    Column("pf_variant", String(64), nullable=False),
    UniqueConstraint("cardid", "tcgp_variant", "pf_variant", name="uq_pricing_map_variant"),
)

set_prices = Table(
    "pfdata_setprices",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("setid", String(64), nullable=False),
    Column("price", Float, nullable=False),
    Column("updatedsource", Date, nullable=False),
    Column("updated", DateTime(timezone=True), nullable=False),
    Column("source", String(32), nullable=False),
    UniqueConstraint("setid", "source", "updatedsource", name="uq_setprices_day"),
)

sealed = Table(
    "pf_sealed",
    metadata,
    Column("sealedid", String(64), primary_key=True),
    Column("tcgp_id", Integer),
    Column("name", String(255), nullable=False),
    Column("setid", String(64), index=True),
)

usd_pairs = Table(
    "usd_pairs",
    metadata,
    Column("currency", String(3), primary_key=True),
    Column("rate", Float, nullable=False),
    Column("timestamp", DateTime(timezone=True), nullable=False),
)

inventory = Table(
    "pf_inventory",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("userid", String(64), nullable=False, index=True),
    Column("cardid", String(64), nullable=False),
    Column("variant", String(64), nullable=False),
    Column("status", Boolean, nullable=False, default=True),
)

portfolio_snapshots = Table(
    "pf_portfoliosnapshots",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("userid", String(64), nullable=False),
    Column("value", Float, nullable=False),
    Column("date", Date, nullable=False),
    Column("timestamp", DateTime(timezone=True), nullable=False),
    UniqueConstraint("userid", "date", name="uq_portfolio_user_day"),
)


# --- price history facts -----------------------------------------------------

card_price_history = Table(
    "pf_cards_price_history",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("cardid", String(64), nullable=False, index=True),
    Column("variant", String(64), nullable=False),
    Column("price", Float, nullable=False),
    Column("updatedsource", Date, nullable=False),
    Column("updated", DateTime(timezone=True), nullable=False),
    Column("source", String(32), nullable=False),
    UniqueConstraint("cardid", "variant", "updatedsource", name="uq_card_price_day"),
)

graded_price_history = Table(
    "pf_graded_cards_price_history",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("cardid", String(64), nullable=False, index=True),
    Column("variant", String(64), nullable=False),
    Column("grade", String(32), nullable=False),
    Column("price", Float, nullable=False),
    Column("sold_date", Date, nullable=False),
)

sealed_price_history = Table(
    "pf_sealed_price_history",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("sealedid", String(64), nullable=False, index=True),
    Column("price", Float, nullable=False),
    Column("updatedsource", Date, nullable=False),
    Column("updated", DateTime(timezone=True), nullable=False),
    Column("source", String(32), nullable=False),
    UniqueConstraint("sealedid", "updatedsource", name="uq_sealed_price_day"),
)


# --- analytics ---------------------------------------------------------------

movers = Table(
    "pfanalysis_change",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("cardid", String(64), nullable=False),
    Column("card", String(255)),
    Column("variant", String(64), nullable=False),
    Column("setname", String(255)),
    Column("image", Text),
    Column("nowprice", Float),
    Column("thenprice", Float),
    Column("change_3d", Float),
)


def _price_change_columns(key_columns: tuple[str, ...]) -> list[Column]:
    columns: list[Column] = [
        Column(name, String(64), primary_key=True) for name in key_columns
    ]
    columns += [
        Column("current_price", Float),
        Column("previous_price", Float),
        Column("price_change", Float),
        Column("percentage_change", Float),
        Column("latest_update_date", Date),
        Column("previous_update_date", Date),
        Column("price_source_previous", String(16)),
    ]
    for suffix in HORIZON_SUFFIXES:
        columns += [
            Column(f"previous_price_{suffix}", Float),
            Column(f"price_change_{suffix}", Float),
            Column(f"percentage_change_{suffix}", Float),
            Column(f"price_source_{suffix}", String(16)),
        ]
    return columns


def price_change_tables(name: str, key_columns: tuple[str, ...]) -> tuple[Table, Table, Table]:
    """Production, staging and tracking tables for one price-change pipeline."""
    production = Table(
        f"pfanalysis_{name}_daily", metadata, *_price_change_columns(key_columns)
    )
    staging = Table(
        f"pfanalysis_staging_{name}_daily", metadata, *_price_change_columns(key_columns)
    )
    tracking = Table(
        f"pfanalysis_tracking_{name}_daily",
        metadata,
        Column("setid", String(64), primary_key=True),
        Column("status", String(16), nullable=False, default="PENDING"),
        Column("processed_at", DateTime(timezone=True)),
        Column("record_count", Integer, nullable=False, default=0),
        Column("error_message", Text),
    )
    return production, staging, tracking


card_changes, card_changes_staging, card_changes_tracking = price_change_tables(
    "price_changes", ("item_id", "variant")
)
graded_changes, graded_changes_staging, graded_changes_tracking = price_change_tables(
    "graded_price_changes", ("item_id", "variant", "grade")
)
sealed_changes, sealed_changes_staging, sealed_changes_tracking = price_change_tables(
    "sealed_price_changes", ("item_id",)
)


# --- ops ---------------------------------------------------------------------

collect_logs = Table(
    "pfdata_logs_collect",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("caller", String(64), nullable=False),
    Column("method", String(16), nullable=False),
    Column("timestart", DateTime(timezone=True), nullable=False),
    Column("timeend", DateTime(timezone=True)),
    Column("status", String(16), nullable=False),
    Column("errors", Integer, nullable=False, default=0),
    Column("logpath", Text),
)

price_update_logs = Table(
    "pf_logs_price_update",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("progress", Float, nullable=False, default=0),
    Column("time_started", DateTime(timezone=True), nullable=False),
    Column("time_ended", DateTime(timezone=True)),
    Column("progress_details", Text),
    Column("flagged", Text),
)

sealed_price_update_logs = Table(
    "pf_logs_sealed_price_update",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("progress", Float, nullable=False, default=0),
    Column("time_started", DateTime(timezone=True), nullable=False),
    Column("time_ended", DateTime(timezone=True)),
    Column("progress_details", Text),
    Column("flagged", Text),
)


def create_schema(bind: Engine | Connection) -> None:
    metadata.create_all(bind, checkfirst=True)
