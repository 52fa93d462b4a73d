"""Shared fixtures: in-memory SQLite database, seeded catalog and fake external services."""

from __future__ import annotations

from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any

import pytest
import requests
from sqlalchemy import create_engine, insert, select
from sqlalchemy.pool import StaticPool

from pfcollect.db import schema
from pfcollect.db.schema import create_schema

PROJECT_ROOT = Path(__file__).parent.parent


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    create_schema(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def log_dir(tmp_path) -> str:
    return str(tmp_path / "logs")


@pytest.fixture
def seeded(engine):
    """Two sets (s1, s2) with cards A, B in s1 and C in s2."""
    with engine.begin() as conn:
        conn.execute(
            insert(schema.sets),
            [
                {"setid": "s1", "name": "Set One", "releaseddate": "2024/01/01"},
                {"setid": "s2", "name": "Set Two", "releaseddate": "2024/06/01"},
            ],
        )
        conn.execute(
            insert(schema.cards),
            [
                {"cardid": "A", "name": "Card A", "setid": "s1", "number": "1"},
                {"cardid": "B", "name": "Card B", "setid": "s1", "number": "2"},
                {"cardid": "C", "name": "Card C", "setid": "s2", "number": "1"},
            ],
        )
    return engine


def add_card_prices(engine, rows: list[tuple[str, str, float, date]]) -> None:
    stamp = datetime(2024, 1, 1, tzinfo=timezone.utc)
    with engine.begin() as conn:
        conn.execute(
            insert(schema.card_price_history),
            [
                {
                    "cardid": cardid,
                    "variant": variant,
                    "price": price,
                    "updatedsource": day,
                    "updated": stamp,
                    "source": "tcgplayer",
                }
                for cardid, variant, price, day in rows
            ],
        )


def table_rows(engine, table) -> list[dict[str, Any]]:
    with engine.connect() as conn:
        return [dict(r) for r in conn.execute(select(table)).mappings()]


# --- Fakes for external services ---


def http_error(status: int) -> requests.HTTPError:
    response = requests.Response()
    response.status_code = status
    return requests.HTTPError(f"{status} error", response=response)


class FakeCatalog:
    """Card catalog returning canned sets and one page of cards per set."""

    def __init__(self, sets: list[dict] | None = None, cards: dict[str, list[dict]] | None = None):
        self.sets = sets or []
        self.cards = cards or {}
        self.failing_sets: set[str] = set()

    def get_sets(self) -> list[dict]:
        return self.sets

    def card_page(self, set_id: str, page: int = 1) -> dict:
        if set_id in self.failing_sets:
            raise requests.ConnectionError(f"catalog down for {set_id}")
        data = self.cards.get(set_id, [])
        return {"data": data, "totalCount": len(data)}

    @staticmethod
    def total_pages(payload: dict) -> int:
        return 1


class FakeStorage:
    def __init__(self) -> None:
        self.uploads: dict[str, dict[str, Any]] = {}

    def public_url(self, key: str) -> str:
        return f"https://cdn.test/{key}"

    def upload(self, key, body, content_type, cache_control=None, acl="public-read") -> str:
        self.uploads[key] = {
            "body": body,
            "content_type": content_type,
            "cache_control": cache_control,
        }
        return self.public_url(key)


class FakeHttp:
    """Serves bytes for known urls; anything else is a 404."""

    def __init__(self, files: dict[str, bytes] | None = None) -> None:
        self.files = files or {}
        self.requested: list[str] = []

    def get_bytes(self, url: str, params=None) -> bytes:
        self.requested.append(url)
        if url not in self.files:
            raise http_error(404)
        return self.files[url]


class FakeTcgPlayer:
    def __init__(self, prices: dict[str, list[dict]] | None = None, redirects: dict[str, str] | None = None):
        self.prices = prices or {}
        self.redirects = redirects or {}
        self.authenticated = False
        self.requested_chunks: list[list[str]] = []

    def authenticate(self) -> str:
        self.authenticated = True
        return "token"

    def market_prices(self, product_ids) -> list[dict]:
        ids = [str(p) for p in product_ids]
        self.requested_chunks.append(ids)
        return [r for pid in ids for r in self.prices.get(pid, [])]

    def resolve_product_id(self, catalog_url: str) -> str | None:
        if catalog_url not in self.redirects:
            raise requests.ConnectionError("redirect lookup failed")
        return self.redirects[catalog_url]


@pytest.fixture
def storage() -> FakeStorage:
    return FakeStorage()
