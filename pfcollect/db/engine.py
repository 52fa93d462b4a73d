from __future__ import annotations

from sqlalchemy import create_engine
from sqlalchemy.engine import URL, Engine, make_url

from pfcollect.config import Settings


def build_sqlalchemy_url(settings: Settings, database: str | None = None) -> URL:
    if settings.database_url:
        return make_url(settings.database_url)
    return URL.create(
        settings.db_driver,
        username=settings.db_user,
        password=settings.db_password.get_secret_value() or None,
        host=settings.db_host,
        port=settings.db_port,
        database=database or settings.db_name,
    )


def get_engine(settings: Settings, database: str | None = None) -> Engine:
    url = build_sqlalchemy_url(settings, database)
    return create_engine(url, pool_pre_ping=True)
