"""Tests for settings loading and database URL assembly."""

import pytest

from pfcollect.config import Settings, load_settings
from pfcollect.db.engine import build_sqlalchemy_url


def test_defaults():
    s = Settings.model_validate({})
    assert s.db_driver == "postgresql+psycopg"
    assert s.http_request_delay_seconds == 0.1
    assert s.discord_cleanup_enabled is True


def test_load_settings_reads_environment(tmp_path, monkeypatch):
    monkeypatch.setenv("DB_HOST", "db.internal")
    monkeypatch.setenv("DB_PORT", "6543")
    monkeypatch.setenv("DISCORD_CLEANUP_ENABLED", "false")

    s = load_settings(tmp_path / "missing.env")

    assert s.db_host == "db.internal"
    assert s.db_port == 6543
    assert s.discord_cleanup_enabled is False


def test_load_settings_reads_env_file(tmp_path, monkeypatch):
    monkeypatch.delenv("S3_BUCKET", raising=False)
    env = tmp_path / ".env"
    env.write_text("S3_BUCKET=from-file\n")

    try:
        s = load_settings(env)
    finally:
        monkeypatch.delenv("S3_BUCKET", raising=False)

    assert s.s3_bucket == "from-file"


def test_invalid_value_is_reported(tmp_path, monkeypatch):
    monkeypatch.setenv("DB_PORT", "not-a-port")
    with pytest.raises(RuntimeError, match=".env.example"):
        load_settings(tmp_path / "missing.env")


class TestSqlalchemyUrl:
    def test_database_url_wins(self):
        s = Settings.model_validate({"DATABASE_URL": "sqlite:///pf.db", "DB_HOST": "ignored"})
        assert str(build_sqlalchemy_url(s)) == "sqlite:///pf.db"

    def test_assembled_from_parts(self):
        s = Settings.model_validate(
            {"DB_HOST": "h", "DB_PORT": "5433", "DB_USER": "u", "DB_PASSWORD": "p", "DB_NAME": "pf"}
        )
        url = build_sqlalchemy_url(s)
        assert url.drivername == "postgresql+psycopg"
        assert (url.host, url.port, url.username, url.password, url.database) == ("h", 5433, "u", "p", "pf")

    def test_database_override(self):
        s = Settings.model_validate({})
        assert build_sqlalchemy_url(s, database="other").database == "other"
        assert build_sqlalchemy_url(s).password is None
