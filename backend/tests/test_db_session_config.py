from __future__ import annotations

import pytest
from sqlalchemy import inspect, text
from sqlalchemy.orm import sessionmaker

from foresight.config import Settings
import foresight.db.session as db_session
from foresight.models import Organization


def test_select_database_url_prefers_test_setting(monkeypatch):
    monkeypatch.setenv("PYTEST_CURRENT_TEST", "")
    monkeypatch.delenv("TEST_DATABASE_URL", raising=False)
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.setattr(
        db_session,
        "settings",
        Settings(ENV="test", TEST_DATABASE_URL="sqlite:///tmp-test.db", DATABASE_URL=None),
        raising=False,
    )
    assert db_session._select_database_url() == "sqlite:///tmp-test.db"


def test_select_database_url_env_fallback(monkeypatch):
    monkeypatch.delenv("PYTEST_CURRENT_TEST", raising=False)
    monkeypatch.setenv("DATABASE_URL", "sqlite:///runtime.db")
    monkeypatch.setattr(
        db_session,
        "settings",
        Settings(ENV="prod", JWT_SECRET="x", TEST_DATABASE_URL=None, DATABASE_URL=None),
        raising=False,
    )
    assert db_session._select_database_url() == "sqlite:///runtime.db"


def test_select_database_url_defaults(monkeypatch):
    monkeypatch.delenv("PYTEST_CURRENT_TEST", raising=False)
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.delenv("TEST_DATABASE_URL", raising=False)
    monkeypatch.setattr(
        db_session,
        "settings",
        Settings(ENV="prod", JWT_SECRET="x", TEST_DATABASE_URL=None, DATABASE_URL=None),
        raising=False,
    )
    assert db_session._select_database_url().endswith("/foresight")


def test_postgres_urls_get_sslmode_and_role_check(monkeypatch):
    monkeypatch.setattr(
        db_session,
        "settings",
        Settings(ENV="test", DB_REQUIRE_SSL=True, DB_APP_ROLE="foresight_app"),
        raising=False,
    )
    good = db_session._enforce_ssl_requirements("postgresql+psycopg2://foresight_app:pw@db:5432/foresight")
    assert "sslmode=require" in good

    with pytest.raises(RuntimeError):
        db_session._enforce_ssl_requirements("postgresql+psycopg2://other:pw@db:5432/foresight")


def test_build_engine_sqlite_enforces_foreign_keys():
    engine = db_session._build_engine("sqlite:///:memory:")
    try:
        with engine.connect() as conn:
            assert conn.execute(text("PRAGMA foreign_keys")).scalar_one() == 1
    finally:
        engine.dispose()


def test_get_db_closes_sessions(monkeypatch):
    created = []

    class DummySession:
        def __init__(self):
            self.closed = False

        def close(self):
            self.closed = True

    def factory():
        sess = DummySession()
        created.append(sess)
        return sess

    monkeypatch.setattr(db_session, "SessionLocal", factory, raising=False)

    gen = db_session.get_db()
    session = next(gen)
    assert session is created[0]
    with pytest.raises(StopIteration):
        next(gen)
    assert created[0].closed


def test_init_db_creates_domain_tables(monkeypatch):
    engine = db_session._build_engine("sqlite:///:memory:")
    monkeypatch.setattr(db_session, "get_engine", lambda: engine, raising=False)
    monkeypatch.setattr(db_session, "SessionLocal", sessionmaker(bind=engine, future=True), raising=False)
    db_session.init_db()
    tables = set(inspect(engine).get_table_names())
    assert {"organizations", "users", "forecasts", "predictions", "groups", "ai_conversations"} <= tables
    engine.dispose()


def test_session_scope_rolls_back_on_error(db, org):
    with pytest.raises(RuntimeError):
        with db_session.session_scope() as s:
            s.get(Organization, org.id).name = "Renamed mid-flight"
            s.flush()
            raise RuntimeError("job failed")

    db.expire_all()
    assert db.get(Organization, org.id).name == "Acme Research"
