import os
import sys
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Ensure backend/ is importable as the top-level "foresight" package even when pytest runs from repo root
BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

# Ensure the application runs in test/sqlite mode *before* importing any foresight modules
os.environ.setdefault("ENV", "test")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("TEST_DATABASE_URL", "sqlite://")
os.environ.setdefault("DB_REQUIRE_SSL", "false")
os.environ.setdefault("JWT_SECRET", "test_secret")
os.environ.setdefault("JWT_ALG", "HS256")
os.environ.setdefault("SCHEDULER_ENABLED", "false")

# Import the DB session module first so we can patch it before the app is imported
import foresight.db.session as foresight_db_session  # noqa: E402

# --- Use a single in-memory SQLite DB for the whole test session ---
ENGINE = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
    future=True,
)
foresight_db_session.enable_sqlite_foreign_keys(ENGINE)
SessionTesting = sessionmaker(
    bind=ENGINE, autocommit=False, autoflush=False, expire_on_commit=False, future=True
)

# --- Ensure tests and app code share the SAME in-memory engine/sessionmaker ---
setattr(foresight_db_session, "ENGINE", ENGINE)
foresight_db_session.SessionLocal = SessionTesting
foresight_db_session.get_engine = lambda: ENGINE            # type: ignore
foresight_db_session.get_sessionmaker = lambda: SessionTesting  # type: ignore

from foresight.db.base import Base  # noqa: E402
from foresight.main import app  # noqa: E402
from foresight.models import Category, Group, GroupMember, Organization, UserRole  # noqa: E402

from _helpers import make_forecast, make_user  # noqa: E402


@pytest.fixture(autouse=True)
def reset_db():
    Base.metadata.drop_all(bind=ENGINE)
    Base.metadata.create_all(bind=ENGINE)
    yield
    Base.metadata.drop_all(bind=ENGINE)


@pytest.fixture
def db(reset_db):
    session = SessionTesting()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def client(db):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def org(db):
    organization = Organization(name="Acme Research", ai_token_limit=100_000)
    db.add(organization)
    db.commit()
    db.refresh(organization)
    return organization


@pytest.fixture
def other_org(db):
    organization = Organization(name="Globex")
    db.add(organization)
    db.commit()
    db.refresh(organization)
    return organization


@pytest.fixture
def admin(db, org):
    return make_user(db, "admin@acme.com", org=org, role=UserRole.ORG_ADMIN, name="Ada Admin")


@pytest.fixture
def member(db, org):
    return make_user(db, "member@acme.com", org=org, name="Max Member")


@pytest.fixture
def colleague(db, org):
    return make_user(db, "colleague@acme.com", org=org, name="Cleo Colleague")


@pytest.fixture
def outsider(db):
    return make_user(db, "nobody@nowhere.com")


@pytest.fixture
def stranger(db, other_org):
    return make_user(db, "stranger@globex.com", org=other_org)


@pytest.fixture
def category(db, org):
    cat = Category(name="Macro", organization_id=org.id)
    db.add(cat)
    db.commit()
    db.refresh(cat)
    return cat


@pytest.fixture
def binary_forecast(db, org, category, admin):
    return make_forecast(db, org, category, creator=admin)


@pytest.fixture
def team(db, org, member):
    group = Group(name="Quants", organization_id=org.id)
    db.add(group)
    db.commit()
    db.add(GroupMember(group_id=group.id, user_id=member.id))
    db.commit()
    db.refresh(group)
    return group
