"""Pytest configuration and shared fixtures."""

from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from journalflow.core.config import Settings, get_settings
from journalflow.db.base import Base
import journalflow.db.models  # noqa: F401  registers every table on Base.metadata

from tests.factories import (
    add_member,
    create_journal,
    create_organization,
    create_route,
    create_user,
)


@pytest.fixture
def settings():
    """Settings isolated from the developer's environment and .env file."""
    return Settings(
        _env_file=None,
        database_url="sqlite://",
        auto_skip_optional_steps=True,
        allow_duplicate_step_organizations=False,
        system_actor_id="system",
        webhook_timeout=5,
        webhook_max_retries=2,
    )


@pytest.fixture
def engine():
    """Fresh in-memory SQLite database per test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(engine):
    session = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(db_session, settings):
    """FastAPI test client bound to the test session and settings."""
    from journalflow.api.deps import get_db
    from journalflow.api.main import app

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_settings] = lambda: settings
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Factory fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def user_factory(db_session):
    return lambda **kwargs: create_user(db_session, **kwargs)


@pytest.fixture
def org_factory(db_session):
    return lambda **kwargs: create_organization(db_session, **kwargs)


@pytest.fixture
def member_factory(db_session):
    return lambda **kwargs: add_member(db_session, **kwargs)


@pytest.fixture
def route_factory(db_session):
    return lambda **kwargs: create_route(db_session, **kwargs)


@pytest.fixture
def journal_factory(db_session):
    return lambda **kwargs: create_journal(db_session, **kwargs)


@pytest.fixture
def k001(db_session):
    """
    The K-001 accounting route: step 1 申請 by K001, step 2 承認 by K002.

    alice and dave belong to K001, bob and erin to K002, carol to neither.
    Journal J-100 is a draft created by alice. Everything is committed.
    """
    k001_org = create_organization(db_session, code="K001", name="経理部（申請者）")
    k002_org = create_organization(db_session, code="K002", name="経理部（承認者）")

    users = {}
    for user_id in ("alice", "bob", "carol", "dave", "erin"):
        users[user_id] = create_user(db_session, user_id=user_id)
    add_member(db_session, org=k001_org, user=users["alice"])
    add_member(db_session, org=k001_org, user=users["dave"])
    add_member(db_session, org=k002_org, user=users["bob"])
    add_member(db_session, org=k002_org, user=users["erin"])

    route = create_route(
        db_session,
        code="K-001",
        name="経理承認ルート",
        steps=[("K001", True, "申請"), ("K002", True, "承認")],
        with_layout=True,
    )
    journal = create_journal(db_session, journal_number="J-100", created_by=users["alice"])
    db_session.commit()

    return SimpleNamespace(
        route=route,
        journal=journal,
        organizations={"K001": k001_org, "K002": k002_org},
        **users,
    )
