# convertly/conftest.py
from datetime import date

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import update

from convertly.core.config import Settings
from convertly.core.database import build_engine, build_session_factory, create_all_tables, users
from convertly.features.entitlements.store import EntitlementStore
from convertly.features.quota.gate import QuotaGate
from convertly.features.users.service import UserService

WEBHOOK_SECRET = "whsec_test_secret"


@pytest.fixture
def settings(tmp_path, monkeypatch):
    """
    Settings pointing at a per-test SQLite file and scratch directories.

    The .env file is ignored so a developer's local config never leaks into
    tests.
    """
    monkeypatch.delenv("SKIP_ENV_VALIDATION", raising=False)
    return Settings(
        _env_file=None,
        ENV="test",
        DATABASE_URL=f"sqlite:///{tmp_path / 'convertly-test.db'}",
        STRIPE_SECRET_KEY="sk_test_dummy",
        STRIPE_WEBHOOK_SECRET=WEBHOOK_SECRET,
        RESEND_API_KEY=None,
        UPLOAD_DIR=str(tmp_path / "uploads"),
        DOWNLOAD_DIR=str(tmp_path / "downloads"),
        MAX_UPLOAD_MB=1,
        FREE_DAILY_CONVERSIONS=1,
        ENABLE_TEST_ENDPOINTS=True,
    )


@pytest.fixture
def engine(settings):
    eng = build_engine(settings.DATABASE_URL)
    create_all_tables(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def store(session_factory):
    return EntitlementStore(session_factory)


@pytest.fixture
def gate(store):
    return QuotaGate(store, daily_limit=1)


@pytest.fixture
def user_service(session_factory):
    return UserService(session_factory)


@pytest.fixture
def make_user(user_service, session_factory):
    """
    Create a user, optionally with premium status and a stored counter.

    Usage:
        user = make_user("alice@example.com", conversions_today=1, last_date=date(2024, 1, 1))
    """
    counter = {"n": 0}

    def _make(email=None, *, premium=False, conversions_today=0, last_date=None):
        counter["n"] += 1
        email = email or f"user{counter['n']}@example.com"
        user = user_service.create_user(email.split("@")[0], email, "s3cret-pass")
        if premium or conversions_today or last_date:
            with session_factory() as session:
                session.execute(
                    update(users)
                    .where(users.c.id == user.id)
                    .values(
                        is_premium=premium,
                        conversions_today=conversions_today,
                        last_conversion_date=last_date,
                    )
                )
                session.commit()
            user = user_service.get_user(user.id)
        return user

    return _make


@pytest.fixture
def app(settings, engine):
    from convertly.main import create_app

    return create_app(settings)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def today():
    return date.today()
