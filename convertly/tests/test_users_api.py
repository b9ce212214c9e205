"""Tests for account endpoints."""

from unittest.mock import AsyncMock, patch

import bcrypt

from convertly.features.email.service import EmailDeliveryError


def _signup(client, email="new@example.com", path="/api/signup-with-welcome", **overrides):
    payload = {"username": "newbie", "email": email, "password": "hunter22"}
    payload.update(overrides)
    return client.post(path, json=payload)


def test_signup_creates_free_user(client):
    resp = _signup(client)
    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["user"]["email"] == "new@example.com"
    assert body["user"]["isPremium"] is False
    assert "password" not in str(body)
    assert body["welcomeEmailSent"] is False


def test_signup_sends_welcome_email(client, app):
    sender = AsyncMock(return_value=True)
    with patch.object(app.state.services.email, "send_welcome_email", sender):
        resp = _signup(client)
    assert resp.json()["welcomeEmailSent"] is True
    sender.assert_awaited_once()


def test_signup_survives_email_failure(client, app, user_service):
    failing = AsyncMock(side_effect=EmailDeliveryError("Resend API error"))
    with patch.object(app.state.services.email, "send_welcome_email", failing):
        resp = _signup(client)
    assert resp.status_code == 200
    assert resp.json()["welcomeEmailSent"] is False
    assert user_service.get_user_by_email("new@example.com") is not None


def test_signup_duplicate_email_conflicts(client):
    assert _signup(client).status_code == 200
    dup = _signup(client)
    assert dup.status_code == 409
    assert dup.json()["error"]["code"] == "conflict"


def test_signup_requires_fields(client):
    resp = _signup(client, password="")
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "validation_error"


def test_password_is_hashed(client, user_service, session_factory):
    from sqlalchemy import select
    from convertly.core.database import users

    _signup(client)
    with session_factory() as session:
        stored = session.execute(select(users.c.password_hash)).scalar_one()
    assert stored != "hunter22"
    assert bcrypt.checkpw(b"hunter22", stored.encode("utf-8"))


def test_check_user(client, make_user):
    make_user("known@example.com")
    assert client.get("/api/check-user", params={"email": "known@example.com"}).json() == {
        "exists": True,
        "email": "known@example.com",
    }
    assert client.get("/api/check-user", params={"email": "other@example.com"}).json()["exists"] is False
    assert client.get("/api/check-user").status_code == 400


def test_test_create_user(client):
    resp = _signup(client, path="/api/test-create-user")
    assert resp.status_code == 200
    assert resp.json()["user"]["username"] == "newbie"


def test_test_endpoints_hidden_when_disabled(settings, engine):
    from fastapi.testclient import TestClient
    from convertly.main import create_app

    app = create_app(settings.model_copy(update={"ENABLE_TEST_ENDPOINTS": False}))
    with TestClient(app) as client:
        assert _signup(client, path="/api/test-create-user").status_code == 404
        assert client.post("/api/test-upgrade", json={"email": "a@b.co"}).status_code == 404


class TestAccountUsage:
    def test_requires_user_id(self, client):
        resp = client.get("/api/account/usage")
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "unauthorized"

    def test_free_user_usage(self, client, make_user):
        user = make_user()
        resp = client.get("/api/account/usage", headers={"X-User-Id": str(user.id)})
        assert resp.status_code == 200
        assert resp.json() == {
            "user_id": user.id,
            "is_premium": False,
            "conversions_today": 0,
            "daily_limit": 1,
            "remaining": 1,
            "eligibility": "ELIGIBLE",
        }

    def test_exhausted_user_usage(self, client, make_user, today):
        user = make_user(conversions_today=1, last_date=today)
        body = client.get("/api/account/usage", params={"userId": user.id}).json()
        assert body["remaining"] == 0
        assert body["eligibility"] == "FREE_EXHAUSTED"

    def test_premium_usage_unlimited(self, client, make_user):
        user = make_user(premium=True)
        body = client.get("/api/account/usage", headers={"X-User-Id": str(user.id)}).json()
        assert body["is_premium"] is True
        assert body["remaining"] is None

    def test_unknown_user(self, client):
        resp = client.get("/api/account/usage", headers={"X-User-Id": "31337"})
        assert resp.status_code == 404
