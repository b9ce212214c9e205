"""
Test Stripe webhook handling.

Events are signed the way Stripe signs them (HMAC-SHA256 over
"{timestamp}.{payload}") so the real signature check runs.
"""
import asyncio
import hashlib
import hmac
import json
import time
from unittest.mock import AsyncMock, Mock, patch

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import select

from convertly.core.database import billing_events
from convertly.features.billing.provider import BillingWebhookResult
from convertly.features.billing.service import BillingService
from convertly.features.email.service import EmailDeliveryError, EmailService

WEBHOOK_SECRET = "whsec_test_secret"


def _event(event_id="evt_1", event_type="checkout.session.completed", email="buyer@example.com", details_email=None):
    session = {"id": "cs_test_1", "object": "checkout.session", "customer_email": email}
    if details_email:
        session["customer_details"] = {"email": details_email}
    return {"id": event_id, "object": "event", "type": event_type, "data": {"object": session}}


def _signed(payload: dict, secret: str = WEBHOOK_SECRET):
    body = json.dumps(payload).encode("utf-8")
    ts = int(time.time())
    sig = hmac.new(secret.encode("utf-8"), f"{ts}.".encode("utf-8") + body, hashlib.sha256).hexdigest()
    return body, {"stripe-signature": f"t={ts},v1={sig}", "content-type": "application/json"}


def _post(client, payload, secret=WEBHOOK_SECRET):
    body, headers = _signed(payload, secret)
    return client.post("/api/stripe-webhook", content=body, headers=headers)


@pytest.fixture
def email_mock(app):
    services = app.state.services
    with patch.object(services.email, "send_license_email", AsyncMock(return_value="license-key")) as mocked:
        yield mocked


def _event_row(session_factory, event_id):
    with session_factory() as session:
        return session.execute(
            select(billing_events).where(billing_events.c.stripe_event_id == event_id)
        ).first()


def test_checkout_completed_grants_premium(client, make_user, store, email_mock, session_factory):
    user = make_user("buyer@example.com")

    resp = _post(client, _event())

    assert resp.status_code == 200
    assert resp.json() == {"success": True, "message": "User upgraded to premium", "userId": user.id}
    assert store.get_user(user.id).is_premium is True
    email_mock.assert_awaited_once()
    assert _event_row(session_factory, "evt_1").processed is True
    assert _event_row(session_factory, "evt_1").processed_at is not None


def test_customer_details_email_is_used(client, make_user, store, email_mock):
    user = make_user("details@example.com")
    resp = _post(client, _event(email=None, details_email="details@example.com"))
    assert resp.status_code == 200
    assert store.get_user(user.id).is_premium is True


def test_duplicate_event_not_reprocessed(client, make_user, email_mock):
    make_user("buyer@example.com")

    first = _post(client, _event(event_id="evt_dup"))
    second = _post(client, _event(event_id="evt_dup"))

    assert first.status_code == 200
    assert second.status_code == 200
    assert second.json()["duplicate"] is True
    assert email_mock.await_count == 1


def test_email_failure_does_not_roll_back_upgrade(client, app, make_user, store):
    user = make_user("buyer@example.com")
    failing = AsyncMock(side_effect=EmailDeliveryError("Resend API error: 500"))

    with patch.object(app.state.services.email, "send_license_email", failing):
        resp = _post(client, _event(event_id="evt_mail"))

    assert resp.status_code == 200
    assert store.get_user(user.id).is_premium is True


def test_invalid_signature_rejected(client, make_user, store):
    user = make_user("buyer@example.com")
    resp = _post(client, _event(), secret="whsec_wrong")
    assert resp.status_code == 400
    assert store.get_user(user.id).is_premium is False


def test_missing_signature_rejected(client):
    resp = client.post("/api/stripe-webhook", content=json.dumps(_event()).encode("utf-8"))
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "http_error"


def test_missing_customer_email(client, session_factory):
    resp = _post(client, _event(event_id="evt_noemail", email=None))
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Customer email not found"
    row = _event_row(session_factory, "evt_noemail")
    assert row.processed is False
    assert row.error == "Customer email not found"


def test_unknown_customer_can_be_replayed(client, make_user, store, email_mock):
    missing = _post(client, _event(event_id="evt_late", email="late@example.com"))
    assert missing.status_code == 404

    user = make_user("late@example.com")
    retried = _post(client, _event(event_id="evt_late", email="late@example.com"))

    assert retried.status_code == 200
    assert retried.json()["userId"] == user.id
    assert store.get_user(user.id).is_premium is True


def test_other_events_acknowledged(client, session_factory):
    resp = _post(client, _event(event_id="evt_other", event_type="invoice.paid"))
    assert resp.status_code == 200
    assert resp.json() == {"received": True, "duplicate": False, "handled": False}
    assert _event_row(session_factory, "evt_other").processed is True


def test_billing_not_configured(settings, engine):
    from convertly.main import create_app

    app = create_app(settings.model_copy(update={"STRIPE_SECRET_KEY": None}))
    with TestClient(app) as client:
        resp = _post(client, _event())
    assert resp.status_code == 500
    assert resp.json()["error"]["code"] == "server_configuration_error"


def test_service_with_mock_provider(store, session_factory, make_user):
    user = make_user("mock@example.com")
    provider = Mock()
    provider.handle_webhook.return_value = BillingWebhookResult(
        event_id="evt_mock",
        event_type="checkout.session.completed",
        customer_email="mock@example.com",
    )
    email = EmailService(None, base_url="https://example.com")
    service = BillingService(store, email, provider, session_factory)

    outcome = asyncio.run(service.process_webhook_event({}, b"{}"))

    assert outcome.handled is True
    assert outcome.user_id == user.id
    assert outcome.license_email_sent is False
    provider.handle_webhook.assert_called_once_with({}, b"{}")


def test_test_upgrade_endpoint(client, make_user, store):
    user = make_user("dev@example.com")

    resp = client.post("/api/test-upgrade", json={"email": "dev@example.com"})
    missing = client.post("/api/test-upgrade", json={"email": "ghost@example.com"})

    assert resp.status_code == 200
    assert resp.json()["user"]["isPremium"] is True
    assert store.get_user(user.id).is_premium is True
    assert missing.status_code == 404
