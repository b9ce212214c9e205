import hashlib
import hmac
import json
import time

import pytest

from convertly.features.billing.provider import BillingProviderError, BillingWebhookError
from convertly.features.billing.service import get_provider
from convertly.features.billing.stripe_provider import StripeProvider

SECRET = "whsec_provider_test"


def _signed(payload: dict, secret: str = SECRET, ts: int = None):
    body = json.dumps(payload).encode("utf-8")
    ts = ts or int(time.time())
    sig = hmac.new(secret.encode("utf-8"), f"{ts}.".encode("utf-8") + body, hashlib.sha256).hexdigest()
    return body, {"stripe-signature": f"t={ts},v1={sig}"}


def _checkout(**session):
    return {"id": "evt_9", "object": "event", "type": "checkout.session.completed", "data": {"object": session}}


def test_requires_secret_key():
    with pytest.raises(BillingProviderError):
        StripeProvider(None, SECRET)


def test_parses_checkout_email():
    provider = StripeProvider("sk_test", SECRET)
    body, headers = _signed(_checkout(customer_email="a@example.com", metadata={"plan": "premium"}))

    result = provider.handle_webhook(headers, body)

    assert result.event_id == "evt_9"
    assert result.event_type == "checkout.session.completed"
    assert result.customer_email == "a@example.com"
    assert result.metadata == {"plan": "premium"}


def test_other_events_carry_no_email():
    provider = StripeProvider("sk_test", SECRET)
    body, headers = _signed({"id": "evt_10", "object": "event", "type": "customer.created",
                             "data": {"object": {"email": "a@example.com"}}})
    assert provider.handle_webhook(headers, body).customer_email is None


def test_stale_signature_rejected():
    provider = StripeProvider("sk_test", SECRET)
    body, headers = _signed(_checkout(customer_email="a@example.com"), ts=int(time.time()) - 3600)
    with pytest.raises(BillingWebhookError):
        provider.handle_webhook(headers, body)


def test_missing_webhook_secret():
    provider = StripeProvider("sk_test", None)
    body, headers = _signed(_checkout())
    with pytest.raises(BillingProviderError):
        provider.handle_webhook(headers, body)


def test_get_provider_disabled_without_key(settings):
    assert get_provider(settings.model_copy(update={"STRIPE_SECRET_KEY": None})) is None
    assert isinstance(get_provider(settings), StripeProvider)
