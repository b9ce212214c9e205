"""
Stripe billing provider implementation.

Implements BillingProvider using the Stripe SDK for webhook signature
verification and parses the verified payload into a BillingWebhookResult.
"""
import json
from typing import Dict, Any, Optional

import stripe

from convertly.features.billing.provider import (
    BillingProviderError,
    BillingWebhookError,
    BillingWebhookResult,
)

CHECKOUT_COMPLETED = "checkout.session.completed"


class StripeProvider:
    """Stripe implementation of BillingProvider protocol."""

    def __init__(self, secret_key: Optional[str], webhook_secret: Optional[str]):
        """
        Initialize Stripe provider.

        Args:
            secret_key: Stripe secret key (billing is disabled without it)
            webhook_secret: Stripe webhook signing secret
        """
        if not secret_key:
            raise BillingProviderError("STRIPE_SECRET_KEY not configured")
        self.secret_key = secret_key
        self.webhook_secret = webhook_secret

    def handle_webhook(self, headers: Dict[str, str], body: bytes) -> BillingWebhookResult:
        """Verify Stripe webhook signature and parse event."""
        if not self.webhook_secret:
            raise BillingProviderError("STRIPE_WEBHOOK_SECRET not configured")

        sig_header = headers.get("stripe-signature") or headers.get("Stripe-Signature")
        if not sig_header:
            raise BillingWebhookError("Missing stripe signature")

        try:
            stripe.Webhook.construct_event(body, sig_header, self.webhook_secret)
        except ValueError as e:
            raise BillingWebhookError(f"Invalid payload: {e}")
        except stripe.SignatureVerificationError as e:
            raise BillingWebhookError(f"Invalid signature: {e}")

        return self._parse_event(json.loads(body))

    def _parse_event(self, event: Dict[str, Any]) -> BillingWebhookResult:
        """Parse a verified Stripe event into a normalized BillingWebhookResult."""
        event_type = event.get("type", "")
        data = (event.get("data") or {}).get("object") or {}

        customer_email = None
        if event_type == CHECKOUT_COMPLETED:
            customer_email = data.get("customer_email") or (data.get("customer_details") or {}).get("email")

        return BillingWebhookResult(
            event_id=event.get("id", ""),
            event_type=event_type,
            customer_email=customer_email,
            metadata=data.get("metadata") or {},
        )
