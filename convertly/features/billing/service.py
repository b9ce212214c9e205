"""
Billing service orchestrator.

Coordinates:
- Webhook verification (delegated to the provider)
- Event idempotency via the billing_events table
- Premium upgrades on completed checkouts
- License email delivery

All Stripe-specific code is in stripe_provider.py.
"""
import hashlib
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Dict

from sqlalchemy import select, insert, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from convertly.core.database import guarded_session, get_session_factory, billing_events
from convertly.core.errors import ConflictError, NotFoundError, ServiceNotConfiguredError, ValidationError
from convertly.core.logging import log_event
from convertly.features.billing.provider import (
    BillingProvider,
    BillingProviderError,
    BillingWebhookResult,
)
from convertly.features.billing.stripe_provider import CHECKOUT_COMPLETED, StripeProvider
from convertly.features.email.service import EmailDeliveryError, EmailService
from convertly.features.entitlements.store import EntitlementStore
from convertly.models.user import User

logger = logging.getLogger(__name__)


@dataclass
class WebhookOutcome:
    event_id: str
    event_type: str
    handled: bool = False
    duplicate: bool = False
    user_id: Optional[int] = None
    license_email_sent: bool = False


def get_provider(settings) -> Optional[BillingProvider]:
    """Get billing provider if billing is enabled (Stripe configured)."""
    if not settings.STRIPE_SECRET_KEY:
        return None
    try:
        return StripeProvider(settings.STRIPE_SECRET_KEY, settings.STRIPE_WEBHOOK_SECRET)
    except BillingProviderError:
        return None


class BillingService:
    def __init__(
        self,
        store: EntitlementStore,
        email_service: EmailService,
        provider: Optional[BillingProvider],
        session_factory: Optional[sessionmaker] = None,
    ):
        self._store = store
        self._email = email_service
        self._provider = provider
        self._session_factory = session_factory or get_session_factory()

    @property
    def enabled(self) -> bool:
        return self._provider is not None

    async def process_webhook_event(self, headers: Dict[str, str], body: bytes) -> WebhookOutcome:
        """
        Process billing webhook event (idempotent).

        1. Verify signature
        2. Check idempotency (skip if already processed)
        3. Apply the premium upgrade
        4. Mark as processed
        5. Send the license email

        Raises:
            ServiceNotConfiguredError: billing is not configured
            BillingWebhookError: signature invalid or payload malformed
            ValidationError: checkout completed without a customer email
            NotFoundError: no user matches the customer email
        """
        if self._provider is None:
            raise ServiceNotConfiguredError("Server configuration error")

        result = self._provider.handle_webhook(headers, body)
        outcome = WebhookOutcome(event_id=result.event_id, event_type=result.event_type)

        if not self._claim_event(result, hashlib.sha256(body).hexdigest()):
            outcome.duplicate = True
            log_event("info", "billing.duplicate_event", event_type=result.event_type,
                      extra={"reason": result.event_id})
            return outcome

        if result.event_type != CHECKOUT_COMPLETED:
            self._mark_processed(result.event_id)
            logger.info(f"Unhandled event type: {result.event_type}")
            return outcome

        try:
            user = self._upgrade(result)
        except Exception as e:
            self._mark_failed(result.event_id, e)
            raise
        self._mark_processed(result.event_id)

        outcome.handled = True
        outcome.user_id = user.id
        outcome.license_email_sent = await self._send_license(user)
        return outcome

    def grant_premium(self, email: str) -> User:
        """Mark the user with ``email`` premium without a payment event."""
        user = self._store.set_premium(email)
        if user is None:
            raise NotFoundError("User not found")
        return user

    def _upgrade(self, result: BillingWebhookResult) -> User:
        if not result.customer_email:
            raise ValidationError("Customer email not found")
        user = self._store.set_premium(result.customer_email)
        if user is None:
            raise NotFoundError("User not found for provided email")
        log_event("info", "billing.premium_granted", user_id=user.id, event_type=result.event_type)
        return user

    async def _send_license(self, user: User) -> bool:
        try:
            return await self._email.send_license_email(user) is not None
        except EmailDeliveryError as e:
            # The upgrade is already committed; a lost email is not retried.
            log_event("error", "email.failed", user_id=user.id, event_type="email.license",
                      error_code="email_delivery_failed", extra={"reason": e})
            return False

    def _claim_event(self, result: BillingWebhookResult, payload_hash: str) -> bool:
        """
        Record the event; return False when it was already processed.

        Events that failed earlier (processed is false) are claimed again so a
        provider retry can succeed once the cause is fixed.
        """
        with guarded_session(self._session_factory, "billing events") as session:
            existing = session.execute(
                select(billing_events.c.processed).where(
                    billing_events.c.stripe_event_id == result.event_id
                )
            ).fetchone()
            if existing is not None:
                return not existing[0]

        try:
            with guarded_session(self._session_factory, "billing events") as session:
                try:
                    session.execute(
                        insert(billing_events).values(
                            stripe_event_id=result.event_id,
                            event_type=result.event_type,
                            payload_hash=payload_hash,
                            processed=False,
                        )
                    )
                except IntegrityError as exc:
                    raise ConflictError(f"Event {result.event_id} already recorded") from exc
        except ConflictError:
            # Race condition: another worker already inserted this event
            return False
        return True

    def _mark_processed(self, event_id: str) -> None:
        with guarded_session(self._session_factory, "billing events") as session:
            session.execute(
                update(billing_events)
                .where(billing_events.c.stripe_event_id == event_id)
                .values(processed=True, processed_at=datetime.now(timezone.utc), error=None)
            )

    def _mark_failed(self, event_id: str, error: Exception) -> None:
        with guarded_session(self._session_factory, "billing events") as session:
            session.execute(
                update(billing_events)
                .where(billing_events.c.stripe_event_id == event_id)
                .values(error=str(error)[:500])
            )
