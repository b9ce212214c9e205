"""
Billing API routes.

- POST /api/stripe-webhook: Handle Stripe webhooks (premium upgrades)
- POST /api/test-upgrade: Grant premium without payment (dev only)
"""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel

from convertly.api.dependencies import get_billing_service
from convertly.api.users import ensure_test_endpoints
from convertly.core.errors import ServiceNotConfiguredError, ValidationError
from convertly.features.billing.provider import BillingProviderError, BillingWebhookError
from convertly.features.billing.service import BillingService


router = APIRouter(prefix="/api", tags=["billing"])


class UpgradeRequest(BaseModel):
    email: Optional[str] = None


@router.post("/stripe-webhook")
async def stripe_webhook(req: Request, service: BillingService = Depends(get_billing_service)):
    """
    Handle Stripe webhook events.

    Requires:
    - STRIPE_SECRET_KEY and STRIPE_WEBHOOK_SECRET configured
    - Valid stripe-signature header over the raw body

    Errors:
        500: Billing not configured
        400: Missing/invalid signature, or checkout without customer email
        404: No user for the customer email
    """
    body = await req.body()
    headers = dict(req.headers)

    try:
        outcome = await service.process_webhook_event(headers, body)
    except BillingWebhookError as e:
        raise HTTPException(status_code=400, detail=f"Webhook Error: {e}")
    except BillingProviderError as e:
        raise ServiceNotConfiguredError(str(e))

    if outcome.handled:
        return {"success": True, "message": "User upgraded to premium", "userId": outcome.user_id}
    return {"received": True, "duplicate": outcome.duplicate, "handled": False}


@router.post("/test-upgrade", dependencies=[Depends(ensure_test_endpoints)])
async def test_upgrade(request: UpgradeRequest, service: BillingService = Depends(get_billing_service)):
    if not request.email:
        raise ValidationError("Email required")
    user = service.grant_premium(request.email)
    return {"success": True, "message": "User upgraded to premium", "user": user.public_dict()}
