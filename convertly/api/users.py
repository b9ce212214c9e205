"""
User and account API routes.

- GET  /api/check-user: does an account exist for an email
- POST /api/signup-with-welcome: create an account and send the welcome email
- POST /api/test-create-user: create an account without email (dev only)
- GET  /api/account/usage: premium flag and today's conversion usage
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel

from convertly.api.dependencies import Services, get_services
from convertly.core.auth import require_user_id
from convertly.core.errors import NotFoundError, ValidationError
from convertly.core.logging import log_event
from convertly.features.email.service import EmailDeliveryError


logger = logging.getLogger("convertly")

router = APIRouter(prefix="/api", tags=["users"])


class SignupRequest(BaseModel):
    username: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None


class UsageResponse(BaseModel):
    user_id: int
    is_premium: bool
    conversions_today: int
    daily_limit: int
    remaining: Optional[int]
    eligibility: str


def ensure_test_endpoints(request: Request) -> None:
    """Hide development-only routes unless ENABLE_TEST_ENDPOINTS is set."""
    if not get_services(request).settings.ENABLE_TEST_ENDPOINTS:
        raise NotFoundError("Not found")


@router.get("/check-user")
async def check_user(
    email: Optional[str] = Query(None),
    services: Services = Depends(get_services),
):
    if not email:
        raise ValidationError("Email required")
    user = services.users.get_user_by_email(email)
    return {"exists": user is not None, "email": email}


@router.post("/signup-with-welcome")
async def signup_with_welcome(
    request: SignupRequest,
    services: Services = Depends(get_services),
):
    """Create a free account, then try to send the welcome email."""
    user = services.users.create_user(request.username, request.email, request.password)

    email_sent = False
    try:
        email_sent = await services.email.send_welcome_email(user)
    except EmailDeliveryError as e:
        log_event("error", "email.failed", user_id=user.id, event_type="email.welcome",
                  error_code="email_delivery_failed", extra={"reason": e})

    return {
        "success": True,
        "message": "Account created successfully",
        "user": user.public_dict(),
        "welcomeEmailSent": email_sent,
    }


@router.post("/test-create-user", dependencies=[Depends(ensure_test_endpoints)])
async def test_create_user(
    request: SignupRequest,
    services: Services = Depends(get_services),
):
    user = services.users.create_user(request.username, request.email, request.password)
    logger.info(f"Test user created: {user.id}")
    return {"success": True, "message": "Test user created", "user": user.public_dict()}


@router.get("/account/usage", response_model=UsageResponse)
async def account_usage(
    user_id: int = Depends(require_user_id),
    services: Services = Depends(get_services),
):
    user = services.store.get_user(user_id)
    usage = services.store.get_daily_usage(user_id)
    return UsageResponse(
        user_id=user.id,
        is_premium=user.is_premium,
        conversions_today=usage.count,
        daily_limit=services.gate.daily_limit,
        remaining=services.gate.remaining(user_id),
        eligibility=services.gate.eligibility(user_id).value,
    )
