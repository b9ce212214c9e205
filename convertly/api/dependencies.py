"""
Service wiring for the HTTP layer.

``build_services`` constructs every service from a Settings object and a
session factory; the app stores the result on ``app.state.services`` and the
routers pull individual services through the dependencies below.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from fastapi import Request
from sqlalchemy.orm import sessionmaker

from convertly.core.config import Settings
from convertly.features.billing.service import BillingService, get_provider
from convertly.features.conversions.service import ConversionService
from convertly.features.email.service import EmailService, build_email_service
from convertly.features.entitlements.store import EntitlementStore
from convertly.features.newsletter.service import NewsletterService
from convertly.features.quota.gate import QuotaGate
from convertly.features.users.service import UserService


@dataclass
class Services:
    settings: Settings
    store: EntitlementStore
    gate: QuotaGate
    users: UserService
    conversions: ConversionService
    email: EmailService
    billing: BillingService
    newsletter: NewsletterService


def build_services(
    settings: Settings,
    session_factory: sessionmaker,
    *,
    clock: Callable[[], datetime] = datetime.now,
    email_service: Optional[EmailService] = None,
) -> Services:
    store = EntitlementStore(session_factory, clock=clock)
    gate = QuotaGate(store, daily_limit=settings.FREE_DAILY_CONVERSIONS)
    email = email_service or build_email_service(settings)
    return Services(
        settings=settings,
        store=store,
        gate=gate,
        users=UserService(session_factory),
        conversions=ConversionService(
            gate,
            session_factory,
            upload_dir=settings.UPLOAD_DIR,
            download_dir=settings.DOWNLOAD_DIR,
            max_upload_mb=settings.MAX_UPLOAD_MB,
        ),
        email=email,
        billing=BillingService(store, email, get_provider(settings), session_factory),
        newsletter=NewsletterService(session_factory),
    )


def get_services(request: Request) -> Services:
    return request.app.state.services


def get_user_service(request: Request) -> UserService:
    return get_services(request).users


def get_conversion_service(request: Request) -> ConversionService:
    return get_services(request).conversions


def get_billing_service(request: Request) -> BillingService:
    return get_services(request).billing


def get_newsletter_service(request: Request) -> NewsletterService:
    return get_services(request).newsletter
