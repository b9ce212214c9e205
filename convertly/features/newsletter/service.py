"""Newsletter subscriptions."""

import re
from typing import Optional

from sqlalchemy import func, insert, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from convertly.core.database import guarded_session, get_session_factory, newsletter_subscribers
from convertly.core.errors import ConflictError, ValidationError
from convertly.core.logging import log_event

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def normalize_email(email: Optional[str]) -> str:
    value = (email or "").strip().lower()
    if not _EMAIL_RE.match(value):
        raise ValidationError("Valid email address required")
    return value


class NewsletterService:
    def __init__(self, session_factory: Optional[sessionmaker] = None):
        self._session_factory = session_factory or get_session_factory()

    def subscribe(self, email: str) -> str:
        address = normalize_email(email)
        with guarded_session(self._session_factory, "newsletter store") as session:
            try:
                session.execute(insert(newsletter_subscribers).values(email=address))
            except IntegrityError as exc:
                raise ConflictError("Email already subscribed", status_code=400) from exc
        log_event("info", "newsletter.subscribed", event_type="newsletter.subscribed")
        return address

    def count(self) -> int:
        with guarded_session(self._session_factory, "newsletter store") as session:
            return session.execute(
                select(func.count()).select_from(newsletter_subscribers)
            ).scalar_one()
