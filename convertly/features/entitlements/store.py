"""
convertly/features/entitlements/store.py

Entitlement store: per-user premium flag and per-day conversion counter.

Counters roll over lazily. A stored ``last_conversion_date`` other than today
means the counter reads as zero; nothing is written until the next admitted
conversion. Every write is a single conditional UPDATE so the database row is
the serialization point for a user.
"""

from datetime import date, datetime
import logging
from typing import Callable, Optional, Union

from sqlalchemy import select, update, case, or_
from sqlalchemy.orm import sessionmaker

from convertly.core.database import guarded_session, get_session_factory, users
from convertly.core.errors import InvalidStateError, NotFoundError
from convertly.features.users.service import user_from_row
from convertly.models.entitlement import DailyUsage
from convertly.models.user import User


logger = logging.getLogger(__name__)

When = Union[date, datetime, None]


def _not_today(today: date):
    return or_(
        users.c.last_conversion_date.is_(None),
        users.c.last_conversion_date != today,
    )


def _increment_values(today: date) -> dict:
    # SET expressions see the pre-update row on every supported backend
    return {
        "conversions_today": case(
            (users.c.last_conversion_date == today, users.c.conversions_today + 1),
            else_=1,
        ),
        "last_conversion_date": today,
    }


def rolled_usage(count: int, last_date: Optional[date], today: date) -> DailyUsage:
    """Apply the rollover rule to a stored (count, date) pair."""
    if count < 0:
        raise InvalidStateError(f"Negative conversion counter: {count}")
    if last_date != today:
        return DailyUsage(count=0, date=today)
    return DailyUsage(count=count, date=today)


class EntitlementStore:
    """Premium flag and daily conversion counters, backed by the users table."""

    def __init__(
        self,
        session_factory: Optional[sessionmaker] = None,
        *,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self._session_factory = session_factory or get_session_factory()
        self._clock = clock

    def today(self, when: When = None) -> date:
        if when is None:
            when = self._clock()
        if isinstance(when, datetime):
            return when.date()
        return when

    def _session(self):
        return guarded_session(self._session_factory, "entitlement store")

    def get_user(self, user_id: int) -> User:
        with self._session() as session:
            row = session.execute(select(users).where(users.c.id == user_id)).first()
        if row is None:
            raise NotFoundError(f"User {user_id} not found")
        return user_from_row(row)

    def get_daily_usage(self, user_id: int, today: When = None) -> DailyUsage:
        """Return today's counter for ``user_id``, rolled to zero on a new day."""
        day = self.today(today)
        with self._session() as session:
            row = session.execute(
                select(users.c.conversions_today, users.c.last_conversion_date)
                .where(users.c.id == user_id)
            ).first()
        if row is None:
            raise NotFoundError(f"User {user_id} not found")
        return rolled_usage(row.conversions_today, row.last_conversion_date, day)

    def record_conversion(self, user_id: int, now: When = None) -> DailyUsage:
        """
        Count one conversion for ``user_id`` on the day of ``now``.

        Each call counts exactly one conversion; callers invoke it once per
        admitted conversion.
        """
        day = self.today(now)
        with self._session() as session:
            result = session.execute(
                update(users)
                .where(users.c.id == user_id)
                .where(users.c.conversions_today >= 0)
                .values(**_increment_values(day))
            )
            if result.rowcount != 1:
                self._raise_unwritable(session, user_id)
            row = session.execute(
                select(users.c.conversions_today, users.c.last_conversion_date)
                .where(users.c.id == user_id)
            ).first()
        return DailyUsage(count=row.conversions_today, date=row.last_conversion_date)

    def try_record_conversion(self, user_id: int, now: When = None, *, limit: int = 1) -> bool:
        """
        Atomically count one conversion if the user still has quota.

        The increment happens only when the user is premium or today's rolled
        count is below ``limit``. Returns True when the conversion was counted.
        """
        day = self.today(now)
        admissible = [users.c.is_premium.is_(True)]
        if limit > 0:
            # with a zero limit only premium users are admitted
            admissible += [_not_today(day), users.c.conversions_today < limit]
        with self._session() as session:
            result = session.execute(
                update(users)
                .where(users.c.id == user_id)
                .where(users.c.conversions_today >= 0)
                .where(or_(*admissible))
                .values(**_increment_values(day))
            )
            if result.rowcount == 1:
                return True
            self._raise_unwritable(session, user_id)
        return False

    def release_conversion(self, user_id: int, now: When = None) -> bool:
        """Undo one counted conversion from today. Never crosses a date boundary."""
        day = self.today(now)
        with self._session() as session:
            result = session.execute(
                update(users)
                .where(users.c.id == user_id)
                .where(users.c.last_conversion_date == day)
                .where(users.c.conversions_today > 0)
                .values(conversions_today=users.c.conversions_today - 1)
            )
            released = result.rowcount == 1
        if released:
            logger.info("[entitlements] conversion released", extra={"user_id": user_id})
        return released

    def set_premium(self, email: str) -> Optional[User]:
        """
        Mark the user with exactly this email as premium.

        Returns the updated user, or None when no stored email matches.
        """
        with self._session() as session:
            result = session.execute(
                update(users).where(users.c.email == email).values(is_premium=True)
            )
            if result.rowcount == 0:
                return None
            row = session.execute(select(users).where(users.c.email == email)).first()
        user = user_from_row(row)
        logger.info("[entitlements] premium granted", extra={"user_id": user.id})
        return user

    @staticmethod
    def _raise_unwritable(session, user_id: int) -> None:
        """Explain a conditional UPDATE that matched no row, if it is an error."""
        row = session.execute(
            select(users.c.conversions_today).where(users.c.id == user_id)
        ).first()
        if row is None:
            raise NotFoundError(f"User {user_id} not found")
        if row.conversions_today < 0:
            raise InvalidStateError(f"Negative conversion counter for user {user_id}")
