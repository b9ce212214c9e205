"""
convertly/features/quota/gate.py

Quota gate: admission control for conversion requests.

States per user and day:
- ELIGIBLE: premium, or fewer than ``daily_limit`` conversions today
- FREE_EXHAUSTED: not premium and the daily allowance is used up

ELIGIBLE -> FREE_EXHAUSTED on the admitted conversion that reaches the limit.
The reverse happens lazily on the first evaluation of a new calendar day, or
permanently once the user turns premium (there is no downgrade path).

Anonymous requests (no user id) never reach the gate; the caller lets them
through and credits nothing.

Store failures propagate as StoreUnavailableError: the gate fails closed.
"""

from typing import Optional

from convertly.core.logging import log_event
from convertly.features.entitlements.store import EntitlementStore, When
from convertly.models.entitlement import DailyUsage, Eligibility, QuotaDecision, DAILY_LIMIT_REACHED


DEFAULT_DAILY_FREE_CONVERSIONS = 1


class QuotaGate:
    def __init__(self, store: EntitlementStore, *, daily_limit: int = DEFAULT_DAILY_FREE_CONVERSIONS):
        if daily_limit < 0:
            raise ValueError("daily_limit must not be negative")
        self._store = store
        self._daily_limit = daily_limit

    @property
    def daily_limit(self) -> int:
        return self._daily_limit

    def can_convert(self, user_id: int, now: When = None) -> QuotaDecision:
        """Decide admission without recording anything."""
        user = self._store.get_user(user_id)
        if user.is_premium:
            return QuotaDecision.allow()

        usage = self._store.get_daily_usage(user_id, now)
        if usage.count < self._daily_limit:
            return QuotaDecision.allow()

        self._log_denied(user_id, usage.count)
        return QuotaDecision.deny(DAILY_LIMIT_REACHED)

    def record(self, user_id: int, now: When = None) -> DailyUsage:
        """Count a completed conversion admitted by ``can_convert``."""
        return self._store.record_conversion(user_id, now)

    def admit(self, user_id: int, now: When = None) -> QuotaDecision:
        """
        Admit and count a conversion in one atomic step.

        Two concurrent requests for the same free user cannot both pass.
        """
        if self._store.try_record_conversion(user_id, now, limit=self._daily_limit):
            return QuotaDecision.allow()
        self._log_denied(user_id, None)
        return QuotaDecision.deny(DAILY_LIMIT_REACHED)

    def release(self, user_id: int, now: When = None) -> bool:
        """Give back a slot taken by ``admit`` when the conversion failed."""
        return self._store.release_conversion(user_id, now)

    def eligibility(self, user_id: int, now: When = None) -> Eligibility:
        if self.can_convert(user_id, now).allowed:
            return Eligibility.ELIGIBLE
        return Eligibility.FREE_EXHAUSTED

    def remaining(self, user_id: int, now: When = None) -> Optional[int]:
        """Conversions left today, or None when unlimited."""
        user = self._store.get_user(user_id)
        if user.is_premium:
            return None
        usage = self._store.get_daily_usage(user_id, now)
        return max(self._daily_limit - usage.count, 0)

    def _log_denied(self, user_id: int, count: Optional[int]) -> None:
        log_event(
            "warning",
            "quota.denied",
            user_id=user_id,
            event_type="quota.denied",
            error_code="daily_limit_reached",
            extra={"count": count, "limit": self._daily_limit},
        )
