"""
convertly/models/entitlement.py

Value objects exchanged between the entitlement store and the quota gate.
"""

import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict

DAILY_LIMIT_REACHED = "daily limit reached"


class Eligibility(str, Enum):
    """Conversion eligibility of a user at a point in time."""
    ELIGIBLE = "ELIGIBLE"
    FREE_EXHAUSTED = "FREE_EXHAUSTED"


class DailyUsage(BaseModel):
    """Counter state after rollover: ``count`` conversions on ``date``."""
    model_config = ConfigDict(frozen=True)

    count: int
    date: datetime.date


class QuotaDecision(BaseModel):
    model_config = ConfigDict(frozen=True)

    allowed: bool
    reason: Optional[str] = None

    @classmethod
    def allow(cls) -> "QuotaDecision":
        return cls(allowed=True)

    @classmethod
    def deny(cls, reason: str = DAILY_LIMIT_REACHED) -> "QuotaDecision":
        return cls(allowed=False, reason=reason)
