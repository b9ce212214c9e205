"""
convertly/models/user.py

User model: identity plus the entitlement fields read by the quota gate.
"""

from datetime import date, datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict


class User(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    username: str
    email: str
    is_premium: bool = False
    conversions_today: int = 0
    last_conversion_date: Optional[date] = None
    created_at: Optional[datetime] = None

    def public_dict(self) -> dict:
        """Fields safe to return to clients."""
        return {
            "id": self.id,
            "email": self.email,
            "username": self.username,
            "isPremium": self.is_premium,
        }
