"""
User domain service.
- create_user(username, email, password)
- get_user(user_id) / get_user_by_email(email)
- stats()
"""

from typing import Dict, Optional

import bcrypt
from sqlalchemy import select, insert, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from convertly.core.database import guarded_session, get_session_factory, users
from convertly.core.errors import ConflictError, ValidationError
from convertly.models.user import User


def user_from_row(row) -> User:
    return User(
        id=row.id,
        username=row.username,
        email=row.email,
        is_premium=bool(row.is_premium),
        conversions_today=row.conversions_today,
        last_conversion_date=row.last_conversion_date,
        created_at=row.created_at,
    )


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


class UserService:
    def __init__(self, session_factory: Optional[sessionmaker] = None):
        self._session_factory = session_factory or get_session_factory()

    def get_user(self, user_id: int) -> Optional[User]:
        with guarded_session(self._session_factory, "user store") as session:
            row = session.execute(select(users).where(users.c.id == user_id)).first()
            return user_from_row(row) if row else None

    def get_user_by_email(self, email: str) -> Optional[User]:
        with guarded_session(self._session_factory, "user store") as session:
            row = session.execute(select(users).where(users.c.email == email)).first()
            return user_from_row(row) if row else None

    def create_user(self, username: str, email: str, password: str) -> User:
        username = (username or "").strip()
        email = (email or "").strip()
        if not username or not email or not password:
            raise ValidationError("Username, email, and password are required")

        password_hash = hash_password(password)
        with guarded_session(self._session_factory, "user store") as session:
            try:
                result = session.execute(
                    insert(users).values(
                        username=username,
                        email=email,
                        password_hash=password_hash,
                        is_premium=False,
                        conversions_today=0,
                    )
                )
            except IntegrityError as exc:
                raise ConflictError(f"User with email {email} already exists") from exc
            user_id = result.inserted_primary_key[0]
            row = session.execute(select(users).where(users.c.id == user_id)).first()
            return user_from_row(row)

    def stats(self) -> Dict[str, int]:
        with guarded_session(self._session_factory, "user store") as session:
            total = session.execute(select(func.count()).select_from(users)).scalar_one()
            premium = session.execute(
                select(func.count()).select_from(users).where(users.c.is_premium.is_(True))
            ).scalar_one()
        return {"total": total, "premium": premium, "free": total - premium}
