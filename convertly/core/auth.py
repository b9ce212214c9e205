"""
Caller identity for the Convertly API.

The user id is taken as given from the ``X-User-Id`` header or the ``userId``
query parameter. There is no session or token verification; a missing or
non-numeric value means the caller is anonymous.
"""
import logging
from typing import Optional

from fastapi import Request

from convertly.core.errors import AuthenticationRequiredError

logger = logging.getLogger(__name__)

USER_ID_HEADER = "X-User-Id"
USER_ID_QUERY = "userId"


def parse_user_id(raw: Optional[str]) -> Optional[int]:
    if raw is None:
        return None
    raw = raw.strip()
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError:
        logger.debug(f"Ignoring non-numeric user id: {raw[:32]!r}")
        return None


async def get_optional_user_id(request: Request) -> Optional[int]:
    """Resolve the caller's user id, header first, or None for anonymous."""
    header = parse_user_id(request.headers.get(USER_ID_HEADER))
    if header is not None:
        return header
    return parse_user_id(request.query_params.get(USER_ID_QUERY))


async def require_user_id(request: Request) -> int:
    user_id = await get_optional_user_id(request)
    if user_id is None:
        raise AuthenticationRequiredError(
            f"Missing {USER_ID_HEADER} header or {USER_ID_QUERY} parameter"
        )
    return user_id
