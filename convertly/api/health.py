"""
Health and diagnostics API.

Lightweight endpoints for operational monitoring; no secrets are exposed.
"""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from convertly.api.dependencies import Services, get_services
from convertly.core.database import check_connection, get_engine
from convertly.core.logging import get_request_id

logger = logging.getLogger("convertly")

router = APIRouter(prefix="/api", tags=["health"])
root_router = APIRouter(tags=["health"])


@root_router.get("/healthz")
def healthz():
    """Lightweight liveness check (no deps)."""
    return {"status": "ok"}


@router.get("/health")
def health():
    """Readiness check: database connectivity."""
    timestamp = datetime.now(timezone.utc).isoformat()
    if not check_connection(get_engine()):
        logger.error("health.db_unreachable", extra={"request_id": get_request_id()})
        return JSONResponse(
            status_code=500,
            content={"status": "error", "database": "disconnected", "timestamp": timestamp},
        )
    return {"status": "ok", "database": "connected", "timestamp": timestamp}


@router.get("/db-stats")
def db_stats(services: Services = Depends(get_services)):
    users = services.users.stats()
    return {
        "users": {
            "total": users["total"],
            "premium": users["premium"],
            "free": users["free"],
        },
        "newsletter_subscribers": services.newsletter.count(),
    }
