import logging
import os
import time
from contextlib import asynccontextmanager
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI
from starlette.exceptions import HTTPException as StarletteHTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

# Load env from the project .env before settings are read
backend_dir = os.path.dirname(os.path.abspath(__file__))
if "PYTEST_CURRENT_TEST" not in os.environ:
    load_dotenv(dotenv_path=os.path.join(os.path.dirname(backend_dir), ".env"))

from convertly.api import billing, conversions, health, newsletter, users
from convertly.api.dependencies import build_services
from convertly.core.config import Settings, settings as default_settings, validate_config
from convertly.core.database import create_all_tables, get_engine, get_session_factory, init_engine
from convertly.core.errors import (
    AppError,
    app_error_handler,
    http_error_handler,
    request_validation_error_handler,
    unhandled_exception_handler,
)
from convertly.core.logging import configure_logging
from convertly.core.middleware.request_id import RequestIdMiddleware
from convertly.core.validation import validate_env


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger = logging.getLogger("convertly")
    logger.info("Starting Convertly backend...")
    app.state.startup_time = time.time()
    create_all_tables(get_engine())
    app.state.services.conversions.ensure_dirs()
    try:
        yield
    finally:
        logger.info("Stopping Convertly backend...")


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Build the API from ``settings`` (defaults to the environment)."""
    cfg = settings or default_settings

    configure_logging(cfg.ENV)
    validate_env(settings_obj=cfg)
    validate_config(strict=cfg.CONFIG_STRICT, settings_obj=cfg)

    init_engine(cfg.DATABASE_URL)

    app = FastAPI(title="Convertly - Backend", lifespan=lifespan)
    app.state.settings = cfg
    app.state.services = build_services(cfg, get_session_factory())

    app.add_middleware(RequestIdMiddleware)

    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_error_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    origins = [o.strip() for o in cfg.CORS_ORIGINS.split(",") if o.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["x-request-id"],
    )

    app.include_router(conversions.router)
    app.include_router(users.router)
    app.include_router(billing.router)
    app.include_router(newsletter.router)
    app.include_router(health.router)
    app.include_router(health.root_router)

    return app


def run() -> None:
    import uvicorn

    uvicorn.run(
        "convertly.main:create_app",
        factory=True,
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "3000")),
    )


if __name__ == "__main__":
    run()
