"""
FastAPI application entry point for the devhub backend.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

from devhub.config import get_settings
from devhub.dependencies import cache_stats_snapshot, reset_singletons
from devhub.errors import AppError
from devhub.routes import router
from devhub.routes.common import validation_messages
from devhub.schemas import HealthResponse

logger = logging.getLogger(__name__)

APP_VERSION = "0.1.0"


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(name)s %(levelname)s %(asctime)s %(message)s",
        datefmt="%m/%d/%Y %I:%M:%S %p",
    )


def _error_response(status_code: int, messages: list[str]) -> JSONResponse:
    return JSONResponse(
        status_code=status_code, content={"success": False, "message": messages}
    )


async def handle_app_error(request: Request, exc: AppError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    else:
        logger.info(
            "%s %s -> %s: %s",
            request.method,
            request.url.path,
            exc.status_code,
            exc.message,
        )
    return _error_response(exc.status_code, exc.errors)


async def handle_request_validation(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    return _error_response(400, validation_messages(exc))


async def handle_integrity_error(request: Request, exc: IntegrityError) -> JSONResponse:
    logger.warning("Constraint violation on %s %s", request.method, request.url.path)
    return _error_response(409, ["Resource already exists"])


async def handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return _error_response(500, ["Internal server error"])


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    reset_singletons()


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging(settings.log_level)
    app = FastAPI(
        title="DevHub Backend (FastAPI)", version=APP_VERSION, lifespan=lifespan
    )
    app.add_exception_handler(AppError, handle_app_error)
    app.add_exception_handler(RequestValidationError, handle_request_validation)
    app.add_exception_handler(IntegrityError, handle_integrity_error)
    app.add_exception_handler(Exception, handle_unexpected)
    app.include_router(router, prefix=settings.api_prefix)

    @app.get("/health", response_model=HealthResponse)
    def health():
        return HealthResponse(
            status="ok", version=APP_VERSION, cache=cache_stats_snapshot()
        )

    return app


app = create_app()
