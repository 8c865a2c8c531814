from __future__ import annotations
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response

from app.api import router
from logging_config import configure_logging
from services.dispatcher import build_default_dispatcher
from services.telemetry import build_default_service
from settings import get_settings


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    service = build_default_service()
    try:
        yield
    finally:
        service.alerts.dispatcher.shutdown()
        build_default_service.cache_clear()
        build_default_dispatcher.cache_clear()


async def validation_exception_handler(
    _request: Request, exc: RequestValidationError
) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": jsonable_encoder(exc.errors())},
    )


async def limit_payload_size(
    request: Request, call_next: Callable[[Request], Awaitable[Response]]
) -> Response:
    max_bytes = get_settings().max_payload_bytes
    declared = request.headers.get("content-length", "0")
    try:
        size = int(declared)
    except ValueError:
        size = 0
    if size > max_bytes:
        return JSONResponse(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            content={"detail": "Payload too large"},
        )
    return await call_next(request)


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(
        title="Telemetry Ingestor",
        description="Sensor telemetry ingestion with a latest-value cache, deduplicated alerts and site summaries.",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.middleware("http")(limit_payload_size)
    app.include_router(router)
    return app

app = create_app()
