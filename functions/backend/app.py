"""
FastAPI application entry point for the document portal backend.
"""

from __future__ import annotations

import logging

import requests
from fastapi import Depends, FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from google.genai import errors as genai_errors

from backend import knowledge_routes, routes
from backend.auth import get_current_user
from backend.config import get_settings
from backend.dify import DifyApiError, DifyNotConfiguredError
from backend.documents import DocumentStoreError
from import_pipeline.import_pipeline import NoExtractableTextError
from models.gemini import GeminiInvalidResponseException, GeminiNotConfiguredError
from shared.constants import DATA_SOURCE_COOKIE, DATA_SOURCE_HEADER, DATA_SOURCES

logger = logging.getLogger(__name__)

# Vendor and configuration failures surface as 500 {"error": message}.
SERVER_ERRORS = (
    DifyApiError,
    DifyNotConfiguredError,
    GeminiInvalidResponseException,
    GeminiNotConfiguredError,
    genai_errors.APIError,
    DocumentStoreError,
    NoExtractableTextError,
    requests.RequestException,
)


def resolve_data_source(request: Request, default: str) -> str:
    """Header first, then cookie, then the configured default."""
    for candidate in (
        request.headers.get(DATA_SOURCE_HEADER),
        request.cookies.get(DATA_SOURCE_COOKIE),
    ):
        if candidate in DATA_SOURCES:
            return candidate
    return default if default in DATA_SOURCES else DATA_SOURCES[0]


def _server_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "%s %s failed: %s: %s",
        request.method,
        request.url.path,
        type(exc).__name__,
        exc,
    )
    return JSONResponse(status_code=500, content={"error": str(exc)})


def _validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    return JSONResponse(
        status_code=400, content={"detail": jsonable_encoder(exc.errors())}
    )


def create_app() -> FastAPI:
    settings = get_settings()
    logging.basicConfig(level=settings.log_level)

    missing = settings.missing_server_keys()
    if missing:
        logger.warning(
            "Missing server configuration: %s. Related features will fail.",
            ", ".join(missing),
        )

    app = FastAPI(title="Condo Docs Portal API", version="0.1.0")

    @app.middleware("http")
    async def data_source_middleware(request: Request, call_next):
        if not request.url.path.startswith(settings.api_prefix):
            return await call_next(request)
        data_source = resolve_data_source(request, settings.default_data_source)
        request.state.data_source = data_source
        response = await call_next(request)
        response.set_cookie(DATA_SOURCE_COOKIE, data_source, path="/", samesite="lax")
        return response

    for exc_class in SERVER_ERRORS:
        app.add_exception_handler(exc_class, _server_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)

    app.include_router(routes.health_router, prefix=settings.api_prefix)
    app.include_router(
        routes.router,
        prefix=settings.api_prefix,
        dependencies=[Depends(get_current_user)],
    )
    app.include_router(
        knowledge_routes.router,
        prefix=settings.api_prefix,
        dependencies=[Depends(get_current_user)],
    )
    return app


app = create_app()
