"""
FastAPI application entry point for the storage admin service.
"""

from __future__ import annotations

import logging
import traceback
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from cms_storage.auth import TokenVerifier
from cms_storage.config import Settings, get_settings
from cms_storage.dependencies import build_clients, build_mutator
from cms_storage.errors import ApiError
from cms_storage.routes import ALLOWED_METHODS, router
from cms_storage.storage import StorageClient

logger = logging.getLogger(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "Content-Type, Authorization",
    "Access-Control-Allow-Methods": ", ".join(ALLOWED_METHODS),
}


def _apply_cors_headers(response):
    for key, value in CORS_HEADERS.items():
        response.headers[key] = value
    return response


async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    return _apply_cors_headers(JSONResponse(exc.body, status_code=exc.status_code))


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error in storage function: %s %s", request.method, request.url.path)
    app = request.scope.get("app")
    settings: Settings = app.state.settings if app is not None else get_settings()
    body = {"error": "Internal server error", "message": str(exc)}
    if not settings.is_production:
        body["details"] = "".join(
            traceback.format_exception(type(exc), exc, exc.__traceback__)
        )
    body["timestamp"] = datetime.now(timezone.utc).isoformat()
    return _apply_cors_headers(JSONResponse(body, status_code=500))


def create_app(
    settings: Optional[Settings] = None,
    *,
    storage_client: Optional[StorageClient] = None,
    token_verifier: Optional[TokenVerifier] = None,
) -> FastAPI:
    """
    Build the application. Clients not passed in are constructed from settings.
    """
    settings = settings or get_settings()
    logging.basicConfig(level=settings.log_level.upper())

    if storage_client is None or token_verifier is None:
        built_storage, built_verifier = build_clients(settings)
        storage_client = storage_client or built_storage
        token_verifier = token_verifier or built_verifier

    app = FastAPI(title="CMS Storage Admin", version="0.1.0")
    app.state.settings = settings
    app.state.storage_client = storage_client
    app.state.token_verifier = token_verifier
    app.state.mutator = build_mutator(storage_client, settings)

    app.add_exception_handler(ApiError, api_error_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    @app.middleware("http")
    async def cors_headers_middleware(request: Request, call_next):
        response = await call_next(request)
        return _apply_cors_headers(response)

    app.include_router(router, prefix=settings.api_prefix)
    return app
