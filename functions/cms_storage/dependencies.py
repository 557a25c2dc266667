"""
Dependency wiring for the FastAPI app.

Clients are built once per application by ``create_app`` and kept on
``app.state``; route handlers receive them through the providers below.
"""

from __future__ import annotations

import logging

from fastapi import Depends, Request

from cms_storage.auth import FirebaseTokenVerifier, StaticTokenVerifier, TokenVerifier
from cms_storage.config import Settings
from cms_storage.errors import ApiError, InvalidToken
from cms_storage.firebase import initialize_firebase_app
from cms_storage.mutator import PathSafeStorageMutator
from cms_storage.storage import (
    FirebaseStorageClient,
    InMemoryStorageClient,
    S3StorageClient,
    StorageClient,
)

logger = logging.getLogger(__name__)


def build_storage_client(settings: Settings, firebase_app=None) -> StorageClient:
    if settings.use_in_memory_backends:
        return InMemoryStorageClient()
    if settings.storage_backend == "s3":
        return S3StorageClient(
            bucket=settings.s3_bucket or "",
            region=settings.s3_region or "",
            endpoint=settings.s3_endpoint,
            access_key_id=settings.aws_access_key_id or "",
            secret_access_key=settings.aws_secret_access_key or "",
        )
    return FirebaseStorageClient(
        app=firebase_app, bucket_name=settings.firebase_storage_bucket
    )


def build_token_verifier(settings: Settings, firebase_app=None) -> TokenVerifier:
    if settings.use_in_memory_backends:
        return StaticTokenVerifier(dict(settings.dev_tokens))
    return FirebaseTokenVerifier(app=firebase_app)


def build_clients(settings: Settings) -> tuple[StorageClient, TokenVerifier]:
    firebase_app = None
    if not settings.use_in_memory_backends:
        # Token verification goes through Firebase even for S3 storage.
        firebase_app = initialize_firebase_app(settings)
    return (
        build_storage_client(settings, firebase_app),
        build_token_verifier(settings, firebase_app),
    )


def build_mutator(storage: StorageClient, settings: Settings) -> PathSafeStorageMutator:
    return PathSafeStorageMutator(
        storage,
        delete_batch_size=settings.delete_batch_size,
        move_batch_size=settings.move_batch_size,
        delete_batch_delay=settings.delete_batch_delay_seconds,
        move_batch_delay=settings.move_batch_delay_seconds,
    )


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_storage_client(request: Request) -> StorageClient:
    return request.app.state.storage_client


def get_token_verifier(request: Request) -> TokenVerifier:
    return request.app.state.token_verifier


def get_mutator(request: Request) -> PathSafeStorageMutator:
    return request.app.state.mutator


def get_current_user_id(
    request: Request, verifier: TokenVerifier = Depends(get_token_verifier)
) -> str:
    """Resolve the caller's uid from ``Authorization: Bearer <token>``."""
    header = request.headers.get("authorization", "")
    if not header.startswith("Bearer "):
        logger.warning("Missing or invalid authorization header")
        raise ApiError(
            401, {"error": "Unauthorized: Missing or invalid authorization header"}
        )

    token = header.split("Bearer ", 1)[1].strip()
    if not token:
        raise ApiError(401, {"error": "Unauthorized: Empty authentication token"})

    try:
        uid = verifier.verify(token)
    except InvalidToken as exc:
        raise ApiError(
            401, {"error": "Invalid authentication token", "details": str(exc)}
        )

    logger.info("Authentication successful for user: %s", uid)
    return uid
