"""
Firebase Admin SDK application setup.

The app handle is built once by ``create_app`` and passed to the storage
client and token verifier.
"""

from __future__ import annotations

import logging

import firebase_admin
from firebase_admin import credentials

from cms_storage.config import Settings

logger = logging.getLogger(__name__)

TOKEN_URI = "https://oauth2.googleapis.com/token"


def _service_account_info(settings: Settings) -> dict:
    return {
        "type": "service_account",
        "project_id": settings.firebase_project_id,
        "private_key_id": settings.firebase_private_key_id,
        # Keys passed through env vars carry literal "\n" sequences.
        "private_key": settings.firebase_private_key.replace("\\n", "\n"),
        "client_email": settings.firebase_client_email,
        "client_id": settings.firebase_client_id,
        "auth_uri": "https://accounts.google.com/o/oauth2/auth",
        "token_uri": TOKEN_URI,
        "auth_provider_x509_cert_url": "https://www.googleapis.com/oauth2/v1/certs",
        "client_x509_cert_url": settings.firebase_client_x509_cert_url,
    }


def build_credential(settings: Settings) -> credentials.Base:
    if settings.firebase_private_key:
        return credentials.Certificate(_service_account_info(settings))
    return credentials.ApplicationDefault()


def initialize_firebase_app(settings: Settings) -> firebase_admin.App:
    """Return the named Firebase app, initializing it on first use."""
    try:
        return firebase_admin.get_app(settings.firebase_app_name)
    except ValueError:
        pass

    options = {}
    if settings.firebase_project_id:
        options["projectId"] = settings.firebase_project_id
    if settings.firebase_storage_bucket:
        options["storageBucket"] = settings.firebase_storage_bucket

    app = firebase_admin.initialize_app(
        build_credential(settings), options, name=settings.firebase_app_name
    )
    logger.info("Firebase Admin SDK initialized (app=%s)", settings.firebase_app_name)
    return app
