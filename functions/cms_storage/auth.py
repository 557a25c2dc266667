"""
Bearer token verification against the managed auth service.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

from firebase_admin import auth as firebase_auth
from firebase_admin import exceptions as firebase_exceptions

from cms_storage.errors import InvalidToken

logger = logging.getLogger(__name__)


class TokenVerifier(Protocol):
    """Resolves a bearer token to the caller's uid."""

    def verify(self, token: str) -> str:
        ...


@dataclass
class FirebaseTokenVerifier:
    """Verifies Firebase ID tokens with the Admin SDK."""

    app: Any = None
    check_revoked: bool = False

    def verify(self, token: str) -> str:
        try:
            decoded = firebase_auth.verify_id_token(
                token, app=self.app, check_revoked=self.check_revoked
            )
        except (ValueError, firebase_exceptions.FirebaseError) as exc:
            logger.warning("Token verification failed: %s", exc)
            raise InvalidToken(str(exc)) from exc

        uid = (decoded or {}).get("uid")
        if not uid:
            raise InvalidToken("Invalid token: Missing user ID")
        return uid


@dataclass
class StaticTokenVerifier:
    """Fixed token table for tests and in-memory development."""

    tokens: dict = field(default_factory=dict)

    def verify(self, token: str) -> str:
        uid = self.tokens.get(token)
        if not uid:
            raise InvalidToken("Unknown token")
        return uid
