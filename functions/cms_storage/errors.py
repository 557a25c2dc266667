"""
Exception types raised by path validation and storage mutations.
"""

from __future__ import annotations


class StorageOperationError(Exception):
    """Base class for failures of a storage mutation."""


class InvalidInput(StorageOperationError):
    """Malformed path, name or request field."""


class AccessDenied(StorageOperationError):
    """Path lies outside the caller's namespace."""


class NotFound(StorageOperationError):
    """Referenced object does not exist."""


class AlreadyExists(StorageOperationError):
    """Destination object or folder is already present."""


class InvalidToken(Exception):
    """Bearer token could not be verified."""


class ApiError(Exception):
    """Request rejected at the HTTP boundary with a ready-made JSON body."""

    def __init__(self, status_code: int, body: dict):
        super().__init__(body.get("error", ""))
        self.status_code = status_code
        self.body = body
