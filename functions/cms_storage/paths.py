"""
Path rules for the per-user object namespace.

The store is flat: an object key such as ``users/abc/photos/cat.png`` has no
parent directory object, and a "folder" is just a listing prefix ending in
``/``. Every mutating operation checks each path it touches with
``validate_user_path`` before calling the store.
"""

from __future__ import annotations

import logging
import re
from typing import NewType

from cms_storage.errors import AccessDenied, InvalidInput

logger = logging.getLogger(__name__)

ObjectPath = NewType("ObjectPath", str)
PathPrefix = NewType("PathPrefix", str)

USER_ROOT = "users"
FILE_NAME_PATTERN = re.compile(r"^[a-zA-Z0-9_.-]+$")
FOLDER_NAME_PATTERN = re.compile(r"^[a-zA-Z0-9_-]+$")
SUSPICIOUS_SUBSTRINGS = ("..", "//")


def user_base_path(user_id: str) -> PathPrefix:
    return PathPrefix(f"{USER_ROOT}/{user_id}/")


def validate_user_path(path: str, user_id: str, operation: str = "access") -> None:
    """
    Raise unless ``path`` is confined to ``users/{user_id}/``.

    Rules are applied in order: non-empty inputs, namespace prefix, then
    forbidden substrings.
    """
    if not path or not isinstance(path, str):
        raise InvalidInput("Path must be a non-empty string")
    if not user_id or not isinstance(user_id, str) or "/" in user_id:
        raise InvalidInput("User ID must be a non-empty string without '/'")

    base = user_base_path(user_id)
    if not path.startswith(base):
        logger.warning(
            "Path validation failed for %s: %s is outside %s", operation, path, base
        )
        raise AccessDenied(
            f"Access denied: Path must be within user storage space ({base})"
        )

    if any(token in path for token in SUSPICIOUS_SUBSTRINGS):
        raise InvalidInput("Invalid path: Contains suspicious patterns")

    logger.debug("Path validation successful for %s: %s", operation, path)


def as_folder_prefix(path: str) -> PathPrefix:
    return PathPrefix(path if path.endswith("/") else path + "/")


def folder_name(path: str) -> str:
    segments = [segment for segment in path.split("/") if segment]
    if not segments:
        raise InvalidInput("Invalid source path: Cannot determine folder name")
    return segments[-1]


def check_file_name(new_name: str) -> str:
    if not isinstance(new_name, str) or not new_name.strip():
        raise InvalidInput("New name must be a non-empty string")
    if not FILE_NAME_PATTERN.match(new_name):
        raise InvalidInput(
            "File name can only contain letters, numbers, underscores, hyphens, and dots"
        )
    return new_name.strip()


def check_folder_name(new_name: str) -> str:
    if not isinstance(new_name, str) or not new_name.strip():
        raise InvalidInput("New name must be a non-empty string")
    if not FOLDER_NAME_PATTERN.match(new_name):
        raise InvalidInput(
            "Folder name can only contain letters, numbers, underscores, and hyphens"
        )
    return new_name.strip()


def replace_last_segment(path: str, new_name: str) -> ObjectPath:
    parts = path.split("/")
    parts[-1] = new_name
    return ObjectPath("/".join(parts))


def sibling_folder(prefix: str, new_name: str) -> PathPrefix:
    parts = [segment for segment in prefix.split("/") if segment]
    parts[-1] = new_name
    return PathPrefix("/".join(parts) + "/")
