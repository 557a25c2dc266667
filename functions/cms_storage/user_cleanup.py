"""
Storage cleanup step of user account removal.
"""

from __future__ import annotations

import logging

from cms_storage.mutator import PathSafeStorageMutator
from cms_storage.paths import user_base_path

logger = logging.getLogger(__name__)

USER_FOLDERS = ("public_images/", "private/")


async def purge_user_storage(mutator: PathSafeStorageMutator, user_id: str) -> dict:
    """
    Recursively delete the user's image and private folders.

    Best effort: a folder that fails is logged and counted, and the next
    folder is still processed.
    """
    progress = {
        "attempted": len(USER_FOLDERS),
        "successful": 0,
        "failed": 0,
        "deletedCount": 0,
        "errors": [],
    }
    for folder in USER_FOLDERS:
        prefix = f"{user_base_path(user_id)}{folder}"
        try:
            result = await mutator.delete_folder(prefix, user_id)
        except Exception as exc:
            logger.exception("Failed to purge %s for user %s", prefix, user_id)
            progress["failed"] += 1
            progress["errors"].append({"item": prefix, "error": str(exc)})
            continue

        progress["successful"] += 1
        progress["deletedCount"] += result.processed_count
        progress["errors"].extend(failure.as_dict() for failure in result.errors)
        logger.info(
            "Purged %s for user %s: %d objects deleted",
            prefix,
            user_id,
            result.processed_count,
        )
    return progress
