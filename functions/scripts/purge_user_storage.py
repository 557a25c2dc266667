"""
Delete a user's stored images and private files.

Runs the storage step of account removal outside the HTTP service, e.g. when
an account was removed from the auth service but its files were left behind.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from cms_storage.config import get_settings
from cms_storage.dependencies import build_clients, build_mutator
from cms_storage.paths import user_base_path
from cms_storage.storage import StorageClient
from cms_storage.user_cleanup import USER_FOLDERS, purge_user_storage


logger = logging.getLogger(__name__)


def count_user_objects(storage: StorageClient, user_id: str) -> dict[str, int]:
    counts = {}
    for folder in USER_FOLDERS:
        prefix = f"{user_base_path(user_id)}{folder}"
        counts[prefix] = len(storage.list_objects(prefix))
    return counts


def main() -> int:
    parser = argparse.ArgumentParser(description="Purge a user's storage folders")
    parser.add_argument("--user-id", required=True, help="uid whose files to delete")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Report how many objects would be deleted without deleting",
    )
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(levelname)s:%(message)s")
    settings = get_settings()
    storage, _ = build_clients(settings)

    if args.dry_run:
        counts = count_user_objects(storage, args.user_id)
        print(json.dumps(counts, indent=2))
        return 0

    mutator = build_mutator(storage, settings)
    progress = asyncio.run(purge_user_storage(mutator, args.user_id))
    print(json.dumps(progress, indent=2))
    if progress["failed"]:
        logger.error("Failed to purge %d folder(s)", progress["failed"])
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
