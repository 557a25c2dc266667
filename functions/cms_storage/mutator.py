"""
Path-safe file and folder mutations against a flat object store.

The store has no directories and no rename primitive, so folder moves are
enumerate-copy-delete over a listing prefix. Folder operations are processed
in sequential batches. Deletes inside a batch are dispatched concurrently and
awaited together; moves inside a batch run one object after another. A
failing object never aborts its siblings. Nothing is
rolled back: a partial failure leaves already-processed objects moved.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Awaitable, Callable, Iterator, Optional, Sequence

from cms_storage.errors import AlreadyExists, InvalidInput, NotFound
from cms_storage.paths import (
    ObjectPath,
    PathPrefix,
    as_folder_prefix,
    check_file_name,
    check_folder_name,
    folder_name,
    replace_last_segment,
    sibling_folder,
    validate_user_path,
)
from cms_storage.storage import StorageClient, StoredObject

logger = logging.getLogger(__name__)

PLACEHOLDER_NAME = ".placeholder"
DEFAULT_DELETE_BATCH_SIZE = 50
DEFAULT_MOVE_BATCH_SIZE = 20
DEFAULT_DELETE_BATCH_DELAY = 0.1
DEFAULT_MOVE_BATCH_DELAY = 0.2


@dataclass
class ItemFailure:
    item: str
    error: str

    def as_dict(self) -> dict:
        return {"item": self.item, "error": self.error}


@dataclass
class FolderOperationResult:
    """Outcome of one batched folder operation; reported once, never stored."""

    attempted: int = 0
    processed_count: int = 0
    errors: list[ItemFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


@dataclass
class FolderMove:
    source: PathPrefix
    destination: PathPrefix
    result: FolderOperationResult


def iter_batches(items: Sequence, size: int) -> Iterator[Sequence]:
    for start in range(0, len(items), size):
        yield items[start : start + size]


class PathSafeStorageMutator:
    """Validated copy/move/rename/create/delete operations for one store."""

    def __init__(
        self,
        storage: StorageClient,
        *,
        delete_batch_size: int = DEFAULT_DELETE_BATCH_SIZE,
        move_batch_size: int = DEFAULT_MOVE_BATCH_SIZE,
        delete_batch_delay: float = DEFAULT_DELETE_BATCH_DELAY,
        move_batch_delay: float = DEFAULT_MOVE_BATCH_DELAY,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.storage = storage
        self.delete_batch_size = delete_batch_size
        self.move_batch_size = move_batch_size
        self.delete_batch_delay = delete_batch_delay
        self.move_batch_delay = move_batch_delay
        self._sleep = sleep

    async def _call(self, fn, *args, **kwargs):
        return await asyncio.to_thread(fn, *args, **kwargs)

    async def _list(self, prefix: str, max_results: Optional[int] = None) -> list[StoredObject]:
        return await self._call(self.storage.list_objects, prefix, max_results)

    async def _require_source(self, path: str) -> None:
        if not await self._call(self.storage.exists, path):
            raise NotFound("Source file does not exist")

    async def _require_absent(self, path: str, message: str) -> None:
        if await self._call(self.storage.exists, path):
            raise AlreadyExists(message)

    async def _require_empty_prefix(self, prefix: str, message: str) -> None:
        if await self._list(prefix, max_results=1):
            raise AlreadyExists(message)

    # Single objects

    async def copy_file(self, src: str, dest: str, user_id: str) -> None:
        validate_user_path(src, user_id, "copy source")
        validate_user_path(dest, user_id, "copy destination")
        await self._require_source(src)
        await self._call(self.storage.copy, src, dest)
        logger.info("Copied %s -> %s", src, dest)

    async def move_file(self, src: str, dest: str, user_id: str) -> None:
        validate_user_path(src, user_id, "move source")
        validate_user_path(dest, user_id, "move destination")
        await self._move_single(src, dest, "Destination file already exists")

    async def rename_file(self, src: str, new_name: str, user_id: str) -> ObjectPath:
        validate_user_path(src, user_id, "rename source")
        name = check_file_name(new_name)
        new_path = replace_last_segment(src, name)
        validate_user_path(new_path, user_id, "rename destination")
        await self._move_single(src, new_path, "A file with this name already exists")
        return new_path

    async def _move_single(self, src: str, dest: str, exists_message: str) -> None:
        await self._require_source(src)
        await self._require_absent(dest, exists_message)
        await self._call(self.storage.copy, src, dest)
        await self._call(self.storage.delete, src)
        logger.info("Moved %s -> %s", src, dest)

    async def delete_file(self, path: str, user_id: str) -> None:
        validate_user_path(path, user_id, "delete")
        if not await self._call(self.storage.exists, path):
            raise NotFound("File does not exist")
        await self._call(self.storage.delete, path)
        logger.info("Deleted file %s", path)

    # Folders

    async def create_folder(self, path: str, user_id: str) -> PathPrefix:
        validate_user_path(path, user_id, "create folder")
        prefix = as_folder_prefix(path)
        await self._require_empty_prefix(prefix, "A folder with this name already exists")

        placeholder = f"{prefix}{PLACEHOLDER_NAME}"
        await self._call(
            self.storage.put_bytes,
            placeholder,
            b"",
            "text/plain",
            {
                "createdBy": user_id,
                "createdAt": datetime.now(timezone.utc).isoformat(),
                "purpose": "folder-placeholder",
            },
        )
        logger.info("Created folder %s", prefix)
        return prefix

    async def delete_folder(self, prefix: str, user_id: str) -> FolderOperationResult:
        """
        Delete every object under ``prefix``.

        Only a failure of the initial listing propagates; per-object delete
        failures are collected in the result.
        """
        validate_user_path(prefix, user_id, "delete")
        objects = await self._list(prefix)
        result = FolderOperationResult(attempted=len(objects))
        if not objects:
            logger.info("No objects found under %s", prefix)
            return result

        batches = list(iter_batches(objects, self.delete_batch_size))
        logger.info("Deleting %d objects under %s in %d batches", len(objects), prefix, len(batches))
        for index, batch in enumerate(batches):
            outcomes = await asyncio.gather(
                *(self._call(self.storage.delete, obj.name) for obj in batch),
                return_exceptions=True,
            )
            for obj, outcome in zip(batch, outcomes):
                if isinstance(outcome, Exception):
                    logger.warning("Failed to delete %s: %s", obj.name, outcome)
                    result.errors.append(ItemFailure(obj.name, str(outcome)))
                else:
                    result.processed_count += 1
            if index + 1 < len(batches):
                await self._sleep(self.delete_batch_delay)

        logger.info(
            "Folder deletion completed: %d deleted, %d errors",
            result.processed_count,
            len(result.errors),
        )
        return result

    async def move_prefix(
        self, source_prefix: str, dest_prefix: str, user_id: str
    ) -> FolderOperationResult:
        """
        Move every object under ``source_prefix`` to ``dest_prefix``.

        Each object's relative suffix is preserved and its new path is
        validated on its own. An object is deleted only after its copy
        succeeds, so a failed object stays at its original path.
        """
        validate_user_path(source_prefix, user_id, "move folder source")
        validate_user_path(dest_prefix, user_id, "move folder destination")
        objects = await self._list(source_prefix)
        result = FolderOperationResult(attempted=len(objects))
        if not objects:
            logger.info("No objects found under %s", source_prefix)
            return result

        batches = list(iter_batches(objects, self.move_batch_size))
        logger.info(
            "Moving %d objects from %s to %s in %d batches",
            len(objects),
            source_prefix,
            dest_prefix,
            len(batches),
        )
        for index, batch in enumerate(batches):
            # One object at a time: each move is two remote calls.
            for obj in batch:
                try:
                    await self._move_one(obj.name, source_prefix, dest_prefix, user_id)
                except Exception as exc:
                    logger.warning("Failed to move %s: %s", obj.name, exc)
                    result.errors.append(ItemFailure(obj.name, str(exc)))
                else:
                    result.processed_count += 1
            if index + 1 < len(batches):
                await self._sleep(self.move_batch_delay)

        logger.info(
            "Folder move completed: %d moved, %d errors",
            result.processed_count,
            len(result.errors),
        )
        return result

    async def _move_one(
        self, name: str, source_prefix: str, dest_prefix: str, user_id: str
    ) -> None:
        new_path = dest_prefix + name[len(source_prefix) :]
        validate_user_path(new_path, user_id, "move destination file")
        await self._call(self.storage.copy, name, new_path)
        await self._call(self.storage.delete, name)

    async def move_folder(self, source_path: str, dest_path: str, user_id: str) -> FolderMove:
        """Move the folder at ``source_path`` inside the folder ``dest_path``."""
        validate_user_path(source_path, user_id, "move folder source")
        validate_user_path(dest_path, user_id, "move folder destination")
        source = as_folder_prefix(source_path)
        destination = PathPrefix(f"{as_folder_prefix(dest_path)}{folder_name(source_path)}/")

        if destination == source:
            raise InvalidInput("Cannot move folder to the same location")
        if destination.startswith(source):
            raise InvalidInput("Cannot move folder into its own subdirectory")
        await self._require_empty_prefix(
            destination, "A folder with this name already exists in the destination"
        )

        result = await self.move_prefix(source, destination, user_id)
        return FolderMove(source=source, destination=destination, result=result)

    async def rename_folder(self, source_path: str, new_name: str, user_id: str) -> FolderMove:
        validate_user_path(source_path, user_id, "rename folder source")
        name = check_folder_name(new_name)
        source = as_folder_prefix(source_path)
        destination = sibling_folder(source, name)
        validate_user_path(destination, user_id, "rename folder destination")
        await self._require_empty_prefix(destination, "A folder with this name already exists")

        result = await self.move_prefix(source, destination, user_id)
        return FolderMove(source=source, destination=destination, result=result)
