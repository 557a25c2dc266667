"""
HTTP routes for the storage admin API.

A single endpoint accepts POST for copy/move/rename/create operations and
DELETE for files and folders. Error bodies echo the operation and its inputs
so the dashboard can show what failed.
"""

from __future__ import annotations

import json
import logging
import traceback
from dataclasses import dataclass

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, ValidationError

from cms_storage.config import Settings
from cms_storage.dependencies import get_app_settings, get_current_user_id, get_mutator
from cms_storage.errors import AccessDenied, AlreadyExists, ApiError, InvalidInput, NotFound
from cms_storage.mutator import FolderOperationResult, PathSafeStorageMutator
from cms_storage.paths import as_folder_prefix, validate_user_path
from cms_storage.schemas import (
    DeleteRequest,
    ItemError,
    StorageOperationRequest,
    StorageOperationResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()

STORAGE_PATH = "/admin-storage"
ALLOWED_METHODS = ["POST", "DELETE", "OPTIONS"]


@dataclass(frozen=True)
class OperationRule:
    required: tuple[str, ...]
    missing_message: str
    failure_verb: str
    echo: tuple[str, ...]


OPERATIONS = {
    "copyFile": OperationRule(
        ("sourcePath", "destPath"),
        "Source and destination paths are required for copyFile operation",
        "copy file",
        ("sourcePath", "destPath"),
    ),
    "moveFile": OperationRule(
        ("sourcePath", "destPath"),
        "Source and destination paths are required for moveFile operation",
        "move file",
        ("sourcePath", "destPath"),
    ),
    "renameFile": OperationRule(
        ("sourcePath", "newName"),
        "Source path and new name are required for renameFile operation",
        "rename file",
        ("sourcePath", "newName"),
    ),
    "moveFolder": OperationRule(
        ("sourcePath", "destPath"),
        "Source and destination paths are required for moveFolder operation",
        "move folder",
        ("sourcePath", "destPath"),
    ),
    "renameFolder": OperationRule(
        ("sourcePath", "newName"),
        "Source path and new name are required for renameFolder operation",
        "rename folder",
        ("sourcePath", "newName"),
    ),
    "createFolder": OperationRule(
        ("destPath",),
        "Destination path is required for createFolder operation",
        "create folder",
        ("destPath",),
    ),
}
VALID_OPERATIONS = list(OPERATIONS)
FOLDER_MOVES = ("moveFolder", "renameFolder")


def _error_status(exc: Exception, operation: str, settings: Settings) -> int:
    if isinstance(exc, InvalidInput):
        return 400
    if isinstance(exc, AccessDenied):
        return settings.access_denied_status_code
    if isinstance(exc, AlreadyExists) and operation in FOLDER_MOVES:
        return 400
    return 500


def _failure_response(
    exc: Exception, *, verb: str, operation: str, echo: dict, settings: Settings
) -> JSONResponse:
    body = {"error": f"Failed to {verb}: {exc}"}
    if not settings.is_production:
        body["details"] = "".join(
            traceback.format_exception(type(exc), exc, exc.__traceback__)
        )
    body["operation"] = operation
    body.update(echo)
    return JSONResponse(body, status_code=_error_status(exc, operation, settings))


async def _read_json_object(request: Request) -> dict:
    raw = await request.body()
    if not raw.strip():
        return {}
    try:
        data = json.loads(raw)
    except ValueError as exc:
        logger.warning("Failed to parse request body: %s", exc)
        raise ApiError(
            400, {"error": "Invalid JSON in request body", "details": str(exc)}
        )
    if not isinstance(data, dict):
        raise ApiError(400, {"error": "Request body must be a JSON object"})
    return data


def _parse(model: type[BaseModel], data: dict) -> BaseModel:
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        raise ApiError(400, {"error": "Invalid request body", "details": str(exc)})


def _item_errors(result: FolderOperationResult) -> list[ItemError]:
    return [ItemError(item=failure.item, error=failure.error) for failure in result.errors]


async def _run_operation(
    mutator: PathSafeStorageMutator, payload: StorageOperationRequest, user_id: str
) -> StorageOperationResponse:
    operation = payload.operation
    if operation == "copyFile":
        await mutator.copy_file(payload.sourcePath, payload.destPath, user_id)
        return StorageOperationResponse(
            message="File copied successfully",
            sourcePath=payload.sourcePath,
            destPath=payload.destPath,
        )
    if operation == "moveFile":
        await mutator.move_file(payload.sourcePath, payload.destPath, user_id)
        return StorageOperationResponse(
            message="File moved successfully",
            sourcePath=payload.sourcePath,
            destPath=payload.destPath,
        )
    if operation == "renameFile":
        new_path = await mutator.rename_file(payload.sourcePath, payload.newName, user_id)
        return StorageOperationResponse(
            message="File renamed successfully",
            sourcePath=payload.sourcePath,
            newPath=new_path,
            newName=payload.newName,
        )
    if operation == "moveFolder":
        move = await mutator.move_folder(payload.sourcePath, payload.destPath, user_id)
        return StorageOperationResponse(
            message="Folder moved successfully",
            sourcePath=move.source,
            destPath=move.destination,
            movedCount=move.result.processed_count,
            errors=_item_errors(move.result),
        )
    if operation == "renameFolder":
        move = await mutator.rename_folder(payload.sourcePath, payload.newName, user_id)
        return StorageOperationResponse(
            message="Folder renamed successfully",
            sourcePath=move.source,
            newPath=move.destination,
            newName=payload.newName,
            movedCount=move.result.processed_count,
            errors=_item_errors(move.result),
        )
    path = await mutator.create_folder(payload.destPath, user_id)
    return StorageOperationResponse(message="Folder created successfully", path=path)


@router.options(STORAGE_PATH)
def storage_preflight():
    return Response(status_code=200, media_type="application/json")


@router.post(
    STORAGE_PATH,
    response_model=StorageOperationResponse,
    response_model_exclude_none=True,
)
async def storage_operation(
    request: Request,
    user_id: str = Depends(get_current_user_id),
    mutator: PathSafeStorageMutator = Depends(get_mutator),
    settings: Settings = Depends(get_app_settings),
):
    data = await _read_json_object(request)
    operation = data.get("operation")
    if not operation or not isinstance(operation, str):
        raise ApiError(400, {"error": "Operation is required and must be a string"})

    rule = OPERATIONS.get(operation)
    if rule is None:
        logger.warning("Invalid operation: %s", operation)
        raise ApiError(
            400, {"error": "Invalid operation", "validOperations": VALID_OPERATIONS}
        )

    payload = _parse(StorageOperationRequest, data)
    if not all(getattr(payload, name) for name in rule.required):
        raise ApiError(400, {"error": rule.missing_message})

    logger.info("Processing operation %s for user %s", operation, user_id)
    try:
        return await _run_operation(mutator, payload, user_id)
    except Exception as exc:
        logger.error("Operation %s failed: %s", operation, exc)
        return _failure_response(
            exc,
            verb=rule.failure_verb,
            operation=operation,
            echo={name: getattr(payload, name) for name in rule.echo},
            settings=settings,
        )


@router.delete(
    STORAGE_PATH,
    response_model=StorageOperationResponse,
    response_model_exclude_none=True,
)
async def storage_delete(
    request: Request,
    user_id: str = Depends(get_current_user_id),
    mutator: PathSafeStorageMutator = Depends(get_mutator),
    settings: Settings = Depends(get_app_settings),
):
    payload = _parse(DeleteRequest, await _read_json_object(request))
    if not payload.filePath:
        raise ApiError(400, {"error": "File path is required for delete operation"})

    kind = "folder" if payload.isFolder else "file"
    logger.info("Deleting %s %s for user %s", kind, payload.filePath, user_id)
    try:
        validate_user_path(payload.filePath, user_id, "delete")
        if payload.isFolder:
            prefix = as_folder_prefix(payload.filePath)
            result = await mutator.delete_folder(prefix, user_id)
            return StorageOperationResponse(
                message="Folder deleted successfully",
                path=prefix,
                deletedCount=result.processed_count,
                errors=_item_errors(result),
            )
        await mutator.delete_file(payload.filePath, user_id)
        return StorageOperationResponse(
            message="File deleted successfully", path=payload.filePath
        )
    except NotFound as exc:
        logger.warning("Delete of %s %s failed: %s", kind, payload.filePath, exc)
        return JSONResponse({"error": str(exc)}, status_code=404)
    except Exception as exc:
        logger.error("Delete of %s %s failed: %s", kind, payload.filePath, exc)
        return _failure_response(
            exc,
            verb=f"delete {kind}",
            operation="delete",
            echo={"filePath": payload.filePath, "isFolder": payload.isFolder},
            settings=settings,
        )


@router.api_route(
    STORAGE_PATH, methods=["GET", "HEAD", "PUT", "PATCH", "TRACE", "CONNECT"]
)
def storage_method_not_allowed(
    request: Request, user_id: str = Depends(get_current_user_id)
):
    logger.warning("Method not allowed: %s", request.method)
    return JSONResponse(
        {"error": "Method not allowed", "allowedMethods": ALLOWED_METHODS},
        status_code=405,
    )
