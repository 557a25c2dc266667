"""
Pydantic schemas for the storage admin API.

Field names are camelCase to match the dashboard client.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict


class StorageOperationRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    operation: Optional[str] = None
    sourcePath: Optional[str] = None
    destPath: Optional[str] = None
    newName: Optional[str] = None


class DeleteRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    filePath: Optional[str] = None
    isFolder: bool = False


class ItemError(BaseModel):
    item: str
    error: str


class StorageOperationResponse(BaseModel):
    success: bool = True
    message: str
    sourcePath: Optional[str] = None
    destPath: Optional[str] = None
    newPath: Optional[str] = None
    newName: Optional[str] = None
    path: Optional[str] = None
    movedCount: Optional[int] = None
    deletedCount: Optional[int] = None
    errors: Optional[list[ItemError]] = None
