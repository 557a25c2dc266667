"""
Storage abstraction for Firebase Storage, S3-compatible buckets and in-memory testing.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional, Protocol

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError
from firebase_admin import storage as firebase_storage


@dataclass
class StoredObject:
    """A single object as reported by a listing call."""

    name: str
    size: int = 0
    content_type: Optional[str] = None
    created_at: Optional[datetime] = None
    metadata: dict = field(default_factory=dict)


class StorageClient(Protocol):
    """Defines the operations the mutator needs from object storage."""

    def list_objects(
        self, prefix: str, max_results: Optional[int] = None
    ) -> list[StoredObject]:
        ...

    def exists(self, path: str) -> bool:
        ...

    def copy(self, src_path: str, dest_path: str) -> None:
        ...

    def delete(self, path: str) -> None:
        ...

    def put_bytes(
        self,
        path: str,
        data: bytes,
        content_type: str = "application/octet-stream",
        metadata: Optional[dict] = None,
    ) -> None:
        ...

    def get_bytes(self, path: str) -> bytes:
        ...


@dataclass
class InMemoryStorageClient:
    """Test double for storage interactions. Every call is recorded in ``calls``."""

    stored_objects: dict = None
    objects_info: dict = None
    calls: list = None

    def __post_init__(self):
        if self.stored_objects is None:
            self.stored_objects = {}
        if self.objects_info is None:
            self.objects_info = {}
        if self.calls is None:
            self.calls = []
        self._lock = threading.Lock()

    def _record(self, *call) -> None:
        with self._lock:
            self.calls.append(call)

    def list_objects(
        self, prefix: str, max_results: Optional[int] = None
    ) -> list[StoredObject]:
        self._record("list", prefix)
        with self._lock:
            names = sorted(name for name in self.stored_objects if name.startswith(prefix))
            if max_results is not None:
                names = names[:max_results]
            return [self.objects_info[name] for name in names]

    def exists(self, path: str) -> bool:
        self._record("exists", path)
        with self._lock:
            return path in self.stored_objects

    def copy(self, src_path: str, dest_path: str) -> None:
        self._record("copy", src_path, dest_path)
        with self._lock:
            if src_path not in self.stored_objects:
                raise FileNotFoundError(src_path)
            source = self.objects_info[src_path]
            self.stored_objects[dest_path] = self.stored_objects[src_path]
            self.objects_info[dest_path] = StoredObject(
                name=dest_path,
                size=source.size,
                content_type=source.content_type,
                created_at=datetime.now(timezone.utc),
                metadata=dict(source.metadata),
            )

    def delete(self, path: str) -> None:
        self._record("delete", path)
        with self._lock:
            if path not in self.stored_objects:
                raise FileNotFoundError(path)
            del self.stored_objects[path]
            del self.objects_info[path]

    def put_bytes(
        self,
        path: str,
        data: bytes,
        content_type: str = "application/octet-stream",
        metadata: Optional[dict] = None,
    ) -> None:
        self._record("put", path)
        with self._lock:
            self.stored_objects[path] = bytes(data)
            self.objects_info[path] = StoredObject(
                name=path,
                size=len(data),
                content_type=content_type,
                created_at=datetime.now(timezone.utc),
                metadata=dict(metadata or {}),
            )

    def get_bytes(self, path: str) -> bytes:
        self._record("get", path)
        with self._lock:
            stored = self.stored_objects.get(path)
        if stored is None:
            raise FileNotFoundError(path)
        return stored


@dataclass
class FirebaseStorageClient:
    """
    Firebase Storage bucket accessed through the Admin SDK.

    ``app`` is the handle returned by ``firebase_admin.initialize_app``.
    """

    app: Any = None
    bucket_name: Optional[str] = None

    def __post_init__(self):
        self._bucket = firebase_storage.bucket(self.bucket_name, app=self.app)

    def list_objects(
        self, prefix: str, max_results: Optional[int] = None
    ) -> list[StoredObject]:
        blobs = self._bucket.list_blobs(prefix=prefix, max_results=max_results)
        return [
            StoredObject(
                name=blob.name,
                size=blob.size or 0,
                content_type=blob.content_type,
                created_at=blob.time_created,
                metadata=dict(blob.metadata or {}),
            )
            for blob in blobs
        ]

    def exists(self, path: str) -> bool:
        return self._bucket.blob(path).exists()

    def copy(self, src_path: str, dest_path: str) -> None:
        self._bucket.copy_blob(self._bucket.blob(src_path), self._bucket, dest_path)

    def delete(self, path: str) -> None:
        self._bucket.blob(path).delete()

    def put_bytes(
        self,
        path: str,
        data: bytes,
        content_type: str = "application/octet-stream",
        metadata: Optional[dict] = None,
    ) -> None:
        blob = self._bucket.blob(path)
        if metadata:
            blob.metadata = metadata
        blob.upload_from_string(data, content_type=content_type)

    def get_bytes(self, path: str) -> bytes:
        return self._bucket.blob(path).download_as_bytes()


@dataclass
class S3StorageClient:
    """
    S3-compatible storage client.
    """

    bucket: str
    region: str
    endpoint: Optional[str] = None
    access_key_id: str = ""
    secret_access_key: str = ""

    def __post_init__(self):
        config = Config(
            s3={"addressing_style": "virtual"},
            signature_version="s3v4",
        )
        self._client = boto3.client(
            "s3",
            endpoint_url=self.endpoint or None,
            region_name=self.region,
            aws_access_key_id=self.access_key_id,
            aws_secret_access_key=self.secret_access_key,
            config=config,
        )

    def list_objects(
        self, prefix: str, max_results: Optional[int] = None
    ) -> list[StoredObject]:
        objects: list[StoredObject] = []
        paginator = self._client.get_paginator("list_objects_v2")
        pagination = {"MaxItems": max_results} if max_results else {}
        for page in paginator.paginate(
            Bucket=self.bucket, Prefix=prefix, PaginationConfig=pagination
        ):
            for item in page.get("Contents", []):
                objects.append(
                    StoredObject(
                        name=item["Key"],
                        size=item.get("Size", 0),
                        created_at=item.get("LastModified"),
                    )
                )
        return objects

    def exists(self, path: str) -> bool:
        try:
            self._client.head_object(Bucket=self.bucket, Key=path)
        except ClientError as exc:
            code = exc.response.get("Error", {}).get("Code")
            if code in ("404", "NoSuchKey", "NotFound"):
                return False
            raise
        return True

    def copy(self, src_path: str, dest_path: str) -> None:
        self._client.copy_object(
            Bucket=self.bucket,
            Key=dest_path,
            CopySource={"Bucket": self.bucket, "Key": src_path},
        )

    def delete(self, path: str) -> None:
        self._client.delete_object(Bucket=self.bucket, Key=path)

    def put_bytes(
        self,
        path: str,
        data: bytes,
        content_type: str = "application/octet-stream",
        metadata: Optional[dict] = None,
    ) -> None:
        self._client.put_object(
            Bucket=self.bucket,
            Key=path,
            Body=data,
            ContentType=content_type,
            Metadata={key: str(value) for key, value in (metadata or {}).items()},
        )

    def get_bytes(self, path: str) -> bytes:
        response = self._client.get_object(Bucket=self.bucket, Key=path)
        return response["Body"].read()
