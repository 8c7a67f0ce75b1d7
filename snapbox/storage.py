"""
Storage abstraction for S3-compatible BaaS buckets and in-memory testing.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Protocol
from urllib.parse import quote

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Raised when the object store rejects an operation."""


class StorageClient(Protocol):
    """Defines the operations the API needs from object storage."""

    def upload_bytes(
        self, path: str, data: bytes, content_type: str, upsert: bool = False
    ) -> None:
        ...

    def public_url(self, path: str) -> str:
        ...

    def presign_get(self, path: str, expires_in: int = 3600) -> str:
        ...

    def remove(self, paths: Iterable[str]) -> None:
        ...


@dataclass
class StoredObject:
    data: bytes
    content_type: str


@dataclass
class InMemoryStorageClient:
    """Test double for storage interactions."""

    base_url: str = "https://example.test/storage/images"
    stored_objects: dict[str, StoredObject] = field(default_factory=dict)

    def upload_bytes(
        self, path: str, data: bytes, content_type: str, upsert: bool = False
    ) -> None:
        if not upsert and path in self.stored_objects:
            raise StorageError(f"Object already exists: {path}")
        self.stored_objects[path] = StoredObject(data=data, content_type=content_type)

    def public_url(self, path: str) -> str:
        return f"{self.base_url}/{quote(path)}"

    def presign_get(self, path: str, expires_in: int = 3600) -> str:
        return f"{self.base_url}/{quote(path)}?op=get&expires={expires_in}"

    def remove(self, paths: Iterable[str]) -> None:
        for path in paths:
            self.stored_objects.pop(path, None)

    def reset(self) -> None:
        self.stored_objects.clear()


@dataclass
class S3StorageClient:
    """
    Storage client for the BaaS bucket through its S3-compatible endpoint.

    Public URLs are built from ``public_base_url`` (for hosted buckets this is
    the ``.../object/public/<bucket>`` prefix); signed URLs come from S3
    presigning.
    """

    bucket: str
    region: str
    endpoint: str
    access_key_id: str
    secret_access_key: str
    public_base_url: str
    addressing_style: str = "path"

    def __post_init__(self):
        config = Config(
            s3={"addressing_style": self.addressing_style},
            signature_version="s3v4",
        )
        self._client = boto3.client(
            "s3",
            endpoint_url=self.endpoint or None,
            region_name=self.region or None,
            aws_access_key_id=self.access_key_id,
            aws_secret_access_key=self.secret_access_key,
            config=config,
        )

    def _exists(self, path: str) -> bool:
        try:
            self._client.head_object(Bucket=self.bucket, Key=path)
        except ClientError as exc:
            code = exc.response.get("Error", {}).get("Code")
            if code in ("404", "NoSuchKey", "NotFound"):
                return False
            raise StorageError(str(exc)) from exc
        return True

    def upload_bytes(
        self, path: str, data: bytes, content_type: str, upsert: bool = False
    ) -> None:
        if not upsert and self._exists(path):
            raise StorageError(f"Object already exists: {path}")
        try:
            self._client.put_object(
                Bucket=self.bucket,
                Key=path,
                Body=data,
                ContentType=content_type,
                CacheControl="max-age=3600",
            )
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(str(exc)) from exc

    def public_url(self, path: str) -> str:
        return f"{self.public_base_url.rstrip('/')}/{quote(path)}"

    def presign_get(self, path: str, expires_in: int = 3600) -> str:
        try:
            return self._client.generate_presigned_url(
                ClientMethod="get_object",
                Params={"Bucket": self.bucket, "Key": path},
                ExpiresIn=expires_in,
            )
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(str(exc)) from exc

    def remove(self, paths: Iterable[str]) -> None:
        objects = [{"Key": p} for p in paths if p]
        if not objects:
            return
        try:
            response = self._client.delete_objects(
                Bucket=self.bucket, Delete={"Objects": objects, "Quiet": True}
            )
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(str(exc)) from exc
        errors = response.get("Errors") or []
        if errors:
            logger.warning("Storage delete reported %d errors: %s", len(errors), errors)
            raise StorageError(errors[0].get("Message") or "Failed to delete objects")
