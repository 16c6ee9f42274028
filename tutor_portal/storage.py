"""
Storage abstraction for S3-compatible object storage and in-memory testing.

Application documents live under `{user_id}/{application_id}/{document_type}.{ext}`
in a private bucket; reviewers download them through presigned URLs.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol

import boto3
from botocore.config import Config


class StorageClient(Protocol):
    """Defines the operations the API needs from object storage."""

    def presign_get(self, path: str, expires_in: int = 3600) -> str:
        ...

    def upload_bytes(self, path: str, data: bytes, content_type: str) -> None:
        ...

    def delete(self, path: str) -> None:
        ...


@dataclass
class InMemoryStorageClient:
    """Bucket stand-in keeping `(body, content_type)` per object path."""

    base_url: str = "https://example.test/storage"
    objects: dict[str, tuple[bytes, str]] = field(default_factory=dict)

    def presign_get(self, path: str, expires_in: int = 3600) -> str:
        return f"{self.base_url}/{path}?op=get&expires={expires_in}"

    def upload_bytes(self, path: str, data: bytes, content_type: str) -> None:
        # Same path overwrites, like a bucket put.
        self.objects[path] = (bytes(data), content_type)

    def delete(self, path: str) -> None:
        self.objects.pop(path, None)


@dataclass
class S3StorageClient:
    """
    S3-compatible storage client for the application documents bucket.
    """

    bucket: str
    region: str
    endpoint: str
    access_key_id: str
    secret_access_key: str
    addressing_style: str = "auto"

    def __post_init__(self):
        config = Config(
            s3={"addressing_style": self.addressing_style},
            signature_version="s3v4",
        )
        self._client = boto3.client(
            "s3",
            endpoint_url=self.endpoint or None,
            region_name=self.region or None,
            aws_access_key_id=self.access_key_id or None,
            aws_secret_access_key=self.secret_access_key or None,
            config=config,
        )

    def presign_get(self, path: str, expires_in: int = 3600) -> str:
        return self._client.generate_presigned_url(
            ClientMethod="get_object",
            Params={"Bucket": self.bucket, "Key": path},
            ExpiresIn=expires_in,
        )

    def upload_bytes(self, path: str, data: bytes, content_type: str) -> None:
        self._client.put_object(
            Bucket=self.bucket,
            Key=path,
            Body=data,
            ContentType=content_type,
        )

    def delete(self, path: str) -> None:
        self._client.delete_object(Bucket=self.bucket, Key=path)
