"""
Object storage for uploaded images: S3-compatible (MinIO/AWS) and in-memory testing.
"""

from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass, field
from typing import Optional, Protocol

import boto3
from botocore.config import Config

from devhub.errors import InternalServerError, ValidationError

logger = logging.getLogger(__name__)

ALLOWED_IMAGE_TYPES = {
    "image/jpeg": {".jpg", ".jpeg"},
    "image/jpg": {".jpg", ".jpeg"},
    "image/png": {".png"},
    "image/webp": {".webp"},
}


class StorageClient(Protocol):
    """Defines the operations the services need from object storage."""

    def put_object(self, key: str, data: bytes, content_type: str) -> str:
        ...

    def delete_object(self, key: str) -> None:
        ...


@dataclass
class InMemoryStorageClient:
    """Test double for storage interactions."""

    base_url: str = "https://storage.test/devhub"
    stored_objects: dict = field(default_factory=dict)
    deleted_keys: list = field(default_factory=list)

    def put_object(self, key: str, data: bytes, content_type: str) -> str:
        self.stored_objects[key] = (data, content_type)
        return f"{self.base_url}/{key}"

    def delete_object(self, key: str) -> None:
        self.stored_objects.pop(key, None)
        self.deleted_keys.append(key)


@dataclass
class S3StorageClient:
    """
    S3-compatible storage client (MinIO in development, S3 in production).
    """

    bucket: str
    region: str = ""
    endpoint: str = ""
    access_key_id: str = ""
    secret_access_key: str = ""
    public_base_url: str = ""

    def __post_init__(self):
        config = Config(
            s3={"addressing_style": "path"},
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
        if not self.public_base_url:
            prefix = self.endpoint.rstrip("/") + "/" if self.endpoint else ""
            self.public_base_url = f"{prefix}{self.bucket}"

    def put_object(self, key: str, data: bytes, content_type: str) -> str:
        self._client.put_object(
            Bucket=self.bucket, Key=key, Body=data, ContentType=content_type
        )
        return f"{self.public_base_url.rstrip('/')}/{key}"

    def delete_object(self, key: str) -> None:
        self._client.delete_object(Bucket=self.bucket, Key=key)


@dataclass(frozen=True)
class ImageUpload:
    """An image file received with a request."""

    data: bytes
    filename: str
    mime_type: str = "image/jpeg"


def object_key_from_url(url: Optional[str]) -> Optional[str]:
    if not url:
        return None
    return url.rstrip("/").split("/")[-1] or None


def validate_image(image: ImageUpload, max_bytes: int) -> None:
    ext = os.path.splitext(image.filename or "")[1].lower()
    allowed = ALLOWED_IMAGE_TYPES.get((image.mime_type or "").lower())
    if not allowed or ext not in allowed:
        raise ValidationError(
            "Invalid file type. Only JPEG, WEBP and PNG images are allowed."
        )
    if len(image.data) > max_bytes:
        raise ValidationError(
            f"File size exceeds the maximum limit of {max_bytes // (1024 * 1024)}MB"
        )
    if not image.data:
        raise ValidationError("Uploaded file is empty")


class ImageUploader:
    """
    Uploads validated images under ``{owner_key}_{epoch_ms}.{ext}`` object keys.

    Uploading happens before the owning row is committed, so a failure aborts
    the mutation. Removing a replaced image happens after commit and only
    logs on failure.
    """

    def __init__(self, storage: StorageClient, max_bytes: int = 5 * 1024 * 1024):
        self.storage = storage
        self.max_bytes = max_bytes

    def upload(self, image: ImageUpload, owner_key: str) -> str:
        validate_image(image, self.max_bytes)
        ext = os.path.splitext(image.filename)[1].lower().lstrip(".")
        key = f"{owner_key}_{int(time.time() * 1000)}.{ext}"
        try:
            url = self.storage.put_object(key, image.data, image.mime_type)
        except Exception as exc:
            logger.error("Error uploading %s: %s", owner_key, exc)
            raise InternalServerError(f"Failed to upload image for {owner_key}") from exc
        logger.info("Uploaded image %s", key)
        return url

    def delete_quietly(self, url: Optional[str], keep: Optional[str] = None) -> None:
        """Remove a replaced image; ``keep`` guards against a key collision with its successor."""
        key = object_key_from_url(url)
        if not key or url == keep:
            return
        try:
            self.storage.delete_object(key)
        except Exception as exc:
            logger.warning("Failed to delete old image %s: %s", key, exc)
            return
        logger.info("Old image deleted: %s", key)
