"""Raw image storage: local directory or S3 bucket."""

from __future__ import annotations

import logging
import os
import re
import uuid
from pathlib import Path
from typing import Any, Dict, List, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from config import STORAGE_DIR, S3_UPLOADS_BUCKET, read_int_env

logger = logging.getLogger(__name__)

STORAGE_REF_PATTERN = re.compile(r"^[a-f0-9]{32}(\.[A-Za-z0-9]{1,10})?$")


class StorageError(RuntimeError):
    """Raised when raw image bytes cannot be stored or read."""


def new_storage_ref(original_name: str) -> str:
    """Return a generated `<uuid hex><ext>` key for an uploaded file."""
    ext = Path(original_name or "").suffix.lower()
    if not re.fullmatch(r"\.[a-z0-9]{1,10}", ext):
        ext = ""
    return f"{uuid.uuid4().hex}{ext}"


def validate_storage_ref(storage_ref: str) -> str:
    if not STORAGE_REF_PATTERN.match(storage_ref or ""):
        raise StorageError(f"Invalid storage reference: {storage_ref!r}")
    return storage_ref


class LocalImageStorage:
    """Stores uploads as files under a single directory."""

    def __init__(self, root: Path = STORAGE_DIR) -> None:
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def save(self, original_name: str, data: bytes) -> str:
        storage_ref = new_storage_ref(original_name)
        try:
            (self.root / storage_ref).write_bytes(data)
        except OSError as exc:
            raise StorageError(f"Failed to write {storage_ref}") from exc
        return storage_ref

    def read(self, storage_ref: str) -> bytes:
        path = self.root / validate_storage_ref(storage_ref)
        try:
            return path.read_bytes()
        except OSError as exc:
            raise StorageError(f"Failed to read {storage_ref}") from exc

    def delete(self, storage_ref: str) -> None:
        path = self.root / validate_storage_ref(storage_ref)
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            raise StorageError(f"Failed to delete {storage_ref}") from exc

    def health_snapshot(self) -> Dict[str, Any]:
        return {"backend": "local", "root": str(self.root)}


class S3ImageStorage:
    """Stores uploads as objects in one S3 bucket."""

    def __init__(self, bucket: str, client: Optional[Any] = None) -> None:
        self.bucket = bucket
        self.region = os.getenv("AWS_REGION", "").strip() or None
        self.connect_timeout_seconds = read_int_env(
            "S3_CONNECT_TIMEOUT_SECONDS", default=3, min_value=1, max_value=30
        )
        self.read_timeout_seconds = read_int_env("S3_READ_TIMEOUT_SECONDS", default=12, min_value=1, max_value=120)
        self.max_attempts = read_int_env("S3_MAX_ATTEMPTS", default=2, min_value=1, max_value=5)

        if client is None:
            client = boto3.client(
                "s3",
                region_name=self.region,
                config=Config(
                    retries={"max_attempts": self.max_attempts, "mode": "standard"},
                    connect_timeout=self.connect_timeout_seconds,
                    read_timeout=self.read_timeout_seconds,
                ),
            )
        self.s3_client = client

    def save(self, original_name: str, data: bytes) -> str:
        storage_ref = new_storage_ref(original_name)
        try:
            self.s3_client.put_object(Bucket=self.bucket, Key=storage_ref, Body=data)
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"S3 upload failed for bucket={self.bucket}, key={storage_ref}") from exc
        return storage_ref

    def read(self, storage_ref: str) -> bytes:
        key = validate_storage_ref(storage_ref)
        try:
            response = self.s3_client.get_object(Bucket=self.bucket, Key=key)
            return response["Body"].read()
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"S3 download failed for bucket={self.bucket}, key={key}") from exc

    def delete(self, storage_ref: str) -> None:
        key = validate_storage_ref(storage_ref)
        try:
            self.s3_client.delete_object(Bucket=self.bucket, Key=key)
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"S3 delete failed for bucket={self.bucket}, key={key}") from exc

    def health_snapshot(self) -> Dict[str, Any]:
        return {
            "backend": "s3",
            "bucket": self.bucket,
            "region": self.region,
            "connect_timeout_seconds": self.connect_timeout_seconds,
            "read_timeout_seconds": self.read_timeout_seconds,
            "max_attempts": self.max_attempts,
        }


def build_storage():
    """Pick S3 when `S3_UPLOADS_BUCKET` is set, the local directory otherwise."""
    if S3_UPLOADS_BUCKET:
        logger.info("Using S3 image storage bucket=%s", S3_UPLOADS_BUCKET)
        return S3ImageStorage(S3_UPLOADS_BUCKET)
    logger.info("Using local image storage root=%s", STORAGE_DIR)
    return LocalImageStorage(STORAGE_DIR)


def discard_stored(storage: Any, storage_refs: List[str]) -> None:
    """Delete refs written for a batch that was rejected; failures are logged."""
    for storage_ref in storage_refs:
        try:
            storage.delete(storage_ref)
        except StorageError as exc:
            logger.warning("Could not discard orphaned upload ref=%s: %s", storage_ref, exc)
