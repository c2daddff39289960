"""
Blob storage for original, annotated and signed PDFs.

Blobs are addressed by an opaque reference returned from ``put``. Two
implementations are provided:

- LocalBlobStore: one file per blob under a root directory
- S3BlobStore: one object per blob under a key prefix in a bucket

``delete`` is idempotent in both: removing a blob that is already gone succeeds.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Any, Optional, Protocol
from uuid import uuid4

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from .errors import BlobNotFound, StorageError
from .utils import ensure_directory

logger = logging.getLogger(__name__)

_MISSING_KEY_CODES = {"NoSuchKey", "404", "NotFound"}
_REF_PATTERN = re.compile(r"[0-9a-f]{32}\.[a-z]+")


class BlobStore(Protocol):
    def put(self, data: bytes, *, suffix: str = ".pdf") -> str:
        ...

    def get(self, ref: str) -> bytes:
        ...

    def delete(self, ref: str) -> None:
        ...


def _new_ref(suffix: str) -> str:
    return f"{uuid4().hex}{suffix}"


class LocalBlobStore:
    """Filesystem blob store rooted at a single directory."""

    def __init__(self, root: Path) -> None:
        self.root = ensure_directory(Path(root))

    def _path(self, ref: str) -> Path:
        # Only references minted by put() map onto files under the root.
        if not _REF_PATTERN.fullmatch(ref):
            raise BlobNotFound(f"Invalid blob reference: {ref}")
        return self.root / ref

    def put(self, data: bytes, *, suffix: str = ".pdf") -> str:
        ref = _new_ref(suffix)
        try:
            self._path(ref).write_bytes(data)
        except OSError as exc:
            raise StorageError(f"Failed to store blob: {exc}") from exc
        return ref

    def get(self, ref: str) -> bytes:
        path = self._path(ref)
        try:
            return path.read_bytes()
        except FileNotFoundError as exc:
            raise BlobNotFound(f"Blob {ref} not found") from exc
        except OSError as exc:
            raise StorageError(f"Failed to read blob {ref}: {exc}") from exc

    def delete(self, ref: str) -> None:
        try:
            self._path(ref).unlink(missing_ok=True)
        except OSError as exc:
            raise StorageError(f"Failed to delete blob {ref}: {exc}") from exc


class S3BlobStore:
    """
    S3 blob store.

    Args:
        bucket: Target bucket name
        prefix: Key prefix for all blobs (e.g. "documents/")
        client: Optional pre-built boto3 S3 client
        endpoint_url: Custom endpoint for S3-compatible services
    """

    def __init__(
        self,
        bucket: str,
        prefix: str = "",
        client: Any = None,
        endpoint_url: Optional[str] = None,
    ) -> None:
        if not bucket:
            raise ValueError("An S3 bucket name is required")
        self.bucket = bucket
        self.prefix = prefix
        self._client = client or boto3.client("s3", endpoint_url=endpoint_url or None)

    def _key(self, ref: str) -> str:
        return f"{self.prefix}{ref}"

    def put(self, data: bytes, *, suffix: str = ".pdf") -> str:
        ref = _new_ref(suffix)
        try:
            self._client.put_object(
                Bucket=self.bucket,
                Key=self._key(ref),
                Body=data,
                ContentType="application/pdf",
            )
        except (ClientError, BotoCoreError) as exc:
            raise StorageError(f"S3 upload failed: {exc}") from exc
        logger.debug(f"Stored s3://{self.bucket}/{self._key(ref)}")
        return ref

    def get(self, ref: str) -> bytes:
        try:
            response = self._client.get_object(Bucket=self.bucket, Key=self._key(ref))
            return response["Body"].read()
        except ClientError as exc:
            if exc.response.get("Error", {}).get("Code") in _MISSING_KEY_CODES:
                raise BlobNotFound(f"Blob {ref} not found") from exc
            raise StorageError(f"S3 download failed: {exc}") from exc
        except BotoCoreError as exc:
            raise StorageError(f"S3 download failed: {exc}") from exc

    def delete(self, ref: str) -> None:
        # S3 DeleteObject already succeeds for missing keys.
        try:
            self._client.delete_object(Bucket=self.bucket, Key=self._key(ref))
        except (ClientError, BotoCoreError) as exc:
            raise StorageError(f"S3 delete failed: {exc}") from exc
