from __future__ import annotations

import re
import uuid
from functools import lru_cache
from typing import Any, BinaryIO, Iterator, Protocol

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from ...errors import NotFound, StorageError
from ...settings import settings

_NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound"}
_CHUNK_SIZE = 64 * 1024


class BlobStore(Protocol):
    def store(self, data: BinaryIO, *, content_type: str, file_name: str = "") -> str: ...

    def retrieve(self, key: str) -> Iterator[bytes]: ...

    def delete(self, key: str) -> bool: ...


def make_document_key(*, file_name: str = "") -> str:
    """Key namespace for uploaded documents; the client file name only contributes its extension."""
    ext = ""
    m = re.search(r"\.([a-zA-Z0-9]{1,10})$", (file_name or "").strip())
    if m:
        ext = f".{m.group(1).lower()}"
    return f"documents/{uuid.uuid4()}{ext}"


def _error_code(e: ClientError) -> str:
    return str(((e.response or {}).get("Error") or {}).get("Code") or "")


@lru_cache(maxsize=1)
def _s3_client():
    if settings.aws_endpoint_url:
        return boto3.client("s3", region_name=settings.aws_region, endpoint_url=settings.aws_endpoint_url)
    return boto3.client("s3", region_name=settings.aws_region)


class S3BlobStore:
    def __init__(self, *, bucket: str, client: Any | None = None):
        self.bucket = bucket
        self._client = client or _s3_client()

    def store(self, data: BinaryIO, *, content_type: str, file_name: str = "") -> str:
        key = make_document_key(file_name=file_name)
        try:
            self._client.upload_fileobj(data, self.bucket, key, ExtraArgs={"ContentType": str(content_type)})
        except (ClientError, BotoCoreError) as e:
            raise StorageError(message="Failed to store file", details={"key": key}) from e
        return key

    def retrieve(self, key: str) -> Iterator[bytes]:
        try:
            resp = self._client.get_object(Bucket=self.bucket, Key=str(key))
        except ClientError as e:
            if _error_code(e) in _NOT_FOUND_CODES:
                raise NotFound(message="File not found in storage", entity="blob", entity_id=key) from e
            raise StorageError(message="Failed to read file", details={"key": key}) from e
        except BotoCoreError as e:
            raise StorageError(message="Failed to read file", details={"key": key}) from e
        return resp["Body"].iter_chunks(chunk_size=_CHUNK_SIZE)

    def delete(self, key: str) -> bool:
        # S3 deletes are idempotent, so existence is checked first to report notFound.
        try:
            self._client.head_object(Bucket=self.bucket, Key=str(key))
        except ClientError as e:
            if _error_code(e) in _NOT_FOUND_CODES:
                return False
            raise StorageError(message="Failed to delete file", details={"key": key}) from e
        except BotoCoreError as e:
            raise StorageError(message="Failed to delete file", details={"key": key}) from e

        try:
            self._client.delete_object(Bucket=self.bucket, Key=str(key))
        except (ClientError, BotoCoreError) as e:
            raise StorageError(message="Failed to delete file", details={"key": key}) from e
        return True


@lru_cache(maxsize=1)
def get_blob_store() -> BlobStore:
    bucket = (settings.assets_bucket_name or "").strip()
    if not bucket:
        raise StorageError(message="ASSETS_BUCKET_NAME is not set")
    return S3BlobStore(bucket=bucket)
