"""Key/blob content store for lesson markdown, audio, images and recaps.

Keys are opaque slash-separated paths such as ``audio/sentences/12.mp3``.
Two backends share one interface: files under a local root (development,
tests) and a Cloudflare R2 bucket through boto3.
"""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import List, Optional

import boto3
from botocore.exceptions import ClientError

from .background import run_sync
from .errors import BlobStoreError, InvalidArgument

logger = logging.getLogger(__name__)


def validate_key(key: str) -> str:
    key = (key or "").strip().replace("\\", "/")
    if not key or key.startswith("/"):
        raise InvalidArgument(f"Invalid blob key: {key!r}")
    parts = key.split("/")
    if any(p in ("", ".", "..") for p in parts):
        raise InvalidArgument(f"Invalid blob key: {key!r}")
    return key


class BlobStore:
    async def put(self, key: str, data: bytes, *, content_type: str) -> str:
        raise NotImplementedError

    async def get(self, key: str) -> Optional[bytes]:
        raise NotImplementedError

    async def exists(self, key: str) -> bool:
        return (await self.get(key)) is not None

    async def delete(self, key: str) -> bool:
        raise NotImplementedError

    async def list(self, prefix: str = "") -> List[str]:
        raise NotImplementedError


# ---- Local filesystem ----
class LocalBlobStore(BlobStore):
    """
    Places files under:
      <root>/<key>
    Content type is not persisted; routes serve each prefix with a fixed type.
    """
    def __init__(self, root: str | Path):
        self.root = Path(root).resolve()
        self.root.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        return self.root / validate_key(key)

    def _write(self, path: Path, data: bytes):
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_name(path.name + ".part")
        tmp.write_bytes(data)
        os.replace(tmp, path)

    async def put(self, key: str, data: bytes, *, content_type: str) -> str:
        path = self._path(key)
        try:
            await run_sync(self._write, path, data)
        except OSError as e:
            raise BlobStoreError(f"Failed to store {key}: {e}") from e
        logger.info("Stored blob %s (%d bytes, %s)", key, len(data), content_type)
        return key

    async def get(self, key: str) -> Optional[bytes]:
        path = self._path(key)
        if not path.is_file():
            return None
        try:
            return await run_sync(path.read_bytes)
        except OSError as e:
            raise BlobStoreError(f"Failed to read {key}: {e}") from e

    async def exists(self, key: str) -> bool:
        return self._path(key).is_file()

    async def delete(self, key: str) -> bool:
        path = self._path(key)
        if not path.is_file():
            return False
        path.unlink()
        return True

    async def list(self, prefix: str = "") -> List[str]:
        keys = []
        for p in self.root.rglob("*"):
            if p.is_file() and not p.name.endswith(".part"):
                rel = p.relative_to(self.root).as_posix()
                if rel.startswith(prefix):
                    keys.append(rel)
        return sorted(keys)


# ---- Cloudflare R2 ----
class R2BlobStore(BlobStore):
    """Cloudflare R2 through the S3 API. boto3 is blocking, so calls run in a thread."""

    def __init__(
        self,
        account_id: str | None = None,
        access_key_id: str | None = None,
        secret_access_key: str | None = None,
        bucket_name: str | None = None,
    ):
        self.account_id = account_id or os.getenv("R2_ACCOUNT_ID")
        self.access_key_id = access_key_id or os.getenv("R2_ACCESS_KEY_ID")
        self.secret_access_key = secret_access_key or os.getenv("R2_SECRET_ACCESS_KEY")
        self.bucket_name = bucket_name or os.getenv("R2_BUCKET_NAME")

        if not all([self.account_id, self.access_key_id, self.secret_access_key, self.bucket_name]):
            raise ValueError(
                "R2 credentials required: R2_ACCOUNT_ID, R2_ACCESS_KEY_ID, "
                "R2_SECRET_ACCESS_KEY, R2_BUCKET_NAME env vars or constructor params"
            )

        self.s3_client = boto3.client(
            "s3",
            endpoint_url=f"https://{self.account_id}.r2.cloudflarestorage.com",
            aws_access_key_id=self.access_key_id,
            aws_secret_access_key=self.secret_access_key,
            region_name="auto",  # R2 uses 'auto' region
        )

    async def put(self, key: str, data: bytes, *, content_type: str) -> str:
        key = validate_key(key)
        try:
            await run_sync(
                self.s3_client.put_object,
                Bucket=self.bucket_name,
                Key=key,
                Body=data,
                ContentType=content_type,
            )
        except ClientError as e:
            raise BlobStoreError(f"Failed to store {key}: {e}") from e
        logger.info("Uploaded blob %s to R2 (%d bytes)", key, len(data))
        return key

    async def get(self, key: str) -> Optional[bytes]:
        key = validate_key(key)
        try:
            obj = await run_sync(self.s3_client.get_object, Bucket=self.bucket_name, Key=key)
        except ClientError as e:
            code = (e.response.get("Error") or {}).get("Code")
            if code in ("NoSuchKey", "404"):
                return None
            raise BlobStoreError(f"Failed to read {key}: {e}") from e
        return await run_sync(obj["Body"].read)

    async def exists(self, key: str) -> bool:
        key = validate_key(key)
        try:
            await run_sync(self.s3_client.head_object, Bucket=self.bucket_name, Key=key)
            return True
        except ClientError:
            return False

    async def delete(self, key: str) -> bool:
        key = validate_key(key)
        try:
            await run_sync(self.s3_client.delete_object, Bucket=self.bucket_name, Key=key)
            logger.info("Deleted from R2: %s", key)
            return True
        except ClientError as e:
            logger.error("Failed to delete %s: %s", key, e)
            return False

    async def list(self, prefix: str = "") -> List[str]:
        def _list_all() -> List[str]:
            keys: List[str] = []
            paginator = self.s3_client.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=self.bucket_name, Prefix=prefix):
                keys.extend(item["Key"] for item in page.get("Contents", []))
            return keys

        try:
            return sorted(await run_sync(_list_all))
        except ClientError as e:
            raise BlobStoreError(f"Failed to list {prefix}: {e}") from e


def build_blob_store(settings) -> BlobStore:
    if settings.BLOB_BACKEND == "r2":
        return R2BlobStore(
            account_id=settings.R2_ACCOUNT_ID,
            access_key_id=settings.R2_ACCESS_KEY_ID,
            secret_access_key=settings.R2_SECRET_ACCESS_KEY,
            bucket_name=settings.R2_BUCKET_NAME,
        )
    return LocalBlobStore(settings.BLOB_ROOT)
