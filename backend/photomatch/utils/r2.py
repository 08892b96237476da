"""Cloudflare R2 client wrapper — S3-compatible object storage.

Temporary search photos are keyed by content plus a per-upload nonce:
    {r2_temp_prefix}/{sha256 of the bytes}-{uuid4 hex}
The part after the prefix is the asset's CID, so two uploads of the same
bytes never share an object.
"""

from __future__ import annotations

import asyncio
import hashlib
import uuid
from typing import Any

import boto3
import structlog
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from photomatch.config import settings
from photomatch.models.contracts import TemporaryAsset

logger = structlog.get_logger()


def _build_client() -> Any:
    """Create an S3 client pointed at Cloudflare R2."""
    return boto3.client(
        "s3",
        endpoint_url=f"https://{settings.r2_account_id}.r2.cloudflarestorage.com",
        aws_access_key_id=settings.r2_access_key_id,
        aws_secret_access_key=settings.r2_secret_access_key,
        config=Config(signature_version="s3v4", retries={"max_attempts": 2}),
        region_name="auto",
    )


_client: Any = None


def _get_client() -> Any:
    """Lazy-init singleton client."""
    global _client  # noqa: PLW0603
    if _client is None:
        _client = _build_client()
    return _client


def reset_client() -> None:
    """Reset the singleton client (for testing)."""
    global _client  # noqa: PLW0603
    _client = None


def content_id(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def new_cid(data: bytes) -> str:
    """Unique CID for one upload: content hash plus a random suffix."""
    return f"{content_id(data)}-{uuid.uuid4().hex}"


def temp_key(cid: str) -> str:
    return f"{settings.r2_temp_prefix}/{cid}"


def upload_object(
    key: str,
    data: bytes,
    content_type: str = "image/jpeg",
    metadata: dict[str, str] | None = None,
) -> str:
    """Upload bytes to R2. Returns the storage key."""
    client = _get_client()
    client.put_object(
        Bucket=settings.r2_bucket_name,
        Key=key,
        Body=data,
        ContentType=content_type,
        Metadata=metadata or {},
    )
    logger.info("r2_upload", key=key, size=len(data), content_type=content_type)
    return key


def generate_presigned_url(key: str) -> str:
    """Generate a pre-signed GET URL the vision service can fetch.

    URL expires after `settings.presigned_url_expiry_seconds`.
    """
    client = _get_client()
    try:
        url: str = client.generate_presigned_url(
            "get_object",
            Params={"Bucket": settings.r2_bucket_name, "Key": key},
            ExpiresIn=settings.presigned_url_expiry_seconds,
        )
    except ClientError as e:
        logger.error("r2_presign_failed", key=key, error=str(e))
        raise
    return url


def delete_object(key: str) -> None:
    """Delete a single object from R2."""
    client = _get_client()
    client.delete_object(Bucket=settings.r2_bucket_name, Key=key)
    logger.info("r2_delete", key=key)


def head_bucket() -> None:
    """Raise if the configured bucket is not reachable."""
    _get_client().head_bucket(Bucket=settings.r2_bucket_name)


class R2Storage:
    """ObjectStorage backed by R2. boto3 calls run in a worker thread."""

    name = "r2"

    async def upload(
        self,
        data: bytes,
        group_hint: str,
        *,
        filename: str = "",
        content_type: str = "image/jpeg",
    ) -> TemporaryAsset:
        cid = new_cid(data)
        key = temp_key(cid)
        metadata = {"group": group_hint, "sha256": content_id(data)}
        if filename:
            metadata["filename"] = filename.encode("ascii", "ignore").decode()
        try:
            await asyncio.to_thread(upload_object, key, data, content_type, metadata)
        except (ClientError, BotoCoreError) as exc:
            logger.error("r2_stage_failed", key=key, error=str(exc))
            raise
        try:
            url = await asyncio.to_thread(generate_presigned_url, key)
        except (ClientError, BotoCoreError):
            # Nobody will hold the CID, so remove the object now
            await asyncio.to_thread(delete_object, key)
            raise
        return TemporaryAsset(cid=cid, url=url)

    async def delete(self, cid: str) -> None:
        await asyncio.to_thread(delete_object, temp_key(cid))

    async def check(self) -> None:
        await asyncio.to_thread(head_bucket)
