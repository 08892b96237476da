"""Temporary asset staging — puts the search photo somewhere the vision service can fetch it.

The size check runs before any network call. Oversized, undecodable, or
unstorable photos raise an ImageSearchError subclass that the orchestrator
turns into a fallback search.
"""

from __future__ import annotations

import asyncio
from typing import Protocol

import httpx
import structlog
from botocore.exceptions import BotoCoreError, ClientError

from photomatch.errors import InputTooLarge, UploadFailure
from photomatch.models.contracts import ImageUpload, TemporaryAsset
from photomatch.utils.image import detect_content_type
from photomatch.utils.pinata import PinataError

log = structlog.get_logger("photomatch.staging")


class ObjectStorage(Protocol):
    name: str

    async def upload(
        self,
        data: bytes,
        group_hint: str,
        *,
        filename: str = "",
        content_type: str = "image/jpeg",
    ) -> TemporaryAsset: ...

    async def delete(self, cid: str) -> None: ...

    async def check(self) -> None: ...


_STORAGE_ERRORS = (ClientError, BotoCoreError, PinataError, httpx.HTTPError, OSError)


async def stage_image(
    storage: ObjectStorage,
    upload: ImageUpload,
    *,
    max_bytes: int,
    group_hint: str,
) -> TemporaryAsset:
    """Upload the photo to temporary storage and return its CID and URL."""
    if upload.size > max_bytes or len(upload.data) > max_bytes:
        log.warning("stage_rejected_too_large", size=upload.size, limit=max_bytes)
        raise InputTooLarge(upload.size, max_bytes)

    content_type = await asyncio.to_thread(detect_content_type, upload.data)

    try:
        asset = await storage.upload(
            upload.data,
            group_hint,
            filename=upload.filename,
            content_type=content_type,
        )
    except _STORAGE_ERRORS as exc:
        log.error("stage_upload_failed", backend=storage.name, error=str(exc))
        raise UploadFailure(f"Failed to upload image to {storage.name}: {exc}") from exc

    log.info(
        "stage_upload_complete",
        backend=storage.name,
        cid=asset.cid,
        size=upload.size,
        content_type=content_type,
    )
    return asset
