"""Image search endpoint — photo in, ranked catalog matches out.

The photo is read in chunks and reading stops as soon as the size limit is
crossed; the oversize upload is then handled by the pipeline's fallback
search rather than rejected.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Annotated

import structlog
from fastapi import APIRouter, Depends, File, UploadFile
from fastapi.responses import JSONResponse

from photomatch.config import settings
from photomatch.errors import CatalogUnavailable
from photomatch.models.contracts import ErrorResponse, ImageSearchResponse, ImageUpload
from photomatch.pipeline.search import ImageSearchService, build_search_service

logger = structlog.get_logger()

router = APIRouter(tags=["image-search"])

_READ_CHUNK = 65_536


@lru_cache(maxsize=1)
def get_search_service() -> ImageSearchService:
    """Build the configured search service once per process."""
    return build_search_service(settings)


def _error(status: int, error: str, details: str | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status,
        content=ErrorResponse(error=error, details=details).model_dump(exclude_none=True),
    )


async def read_upload(file: UploadFile, limit: int) -> ImageUpload:
    """Read at most ``limit + 1`` bytes; ``size`` reports what was seen."""
    chunks: list[bytes] = []
    total = 0
    while chunk := await file.read(_READ_CHUNK):
        total += len(chunk)
        chunks.append(chunk)
        if total > limit:
            break
    data = b"".join(chunks)
    return ImageUpload(
        data=data,
        filename=file.filename or "",
        content_type=file.content_type,
        size=total,
    )


@router.post(
    "/products/image-search",
    response_model=ImageSearchResponse,
    response_model_exclude_none=True,
    responses={
        400: {"model": ErrorResponse},
        503: {"model": ErrorResponse},
    },
)
async def image_search(
    service: Annotated[ImageSearchService, Depends(get_search_service)],
    image: Annotated[UploadFile | None, File()] = None,
):
    """Match an uploaded photo against the product catalog."""
    if image is None:
        return _error(400, "No image provided")

    upload = await read_upload(image, service.config.max_image_bytes)
    if upload.size == 0:
        return _error(400, "No image provided", "Uploaded file is empty")

    try:
        result = await service.search(upload)
    except CatalogUnavailable as exc:
        logger.error("image_search_catalog_unavailable", error=str(exc))
        return _error(503, "Unable to process image search", str(exc))

    response = ImageSearchResponse.from_result(result)
    return JSONResponse(content=response.model_dump(mode="json", by_alias=True, exclude_none=True))
