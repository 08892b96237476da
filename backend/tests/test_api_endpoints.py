"""Tests for the image search endpoint — request validation and response shape."""

from unittest.mock import AsyncMock

import pytest
from conftest import SNEAKER_DESCRIPTION, png_bytes

from photomatch.api.routes.image_search import read_upload
from photomatch.errors import CatalogUnavailable

URL = "/api/v1/products/image-search"


def _files(data: bytes | None = None, filename: str = "shoe.png"):
    payload = png_bytes() if data is None else data
    return {"image": (filename, payload, "image/png")}


class TestImageSearchEndpoint:
    @pytest.mark.asyncio
    async def test_success_shape(self, client, storage):
        """A good photo returns matches, description, and key terms; no fallback flag."""
        resp = await client.post(URL, files=_files())

        assert resp.status_code == 200
        body = resp.json()
        assert set(body) == {"matchedProducts", "imageDescription", "keyTerms"}
        assert body["imageDescription"] == SNEAKER_DESCRIPTION
        assert body["keyTerms"][0] == "nike"
        first = body["matchedProducts"][0]
        assert first["id"] == "p01"
        assert first["name"] == "Nike"
        assert storage.delete_calls == ["cid-1"]

    @pytest.mark.asyncio
    async def test_missing_image_is_400(self, client):
        resp = await client.post(URL)
        assert resp.status_code == 400
        assert resp.json()["error"] == "No image provided"

    @pytest.mark.asyncio
    async def test_wrong_field_name_is_400(self, client):
        resp = await client.post(URL, files={"photo": ("shoe.png", png_bytes(), "image/png")})
        assert resp.status_code == 400

    @pytest.mark.asyncio
    async def test_empty_file_is_400(self, client, describer):
        resp = await client.post(URL, files=_files(b""))
        assert resp.status_code == 400
        assert resp.json() == {"error": "No image provided", "details": "Uploaded file is empty"}
        assert describer.calls == []

    @pytest.mark.asyncio
    async def test_vision_failure_sets_fallback(self, client, describer):
        describer.error = RuntimeError("model offline")
        resp = await client.post(URL, files=_files())

        assert resp.status_code == 200
        body = resp.json()
        assert body["fallback"] is True
        assert body["imageDescription"].startswith("Image analysis unavailable")

    @pytest.mark.asyncio
    async def test_oversize_upload_falls_back(self, client, service, describer, storage):
        service.config = service.config.model_copy(update={"max_image_bytes": 100})
        resp = await client.post(URL, files=_files(png_bytes(size=(64, 64)) + b"\0" * 200))

        assert resp.status_code == 200
        assert resp.json()["fallback"] is True
        assert describer.calls == []
        assert storage.uploads == []

    @pytest.mark.asyncio
    async def test_catalog_unavailable_is_503(self, client, service):
        service.catalog = AsyncMock()
        service.catalog.list_products.side_effect = CatalogUnavailable("db down")

        resp = await client.post(URL, files=_files())

        assert resp.status_code == 503
        assert resp.json()["error"] == "Unable to process image search"

    @pytest.mark.asyncio
    async def test_unexpected_error_is_500(self, client, service):
        service.search = AsyncMock(side_effect=RuntimeError("kaboom"))

        resp = await client.post(URL, files=_files())

        assert resp.status_code == 500
        assert resp.json() == {
            "error": "Unable to process image search",
            "details": "RuntimeError",
        }
        assert "X-Request-ID" in resp.headers


class TestReadUpload:
    class _Chunks:
        def __init__(self, data: bytes, filename: str = "x.png") -> None:
            self._data = data
            self.filename = filename
            self.content_type = "image/png"
            self.reads = 0

        async def read(self, size: int) -> bytes:
            self.reads += 1
            chunk, self._data = self._data[:size], self._data[size:]
            return chunk

    @pytest.mark.asyncio
    async def test_reads_whole_file_under_limit(self):
        upload = await read_upload(self._Chunks(b"x" * 100_000), limit=200_000)
        assert upload.size == 100_000
        assert len(upload.data) == 100_000

    @pytest.mark.asyncio
    async def test_stops_after_crossing_limit(self):
        source = self._Chunks(b"x" * 1_000_000)
        upload = await read_upload(source, limit=100_000)

        assert upload.size > 100_000
        assert upload.size < 1_000_000
        assert source.reads == 2
