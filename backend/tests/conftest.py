"""Shared fixtures: catalog data, fake storage and vision backends, API client."""

from __future__ import annotations

import io

import pytest
from httpx import ASGITransport, AsyncClient
from PIL import Image

from photomatch.catalog import InMemoryCatalog
from photomatch.config import Settings
from photomatch.models.contracts import CatalogProduct, ImageUpload, TemporaryAsset
from photomatch.pipeline.search import ImageSearchService

SNEAKER_DESCRIPTION = """1. Brand Name: Nike
2. Product Type: sneakers
3. Product Name: Air Zoom Pegasus
4. Key Ingredients: mesh, rubber and foam
5. Key Claims/Benefits: lightweight, breathable
6. Color/Shade: not visible
7. Additional Details: white running shoe with a red swoosh and round toe"""


class FakeStorage:
    """In-memory ObjectStorage that records every call."""

    name = "fake"

    def __init__(self, *, fail_upload: Exception | None = None, delete_failures: int = 0) -> None:
        self.fail_upload = fail_upload
        self.delete_failures = delete_failures
        self.uploads: list[dict] = []
        self.delete_calls: list[str] = []
        self.objects: dict[str, bytes] = {}

    async def upload(self, data, group_hint, *, filename="", content_type="image/jpeg"):
        self.uploads.append(
            {"size": len(data), "group": group_hint, "filename": filename, "type": content_type}
        )
        if self.fail_upload is not None:
            raise self.fail_upload
        cid = f"cid-{len(self.uploads)}"
        self.objects[cid] = data
        return TemporaryAsset(cid=cid, url=f"https://gateway.test/ipfs/{cid}")

    async def delete(self, cid):
        self.delete_calls.append(cid)
        if len(self.delete_calls) <= self.delete_failures:
            raise OSError("storage unavailable")
        self.objects.pop(cid, None)

    async def check(self):
        return None


class FakeDescriber:
    """VisionDescriber returning canned text or raising a canned error."""

    name = "fake"

    def __init__(self, text: str = SNEAKER_DESCRIPTION, error: Exception | None = None) -> None:
        self.text = text
        self.error = error
        self.calls: list[tuple[str, str]] = []

    async def describe(self, image_url, prompt):
        self.calls.append((image_url, prompt))
        if self.error is not None:
            raise self.error
        return self.text


class FailingCatalog:
    def __init__(self, error: Exception) -> None:
        self.error = error

    async def list_products(self):
        raise self.error


def make_products() -> list[CatalogProduct]:
    return [
        CatalogProduct(
            id="p03",
            name="Nikee Runner",
            description="Lightweight trail running shoe.",
            category="Sneakers",
            price=89.0,
            stock=4,
        ),
        CatalogProduct(
            id="p01",
            name="Nike",
            description="Classic court shoe in white leather.",
            category="Sneakers",
            price=120.0,
            stock=10,
        ),
        CatalogProduct(
            id="p02",
            name="Velvet Matte Lipstick",
            description="Long-lasting matte lipstick with a smooth, velvet finish.",
            category="Makeup",
            price=24.99,
            stock=40,
        ),
        CatalogProduct(
            id="p04",
            name="Radiance Serum",
            description="A lightweight serum that brightens and evens skin tone.",
            category="Skincare",
            price=39.99,
            stock=25,
        ),
        CatalogProduct(
            id="p05",
            name="Hydrating Face Mask",
            description="Intensive hydrating mask for dry and sensitive skin.",
            category="Skincare",
            price=19.99,
            stock=30,
        ),
    ]


def png_bytes(size: tuple[int, int] = (8, 8), fmt: str = "PNG") -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", size, color=(200, 30, 30)).save(buf, format=fmt)
    return buf.getvalue()


def make_upload(data: bytes | None = None, filename: str = "photo.png") -> ImageUpload:
    payload = png_bytes() if data is None else data
    return ImageUpload(data=payload, filename=filename, content_type="image/png", size=len(payload))


@pytest.fixture
def products() -> list[CatalogProduct]:
    return make_products()


@pytest.fixture
def test_settings() -> Settings:
    return Settings(cleanup_base_delay_seconds=0.0, vision_timeout_seconds=5.0)


@pytest.fixture
def storage() -> FakeStorage:
    return FakeStorage()


@pytest.fixture
def describer() -> FakeDescriber:
    return FakeDescriber()


@pytest.fixture
def service(storage, describer, products, test_settings) -> ImageSearchService:
    return ImageSearchService(storage, describer, InMemoryCatalog(products), config=test_settings)


@pytest.fixture
async def client(service):
    """ASGI client with the search service swapped for the fake-backed one."""
    from photomatch.api.routes.image_search import get_search_service
    from photomatch.main import app

    app.dependency_overrides[get_search_service] = lambda: service
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()
