"""photomatch contract models.

CatalogProduct and ImageSearchResponse are the shapes the storefront reads.
Everything else lives for a single request only.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator

# === Catalog ===


class CatalogProduct(BaseModel):
    """A storefront product, owned by the external catalog (read-only here)."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    description: str = ""
    category: str = ""
    price: float = Field(ge=0, default=0.0)
    stock: int = 0
    image: str | None = None

    @field_validator("id", mode="before")
    @classmethod
    def _id_to_str(cls, value: object) -> object:
        return str(value) if isinstance(value, int) else value

    @field_validator("description", "category", mode="before")
    @classmethod
    def _none_to_empty(cls, value: object) -> object:
        return "" if value is None else value


# === Pipeline ===


class ImageUpload(BaseModel):
    """The submitted photo as received by the API.

    ``size`` is the number of bytes observed on the wire. Reading stops once
    the limit is crossed, so ``data`` may be truncated when ``size`` exceeds it.
    """

    data: bytes
    filename: str = ""
    content_type: str | None = None
    size: int = Field(ge=0)


class TemporaryAsset(BaseModel):
    """An uploaded copy of the photo that must be deleted before the request ends."""

    cid: str
    url: str


class ScoredCandidate(BaseModel):
    product: CatalogProduct
    score: float = Field(ge=0)
    reasons: list[str] = []


class SearchResult(BaseModel):
    matches: list[CatalogProduct] = []
    description: str
    key_terms: list[str] = []
    degraded: bool = False


# === API ===


class ImageSearchResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    matched_products: list[CatalogProduct] = Field(alias="matchedProducts")
    image_description: str = Field(alias="imageDescription")
    key_terms: list[str] = Field(alias="keyTerms")
    fallback: bool | None = None

    @classmethod
    def from_result(cls, result: SearchResult) -> ImageSearchResponse:
        return cls(
            matched_products=result.matches,
            image_description=result.description,
            key_terms=result.key_terms,
            fallback=True if result.degraded else None,
        )


class ErrorResponse(BaseModel):
    error: str
    details: str | None = None
