"""Catalog providers — read-only product snapshots for one search request.

Providers return products in storage order; the search service sorts them
by id before scoring. Any failure to read the catalog surfaces as
CatalogUnavailable.
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any, Protocol

import asyncpg
import structlog
from pydantic import ValidationError

from photomatch.errors import CatalogUnavailable
from photomatch.models.contracts import CatalogProduct

logger = structlog.get_logger()

PRODUCTS_QUERY = (
    "SELECT id::text AS id, name, description, category, price, stock, image "
    "FROM products ORDER BY id"
)
_CONNECT_TIMEOUT = 5.0


class CatalogProvider(Protocol):
    async def list_products(self) -> list[CatalogProduct]: ...


def _parse_products(rows: list[dict[str, Any]], source: str) -> list[CatalogProduct]:
    """Validate raw rows, skipping malformed ones."""
    products: list[CatalogProduct] = []
    for row in rows:
        if not isinstance(row, dict):
            logger.warning("catalog_row_skipped", source=source, error="not an object")
            continue
        # Mongo-style exports carry "_id" instead of "id"
        if "id" not in row and "_id" in row:
            row = {**row, "id": str(row["_id"])}
        try:
            products.append(CatalogProduct.model_validate(row))
        except ValidationError as exc:
            logger.warning(
                "catalog_row_skipped",
                source=source,
                row_id=row.get("id"),
                error=str(exc)[:200],
            )
    return products


class InMemoryCatalog:
    def __init__(self, products: list[CatalogProduct]) -> None:
        self._products = list(products)

    async def list_products(self) -> list[CatalogProduct]:
        return list(self._products)


class JsonFileCatalog:
    """Catalog exported as a JSON array of product objects."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def _read(self) -> list[dict[str, Any]]:
        data = json.loads(self.path.read_text())
        if isinstance(data, dict):
            data = data.get("products", [])
        if not isinstance(data, list):
            raise ValueError("Catalog file must hold a JSON array of products")
        return data

    async def list_products(self) -> list[CatalogProduct]:
        try:
            rows = await asyncio.to_thread(self._read)
        except (OSError, ValueError) as exc:
            logger.error("catalog_read_failed", path=str(self.path), error=str(exc))
            raise CatalogUnavailable(f"Cannot read catalog file {self.path}: {exc}") from exc
        products = _parse_products(rows, str(self.path))
        logger.info("catalog_loaded", source="json", count=len(products))
        return products


class PostgresCatalog:
    """Catalog read from the storefront's ``products`` table."""

    def __init__(self, dsn: str) -> None:
        # Accept SQLAlchemy-style URLs too
        self.dsn = dsn.replace("postgresql+asyncpg://", "postgresql://")

    async def list_products(self) -> list[CatalogProduct]:
        try:
            conn = await asyncpg.connect(dsn=self.dsn, timeout=_CONNECT_TIMEOUT)
            try:
                records = await conn.fetch(PRODUCTS_QUERY)
            finally:
                await conn.close()
        except (OSError, asyncpg.PostgresError, TimeoutError) as exc:
            logger.error("catalog_query_failed", error=str(exc))
            raise CatalogUnavailable(f"Cannot query product catalog: {exc}") from exc

        rows = [dict(record) for record in records]
        for row in rows:
            if row.get("price") is not None:
                row["price"] = float(row["price"])
        products = _parse_products(rows, "postgres")
        logger.info("catalog_loaded", source="postgres", count=len(products))
        return products
