"""Image search orchestrator.

Per request:
1. Load the catalog and stage the photo (concurrently)
2. Describe the staged photo with the vision model
3. Parse the description into fields and key terms
4. Score and rank the catalog
5. Delete the staged photo

Any failure in steps 1 (staging only) through 4 switches to the fallback
keyword search. A catalog that cannot be read aborts the request. Cleanup
runs on every path and its failures are logged, never raised.
"""

from __future__ import annotations

import asyncio

import structlog

from photomatch.catalog import CatalogProvider, JsonFileCatalog, PostgresCatalog
from photomatch.config import Settings, settings
from photomatch.errors import CatalogUnavailable, CleanupFailure
from photomatch.models.contracts import (
    CatalogProduct,
    ImageUpload,
    SearchResult,
    TemporaryAsset,
)
from photomatch.pipeline.cleanup import CleanupCoordinator
from photomatch.pipeline.describe import (
    AnthropicDescriber,
    OpenRouterDescriber,
    VisionDescriber,
    describe_image,
)
from photomatch.pipeline.fallback import fallback_search
from photomatch.pipeline.parse import extract_key_terms, parse_description
from photomatch.pipeline.ranking import log_top_matches, products_of, rank_candidates
from photomatch.pipeline.scoring import MatchScorer
from photomatch.pipeline.staging import ObjectStorage, stage_image
from photomatch.utils.pinata import PinataStorage
from photomatch.utils.r2 import R2Storage

log = structlog.get_logger("photomatch.search")


def catalog_order(product: CatalogProduct) -> tuple[int, int, str]:
    """Sort key for tie-breaking: numeric ids by value, before any non-numeric ids."""
    if product.id.isdecimal():
        return (0, int(product.id), product.id)
    return (1, 0, product.id)


class ImageSearchService:
    """Runs one photo through the search pipeline. Holds no per-request state."""

    def __init__(
        self,
        storage: ObjectStorage,
        describer: VisionDescriber,
        catalog: CatalogProvider,
        *,
        config: Settings | None = None,
        scorer: MatchScorer | None = None,
        cleanup: CleanupCoordinator | None = None,
        prompt: str | None = None,
    ) -> None:
        self.config = config or settings
        self.storage = storage
        self.describer = describer
        self.catalog = catalog
        self.scorer = scorer or MatchScorer(
            weights=self.config.scoring,
            visual_traits=self.config.visual_traits,
            boosted_products=self.config.boosted_products,
        )
        self.cleanup = cleanup or CleanupCoordinator(
            storage,
            max_attempts=self.config.cleanup_max_attempts,
            base_delay=self.config.cleanup_base_delay_seconds,
        )
        self.prompt = prompt

    async def _load_catalog(self) -> list[CatalogProduct]:
        products = await self.catalog.list_products()
        return sorted(products, key=catalog_order)

    async def search(self, upload: ImageUpload) -> SearchResult:
        log.info(
            "image_search_start",
            filename=upload.filename,
            size=upload.size,
            content_type=upload.content_type,
        )
        asset: TemporaryAsset | None = None
        try:
            catalog_result, stage_result = await asyncio.gather(
                self._load_catalog(),
                stage_image(
                    self.storage,
                    upload,
                    max_bytes=self.config.max_image_bytes,
                    group_hint=self.config.temp_group_id,
                ),
                return_exceptions=True,
            )
            if isinstance(stage_result, TemporaryAsset):
                asset = stage_result

            for outcome in (catalog_result, stage_result):
                # Cancellation and interpreter exits are not pipeline failures
                if isinstance(outcome, BaseException) and not isinstance(outcome, Exception):
                    raise outcome

            if isinstance(catalog_result, CatalogUnavailable):
                raise catalog_result
            if isinstance(catalog_result, Exception):
                raise CatalogUnavailable(f"Catalog provider failed: {catalog_result}") from catalog_result
            products: list[CatalogProduct] = catalog_result

            if isinstance(stage_result, Exception):
                return self._fallback(products, upload, stage_result)
            assert asset is not None

            try:
                result = await self._vision_search(asset, products)
            except Exception as exc:
                return self._fallback(products, upload, exc)
            log.info(
                "image_search_complete",
                matches=len(result.matches),
                key_terms=len(result.key_terms),
                catalog_size=len(products),
            )
            return result
        finally:
            if asset is not None:
                await self._cleanup(asset)

    async def _vision_search(
        self,
        asset: TemporaryAsset,
        products: list[CatalogProduct],
    ) -> SearchResult:
        description = await describe_image(
            self.describer,
            asset.url,
            timeout=self.config.vision_timeout_seconds,
            prompt=self.prompt,
        )
        extracted = parse_description(description)
        key_terms = extract_key_terms(extracted)
        log.info("image_search_key_terms", key_terms=key_terms)

        candidates = self.scorer.score_all(products, extracted, key_terms)
        ranked = rank_candidates(candidates, self.config.result_limit)
        log_top_matches(ranked)
        return SearchResult(
            matches=products_of(ranked),
            description=description,
            key_terms=key_terms,
            degraded=False,
        )

    def _fallback(
        self,
        products: list[CatalogProduct],
        upload: ImageUpload,
        error: Exception,
    ) -> SearchResult:
        log.warning(
            "image_search_fallback",
            error_type=type(error).__name__,
            error=str(error)[:200],
            filename=upload.filename,
        )
        return fallback_search(
            products,
            upload.filename,
            self.config.fallback,
            self.config.result_limit,
        )

    async def _cleanup(self, asset: TemporaryAsset) -> None:
        try:
            await self.cleanup.delete(asset.cid)
        except CleanupFailure as exc:
            log.error(
                "cleanup_failed",
                cid=asset.cid,
                attempts=exc.attempts,
                error=str(exc.__cause__ or exc)[:200],
            )


def build_storage(config: Settings) -> ObjectStorage:
    if config.storage_backend == "r2":
        return R2Storage()
    if config.storage_backend == "pinata":
        return PinataStorage(
            config.pinata_jwt,
            api_url=config.pinata_api_url,
            gateway=config.pinata_gateway_url,
        )
    raise ValueError(f"Unknown storage backend: {config.storage_backend!r}")


def build_describer(config: Settings) -> VisionDescriber:
    if config.vision_provider == "openrouter":
        return OpenRouterDescriber(
            config.openrouter_api_key,
            api_url=config.openrouter_api_url,
            model=config.openrouter_model,
            referer=config.openrouter_referer,
            title=config.openrouter_title,
        )
    if config.vision_provider == "anthropic":
        return AnthropicDescriber(config.anthropic_api_key, model=config.anthropic_model)
    raise ValueError(f"Unknown vision provider: {config.vision_provider!r}")


def build_catalog(config: Settings) -> CatalogProvider:
    if config.catalog_backend == "json":
        return JsonFileCatalog(config.catalog_path)
    if config.catalog_backend == "postgres":
        return PostgresCatalog(config.database_url)
    raise ValueError(f"Unknown catalog backend: {config.catalog_backend!r}")


def build_search_service(config: Settings | None = None) -> ImageSearchService:
    """Wire the backends named in settings into a search service."""
    config = config or settings
    return ImageSearchService(
        build_storage(config),
        build_describer(config),
        build_catalog(config),
        config=config,
    )
