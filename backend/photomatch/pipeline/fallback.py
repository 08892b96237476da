"""Fallback keyword search used when the vision path fails.

Terms come from the uploaded filename when it carries enough words,
otherwise from the configured generic vocabulary. Matching is plain
substring containment, no fuzzy logic.
"""

from __future__ import annotations

import re

import structlog

from photomatch.config import FallbackConfig
from photomatch.models.contracts import CatalogProduct, ScoredCandidate, SearchResult
from photomatch.pipeline.ranking import products_of, rank_candidates

log = structlog.get_logger("photomatch.fallback")

_NON_ALNUM_RE = re.compile(r"[^a-z0-9\s]")
MIN_FILENAME_TOKENS = 3


def filename_tokens(filename: str) -> list[str]:
    """Lowercased alphanumeric words of a filename longer than two characters."""
    if not filename:
        return []
    cleaned = _NON_ALNUM_RE.sub(" ", filename.lower())
    return [word for word in cleaned.split() if len(word) > 2]


def fallback_terms(filename: str, config: FallbackConfig) -> list[str]:
    """Filename words if there are more than two, otherwise the generic vocabulary."""
    tokens = filename_tokens(filename)
    if len(tokens) >= MIN_FILENAME_TOKENS:
        return tokens
    return list(config.vocabulary)


def score_by_terms(
    product: CatalogProduct,
    terms: list[str],
    config: FallbackConfig,
) -> ScoredCandidate:
    name = product.name.lower()
    description = product.description.lower()
    category = product.category.lower()

    score = 0.0
    reasons: list[str] = []
    for term in terms:
        for label, text, weight in (
            ("name", name, config.name_weight),
            ("desc", description, config.description_weight),
            ("category", category, config.category_weight),
        ):
            if weight > 0 and term in text:
                score += weight
                reasons.append(f"Keyword in {label}: {term} ({weight:.1f})")
    return ScoredCandidate(product=product, score=score, reasons=reasons)


def fallback_search(
    products: list[CatalogProduct],
    filename: str,
    config: FallbackConfig,
    limit: int,
) -> SearchResult:
    """Rank the catalog by keyword containment and mark the result degraded."""
    terms = fallback_terms(filename, config)
    log.info("fallback_search_terms", terms=terms, from_filename=terms != config.vocabulary)

    candidates = [score_by_terms(product, terms, config) for product in products]
    ranked = rank_candidates(candidates, limit)
    return SearchResult(
        matches=products_of(ranked),
        description=config.description_text,
        key_terms=terms,
        degraded=True,
    )
