"""Ranking — keep positive scores, best first, bounded result size."""

from __future__ import annotations

import structlog

from photomatch.models.contracts import CatalogProduct, ScoredCandidate

log = structlog.get_logger("photomatch.ranking")

LOGGED_MATCHES = 5


def rank_candidates(candidates: list[ScoredCandidate], limit: int) -> list[ScoredCandidate]:
    """Drop non-positive scores and sort descending, keeping the first ``limit``.

    The sort is stable, so equal scores keep the order they arrived in. The
    orchestrator feeds candidates in ascending product-id order, which makes
    ties resolve by id.
    """
    positive = [c for c in candidates if c.score > 0]
    positive.sort(key=lambda c: c.score, reverse=True)
    return positive[:limit]


def log_top_matches(ranked: list[ScoredCandidate]) -> None:
    for position, candidate in enumerate(ranked[:LOGGED_MATCHES], start=1):
        log.info(
            "search_match",
            rank=position,
            product_id=candidate.product.id,
            name=candidate.product.name,
            score=round(candidate.score, 2),
            reasons=candidate.reasons or ["No specific match"],
        )


def products_of(ranked: list[ScoredCandidate]) -> list[CatalogProduct]:
    return [c.product for c in ranked]
