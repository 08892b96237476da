"""Fuzzy matching scorer — weighs every catalog product against the parsed description.

A product's score is the sum of independent, non-negative contributions
(brand, visual traits, product type, product name, color, key terms,
configured boosts). Each contribution that fires appends one reason string
annotated with its value, in the order contributions are computed.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

import structlog

from photomatch.config import ScoringWeights
from photomatch.models.contracts import CatalogProduct, ScoredCandidate
from photomatch.pipeline.parse import PLACEHOLDER_TOKENS, ExtractedDescription, value_of

log = structlog.get_logger("photomatch.scoring")

SHORT_TERM_MAX_LEN = 5
PARTIAL_WORD_MIN_LEN = 3
PARTIAL_MATCH_CREDIT = 0.7
SHORT_SUBSTRING_CREDIT = 0.9
MIN_KEY_TERM_LEN = 3


def fuzzy_match(term: str, text: str) -> float:
    """Confidence in [0, 1] that ``term`` appears in ``text``.

    Rules, first non-zero wins:
    1. empty, placeholder, or single-character term -> 0
    2. exact substring -> 1.0
    3. short term (<= 5 chars): whole word -> 1.0, case-insensitive substring -> 0.9
    4. per term word (>= 3 chars): some text word starts with the word's
       3-char prefix, or that prefix with its first two characters swapped
       -> 0.7 per matching word, averaged over the term's words
    5. otherwise 0
    """
    if not term or len(term) < 2 or term in PLACEHOLDER_TOKENS:
        return 0.0

    if term in text:
        return 1.0

    if len(term) <= SHORT_TERM_MAX_LEN:
        escaped = re.escape(term)
        if re.search(rf"\b{escaped}\b", text, re.IGNORECASE):
            return 1.0
        if re.search(escaped, text, re.IGNORECASE):
            return SHORT_SUBSTRING_CREDIT

    words = [w for w in term.split() if len(w) >= PARTIAL_WORD_MIN_LEN]
    if not words:
        return 0.0

    text_words = text.split()
    hits = 0
    for word in words:
        prefix = word[:3]
        transposed = prefix[1] + prefix[0] + prefix[2:]
        if any(tw.startswith(prefix) or tw.startswith(transposed) for tw in text_words):
            hits += 1
    return PARTIAL_MATCH_CREDIT * hits / len(words)


def _fmt(value: float) -> str:
    return f"{value:.1f}"


@dataclass
class _Tally:
    score: float = 0.0
    reasons: list[str] = field(default_factory=list)

    def add(self, value: float, reason: str) -> None:
        if value <= 0:
            return
        self.score += value
        self.reasons.append(f"{reason} ({_fmt(value)})")


@dataclass
class MatchScorer:
    weights: ScoringWeights = field(default_factory=ScoringWeights)
    # Trait name -> words; fires when a word is in the details and one is in the description
    visual_traits: dict[str, list[str]] = field(default_factory=dict)
    # Exact lowercase product name -> bonus
    boosted_products: dict[str, float] = field(default_factory=dict)

    def score(
        self,
        product: CatalogProduct,
        extracted: ExtractedDescription,
        key_terms: list[str],
    ) -> ScoredCandidate:
        w = self.weights
        tally = _Tally()

        name = product.name.lower()
        description = product.description.lower()
        category = product.category.lower()
        product_text = f"{name} {description} {category}"

        brand = value_of(extracted.brand)
        if brand:
            self._score_brand(tally, brand, name, description)
        else:
            self._score_visual_traits(tally, value_of(extracted.additional_details) or "", description)

        product_type = value_of(extracted.product_type)
        if product_type:
            tally.add(
                fuzzy_match(product_type, name) * w.type_in_name,
                f"Type in name: {product_type}",
            )
            if category == product_type:
                tally.add(w.type_exact_category, f"Exact category match: {product_type}")
            else:
                tally.add(
                    fuzzy_match(product_type, category) * w.type_in_category,
                    f"Type in category: {product_type}",
                )
            tally.add(
                fuzzy_match(product_type, description) * w.type_in_description,
                f"Type in desc: {product_type}",
            )

        product_name = value_of(extracted.product_name)
        if product_name:
            tally.add(
                fuzzy_match(product_name, product_text) * w.product_name,
                f"Product name match: {product_name}",
            )

        color = value_of(extracted.color_shade)
        if color and color != "not visible":
            tally.add(fuzzy_match(color, product_text) * w.color_shade, f"Color match: {color}")

        for term in key_terms:
            if len(term) < MIN_KEY_TERM_LEN:
                continue
            tally.add(fuzzy_match(term, product_text) * w.key_term, f"Term match: {term}")

        boost = self.boosted_products.get(name)
        if boost:
            tally.add(boost, f"Configured boost: {product.name}")

        return ScoredCandidate(product=product, score=tally.score, reasons=tally.reasons)

    def _score_brand(self, tally: _Tally, brand: str, name: str, description: str) -> None:
        w = self.weights
        if name == brand:
            tally.add(w.brand_exact, f"Exact brand match: {brand}")
        elif brand in name:
            tally.add(w.brand_in_name, f"Brand in name: {brand}")
        elif len(brand) <= SHORT_TERM_MAX_LEN and "".join(brand.split()) in "".join(name.split()):
            tally.add(w.brand_short, f"Short brand match: {brand}")
        else:
            tally.add(fuzzy_match(brand, name) * w.brand_fuzzy_name, f"Fuzzy brand in name: {brand}")

        tally.add(
            fuzzy_match(brand, description) * w.brand_fuzzy_description,
            f"Brand in desc: {brand}",
        )

    def _score_visual_traits(self, tally: _Tally, details: str, description: str) -> None:
        if not details:
            return
        for trait, words in self.visual_traits.items():
            if any(word in details for word in words) and any(word in description for word in words):
                tally.add(self.weights.visual_trait, f"Visual: {trait}")

    def score_all(
        self,
        products: list[CatalogProduct],
        extracted: ExtractedDescription,
        key_terms: list[str],
    ) -> list[ScoredCandidate]:
        """Score every product, preserving catalog order."""
        return [self.score(product, extracted, key_terms) for product in products]
