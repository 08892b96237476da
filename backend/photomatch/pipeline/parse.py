"""Structured field parser — turns the model's free text into tagged fields.

Each labeled section of the prompt gets its own extractor returning a
FieldResult: Present(text) when the model answered, ABSENT when the label is
missing, empty, or holds a non-answer such as "not visible" or "N/A".

The parser never raises on partial answers; fields it cannot read are
simply absent. Only a blank description raises ParseDegradation.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

import structlog

from photomatch.errors import ParseDegradation

log = structlog.get_logger("photomatch.parse")

PLACEHOLDER_TOKENS: tuple[str, ...] = (
    "extract",
    "identify",
    "n/a",
    "not visible",
    "not clear",
    "cannot",
)
INGREDIENT_PLACEHOLDER_TOKENS: tuple[str, ...] = ("extract", "list", "n/a", "not")

MAX_INGREDIENTS = 5
MAX_BASIC_TERMS = 15
MAX_KEY_TERMS = 20

STOP_WORDS = frozenset(
    {
        "a", "an", "the", "and", "or", "but", "in", "on", "at", "to", "for", "with",
        "about", "is", "are", "was", "were", "be", "been", "being", "have", "has",
        "had", "do", "does", "did", "this", "that", "these", "those", "it", "its",
        "i", "can", "see", "appears", "looks", "like", "seems", "may", "might", "could",
        "would", "should", "will", "shall", "product", "image", "picture", "photo",
    }
)  # fmt: skip


@dataclass(frozen=True)
class Present:
    text: str


@dataclass(frozen=True)
class Absent:
    pass


ABSENT = Absent()

FieldResult = Present | Absent


def value_of(result: FieldResult) -> str | None:
    """Unwrap a FieldResult into its text, or None when absent."""
    return result.text if isinstance(result, Present) else None


@dataclass(frozen=True)
class ExtractedDescription:
    raw: str
    brand: FieldResult = ABSENT
    product_type: FieldResult = ABSENT
    product_name: FieldResult = ABSENT
    color_shade: FieldResult = ABSENT
    key_claims: FieldResult = ABSENT
    additional_details: FieldResult = ABSENT
    ingredients: list[str] = field(default_factory=list)

    def present_fields(self) -> list[str]:
        names = (
            "brand",
            "product_type",
            "product_name",
            "color_shade",
            "key_claims",
            "additional_details",
        )
        return [name for name in names if isinstance(getattr(self, name), Present)]


# === Label patterns ===

_LABELS: dict[str, str] = {
    "brand": r"Brand\s+Name",
    "product_type": r"Product\s+Type",
    "product_name": r"Product\s+Name",
    "ingredients": r"Key\s+Ingredients",
    "key_claims": r"Key\s+Claims(?:\s*/\s*Benefits)?",
    "color_shade": r"Colou?r\s*/\s*Shade",
    "additional_details": r"Additional\s+Details",
}

# Label, optional markdown bold around the colon, optional opening bracket,
# then everything up to the closing bracket or end of line.
_LINE_FIELD_RE: dict[str, re.Pattern[str]] = {
    name: re.compile(rf"\b{label}\s*\**\s*:\s*\**\s*\[?\s*([^\]\n]*)", re.IGNORECASE)
    for name, label in _LABELS.items()
}

# Additional details may span lines: stop at a bracket, the next numbered
# item, a blank line, or the end of the text.
_DETAILS_RE = re.compile(
    rf"\b{_LABELS['additional_details']}\s*\**\s*:\s*\**\s*\[?([\s\S]*?)"
    r"(?=\]|\n\s*\d+[.)]|\n\s*\n|\Z)",
    re.IGNORECASE,
)

_ANY_LABEL_RE = re.compile(
    r"\b(?:" + "|".join(_LABELS.values()) + r")\s*\**\s*:",
    re.IGNORECASE,
)
_TRAILING_ENUM_RE = re.compile(r"\s*(?:\d+[.)])?\s*$")
_WHITESPACE_RE = re.compile(r"\s+")
_INGREDIENT_SPLIT_RE = re.compile(r",|\s+and\s+|\+", re.IGNORECASE)
_PUNCTUATION_RE = re.compile(r"[^\w\s]")


def is_placeholder(text: str, tokens: tuple[str, ...] = PLACEHOLDER_TOKENS) -> bool:
    """True if the text contains any non-answer token (case-insensitive)."""
    lowered = text.lower()
    return any(token in lowered for token in tokens)


def _cut_at_next_label(text: str) -> str:
    """Truncate a captured value where another label starts on the same line."""
    match = _ANY_LABEL_RE.search(text)
    if match:
        text = _TRAILING_ENUM_RE.sub("", text[: match.start()])
    return text


def _clean(text: str) -> str:
    text = _WHITESPACE_RE.sub(" ", text).strip()
    text = text.strip("*\"'` ").rstrip(".;").strip()
    return text.lower()


def _raw_field(description: str, name: str) -> str | None:
    match = _LINE_FIELD_RE[name].search(description)
    if not match:
        return None
    return _clean(_cut_at_next_label(match.group(1)))


def extract_field(description: str, name: str) -> FieldResult:
    """Extract one single-line labeled field, filtering placeholder answers."""
    value = _raw_field(description, name)
    if not value or is_placeholder(value):
        return ABSENT
    return Present(value)


def extract_brand(description: str) -> FieldResult:
    return extract_field(description, "brand")


def extract_product_type(description: str) -> FieldResult:
    return extract_field(description, "product_type")


def extract_product_name(description: str) -> FieldResult:
    return extract_field(description, "product_name")


def extract_color_shade(description: str) -> FieldResult:
    return extract_field(description, "color_shade")


def extract_key_claims(description: str) -> FieldResult:
    return extract_field(description, "key_claims")


def extract_additional_details(description: str) -> FieldResult:
    """Extract the free-form details section.

    Not placeholder-filtered: it only feeds secondary visual-trait matching,
    where a stray "not visible" is harmless.
    """
    match = _DETAILS_RE.search(description)
    if not match:
        return ABSENT
    value = _clean(_cut_at_next_label(match.group(1)))
    return Present(value) if value else ABSENT


def extract_ingredients(description: str) -> list[str]:
    """Split the ingredients line on commas, "and", and "+"; keep at most five."""
    raw = _raw_field(description, "ingredients")
    if not raw:
        return []
    ingredients: list[str] = []
    for part in _INGREDIENT_SPLIT_RE.split(raw):
        ingredient = part.strip().strip(".;:*")
        if len(ingredient) <= 2:
            continue
        if is_placeholder(ingredient, INGREDIENT_PLACEHOLDER_TOKENS):
            continue
        ingredients.append(ingredient)
    return ingredients[:MAX_INGREDIENTS]


def parse_description(description: str) -> ExtractedDescription:
    """Parse every labeled section of a vision description."""
    if not description or not description.strip():
        raise ParseDegradation("Vision service returned an empty description")

    extracted = ExtractedDescription(
        raw=description,
        brand=extract_brand(description),
        product_type=extract_product_type(description),
        product_name=extract_product_name(description),
        color_shade=extract_color_shade(description),
        key_claims=extract_key_claims(description),
        additional_details=extract_additional_details(description),
        ingredients=extract_ingredients(description),
    )

    present = extracted.present_fields()
    if not present:
        log.warning("parse_no_fields", length=len(description))
    else:
        log.info("parse_complete", fields=present, ingredients=len(extracted.ingredients))
    return extracted


# === Key terms ===


def extract_basic_terms(description: str) -> list[str]:
    """Distinct content words of the description (>= 3 chars, no stop words)."""
    seen: dict[str, None] = {}
    for word in description.lower().split():
        cleaned = _PUNCTUATION_RE.sub("", word)
        if len(cleaned) >= 3 and cleaned not in STOP_WORDS:
            seen.setdefault(cleaned, None)
    return list(seen)[:MAX_BASIC_TERMS]


def extract_key_terms(extracted: ExtractedDescription) -> list[str]:
    """Search terms for generic keyword matching, most specific first.

    Words of the brand, product type, and product name come first, then
    ingredients, then plain content words from the whole description.
    """
    priority: list[str] = []
    for result in (extracted.brand, extracted.product_type, extracted.product_name):
        text = value_of(result)
        if text:
            priority.extend(word for word in text.split() if len(word) > 1)
    priority.extend(extracted.ingredients[:MAX_INGREDIENTS])

    combined = dict.fromkeys(priority + extract_basic_terms(extracted.raw))
    return list(combined)[:MAX_KEY_TERMS]
