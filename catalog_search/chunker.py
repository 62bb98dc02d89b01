"""Chunk construction: a ProductRecord -> labeled, self-contained text passages.

Passages are written in German, like the catalog itself, and each one is embedded
separately:
- main: name, type, category path, brand, description, tags, price, availability, rating
- specs: specifications (nested maps indented), SKU/EAN
- details: warnings and notes
- claims: marketing claims and certifications
- attributes: free-form attributes (true booleans as check marks)

Passages longer than settings.MAX_CHUNK_TOKENS are split on line boundaries.
"""
import json
import re
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional

from catalog_search.config import settings
from catalog_search.schemas import Availability, ChunkType, ProductRecord, ProductType

AVAILABILITY_TEXT = {
    Availability.IN_STOCK: "Auf Lager",
    Availability.OUT_OF_STOCK: "Ausverkauft",
    Availability.ON_REQUEST: "Auf Anfrage",
    Availability.PREORDER: "Vorbestellbar",
    Availability.DISCONTINUED: "Nicht mehr verfügbar",
}


@dataclass
class Passage:
    """A chunk before embedding."""
    chunk_type: ChunkType
    content: str
    metadata: Dict[str, Any] = field(default_factory=dict)


def _title_key(key: str) -> str:
    """'fill_volume' -> 'Fill Volume'."""
    return re.sub(r"\b\w", lambda m: m.group(0).upper(), key.replace("_", " "))


def _format_value(value: Any) -> str:
    if isinstance(value, list):
        return ", ".join(str(v) for v in value)
    if isinstance(value, bool):
        return "ja" if value else "nein"
    return str(value)


def _format_price(product: ProductRecord) -> str:
    price = f"{product.price} {product.currency}"
    if product.price_original is not None:
        price += f" (Original: {product.price_original} {product.currency})"
    return price


def build_main_chunk(product: ProductRecord) -> Optional[str]:
    parts: List[str] = [f"Produkt: {product.name}"]
    if product.product_type and product.product_type != ProductType.OTHER:
        parts.append(f"Typ: {product.product_type.value}")
    if product.category:
        path = f"{product.category} > {product.subcategory}" if product.subcategory else product.category
        parts.append(f"Kategorie: {path}")
    if product.brand:
        parts.append(f"Marke: {product.brand}")
    if product.description:
        parts.append(f"Beschreibung: {product.description}")
    if product.tags:
        parts.append(f"Tags: {', '.join(product.tags)}")
    if product.price is not None:
        parts.append(f"Preis: {_format_price(product)}")
    if product.availability:
        parts.append(f"Verfügbarkeit: {AVAILABILITY_TEXT.get(product.availability, product.availability.value)}")
    if product.rating and product.rating.count:
        parts.append(f"Bewertung: {product.rating.value}/5 ({product.rating.count} Bewertungen)")
    return "\n".join(parts)


def build_specs_chunk(product: ProductRecord) -> Optional[str]:
    if not product.specifications:
        return None
    parts: List[str] = [f"Technische Daten für {product.name}:"]
    for key, value in product.specifications.items():
        if value is None:
            continue
        if isinstance(value, dict):
            parts.append(f"{_title_key(key)}:")
            for sub_key, sub_value in value.items():
                parts.append(f"  - {sub_key}: {_format_value(sub_value)}")
        else:
            parts.append(f"{_title_key(key)}: {_format_value(value)}")
    if product.sku:
        parts.append(f"Artikelnummer: {product.sku}")
    if product.ean:
        parts.append(f"EAN: {product.ean}")
    return "\n".join(parts) if len(parts) > 1 else None


def build_details_chunk(product: ProductRecord) -> Optional[str]:
    if not product.warnings:
        return None
    parts = ["Hinweise und Warnungen:"] + [f"- {w}" for w in product.warnings]
    return "\n".join(parts)


def build_claims_chunk(product: ProductRecord) -> Optional[str]:
    if not product.claims:
        return None
    parts = [f"Eigenschaften und Zertifikate für {product.name}:"] + [f"- {c}" for c in product.claims]
    return "\n".join(parts)


def build_attributes_chunk(product: ProductRecord) -> Optional[str]:
    if not product.attributes:
        return None
    parts: List[str] = [f"Weitere Eigenschaften für {product.name}:"]
    for key, value in product.attributes.items():
        if value is None:
            continue
        if isinstance(value, bool):
            if value:
                parts.append(f"✓ {_title_key(key)}")
        elif isinstance(value, dict):
            parts.append(f"{_title_key(key)}: {json.dumps(value, ensure_ascii=False)}")
        else:
            parts.append(f"{_title_key(key)}: {_format_value(value)}")
    return "\n".join(parts) if len(parts) > 1 else None


def estimate_tokens(text: str) -> int:
    """Rough token count (about four characters per token)."""
    return -(-len(text) // 4)


def split_large_passage(passage: Passage, max_tokens: Optional[int] = None) -> List[Passage]:
    """Split a passage on line boundaries so every part stays within max_tokens.

    A single line longer than max_tokens is kept whole. Parts carry partNumber and
    totalParts in their metadata.
    """
    max_tokens = max_tokens or settings.MAX_CHUNK_TOKENS
    if estimate_tokens(passage.content) <= max_tokens:
        return [passage]

    groups: List[List[str]] = []
    current: List[str] = []
    current_tokens = 0
    for line in passage.content.split("\n"):
        line_tokens = estimate_tokens(line)
        if current and current_tokens + line_tokens > max_tokens:
            groups.append(current)
            current, current_tokens = [], 0
        current.append(line)
        current_tokens += line_tokens
    if current:
        groups.append(current)

    return [
        replace(
            passage,
            content="\n".join(lines),
            metadata={**passage.metadata, "partNumber": i, "totalParts": len(groups)},
        )
        for i, lines in enumerate(groups, start=1)
    ]


def create_chunks(product: ProductRecord, max_tokens: Optional[int] = None) -> List[Passage]:
    """Build all passages for a product, in a stable order (main first).

    Args:
        product: Product record to describe.
        max_tokens: Split threshold; defaults to settings.MAX_CHUNK_TOKENS.

    Returns:
        List[Passage]: Non-empty passages; position is the list index.
    """
    builders = (
        (ChunkType.MAIN, build_main_chunk, {"productType": product.product_type.value if product.product_type else None,
                                             "category": product.category}),
        (ChunkType.SPECS, build_specs_chunk, {"hasSpecs": True}),
        (ChunkType.DETAILS, build_details_chunk, {"hasWarnings": bool(product.warnings)}),
        (ChunkType.CLAIMS, build_claims_chunk, {"claimsCount": len(product.claims)}),
        (ChunkType.ATTRIBUTES, build_attributes_chunk, {"attributeKeys": list(product.attributes)}),
    )
    passages: List[Passage] = []
    for chunk_type, build, extra in builders:
        content = build(product)
        if not content:
            continue
        passage = Passage(chunk_type=chunk_type, content=content, metadata={"productName": product.name, **extra})
        passages.extend(split_large_passage(passage, max_tokens))
    return passages
