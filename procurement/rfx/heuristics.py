#!/usr/bin/env python3
# CUI // SP-PROPIN
"""Heuristic field extractor: regex safety net for proposal documents.

Used only when the model is unreachable, returns unparseable output, or
returns nothing. Quality target is usable defaults, not accuracy. Fields
that cannot be found come back as None (items as []) so the caller can
merge them with model output before applying sentinels.
"""

import re
from typing import Iterable, Optional

from procurement.rfx.currency import normalize_price

DEFAULT_KNOWN_VENDORS = (
    "Dell", "HP", "Lenovo", "Microsoft", "Apple", "IBM", "Cisco", "Oracle",
)

_FLAGS = re.IGNORECASE | re.MULTILINE


def _label_pattern(label: str) -> re.Pattern:
    words = r"\s+".join(re.escape(w) for w in label.split())
    return re.compile(r"^[ \t]*" + words + r"[ \t]*:[ \t]*(.+?)[ \t]*$", _FLAGS)


_VENDOR_PATTERNS = [_label_pattern(l) for l in (
    "vendor name", "vendor", "company name", "company", "from", "supplier",
)]
_TITLE_PATTERNS = [_label_pattern(l) for l in ("proposal", "quotation", "subject", "title")]
_TITLE_FOR = re.compile(r"^[ \t]*((?:proposal|quotation|quote)\s+for\b.+?)[ \t]*$", _FLAGS)

_ITEM_PATTERNS = [
    re.compile(r"^\s*[•\-*]\s*(.+)$"),
    re.compile(r"^\s*\d+[.)]\s+(.+)$"),
    re.compile(r"^\s*(?:item|product)\s*:\s*(.+)$", re.IGNORECASE),
]

_PRICE_PATTERNS = [
    re.compile(r"\b" + label + r"\b[^\n:]{0,40}:[ \t]*[^\n]*?\d[^\n]*", re.IGNORECASE)
    for label in ("total", "price", "cost", "amount")
]

_FIELD_LABELS = {
    "delivery_timeline": ("delivery timeline", "delivery", "timeline", "lead time"),
    "payment_terms": ("payment terms", "payment"),
    "warranty": ("warranty", "guarantee"),
    "specifications": ("specifications", "specs", "features"),
    "rfp_reference": ("rfp reference", "rfp ref", "rfp no", "rfp id", "reference", "ref"),
    "contact_info": ("contact person", "contact", "email", "phone"),
    "budget": ("budget allocation", "budget"),
}
_FIELD_PATTERNS = {
    field: [_label_pattern(l) for l in labels] for field, labels in _FIELD_LABELS.items()
}


def _first_match(text: str, patterns) -> Optional[str]:
    for pattern in patterns:
        match = pattern.search(text)
        if match and match.group(1).strip():
            return match.group(1).strip()
    return None


def extract_vendor(text: str, known_vendors: Iterable[str] = DEFAULT_KNOWN_VENDORS) -> Optional[str]:
    """Labelled vendor line, else a known brand appearing verbatim, else None."""
    vendor = _first_match(text, _VENDOR_PATTERNS)
    if vendor:
        return vendor
    for brand in known_vendors:
        if re.search(r"\b" + re.escape(brand) + r"\b", text):
            return brand
    return None


def extract_title(text: str) -> Optional[str]:
    """Labelled title, a "Proposal for ..." line, or the first substantial line."""
    title = _first_match(text, _TITLE_PATTERNS) or _first_match(text, [_TITLE_FOR])
    if title:
        return title[:100]
    for line in text.splitlines():
        if len(line.strip()) > 10:
            return line.strip()[:100]
    return None


def extract_items(text: str) -> list:
    """Bulleted, numbered, or Item:/Product: lines; trimmed and de-duplicated."""
    items = []
    for line in text.splitlines():
        for pattern in _ITEM_PATTERNS:
            match = pattern.match(line)
            if not match:
                continue
            item = match.group(1).strip()
            if len(item) > 3 and any(c.isalnum() for c in item) and item not in items:
                items.append(item)
            break
    return items


def extract_price(text: str):
    """Price from the first Total:/Price:/Cost:/Amount: line, or None."""
    for pattern in _PRICE_PATTERNS:
        match = pattern.search(text)
        if match:
            price = normalize_price(match.group(0).strip())
            if price.value > 0:
                return price
    return None


def extract_fallback(text: str, known_vendors: Optional[Iterable[str]] = None) -> dict:
    """Best-effort partial proposal record straight from the document text."""
    text = text or ""
    result = {
        "vendor_name": extract_vendor(text, known_vendors or DEFAULT_KNOWN_VENDORS),
        "proposal_title": extract_title(text),
        "items": extract_items(text),
        "total_price": extract_price(text),
    }
    for field, patterns in _FIELD_PATTERNS.items():
        result[field] = _first_match(text, patterns)
    return result
