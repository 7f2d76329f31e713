#!/usr/bin/env python3
# CUI // SP-PROPIN
"""RFP structurer: free-text procurement need → RFPSpec.

The model is asked for a structured requirement; when it is unreachable or
answers with something unparseable, a regex reading of the text fills in
what it can (quantities, budget, payment terms, delivery, warranty).
"""

import logging
import re

from procurement.rfx.currency import normalize_price
from procurement.rfx.llm_bridge import parse_json_object
from procurement.rfx.models import NOT_SPECIFIED, LineItem, RFPSpec, is_blank
from procurement.rfx.settings import load_rfx_config

logger = logging.getLogger("procurement.rfx.rfp_builder")

SYSTEM_INSTRUCTION = (
    "You are an AI procurement assistant. You turn purchase requests into "
    "structured RFP data and return ONLY valid JSON."
)

_QTY_ITEM = re.compile(
    r"(?<![\d,.$₹€£])\b(\d{1,5})\s+(?:x\s+)?([A-Za-z][A-Za-z0-9\- ]{2,40}?)"
    r"(?=\s+(?:with|of|for|and|each|having)\b|[,.;\n]|$)",
    re.IGNORECASE,
)
_BUDGET = re.compile(r"\bbudget\b[^\n\d$₹€£]{0,20}?([^\n,;]*\d[\d,.]*[^\n,;]{0,10})", re.IGNORECASE)
_PAYMENT = re.compile(r"\b(net\s*\d{1,3}|\d{1,3}%\s*advance[^,.;\n]*)", re.IGNORECASE)
_DELIVERY = re.compile(
    r"\b(?:deliver(?:y|ed)?|within|by)\b[^\n\d]{0,20}(\d+\s*(?:days?|weeks?|months?))", re.IGNORECASE)
_WARRANTY = re.compile(r"(\d+\s*[- ]?\s*(?:years?|months?))\s*(?:of\s+)?warranty", re.IGNORECASE)
_WARRANTY_AFTER = re.compile(r"warranty\s*(?:of|:)?\s*(\d+\s*(?:years?|months?))", re.IGNORECASE)
_SKIP_WORDS = {
    "days", "day", "weeks", "week", "months", "month", "years", "year", "percent",
    "for", "of", "with", "and", "to", "in", "by", "within", "units", "pcs",
}


def build_rfp_prompt(text: str) -> str:
    return f"""Extract structured RFP data from this procurement request:

\"\"\"
{text}
\"\"\"

Return a JSON object with exactly these keys:
{{
  "title": "descriptive title",
  "budget": "budget exactly as written, with its currency symbol, or \\"{NOT_SPECIFIED}\\"",
  "deliveryTimeline": "e.g. '30 days'",
  "paymentTerms": "e.g. 'net 30'",
  "warranty": "e.g. '1 year'",
  "description": "one-sentence description of the need",
  "items": [{{"name": "item", "quantity": 1, "specification": "required specs"}}]
}}

RULES:
1. Use "{NOT_SPECIFIED}" for anything the request does not state.
2. quantity is a whole number of at least 1; use 1 when not stated.
3. Keep currency symbols as written; never convert currencies.
4. Return ONLY the JSON object."""


def _description(text: str) -> str:
    text = " ".join(text.split())
    return f"Procurement request: {text[:100]}{'...' if len(text) > 100 else ''}"


def _search(pattern: re.Pattern, text: str) -> str:
    match = pattern.search(text)
    return match.group(1).strip() if match else NOT_SPECIFIED


def parse_rfp_text(text: str) -> RFPSpec:
    """Regex reading of a procurement request; the model-free path."""
    items = []
    for match in _QTY_ITEM.finditer(text):
        name = match.group(2).strip()
        if name.split()[0].lower() in _SKIP_WORDS:
            continue
        if any(i.name.lower() == name.lower() for i in items):
            continue
        tail = text[match.end():].split("\n", 1)[0]
        spec = re.match(r"\s+(?:with|having)\s+([^,.;]+?)(?=\s+and\s+\d|[,.;]|$)", tail)
        items.append(LineItem(
            name=name,
            quantity=max(1, int(match.group(1))),
            specification=spec.group(1).strip() if spec else NOT_SPECIFIED,
        ))

    budget = NOT_SPECIFIED
    budget_match = _BUDGET.search(text)
    if budget_match:
        price = normalize_price(budget_match.group(1).strip())
        if price.value > 0:
            budget = price.formatted

    warranty = _search(_WARRANTY, text)
    if warranty == NOT_SPECIFIED:
        warranty = _search(_WARRANTY_AFTER, text)

    first_line = next((line.strip() for line in text.splitlines() if line.strip()), "")
    if items:
        title = "Procurement of " + ", ".join(i.name for i in items[:3])
    else:
        title = first_line[:80] or "Procurement Request"

    return RFPSpec(
        title=title,
        budget=budget,
        delivery_timeline=_search(_DELIVERY, text),
        payment_terms=_search(_PAYMENT, text),
        warranty=warranty,
        items=tuple(items),
        description=_description(text),
    )


def structure_rfp(text: str, model, config=None) -> RFPSpec:
    """Structure a free-text request with the model, falling back to regex parsing."""
    text = (text or "").strip()
    if not text:
        raise ValueError("RFP text is required")

    cfg = (config or load_rfx_config())["rfp"]
    fallback = parse_rfp_text(text)
    try:
        raw = model.generate(
            SYSTEM_INSTRUCTION, build_rfp_prompt(text),
            temperature=float(cfg["temperature"]), max_tokens=int(cfg["max_tokens"]),
            json_output=True, function="rfp_structuring",
        )
    except Exception as exc:
        logger.warning("RFP structuring model unavailable: %s; regex fallback", exc)
        return fallback

    data = parse_json_object(raw)
    if data is None:
        logger.warning("RFP structuring output unparseable; regex fallback")
        return fallback

    spec = RFPSpec.from_dict(data)
    # Fill gaps the model left from the regex reading
    return RFPSpec(
        title=spec.title if not is_blank(spec.title) else fallback.title,
        budget=spec.budget if not is_blank(spec.budget) else fallback.budget,
        delivery_timeline=spec.delivery_timeline if not is_blank(spec.delivery_timeline)
        else fallback.delivery_timeline,
        payment_terms=spec.payment_terms if not is_blank(spec.payment_terms) else fallback.payment_terms,
        warranty=spec.warranty if not is_blank(spec.warranty) else fallback.warranty,
        items=spec.items or fallback.items,
        description=spec.description if not is_blank(spec.description) else fallback.description,
    )
