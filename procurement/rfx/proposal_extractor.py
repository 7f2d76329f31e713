#!/usr/bin/env python3
# CUI // SP-PROPIN
"""Proposal extractor: one vendor document → validated ExtractedProposal.

Per document: Loaded → TextExtracted → ModelQueried → Parsed → Normalized,
with Failed reachable from any step. extract() never raises; quality
degrades instead:

  1. strict JSON from the model
  2. first balanced {...} in the model output (see llm_bridge)
  3. heuristic regex extraction over the original document text
  4. fully defaulted record (extractionStatus "failed", completeness 0)

The model is called once per document; retries are configured on the
injected model client by the pipeline.
"""

import logging
from typing import Any, Optional

from procurement.rfx.currency import currencies_in, normalize_price, reconcile_currency, zero_price
from procurement.rfx.document_loader import load_text, meaningful_chars
from procurement.rfx.heuristics import extract_fallback
from procurement.rfx.llm_bridge import parse_json_object
from procurement.rfx.models import (
    NOT_SPECIFIED, UNKNOWN_VENDOR, ExtractedProposal, Price, is_blank, text_or_sentinel,
)
from procurement.rfx.settings import load_rfx_config

logger = logging.getLogger("procurement.rfx.extractor")

SYSTEM_INSTRUCTION = (
    "You are a procurement data extraction expert. You extract structured data "
    "from vendor proposals and return ONLY valid JSON objects. Never add "
    "explanations, markdown, or code blocks."
)

# Fields scored by completenessScore
REQUIRED_FIELDS = ("proposal_title", "items", "total_price", "delivery_timeline")

# record field -> keys the model may use for it
_FIELD_KEYS = {
    "vendor_name": ("vendorName", "vendor_name", "vendor", "company"),
    "proposal_title": ("proposalTitle", "title", "proposal_title", "subject"),
    "total_price": ("totalPrice", "total_price", "price", "total"),
    "budget": ("budget",),
    "items": ("items", "products", "lineItems"),
    "specifications": ("specifications", "specs"),
    "delivery_timeline": ("deliveryTimeline", "delivery_timeline", "delivery"),
    "warranty": ("warranty",),
    "payment_terms": ("paymentTerms", "payment_terms"),
    "contact_info": ("contactInfo", "contact_info", "contact"),
    "rfp_reference": ("rfpReference", "rfp_reference"),
    "notes": ("notes",),
    "summary": ("summary",),
}
_TEXT_FIELDS = ("specifications", "delivery_timeline", "warranty", "payment_terms",
                "contact_info", "rfp_reference", "notes")

_CURRENCY_HINTS = (
    ("INR", 'The document states prices in Indian Rupees ("Rs." or "₹"). '
            'Keep "Rs."/"₹" exactly; never write "$".'),
    ("EUR", 'The document states prices in Euros ("€"). Keep "€"; never write "$".'),
    ("GBP", 'The document states prices in Pounds ("£"). Keep "£"; never write "$".'),
)


def _pick(data: dict, field: str) -> Any:
    for key in _FIELD_KEYS[field]:
        value = data.get(key)
        if not is_blank(value):
            return value
    return None


def _currency_hint(text: str) -> str:
    stated = currencies_in(text)
    for code, hint in _CURRENCY_HINTS:
        if code in stated:
            return hint
    return ""


def build_extraction_prompt(text: str) -> str:
    """User prompt enumerating every target field with strict output rules."""
    hint = _currency_hint(text)
    return f"""Parse the following vendor proposal and extract the requested information.

PROPOSAL TEXT:
\"\"\"
{text}
\"\"\"

Return a JSON object with exactly these keys:
{{
  "vendorName": "company or vendor name",
  "proposalTitle": "proposal title or subject",
  "totalPrice": "total price exactly as written, with its original currency symbol",
  "budget": "budget mentioned, with its original currency symbol",
  "items": ["each item, product, or service offered"],
  "specifications": "technical specifications or features",
  "deliveryTimeline": "delivery date, timeline, or schedule",
  "warranty": "warranty period or terms",
  "paymentTerms": "payment terms (e.g. Net 30, 50% advance)",
  "contactInfo": "contact person, email, phone",
  "rfpReference": "RFP reference or ID",
  "notes": "any other relevant notes",
  "summary": "2-3 line summary based only on the document"
}}

RULES:
1. Extract only what the text states; never invent information.
2. If a field is absent, use the exact string "{NOT_SPECIFIED}".
3. PRESERVE ORIGINAL CURRENCY SYMBOLS. Do not convert currencies.
   "Total: Rs.1000" → "totalPrice": "Rs.1000"; "Cost: €850" → "totalPrice": "€850".
   Do not add a currency symbol the text does not contain.
4. "items" is always an array, even for a single item.
5. Return ONLY the JSON object, no prose, no markdown.
{hint}"""


def _coerce_items(value: Any) -> list:
    if is_blank(value):
        return []
    if isinstance(value, (str, int, float)):
        value = [value]
    if isinstance(value, dict):
        value = [value]
    items = []
    for raw in value if isinstance(value, (list, tuple)) else []:
        if isinstance(raw, dict):
            name = raw.get("name") or raw.get("itemName") or raw.get("item") or raw.get("description")
            if is_blank(name):
                continue
            qty = raw.get("quantity") or raw.get("qty")
            item = f"{qty} x {str(name).strip()}" if not is_blank(qty) else str(name).strip()
        elif is_blank(raw):
            continue
        else:
            item = str(raw).strip()
        if item and item not in items:
            items.append(item)
    return items


def _is_filled(value: Any) -> bool:
    if isinstance(value, Price):
        return value.value > 0
    if isinstance(value, (list, tuple)):
        return bool(value) and not all(is_blank(v) for v in value)
    return not is_blank(value)


def completeness_score(fields: dict) -> int:
    """round(100 * filled / required) over REQUIRED_FIELDS."""
    filled = sum(1 for name in REQUIRED_FIELDS if _is_filled(fields.get(name)))
    return round(100 * filled / len(REQUIRED_FIELDS))


class ProposalExtractor:
    """Turns proposal documents into ExtractedProposal records via an injected model."""

    def __init__(self, model, config: Optional[dict] = None):
        self._model = model
        cfg = (config or load_rfx_config())["extraction"]
        self._max_chars = int(cfg["max_text_chars"])
        self._min_chars = int(cfg["min_text_chars"])
        self._summary_max = int(cfg["summary_max_chars"])
        self._temperature = float(cfg["temperature"])
        self._max_tokens = int(cfg["max_tokens"])
        self._known_vendors = tuple(cfg.get("known_vendors") or ())

    # ── public API ─────────────────────────────────────────────────────────────

    def extract(self, file_bytes: bytes, file_name: str, mime_type: str = "",
                file_index: int = 0) -> ExtractedProposal:
        """Extract one uploaded document. Never raises."""
        try:
            loaded = load_text(file_bytes, mime_type, file_name)
        except Exception as exc:
            logger.error("Text extraction crashed for %s: %s", file_name, exc, exc_info=True)
            return self.failed_record(file_name, file_index, f"Could not extract text from file: {exc}")
        return self._extract_from_text(loaded.text, file_name, file_index, loaded.error)

    def extract_text_record(self, text: str, file_name: str = "",
                            file_index: int = 0) -> ExtractedProposal:
        """Extract from already-decoded text (e.g. an email body). Never raises."""
        return self._extract_from_text(text, file_name, file_index, None)

    def failed_record(self, file_name: str, file_index: int, reason: str) -> ExtractedProposal:
        """Floor of the degradation ladder: all defaults, completeness 0."""
        label = file_name or "proposal"
        return ExtractedProposal(
            vendor_name=UNKNOWN_VENDOR,
            proposal_title=file_name or "Proposal File",
            total_price=zero_price(),
            budget=NOT_SPECIFIED,
            items=(NOT_SPECIFIED,),
            notes=reason,
            summary=f"Extraction failed for {label}: {reason}"[:self._summary_max],
            completeness_score=0,
            source_file_name=file_name,
            source_file_index=file_index,
            extraction_status="failed",
            extraction_error=reason,
        )

    # ── pipeline steps ─────────────────────────────────────────────────────────

    def _extract_from_text(self, text: str, file_name: str, file_index: int,
                           decode_error: Optional[str]) -> ExtractedProposal:
        text = (text or "")[:self._max_chars]
        if meaningful_chars(text) < self._min_chars:
            reason = "Could not extract text from file"
            reason += f" ({decode_error})" if decode_error else " (empty or unreadable)"
            logger.warning("%s: %s; skipping model call", file_name, reason)
            return self.failed_record(file_name, file_index, reason)

        try:
            return self._query_and_normalize(text, file_name, file_index, decode_error)
        except Exception as exc:
            logger.error("Extraction failed for %s: %s", file_name, exc, exc_info=True)
            return self.failed_record(file_name, file_index, f"Extraction error: {exc}")

    def _query_and_normalize(self, text: str, file_name: str, file_index: int,
                             decode_error: Optional[str]) -> ExtractedProposal:
        try:
            raw = self._model.generate(
                SYSTEM_INSTRUCTION, build_extraction_prompt(text),
                temperature=self._temperature, max_tokens=self._max_tokens,
                json_output=True, function="proposal_extraction",
            )
        except Exception as exc:
            logger.warning("Model unavailable for %s: %s; heuristic fallback", file_name, exc)
            return self._normalize({}, text, file_name, file_index, "heuristic",
                                   f"Model unavailable: {exc}")

        data = parse_json_object(raw)
        if data is None:
            logger.warning("Unparseable model output for %s; heuristic fallback", file_name)
            return self._normalize({}, text, file_name, file_index, "heuristic",
                                   "Model output was not valid JSON; used heuristic extraction")

        return self._normalize(data, text, file_name, file_index, "ok", decode_error)

    def _normalize(self, data: dict, text: str, file_name: str, file_index: int,
                   status: str, error: Optional[str]) -> ExtractedProposal:
        """Validate model output field by field, filling gaps from heuristics."""
        fallback = extract_fallback(text, self._known_vendors)

        vendor = _pick(data, "vendor_name") or fallback["vendor_name"] or UNKNOWN_VENDOR
        title_found = _pick(data, "proposal_title") or fallback["proposal_title"]

        raw_price = _pick(data, "total_price")
        if raw_price is not None:
            total_price = reconcile_currency(normalize_price(raw_price), text)
        else:
            total_price = fallback["total_price"] or zero_price()

        raw_budget = _pick(data, "budget") or fallback["budget"]
        budget = NOT_SPECIFIED if is_blank(raw_budget) else reconcile_currency(
            normalize_price(raw_budget), text)

        items = _coerce_items(_pick(data, "items")) or fallback["items"]

        fields = {name: text_or_sentinel(_pick(data, name) or fallback.get(name))
                  for name in _TEXT_FIELDS}
        if status == "heuristic" and is_blank(data.get("notes")):
            fields["notes"] = f"Heuristic extraction: {error}"

        vendor = text_or_sentinel(vendor)
        title = text_or_sentinel(title_found) if title_found else (file_name or "Vendor Proposal")

        score = completeness_score({
            "proposal_title": title_found,
            "items": items,
            "total_price": total_price,
            "delivery_timeline": fields["delivery_timeline"],
        })

        summary = _pick(data, "summary")
        if summary is None:
            short_title = title if len(title) <= 50 else title[:50] + "..."
            summary = f"Proposal from {vendor} for {short_title}"

        return ExtractedProposal(
            vendor_name=vendor,
            proposal_title=title,
            total_price=total_price,
            budget=budget,
            items=tuple(items) if items else (NOT_SPECIFIED,),
            summary=str(summary).strip()[:self._summary_max],
            completeness_score=score,
            source_file_name=file_name,
            source_file_index=file_index,
            extraction_status=status,
            extraction_error=error,
            **fields,
        )
