#!/usr/bin/env python3
# CUI // SP-PROPIN
"""Comparison engine: score N extracted proposals against one RFP.

One model call per batch. Whatever the model returns is reconciled into
exactly N results in input order, and the recommended index is clamped into
[0, N-1]. A model that is down or returns nothing parseable yields a neutral
default outcome instead of an error.
"""

import json
import logging
import math
from typing import Any, List, Optional

from procurement.rfx.currency import currency_of
from procurement.rfx.llm_bridge import parse_json_object
from procurement.rfx.models import (
    NOT_SPECIFIED, ComparisonOutcome, ComparisonResult, ExtractedProposal, RFPSpec,
    is_blank, text_or_sentinel,
)
from procurement.rfx.settings import load_rfx_config

logger = logging.getLogger("procurement.rfx.comparison")

SYSTEM_INSTRUCTION = (
    "You are a procurement comparison expert. Analyze proposals against RFP "
    "requirements objectively. Return ONLY valid JSON with comparison results."
)

DEFAULT_BEST_REASON = "Default selection (first proposal)"
MAX_POINTS = 3


def _neutral_result(index: int, proposal: ExtractedProposal,
                    currency_mismatch: bool = False) -> ComparisonResult:
    return ComparisonResult(
        proposal_index=index,
        vendor_name=proposal.vendor_name or f"Vendor {index + 1}",
        compatibility_score=50,
        price_analysis="Not analyzed",
        spec_match_percentage=50,
        delivery_match=NOT_SPECIFIED,
        strengths=("Basic proposal submitted",),
        weaknesses=("Incomplete analysis",),
        ai_comments="AI analysis was not completed for this proposal",
        currency_mismatch=currency_mismatch,
    )


def _as_int(value: Any) -> Optional[int]:
    """Integer view of a model-supplied number, or None (bools and NaN rejected)."""
    if isinstance(value, bool) or value is None:
        return None
    try:
        number = float(str(value).strip().rstrip("%")) if isinstance(value, str) else float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return int(round(number))


def _score(value: Any) -> int:
    number = _as_int(value)
    if number is None:
        return 50
    return max(0, min(100, number))


def _points(value: Any) -> tuple:
    if is_blank(value):
        return ()
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, (list, tuple)):
        return ()
    return tuple(str(v).strip() for v in value if not is_blank(v))[:MAX_POINTS]


def clamp_best_index(value: Any, count: int) -> int:
    """Clamp a model-proposed index into [0, count-1]; missing/NaN → 0."""
    index = _as_int(value)
    if index is None or index < 0:
        return 0
    return min(index, count - 1)


def _clip(value: Any, limit: int) -> str:
    text = text_or_sentinel(value)
    return text if len(text) <= limit else text[:limit] + "..."


class ComparisonEngine:
    """Scores proposals against an RFP through an injected model client."""

    def __init__(self, model, config: Optional[dict] = None):
        self._model = model
        cfg = (config or load_rfx_config())["comparison"]
        self._temperature = float(cfg["temperature"])
        self._max_tokens = int(cfg["max_tokens"])
        self._field_max = int(cfg["field_max_chars"])

    def compare(self, rfp: RFPSpec, proposals: List[ExtractedProposal]) -> ComparisonOutcome:
        if not proposals:
            raise ValueError("compare() requires at least one proposal")

        try:
            raw = self._model.generate(
                SYSTEM_INSTRUCTION, self.build_prompt(rfp, proposals),
                temperature=self._temperature, max_tokens=self._max_tokens,
                json_output=True, function="proposal_comparison",
            )
        except Exception as exc:
            logger.warning("Comparison model unavailable: %s; default outcome", exc)
            return self.default_outcome(rfp, proposals, "AI comparison unavailable. Manual review recommended.")

        data = parse_json_object(raw)
        if data is None:
            logger.warning("Comparison output unparseable; default outcome")
            return self.default_outcome(rfp, proposals,
                                        "AI comparison encountered parsing issues. Manual review recommended.")
        return self.reconcile(data, rfp, proposals)

    # ── prompt ─────────────────────────────────────────────────────────────────

    def _project(self, index: int, proposal: ExtractedProposal) -> dict:
        items = [i for i in proposal.items if not is_blank(i)]
        return {
            "proposalIndex": index,
            "vendorName": proposal.vendor_name,
            "totalPrice": proposal.total_price.formatted if proposal.total_price.value > 0 else NOT_SPECIFIED,
            "items": _clip(", ".join(items), self._field_max),
            "specifications": _clip(proposal.specifications, self._field_max),
            "deliveryTimeline": _clip(proposal.delivery_timeline, self._field_max),
            "warranty": _clip(proposal.warranty, self._field_max),
            "paymentTerms": _clip(proposal.payment_terms, self._field_max),
            "summary": _clip(proposal.summary, self._field_max),
        }

    def build_prompt(self, rfp: RFPSpec, proposals: List[ExtractedProposal]) -> str:
        projected = [self._project(i, p) for i, p in enumerate(proposals)]
        items = ", ".join(f"{i.quantity}x {i.name}" for i in rfp.items) or NOT_SPECIFIED
        return f"""You are a senior procurement expert comparing vendor proposals against RFP requirements.

RFP REQUIREMENTS:
- Title: {rfp.title}
- Budget: {rfp.budget}
- Required Delivery: {rfp.delivery_timeline}
- Payment Terms: {rfp.payment_terms}
- Warranty: {rfp.warranty}
- Items Required: {items}
- Description/Specifications: {rfp.description}

VENDOR PROPOSALS ({len(proposals)}):
{json.dumps(projected, indent=2, ensure_ascii=False)}

Score EACH proposal independently against the RFP requirements (not against each other):
1. compatibilityScore (0-100): how well it matches ALL requirements
2. priceAnalysis: "Within budget", "Over budget by X%", or "Significantly over budget"
3. specMatchPercentage (0-100): how well the specifications match
4. deliveryMatch: "Meets deadline", "Exceeds deadline", "Late by X weeks", or "Not specified"
5. strengths: 2-3 main advantages
6. weaknesses: 2-3 main disadvantages (note missing information here)
7. aiComments: brief professional analysis
Prices are in the currency stated; do not convert currencies.
Then recommend the single best proposal overall.

Return ONLY this JSON structure, with one entry per proposalIndex 0..{len(proposals) - 1}:
{{
  "comparisonResults": [
    {{
      "proposalIndex": 0,
      "vendorName": "Vendor Name",
      "compatibilityScore": 85,
      "priceAnalysis": "Within budget",
      "specMatchPercentage": 90,
      "deliveryMatch": "Meets deadline",
      "strengths": ["..."],
      "weaknesses": ["..."],
      "aiComments": "..."
    }}
  ],
  "bestProposalIndex": 0,
  "bestProposalReason": "why this proposal is the best",
  "summary": "overall comparison summary (2-3 sentences)"
}}"""

    # ── reconciliation ─────────────────────────────────────────────────────────

    def _mismatch(self, rfp: RFPSpec, proposal: ExtractedProposal) -> bool:
        budget_currency = currency_of(rfp.budget)
        if budget_currency is None or proposal.total_price.value <= 0:
            return False
        price_currency = currency_of(proposal.total_price)
        return price_currency is not None and price_currency != budget_currency

    def _validated(self, entry: dict, index: int, rfp: RFPSpec,
                   proposal: ExtractedProposal) -> ComparisonResult:
        vendor = entry.get("vendorName")
        return ComparisonResult(
            proposal_index=index,
            vendor_name=proposal.vendor_name if is_blank(vendor) else str(vendor).strip(),
            compatibility_score=_score(entry.get("compatibilityScore")),
            price_analysis=text_or_sentinel(entry.get("priceAnalysis")),
            spec_match_percentage=_score(entry.get("specMatchPercentage")),
            delivery_match=text_or_sentinel(entry.get("deliveryMatch")),
            strengths=_points(entry.get("strengths")),
            weaknesses=_points(entry.get("weaknesses")),
            ai_comments="" if is_blank(entry.get("aiComments")) else str(entry["aiComments"]).strip(),
            currency_mismatch=self._mismatch(rfp, proposal),
        )

    def reconcile(self, data: dict, rfp: RFPSpec,
                  proposals: List[ExtractedProposal]) -> ComparisonOutcome:
        """Force parsed model output into exactly one result per proposal."""
        count = len(proposals)
        by_index = {}
        entries = data.get("comparisonResults")
        for entry in entries if isinstance(entries, list) else []:
            if not isinstance(entry, dict):
                continue
            index = _as_int(entry.get("proposalIndex"))
            if index is None or not 0 <= index < count:
                logger.warning("Dropping comparison result with index %r", entry.get("proposalIndex"))
                continue
            by_index.setdefault(index, entry)

        results = []
        for index, proposal in enumerate(proposals):
            entry = by_index.get(index)
            if entry is None:
                logger.warning("No comparison result for proposal %d; neutral default", index)
                result = _neutral_result(index, proposal, self._mismatch(rfp, proposal))
            else:
                result = self._validated(entry, index, rfp, proposal)
            results.append(result)

        proposed = data.get("bestProposalIndex")
        best = clamp_best_index(proposed, count)
        if _as_int(proposed) != best:
            logger.warning("Best proposal index %r clamped to %d", proposed, best)

        reason = data.get("bestProposalReason")
        summary = data.get("summary")
        return ComparisonOutcome(
            results=tuple(results),
            best_proposal_index=best,
            best_proposal_reason="Based on overall compliance" if is_blank(reason) else str(reason).strip(),
            summary="AI comparison analysis completed." if is_blank(summary) else str(summary).strip(),
            degraded=len(by_index) < count,
        )

    def default_outcome(self, rfp: RFPSpec, proposals: List[ExtractedProposal],
                        summary: str) -> ComparisonOutcome:
        """Neutral ranking covering every proposal; first proposal recommended."""
        results = [_neutral_result(i, p, self._mismatch(rfp, p)) for i, p in enumerate(proposals)]
        return ComparisonOutcome(
            results=tuple(results),
            best_proposal_index=0,
            best_proposal_reason=DEFAULT_BEST_REASON,
            summary=summary,
            degraded=True,
        )
