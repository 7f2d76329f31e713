#!/usr/bin/env python3
# CUI // SP-PROPIN
"""Value objects for the proposal comparison pipeline.

All records are created once per request by the pipeline and handed to the
storage layer as plain dicts via ``to_dict()`` (camelCase wire shape).
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

NOT_SPECIFIED = "Not specified"
UNKNOWN_VENDOR = "Unknown Vendor"

_BLANK_VALUES = {"", "not specified", "n/a", "na", "none", "null", "unknown", "-"}


def is_blank(value: Any) -> bool:
    """True when a value carries no information (missing, empty, or the sentinel)."""
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip().lower() in _BLANK_VALUES
    if isinstance(value, (list, tuple, dict)):
        return len(value) == 0
    return False


def text_or_sentinel(value: Any) -> str:
    """Coerce a model-supplied field into display text, or the sentinel."""
    if is_blank(value):
        return NOT_SPECIFIED
    if isinstance(value, (list, tuple)):
        parts = [str(v).strip() for v in value if not is_blank(v)]
        return "; ".join(parts) if parts else NOT_SPECIFIED
    if isinstance(value, dict):
        parts = [f"{k}: {v}" for k, v in value.items() if not is_blank(v)]
        return "; ".join(parts) if parts else NOT_SPECIFIED
    return str(value).strip()


@dataclass(frozen=True)
class Price:
    """Canonical normalized price. ``value`` is always finite and >= 0."""
    value: float = 0.0
    currency: str = "UNKNOWN"
    currency_name: str = "Unknown Currency"
    symbol: str = ""
    formatted: str = "0"
    raw: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "value": self.value,
            "currency": self.currency,
            "currencyName": self.currency_name,
            "symbol": self.symbol,
            "formatted": self.formatted,
            "raw": self.raw,
        }


@dataclass(frozen=True)
class LineItem:
    name: str
    quantity: int = 1
    specification: str = NOT_SPECIFIED

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "quantity": self.quantity,
                "specification": self.specification}


@dataclass(frozen=True)
class RFPSpec:
    """Structured procurement requirement. Absent fields hold the sentinel."""
    title: str = NOT_SPECIFIED
    budget: str = NOT_SPECIFIED
    delivery_timeline: str = NOT_SPECIFIED
    payment_terms: str = NOT_SPECIFIED
    warranty: str = NOT_SPECIFIED
    items: tuple = ()
    description: str = NOT_SPECIFIED

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "RFPSpec":
        """Build from a loosely-shaped dict (stored record or model output)."""
        data = data or {}
        items = []
        raw_items = data.get("items") or []
        if isinstance(raw_items, (str, dict)):
            raw_items = [raw_items]
        for raw in raw_items:
            if isinstance(raw, str):
                if not is_blank(raw):
                    items.append(LineItem(name=raw.strip()))
                continue
            if not isinstance(raw, dict):
                continue
            name = raw.get("name") or raw.get("itemName") or raw.get("item")
            if is_blank(name):
                continue
            items.append(LineItem(
                name=str(name).strip(),
                quantity=_coerce_quantity(raw.get("quantity", raw.get("qty"))),
                specification=text_or_sentinel(
                    raw.get("specification", raw.get("specs", raw.get("specifications")))),
            ))
        return cls(
            title=text_or_sentinel(data.get("title")),
            budget=text_or_sentinel(data.get("budget")),
            delivery_timeline=text_or_sentinel(
                data.get("deliveryTimeline", data.get("delivery_timeline"))),
            payment_terms=text_or_sentinel(
                data.get("paymentTerms", data.get("payment_terms"))),
            warranty=text_or_sentinel(data.get("warranty")),
            items=tuple(items),
            description=text_or_sentinel(data.get("description")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "budget": self.budget,
            "deliveryTimeline": self.delivery_timeline,
            "paymentTerms": self.payment_terms,
            "warranty": self.warranty,
            "items": [i.to_dict() for i in self.items],
            "description": self.description,
        }


def _coerce_quantity(value: Any) -> int:
    try:
        qty = int(float(value))
    except (TypeError, ValueError):
        return 1
    return max(1, qty)


@dataclass(frozen=True)
class ExtractedProposal:
    """Structured view of one vendor proposal document."""
    vendor_name: str = UNKNOWN_VENDOR
    proposal_title: str = NOT_SPECIFIED
    total_price: Price = field(default_factory=Price)
    budget: Union[Price, str] = NOT_SPECIFIED
    items: tuple = (NOT_SPECIFIED,)
    specifications: str = NOT_SPECIFIED
    delivery_timeline: str = NOT_SPECIFIED
    warranty: str = NOT_SPECIFIED
    payment_terms: str = NOT_SPECIFIED
    contact_info: str = NOT_SPECIFIED
    rfp_reference: str = NOT_SPECIFIED
    notes: str = NOT_SPECIFIED
    summary: str = NOT_SPECIFIED
    completeness_score: int = 0
    source_file_name: str = ""
    source_file_index: int = 0
    extraction_status: str = "ok"      # ok | heuristic | failed
    extraction_error: Optional[str] = None

    @property
    def usable(self) -> bool:
        return self.extraction_status != "failed"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "vendorName": self.vendor_name,
            "proposalTitle": self.proposal_title,
            "totalPrice": self.total_price.to_dict(),
            "budget": self.budget.to_dict() if isinstance(self.budget, Price) else self.budget,
            "items": list(self.items),
            "specifications": self.specifications,
            "deliveryTimeline": self.delivery_timeline,
            "warranty": self.warranty,
            "paymentTerms": self.payment_terms,
            "contactInfo": self.contact_info,
            "rfpReference": self.rfp_reference,
            "notes": self.notes,
            "summary": self.summary,
            "completenessScore": self.completeness_score,
            "sourceFileName": self.source_file_name,
            "sourceFileIndex": self.source_file_index,
            "extractionStatus": self.extraction_status,
            "extractionError": self.extraction_error,
        }


@dataclass(frozen=True)
class ComparisonResult:
    proposal_index: int
    vendor_name: str
    compatibility_score: int = 50
    price_analysis: str = "Not analyzed"
    spec_match_percentage: int = 50
    delivery_match: str = NOT_SPECIFIED
    strengths: tuple = ()
    weaknesses: tuple = ()
    ai_comments: str = ""
    currency_mismatch: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "proposalIndex": self.proposal_index,
            "vendorName": self.vendor_name,
            "compatibilityScore": self.compatibility_score,
            "priceAnalysis": self.price_analysis,
            "specMatchPercentage": self.spec_match_percentage,
            "deliveryMatch": self.delivery_match,
            "strengths": list(self.strengths),
            "weaknesses": list(self.weaknesses),
            "aiComments": self.ai_comments,
            "currencyMismatch": self.currency_mismatch,
        }


@dataclass(frozen=True)
class ComparisonOutcome:
    """Reconciled ranking: ``len(results) == N`` and best index in [0, N-1]."""
    results: tuple
    best_proposal_index: int
    best_proposal_reason: str
    summary: str
    degraded: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "comparisonResults": [r.to_dict() for r in self.results],
            "bestProposalIndex": self.best_proposal_index,
            "bestProposalReason": self.best_proposal_reason,
            "summary": self.summary,
            "degraded": self.degraded,
        }


@dataclass(frozen=True)
class UploadedFile:
    """One raw upload as handed over by the request boundary."""
    file_name: str
    data: bytes
    mime_type: str = ""

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass
class BatchResult:
    """Outcome of one compare request, success or batch-level failure."""
    status: str
    message: str
    rfp: Optional[RFPSpec] = None
    rfp_id: Optional[str] = None
    proposals: List[ExtractedProposal] = field(default_factory=list)
    outcome: Optional[ComparisonOutcome] = None
    extraction_errors: List[Dict[str, Any]] = field(default_factory=list)
    total_files: int = 0
    timestamp: str = ""

    @property
    def ok(self) -> bool:
        return self.status == "success"

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "status": self.status,
            "success": self.ok,
            "message": self.message,
            "timestamp": self.timestamp,
            "extractionErrors": list(self.extraction_errors),
        }
        if self.rfp is not None:
            result["rfp"] = {
                "id": self.rfp_id,
                "title": self.rfp.title,
                "budget": self.rfp.budget,
                "deliveryTimeline": self.rfp.delivery_timeline,
                "items": len(self.rfp.items),
            }
        if not self.ok or self.outcome is None:
            return result

        best = self.outcome.best_proposal_index
        best_record = self.proposals[best]
        best_result = self.outcome.results[best]
        result["proposals"] = [
            {
                "index": i,
                "extracted": p.to_dict(),
                "comparison": r.to_dict(),
                "isRecommended": i == best,
            }
            for i, (p, r) in enumerate(zip(self.proposals, self.outcome.results))
        ]
        result["comparison"] = self.outcome.to_dict()
        result["bestProposal"] = {
            "index": best,
            "vendorName": best_record.vendor_name,
            "fileName": best_record.source_file_name,
            "compatibilityScore": best_result.compatibility_score,
            "reason": self.outcome.best_proposal_reason,
            "price": best_record.total_price.formatted,
        }
        result["stats"] = {
            "totalProposals": self.total_files,
            "successfullyExtracted": sum(1 for p in self.proposals if p.usable),
            "extractionErrors": len(self.extraction_errors),
        }
        return result
