#!/usr/bin/env python3
# CUI // SP-PROPIN
"""Shared test fixtures for the procurement test suite."""

import copy
import json
import os
import sqlite3
import sys
import threading
from pathlib import Path

import pytest

# Add project root to path
BASE_DIR = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(BASE_DIR))


def _patch_db_path(db_path):
    """Patch DB_PATH in all modules that cache it at import time."""
    p = Path(db_path)
    modules_to_patch = [
        "procurement.rfx.result_store",
        "procurement.audit.audit_logger",
        "procurement.db.init_db",
    ]
    for mod_name in modules_to_patch:
        if mod_name in sys.modules:
            mod = sys.modules[mod_name]
            if hasattr(mod, "DB_PATH"):
                mod.DB_PATH = p


# =========================================================================
# SAMPLE DOCUMENTS
# =========================================================================
DELL_TEXT = """Vendor Name: Dell Technologies
Proposal: Laptop Supply for Office Upgrade
Items:
- Dell Latitude 5440 laptops x 20
- Docking stations x 20
Total Price: Rs. 14,50,000
Delivery: 3 weeks from PO
Warranty: 3 years onsite
Payment Terms: Net 30
Contact: priya@dell.example.com
"""

HP_TEXT = """Company: HP Inc.
Quotation: Business Laptops
1. HP EliteBook 840 G10 (20 units)
2. USB-C Docks (20 units)
Total: ₹13,20,000
Delivery: 5 weeks
Warranty: 1 year
"""

LENOVO_TEXT = """Supplier: Lenovo Europe
Subject: ThinkPad offer
- ThinkPad T14 Gen 4 x 20
Amount: €12,500
Delivery: 2 weeks
"""


def extraction_json(**overrides) -> str:
    """A well-formed extraction response, optionally overridden per field."""
    data = {
        "vendorName": "Dell Technologies",
        "proposalTitle": "Laptop Supply for Office Upgrade",
        "totalPrice": "Rs. 14,50,000",
        "budget": "Not specified",
        "items": ["Dell Latitude 5440 laptops x 20", "Docking stations x 20"],
        "specifications": "Intel i7, 16GB RAM, 512GB SSD",
        "deliveryTimeline": "3 weeks from PO",
        "warranty": "3 years onsite",
        "paymentTerms": "Net 30",
        "contactInfo": "priya@dell.example.com",
        "rfpReference": "Not specified",
        "notes": "Not specified",
        "summary": "Dell offers 20 Latitude laptops with docks.",
    }
    data.update(overrides)
    return json.dumps(data, ensure_ascii=False)


def comparison_json(results, best=0, reason="Best overall value", summary="Compared.") -> str:
    return json.dumps({
        "comparisonResults": results,
        "bestProposalIndex": best,
        "bestProposalReason": reason,
        "summary": summary,
    })


def comparison_entry(index, vendor="Vendor", score=80, **overrides) -> dict:
    entry = {
        "proposalIndex": index,
        "vendorName": vendor,
        "compatibilityScore": score,
        "priceAnalysis": "Within budget",
        "specMatchPercentage": score,
        "deliveryMatch": "Meets deadline",
        "strengths": ["Good price", "Fast delivery"],
        "weaknesses": ["Limited support"],
        "aiComments": "Solid match.",
    }
    entry.update(overrides)
    return entry


# =========================================================================
# FAKE MODEL
# =========================================================================
class ScriptedModel:
    """Fake model client returning scripted responses per pipeline function.

    A script is a string (returned every time), an exception (raised), a
    callable taking the user prompt, or a list consumed in order.
    """

    def __init__(self, extraction=None, comparison=None, rfp=None):
        self.scripts = {
            "proposal_extraction": extraction,
            "proposal_comparison": comparison,
            "rfp_structuring": rfp,
        }
        self.calls = []
        self._lock = threading.Lock()

    def calls_for(self, function):
        return [c for c in self.calls if c["function"] == function]

    def generate(self, system_instruction, user_prompt, temperature=0.1,
                 max_tokens=2000, json_output=True, function="proposal_extraction"):
        with self._lock:
            self.calls.append({
                "function": function,
                "system": system_instruction,
                "prompt": user_prompt,
                "temperature": temperature,
                "json_output": json_output,
            })
            script = self.scripts.get(function)
            if isinstance(script, list):
                script = script.pop(0) if script else None
        if script is None:
            raise AssertionError(f"No scripted response for {function}")
        if isinstance(script, BaseException):
            raise script
        if callable(script):
            return script(user_prompt)
        return script


# =========================================================================
# FIXTURES
# =========================================================================
@pytest.fixture
def rfx_config():
    """Built-in RFX defaults, independent of args/rfx_config.yaml."""
    from procurement.rfx.settings import DEFAULTS
    return copy.deepcopy(DEFAULTS)


@pytest.fixture
def sample_rfp():
    from procurement.rfx.models import LineItem, RFPSpec
    return RFPSpec(
        title="Laptop procurement for office upgrade",
        budget="Rs. 15,00,000",
        delivery_timeline="30 days",
        payment_terms="Net 30",
        warranty="1 year",
        items=(LineItem("Laptops", 20, "16GB RAM, 512GB SSD"),
               LineItem("Docking stations", 20)),
        description="Replace 20 office laptops",
    )


@pytest.fixture
def make_pipeline(rfx_config):
    """Factory: pipeline wired to a fake model."""
    from procurement.rfx.comparison_engine import ComparisonEngine
    from procurement.rfx.pipeline import ComparisonPipeline
    from procurement.rfx.proposal_extractor import ProposalExtractor

    def _make(model, store=None, config=None):
        cfg = config or rfx_config
        return ComparisonPipeline(
            ProposalExtractor(model, cfg), ComparisonEngine(model, cfg),
            cfg, store=store, model=model,
        )
    return _make


@pytest.fixture
def tmp_db(tmp_path):
    """Create a temporary procurement database with full schema."""
    db_path = tmp_path / "test_procurement.db"

    from procurement.db.init_db import init_db
    init_db(str(db_path))

    import procurement.audit.audit_logger  # noqa: F401
    import procurement.rfx.result_store  # noqa: F401

    os.environ["PROCUREMENT_DB_PATH"] = str(db_path)
    _patch_db_path(db_path)
    yield db_path
    if "PROCUREMENT_DB_PATH" in os.environ:
        del os.environ["PROCUREMENT_DB_PATH"]


@pytest.fixture
def db_conn(tmp_db):
    """Get a connection to the test database."""
    conn = sqlite3.connect(str(tmp_db))
    conn.row_factory = sqlite3.Row
    yield conn
    conn.close()
