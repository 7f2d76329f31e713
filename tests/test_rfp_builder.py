#!/usr/bin/env python3
# CUI // SP-PROPIN
"""RFP structuring tests: model path, regex fallback, record coercion."""

import json

import pytest
from conftest import ScriptedModel

from procurement.rfx.models import NOT_SPECIFIED, RFPSpec
from procurement.rfx.rfp_builder import build_rfp_prompt, parse_rfp_text, structure_rfp

REQUEST = ("I need 20 laptops with 16GB RAM and 15 monitors. Budget is $50,000. "
           "Delivery within 30 days. Payment terms net 30, 1 year warranty.")


class TestParseRfpText:

    def test_full_request(self):
        spec = parse_rfp_text(REQUEST)
        assert [(i.name, i.quantity) for i in spec.items] == [("laptops", 20), ("monitors", 15)]
        assert spec.items[0].specification == "16GB RAM"
        assert spec.items[1].specification == NOT_SPECIFIED
        assert spec.budget == "$50,000"
        assert spec.delivery_timeline == "30 days"
        assert spec.payment_terms == "net 30"
        assert spec.warranty == "1 year"
        assert spec.title == "Procurement of laptops, monitors"
        assert spec.description.startswith("Procurement request: I need 20 laptops")

    def test_rupee_budget(self):
        spec = parse_rfp_text("Need 10 chairs, budget Rs. 2,00,000")
        assert spec.budget == "₹200,000"

    def test_advance_payment_and_warranty_after(self):
        spec = parse_rfp_text("5 printers. 50% advance on order. Warranty: 2 years")
        assert spec.payment_terms.startswith("50% advance")
        assert spec.warranty == "2 years"

    def test_nothing_recognisable(self):
        spec = parse_rfp_text("Looking for a catering partner")
        assert spec.items == ()
        assert spec.title == "Looking for a catering partner"
        assert spec.budget == NOT_SPECIFIED
        assert spec.delivery_timeline == NOT_SPECIFIED

    def test_long_description_truncated(self):
        spec = parse_rfp_text("word " * 100)
        assert spec.description.endswith("...")


class TestStructureRfp:

    def test_model_output_used(self, rfx_config):
        raw = json.dumps({
            "title": "Office laptop refresh",
            "budget": "$50,000",
            "deliveryTimeline": "30 days",
            "paymentTerms": "Net 30",
            "warranty": "1 year",
            "description": "Laptops and monitors for staff",
            "items": [{"name": "Laptop", "quantity": 20, "specification": "16GB RAM"},
                      {"name": "Monitor", "quantity": "15"}],
        })
        model = ScriptedModel(rfp=raw)
        spec = structure_rfp(REQUEST, model, rfx_config)
        assert spec.title == "Office laptop refresh"
        assert [(i.name, i.quantity) for i in spec.items] == [("Laptop", 20), ("Monitor", 15)]
        assert model.calls[0]["function"] == "rfp_structuring"
        assert REQUEST in model.calls[0]["prompt"]

    def test_gaps_filled_from_text(self, rfx_config):
        raw = json.dumps({"title": "Laptops", "budget": "Not specified", "items": []})
        spec = structure_rfp(REQUEST, ScriptedModel(rfp=raw), rfx_config)
        assert spec.title == "Laptops"
        assert spec.budget == "$50,000"
        assert spec.warranty == "1 year"
        assert len(spec.items) == 2

    @pytest.mark.parametrize("script", ["I'd be glad to help!", RuntimeError("model down")])
    def test_regex_fallback(self, rfx_config, script):
        spec = structure_rfp(REQUEST, ScriptedModel(rfp=script), rfx_config)
        assert spec == parse_rfp_text(REQUEST)

    @pytest.mark.parametrize("text", ["", "   ", None])
    def test_empty_text_rejected(self, rfx_config, text):
        with pytest.raises(ValueError):
            structure_rfp(text, ScriptedModel(), rfx_config)

    def test_prompt_rules(self):
        prompt = build_rfp_prompt("need chairs")
        assert "never convert currencies" in prompt
        assert '"Not specified"' in prompt


class TestRfpSpecFromDict:

    def test_quantity_coerced(self):
        spec = RFPSpec.from_dict({"items": [
            {"name": "A", "quantity": 0}, {"name": "B", "quantity": "abc"},
            {"name": "C", "qty": 3.7}, {"quantity": 5}, "Loose item", 42,
        ]})
        assert [(i.name, i.quantity) for i in spec.items] == [
            ("A", 1), ("B", 1), ("C", 3), ("Loose item", 1),
        ]

    def test_absent_fields_are_sentinel(self):
        spec = RFPSpec.from_dict(None)
        assert spec.title == NOT_SPECIFIED
        assert spec.items == ()
        assert spec.to_dict()["deliveryTimeline"] == NOT_SPECIFIED
