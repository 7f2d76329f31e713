#!/usr/bin/env python3
# CUI // SP-PROPIN
"""Heuristic field extractor tests."""

from conftest import DELL_TEXT, HP_TEXT, LENOVO_TEXT

from procurement.rfx.heuristics import (
    extract_fallback, extract_items, extract_price, extract_title, extract_vendor,
)


class TestVendor:

    def test_labelled_vendor(self):
        assert extract_vendor(DELL_TEXT) == "Dell Technologies"
        assert extract_vendor(HP_TEXT) == "HP Inc."
        assert extract_vendor(LENOVO_TEXT) == "Lenovo Europe"

    def test_known_brand_without_label(self):
        assert extract_vendor("Quote for 20 Lenovo ThinkPads") == "Lenovo"

    def test_no_vendor(self):
        assert extract_vendor("twenty laptops, delivered soon") is None


class TestTitle:

    def test_labelled_title(self):
        assert extract_title(DELL_TEXT) == "Laptop Supply for Office Upgrade"
        assert extract_title(LENOVO_TEXT) == "ThinkPad offer"

    def test_proposal_for_line(self):
        assert extract_title("Hi\nProposal for network switches\nThanks") == \
            "Proposal for network switches"

    def test_first_substantial_line_truncated(self):
        text = "ok\n" + "A" * 150 + "\nmore"
        assert extract_title(text) == "A" * 100

    def test_no_title(self):
        assert extract_title("short\nlines") is None


class TestItems:

    def test_bullets_and_numbers(self):
        assert extract_items(DELL_TEXT) == [
            "Dell Latitude 5440 laptops x 20", "Docking stations x 20",
        ]
        assert extract_items(HP_TEXT) == [
            "HP EliteBook 840 G10 (20 units)", "USB-C Docks (20 units)",
        ]

    def test_labelled_items_deduplicated(self):
        text = "Item: Monitor 27in\nProduct: Monitor 27in\n• Keyboard set\n- ab\n* ---"
        assert extract_items(text) == ["Monitor 27in", "Keyboard set"]

    def test_no_items(self):
        assert extract_items("Total: Rs.1000") == []


class TestPrice:

    def test_total_line(self):
        price = extract_price(DELL_TEXT)
        assert price.currency == "INR"
        assert price.value == 1450000

    def test_amount_line(self):
        price = extract_price(LENOVO_TEXT)
        assert price.currency == "EUR"
        assert price.formatted == "€12,500"

    def test_no_price(self):
        assert extract_price("Delivery: 2 weeks") is None


class TestFallbackRecord:

    def test_all_fields_present(self):
        result = extract_fallback(DELL_TEXT)
        assert result["vendor_name"] == "Dell Technologies"
        assert result["delivery_timeline"] == "3 weeks from PO"
        assert result["warranty"] == "3 years onsite"
        assert result["payment_terms"] == "Net 30"
        assert result["contact_info"] == "priya@dell.example.com"
        assert result["total_price"].formatted == "₹1,450,000"

    def test_rupee_marker_after_amount(self):
        result = extract_fallback("Vendor: Acme Supplies\nTotal: 14,50,000 Rs.\nDelivery: 2 weeks")
        assert result["total_price"].currency == "INR"
        assert result["total_price"].value == 1450000

    def test_missing_fields_are_none(self):
        result = extract_fallback("")
        assert result["vendor_name"] is None
        assert result["proposal_title"] is None
        assert result["items"] == []
        assert result["total_price"] is None
        assert result["warranty"] is None
