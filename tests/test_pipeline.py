#!/usr/bin/env python3
# CUI // SP-PROPIN
"""Batch pipeline tests: validation, concurrent extraction, comparison wiring."""

import pytest
from conftest import (
    DELL_TEXT, HP_TEXT, LENOVO_TEXT, ScriptedModel, comparison_entry, comparison_json,
    extraction_json,
)

from procurement.rfx.models import UploadedFile
from procurement.rfx.pipeline import (
    BatchInputError, build_pipeline, placeholder_record, validate_batch_request,
)

VENDOR_JSON = {
    "Dell Technologies": extraction_json(),
    "HP Inc.": extraction_json(vendorName="HP Inc.", proposalTitle="Business Laptops",
                               totalPrice="₹13,20,000"),
    "Lenovo Europe": extraction_json(vendorName="Lenovo Europe", proposalTitle="ThinkPad offer",
                                     totalPrice="€12,500"),
}


def _by_vendor(prompt):
    """Extraction script keyed on the document text, safe under concurrency."""
    for vendor, raw in VENDOR_JSON.items():
        if vendor in prompt:
            return raw
    return "no idea"


def _upload(name, text):
    return UploadedFile(name, text.encode("utf-8"), "text/plain")


@pytest.fixture
def uploads():
    return [_upload("dell.txt", DELL_TEXT), _upload("hp.txt", HP_TEXT),
            _upload("lenovo.txt", LENOVO_TEXT)]


class RecordingStore:

    def __init__(self, error=None):
        self.saved = []
        self.error = error

    def save_batch(self, rfp_id, batch):
        self.saved.append((rfp_id, batch))
        if self.error:
            raise self.error
        return {"status": "ok"}


# =========================================================================
# REQUEST VALIDATION
# =========================================================================
class TestValidateBatchRequest:

    def test_valid_request(self, rfx_config, uploads):
        validate_batch_request("RFP-1", uploads, rfx_config)

    @pytest.mark.parametrize("rfp_id", [None, "", "  "])
    def test_missing_rfp_id(self, rfx_config, uploads, rfp_id):
        with pytest.raises(BatchInputError, match="RFP ID"):
            validate_batch_request(rfp_id, uploads, rfx_config)

    def test_no_files(self, rfx_config):
        with pytest.raises(BatchInputError, match="No proposal files"):
            validate_batch_request("RFP-1", [], rfx_config)

    def test_too_many_files(self, rfx_config):
        files = [_upload(f"p{i}.txt", "x") for i in range(11)]
        with pytest.raises(BatchInputError, match="Too many files"):
            validate_batch_request("RFP-1", files, rfx_config)

    def test_oversize_file(self, rfx_config):
        rfx_config["batch"]["max_file_bytes"] = 1024 * 1024
        big = UploadedFile("big.pdf", b"0" * (1024 * 1024 + 1))
        with pytest.raises(BatchInputError, match="exceeds the 1MB limit"):
            validate_batch_request("RFP-1", [big], rfx_config)

    def test_unsupported_extension(self, rfx_config):
        with pytest.raises(BatchInputError, match="Unsupported file type"):
            validate_batch_request("RFP-1", [_upload("virus.exe", "MZ")], rfx_config)

    def test_is_value_error(self):
        assert issubclass(BatchInputError, ValueError)


# =========================================================================
# SUCCESSFUL BATCH
# =========================================================================
class TestRun:

    def test_success_shape(self, make_pipeline, sample_rfp, uploads):
        model = ScriptedModel(
            extraction=_by_vendor,
            comparison=comparison_json(
                [comparison_entry(0, "Dell", 82), comparison_entry(1, "HP", 88),
                 comparison_entry(2, "Lenovo", 70)],
                best=1, reason="Best price within budget"),
        )
        result = make_pipeline(model).run(sample_rfp, uploads, rfp_id="RFP-1")
        body = result.to_dict()

        assert result.ok
        assert body["success"] is True
        assert body["message"] == "Successfully compared 3 proposals"
        assert [p["extracted"]["vendorName"] for p in body["proposals"]] == [
            "Dell Technologies", "HP Inc.", "Lenovo Europe",
        ]
        assert [p["isRecommended"] for p in body["proposals"]] == [False, True, False]
        assert body["bestProposal"]["vendorName"] == "HP Inc."
        assert body["bestProposal"]["fileName"] == "hp.txt"
        assert body["bestProposal"]["price"] == "₹1,320,000"
        assert body["stats"] == {"totalProposals": 3, "successfullyExtracted": 3,
                                 "extractionErrors": 0}
        assert body["rfp"]["id"] == "RFP-1"
        assert len(model.calls_for("proposal_extraction")) == 3
        assert len(model.calls_for("proposal_comparison")) == 1

    def test_input_order_kept(self, make_pipeline, sample_rfp, uploads, rfx_config):
        rfx_config["batch"]["max_workers"] = 3
        model = ScriptedModel(extraction=_by_vendor,
                              comparison=comparison_json([comparison_entry(i) for i in range(3)]))
        result = make_pipeline(model).run(sample_rfp, list(reversed(uploads)))
        assert [p.source_file_name for p in result.proposals] == ["lenovo.txt", "hp.txt", "dell.txt"]
        assert [p.source_file_index for p in result.proposals] == [0, 1, 2]

    def test_garbage_extraction_still_compared(self, make_pipeline, sample_rfp, uploads):
        def script(prompt):
            return "sorry, cannot parse" if "HP Inc." in prompt else _by_vendor(prompt)

        model = ScriptedModel(
            extraction=script,
            comparison=comparison_json([comparison_entry(0, "Dell", 90),
                                        comparison_entry(2, "Lenovo", 75)]),
        )
        result = make_pipeline(model).run(sample_rfp, uploads)
        body = result.to_dict()

        assert result.ok
        assert len(result.outcome.results) == 3
        assert result.proposals[1].extraction_status == "heuristic"
        assert result.proposals[1].vendor_name == "HP Inc."
        middle = body["proposals"][1]["comparison"]
        assert middle["compatibilityScore"] == 50
        assert middle["priceAnalysis"] == "Not analyzed"
        assert body["extractionErrors"][0]["fileName"] == "hp.txt"
        assert body["comparison"]["degraded"] is True

    def test_failed_file_gets_placeholder_row(self, make_pipeline, sample_rfp, uploads):
        files = uploads[:2] + [UploadedFile("blank.pdf", b"", "application/pdf")]
        model = ScriptedModel(extraction=_by_vendor,
                              comparison=comparison_json([comparison_entry(i) for i in range(3)]))
        result = make_pipeline(model).run(sample_rfp, files)
        assert result.ok
        assert result.proposals[2].extraction_status == "failed"
        assert result.to_dict()["stats"]["successfullyExtracted"] == 2
        assert len(model.calls_for("proposal_extraction")) == 2

    def test_extractor_crash_becomes_placeholder(self, make_pipeline, sample_rfp, uploads):
        model = ScriptedModel(extraction=_by_vendor,
                              comparison=comparison_json([comparison_entry(i) for i in range(3)]))
        pipeline = make_pipeline(model)
        real_extract = pipeline.extractor.extract

        def flaky(data, name, mime="", index=0):
            if name == "hp.txt":
                raise RuntimeError("decoder crashed")
            return real_extract(data, name, mime, index)

        pipeline.extractor.extract = flaky
        result = pipeline.run(sample_rfp, uploads)
        assert result.ok
        assert result.proposals[1].vendor_name == "Extraction Failed"
        assert result.proposals[1].summary == "Failed to extract data from hp.txt"
        assert result.extraction_errors == [
            {"fileName": "hp.txt", "fileIndex": 1, "error": "decoder crashed"},
        ]

    def test_comparison_model_down_uses_default(self, make_pipeline, sample_rfp, uploads):
        model = ScriptedModel(extraction=_by_vendor, comparison=TimeoutError("slow"))
        result = make_pipeline(model).run(sample_rfp, uploads)
        assert result.ok
        assert result.outcome.best_proposal_index == 0
        assert result.to_dict()["bestProposal"]["reason"] == "Default selection (first proposal)"


# =========================================================================
# BATCH FAILURES
# =========================================================================
class TestBatchFailures:

    def test_no_usable_files(self, make_pipeline, sample_rfp):
        model = ScriptedModel(extraction=extraction_json(), comparison="{}")
        files = [UploadedFile("a.pdf", b"", "application/pdf"), UploadedFile("b.txt", b"   ")]
        result = make_pipeline(model).run(sample_rfp, files, rfp_id="RFP-1")
        body = result.to_dict()
        assert result.status == "error"
        assert body["success"] is False
        assert body["message"] == "Could not extract data from any proposal files"
        assert len(body["extractionErrors"]) == 2
        assert "proposals" not in body
        assert model.calls == []

    def test_empty_file_list(self, make_pipeline, sample_rfp):
        result = make_pipeline(ScriptedModel()).run(sample_rfp, [])
        assert result.status == "error"
        assert result.message == "No proposal files uploaded"


# =========================================================================
# PERSISTENCE HOOK
# =========================================================================
class TestStoreHook:

    def test_store_receives_result(self, make_pipeline, sample_rfp, uploads):
        store = RecordingStore()
        model = ScriptedModel(extraction=_by_vendor,
                              comparison=comparison_json([comparison_entry(i) for i in range(3)]))
        result = make_pipeline(model, store=store).run(sample_rfp, uploads, rfp_id="RFP-9")
        assert store.saved == [("RFP-9", result)]

    def test_store_skipped_without_rfp_id(self, make_pipeline, sample_rfp, uploads):
        store = RecordingStore()
        model = ScriptedModel(extraction=_by_vendor,
                              comparison=comparison_json([comparison_entry(i) for i in range(3)]))
        make_pipeline(model, store=store).run(sample_rfp, uploads)
        assert store.saved == []

    def test_store_failure_does_not_fail_batch(self, make_pipeline, sample_rfp, uploads):
        store = RecordingStore(error=OSError("disk full"))
        model = ScriptedModel(extraction=_by_vendor,
                              comparison=comparison_json([comparison_entry(i) for i in range(3)]))
        result = make_pipeline(model, store=store).run(sample_rfp, uploads, rfp_id="RFP-9")
        assert result.ok


class TestHelpers:

    def test_placeholder_record(self):
        record = placeholder_record("x.pdf", 3, "boom")
        assert record.vendor_name == "Extraction Failed"
        assert record.usable is False
        assert record.source_file_index == 3

    def test_build_pipeline_shares_model(self, tmp_path):
        pipeline = build_pipeline(config_path=tmp_path / "missing.yaml", router=object())
        assert pipeline.extractor._model is pipeline.engine._model is pipeline.model
        assert pipeline.config["batch"]["max_files"] == 10

    def test_structure_rfp_uses_pipeline_model(self, make_pipeline):
        model = ScriptedModel(rfp='{"title": "Chairs", "items": [{"name": "Chair", "quantity": 5}]}')
        spec = make_pipeline(model).structure_rfp("Need 5 chairs")
        assert spec.title == "Chairs"
        assert spec.items[0].quantity == 5
