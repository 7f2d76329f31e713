#!/usr/bin/env python3
# CUI // SP-PROPIN
"""Pipeline orchestrator: one RFP + N uploads → BatchResult.

Extraction runs per file on a thread pool (model calls dominate latency);
comparison waits for every extraction and runs once over the whole batch.
A file that fails still yields a placeholder record so indices stay aligned
with the comparison results. Only a batch with no usable record at all is
reported as a failure.

Usage:
    pipeline = build_pipeline()
    result = pipeline.run(rfp, [UploadedFile("a.pdf", data, "application/pdf")])
    result.to_dict()
"""

import concurrent.futures
import logging
from datetime import datetime, timezone
from pathlib import PurePath
from typing import List, Optional

from procurement.rfx.comparison_engine import ComparisonEngine
from procurement.rfx.currency import zero_price
from procurement.rfx.llm_bridge import LLMBridge
from procurement.rfx.models import (
    NOT_SPECIFIED, BatchResult, ExtractedProposal, RFPSpec, UploadedFile,
)
from procurement.rfx.proposal_extractor import ProposalExtractor
from procurement.rfx.rfp_builder import structure_rfp
from procurement.rfx.settings import load_rfx_config

logger = logging.getLogger("procurement.rfx.pipeline")


class BatchInputError(ValueError):
    """Request rejected at the boundary before reaching the pipeline."""


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def validate_upload(upload: UploadedFile, config: Optional[dict] = None) -> None:
    """Reject one oversize or unsupported file. Raises BatchInputError."""
    cfg = (config or load_rfx_config())["batch"]
    if upload.size > int(cfg["max_file_bytes"]):
        raise BatchInputError(
            f"{upload.file_name} exceeds the {int(cfg['max_file_bytes']) // (1024 * 1024)}MB limit")
    allowed = {ext.lower() for ext in cfg.get("allowed_extensions") or ()}
    suffix = PurePath(upload.file_name or "").suffix.lower()
    if allowed and suffix not in allowed:
        raise BatchInputError(f"Unsupported file type: {upload.file_name}")


def validate_batch_request(rfp_id, files: List[UploadedFile], config: Optional[dict] = None) -> None:
    """Reject bad batch requests up front. Raises BatchInputError."""
    config = config or load_rfx_config()
    cfg = config["batch"]
    if rfp_id is None or not str(rfp_id).strip():
        raise BatchInputError("RFP ID is required")
    if not files:
        raise BatchInputError("No proposal files uploaded")
    if len(files) > int(cfg["max_files"]):
        raise BatchInputError(
            f"Too many files: {len(files)} uploaded, maximum is {cfg['max_files']}")
    for upload in files:
        validate_upload(upload, config)


def placeholder_record(file_name: str, file_index: int, reason: str) -> ExtractedProposal:
    """Stand-in for a file whose extraction raised past the extractor."""
    return ExtractedProposal(
        vendor_name="Extraction Failed",
        proposal_title=file_name or "Proposal File",
        total_price=zero_price(),
        items=(NOT_SPECIFIED,),
        notes=reason,
        summary=f"Failed to extract data from {file_name or 'file'}",
        completeness_score=0,
        source_file_name=file_name,
        source_file_index=file_index,
        extraction_status="failed",
        extraction_error=reason,
    )


class ComparisonPipeline:
    """Composes the extractor and the comparison engine over one batch."""

    def __init__(self, extractor: ProposalExtractor, engine: ComparisonEngine,
                 config: Optional[dict] = None, store=None, model=None):
        self.extractor = extractor
        self.engine = engine
        self.config = config or load_rfx_config()
        self.store = store
        self.model = model

    def structure_rfp(self, text: str) -> RFPSpec:
        """Structure a free-text request with the pipeline's model client."""
        return structure_rfp(text, self.model, self.config)

    def _extract_one(self, index: int, upload: UploadedFile) -> ExtractedProposal:
        logger.info("Processing proposal %d: %s (%d bytes)", index + 1, upload.file_name, upload.size)
        record = self.extractor.extract(upload.data, upload.file_name, upload.mime_type, index)
        logger.info("Extracted %s: vendor=%s status=%s completeness=%s",
                    upload.file_name, record.vendor_name, record.extraction_status,
                    record.completeness_score)
        return record

    def extract_all(self, files: List[UploadedFile]) -> tuple:
        """Extract every file concurrently. Returns (records in input order, errors)."""
        workers = max(1, min(int(self.config["batch"]["max_workers"]), len(files)))
        records: List[Optional[ExtractedProposal]] = [None] * len(files)
        errors = []

        with concurrent.futures.ThreadPoolExecutor(max_workers=workers) as executor:
            futures = {
                executor.submit(self._extract_one, index, upload): index
                for index, upload in enumerate(files)
            }
            for future in concurrent.futures.as_completed(futures):
                index = futures[future]
                try:
                    records[index] = future.result()
                except Exception as exc:
                    name = files[index].file_name
                    logger.error("Extraction raised for %s: %s", name, exc, exc_info=True)
                    records[index] = placeholder_record(name, index, str(exc))

        for index, record in enumerate(records):
            if record.extraction_error:
                errors.append({
                    "fileName": record.source_file_name,
                    "fileIndex": index,
                    "error": record.extraction_error,
                })
        return records, errors

    def run(self, rfp: RFPSpec, files: List[UploadedFile], rfp_id=None) -> BatchResult:
        total = len(files)
        if not files:
            return BatchResult(status="error", message="No proposal files uploaded",
                               rfp=rfp, rfp_id=rfp_id, timestamp=_now())

        logger.info("Comparing %d proposals for RFP %s (%s)", total, rfp_id, rfp.title)
        records, errors = self.extract_all(files)

        usable = sum(1 for r in records if r.usable)
        if usable == 0:
            logger.error("No proposal in batch for RFP %s could be extracted", rfp_id)
            return BatchResult(
                status="error",
                message="Could not extract data from any proposal files",
                rfp=rfp, rfp_id=rfp_id, proposals=records,
                extraction_errors=errors, total_files=total, timestamp=_now(),
            )

        outcome = self.engine.compare(rfp, records)
        best = records[outcome.best_proposal_index]
        logger.info("Best proposal for RFP %s: %s (score %s, price %s)",
                    rfp_id, best.vendor_name,
                    outcome.results[outcome.best_proposal_index].compatibility_score,
                    best.total_price.formatted)

        result = BatchResult(
            status="success",
            message=f"Successfully compared {total} proposals",
            rfp=rfp, rfp_id=rfp_id, proposals=records, outcome=outcome,
            extraction_errors=errors, total_files=total, timestamp=_now(),
        )

        if self.store is not None and rfp_id is not None:
            try:
                self.store.save_batch(rfp_id, result)
            except Exception as exc:
                logger.error("Failed to persist comparison for RFP %s: %s", rfp_id, exc, exc_info=True)
        return result


def build_pipeline(config_path=None, store=None, router=None) -> ComparisonPipeline:
    """Composition root: one LLM bridge shared by extractor and engine."""
    config = load_rfx_config(config_path)
    llm = config["llm"]
    model = LLMBridge(router=router, timeout=llm.get("timeout_seconds"),
                      max_retries=llm.get("model_retries", 0))
    return ComparisonPipeline(
        ProposalExtractor(model, config),
        ComparisonEngine(model, config),
        config,
        store=store,
        model=model,
    )
