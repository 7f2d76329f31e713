#!/usr/bin/env python3
# CUI // SP-PROPIN
"""Result store: SQLite persistence for RFPs and comparison batches.

The pipeline hands over immutable records; this module stores one row per
proposal (extracted record JSON + comparison result JSON) keyed by RFP id
and file index, plus one comparison_runs row per batch. The module itself
is passed to ComparisonPipeline as its ``store``.
"""

import json
import logging
import os
import sqlite3
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from procurement.audit.audit_logger import log_event
from procurement.rfx.models import BatchResult, RFPSpec

logger = logging.getLogger("procurement.rfx.result_store")

BASE_DIR = Path(__file__).resolve().parent.parent.parent
DB_PATH = Path(os.environ.get(
    "PROCUREMENT_DB_PATH", str(BASE_DIR / "data" / "procurement.db")
))


def _conn():
    c = sqlite3.connect(str(DB_PATH))
    c.row_factory = sqlite3.Row
    c.execute("PRAGMA journal_mode=WAL")
    c.execute("PRAGMA foreign_keys=ON")
    return c


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


# ── RFPs ───────────────────────────────────────────────────────────────────────

def save_rfp(spec: RFPSpec, original_text: str = "", rfp_id: Optional[str] = None) -> dict:
    """Insert a structured RFP. Returns {status, rfp_id}."""
    rfp_id = rfp_id or f"RFP-{uuid.uuid4().hex[:8]}"
    now = _now()
    conn = _conn()
    try:
        conn.execute(
            """INSERT INTO rfps
               (id, title, budget, delivery_timeline, payment_terms, warranty,
                description, items, original_text, status, created_at, updated_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, 'draft', ?, ?)""",
            (rfp_id, spec.title, spec.budget, spec.delivery_timeline, spec.payment_terms,
             spec.warranty, spec.description, json.dumps([i.to_dict() for i in spec.items]),
             original_text, now, now),
        )
        conn.commit()
    finally:
        conn.close()

    log_event("rfp.created", "result_store", f"Created RFP: {spec.title[:80]}",
              rfp_id=rfp_id, metadata={"items": len(spec.items)}, db_path=DB_PATH)
    return {"status": "ok", "rfp_id": rfp_id}


def get_rfp(rfp_id: str) -> Optional[dict]:
    """Stored RFP row as a dict with ``spec`` (RFPSpec), or None if unknown."""
    conn = _conn()
    try:
        row = conn.execute("SELECT * FROM rfps WHERE id = ?", (rfp_id,)).fetchone()
    finally:
        conn.close()
    if row is None:
        return None

    record = dict(row)
    record["items"] = json.loads(record.get("items") or "[]")
    record["spec"] = RFPSpec.from_dict({
        "title": record["title"],
        "budget": record["budget"],
        "deliveryTimeline": record["delivery_timeline"],
        "paymentTerms": record["payment_terms"],
        "warranty": record["warranty"],
        "description": record["description"],
        "items": record["items"],
    })
    return record


def list_rfps(limit: int = 50) -> list:
    """Most recent RFPs first, summary columns only."""
    conn = _conn()
    try:
        rows = conn.execute(
            "SELECT id, title, budget, status, selected_vendor, created_at FROM rfps "
            "ORDER BY created_at DESC LIMIT ?", (limit,)
        ).fetchall()
    finally:
        conn.close()
    return [dict(r) for r in rows]


# ── comparison batches ─────────────────────────────────────────────────────────

def save_batch(rfp_id: str, batch: BatchResult) -> dict:
    """Persist a successful batch and move the RFP to under_review."""
    if not batch.ok or batch.outcome is None:
        return {"status": "skipped", "message": "Batch has no comparison outcome"}

    run_id = f"RUN-{uuid.uuid4().hex[:8]}"
    outcome = batch.outcome
    best = outcome.best_proposal_index
    conn = _conn()
    try:
        conn.execute(
            """INSERT INTO comparison_runs
               (id, rfp_id, total_files, usable_files, best_proposal_index,
                best_proposal_reason, summary, degraded, extraction_errors, created_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (run_id, rfp_id, batch.total_files, sum(1 for p in batch.proposals if p.usable),
             best, outcome.best_proposal_reason, outcome.summary, int(outcome.degraded),
             json.dumps(batch.extraction_errors), batch.timestamp or _now()),
        )
        for index, (record, result) in enumerate(zip(batch.proposals, outcome.results)):
            conn.execute(
                """INSERT INTO proposal_records
                   (id, run_id, rfp_id, file_index, file_name, vendor_name,
                    total_price, currency, compatibility_score, completeness_score,
                    extraction_status, is_recommended, extracted_data, comparison_result)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (str(uuid.uuid4()), run_id, rfp_id, index, record.source_file_name,
                 record.vendor_name, record.total_price.value, record.total_price.currency,
                 result.compatibility_score, record.completeness_score,
                 record.extraction_status, int(index == best),
                 json.dumps(record.to_dict(), ensure_ascii=False),
                 json.dumps(result.to_dict(), ensure_ascii=False)),
            )
        conn.execute(
            "UPDATE rfps SET status = 'under_review', updated_at = ? WHERE id = ?",
            (_now(), rfp_id),
        )
        conn.commit()
    finally:
        conn.close()

    logger.info("Stored comparison run %s for RFP %s (%d proposals)",
                run_id, rfp_id, len(batch.proposals))
    log_event("rfp.compared", "pipeline", f"Compared {len(batch.proposals)} proposals",
              rfp_id=rfp_id,
              metadata={"run_id": run_id, "best_index": best,
                        "degraded": outcome.degraded,
                        "extraction_errors": len(batch.extraction_errors)},
              db_path=DB_PATH)
    return {"status": "ok", "run_id": run_id, "stored": len(batch.proposals)}


def get_comparison_results(rfp_id: str) -> dict:
    """Latest run's proposals, highest compatibility first, with the recommended one."""
    conn = _conn()
    try:
        run = conn.execute(
            "SELECT * FROM comparison_runs WHERE rfp_id = ? "
            "ORDER BY created_at DESC, rowid DESC LIMIT 1", (rfp_id,)
        ).fetchone()
        if run is None:
            return {"status": "error", "message": f"No comparison results for RFP {rfp_id}"}
        rows = conn.execute(
            "SELECT * FROM proposal_records WHERE run_id = ? "
            "ORDER BY compatibility_score DESC, file_index ASC", (run["id"],)
        ).fetchall()
    finally:
        conn.close()

    proposals = []
    for row in rows:
        proposals.append({
            "index": row["file_index"],
            "fileName": row["file_name"],
            "vendorName": row["vendor_name"],
            "compatibilityScore": row["compatibility_score"],
            "isRecommended": bool(row["is_recommended"]),
            "selectionStatus": row["selection_status"],
            "extracted": json.loads(row["extracted_data"]),
            "comparison": json.loads(row["comparison_result"]),
        })
    best = next((p for p in proposals if p["isRecommended"]), proposals[0] if proposals else None)

    return {
        "status": "ok",
        "rfpId": rfp_id,
        "runId": run["id"],
        "comparedAt": run["created_at"],
        "summary": run["summary"],
        "degraded": bool(run["degraded"]),
        "extractionErrors": json.loads(run["extraction_errors"]),
        "proposals": proposals,
        "bestProposal": {
            "index": best["index"],
            "vendorName": best["vendorName"],
            "fileName": best["fileName"],
            "compatibilityScore": best["compatibilityScore"],
            "reason": run["best_proposal_reason"],
            "price": best["extracted"]["totalPrice"]["formatted"],
        } if best else None,
    }


def select_proposal(rfp_id: str, file_index: int, notes: str = "") -> dict:
    """Award the RFP to one proposal of its latest comparison run.

    The chosen row becomes ``selected`` and recommended, the rest of the run
    ``rejected``, and the RFP moves to ``completed``.
    """
    conn = _conn()
    try:
        run = conn.execute(
            "SELECT id FROM comparison_runs WHERE rfp_id = ? "
            "ORDER BY created_at DESC, rowid DESC LIMIT 1", (rfp_id,)
        ).fetchone()
        if run is None:
            return {"status": "error", "message": f"No comparison results for RFP {rfp_id}"}
        row = conn.execute(
            "SELECT vendor_name, file_name FROM proposal_records "
            "WHERE run_id = ? AND file_index = ?", (run["id"], file_index)
        ).fetchone()
        if row is None:
            return {"status": "error",
                    "message": f"No proposal at index {file_index} for RFP {rfp_id}"}

        conn.execute(
            "UPDATE proposal_records SET selection_status = 'rejected', is_recommended = 0 "
            "WHERE run_id = ? AND file_index != ?", (run["id"], file_index),
        )
        conn.execute(
            "UPDATE proposal_records SET selection_status = 'selected', is_recommended = 1, "
            "selection_notes = ? WHERE run_id = ? AND file_index = ?",
            (notes, run["id"], file_index),
        )
        conn.execute(
            "UPDATE rfps SET status = 'completed', selected_vendor = ?, updated_at = ? "
            "WHERE id = ?", (row["vendor_name"], _now(), rfp_id),
        )
        conn.commit()
    finally:
        conn.close()

    logger.info("RFP %s awarded to %s (index %d)", rfp_id, row["vendor_name"], file_index)
    log_event("rfp.awarded", "result_store", f"{row['vendor_name']} selected as winner",
              rfp_id=rfp_id,
              metadata={"run_id": run["id"], "file_index": file_index},
              db_path=DB_PATH)
    return {"status": "ok", "rfp_id": rfp_id, "file_index": file_index,
            "vendor_name": row["vendor_name"], "file_name": row["file_name"],
            "message": f"{row['vendor_name']} selected as winner"}
