#!/usr/bin/env python3
# CUI // SP-PROPIN
# Controlled by: Procurement Assistant
# CUI Category: PROPIN (Proprietary Business Information)
# Distribution: D
# POC: Procurement System Administrator
"""Initialize the procurement database with all required tables.

Creates tables for:
  - RFPs (structured requirements and their review status)
  - Proposal records (one row per uploaded file, extracted + comparison JSON)
  - Comparison runs (one row per batch: best index, reason, summary)
  - System (audit trail)

Usage:
    python -m procurement.db.init_db [--json] [--db-path PATH]
"""

import json
import os
import sqlite3
from datetime import datetime, timezone
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent.parent
DB_PATH = Path(os.environ.get(
    "PROCUREMENT_DB_PATH", str(BASE_DIR / "data" / "procurement.db")
))


SCHEMA_SQL = """
-- ============================================================
-- RFPs
-- ============================================================

CREATE TABLE IF NOT EXISTS rfps (
    id TEXT PRIMARY KEY,
    title TEXT NOT NULL,
    budget TEXT,
    delivery_timeline TEXT,
    payment_terms TEXT,
    warranty TEXT,
    description TEXT,
    items TEXT NOT NULL DEFAULT '[]',
    original_text TEXT,
    status TEXT NOT NULL DEFAULT 'draft'
        CHECK(status IN ('draft', 'sent', 'under_review', 'completed', 'closed')),
    selected_vendor TEXT,
    created_at TEXT NOT NULL DEFAULT (datetime('now')),
    updated_at TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE INDEX IF NOT EXISTS idx_rfps_status ON rfps(status);

-- ============================================================
-- PROPOSALS & COMPARISON
-- ============================================================

-- One batch comparison per row
CREATE TABLE IF NOT EXISTS comparison_runs (
    id TEXT PRIMARY KEY,
    rfp_id TEXT NOT NULL REFERENCES rfps(id),
    total_files INTEGER NOT NULL,
    usable_files INTEGER NOT NULL,
    best_proposal_index INTEGER NOT NULL,
    best_proposal_reason TEXT,
    summary TEXT,
    degraded INTEGER NOT NULL DEFAULT 0,
    extraction_errors TEXT NOT NULL DEFAULT '[]',
    created_at TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE INDEX IF NOT EXISTS idx_runs_rfp ON comparison_runs(rfp_id);

-- Extracted record + comparison result per uploaded file
CREATE TABLE IF NOT EXISTS proposal_records (
    id TEXT PRIMARY KEY,
    run_id TEXT NOT NULL REFERENCES comparison_runs(id),
    rfp_id TEXT NOT NULL REFERENCES rfps(id),
    file_index INTEGER NOT NULL,
    file_name TEXT,
    vendor_name TEXT,
    total_price REAL NOT NULL DEFAULT 0,
    currency TEXT,
    compatibility_score INTEGER,
    completeness_score INTEGER,
    extraction_status TEXT NOT NULL
        CHECK(extraction_status IN ('ok', 'heuristic', 'failed')),
    is_recommended INTEGER NOT NULL DEFAULT 0,
    selection_status TEXT NOT NULL DEFAULT 'submitted'
        CHECK(selection_status IN ('submitted', 'selected', 'rejected')),
    selection_notes TEXT,
    extracted_data TEXT NOT NULL,
    comparison_result TEXT NOT NULL,
    created_at TEXT NOT NULL DEFAULT (datetime('now')),
    UNIQUE(run_id, file_index)
);

CREATE INDEX IF NOT EXISTS idx_records_rfp ON proposal_records(rfp_id);
CREATE INDEX IF NOT EXISTS idx_records_score ON proposal_records(compatibility_score);

-- ============================================================
-- SYSTEM
-- ============================================================

-- Append-only audit trail
CREATE TABLE IF NOT EXISTS audit_trail (
    id TEXT PRIMARY KEY,
    event_type TEXT NOT NULL,
    actor TEXT,
    action TEXT NOT NULL,
    rfp_id TEXT,
    metadata TEXT,
    created_at TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE INDEX IF NOT EXISTS idx_audit_event ON audit_trail(event_type);
CREATE INDEX IF NOT EXISTS idx_audit_rfp ON audit_trail(rfp_id);
CREATE INDEX IF NOT EXISTS idx_audit_time ON audit_trail(created_at);
"""


def init_db(db_path=None):
    """Initialize the procurement database."""
    path = db_path or str(DB_PATH)
    Path(path).parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(str(path))
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys=ON")
    conn.executescript(SCHEMA_SQL)
    conn.commit()

    table_count = conn.execute(
        "SELECT COUNT(*) FROM sqlite_master WHERE type='table'"
    ).fetchone()[0]
    index_count = conn.execute(
        "SELECT COUNT(*) FROM sqlite_master WHERE type='index' "
        "AND name NOT LIKE 'sqlite_%'"
    ).fetchone()[0]
    conn.close()

    return {
        "status": "initialized",
        "db_path": str(path),
        "tables": table_count,
        "indexes": index_count,
        "initialized_at": datetime.now(timezone.utc).isoformat(),
    }


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Initialize procurement database")
    parser.add_argument("--json", action="store_true", help="JSON output")
    parser.add_argument("--db-path", help="Override database path")
    args = parser.parse_args()

    result = init_db(db_path=args.db_path)

    if args.json:
        print(json.dumps(result, indent=2))
    else:
        print("Procurement database initialized:")
        print(f"  Path:    {result['db_path']}")
        print(f"  Tables:  {result['tables']}")
        print(f"  Indexes: {result['indexes']}")
        print(f"  Time:    {result['initialized_at']}")
