#!/usr/bin/env python3
# CUI // SP-PROPIN
"""Audit logger: append-only audit trail for procurement decisions.

Writes to the audit_trail table of the procurement database. Rows are never
updated or deleted. Prompt and document contents are never recorded, only
identifiers and counts.

Usage:
    python -m procurement.audit.audit_logger \
        --event-type "rfp.compared" --actor "dashboard" \
        --action "Compared 3 proposals" --rfp-id "RFP-1a2b3c4d" --json
"""

import argparse
import json
import logging
import os
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from uuid import uuid4

logger = logging.getLogger("procurement.audit")

BASE_DIR = Path(__file__).resolve().parent.parent.parent
DB_PATH = Path(os.environ.get(
    "PROCUREMENT_DB_PATH", str(BASE_DIR / "data" / "procurement.db")
))


def log_event(event_type: str, actor: str, action: str,
              rfp_id: str = "", metadata: dict = None, db_path=None) -> dict:
    """Append an event to the audit trail. Returns the entry."""
    entry = {
        "id": str(uuid4()),
        "created_at": datetime.now(timezone.utc).isoformat(),
        "event_type": event_type,
        "actor": actor,
        "action": action,
        "rfp_id": rfp_id,
        "metadata": json.dumps(metadata or {}),
    }

    path = Path(db_path or DB_PATH)
    if not path.exists():
        logger.debug("Audit database %s missing; event %s not persisted", path, event_type)
        return entry

    conn = sqlite3.connect(str(path))
    try:
        conn.execute(
            """INSERT INTO audit_trail
               (id, created_at, event_type, actor, action, rfp_id, metadata)
               VALUES (?, ?, ?, ?, ?, ?, ?)""",
            (entry["id"], entry["created_at"], entry["event_type"],
             entry["actor"], entry["action"], entry["rfp_id"], entry["metadata"]),
        )
        conn.commit()
    except sqlite3.OperationalError as exc:
        logger.warning("Audit write failed for %s: %s", event_type, exc)
    finally:
        conn.close()
    return entry


def main():
    parser = argparse.ArgumentParser(description="Procurement audit logger")
    parser.add_argument("--event-type", required=True)
    parser.add_argument("--actor", required=True)
    parser.add_argument("--action", required=True)
    parser.add_argument("--rfp-id", default="")
    parser.add_argument("--json", action="store_true")
    args = parser.parse_args()

    result = log_event(args.event_type, args.actor, args.action, args.rfp_id)

    if args.json:
        print(json.dumps(result, indent=2))
    else:
        print(f"Logged: [{result['event_type']}] {result['action']}")


if __name__ == "__main__":
    main()
