#!/usr/bin/env python3
# CUI // SP-PROPIN
# Controlled by: Procurement Assistant
# CUI Category: PROPIN
# Distribution: D
# POC: Procurement System Administrator
"""Procurement API: Flask JSON boundary for RFP structuring and proposal comparison.

Routes:
    /api/health                       - liveness + configured limits (GET)
    /api/rfps                         - list RFPs (GET), structure free text into an RFP (POST JSON {text})
    /api/rfps/<rfp_id>                - stored RFP (GET)
    /api/rfps/<rfp_id>/compare        - upload proposals, extract + compare (POST multipart "proposals")
    /api/rfps/<rfp_id>/comparison     - latest stored comparison (GET)
    /api/rfps/<rfp_id>/proposals/<i>/select - award the RFP to proposal i (POST JSON {notes})
    /api/proposals/parse              - extract one proposal, pasted text or file (POST)

Usage:
    python -m procurement.dashboard.app [--port 5001] [--debug]
"""

import logging
import os
from pathlib import Path

from dotenv import load_dotenv
from flask import Flask, jsonify, request

BASE_DIR = Path(__file__).resolve().parent.parent.parent

# Real environment variables win over .env
_env_path = BASE_DIR / ".env"
if _env_path.exists():
    load_dotenv(_env_path, override=False)

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%S",
)
logger = logging.getLogger("procurement.dashboard")

from procurement.db.init_db import init_db  # noqa: E402
from procurement.rfx import result_store  # noqa: E402
from procurement.rfx.document_loader import guess_mime  # noqa: E402
from procurement.rfx.models import UploadedFile  # noqa: E402
from procurement.rfx.pipeline import (  # noqa: E402
    BatchInputError, build_pipeline, validate_batch_request, validate_upload,
)
from procurement.rfx.settings import load_rfx_config  # noqa: E402

# =========================================================================
# APP SETUP
# =========================================================================
_CONFIG = load_rfx_config()

app = Flask(__name__)
app.config["MAX_CONTENT_LENGTH"] = (
    int(_CONFIG["batch"]["max_files"]) * int(_CONFIG["batch"]["max_file_bytes"]) + 1024 * 1024
)

_API_KEY = os.environ.get("PROCUREMENT_API_KEY", "").strip()
_pipeline = None
_initialized_dbs = set()


def ensure_db():
    """Create the schema on first use of a database path (flask run, WSGI)."""
    path = str(result_store.DB_PATH)
    if path not in _initialized_dbs:
        init_db(path)
        _initialized_dbs.add(path)


def get_pipeline():
    """Lazily build the shared pipeline (one LLM bridge per process)."""
    global _pipeline
    if _pipeline is None:
        _pipeline = build_pipeline(store=result_store)
    return _pipeline


def set_pipeline(pipeline):
    global _pipeline
    _pipeline = pipeline


# =========================================================================
# ERROR HANDLERS + AUTH
# =========================================================================
@app.errorhandler(404)
def not_found(e):
    return jsonify({"error": "Not found"}), 404


@app.errorhandler(413)
def too_large(e):
    return jsonify({"error": "Upload too large"}), 413


@app.errorhandler(500)
def internal_server_error(e):
    logger.error("500 Internal Server Error: %s", e)
    return jsonify({"error": "Internal server error"}), 500


@app.before_request
def _before_request():
    if not request.path.startswith("/api/") or request.path == "/api/health":
        return None
    if _API_KEY:
        provided = request.headers.get("X-Api-Key", "") or request.args.get("api_key", "")
        if provided != _API_KEY:
            return jsonify({"error": "Unauthorized. Provide X-Api-Key header."}), 401
    ensure_db()
    return None


# =========================================================================
# ROUTES
# =========================================================================
@app.route("/api/health")
def api_health():
    return jsonify({
        "status": "ok",
        "maxFiles": _CONFIG["batch"]["max_files"],
        "maxFileBytes": _CONFIG["batch"]["max_file_bytes"],
    })


@app.route("/api/rfps", methods=["GET"])
def api_list_rfps():
    limit = request.args.get("limit", 50, type=int)
    rows = result_store.list_rfps(limit=max(1, min(limit, 500)))
    return jsonify({"rfps": [{
        "id": r["id"],
        "title": r["title"],
        "budget": r["budget"],
        "status": r["status"],
        "selectedVendor": r["selected_vendor"],
        "createdAt": r["created_at"],
    } for r in rows]})


@app.route("/api/rfps", methods=["POST"])
def api_create_rfp():
    """Structure a free-text procurement request and store it."""
    data = request.get_json(silent=True) or {}
    text = str(data.get("text") or "").strip()
    if not text:
        return jsonify({"error": "Text input is required"}), 400

    spec = get_pipeline().structure_rfp(text)
    saved = result_store.save_rfp(spec, original_text=text)
    logger.info("Created RFP %s: %s", saved["rfp_id"], spec.title)
    return jsonify({"success": True, "rfpId": saved["rfp_id"], "rfp": spec.to_dict()}), 201


@app.route("/api/rfps/<rfp_id>")
def api_get_rfp(rfp_id):
    record = result_store.get_rfp(rfp_id)
    if record is None:
        return jsonify({"error": "RFP not found"}), 404
    return jsonify({
        "id": record["id"],
        "status": record["status"],
        "createdAt": record["created_at"],
        "rfp": record["spec"].to_dict(),
    })


@app.route("/api/rfps/<rfp_id>/compare", methods=["POST"])
def api_compare_proposals(rfp_id):
    """Extract every uploaded proposal and compare them against the RFP."""
    files = [
        UploadedFile(
            file_name=f.filename or f"proposal_{i + 1}",
            data=f.read(),
            mime_type=f.mimetype or guess_mime(f.filename or ""),
        )
        for i, f in enumerate(request.files.getlist("proposals"))
    ]
    pipeline = get_pipeline()
    try:
        validate_batch_request(rfp_id, files, pipeline.config)
    except BatchInputError as e:
        return jsonify({"success": False, "error": str(e)}), 400

    record = result_store.get_rfp(rfp_id)
    if record is None:
        return jsonify({"success": False, "error": "RFP not found"}), 404

    result = pipeline.run(record["spec"], files, rfp_id=rfp_id)
    return jsonify(result.to_dict()), 200 if result.ok else 422


@app.route("/api/rfps/<rfp_id>/comparison")
def api_get_comparison(rfp_id):
    if result_store.get_rfp(rfp_id) is None:
        return jsonify({"error": "RFP not found"}), 404
    result = result_store.get_comparison_results(rfp_id)
    if result.get("status") == "error":
        return jsonify(result), 404
    return jsonify(result)


@app.route("/api/rfps/<rfp_id>/proposals/<int:file_index>/select", methods=["POST"])
def api_select_proposal(rfp_id, file_index):
    """Award the RFP to one proposal of its latest comparison."""
    if result_store.get_rfp(rfp_id) is None:
        return jsonify({"success": False, "error": "RFP not found"}), 404
    data = request.get_json(silent=True) or {}
    result = result_store.select_proposal(rfp_id, file_index, notes=str(data.get("notes") or ""))
    if result["status"] == "error":
        return jsonify({"success": False, "error": result["message"]}), 404
    return jsonify({
        "success": True,
        "message": result["message"],
        "rfpId": rfp_id,
        "selected": {"index": file_index, "vendorName": result["vendor_name"],
                     "fileName": result["file_name"]},
    })


@app.route("/api/proposals/parse", methods=["POST"])
def api_parse_proposal():
    """Extract one proposal without comparing it: pasted text or a single file."""
    extractor = get_pipeline().extractor
    upload = request.files.get("proposal")
    if upload is not None:
        file = UploadedFile(
            file_name=upload.filename or "proposal",
            data=upload.read(),
            mime_type=upload.mimetype or guess_mime(upload.filename or ""),
        )
        try:
            validate_upload(file, get_pipeline().config)
        except BatchInputError as e:
            return jsonify({"success": False, "error": str(e)}), 400
        record = extractor.extract(file.data, file.file_name, file.mime_type)
        file_info = {"name": file.file_name, "type": file.mime_type, "size": file.size}
    else:
        data = request.get_json(silent=True) or {}
        text = str(data.get("text") or "").strip()
        if not text:
            return jsonify({"success": False,
                            "error": "Provide proposal text or upload a file"}), 400
        name = str(data.get("fileName") or "pasted-proposal.txt")
        record = extractor.extract_text_record(text, file_name=name)
        file_info = {"name": name, "type": "text/plain", "size": len(text.encode("utf-8"))}

    return jsonify({
        "success": record.usable,
        "message": ("Proposal parsed" if record.usable
                    else record.extraction_error or "Could not extract data from proposal"),
        "data": {"extracted": record.to_dict(), "fileInfo": file_info},
    }), 200 if record.usable else 422


# =========================================================================
# MAIN
# =========================================================================
if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Procurement API")
    parser.add_argument("--port", type=int, default=5001)
    parser.add_argument("--debug", action="store_true")
    parser.add_argument("--host", default="127.0.0.1")
    args = parser.parse_args()

    ensure_db()
    print(f"Procurement API starting on http://{args.host}:{args.port}")
    print(f"Database: {result_store.DB_PATH}")
    app.run(host=args.host, port=args.port, debug=args.debug)
