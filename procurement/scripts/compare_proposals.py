#!/usr/bin/env python3
# CUI // SP-PROPIN
"""Compare vendor proposals against an RFP from the command line.

Runs the same pipeline as the API, locally and without a database:
  1. Load the RFP (JSON file) or structure it from free text
  2. Extract every proposal file
  3. Compare and print the ranking

Usage examples:
  # RFP from a JSON file (title/budget/deliveryTimeline/items...)
  procurement-compare --rfp rfp.json vendor_a.pdf vendor_b.docx vendor_c.txt

  # RFP structured from free text by the model
  procurement-compare --rfp-text "Need 20 laptops with 16GB RAM, budget Rs. 15,00,000, delivery in 30 days" \\
    quote_dell.pdf quote_hp.pdf

  # Full response as JSON
  procurement-compare --rfp rfp.json *.pdf --json
"""

import argparse
import json
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv

from procurement.rfx.document_loader import guess_mime
from procurement.rfx.models import RFPSpec, UploadedFile
from procurement.rfx.pipeline import BatchInputError, build_pipeline, validate_batch_request

# Windows cp1252 console can't render Unicode; force UTF-8 output
if hasattr(sys.stdout, "reconfigure"):
    sys.stdout.reconfigure(encoding="utf-8", errors="replace")

BASE_DIR = Path(__file__).resolve().parent.parent.parent

GREEN  = "\033[32m"
RED    = "\033[31m"
YELLOW = "\033[33m"
CYAN   = "\033[36m"
RESET  = "\033[0m"
BOLD   = "\033[1m"


def _ok(msg):   print(f"{GREEN}  ✓{RESET} {msg}")
def _warn(msg): print(f"{YELLOW}  ⚠{RESET} {msg}")
def _err(msg):  print(f"{RED}  ✗{RESET} {msg}")
def _info(msg): print(f"{CYAN}  →{RESET} {msg}")


def _load_rfp(args, pipeline) -> RFPSpec:
    if args.rfp:
        with open(args.rfp, "r", encoding="utf-8") as fh:
            return RFPSpec.from_dict(json.load(fh))
    return pipeline.structure_rfp(args.rfp_text)


def _read_files(paths) -> list:
    files = []
    for raw in paths:
        path = Path(raw)
        files.append(UploadedFile(file_name=path.name, data=path.read_bytes(),
                                  mime_type=guess_mime(path.name)))
    return files


def _print_summary(result: dict) -> None:
    rfp = result.get("rfp") or {}
    print(f"\n{BOLD}Proposal comparison: {rfp.get('title', '')}{RESET}")
    print(f"  Budget   : {rfp.get('budget', '')}")
    print(f"  Delivery : {rfp.get('deliveryTimeline', '')}\n")

    for error in result.get("extractionErrors", []):
        _warn(f"{error['fileName']}: {error['error']}")

    if not result.get("success"):
        _err(result.get("message", "Comparison failed"))
        return

    for entry in result["proposals"]:
        extracted, comparison = entry["extracted"], entry["comparison"]
        line = (f"[{entry['index']}] {extracted['vendorName']:<24} "
                f"score {comparison['compatibilityScore']:>3}  "
                f"price {extracted['totalPrice']['formatted']:<14} "
                f"{comparison['priceAnalysis']}")
        if comparison.get("currencyMismatch"):
            line += f" {YELLOW}(currency differs from budget){RESET}"
        (_ok if entry["isRecommended"] else _info)(line)

    best = result["bestProposal"]
    print(f"\n{BOLD}Recommended:{RESET} {best['vendorName']} ({best['fileName']}), "
          f"score {best['compatibilityScore']}, price {best['price']}")
    print(f"  {best['reason']}")
    if result["comparison"].get("degraded"):
        _warn("AI comparison incomplete; some scores are neutral defaults. Manual review recommended.")
    stats = result["stats"]
    print(f"\n  {stats['successfullyExtracted']}/{stats['totalProposals']} proposals extracted, "
          f"{stats['extractionErrors']} with errors")


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="Extract and compare vendor proposals against an RFP",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--rfp", help="Path to an RFP JSON file")
    source.add_argument("--rfp-text", help="Free-text procurement request to structure")
    parser.add_argument("files", nargs="+", help="Proposal documents (.pdf, .docx, .txt, ...)")
    parser.add_argument("--config", help="Path to rfx_config.yaml")
    parser.add_argument("--json", action="store_true", dest="json_output",
                        help="Output the full response as JSON")
    parser.add_argument("--verbose", action="store_true", help="Log pipeline progress")
    args = parser.parse_args(argv)

    env_path = BASE_DIR / ".env"
    if env_path.exists():
        load_dotenv(env_path, override=False)
    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
    )

    pipeline = build_pipeline(args.config)
    try:
        files = _read_files(args.files)
        validate_batch_request("cli", files, pipeline.config)
    except (OSError, BatchInputError) as e:
        _err(str(e))
        return 2

    try:
        rfp = _load_rfp(args, pipeline)
    except (OSError, ValueError) as e:
        _err(f"Could not load RFP: {e}")
        return 2

    result = pipeline.run(rfp, files).to_dict()
    if args.json_output:
        print(json.dumps(result, indent=2, ensure_ascii=False))
    else:
        _print_summary(result)
    return 0 if result["success"] else 1


if __name__ == "__main__":
    sys.exit(main())
