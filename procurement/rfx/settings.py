#!/usr/bin/env python3
# CUI // SP-PROPIN
"""RFX engine settings loaded from args/rfx_config.yaml.

Missing file or missing keys fall back to DEFAULTS, so the engine runs with
no configuration at all.
"""

import copy
import logging
import os
from pathlib import Path

import yaml

logger = logging.getLogger("procurement.rfx.settings")

BASE_DIR = Path(__file__).resolve().parent.parent.parent
DEFAULT_CONFIG_PATH = Path(os.environ.get(
    "PROCUREMENT_RFX_CONFIG", str(BASE_DIR / "args" / "rfx_config.yaml")
))

DEFAULTS = {
    "batch": {
        "max_files": 10,
        "max_file_bytes": 10 * 1024 * 1024,
        "max_workers": 4,
        "allowed_extensions": [".pdf", ".docx", ".txt", ".md", ".eml", ".csv"],
    },
    "extraction": {
        "max_text_chars": 15000,
        "min_text_chars": 20,
        "summary_max_chars": 300,
        "temperature": 0.1,
        "max_tokens": 2000,
        "known_vendors": ["Dell", "HP", "Lenovo", "Microsoft", "Apple",
                          "IBM", "Cisco", "Oracle"],
    },
    "comparison": {
        "temperature": 0.2,
        "max_tokens": 2500,
        "field_max_chars": 400,
    },
    "rfp": {
        "temperature": 0.2,
        "max_tokens": 1200,
    },
    "llm": {
        "timeout_seconds": 45,
        "model_retries": 1,
    },
}


def _merge(base: dict, override: dict) -> dict:
    merged = copy.deepcopy(base)
    for key, value in (override or {}).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_rfx_config(config_path=None) -> dict:
    """Load rfx_config.yaml merged over DEFAULTS."""
    path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH
    if not path.exists():
        logger.info("RFX config not found at %s; using defaults", path)
        return copy.deepcopy(DEFAULTS)
    try:
        with open(path, "r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh) or {}
    except (OSError, yaml.YAMLError) as exc:
        logger.error("Failed to load RFX config %s: %s; using defaults", path, exc)
        return copy.deepcopy(DEFAULTS)
    return _merge(DEFAULTS, data)
