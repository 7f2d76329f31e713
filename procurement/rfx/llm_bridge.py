#!/usr/bin/env python3
# CUI // SP-PROPIN
"""LLM bridge: the text-generation collaborator used by the RFX engine.

Wraps the config-driven LLM router behind one call:

    generate(system_instruction, user_prompt, temperature, max_tokens,
             json_output, function) -> raw text

The bridge is constructed once per pipeline and injected into the
ProposalExtractor, ComparisonEngine and RFP structurer, so tests can swap
in a scripted fake. One timeout bounds each call, retries and fallback
models included; failures surface as LLMUnavailableError and never hang a
batch. Prompts and responses are logged as SHA-256 hashes only.

Also hosts parse_json_object(), the shared tolerant parser for model output:
strict JSON → markdown fences stripped → first balanced {...} → None.
"""

import hashlib
import json
import logging
import re
import time
from typing import Optional

from procurement.llm.provider import LLMRequest

logger = logging.getLogger("procurement.rfx.llm_bridge")

_FENCE = re.compile(r"^\s*```(?:json|JSON)?\s*|\s*```\s*$")


class LLMUnavailableError(RuntimeError):
    """Raised when all LLM providers fail, time out, or the router is unavailable."""


def _sha256(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8", errors="replace")).hexdigest()


class LLMBridge:
    """Router-backed model client with timeout, bounded retries and telemetry."""

    def __init__(self, router=None, timeout: Optional[float] = None,
                 max_retries: int = 0, retry_delay: float = 1.0):
        self._router = router
        self._timeout = timeout
        self._max_retries = max(0, int(max_retries))
        self._retry_delay = retry_delay

    @property
    def router(self):
        if self._router is None:
            from procurement.llm.router import LLMRouter
            self._router = LLMRouter()
        return self._router

    def generate(self, system_instruction: str, user_prompt: str,
                 temperature: float = 0.1, max_tokens: int = 2000,
                 json_output: bool = True,
                 function: str = "proposal_extraction") -> str:
        """Invoke the routed model once (plus configured retries). Returns raw text."""
        try:
            router = self.router
        except Exception as exc:
            logger.error("LLM router could not be initialised: %s", exc)
            raise LLMUnavailableError("LLM router could not be initialised.") from exc

        timeout = self._timeout or getattr(router, "request_timeout", 45.0)
        deadline = time.monotonic() + float(timeout)
        request = LLMRequest(
            messages=[{"role": "user", "content": user_prompt}],
            system_prompt=system_instruction,
            max_tokens=max_tokens,
            temperature=temperature,
            response_format="json_object" if json_output else "text",
            timeout=timeout,
            deadline=deadline,
        )

        last_error = None
        for attempt in range(self._max_retries + 1):
            if attempt:
                delay = self._retry_delay * attempt
                if time.monotonic() + delay >= deadline:
                    logger.warning("LLM call for function=%s out of time after %d attempt(s)",
                                   function, attempt)
                    break
                time.sleep(delay)
            try:
                response = router.invoke(function, request)
            except Exception as exc:
                last_error = exc
                logger.warning("LLM call failed for function=%s (attempt %d/%d): %s",
                               function, attempt + 1, self._max_retries + 1, exc)
                continue

            text = response.content if hasattr(response, "content") else str(response)
            logger.info(
                "llm function=%s provider=%s model=%s in=%s out=%s ms=%s "
                "prompt_sha256=%s response_sha256=%s",
                function, getattr(response, "provider", "unknown"),
                getattr(response, "model_id", "unknown"),
                getattr(response, "input_tokens", 0), getattr(response, "output_tokens", 0),
                getattr(response, "duration_ms", 0),
                _sha256(system_instruction + user_prompt)[:16], _sha256(text)[:16],
            )
            return text

        raise LLMUnavailableError(str(last_error)) from last_error


# ── output parsing ─────────────────────────────────────────────────────────────

def strip_code_fences(text: str) -> str:
    """Remove a surrounding ```json ... ``` wrapper if present."""
    return _FENCE.sub("", text or "").strip()


def first_balanced_object(text: str) -> Optional[str]:
    """Return the first balanced {...} substring, honouring JSON strings."""
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for pos in range(start, len(text)):
            ch = text[pos]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
                continue
            if ch == '"':
                in_string = True
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    return text[start:pos + 1]
        # Unbalanced from this brace; try the next one
        start = text.find("{", start + 1)
    return None


def _loads_object(text: str) -> Optional[dict]:
    try:
        parsed = json.loads(text)
    except (json.JSONDecodeError, TypeError, ValueError):
        return None
    return parsed if isinstance(parsed, dict) else None


def parse_json_object(raw: Optional[str]) -> Optional[dict]:
    """Parse a model response into a dict, or None if nothing is recoverable."""
    if not raw or not raw.strip():
        return None

    parsed = _loads_object(raw)
    if parsed is not None:
        return parsed

    unfenced = strip_code_fences(raw)
    parsed = _loads_object(unfenced)
    if parsed is not None:
        logger.warning("Model output wrapped in code fences; recovered JSON")
        return parsed

    candidate = first_balanced_object(unfenced)
    while candidate is not None:
        parsed = _loads_object(candidate)
        if parsed is not None:
            logger.warning("Model output had prose around JSON; recovered first object")
            return parsed
        offset = unfenced.find(candidate) + 1
        unfenced = unfenced[offset:]
        candidate = first_balanced_object(unfenced)

    logger.warning("No JSON object recoverable from model output (%d chars)", len(raw))
    return None
