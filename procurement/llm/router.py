#!/usr/bin/env python3
# CUI // SP-PROPIN
"""Config-driven LLM router for the procurement pipeline.

Reads args/llm_config.yaml and resolves each function
(proposal_extraction, proposal_comparison, rfp_structuring) to a
provider + model via fallback chain. Models that just failed are tried
last until their cooldown expires.
"""

import logging
import os
import re
import threading
import time
from dataclasses import replace
from pathlib import Path
from typing import Dict, Optional

import yaml

from procurement.llm.provider import LLMProvider, LLMRequest, LLMResponse

logger = logging.getLogger("procurement.llm.router")

BASE_DIR = Path(__file__).resolve().parent.parent.parent
DEFAULT_CONFIG_PATH = Path(os.environ.get(
    "PROCUREMENT_LLM_CONFIG", str(BASE_DIR / "args" / "llm_config.yaml")
))


def _expand_env(value):
    """Expand ${VAR:-default} patterns in string values."""
    if not isinstance(value, str):
        return value
    pattern = r'\$\{([^}]+)\}'
    def replacer(match):
        expr = match.group(1)
        if ":-" in expr:
            var, default = expr.split(":-", 1)
            return os.environ.get(var, default)
        return os.environ.get(expr, match.group(0))
    return re.sub(pattern, replacer, value)


class LLMRouter:
    """Config-driven router mapping pipeline functions to LLM providers."""

    def __init__(self, config_path=None, config: Optional[dict] = None):
        self._config_path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH
        self._config: Dict = {}
        self._providers: Dict[str, LLMProvider] = {}
        self._failed_at: Dict[str, float] = {}
        self._cooldown: float = 300.0
        self._lock = threading.Lock()
        if config is not None:
            self._config = config
            self._apply_settings()
        else:
            self._load_config()

    def _load_config(self):
        """Load and parse llm_config.yaml."""
        if not self._config_path.exists():
            logger.warning("LLM config not found at %s; using empty config", self._config_path)
            self._config = {}
            return
        try:
            with open(self._config_path, "r", encoding="utf-8") as f:
                self._config = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as exc:
            logger.error("Failed to load LLM config: %s", exc)
            self._config = {}
        self._apply_settings()

    def _apply_settings(self):
        self._cooldown = float(
            self._config.get("settings", {}).get("failed_model_cooldown_seconds", 300)
        )

    @property
    def request_timeout(self) -> float:
        return float(self._config.get("settings", {}).get("request_timeout_seconds", 45))

    def register_provider(self, name: str, provider: LLMProvider):
        """Install a pre-built provider instance (used by tests and embedders)."""
        with self._lock:
            self._providers[name] = provider

    def _get_provider(self, provider_name: str) -> Optional[LLMProvider]:
        """Get or create a provider instance by name."""
        with self._lock:
            return self._create_provider(provider_name)

    def _create_provider(self, provider_name: str) -> Optional[LLMProvider]:
        if provider_name in self._providers:
            return self._providers[provider_name]

        provider_cfg = self._config.get("providers", {}).get(provider_name, {})
        if not provider_cfg:
            return None

        ptype = provider_cfg.get("type", "")
        instance = None

        try:
            if ptype == "bedrock":
                from procurement.llm.bedrock_provider import BedrockLLMProvider
                region = _expand_env(provider_cfg.get("region", "us-east-1"))
                instance = BedrockLLMProvider(region=region)

            elif ptype in ("openai", "openai_compatible", "groq"):
                from procurement.llm.openai_provider import OpenAICompatibleProvider
                api_key = provider_cfg.get("api_key", "")
                if not api_key:
                    api_key_env = provider_cfg.get("api_key_env", "")
                    if api_key_env:
                        api_key = os.environ.get(api_key_env, "")
                if not api_key:
                    logger.warning("No API key for provider '%s'", provider_name)
                    return None
                base_url = _expand_env(provider_cfg.get("base_url", "https://api.openai.com/v1"))
                instance = OpenAICompatibleProvider(
                    api_key=api_key, base_url=base_url, provider_label=provider_name,
                )

            elif ptype == "ollama":
                from procurement.llm.openai_provider import OpenAICompatibleProvider
                base_url = _expand_env(provider_cfg.get("base_url", "http://localhost:11434/v1"))
                instance = OpenAICompatibleProvider(
                    api_key="ollama", base_url=base_url, provider_label="ollama",
                )

        except Exception as exc:
            logger.warning("Failed to create provider '%s': %s", provider_name, exc)
            return None

        if instance:
            self._providers[provider_name] = instance
        return instance

    def _get_model_config(self, model_name: str) -> dict:
        return self._config.get("models", {}).get(model_name, {})

    def _chain_for(self, function: str) -> list:
        routing = self._config.get("routing", {})
        route = routing.get(function, routing.get("default", {}))
        return route.get("chain", [])

    def _ordered_chain(self, function: str) -> list:
        """Chain for ``function`` with recently failed models moved to the back."""
        chain = self._chain_for(function)
        now = time.monotonic()
        with self._lock:
            cooling = {name for name, failed_at in self._failed_at.items()
                       if now - failed_at < self._cooldown}
        return [m for m in chain if m not in cooling] + [m for m in chain if m in cooling]

    def _mark(self, model_name: str, failed: bool):
        with self._lock:
            if failed:
                self._failed_at[model_name] = time.monotonic()
            else:
                self._failed_at.pop(model_name, None)

    def invoke(self, function: str, request: LLMRequest) -> LLMResponse:
        """Resolve provider for function and invoke with fallback.

        A request carrying a ``deadline`` stops walking the chain once it has
        passed, and each attempt's timeout is cut to the time remaining.
        """
        chain = self._ordered_chain(function)
        last_error = None

        for model_name in chain:
            model_cfg = self._get_model_config(model_name)
            if not model_cfg:
                continue
            provider_name = model_cfg.get("provider", "")
            provider = self._get_provider(provider_name)
            if provider is None:
                continue

            attempt = request
            if request.deadline is not None:
                remaining = request.deadline - time.monotonic()
                if remaining <= 0:
                    last_error = TimeoutError(f"deadline passed before trying {model_name}")
                    logger.warning("Deadline passed for %s; not trying %s", function, model_name)
                    break
                attempt = replace(request, timeout=min(request.timeout, remaining))

            model_id = model_cfg.get("model_id", "")
            try:
                response = provider.invoke(attempt, model_id, model_cfg)
            except Exception as exc:
                logger.warning(
                    "Provider %s failed for %s: %s; trying next",
                    provider_name, function, exc,
                )
                last_error = exc
                self._mark(model_name, failed=True)
                continue
            self._mark(model_name, failed=False)
            return response

        raise RuntimeError(
            f"All providers in chain {chain} failed for function '{function}'. "
            f"Last error: {last_error}"
        )
