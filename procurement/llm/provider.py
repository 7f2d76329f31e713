#!/usr/bin/env python3
# CUI // SP-PROPIN
"""Vendor-agnostic LLM provider base classes and data types.

Defines the universal request/response format shared by every provider
and the abstract interface the router dispatches to.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class LLMRequest:
    """Vendor-agnostic LLM invocation request."""
    messages: List[Dict[str, Any]] = field(default_factory=list)
    system_prompt: str = ""
    model: str = ""
    max_tokens: int = 2000
    temperature: float = 0.1
    response_format: str = "text"   # "text" | "json_object"
    timeout: float = 45.0
    deadline: Optional[float] = None  # time.monotonic() cut-off across fallbacks


@dataclass
class LLMResponse:
    """Vendor-agnostic LLM invocation response."""
    content: str = ""
    model_id: str = ""
    provider: str = ""
    input_tokens: int = 0
    output_tokens: int = 0
    duration_ms: int = 0
    stop_reason: str = ""


class LLMProvider(ABC):
    """Abstract base class for LLM providers."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the provider identifier."""

    @abstractmethod
    def invoke(self, request: LLMRequest, model_id: str, model_config: dict) -> LLMResponse:
        """Invoke the LLM synchronously."""
