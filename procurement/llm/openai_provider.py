#!/usr/bin/env python3
# CUI // SP-PROPIN
"""OpenAI-compatible LLM provider.

Supports any OpenAI-compatible API: OpenAI, Groq, Ollama, vLLM, LM Studio.
Groq (llama-3.3-70b-versatile) is the default extraction backend.
"""

import time

from openai import OpenAI

from procurement.llm.provider import LLMProvider, LLMRequest, LLMResponse


class OpenAICompatibleProvider(LLMProvider):
    """Provider for OpenAI-compatible REST APIs (Groq, Ollama, vLLM, etc.)."""

    def __init__(self, api_key: str = "ollama", base_url: str = "http://localhost:11434/v1",
                 provider_label: str = "openai_compatible", client=None):
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._label = provider_label
        # Retries belong to the caller, which owns the overall deadline
        self._client = client or OpenAI(api_key=self._api_key, base_url=self._base_url,
                                        max_retries=0)

    @property
    def provider_name(self) -> str:
        return self._label

    def invoke(self, request: LLMRequest, model_id: str, model_config: dict) -> LLMResponse:
        start = time.time()

        messages = list(request.messages)
        if not messages:
            raise ValueError("LLMRequest has no messages")

        if request.system_prompt and not any(m.get("role") == "system" for m in messages):
            messages = [{"role": "system", "content": request.system_prompt}] + messages

        kwargs = {
            "model": model_id,
            "messages": messages,
            "max_tokens": request.max_tokens,
            "temperature": request.temperature,
            "timeout": request.timeout,
        }
        # Some local servers reject response_format; config can switch it off.
        if request.response_format == "json_object" and model_config.get("json_mode", True):
            kwargs["response_format"] = {"type": "json_object"}

        try:
            resp = self._client.chat.completions.create(**kwargs)
        except Exception as exc:
            raise RuntimeError(f"{self._label} invocation failed: {exc}") from exc

        content = resp.choices[0].message.content or ""
        duration_ms = int((time.time() - start) * 1000)
        usage = getattr(resp, "usage", None)

        return LLMResponse(
            content=content,
            model_id=model_id,
            provider=self._label,
            input_tokens=getattr(usage, "prompt_tokens", 0) or 0,
            output_tokens=getattr(usage, "completion_tokens", 0) or 0,
            duration_ms=duration_ms,
            stop_reason=str(resp.choices[0].finish_reason),
        )
