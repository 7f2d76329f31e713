#!/usr/bin/env python3
# CUI // SP-PROPIN
"""Bedrock LLM Provider: AWS Bedrock (Anthropic models) integration."""

import json
import logging
import threading
import time

import boto3
from botocore.config import Config

from procurement.llm.provider import LLMProvider, LLMRequest, LLMResponse

logger = logging.getLogger("procurement.llm.bedrock")


class BedrockLLMProvider(LLMProvider):
    """AWS Bedrock LLM provider."""

    def __init__(self, region: str = "us-east-1", client=None):
        self._region = region
        self._clients = {}
        self._lock = threading.Lock()
        if client is not None:
            self._clients[None] = client

    @property
    def provider_name(self) -> str:
        return "bedrock"

    def _get_client(self, timeout=None):
        # botocore timeouts are fixed per client, so keep one per timeout value
        with self._lock:
            if None in self._clients:
                return self._clients[None]
            read_timeout = max(1, int(timeout or 60))
            if read_timeout not in self._clients:
                logger.debug("Creating bedrock-runtime client (%s, read_timeout=%ss)",
                             self._region, read_timeout)
                self._clients[read_timeout] = boto3.client(
                    "bedrock-runtime",
                    region_name=self._region,
                    config=Config(read_timeout=read_timeout,
                                  retries={"max_attempts": 1}),
                )
            return self._clients[read_timeout]

    def invoke(self, request: LLMRequest, model_id: str, model_config: dict) -> LLMResponse:
        """Invoke Bedrock model."""
        client = self._get_client(request.timeout)
        start = time.time()

        messages = []
        for msg in request.messages:
            content = msg.get("content", "")
            role = msg.get("role", "user")
            if isinstance(content, str):
                messages.append({
                    "role": role,
                    "content": [{"type": "text", "text": content}],
                })
            elif isinstance(content, list):
                messages.append({"role": role, "content": content})

        # No native JSON mode: prefill the assistant turn with an opening brace
        prefill = request.response_format == "json_object"
        if prefill:
            messages.append({"role": "assistant",
                             "content": [{"type": "text", "text": "{"}]})

        body = {
            "anthropic_version": "bedrock-2023-05-31",
            "max_tokens": request.max_tokens,
            "temperature": request.temperature,
            "messages": messages,
        }
        if request.system_prompt:
            body["system"] = request.system_prompt

        try:
            response = client.invoke_model(
                modelId=model_id,
                contentType="application/json",
                accept="application/json",
                body=json.dumps(body),
            )
            result = json.loads(response["body"].read())
        except Exception as exc:
            raise RuntimeError(f"bedrock invocation failed: {exc}") from exc

        elapsed_ms = int((time.time() - start) * 1000)

        content_text = "{" if prefill else ""
        for block in result.get("content", []):
            if block.get("type") == "text":
                content_text += block.get("text", "")

        usage = result.get("usage", {})

        return LLMResponse(
            content=content_text,
            model_id=model_id,
            provider="bedrock",
            input_tokens=usage.get("input_tokens", 0),
            output_tokens=usage.get("output_tokens", 0),
            duration_ms=elapsed_ms,
            stop_reason=result.get("stop_reason", ""),
        )
