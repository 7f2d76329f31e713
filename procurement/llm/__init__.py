# CUI // SP-PROPIN
"""Vendor-agnostic LLM provider layer.

Modules:
    provider         - LLMRequest / LLMResponse dataclasses, LLMProvider ABC
    openai_provider  - OpenAI-compatible REST APIs (OpenAI, Groq, Ollama, vLLM)
    bedrock_provider - AWS Bedrock (Anthropic models)
    router           - args/llm_config.yaml driven fallback chain
"""
