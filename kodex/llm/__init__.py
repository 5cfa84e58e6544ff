"""Generation backends and the factory that selects one from configuration."""

from __future__ import annotations

from ..config import ConfigError, LLMConfig, resolve_api_key
from .anthropic import AnthropicBackend
from .base import GenerationError, LLMBackend, LLMRequest
from .google import GoogleBackend
from .mock import MockBackend
from .ollama import OllamaBackend
from .openai import OpenAIBackend


def create_backend(llm: LLMConfig, *, mock: bool = False) -> LLMBackend:
    """Return the backend for ``llm.provider``; ``mock`` forces the offline backend."""
    if mock or llm.provider == "mock":
        return MockBackend()
    if llm.provider == "ollama":
        return OllamaBackend(
            llm.model,
            executable=llm.executable,
            request_timeout=llm.request_timeout,
        )

    options = dict(
        api_key=resolve_api_key(llm),
        base_url=llm.base_url,
        max_tokens=llm.max_tokens,
        temperature=llm.temperature,
        request_timeout=llm.request_timeout,
    )
    if llm.provider == "anthropic":
        return AnthropicBackend(llm.model, **options)
    if llm.provider == "openai":
        return OpenAIBackend(llm.model, **options)
    if llm.provider == "google":
        return GoogleBackend(llm.model, **options)
    raise ConfigError(f"Unknown LLM provider: {llm.provider}")


__all__ = [
    "AnthropicBackend",
    "GenerationError",
    "GoogleBackend",
    "LLMBackend",
    "LLMRequest",
    "MockBackend",
    "OllamaBackend",
    "OpenAIBackend",
    "create_backend",
]
