"""Anthropic Messages API backend."""

from __future__ import annotations

from typing import Callable, Optional

from .base import GenerationError, LLMRequest, post_json, require_text


class AnthropicBackend:
    """Executes prompts against ``{base_url}/v1/messages``."""

    DEFAULT_BASE_URL = "https://api.anthropic.com"
    DEFAULT_MODEL = "claude-3-5-haiku-20241022"
    API_VERSION = "2023-06-01"

    def __init__(
        self,
        model: str | None = None,
        *,
        api_key: str | None = None,
        base_url: str | None = None,
        max_tokens: Optional[int] = 1000,
        temperature: Optional[float] = None,
        request_timeout: Optional[float] = 60.0,
        runner: Callable[[LLMRequest], str] | None = None,
    ) -> None:
        self.model = model or self.DEFAULT_MODEL
        self.api_key = api_key
        self.base_url = (base_url or self.DEFAULT_BASE_URL).rstrip("/")
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.request_timeout = request_timeout
        self._runner = runner or self._http_runner

    def generate(self, prompt: str, max_tokens: Optional[int] = None) -> str:
        request = LLMRequest(
            prompt=prompt,
            model=self.model,
            max_tokens=max_tokens if max_tokens is not None else self.max_tokens,
            temperature=self.temperature,
            api_key=self.api_key,
            base_url=self.base_url,
            request_timeout=self.request_timeout,
        )
        return self._runner(request)

    @staticmethod
    def _http_runner(request: LLMRequest) -> str:
        if not request.api_key:
            raise GenerationError("Anthropic backend requires an API key")
        payload: dict[str, object] = {
            "model": request.model,
            # The Messages API rejects requests without max_tokens.
            "max_tokens": request.max_tokens or 1000,
            "messages": [{"role": "user", "content": request.prompt}],
        }
        if request.temperature is not None:
            payload["temperature"] = request.temperature

        response = post_json(
            f"{request.base_url}/v1/messages",
            payload,
            headers={
                "x-api-key": request.api_key,
                "anthropic-version": AnthropicBackend.API_VERSION,
            },
            timeout=request.request_timeout,
            label="Anthropic",
        )
        return require_text(AnthropicBackend._extract_content(response), "Anthropic")

    @staticmethod
    def _extract_content(payload: dict[str, object]) -> str:
        blocks = payload.get("content")
        if not isinstance(blocks, list):
            return ""
        texts = [
            block["text"]
            for block in blocks
            if isinstance(block, dict) and block.get("type") == "text" and isinstance(block.get("text"), str)
        ]
        return "".join(texts)


__all__ = ["AnthropicBackend"]
