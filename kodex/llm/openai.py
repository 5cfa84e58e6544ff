"""OpenAI chat completions backend (also any OpenAI-compatible server)."""

from __future__ import annotations

from typing import Callable, Optional

from .base import GenerationError, LLMRequest, post_json, require_text


class OpenAIBackend:
    """Executes prompts against ``{base_url}/chat/completions``."""

    DEFAULT_BASE_URL = "https://api.openai.com/v1"
    DEFAULT_MODEL = "gpt-4o-mini"

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
        if not request.base_url:
            raise GenerationError("OpenAI backend requires a base_url")
        payload: dict[str, object] = {
            "model": request.model,
            "messages": [{"role": "user", "content": request.prompt}],
        }
        if request.temperature is not None:
            payload["temperature"] = request.temperature
        if request.max_tokens is not None:
            payload["max_tokens"] = request.max_tokens

        headers = {}
        if request.api_key:
            headers["Authorization"] = f"Bearer {request.api_key}"

        response = post_json(
            f"{request.base_url}/chat/completions",
            payload,
            headers=headers,
            timeout=request.request_timeout,
            label="OpenAI",
        )
        return require_text(OpenAIBackend._extract_content(response), "OpenAI")

    @staticmethod
    def _extract_content(payload: dict[str, object]) -> str:
        choices = payload.get("choices")
        if not isinstance(choices, list) or not choices:
            return ""
        first = choices[0]
        if not isinstance(first, dict):
            return ""
        message = first.get("message")
        if isinstance(message, dict):
            content = message.get("content")
            if isinstance(content, str):
                return content
        text = first.get("text")
        if isinstance(text, str):
            return text
        return ""


__all__ = ["OpenAIBackend"]
