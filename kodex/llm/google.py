"""Google Gemini ``generateContent`` backend."""

from __future__ import annotations

from typing import Callable, Optional
from urllib.parse import quote

from .base import GenerationError, LLMRequest, post_json, require_text


class GoogleBackend:
    """Executes prompts against ``{base_url}/models/{model}:generateContent``."""

    DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
    DEFAULT_MODEL = "gemini-1.5-flash"

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
            raise GenerationError("Google backend requires an API key")
        generation_config: dict[str, object] = {}
        if request.max_tokens is not None:
            generation_config["maxOutputTokens"] = request.max_tokens
        if request.temperature is not None:
            generation_config["temperature"] = request.temperature
        payload: dict[str, object] = {
            "contents": [{"role": "user", "parts": [{"text": request.prompt}]}],
        }
        if generation_config:
            payload["generationConfig"] = generation_config

        response = post_json(
            f"{request.base_url}/models/{quote(str(request.model))}:generateContent",
            payload,
            headers={"x-goog-api-key": request.api_key},
            timeout=request.request_timeout,
            label="Google",
        )
        return require_text(GoogleBackend._extract_content(response), "Google")

    @staticmethod
    def _extract_content(payload: dict[str, object]) -> str:
        candidates = payload.get("candidates")
        if not isinstance(candidates, list) or not candidates:
            return ""
        first = candidates[0]
        if not isinstance(first, dict):
            return ""
        content = first.get("content")
        if not isinstance(content, dict):
            return ""
        parts = content.get("parts")
        if not isinstance(parts, list):
            return ""
        return "".join(
            part["text"] for part in parts if isinstance(part, dict) and isinstance(part.get("text"), str)
        )


__all__ = ["GoogleBackend"]
