"""Tests for the generation backends and the backend factory."""

from __future__ import annotations

import io
import json
import subprocess
from urllib.error import HTTPError, URLError

import pytest

from kodex.config import ConfigError, LLMConfig
from kodex.llm import (
    AnthropicBackend,
    GenerationError,
    GoogleBackend,
    MockBackend,
    OllamaBackend,
    OpenAIBackend,
    create_backend,
)


class FakeResponse:
    def __init__(self, payload):
        self._payload = payload

    def read(self):
        return json.dumps(self._payload).encode("utf-8")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return False


def _capture_urlopen(monkeypatch, payload):
    captured = {}

    def fake_urlopen(request, timeout):  # type: ignore[no-untyped-def]
        captured["url"] = request.full_url
        captured["headers"] = {key.lower(): value for key, value in request.header_items()}
        captured["body"] = json.loads(request.data.decode("utf-8"))
        captured["timeout"] = timeout
        return FakeResponse(payload)

    monkeypatch.setattr("kodex.llm.base.urlopen", fake_urlopen)
    return captured


def test_openai_backend_posts_chat_completion(monkeypatch) -> None:
    captured = _capture_urlopen(
        monkeypatch, {"choices": [{"message": {"role": "assistant", "content": " Hello there "}}]}
    )

    backend = OpenAIBackend("gpt-4o-mini", api_key="sk-test", temperature=0.1, request_timeout=12.0)
    result = backend.generate("Write docs", max_tokens=256)

    assert result == "Hello there"
    assert captured["url"] == "https://api.openai.com/v1/chat/completions"
    assert captured["headers"]["authorization"] == "Bearer sk-test"
    assert captured["headers"]["content-type"] == "application/json"
    assert captured["body"] == {
        "model": "gpt-4o-mini",
        "messages": [{"role": "user", "content": "Write docs"}],
        "temperature": 0.1,
        "max_tokens": 256,
    }
    assert captured["timeout"] == 12.0


def test_openai_backend_works_without_key_for_compatible_servers(monkeypatch) -> None:
    captured = _capture_urlopen(monkeypatch, {"choices": [{"text": "completion"}]})

    backend = OpenAIBackend("local", base_url="http://localhost:1234/v1/")

    assert backend.generate("Hi") == "completion"
    assert captured["url"] == "http://localhost:1234/v1/chat/completions"
    assert "authorization" not in captured["headers"]
    assert captured["body"]["max_tokens"] == 1000


def test_anthropic_backend_sends_version_headers(monkeypatch) -> None:
    captured = _capture_urlopen(
        monkeypatch,
        {"content": [{"type": "text", "text": "Part one. "}, {"type": "text", "text": "Part two."}]},
    )

    backend = AnthropicBackend(api_key="sk-ant", max_tokens=900)
    result = backend.generate("Explain 2FA")

    assert result == "Part one. Part two."
    assert captured["url"] == "https://api.anthropic.com/v1/messages"
    assert captured["headers"]["x-api-key"] == "sk-ant"
    assert captured["headers"]["anthropic-version"] == "2023-06-01"
    assert captured["body"]["model"] == AnthropicBackend.DEFAULT_MODEL
    assert captured["body"]["max_tokens"] == 900


def test_anthropic_backend_requires_api_key() -> None:
    with pytest.raises(GenerationError, match="API key"):
        AnthropicBackend().generate("prompt")


def test_google_backend_targets_generate_content(monkeypatch) -> None:
    captured = _capture_urlopen(
        monkeypatch, {"candidates": [{"content": {"parts": [{"text": "Gemini says hi"}]}}]}
    )

    backend = GoogleBackend("gemini-1.5-flash", api_key="g-key", temperature=0.3)
    result = backend.generate("Hello", max_tokens=64)

    assert result == "Gemini says hi"
    assert captured["url"] == (
        "https://generativelanguage.googleapis.com/v1beta/models/gemini-1.5-flash:generateContent"
    )
    assert captured["headers"]["x-goog-api-key"] == "g-key"
    assert captured["body"]["contents"] == [{"role": "user", "parts": [{"text": "Hello"}]}]
    assert captured["body"]["generationConfig"] == {"maxOutputTokens": 64, "temperature": 0.3}


def test_http_errors_become_generation_errors(monkeypatch) -> None:
    def failing_urlopen(request, timeout):  # type: ignore[no-untyped-def]
        raise HTTPError(request.full_url, 429, "Too Many Requests", {}, io.BytesIO(b"rate limited"))

    monkeypatch.setattr("kodex.llm.base.urlopen", failing_urlopen)

    with pytest.raises(GenerationError, match="429: rate limited"):
        OpenAIBackend(api_key="sk").generate("prompt")


def test_connection_errors_become_generation_errors(monkeypatch) -> None:
    def unreachable(request, timeout):  # type: ignore[no-untyped-def]
        raise URLError("connection refused")

    monkeypatch.setattr("kodex.llm.base.urlopen", unreachable)

    with pytest.raises(GenerationError, match="connection refused"):
        GoogleBackend(api_key="g").generate("prompt")


def test_empty_completion_is_an_error(monkeypatch) -> None:
    _capture_urlopen(monkeypatch, {"choices": []})

    with pytest.raises(GenerationError, match="empty response"):
        OpenAIBackend(api_key="sk").generate("prompt")


def test_runner_receives_request_fields() -> None:
    captured = {}

    def fake_runner(request):  # type: ignore[no-untyped-def]
        captured.update(vars(request))
        return "response"

    backend = OpenAIBackend(
        "custom-model",
        api_key="sk",
        base_url="http://proxy/v1",
        max_tokens=500,
        temperature=0.15,
        request_timeout=42.0,
        runner=fake_runner,
    )

    assert backend.generate("Hello world", max_tokens=200) == "response"
    assert captured == {
        "prompt": "Hello world",
        "model": "custom-model",
        "max_tokens": 200,
        "temperature": 0.15,
        "api_key": "sk",
        "base_url": "http://proxy/v1",
        "request_timeout": 42.0,
        "executable": None,
    }


def test_ollama_backend_invokes_cli(monkeypatch) -> None:
    recorded = {}

    def fake_run(args, check, capture_output, text, timeout):  # type: ignore[no-untyped-def]
        recorded["args"] = list(args)
        recorded["timeout"] = timeout

        class _Completed:
            stdout = "ollama answer\n"

        return _Completed()

    monkeypatch.setattr("kodex.llm.ollama.subprocess.run", fake_run)

    backend = OllamaBackend("llama3.1", executable="/usr/local/bin/ollama", request_timeout=30.0)

    assert backend.generate("Summarise") == "ollama answer"
    assert recorded["args"] == ["/usr/local/bin/ollama", "run", "llama3.1", "Summarise"]
    assert recorded["timeout"] == 30.0


def test_ollama_timeout_is_reported(monkeypatch) -> None:
    def slow_run(args, **kwargs):  # type: ignore[no-untyped-def]
        raise subprocess.TimeoutExpired(args, kwargs.get("timeout"))

    monkeypatch.setattr("kodex.llm.ollama.subprocess.run", slow_run)

    with pytest.raises(GenerationError, match="did not answer"):
        OllamaBackend(request_timeout=1.0).generate("prompt")


def test_mock_backend_builds_article_from_prompt() -> None:
    prompt = "\n".join(
        [
            'Generate a help article for: "password reset"',
            "Pages:",
            "  - /forgot-password",
            "    UI elements:",
            '      - [button] "Send reset link"',
        ]
    )
    backend = MockBackend()

    article = json.loads(backend.generate(prompt))

    assert article["title"] == "Password reset"
    assert article["pages"] == ["/forgot-password"]
    assert "- Send reset link" in article["content"]
    assert backend.prompts == [prompt]


def test_create_backend_selects_provider(monkeypatch) -> None:
    monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-env")

    anthropic = create_backend(LLMConfig(provider="anthropic", max_tokens=700))
    ollama = create_backend(LLMConfig(provider="ollama", model="mistral", executable="ollama-dev"))

    assert isinstance(anthropic, AnthropicBackend)
    assert anthropic.api_key == "sk-env"
    assert anthropic.max_tokens == 700
    assert isinstance(ollama, OllamaBackend)
    assert (ollama.model, ollama.executable) == ("mistral", "ollama-dev")
    assert isinstance(create_backend(LLMConfig(provider="mock")), MockBackend)
    assert isinstance(create_backend(LLMConfig(provider="anthropic"), mock=True), MockBackend)


def test_create_backend_requires_hosted_api_key(monkeypatch) -> None:
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)

    with pytest.raises(ConfigError, match="OPENAI_API_KEY"):
        create_backend(LLMConfig(provider="openai", model="gpt-4o-mini"))
