"""Backend protocol, request record, and the shared JSON-over-HTTP transport."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Protocol, runtime_checkable
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen


class GenerationError(RuntimeError):
    """Raised when a backend cannot produce text for a prompt."""


@runtime_checkable
class LLMBackend(Protocol):
    """Anything that turns a prompt into text."""

    def generate(self, prompt: str, max_tokens: Optional[int] = None) -> str:
        ...


@dataclass
class LLMRequest:
    """Represents one inference request."""

    prompt: str
    model: Optional[str]
    max_tokens: Optional[int] = None
    temperature: Optional[float] = None
    api_key: Optional[str] = None
    base_url: Optional[str] = None
    request_timeout: Optional[float] = None
    executable: Optional[str] = None


def post_json(
    url: str,
    payload: Mapping[str, Any],
    *,
    headers: Optional[Mapping[str, str]] = None,
    timeout: Optional[float] = 60.0,
    label: str = "LLM",
) -> Dict[str, Any]:
    """POST ``payload`` as JSON and return the decoded JSON object."""
    data = json.dumps(payload).encode("utf-8")
    all_headers = {"Content-Type": "application/json"}
    all_headers.update(headers or {})
    http_request = Request(url, data=data, headers=all_headers, method="POST")

    try:
        with urlopen(http_request, timeout=timeout or 60.0) as response:  # type: ignore[arg-type]
            raw = response.read()
    except HTTPError as exc:
        detail = exc.read().decode("utf-8", errors="ignore") if hasattr(exc, "read") else ""
        message = detail.strip() or exc.reason
        raise GenerationError(f"{label} request failed with status {exc.code}: {message}") from exc
    except URLError as exc:
        raise GenerationError(f"{label} request failed: {exc.reason}") from exc
    except TimeoutError as exc:
        raise GenerationError(f"{label} request timed out after {timeout}s") from exc

    try:
        decoded = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise GenerationError(f"{label} returned invalid JSON") from exc
    if not isinstance(decoded, dict):
        raise GenerationError(f"{label} returned an unexpected payload")
    return decoded


def require_text(content: str, label: str) -> str:
    if not content or not content.strip():
        raise GenerationError(f"{label} returned an empty response")
    return content.strip()


__all__ = ["GenerationError", "LLMBackend", "LLMRequest", "post_json", "require_text"]
