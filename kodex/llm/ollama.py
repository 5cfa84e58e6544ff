"""Adapter for a local Ollama installation driven through its CLI."""

from __future__ import annotations

import subprocess
from typing import Callable, Optional

from .base import GenerationError, LLMRequest, require_text


class OllamaBackend:
    """Executes prompts with ``ollama run <model> <prompt>``."""

    DEFAULT_MODEL = "llama3.1"

    def __init__(
        self,
        model: str | None = None,
        *,
        executable: str | None = None,
        request_timeout: Optional[float] = 60.0,
        runner: Callable[[LLMRequest], str] | None = None,
    ) -> None:
        self.model = model or self.DEFAULT_MODEL
        self.executable = executable or "ollama"
        self.request_timeout = request_timeout
        self._runner = runner or self._cli_runner

    def generate(self, prompt: str, max_tokens: Optional[int] = None) -> str:
        request = LLMRequest(
            prompt=prompt,
            model=self.model,
            max_tokens=max_tokens,
            request_timeout=self.request_timeout,
            executable=self.executable,
        )
        return self._runner(request)

    @staticmethod
    def _cli_runner(request: LLMRequest) -> str:
        executable = request.executable or "ollama"
        args = [executable, "run", str(request.model), request.prompt]
        try:
            completed = subprocess.run(
                args,
                check=True,
                capture_output=True,
                text=True,
                timeout=request.request_timeout,
            )
        except FileNotFoundError as exc:  # pragma: no cover - depends on environment
            raise GenerationError(
                f"Unable to locate '{executable}'. Install Ollama or choose another provider."
            ) from exc
        except subprocess.TimeoutExpired as exc:
            raise GenerationError(
                f"Ollama did not answer within {request.request_timeout}s"
            ) from exc
        except subprocess.CalledProcessError as exc:  # pragma: no cover - depends on environment
            raise GenerationError(
                f"Ollama failed with exit code {exc.returncode}: {exc.stderr.strip()}"
            ) from exc
        return require_text(completed.stdout, "Ollama")


__all__ = ["OllamaBackend"]
