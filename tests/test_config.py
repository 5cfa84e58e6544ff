"""Tests for kodex.config."""

from __future__ import annotations

from pathlib import Path

import pytest

from kodex.config import (
    ConfigError,
    KodexConfig,
    LLMConfig,
    load_config,
    resolve_api_key,
    write_default_config,
)


def test_load_config_requires_a_config_file(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="kodex init"):
        load_config(tmp_path)


def test_load_config_parses_expected_fields(tmp_path: Path) -> None:
    config_file = tmp_path / "kodex.config.yaml"
    config_file.write_text(
        """
name: "Acme Cloud"
version: "2.1.0"
scan:
  include:
    - "app/**/*.{ts,tsx}"
  exclude:
    - "**/*.stories.*"
  framework: NextJS
  workers: 3
docs:
  outputDir: "help"
  format: markdown
  topics: [authentication, billing]
  customTopics:
    - id: reports.exports
      name: Report exports
      patterns: ["report", "pdf"]
      prompt: Mention the PDF option.
llm:
  provider: openai
  model: gpt-4o-mini
  apiKey: ${ACME_KEY}
  maxTokens: 800
  temperature: 0.2
  baseUrl: "http://localhost:11434/v1"
  requestTimeout: 30
  concurrency: 2
dashboard:
  host: 0.0.0.0
  port: 4000
""",
        encoding="utf-8",
    )

    config = load_config(tmp_path)

    assert isinstance(config, KodexConfig)
    assert config.root == tmp_path.resolve()
    assert config.config_path == config_file.resolve()
    assert config.name == "Acme Cloud"
    assert config.version == "2.1.0"
    assert config.scan.include == ["app/**/*.{ts,tsx}"]
    assert config.scan.exclude == ["**/*.stories.*"]
    assert config.scan.framework == "nextjs"
    assert config.scan.workers == 3
    assert config.docs.output_dir == "help"
    assert config.docs.format == "markdown"
    assert config.docs.topics == ["authentication", "billing"]
    [custom] = config.docs.custom_topics
    assert custom.id == "reports.exports"
    assert custom.patterns == ["report", "pdf"]
    assert custom.prompt == "Mention the PDF option."
    assert config.llm.provider == "openai"
    assert config.llm.api_key == "${ACME_KEY}"
    assert config.llm.max_tokens == 800
    assert config.llm.temperature == 0.2
    assert config.llm.base_url == "http://localhost:11434/v1"
    assert config.llm.request_timeout == 30.0
    assert config.llm.concurrency == 2
    assert config.dashboard.host == "0.0.0.0"
    assert config.dashboard.port == 4000


def test_load_config_applies_defaults(tmp_path: Path) -> None:
    (tmp_path / "kodex.config.yaml").write_text("name: Demo\n", encoding="utf-8")

    config = load_config(tmp_path)

    assert config.scan.include == ["src/**/*.{ts,tsx,js,jsx}"]
    assert config.scan.exclude == ["**/*.test.*", "**/*.spec.*", "**/node_modules/**"]
    assert config.scan.framework == "auto"
    assert config.docs.output_dir == ".kodex/docs"
    assert config.docs.format == "both"
    assert config.docs.topics == ["authentication", "navigation", "data", "settings", "errors"]
    assert config.llm.provider == "anthropic"
    assert config.llm.max_tokens == 1000
    assert config.dashboard.port == 3333


def test_load_config_reads_json_rc_file(tmp_path: Path) -> None:
    (tmp_path / ".kodexrc.json").write_text(
        '{"name": "Json App", "scan": {"framework": "express"}, "llm": {"provider": "mock"}}',
        encoding="utf-8",
    )

    config = load_config(tmp_path)

    assert config.name == "Json App"
    assert config.scan.framework == "express"
    assert config.llm.provider == "mock"


def test_yaml_file_takes_precedence_over_rc_files(tmp_path: Path) -> None:
    (tmp_path / ".kodexrc").write_text("name: Rc\n", encoding="utf-8")
    (tmp_path / "kodex.config.yml").write_text("name: Yml\n", encoding="utf-8")

    assert load_config(tmp_path).name == "Yml"


@pytest.mark.parametrize(
    ("body", "message"),
    [
        ("scan:\n  framework: angular\n", "scan.framework"),
        ("scan:\n  include: []\n", "scan.include"),
        ("docs:\n  format: html\n", "docs.format"),
        ("docs:\n  topics: []\n", "docs.topics"),
        ("docs:\n  customTopics:\n    - id: x.y\n      patterns: []\n", "custom topics"),
        ("docs:\n  customTopics:\n    - id: x.y\n      patterns: [\"/(unclosed/\"]\n", "invalid regex"),
        ("llm:\n  provider: cohere\n", "unknown LLM provider"),
        ("llm:\n  model: null\n", "llm.model"),
        ("llm:\n  maxTokens: 0\n", "maxTokens"),
        ("- just\n- a list\n", "mapping"),
        ("scan: [unclosed\n", "Failed to parse"),
    ],
)
def test_invalid_configuration_is_rejected(tmp_path: Path, body: str, message: str) -> None:
    (tmp_path / "kodex.config.yaml").write_text(body, encoding="utf-8")

    with pytest.raises(ConfigError, match=message):
        load_config(tmp_path)


def test_resolve_api_key_prefers_env_reference(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ACME_KEY", "secret-from-env")

    assert resolve_api_key(LLMConfig(provider="openai", api_key="${ACME_KEY}")) == "secret-from-env"


def test_resolve_api_key_unset_reference_fails(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("MISSING_KEY", raising=False)

    with pytest.raises(ConfigError, match="MISSING_KEY"):
        resolve_api_key(LLMConfig(api_key="${MISSING_KEY}"))


def test_resolve_api_key_uses_literal_then_provider_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-ant")

    assert resolve_api_key(LLMConfig(api_key="literal")) == "literal"
    assert resolve_api_key(LLMConfig(provider="anthropic")) == "sk-ant"


def test_resolve_api_key_missing_fails_for_hosted_providers(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("GOOGLE_API_KEY", raising=False)
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)

    with pytest.raises(ConfigError, match="GOOGLE_API_KEY"):
        resolve_api_key(LLMConfig(provider="google", model="gemini-1.5-flash"))
    assert resolve_api_key(LLMConfig(provider="openai", base_url="http://localhost:1234/v1")) is None
    assert resolve_api_key(LLMConfig(provider="ollama")) is None
    assert resolve_api_key(LLMConfig(provider="mock")) is None


def test_write_default_config_round_trips(tmp_path: Path) -> None:
    path = write_default_config(tmp_path, name="Acme")

    config = load_config(path)

    assert path.name == "kodex.config.yaml"
    assert config.name == "Acme"
    assert "**/__tests__/**" in config.scan.exclude
    assert config.dashboard.port == 3333


def test_write_default_config_refuses_to_overwrite(tmp_path: Path) -> None:
    write_default_config(tmp_path)

    with pytest.raises(FileExistsError, match="--force"):
        write_default_config(tmp_path)
    assert write_default_config(tmp_path, name="Replaced", force=True).exists()
    assert load_config(tmp_path).name == "Replaced"
