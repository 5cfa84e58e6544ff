"""Configuration loading for kodex (kodex.config.yaml)."""

from __future__ import annotations

import json
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence

import yaml

CONFIG_FILENAMES: tuple[str, ...] = (
    "kodex.config.yaml",
    "kodex.config.yml",
    "kodex.config.json",
    ".kodexrc",
    ".kodexrc.yaml",
    ".kodexrc.yml",
    ".kodexrc.json",
)

FRAMEWORKS = ("react", "nextjs", "express", "auto")
DOC_FORMATS = ("markdown", "json", "both")
PROVIDERS = ("anthropic", "openai", "google", "ollama", "mock")

PROVIDER_API_KEY_ENV: dict[str, str] = {
    "anthropic": "ANTHROPIC_API_KEY",
    "openai": "OPENAI_API_KEY",
    "google": "GOOGLE_API_KEY",
}

DEFAULT_INCLUDE: tuple[str, ...] = ("src/**/*.{ts,tsx,js,jsx}",)
DEFAULT_EXCLUDE: tuple[str, ...] = ("**/*.test.*", "**/*.spec.*", "**/node_modules/**")
DEFAULT_TOPICS: tuple[str, ...] = ("authentication", "navigation", "data", "settings", "errors")


class ConfigError(RuntimeError):
    """Raised when the configuration is missing, unparsable, or invalid."""


@dataclass
class ScanConfig:
    """Which files to scan and how to interpret them."""

    include: List[str] = field(default_factory=lambda: list(DEFAULT_INCLUDE))
    exclude: List[str] = field(default_factory=lambda: list(DEFAULT_EXCLUDE))
    framework: str = "auto"
    workers: Optional[int] = None


@dataclass
class CustomTopic:
    """User-defined topic extending the built-in feature catalog."""

    id: str
    name: str
    patterns: List[str] = field(default_factory=list)
    prompt: Optional[str] = None


@dataclass
class DocsConfig:
    """Where generated docs go and which topic categories are eligible."""

    output_dir: str = ".kodex/docs"
    format: str = "both"
    topics: List[str] = field(default_factory=lambda: list(DEFAULT_TOPICS))
    custom_topics: List[CustomTopic] = field(default_factory=list)


@dataclass
class LLMConfig:
    """Generation backend settings."""

    provider: str = "anthropic"
    model: Optional[str] = "claude-3-5-haiku-20241022"
    api_key: Optional[str] = None
    max_tokens: int = 1000
    temperature: Optional[float] = None
    base_url: Optional[str] = None
    request_timeout: float = 60.0
    concurrency: int = 4
    executable: Optional[str] = None


@dataclass
class DashboardConfig:
    """Settings for `kodex serve`."""

    host: str = "127.0.0.1"
    port: int = 3333


@dataclass
class KodexConfig:
    """Represents the settings defined in kodex.config.yaml."""

    root: Path
    name: str = "My Product"
    version: str = "1.0.0"
    scan: ScanConfig = field(default_factory=ScanConfig)
    docs: DocsConfig = field(default_factory=DocsConfig)
    llm: LLMConfig = field(default_factory=LLMConfig)
    dashboard: DashboardConfig = field(default_factory=DashboardConfig)
    config_path: Optional[Path] = None


def regex_body(pattern: str) -> Optional[str]:
    """Return the regex inside a ``/.../`` custom pattern, or None for a plain substring."""
    if len(pattern) > 2 and pattern.startswith("/") and pattern.endswith("/"):
        return pattern[1:-1]
    return None


def find_config_file(root: Path) -> Optional[Path]:
    """Return the first known configuration file under ``root``."""
    for name in CONFIG_FILENAMES:
        candidate = root / name
        if candidate.is_file():
            return candidate
    return None


def load_config(path: Path | str, *, validate: bool = True) -> KodexConfig:
    """Load configuration from a project directory or an explicit config file."""
    target = Path(path).expanduser()
    if target.is_dir():
        root = target.resolve()
        config_file = find_config_file(root)
        if config_file is None:
            raise ConfigError("No kodex configuration found. Run: kodex init")
    else:
        config_file = target.resolve()
        root = config_file.parent
        if not config_file.exists():
            raise ConfigError(f"Configuration file not found: {config_file}")

    data = _read_config(config_file)
    if not isinstance(data, dict):
        raise ConfigError(f"{config_file.name} must contain a mapping at the root")

    config = _build_config(root, data)
    config.config_path = config_file
    if validate:
        validate_config(config)
    return config


def validate_config(config: KodexConfig) -> None:
    """Raise ConfigError when required scan, topic, or backend settings are unusable."""
    scan = config.scan
    if not scan.include:
        raise ConfigError("Configuration error: scan.include must list at least one glob")
    if scan.framework not in FRAMEWORKS:
        raise ConfigError(
            f"Configuration error: scan.framework must be one of {', '.join(FRAMEWORKS)}"
        )
    if scan.workers is not None and scan.workers < 1:
        raise ConfigError("Configuration error: scan.workers must be a positive integer")

    docs = config.docs
    if docs.format not in DOC_FORMATS:
        raise ConfigError(
            f"Configuration error: docs.format must be one of {', '.join(DOC_FORMATS)}"
        )
    if not docs.topics:
        raise ConfigError("Configuration error: docs.topics must list at least one category")
    for topic in docs.custom_topics:
        if not topic.id or not topic.patterns:
            raise ConfigError(
                "Configuration error: custom topics require an id and at least one pattern"
            )
        for pattern in topic.patterns:
            body = regex_body(pattern)
            if body is None:
                continue
            try:
                re.compile(body)
            except re.error as exc:
                raise ConfigError(
                    f"Configuration error: custom topic '{topic.id}' has an invalid regex {pattern}: {exc}"
                ) from exc

    llm = config.llm
    if not llm.provider:
        raise ConfigError("Configuration error: llm.provider is required")
    if llm.provider not in PROVIDERS:
        raise ConfigError(f"Configuration error: unknown LLM provider '{llm.provider}'")
    if not llm.model and llm.provider != "mock":
        raise ConfigError("Configuration error: llm.model is required")
    if llm.max_tokens <= 0:
        raise ConfigError("Configuration error: llm.maxTokens must be positive")
    if llm.concurrency < 1:
        raise ConfigError("Configuration error: llm.concurrency must be at least 1")


def resolve_api_key(llm: LLMConfig) -> Optional[str]:
    """Return the API key for the configured provider.

    ``${VAR}`` references are resolved from the environment; without an explicit
    key the provider's standard variable is consulted. Providers that need no key
    (``ollama``, ``mock``, or any OpenAI-compatible ``base_url``) return None when
    nothing is configured.
    """
    if llm.api_key:
        value = llm.api_key.strip()
        if value.startswith("${") and value.endswith("}"):
            env_name = value[2:-1]
            resolved = os.getenv(env_name)
            if not resolved:
                raise ConfigError(f"Environment variable not set: {env_name}")
            return resolved
        return value

    env_name = PROVIDER_API_KEY_ENV.get(llm.provider)
    if env_name is None:
        return None
    resolved = os.getenv(env_name)
    if resolved:
        return resolved
    if llm.provider == "openai" and llm.base_url:
        return None
    raise ConfigError(
        f"No API key found. Set {env_name} environment variable or configure llm.apiKey"
    )


def write_default_config(root: Path, *, name: str | None = None, force: bool = False) -> Path:
    """Write a commented starter kodex.config.yaml and return its path."""
    target = root / CONFIG_FILENAMES[0]
    if target.exists() and not force:
        raise FileExistsError(f"{target.name} already exists. Use --force to overwrite.")

    project_name = name or root.name or "My Product"
    include = "\n".join(f'    - "{pattern}"' for pattern in DEFAULT_INCLUDE)
    exclude = "\n".join(
        f'    - "{pattern}"'
        for pattern in (*DEFAULT_EXCLUDE, "**/__tests__/**", "**/__mocks__/**")
    )
    topics = "\n".join(f"    - {topic}" for topic in DEFAULT_TOPICS)
    defaults = LLMConfig()
    text = (
        "# Kodex configuration\n\n"
        f'name: "{project_name}"\n'
        'version: "1.0.0"\n\n'
        "# What to scan\n"
        "scan:\n"
        "  include:\n"
        f"{include}\n"
        "  exclude:\n"
        f"{exclude}\n"
        "  # Framework hint (react | nextjs | express | auto)\n"
        "  framework: auto\n\n"
        "# Documentation settings\n"
        "docs:\n"
        '  outputDir: ".kodex/docs"\n'
        "  format: both\n"
        "  topics:\n"
        f"{topics}\n\n"
        "# LLM settings\n"
        "llm:\n"
        f"  provider: {defaults.provider}\n"
        f"  model: {defaults.model}\n"
        "  # apiKey: ${ANTHROPIC_API_KEY}  # uses the provider env var by default\n\n"
        "# Dashboard API (kodex serve)\n"
        "dashboard:\n"
        "  port: 3333\n"
    )
    target.write_text(text, encoding="utf-8")
    return target


def _read_config(path: Path) -> Any:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Failed to read {path.name}: {exc}") from exc
    if not text.strip():
        return {}

    if path.suffix == ".json":
        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            raise ConfigError(f"Failed to parse {path.name}: {exc}") from exc

    try:
        loaded = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse {path.name}: {exc}") from exc
    return loaded or {}


def _build_config(root: Path, data: Mapping[str, Any]) -> KodexConfig:
    config = KodexConfig(root=root)
    config.name = _as_str(data.get("name")) or config.name
    config.version = _as_str(data.get("version")) or config.version

    scan_data = _as_dict(data.get("scan"))
    if scan_data:
        if "include" in scan_data:
            config.scan.include = _as_str_list(scan_data.get("include"))
        if "exclude" in scan_data:
            config.scan.exclude = _as_str_list(scan_data.get("exclude"))
        config.scan.framework = (_as_str(scan_data.get("framework")) or "auto").lower()
        config.scan.workers = _as_int(scan_data.get("workers"))

    docs_data = _as_dict(data.get("docs"))
    if docs_data:
        output_dir = _as_str(_pick(docs_data, "output_dir", "outputDir"))
        if output_dir:
            config.docs.output_dir = output_dir
        doc_format = _as_str(docs_data.get("format"))
        if doc_format:
            config.docs.format = doc_format.lower()
        if "topics" in docs_data:
            config.docs.topics = _as_str_list(docs_data.get("topics"))
        config.docs.custom_topics = _parse_custom_topics(
            _pick(docs_data, "custom_topics", "customTopics")
        )

    llm_data = _as_dict(data.get("llm"))
    if llm_data:
        llm = config.llm
        provider = _as_str(llm_data.get("provider"))
        if provider:
            llm.provider = provider.lower()
        if "model" in llm_data:
            llm.model = _as_str(llm_data.get("model"))
        llm.api_key = _as_str(_pick(llm_data, "api_key", "apiKey"))
        max_tokens = _as_int(_pick(llm_data, "max_tokens", "maxTokens"))
        if max_tokens is not None:
            llm.max_tokens = max_tokens
        llm.temperature = _as_float(llm_data.get("temperature"))
        llm.base_url = _as_str(_pick(llm_data, "base_url", "baseUrl"))
        timeout = _as_float(_pick(llm_data, "request_timeout", "requestTimeout"))
        if timeout is not None:
            llm.request_timeout = timeout
        concurrency = _as_int(llm_data.get("concurrency"))
        if concurrency is not None:
            llm.concurrency = concurrency
        llm.executable = _as_str(llm_data.get("executable"))

    dashboard_data = _as_dict(data.get("dashboard"))
    if dashboard_data:
        config.dashboard.host = _as_str(dashboard_data.get("host")) or config.dashboard.host
        port = _as_int(dashboard_data.get("port"))
        if port is not None:
            config.dashboard.port = port

    return config


def _parse_custom_topics(value: Any) -> List[CustomTopic]:
    if not isinstance(value, list):
        return []
    topics: List[CustomTopic] = []
    for entry in value:
        if not isinstance(entry, dict):
            continue
        topic_id = _as_str(entry.get("id"))
        if not topic_id:
            continue
        topics.append(
            CustomTopic(
                id=topic_id,
                name=_as_str(entry.get("name")) or topic_id,
                patterns=_as_str_list(entry.get("patterns")),
                prompt=_as_str(entry.get("prompt")),
            )
        )
    return topics


def _pick(mapping: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in mapping:
            return mapping[key]
    return None


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_str(value: Any) -> Optional[str]:
    if isinstance(value, bool):
        return str(value).lower()
    return str(value) if isinstance(value, (str, int, float)) else None


def _as_float(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return None
    return None


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            return None
    return None


def _as_str_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, Sequence):
        return [str(item) for item in value if isinstance(item, (str, int, float))]
    return []


__all__ = [
    "CONFIG_FILENAMES",
    "ConfigError",
    "CustomTopic",
    "DashboardConfig",
    "DocsConfig",
    "KodexConfig",
    "LLMConfig",
    "ScanConfig",
    "find_config_file",
    "load_config",
    "resolve_api_key",
    "validate_config",
    "write_default_config",
]
