"""Turns a generation plan into knowledge items by prompting a backend."""

from __future__ import annotations

import json
import re
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List, Optional, Sequence

from jinja2 import Environment, FileSystemLoader

from .llm.base import GenerationError, LLMBackend
from .logging import get_logger
from .models import CodeMap, DetectedFeature, KnowledgeBase, KnowledgeItem
from .planner import (
    CREATE,
    UPDATE,
    GeneratedArticle,
    PlannedTopic,
    apply_generated,
    plan_generation,
)
from .scanner.features import DEFAULT_CATALOG, FeatureCatalog, display_name

_TEMPLATE_NAME = "article.j2"
_FENCED_JSON_RE = re.compile(r"```(?:json)?\s*(\{.*\})\s*```", re.DOTALL)


@dataclass
class GenerationResult:
    """Batch summary of one generation run."""

    items: List[KnowledgeItem]
    generated: int = 0
    updated: int = 0
    skipped: int = 0
    tokens_used: int = 0
    failures: List[str] = field(default_factory=list)
    plan: List[PlannedTopic] = field(default_factory=list)


def estimate_tokens(context: str, content: str) -> int:
    return round((len(context) + len(content)) / 4)


def parse_response(text: str, fallback_title: str) -> GeneratedArticle:
    """Parse a ``{title, pages, content}`` payload, falling back to the raw text."""
    payload = _load_json_object(text)
    if payload is None:
        return GeneratedArticle(title=fallback_title, pages=[], content=text.strip())
    title = payload.get("title")
    content = payload.get("content")
    pages = payload.get("pages")
    return GeneratedArticle(
        title=title.strip() if isinstance(title, str) and title.strip() else fallback_title,
        pages=[page for page in pages if isinstance(page, str)] if isinstance(pages, list) else [],
        content=content if isinstance(content, str) and content.strip() else text.strip(),
    )


def _load_json_object(text: str) -> Optional[dict[str, Any]]:
    candidates = [text.strip()]
    fenced = _FENCED_JSON_RE.search(text)
    if fenced:
        candidates.append(fenced.group(1))
    for candidate in candidates:
        try:
            loaded = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(loaded, dict):
            return loaded
    return None


class DocGenerator:
    """Plans topics against the knowledge base and writes articles for them."""

    WORD_LIMIT = 500

    def __init__(
        self,
        backend: LLMBackend,
        *,
        product_name: str = "My Product",
        max_tokens: Optional[int] = 1000,
        concurrency: int = 4,
        catalog: FeatureCatalog = DEFAULT_CATALOG,
        templates_dir: Path | None = None,
    ) -> None:
        self.backend = backend
        self.product_name = product_name
        self.max_tokens = max_tokens
        self.concurrency = max(1, concurrency)
        self.catalog = catalog
        self.templates_dir = templates_dir or Path(__file__).with_name("templates")
        self._env = Environment(
            loader=FileSystemLoader(str(self.templates_dir)),
            autoescape=False,
            trim_blocks=True,
            lstrip_blocks=True,
        )
        self.logger = get_logger("generator")

    def display_name(self, feature: DetectedFeature) -> str:
        entry = self.catalog.get(feature.id)
        return entry.display_name if entry is not None else display_name(feature.id)

    def render_prompt(self, feature: DetectedFeature, context: str) -> str:
        entry = self.catalog.get(feature.id)
        template = self._env.get_template(_TEMPLATE_NAME)
        return template.render(
            product_name=self.product_name,
            topic_name=self.display_name(feature),
            topic_prompt=entry.prompt if entry is not None else None,
            context=context,
            word_limit=self.WORD_LIMIT,
        )

    def generate_article(self, planned: PlannedTopic) -> GeneratedArticle:
        """Call the backend for one planned topic; raises GenerationError on failure."""
        prompt = self.render_prompt(planned.feature, planned.context or "")
        text = self.backend.generate(prompt, max_tokens=self.max_tokens)
        return parse_response(text, self.display_name(planned.feature))

    def generate(
        self,
        code_map: CodeMap,
        knowledge_base: KnowledgeBase,
        topics: Sequence[str],
        *,
        changed_only: bool = False,
        dry_run: bool = False,
    ) -> GenerationResult:
        """Generate or refresh articles for every eligible detected topic.

        A failure for one topic is logged and counted as skipped; the rest of
        the batch carries on.
        """
        plan = plan_generation(code_map, topics, knowledge_base.items, changed_only=changed_only)
        result = GenerationResult(items=list(knowledge_base.items), plan=plan)
        result.skipped = sum(1 for planned in plan if not planned.needs_generation)
        pending = [planned for planned in plan if planned.needs_generation]

        if dry_run:
            result.generated = sum(1 for planned in pending if planned.action == CREATE)
            result.updated = sum(1 for planned in pending if planned.action == UPDATE)
            return result

        if not pending:
            return result

        with ThreadPoolExecutor(max_workers=min(self.concurrency, len(pending))) as executor:
            futures = [(planned, executor.submit(self.generate_article, planned)) for planned in pending]
            for planned, future in futures:
                topic_id = planned.feature.id
                try:
                    article = future.result()
                except GenerationError as exc:
                    self.logger.warning("Failed to generate doc for %s: %s", topic_id, exc)
                    result.skipped += 1
                    result.failures.append(topic_id)
                    continue
                except Exception as exc:  # pragma: no cover
                    self.logger.warning(
                        "Unexpected error generating doc for %s: %s", topic_id, exc, exc_info=True
                    )
                    result.skipped += 1
                    result.failures.append(topic_id)
                    continue

                item = apply_generated(planned, article, code_map)
                self._merge_item(result, planned, item)
                result.tokens_used += estimate_tokens(planned.context or "", article.content)
                self.logger.debug("Generated %s (%s)", topic_id, planned.action)

        return result

    @staticmethod
    def _merge_item(result: GenerationResult, planned: PlannedTopic, item: KnowledgeItem) -> None:
        if planned.existing is not None:
            for index, current in enumerate(result.items):
                if current.id == planned.existing.id:
                    result.items[index] = item
                    result.updated += 1
                    return
        result.items.append(item)
        result.generated += 1


__all__ = ["DocGenerator", "GenerationResult", "estimate_tokens", "parse_response"]
