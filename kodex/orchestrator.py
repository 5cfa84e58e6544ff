"""Pipeline orchestration: scan, plan, generate, persist."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Optional

from .config import KodexConfig, load_config
from .generator import DocGenerator, GenerationResult
from .llm import GenerationError, LLMBackend, MockBackend, create_backend
from .logging import get_logger, log_duration
from .models import CodeMap, KnowledgeItem
from .planner import UPDATE, PlannedTopic, apply_generated, build_context
from .scanner import DEFAULT_CATALOG, CodeScanner, FeatureCatalog
from .storage import KnowledgeStore, RecordNotFoundError


class ItemPinnedError(RuntimeError):
    """Raised when regeneration is requested for a pinned item."""


@dataclass
class ScanOutcome:
    """Result of a scan run: the fresh code map and the generation summary."""

    code_map: CodeMap
    result: Optional[GenerationResult]
    dry_run: bool = False


class Orchestrator:
    """Coordinates the scan and generation pipelines for a project directory."""

    def __init__(
        self,
        scanner: CodeScanner | None = None,
        backend: LLMBackend | None = None,
        *,
        store_factory: Callable[[KodexConfig], KnowledgeStore] | None = None,
    ) -> None:
        self.scanner = scanner
        self._backend = backend
        self._store_factory = store_factory or KnowledgeStore.from_config
        self.logger = get_logger("orchestrator")

    def run_scan(
        self,
        path: str | Path,
        *,
        changed_only: bool = False,
        dry_run: bool = False,
        generate: bool = True,
        mock: bool = False,
    ) -> ScanOutcome:
        """Scan the project and (re)generate documentation for detected topics.

        Configuration problems raise ConfigError before any file is scanned.
        Nothing is written in dry-run mode.
        """
        repo_path = Path(path).expanduser().resolve()
        self.logger.info("Starting scan for %s", repo_path)
        config = load_config(repo_path)
        catalog = self._catalog_for(config)
        backend = self._resolve_backend(config, mock=mock or dry_run) if generate else None

        store = self._store_factory(config)
        kb = store.load()

        with log_duration(self.logger, "Scan"):
            code_map = self._scanner_for(config, catalog).scan(repo_path, config.scan)
        kb.code_map = code_map
        kb.meta.last_scan_at = _now()

        if backend is None:
            if not dry_run:
                store.save(kb)
            self.logger.info("Scan complete (generation skipped)")
            return ScanOutcome(code_map=code_map, result=None, dry_run=dry_run)

        generator = self._generator_for(config, backend, catalog)
        with log_duration(self.logger, "Generation"):
            result = generator.generate(
                code_map,
                kb,
                config.docs.topics,
                changed_only=changed_only,
                dry_run=dry_run,
            )
        self.logger.info(
            "Generated %d, updated %d, skipped %d (~%d tokens)",
            result.generated,
            result.updated,
            result.skipped,
            result.tokens_used,
        )

        if dry_run:
            self.logger.info("Dry run: no files written")
            return ScanOutcome(code_map=code_map, result=result, dry_run=True)

        kb.items = result.items
        kb.meta.last_generate_at = _now()
        store.save(kb)
        self.logger.info("Knowledge base saved to %s", store.docs_dir)
        return ScanOutcome(code_map=code_map, result=result)

    def regenerate_item(self, path: str | Path, item_id: str, *, mock: bool = False) -> KnowledgeItem:
        """Regenerate one existing item from a fresh scan; pinned items are refused."""
        repo_path = Path(path).expanduser().resolve()
        config = load_config(repo_path)
        catalog = self._catalog_for(config)
        store = self._store_factory(config)
        kb = store.load()

        existing = next((item for item in kb.items if item.id == item_id), None)
        if existing is None:
            raise RecordNotFoundError(f"Document not found: {item_id}")
        if existing.pinned or existing.status == "pinned":
            raise ItemPinnedError(f"{item_id} is pinned; unpin it before regenerating")

        backend = self._resolve_backend(config, mock=mock)
        code_map = self._scanner_for(config, catalog).scan(repo_path, config.scan)
        feature = code_map.feature(existing.topic)
        if feature is None:
            raise GenerationError(f"No evidence for {existing.topic} in the current scan")

        planned = PlannedTopic(
            feature=feature,
            action=UPDATE,
            existing=existing,
            context=build_context(feature, code_map),
        )
        article = self._generator_for(config, backend, catalog).generate_article(planned)
        item = apply_generated(planned, article, code_map)

        kb.items = [item if current.id == item_id else current for current in kb.items]
        kb.code_map = code_map
        kb.meta.last_scan_at = kb.meta.last_generate_at = _now()
        store.save(kb)
        self.logger.info("Regenerated %s (%s)", item_id, existing.topic)
        return item

    @staticmethod
    def _catalog_for(config: KodexConfig) -> FeatureCatalog:
        return DEFAULT_CATALOG.extend(config.docs.custom_topics)

    def _scanner_for(self, config: KodexConfig, catalog: FeatureCatalog) -> CodeScanner:
        if self.scanner is not None:
            return self.scanner
        return CodeScanner(catalog, workers=config.scan.workers)

    def _resolve_backend(self, config: KodexConfig, *, mock: bool) -> LLMBackend:
        if mock:
            return MockBackend()
        if self._backend is not None:
            return self._backend
        return create_backend(config.llm)

    @staticmethod
    def _generator_for(config: KodexConfig, backend: LLMBackend, catalog: FeatureCatalog) -> DocGenerator:
        return DocGenerator(
            backend,
            product_name=config.name,
            max_tokens=config.llm.max_tokens,
            concurrency=config.llm.concurrency,
            catalog=catalog,
        )


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


__all__ = ["ItemPinnedError", "Orchestrator", "ScanOutcome"]
