"""On-disk persistence for knowledge items, gaps, and the cached code map."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml

from .config import DocsConfig, KodexConfig
from .logging import get_logger
from .models import (
    GAP_STATUSES,
    ITEM_STATUSES,
    CodeMap,
    GapItem,
    KnowledgeBase,
    KnowledgeBaseMeta,
    KnowledgeItem,
)

STATE_DIRNAME = ".kodex"
ITEMS_FILENAME = "items.json"
GAPS_FILENAME = "gaps.json"
CODE_MAP_FILENAME = "codemap.json"

_EDITABLE_FIELDS = ("title", "content", "pages", "status")


class StorageError(RuntimeError):
    """Raised when the knowledge base cannot be written."""


class RecordNotFoundError(LookupError):
    """Raised when an item or gap id is unknown."""


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def markdown_path(docs_dir: Path, item: KnowledgeItem) -> Path:
    category, _, name = item.topic.partition(".")
    return docs_dir / category / f"{name or category}.md"


def render_markdown(item: KnowledgeItem) -> str:
    """Render ``item`` as Markdown with a YAML front-matter header."""
    header: Dict[str, Any] = {
        "id": item.id,
        "topic": item.topic,
        "title": item.title,
        "pages": list(item.pages),
        "generated": item.generated_at,
        "status": item.status,
        "confidence": item.confidence,
    }
    if item.human_edited:
        header["humanEdited"] = True
    if item.pinned:
        header["pinned"] = True
    front_matter = yaml.safe_dump(header, sort_keys=False, allow_unicode=True, default_flow_style=None)
    return f"---\n{front_matter}---\n\n{item.content.rstrip()}\n"


class KnowledgeStore:
    """Reads and writes the ``.kodex`` state directory and the docs output."""

    def __init__(
        self,
        root: Path | str,
        docs: DocsConfig | None = None,
        *,
        name: str = "My Product",
        version: str = "1.0.0",
    ) -> None:
        self.root = Path(root).expanduser().resolve()
        self.docs = docs or DocsConfig()
        self.name = name
        self.version = version
        self.logger = get_logger("storage")

    @classmethod
    def from_config(cls, config: KodexConfig) -> "KnowledgeStore":
        return cls(config.root, config.docs, name=config.name, version=config.version)

    @property
    def state_dir(self) -> Path:
        return self.root / STATE_DIRNAME

    @property
    def docs_dir(self) -> Path:
        return self.root / self.docs.output_dir

    # ------------------------------------------------------------------
    # Whole knowledge base

    def load(self) -> KnowledgeBase:
        """Load items, gaps and the cached code map; unreadable files count as empty."""
        items_payload = self._read_json(self.state_dir / ITEMS_FILENAME)
        gaps_payload = self._read_json(self.state_dir / GAPS_FILENAME)

        items: List[KnowledgeItem] = []
        meta = KnowledgeBaseMeta(name=self.name, version=self.version)
        if isinstance(items_payload, dict):
            for raw in items_payload.get("items") or []:
                item = self._parse_record(KnowledgeItem, raw)
                if item is not None:
                    items.append(item)
            raw_meta = items_payload.get("meta")
            if isinstance(raw_meta, dict):
                meta.last_scan_at = raw_meta.get("last_scan_at")
                meta.last_generate_at = raw_meta.get("last_generate_at")

        gaps: List[GapItem] = []
        if isinstance(gaps_payload, dict):
            for raw in gaps_payload.get("gaps") or []:
                gap = self._parse_record(GapItem, raw)
                if gap is not None:
                    gaps.append(gap)

        return KnowledgeBase(items=items, gaps=gaps, code_map=self.load_code_map(), meta=meta)

    def save(self, kb: KnowledgeBase) -> None:
        """Write state files and the rendered docs; raises StorageError on failure."""
        meta = {
            "name": kb.meta.name,
            "version": kb.meta.version,
            "last_scan_at": kb.meta.last_scan_at,
            "last_generate_at": kb.meta.last_generate_at,
        }
        self._write_json(
            self.state_dir / ITEMS_FILENAME,
            {"items": [item.to_dict() for item in kb.items], "meta": meta},
        )
        self._write_json(self.state_dir / GAPS_FILENAME, {"gaps": [gap.to_dict() for gap in kb.gaps]})
        if kb.code_map is not None:
            self.save_code_map(kb.code_map)
        for item in kb.items:
            self.write_docs(item)

    def save_code_map(self, code_map: CodeMap) -> None:
        self._write_json(self.state_dir / CODE_MAP_FILENAME, code_map.to_dict())

    def load_code_map(self) -> Optional[CodeMap]:
        payload = self._read_json(self.state_dir / CODE_MAP_FILENAME)
        if not isinstance(payload, dict):
            return None
        try:
            return CodeMap.from_dict(payload)
        except (KeyError, TypeError, ValueError) as exc:
            self.logger.warning("Ignoring unreadable %s: %s", CODE_MAP_FILENAME, exc)
            return None

    def write_docs(self, item: KnowledgeItem) -> None:
        """Write the Markdown and/or JSON rendering of one item per ``docs.format``."""
        doc_format = self.docs.format
        try:
            if doc_format in ("markdown", "both"):
                path = markdown_path(self.docs_dir, item)
                path.parent.mkdir(parents=True, exist_ok=True)
                path.write_text(render_markdown(item), encoding="utf-8")
            if doc_format in ("json", "both"):
                json_dir = self.docs_dir / "json"
                json_dir.mkdir(parents=True, exist_ok=True)
                (json_dir / f"{item.id}.json").write_text(
                    json.dumps(item.to_dict(), indent=2), encoding="utf-8"
                )
        except OSError as exc:
            raise StorageError(f"Failed to write docs for {item.id}: {exc}") from exc

    # ------------------------------------------------------------------
    # Items

    def get_item(self, item_id: str) -> KnowledgeItem:
        for item in self.load().items:
            if item.id == item_id:
                return item
        raise RecordNotFoundError(f"Document not found: {item_id}")

    def update_item(
        self,
        item_id: str,
        updates: Mapping[str, Any],
        *,
        edited_by: str | None = None,
    ) -> KnowledgeItem:
        """Apply a human edit. Changing ``content`` marks the item as human-edited."""
        kb = self.load()
        item = self._find_item(kb, item_id)
        for key, value in updates.items():
            if key not in _EDITABLE_FIELDS or value is None:
                continue
            if key == "status" and value not in ITEM_STATUSES:
                raise ValueError(f"Unknown status '{value}'")
            if key == "pages":
                value = [str(page) for page in value]
            setattr(item, key, value)
        if updates.get("status") is not None:
            item.pinned = item.status == "pinned"
        if updates.get("content") is not None:
            item.human_edited = True
        item.last_edited_at = _now()
        if edited_by:
            item.last_edited_by = edited_by
        self.save(kb)
        return item

    def set_status(self, item_id: str, status: str) -> KnowledgeItem:
        if status not in ITEM_STATUSES:
            raise ValueError(f"Unknown status '{status}'")
        kb = self.load()
        item = self._find_item(kb, item_id)
        item.status = status
        item.pinned = status == "pinned"
        self.save(kb)
        return item

    def set_pinned(self, item_id: str, pinned: bool) -> KnowledgeItem:
        """Pin or unpin an item; pinned items are never regenerated."""
        kb = self.load()
        item = self._find_item(kb, item_id)
        item.pinned = pinned
        if pinned:
            item.status = "pinned"
        elif item.status == "pinned":
            item.status = "reviewed"
        self.save(kb)
        return item

    def delete_item(self, item_id: str) -> None:
        kb = self.load()
        item = self._find_item(kb, item_id)
        kb.items = [current for current in kb.items if current.id != item_id]
        self.save(kb)
        for path in (markdown_path(self.docs_dir, item), self.docs_dir / "json" / f"{item_id}.json"):
            try:
                path.unlink(missing_ok=True)
            except OSError as exc:
                raise StorageError(f"Failed to remove {path}: {exc}") from exc

    # ------------------------------------------------------------------
    # Gaps

    def add_gap(self, question: str, page: str | None = None) -> GapItem:
        """Record a question; an existing gap with the same wording gains frequency."""
        question = question.strip()
        if not question:
            raise ValueError("Question must not be empty")
        kb = self.load()
        lowered = question.lower()
        for gap in kb.gaps:
            if gap.question.lower() == lowered:
                gap.frequency += 1
                self.save(kb)
                return gap

        gap_id = f"gap-{int(datetime.now(timezone.utc).timestamp() * 1000)}"
        existing_ids = {gap.id for gap in kb.gaps}
        suffix = 1
        candidate = gap_id
        while candidate in existing_ids:
            suffix += 1
            candidate = f"{gap_id}-{suffix}"
        gap = GapItem(id=candidate, question=question, asked_at=_now(), page=page)
        kb.gaps.append(gap)
        self.save(kb)
        return gap

    def resolve_gap(
        self,
        gap_id: str,
        *,
        resolved_by: str | None = None,
        resolution: str | None = None,
    ) -> GapItem:
        kb = self.load()
        for gap in kb.gaps:
            if gap.id == gap_id:
                gap.status = "resolved"
                gap.resolved_by = resolved_by
                gap.resolution = resolution
                self.save(kb)
                return gap
        raise RecordNotFoundError(f"Gap not found: {gap_id}")

    def list_gaps(self, status: str | None = None) -> List[GapItem]:
        if status is not None and status not in GAP_STATUSES:
            raise ValueError(f"Unknown gap status '{status}'")
        gaps = self.load().gaps
        if status is not None:
            gaps = [gap for gap in gaps if gap.status == status]
        return sorted(gaps, key=lambda gap: gap.frequency, reverse=True)

    # ------------------------------------------------------------------
    # Internal helpers

    @staticmethod
    def _find_item(kb: KnowledgeBase, item_id: str) -> KnowledgeItem:
        for item in kb.items:
            if item.id == item_id:
                return item
        raise RecordNotFoundError(f"Document not found: {item_id}")

    def _parse_record(self, record_type: Any, raw: Any) -> Any:
        if not isinstance(raw, dict):
            return None
        try:
            return record_type.from_dict(raw)
        except (KeyError, TypeError, ValueError) as exc:
            self.logger.warning("Skipping malformed %s record: %s", record_type.__name__, exc)
            return None

    def _read_json(self, path: Path) -> Any:
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            self.logger.warning("Ignoring unreadable %s: %s", path.name, exc)
            return None

    def _write_json(self, path: Path, payload: Any) -> None:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        except OSError as exc:
            raise StorageError(f"Failed to write {path}: {exc}") from exc


__all__ = [
    "KnowledgeStore",
    "RecordNotFoundError",
    "StorageError",
    "markdown_path",
    "render_markdown",
]
