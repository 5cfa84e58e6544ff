"""Reconcile detected features against the knowledge base to plan generation."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Sequence

from .models import CodeMap, DetectedFeature, KnowledgeItem, Page

SKIP_PINNED = "skip_pinned"
SKIP_UNCHANGED = "skip_unchanged"
UPDATE = "update"
CREATE = "create"

MAX_STRINGS_PER_PAGE = 10
MAX_EVIDENCE_SNIPPETS = 5


@dataclass
class PlannedTopic:
    """The decision taken for one detected feature."""

    feature: DetectedFeature
    action: str
    existing: Optional[KnowledgeItem] = None
    context: Optional[str] = None

    @property
    def needs_generation(self) -> bool:
        return self.action in (UPDATE, CREATE)


@dataclass
class GeneratedArticle:
    """Title / pages / content triple returned by a generation backend."""

    title: str
    pages: List[str]
    content: str


def eligible_features(features: Iterable[DetectedFeature], topics: Sequence[str]) -> List[DetectedFeature]:
    """Keep features whose category prefix is in the ``topics`` allow-list."""
    allowed = set(topics)
    return [feature for feature in features if feature.category in allowed]


def plan_generation(
    code_map: CodeMap,
    topics: Sequence[str],
    existing_items: Iterable[KnowledgeItem],
    *,
    changed_only: bool = False,
) -> List[PlannedTopic]:
    """Classify every eligible feature as skip_pinned, skip_unchanged, update or create."""
    by_topic: Dict[str, KnowledgeItem] = {}
    for item in existing_items:
        by_topic[item.topic] = item

    plan: List[PlannedTopic] = []
    for feature in eligible_features(code_map.features, topics):
        existing = by_topic.get(feature.id)
        if existing is not None and (existing.pinned or existing.status == "pinned"):
            plan.append(PlannedTopic(feature=feature, action=SKIP_PINNED, existing=existing))
            continue
        if existing is not None and changed_only and not _introduces_new_files(feature, existing):
            plan.append(PlannedTopic(feature=feature, action=SKIP_UNCHANGED, existing=existing))
            continue
        plan.append(
            PlannedTopic(
                feature=feature,
                action=UPDATE if existing is not None else CREATE,
                existing=existing,
                context=build_context(feature, code_map),
            )
        )
    return plan


def _introduces_new_files(feature: DetectedFeature, existing: KnowledgeItem) -> bool:
    known = set(existing.source_files)
    return any(path not in known for path in feature.source_files)


def relevant_pages(feature: DetectedFeature, code_map: CodeMap) -> List[Page]:
    files = set(feature.source_files)
    return [page for page in code_map.pages if files.intersection(page.source_files)]


def build_context(feature: DetectedFeature, code_map: CodeMap) -> str:
    """Render the evidence summary handed to the generation backend."""
    lines = [f"Feature: {feature.id}", f"Confidence: {feature.confidence:g}", ""]

    pages = relevant_pages(feature, code_map)
    if pages:
        lines.append("Relevant Pages:")
        for page in pages:
            lines.append(f"  - {page.path}")
            strings = page.strings[:MAX_STRINGS_PER_PAGE]
            if strings:
                lines.append("    UI Elements:")
                lines.extend(f'      - [{item.type}] "{item.value}"' for item in strings)
        lines.append("")

    lines.append("Code Evidence:")
    for evidence in feature.evidence[:MAX_EVIDENCE_SNIPPETS]:
        lines.append(f"  - {evidence.pattern} ({evidence.source_file}:{evidence.line})")
    return "\n".join(lines)


def new_item_id(topic: str, now: Optional[datetime] = None) -> str:
    moment = now or datetime.now(timezone.utc)
    return f"kb-{topic.replace('.', '-')}-{int(moment.timestamp() * 1000)}"


def apply_generated(
    planned: PlannedTopic,
    generated: GeneratedArticle,
    code_map: CodeMap,
    *,
    now: Optional[datetime] = None,
) -> KnowledgeItem:
    """Build the knowledge item produced by a successful generation.

    The existing id is preserved; status resets to draft, the human-edited
    flag is cleared, and pinning is never set here.
    """
    moment = now or datetime.now(timezone.utc)
    feature = planned.feature
    existing = planned.existing
    return KnowledgeItem(
        id=existing.id if existing is not None else new_item_id(feature.id, moment),
        topic=feature.id,
        title=generated.title,
        pages=list(generated.pages),
        content=generated.content,
        source_files=feature.source_files,
        code_version=code_map.meta.scanned_at,
        generated_at=moment.isoformat(),
        status="draft",
        confidence=feature.confidence,
        human_edited=False,
        pinned=False,
        last_edited_at=existing.last_edited_at if existing is not None else None,
        last_edited_by=existing.last_edited_by if existing is not None else None,
    )


__all__ = [
    "CREATE",
    "GeneratedArticle",
    "PlannedTopic",
    "SKIP_PINNED",
    "SKIP_UNCHANGED",
    "UPDATE",
    "apply_generated",
    "build_context",
    "eligible_features",
    "new_item_id",
    "plan_generation",
    "relevant_pages",
]
