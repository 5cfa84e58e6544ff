"""Core data models shared across kodex components."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

STRING_TYPES = ("heading", "label", "button", "error", "placeholder", "other")
ITEM_STATUSES = ("draft", "reviewed", "approved", "pinned")
GAP_STATUSES = ("pending", "in-progress", "resolved", "wont-fix")


@dataclass
class Route:
    """A URL path discovered in the codebase."""

    path: str
    source_file: str
    component: Optional[str] = None
    line: Optional[int] = None
    params: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Route":
        return cls(
            path=str(data["path"]),
            source_file=str(data["source_file"]),
            component=data.get("component"),
            line=data.get("line"),
            params=list(data.get("params") or []),
        )


@dataclass
class Component:
    """A UI component definition."""

    name: str
    source_file: str
    line: int
    exported: bool
    props_type: Optional[str] = None
    children: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Component":
        return cls(
            name=str(data["name"]),
            source_file=str(data["source_file"]),
            line=int(data.get("line") or 0),
            exported=bool(data.get("exported")),
            props_type=data.get("props_type"),
            children=list(data.get("children") or []),
        )


@dataclass
class ExtractedString:
    """A user-facing string pulled out of markup."""

    value: str
    source_file: str
    line: int
    type: str = "other"
    component: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExtractedString":
        return cls(
            value=str(data["value"]),
            source_file=str(data["source_file"]),
            line=int(data.get("line") or 0),
            type=str(data.get("type") or "other"),
            component=data.get("component"),
        )


@dataclass
class Evidence:
    """A single pattern hit backing a detected feature."""

    pattern: str
    source_file: str
    line: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Evidence":
        return cls(
            pattern=str(data["pattern"]),
            source_file=str(data["source_file"]),
            line=int(data.get("line") or 1),
        )


@dataclass
class DetectedFeature:
    """A product topic detected in the code, e.g. ``authentication.two-factor-auth``."""

    id: str
    confidence: float
    evidence: List[Evidence] = field(default_factory=list)

    @property
    def category(self) -> str:
        return self.id.split(".", 1)[0]

    @property
    def source_files(self) -> List[str]:
        """Unique evidence files in first-seen order."""
        return list(dict.fromkeys(item.source_file for item in self.evidence))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "confidence": self.confidence,
            "evidence": [item.to_dict() for item in self.evidence],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DetectedFeature":
        return cls(
            id=str(data["id"]),
            confidence=float(data.get("confidence") or 0.0),
            evidence=[Evidence.from_dict(item) for item in data.get("evidence") or []],
        )


@dataclass
class Page:
    """A route combined with the components and strings that render it."""

    path: str
    components: List[str] = field(default_factory=list)
    source_files: List[str] = field(default_factory=list)
    strings: List[ExtractedString] = field(default_factory=list)
    features: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": self.path,
            "components": list(self.components),
            "source_files": list(self.source_files),
            "strings": [item.to_dict() for item in self.strings],
            "features": list(self.features),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Page":
        return cls(
            path=str(data["path"]),
            components=list(data.get("components") or []),
            source_files=list(data.get("source_files") or []),
            strings=[ExtractedString.from_dict(item) for item in data.get("strings") or []],
            features=list(data.get("features") or []),
        )


@dataclass
class ApiEndpoint:
    """An HTTP handler registered by the application."""

    method: str
    path: str
    source_file: str
    handler: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ApiEndpoint":
        return cls(
            method=str(data["method"]),
            path=str(data["path"]),
            source_file=str(data["source_file"]),
            handler=data.get("handler"),
        )


@dataclass
class ScanMeta:
    """Bookkeeping recorded for a single scan run."""

    scanned_at: str
    files_scanned: int
    scan_duration_ms: int
    framework: Optional[str] = None
    files_failed: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ScanMeta":
        return cls(
            scanned_at=str(data.get("scanned_at") or ""),
            files_scanned=int(data.get("files_scanned") or 0),
            scan_duration_ms=int(data.get("scan_duration_ms") or 0),
            framework=data.get("framework"),
            files_failed=int(data.get("files_failed") or 0),
        )


@dataclass
class CodeMap:
    """Aggregate result of scanning a source tree."""

    routes: List[Route]
    components: List[Component]
    pages: List[Page]
    strings: List[ExtractedString]
    api_endpoints: List[ApiEndpoint]
    features: List[DetectedFeature]
    meta: ScanMeta

    def feature(self, feature_id: str) -> Optional[DetectedFeature]:
        for feature in self.features:
            if feature.id == feature_id:
                return feature
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "routes": [item.to_dict() for item in self.routes],
            "components": [item.to_dict() for item in self.components],
            "pages": [item.to_dict() for item in self.pages],
            "strings": [item.to_dict() for item in self.strings],
            "api_endpoints": [item.to_dict() for item in self.api_endpoints],
            "features": [item.to_dict() for item in self.features],
            "meta": self.meta.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CodeMap":
        return cls(
            routes=[Route.from_dict(item) for item in data.get("routes") or []],
            components=[Component.from_dict(item) for item in data.get("components") or []],
            pages=[Page.from_dict(item) for item in data.get("pages") or []],
            strings=[ExtractedString.from_dict(item) for item in data.get("strings") or []],
            api_endpoints=[ApiEndpoint.from_dict(item) for item in data.get("api_endpoints") or []],
            features=[DetectedFeature.from_dict(item) for item in data.get("features") or []],
            meta=ScanMeta.from_dict(data.get("meta") or {}),
        )


@dataclass
class KnowledgeItem:
    """A generated help article tracked across scans."""

    id: str
    topic: str
    title: str
    pages: List[str]
    content: str
    source_files: List[str]
    code_version: str
    generated_at: str
    status: str = "draft"
    confidence: float = 0.0
    human_edited: bool = False
    pinned: bool = False
    last_edited_at: Optional[str] = None
    last_edited_by: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "KnowledgeItem":
        return cls(
            id=str(data["id"]),
            topic=str(data["topic"]),
            title=str(data.get("title") or ""),
            pages=list(data.get("pages") or []),
            content=str(data.get("content") or ""),
            source_files=list(data.get("source_files") or []),
            code_version=str(data.get("code_version") or ""),
            generated_at=str(data.get("generated_at") or ""),
            status=str(data.get("status") or "draft"),
            confidence=float(data.get("confidence") or 0.0),
            human_edited=bool(data.get("human_edited")),
            pinned=bool(data.get("pinned")),
            last_edited_at=data.get("last_edited_at"),
            last_edited_by=data.get("last_edited_by"),
        )


@dataclass
class GapItem:
    """A user question the knowledge base could not answer."""

    id: str
    question: str
    asked_at: str
    frequency: int = 1
    status: str = "pending"
    page: Optional[str] = None
    assignee: Optional[str] = None
    resolved_by: Optional[str] = None
    resolution: Optional[str] = None
    suggested_topic: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GapItem":
        return cls(
            id=str(data["id"]),
            question=str(data["question"]),
            asked_at=str(data.get("asked_at") or ""),
            frequency=int(data.get("frequency") or 1),
            status=str(data.get("status") or "pending"),
            page=data.get("page"),
            assignee=data.get("assignee"),
            resolved_by=data.get("resolved_by"),
            resolution=data.get("resolution"),
            suggested_topic=data.get("suggested_topic"),
        )


@dataclass
class KnowledgeBaseMeta:
    name: str
    version: str
    last_scan_at: Optional[str] = None
    last_generate_at: Optional[str] = None


@dataclass
class KnowledgeBase:
    """Items, gaps and the cached code map for one project."""

    items: List[KnowledgeItem] = field(default_factory=list)
    gaps: List[GapItem] = field(default_factory=list)
    code_map: Optional[CodeMap] = None
    meta: KnowledgeBaseMeta = field(
        default_factory=lambda: KnowledgeBaseMeta(name="My Product", version="1.0.0")
    )
