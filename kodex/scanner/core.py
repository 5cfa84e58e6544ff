"""Scan orchestration: file discovery, per-file extraction, and merge into a CodeMap."""

from __future__ import annotations

import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Set

from ..config import ScanConfig
from ..logging import get_logger
from ..models import (
    ApiEndpoint,
    CodeMap,
    Component,
    DetectedFeature,
    ExtractedString,
    Page,
    Route,
    ScanMeta,
)
from .components import extract_components
from .features import DEFAULT_CATALOG, FeatureCatalog, detect_features
from .files import discover_files
from .routes import extract_api_endpoints, extract_routes
from .source import SourceParseError, SourceUnit, load_source, string_literal_value
from .strings import extract_strings

_NEXT_DIR_MARKERS = ("app", "pages")


@dataclass
class FileScan:
    """Everything extracted from a single source file."""

    routes: List[Route] = field(default_factory=list)
    components: List[Component] = field(default_factory=list)
    strings: List[ExtractedString] = field(default_factory=list)
    api_endpoints: List[ApiEndpoint] = field(default_factory=list)
    features: List[DetectedFeature] = field(default_factory=list)


def scan_unit(
    unit: SourceUnit,
    relative_path: str,
    framework: Optional[str] = None,
    catalog: FeatureCatalog = DEFAULT_CATALOG,
) -> FileScan:
    """Run every extractor over one parsed file."""
    return FileScan(
        routes=extract_routes(unit, relative_path, framework),
        components=extract_components(unit, relative_path),
        strings=extract_strings(unit, relative_path),
        api_endpoints=extract_api_endpoints(unit, relative_path, framework),
        features=detect_features(unit, relative_path, catalog),
    )


def collect_imports(unit: SourceUnit) -> Set[str]:
    """Return the module specifiers of the unit's ``import`` statements."""
    modules: Set[str] = set()
    for statement in unit.root.named_children:
        if statement.type != "import_statement":
            continue
        value = string_literal_value(unit, statement.child_by_field_name("source"))
        if value:
            modules.add(value)
    return modules


def has_next_layout(root: Path, files: Sequence[str]) -> bool:
    if any(root.glob("next.config.*")):
        return True
    for rel_path in files:
        directories = rel_path.split("/")[:-1]
        if any(marker in directories for marker in _NEXT_DIR_MARKERS):
            return True
    return False


def infer_framework_from_imports(imports: Iterable[Set[str]]) -> Optional[str]:
    """Prefer react-router over express when both appear anywhere in the tree."""
    modules: Set[str] = set()
    for file_imports in imports:
        modules.update(file_imports)
    if any("react-router" in module for module in modules):
        return "react"
    if "express" in modules:
        return "express"
    return None


def merge_features(per_file: Iterable[Sequence[DetectedFeature]]) -> List[DetectedFeature]:
    """Merge per-file detections by id: evidence is unioned, confidence is the max."""
    merged: Dict[str, DetectedFeature] = {}
    for features in per_file:
        for feature in features:
            existing = merged.get(feature.id)
            if existing is None:
                merged[feature.id] = DetectedFeature(
                    id=feature.id,
                    confidence=feature.confidence,
                    evidence=list(feature.evidence),
                )
                continue
            existing.evidence.extend(feature.evidence)
            existing.confidence = max(existing.confidence, feature.confidence)
    return list(merged.values())


def build_pages(
    routes: Sequence[Route],
    components: Sequence[Component],
    strings: Sequence[ExtractedString],
) -> List[Page]:
    """Associate each route with its components and the strings of their files.

    Feature-to-page association is not computed; ``features`` stays empty.
    """
    pages: List[Page] = []
    for route in routes:
        matched = [
            component
            for component in components
            if component.source_file == route.source_file
            or (route.component is not None and component.name == route.component)
        ]
        source_files: Dict[str, None] = {route.source_file: None}
        for component in matched:
            source_files.setdefault(component.source_file, None)
        page_strings = [item for item in strings if item.source_file in source_files]
        pages.append(
            Page(
                path=route.path,
                components=list(dict.fromkeys(component.name for component in matched)),
                source_files=list(source_files),
                strings=page_strings,
                features=[],
            )
        )
    return pages


class CodeScanner:
    """Scans a project tree and produces a CodeMap."""

    def __init__(
        self,
        catalog: FeatureCatalog = DEFAULT_CATALOG,
        *,
        workers: Optional[int] = None,
    ) -> None:
        self.catalog = catalog
        self.workers = workers
        self.logger = get_logger("scanner")

    def scan(self, root: Path | str, scan_config: ScanConfig) -> CodeMap:
        """Return a fresh CodeMap for ``root``; unparsable files are skipped."""
        root_path = Path(root).expanduser().resolve()
        if not root_path.exists():
            raise FileNotFoundError(f"Project path not found: {root}")
        if not root_path.is_dir():
            raise NotADirectoryError(f"Project path is not a directory: {root}")

        started = time.perf_counter()
        files = discover_files(root_path, scan_config.include, scan_config.exclude)
        self.logger.debug("Discovered %d source files under %s", len(files), root_path)

        workers = scan_config.workers or self.workers
        with ThreadPoolExecutor(max_workers=workers) as executor:
            if scan_config.framework == "auto":
                framework = self._infer_framework(executor, root_path, files)
            else:
                framework = scan_config.framework

            scans: Dict[str, Optional[FileScan]] = dict(
                zip(
                    files,
                    executor.map(lambda rel: self._scan_file(root_path, rel, framework), files),
                )
            )

        failed = [rel_path for rel_path, result in scans.items() if result is None]
        if failed:
            self.logger.warning(
                "Skipped %d of %d files that could not be parsed", len(failed), len(files)
            )

        routes: List[Route] = []
        components: List[Component] = []
        strings: List[ExtractedString] = []
        api_endpoints: List[ApiEndpoint] = []
        feature_batches: List[List[DetectedFeature]] = []
        for rel_path in sorted(scans):
            result = scans[rel_path]
            if result is None:
                continue
            routes.extend(result.routes)
            components.extend(result.components)
            strings.extend(result.strings)
            api_endpoints.extend(result.api_endpoints)
            feature_batches.append(result.features)

        duration_ms = int((time.perf_counter() - started) * 1000)
        code_map = CodeMap(
            routes=routes,
            components=components,
            pages=build_pages(routes, components, strings),
            strings=strings,
            api_endpoints=api_endpoints,
            features=merge_features(feature_batches),
            meta=ScanMeta(
                scanned_at=datetime.now(timezone.utc).isoformat(),
                files_scanned=len(files),
                scan_duration_ms=duration_ms,
                framework=framework,
                files_failed=len(failed),
            ),
        )
        self.logger.info(
            "Scanned %d files in %d ms (framework: %s): %d routes, %d components, %d features",
            len(files),
            duration_ms,
            framework or "unknown",
            len(routes),
            len(components),
            len(code_map.features),
        )
        return code_map

    def _infer_framework(
        self, executor: ThreadPoolExecutor, root: Path, files: Sequence[str]
    ) -> Optional[str]:
        if has_next_layout(root, files):
            return "nextjs"
        imports = executor.map(lambda rel: self._imports_for(root, rel), files)
        return infer_framework_from_imports(imports)

    def _imports_for(self, root: Path, rel_path: str) -> Set[str]:
        try:
            return collect_imports(load_source(root, rel_path))
        except SourceParseError:
            # Reported once the extraction pass reaches the same file.
            return set()

    def _scan_file(self, root: Path, rel_path: str, framework: Optional[str]) -> Optional[FileScan]:
        try:
            unit = load_source(root, rel_path)
            if unit.has_errors:
                self.logger.debug("%s has syntax errors; extracting what parsed", rel_path)
            return scan_unit(unit, rel_path, framework, self.catalog)
        except SourceParseError as exc:
            self.logger.debug("Skipping %s: %s", rel_path, exc)
        except Exception as exc:  # pragma: no cover
            self.logger.debug("Extraction failed for %s: %s", rel_path, exc, exc_info=True)
        return None


__all__ = [
    "CodeScanner",
    "FileScan",
    "build_pages",
    "collect_imports",
    "has_next_layout",
    "infer_framework_from_imports",
    "merge_features",
    "scan_unit",
]
