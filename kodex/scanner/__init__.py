"""Source tree scanning: extractors, feature detection, and the CodeMap builder."""

from .components import extract_components
from .core import CodeScanner, build_pages, merge_features, scan_unit
from .features import DEFAULT_CATALOG, FeatureCatalog, FeaturePattern, detect_features
from .files import discover_files
from .routes import extract_api_endpoints, extract_params, extract_routes
from .source import SourceParseError, SourceUnit, load_source, parse_source
from .strings import extract_strings, is_user_facing

__all__ = [
    "CodeScanner",
    "DEFAULT_CATALOG",
    "FeatureCatalog",
    "FeaturePattern",
    "SourceParseError",
    "SourceUnit",
    "build_pages",
    "detect_features",
    "discover_files",
    "extract_api_endpoints",
    "extract_components",
    "extract_params",
    "extract_routes",
    "extract_strings",
    "is_user_facing",
    "load_source",
    "merge_features",
    "parse_source",
    "scan_unit",
]
