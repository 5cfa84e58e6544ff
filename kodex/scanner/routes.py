"""Route and API endpoint extraction.

Three conventions are recognised and may all fire for the same file:

* file-system routing (``app/**/page.tsx`` and ``pages/**/*.tsx``),
* declarative ``<Route path="..." element={...} />`` elements,
* imperative ``app.get("/path", handler)`` registration (express only).
"""

from __future__ import annotations

import re
from pathlib import PurePosixPath
from typing import Iterator, List, Optional, Sequence, Tuple

from tree_sitter import Node

from ..models import ApiEndpoint, Route
from .source import SourceUnit, jsx_attributes, jsx_tag_name, string_literal_value

ROUTE_SUFFIXES = frozenset({".ts", ".tsx", ".js", ".jsx"})
HTTP_METHODS = ("GET", "POST", "PUT", "PATCH", "DELETE")

_PARAM_RE = re.compile(r"(?::|\[)(?:\.\.\.)?(\w+)")
_GROUP_SEGMENT_RE = re.compile(r"^\(.+\)$")
_CATCH_ALL_RE = re.compile(r"^\[\[?\.\.\.(\w+)\]\]?$")
_DYNAMIC_RE = re.compile(r"^\[(\w+)\]$")
_EXPRESS_CALLEE_RE = re.compile(r"^(app|router)\.(get|post|put|patch|delete)$")
_TAG_RE = re.compile(r"<(\w+)")


def extract_params(path: str) -> List[str]:
    """Return ``:name`` / ``[name]`` / ``[...name]`` parameter names in order."""
    return [match.group(1) for match in _PARAM_RE.finditer(path)]


def lower_segment(segment: str) -> Optional[str]:
    """Lower one directory segment to its URL form; None drops the segment."""
    if _GROUP_SEGMENT_RE.match(segment):
        return None
    catch_all = _CATCH_ALL_RE.match(segment)
    if catch_all:
        return f":{catch_all.group(1)}*"
    dynamic = _DYNAMIC_RE.match(segment)
    if dynamic:
        return f":{dynamic.group(1)}"
    return segment


def build_route_path(segments: Sequence[str]) -> str:
    lowered = [value for value in (lower_segment(segment) for segment in segments) if value]
    return "/" + "/".join(lowered)


def routing_root(directories: Sequence[str]) -> Optional[Tuple[str, int]]:
    """Return the outermost ``app`` or ``pages`` directory and the index after it."""
    for index, name in enumerate(directories):
        if name in ("app", "pages"):
            return name, index + 1
    return None


def filesystem_route_path(relative_path: str) -> Optional[str]:
    """Return the URL path a file defines under app/pages routing, if any."""
    pure = PurePosixPath(relative_path)
    if pure.suffix not in ROUTE_SUFFIXES:
        return None
    directories = list(pure.parts[:-1])
    root = routing_root(directories)
    if root is None:
        return None
    kind, start = root

    if kind == "app":
        if pure.stem != "page":
            return None
        return build_route_path(directories[start:])

    segments = directories[start:] + [pure.stem]
    if segments[0] == "api" or pure.stem.startswith("_"):
        return None
    if segments[-1] == "index":
        segments = segments[:-1]
    return build_route_path(segments)


def extract_routes(
    unit: SourceUnit, relative_path: str, framework: Optional[str] = None
) -> List[Route]:
    """Return every route the file declares, unioned across conventions."""
    routes: List[Route] = []

    if framework in (None, "nextjs"):
        path = filesystem_route_path(relative_path)
        if path is not None:
            routes.append(
                Route(path=path, source_file=relative_path, params=extract_params(path))
            )

    for element in unit.find("jsx_opening_element", "jsx_self_closing_element"):
        if jsx_tag_name(unit, element) != "Route":
            continue
        route = _route_element(unit, element, relative_path)
        if route is not None:
            routes.append(route)

    if framework == "express":
        for call, _method, path, _args in _express_calls(unit):
            routes.append(
                Route(
                    path=path,
                    source_file=relative_path,
                    line=unit.line_of(call),
                    params=extract_params(path),
                )
            )

    return routes


def extract_api_endpoints(
    unit: SourceUnit, relative_path: str, framework: Optional[str] = None
) -> List[ApiEndpoint]:
    """Return HTTP handlers registered by express calls or app-router route files."""
    endpoints: List[ApiEndpoint] = []

    if framework == "express":
        for _call, method, path, args in _express_calls(unit):
            handler = None
            if len(args) > 1 and args[-1].type == "identifier":
                handler = unit.node_text(args[-1])
            endpoints.append(
                ApiEndpoint(
                    method=method.upper(),
                    path=path,
                    source_file=relative_path,
                    handler=handler,
                )
            )

    if framework in (None, "nextjs"):
        pure = PurePosixPath(relative_path)
        directories = list(pure.parts[:-1])
        root = routing_root(directories)
        if pure.stem == "route" and pure.suffix in ROUTE_SUFFIXES and root is not None and root[0] == "app":
            path = build_route_path(directories[root[1] :])
            for method in _exported_http_methods(unit):
                endpoints.append(
                    ApiEndpoint(method=method, path=path, source_file=relative_path, handler=method)
                )

    return endpoints


def _route_element(unit: SourceUnit, element: Node, relative_path: str) -> Optional[Route]:
    path: Optional[str] = None
    component: Optional[str] = None
    for name, value_node, _attribute in jsx_attributes(unit, element):
        if value_node is None:
            continue
        if name == "path":
            path = string_literal_value(unit, value_node)
            if path is None:
                path = re.sub(r"^[\"'{]|[\"'}]$", "", unit.node_text(value_node))
        elif name in ("component", "element"):
            text = unit.node_text(value_node)
            tag = _TAG_RE.search(text)
            component = tag.group(1) if tag else re.sub(r"^[{\"]|[}\"]$", "", text)
    if not path:
        return None
    return Route(
        path=path,
        source_file=relative_path,
        component=component or None,
        line=unit.line_of(element),
        params=extract_params(path),
    )


def _express_calls(unit: SourceUnit) -> Iterator[Tuple[Node, str, str, List[Node]]]:
    for call in unit.find("call_expression"):
        callee = _EXPRESS_CALLEE_RE.match(unit.node_text(call.child_by_field_name("function")))
        if callee is None:
            continue
        arguments = call.child_by_field_name("arguments")
        if arguments is None:
            continue
        args = [arg for arg in arguments.named_children if arg.type != "comment"]
        if not args:
            continue
        path = string_literal_value(unit, args[0])
        if path is None or not path.startswith("/"):
            continue
        yield call, callee.group(2), path, args


def _exported_http_methods(unit: SourceUnit) -> List[str]:
    methods: List[str] = []
    for statement in unit.root.named_children:
        if statement.type != "export_statement":
            continue
        declaration = statement.child_by_field_name("declaration")
        if declaration is None:
            continue
        names: List[str] = []
        if declaration.type == "function_declaration":
            names.append(unit.node_text(declaration.child_by_field_name("name")))
        elif declaration.type in ("lexical_declaration", "variable_declaration"):
            for declarator in declaration.named_children:
                if declarator.type == "variable_declarator":
                    names.append(unit.node_text(declarator.child_by_field_name("name")))
        methods.extend(name for name in names if name in HTTP_METHODS and name not in methods)
    return methods


__all__ = [
    "HTTP_METHODS",
    "build_route_path",
    "extract_api_endpoints",
    "extract_params",
    "extract_routes",
    "filesystem_route_path",
    "lower_segment",
]
