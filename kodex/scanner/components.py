"""UI component discovery for JSX / TSX sources."""

from __future__ import annotations

import re
from typing import Dict, List, Optional, Set

from tree_sitter import Node

from ..models import Component
from .source import SourceUnit, jsx_tag_name

_PASCAL_CASE_RE = re.compile(r"^[A-Z][a-zA-Z0-9]*$")
_FUNCTION_VALUE_TYPES = frozenset({"arrow_function", "function_expression", "function"})
_JSX_TYPES = ("jsx_element", "jsx_self_closing_element")
_DECLARATION_TYPES = frozenset({"lexical_declaration", "variable_declaration"})


def is_pascal_case(name: str) -> bool:
    return bool(_PASCAL_CASE_RE.match(name))


def extract_components(unit: SourceUnit, relative_path: str) -> List[Component]:
    """Return component definitions in ``unit`` with same-file child edges.

    Function declarations are collected first, then variable declarators bound
    to arrow functions or function expressions.
    """
    exported_names = _exported_names(unit)
    components: List[Component] = []

    for node in unit.find("function_declaration"):
        name = unit.node_text(node.child_by_field_name("name"))
        if not is_pascal_case(name) or not _contains_jsx(unit, node):
            continue
        exported = _is_export_statement(node.parent) or name in exported_names
        components.append(
            Component(
                name=name,
                source_file=relative_path,
                line=unit.line_of(node),
                exported=exported,
                props_type=_props_type(unit, node),
            )
        )

    for node in unit.find("variable_declarator"):
        name = unit.node_text(node.child_by_field_name("name"))
        value = node.child_by_field_name("value")
        if not is_pascal_case(name) or value is None or value.type not in _FUNCTION_VALUE_TYPES:
            continue
        if not _contains_jsx(unit, value):
            continue
        statement = node.parent
        exported = (
            statement is not None
            and statement.type in _DECLARATION_TYPES
            and _is_export_statement(statement.parent)
        ) or name in exported_names
        components.append(
            Component(
                name=name,
                source_file=relative_path,
                line=unit.line_of(node),
                exported=exported,
                props_type=_props_type(unit, value),
            )
        )

    names = {component.name for component in components}
    for component in components:
        component.children = find_child_components(unit, component.name, names)
    return components


def find_child_components(unit: SourceUnit, name: str, names: Set[str]) -> List[str]:
    """Return components from ``names`` rendered inside the definition of ``name``."""
    definition = _locate_definition(unit, name)
    if definition is None:
        return []
    children: Dict[str, None] = {}
    for element in unit.find("jsx_opening_element", "jsx_self_closing_element", within=definition):
        tag_name = jsx_tag_name(unit, element)
        if is_pascal_case(tag_name) and tag_name in names:
            children.setdefault(tag_name, None)
    return list(children)


def _locate_definition(unit: SourceUnit, name: str) -> Optional[Node]:
    for node in unit.find("function_declaration"):
        if unit.node_text(node.child_by_field_name("name")) == name:
            return node
    for node in unit.find("variable_declarator"):
        if unit.node_text(node.child_by_field_name("name")) == name:
            return node.child_by_field_name("value")
    return None


def _contains_jsx(unit: SourceUnit, node: Node) -> bool:
    return next(unit.find(*_JSX_TYPES, within=node), None) is not None


def _is_export_statement(node: Optional[Node]) -> bool:
    return node is not None and node.type == "export_statement"


def _exported_names(unit: SourceUnit) -> Set[str]:
    """Names exported through ``export { A, B }`` or ``export default A``."""
    names: Set[str] = set()
    for statement in unit.root.named_children:
        if statement.type != "export_statement":
            continue
        value = statement.child_by_field_name("value")
        if value is not None and value.type == "identifier":
            names.add(unit.node_text(value))
        for clause in statement.named_children:
            if clause.type != "export_clause":
                continue
            for specifier in clause.named_children:
                if specifier.type == "export_specifier":
                    names.add(unit.node_text(specifier.child_by_field_name("name")))
    return names


def _props_type(unit: SourceUnit, function: Node) -> Optional[str]:
    parameters = function.child_by_field_name("parameters")
    if parameters is None:
        return None
    params = [child for child in parameters.named_children if child.type != "comment"]
    if not params:
        return None
    annotation = params[0].child_by_field_name("type")
    if annotation is None:
        return None
    if annotation.type == "type_annotation" and annotation.named_children:
        return unit.node_text(annotation.named_children[0])
    return unit.node_text(annotation).lstrip(":").strip() or None


__all__ = ["extract_components", "find_child_components", "is_pascal_case"]
