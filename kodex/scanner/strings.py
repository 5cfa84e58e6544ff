"""Extraction of user-facing copy from JSX markup."""

from __future__ import annotations

import html
import re
from typing import List, Optional

from tree_sitter import Node

from ..models import ExtractedString
from .source import SourceUnit, jsx_attributes, jsx_tag_name, string_literal_value

TEXT_ATTRIBUTES = frozenset(
    {
        "placeholder",
        "title",
        "alt",
        "aria-label",
        "label",
        "children",
        "text",
        "message",
        "description",
        "content",
    }
)

_HEADING_RE = re.compile(r"^h[1-6]$")
_IDENTIFIER_RE = re.compile(r"^[a-z_][a-z0-9_]*$", re.IGNORECASE)
_WHITESPACE_RE = re.compile(r"\s+")
_PASCAL_CASE_RE = re.compile(r"^[A-Z][a-zA-Z0-9]*$")

_FUNCTION_TYPES = frozenset({"arrow_function", "function_expression", "function"})


def is_user_facing(value: str) -> bool:
    """Return True when ``value`` reads like copy rather than code."""
    if len(value) < 2:
        return False
    if _IDENTIFIER_RE.match(value):
        return False
    if value.startswith("/") or value.startswith("http"):
        return False
    if "=>" in value or "()" in value:
        return False
    if value == value.upper() and len(value) > 3:
        return False
    return True


def string_type_for_tag(tag_name: str) -> str:
    """Map a JSX tag name onto an ExtractedString type."""
    tag = tag_name.lower()
    if _HEADING_RE.match(tag):
        return "heading"
    if tag == "button":
        return "button"
    if tag == "label":
        return "label"
    if tag in ("input", "textarea"):
        return "placeholder"
    if "error" in tag or "alert" in tag:
        return "error"
    return "other"


def extract_strings(unit: SourceUnit, relative_path: str) -> List[ExtractedString]:
    """Collect attribute values and text content that pass ``is_user_facing``.

    Elements are visited in document order. For each opening or self-closing
    element the allow-listed attributes come first, followed (for elements with
    a body) by the element's own text content.
    """
    strings: List[ExtractedString] = []
    for node in unit.find("jsx_opening_element", "jsx_self_closing_element"):
        tag_name = jsx_tag_name(unit, node)
        default_type = string_type_for_tag(tag_name)
        component = _enclosing_component(unit, node)

        for name, value_node, attribute in jsx_attributes(unit, node):
            if name not in TEXT_ATTRIBUTES:
                continue
            value = string_literal_value(unit, value_node)
            if value is None or not is_user_facing(value):
                continue
            strings.append(
                ExtractedString(
                    value=value,
                    source_file=relative_path,
                    line=unit.line_of(attribute),
                    type="placeholder" if name == "placeholder" else default_type,
                    component=component,
                )
            )

        if node.type == "jsx_opening_element" and node.parent is not None:
            text = _text_content(unit, node.parent)
            if text and is_user_facing(text):
                strings.append(
                    ExtractedString(
                        value=text,
                        source_file=relative_path,
                        line=unit.line_of(node),
                        type=default_type,
                        component=component,
                    )
                )
    return strings


def _text_content(unit: SourceUnit, element: Node) -> Optional[str]:
    if element.type != "jsx_element":
        return None
    parts: List[str] = []
    for child in element.named_children:
        if child.type == "jsx_text":
            text = _WHITESPACE_RE.sub(" ", unit.node_text(child)).strip()
            if text:
                parts.append(text)
        elif child.type == "html_character_reference":
            parts.append(html.unescape(unit.node_text(child)))
        elif child.type == "jsx_expression":
            value = string_literal_value(unit, child)
            if value:
                parts.append(value)
    return " ".join(parts) if parts else None


def _enclosing_component(unit: SourceUnit, node: Node) -> Optional[str]:
    current = node.parent
    while current is not None:
        if current.type == "function_declaration":
            name = unit.node_text(current.child_by_field_name("name"))
            if _PASCAL_CASE_RE.match(name):
                return name
        elif current.type in _FUNCTION_TYPES and current.parent is not None:
            declarator = current.parent
            if declarator.type == "variable_declarator":
                name = unit.node_text(declarator.child_by_field_name("name"))
                if _PASCAL_CASE_RE.match(name):
                    return name
        current = current.parent
    return None


__all__ = ["TEXT_ATTRIBUTES", "extract_strings", "is_user_facing", "string_type_for_tag"]
