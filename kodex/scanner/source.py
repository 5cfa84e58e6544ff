"""Tree-sitter parsing of JavaScript / TypeScript source files."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterator, Optional

import tree_sitter_javascript
import tree_sitter_typescript
from tree_sitter import Language, Node, Parser

_GRAMMAR_BY_SUFFIX = {
    ".ts": "typescript",
    ".mts": "typescript",
    ".cts": "typescript",
    ".tsx": "tsx",
    ".js": "javascript",
    ".jsx": "javascript",
    ".mjs": "javascript",
    ".cjs": "javascript",
}

_LANGUAGES: Dict[str, Language] = {}
_LANGUAGES_LOCK = threading.Lock()
_local = threading.local()


class SourceParseError(RuntimeError):
    """Raised when a source file cannot be read, decoded, or parsed."""


def grammar_for(path: str) -> Optional[str]:
    """Return the grammar key for ``path`` or None when unsupported."""
    return _GRAMMAR_BY_SUFFIX.get(Path(path).suffix.lower())


def _language(grammar: str) -> Language:
    with _LANGUAGES_LOCK:
        language = _LANGUAGES.get(grammar)
        if language is None:
            if grammar == "tsx":
                language = Language(tree_sitter_typescript.language_tsx())
            elif grammar == "typescript":
                language = Language(tree_sitter_typescript.language_typescript())
            else:
                language = Language(tree_sitter_javascript.language())
            _LANGUAGES[grammar] = language
        return language


def _parser(grammar: str) -> Parser:
    # Parsers are not thread-safe; keep one per grammar per worker thread.
    parsers: Optional[Dict[str, Parser]] = getattr(_local, "parsers", None)
    if parsers is None:
        parsers = {}
        _local.parsers = parsers
    parser = parsers.get(grammar)
    if parser is None:
        parser = Parser(_language(grammar))
        parsers[grammar] = parser
    return parser


@dataclass
class SourceUnit:
    """One parsed source file, discarded once extraction is done."""

    relative_path: str
    text: str
    source_bytes: bytes
    root: Node
    grammar: str

    @property
    def has_errors(self) -> bool:
        return bool(self.root.has_error)

    def node_text(self, node: Optional[Node]) -> str:
        if node is None:
            return ""
        return self.source_bytes[node.start_byte : node.end_byte].decode("utf-8", errors="ignore")

    @staticmethod
    def line_of(node: Node) -> int:
        return node.start_point[0] + 1

    def walk(self, node: Optional[Node] = None) -> Iterator[Node]:
        """Yield ``node`` and its descendants in document order."""
        stack = [node if node is not None else self.root]
        while stack:
            current = stack.pop()
            yield current
            stack.extend(reversed(current.children))

    def find(self, *types: str, within: Optional[Node] = None) -> Iterator[Node]:
        wanted = set(types)
        for node in self.walk(within):
            if node.type in wanted:
                yield node


def parse_source(text: str, relative_path: str, grammar: Optional[str] = None) -> SourceUnit:
    """Parse ``text`` as the file ``relative_path`` and return a SourceUnit."""
    grammar = grammar or grammar_for(relative_path) or "tsx"
    source_bytes = text.encode("utf-8")
    try:
        tree = _parser(grammar).parse(source_bytes)
    except (ValueError, RuntimeError) as exc:
        raise SourceParseError(f"Failed to parse {relative_path}: {exc}") from exc
    return SourceUnit(
        relative_path=relative_path,
        text=text,
        source_bytes=source_bytes,
        root=tree.root_node,
        grammar=grammar,
    )


def load_source(root: Path, relative_path: str) -> SourceUnit:
    """Read and parse ``root / relative_path``."""
    path = root / relative_path
    try:
        text = path.read_text(encoding="utf-8")
    except UnicodeDecodeError as exc:
        raise SourceParseError(f"Failed to decode {relative_path}: {exc}") from exc
    except OSError as exc:
        raise SourceParseError(f"Failed to read {relative_path}: {exc}") from exc
    return parse_source(text, relative_path)


def string_literal_value(unit: SourceUnit, node: Optional[Node]) -> Optional[str]:
    """Return the value of a ``string`` node, or of ``{"..."}`` wrapping one."""
    if node is None:
        return None
    if node.type == "jsx_expression":
        inner = [child for child in node.named_children if child.type != "comment"]
        if len(inner) != 1:
            return None
        node = inner[0]
    if node.type != "string":
        return None
    raw = unit.node_text(node)
    if len(raw) < 2:
        return None
    # JSX attribute strings take no backslash escapes.
    if node.parent is not None and node.parent.type == "jsx_attribute":
        return raw[1:-1]

    parts = []
    cursor = node.start_byte + 1
    for child in node.named_children:
        if child.type != "escape_sequence":
            continue
        parts.append(unit.source_bytes[cursor : child.start_byte].decode("utf-8", errors="ignore"))
        parts.append(decode_escape(unit.node_text(child)))
        cursor = child.end_byte
    parts.append(unit.source_bytes[cursor : node.end_byte - 1].decode("utf-8", errors="ignore"))
    value = "".join(parts)
    if any("\ud800" <= char <= "\udfff" for char in value):
        # Astral characters arrive as two \u escapes; rejoin the surrogate pair.
        value = value.encode("utf-16", "surrogatepass").decode("utf-16", "surrogatepass")
    return value


_SIMPLE_ESCAPES = {
    "n": "\n",
    "t": "\t",
    "r": "\r",
    "b": "\b",
    "f": "\f",
    "v": "\v",
    "0": "\0",
}


def decode_escape(sequence: str) -> str:
    """Decode one JavaScript escape sequence such as ``\\n``, ``\\x41`` or ``\\u{1F600}``."""
    body = sequence[1:]
    if not body or body[0] in "\r\n\u2028\u2029":
        return ""
    head = body[0]
    if head in ("x", "u"):
        digits = body[1:].strip("{}")
        try:
            return chr(int(digits, 16))
        except ValueError:
            return body
    if head in _SIMPLE_ESCAPES and len(body) == 1:
        return _SIMPLE_ESCAPES[head]
    return body


def jsx_tag_name(unit: SourceUnit, element: Node) -> str:
    """Return the tag name of an opening or self-closing element ('' for fragments)."""
    return unit.node_text(element.child_by_field_name("name"))


def jsx_attributes(unit: SourceUnit, element: Node) -> Iterator[tuple[str, Optional[Node], Node]]:
    """Yield ``(name, value_node, attribute_node)`` for an element's own attributes."""
    for child in element.named_children:
        if child.type != "jsx_attribute":
            continue
        parts = child.named_children
        if not parts:
            continue
        name = unit.node_text(parts[0])
        value = parts[-1] if len(parts) > 1 else None
        yield name, value, child


__all__ = [
    "SourceParseError",
    "SourceUnit",
    "decode_escape",
    "grammar_for",
    "jsx_attributes",
    "jsx_tag_name",
    "load_source",
    "parse_source",
    "string_literal_value",
]
