"""Source file discovery driven by include / exclude globs."""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Iterable, Iterator, List, Sequence

from pathspec import GitIgnoreSpec

_EXCLUDED_DIRS = {
    ".git",
    ".hg",
    ".svn",
    ".kodex",
    ".next",
    ".turbo",
    "node_modules",
}

_BRACE_RE = re.compile(r"\{([^{}]*)\}")


def expand_braces(pattern: str) -> List[str]:
    """Expand ``{a,b}`` alternations, e.g. ``*.{ts,tsx}`` -> ``*.ts``, ``*.tsx``."""
    match = _BRACE_RE.search(pattern)
    if match is None:
        return [pattern]
    head, tail = pattern[: match.start()], pattern[match.end() :]
    expanded: List[str] = []
    for option in match.group(1).split(","):
        expanded.extend(expand_braces(f"{head}{option}{tail}"))
    return expanded


def compile_globs(patterns: Iterable[str]) -> GitIgnoreSpec:
    lines: List[str] = []
    for pattern in patterns:
        pattern = pattern.strip()
        if pattern.startswith("./"):
            pattern = pattern[2:]
        if pattern:
            lines.extend(expand_braces(pattern))
    return GitIgnoreSpec.from_lines(lines)


def _iter_files(root: Path, exclude: GitIgnoreSpec) -> Iterator[str]:
    for dirpath, dirnames, filenames in os.walk(root):
        current_dir = Path(dirpath)
        rel_dir = current_dir.relative_to(root).as_posix() if current_dir != root else ""

        kept = []
        for name in dirnames:
            if name in _EXCLUDED_DIRS:
                continue
            rel_path = f"{rel_dir}/{name}" if rel_dir else name
            if exclude.match_file(f"{rel_path}/"):
                continue
            kept.append(name)
        dirnames[:] = kept

        for filename in filenames:
            yield f"{rel_dir}/{filename}" if rel_dir else filename


def discover_files(root: Path, include: Sequence[str], exclude: Sequence[str]) -> List[str]:
    """Return sorted project-relative POSIX paths matching ``include`` minus ``exclude``."""
    include_spec = compile_globs(include)
    exclude_spec = compile_globs(exclude)
    matched = [
        rel_path
        for rel_path in _iter_files(root, exclude_spec)
        if include_spec.match_file(rel_path) and not exclude_spec.match_file(rel_path)
    ]
    return sorted(matched)


__all__ = ["compile_globs", "discover_files", "expand_braces"]
