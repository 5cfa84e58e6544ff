"""Offline backend that writes placeholder articles without any network access."""

from __future__ import annotations

import json
import re
from typing import List, Optional

_TOPIC_RE = re.compile(r'Generate a help article for: "([^"]+)"')
_PAGE_RE = re.compile(r"^  - (/\S*)$", re.MULTILINE)
_UI_RE = re.compile(r'^      - \[(\w+)\] "(.+)"$', re.MULTILINE)


class MockBackend:
    """Returns a deterministic JSON article assembled from the prompt."""

    def __init__(self) -> None:
        self.prompts: List[str] = []

    def generate(self, prompt: str, max_tokens: Optional[int] = None) -> str:
        self.prompts.append(prompt)
        match = _TOPIC_RE.search(prompt)
        topic = match.group(1) if match else "this feature"
        pages = list(dict.fromkeys(_PAGE_RE.findall(prompt)))
        elements = [value for _kind, value in _UI_RE.findall(prompt)][:5]

        lines = [f"# {topic.capitalize()}", "", f"This article explains how to use {topic}."]
        if pages:
            lines.extend(["", "## Where to find it", ""])
            lines.extend(f"- `{page}`" for page in pages)
        if elements:
            lines.extend(["", "## What you will see", ""])
            lines.extend(f"- {value}" for value in elements)
        return json.dumps(
            {"title": topic.capitalize(), "pages": pages, "content": "\n".join(lines)}
        )


__all__ = ["MockBackend"]
