"""Tests for include / exclude driven file discovery."""

from __future__ import annotations

import warnings

from kodex.scanner.files import compile_globs, discover_files, expand_braces
from tests._fixtures.project_builder import ProjectBuilder


def test_expand_braces() -> None:
    assert expand_braces("src/**/*.{ts,tsx}") == ["src/**/*.ts", "src/**/*.tsx"]
    assert expand_braces("{app,pages}/*.{js,jsx}") == [
        "app/*.js",
        "app/*.jsx",
        "pages/*.js",
        "pages/*.jsx",
    ]
    assert expand_braces("src/index.ts") == ["src/index.ts"]


def test_compile_globs_strips_leading_dot_slash() -> None:
    spec = compile_globs(["./src/**/*.ts"])

    assert spec.match_file("src/lib/util.ts")
    assert not spec.match_file("lib/util.ts")


def test_compile_globs_emits_no_deprecation_warning() -> None:
    with warnings.catch_warnings():
        warnings.simplefilter("error")
        spec = compile_globs(["**/*.test.*", "**/node_modules/**"])

    assert spec.match_file("src/App.test.tsx")
    assert spec.match_file("web/node_modules/react/index.js")
    assert not spec.match_file("src/App.tsx")


def test_discover_files_applies_include_and_exclude(project_builder: ProjectBuilder) -> None:
    project_builder.write(
        {
            "src/App.tsx": "export {};\n",
            "src/lib/format.ts": "export {};\n",
            "src/lib/format.test.ts": "export {};\n",
            "src/styles/site.css": "body {}\n",
            "src/node_modules/pkg/index.js": "module.exports = {};\n",
            "src/generated/api.ts": "export {};\n",
            "scripts/build.js": "console.log('build');\n",
        }
    )

    files = discover_files(
        project_builder.path(),
        ["src/**/*.{ts,tsx,js,jsx}"],
        ["**/*.test.*", "**/node_modules/**", "src/generated/**"],
    )

    assert files == ["src/App.tsx", "src/lib/format.ts"]


def test_discover_files_skips_state_directories(project_builder: ProjectBuilder) -> None:
    project_builder.write(
        {
            "app/page.tsx": "export {};\n",
            ".kodex/cache/page.tsx": "export {};\n",
            ".next/server/page.tsx": "export {};\n",
        }
    )

    files = discover_files(project_builder.path(), ["**/*.tsx"], [])

    assert files == ["app/page.tsx"]
