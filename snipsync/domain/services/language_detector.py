from __future__ import annotations

import re
from pathlib import Path
from typing import Optional

from snipsync.domain.entities.snippet import PLAIN_TEXT


class LanguageDetector:
    """
    Domain-level language guess for a new snippet.
    Pure heuristics combining the snippet name and its content:
    - Special well-known names without extension (Dockerfile/Makefile/.gitignore)
    - Shebang detection (#!/usr/bin/env bash|sh|python)
    - Extension mapping
    - Strong Python signals for generic names (.txt or no extension)
    Falls back to the plain-text sentinel.
    """

    _EXTENSIONS = {
        ".py": "python",
        ".pyi": "python",
        ".js": "javascript",
        ".jsx": "javascriptreact",
        ".mjs": "javascript",
        ".ts": "typescript",
        ".tsx": "typescriptreact",
        ".html": "html",
        ".htm": "html",
        ".css": "css",
        ".scss": "scss",
        ".less": "less",
        ".java": "java",
        ".c": "c",
        ".h": "c",
        ".cpp": "cpp",
        ".cc": "cpp",
        ".hpp": "cpp",
        ".cs": "csharp",
        ".go": "go",
        ".rs": "rust",
        ".rb": "ruby",
        ".php": "php",
        ".swift": "swift",
        ".kt": "kotlin",
        ".sh": "shellscript",
        ".bash": "shellscript",
        ".zsh": "shellscript",
        ".sql": "sql",
        ".json": "json",
        ".yaml": "yaml",
        ".yml": "yaml",
        ".xml": "xml",
        ".md": "markdown",
        ".markdown": "markdown",
    }

    def detect_language(self, code: Optional[str], name: Optional[str]) -> str:
        text = code or ""
        name_lower = (name or "").strip().lower()
        base = Path(name_lower).name
        ext = Path(name_lower).suffix

        if base == "dockerfile":
            return "dockerfile"
        if base == "makefile":
            return "makefile"
        if base == ".gitignore":
            return "ignore"

        first_line = (text.splitlines()[0] if text else "").strip().lower()
        if first_line.startswith("#!"):
            if "python" in first_line:
                return "python"
            if "bash" in first_line or first_line.endswith("/sh") or " env sh" in first_line:
                return "shellscript"
            if "node" in first_line:
                return "javascript"

        if ext in self._EXTENSIONS:
            return self._EXTENSIONS[ext]

        if ext in {"", ".txt"} and self._strong_python_signal(text):
            return "python"
        return PLAIN_TEXT

    @staticmethod
    def _strong_python_signal(text: str) -> bool:
        signals = 0
        if re.search(r"^\s*def\s+\w+\s*\(", text, flags=re.MULTILINE):
            signals += 1
        if re.search(r"^\s*class\s+\w+\s*[\(:]", text, flags=re.MULTILINE):
            signals += 1
        if re.search(r"^\s*(import\s+\w+|from\s+\w+(\.\w+)*\s+import\s)", text, flags=re.MULTILINE):
            signals += 1
        if "__name__" in text and "__main__" in text:
            signals += 1
        if re.search(r":\s*(#.*)?\n\s{4,}\S", text, flags=re.MULTILINE):
            signals += 1
        return signals >= 2
