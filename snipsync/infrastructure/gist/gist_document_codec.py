"""
Encode one snippet as one gist file, and decode the three layouts found in
existing gists.

Structured (written):

    {"metadata": {"name", "folder", "folderId", "language", "notes",
                  "tags", "id", "lastModified"},
     "code": "..."}

Legacy comment header (read only):

    // Snippet Name: retry
    // Folder: http
    // Folder ID: f1
    // ID: s1
    // Language: python
    // Notes: ...
    <code>

Fenced (read only): `Key: value` lines, then the code inside a ``` block.
"""

from __future__ import annotations

import hashlib
import json
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

from snipsync.domain.entities.folder import Folder
from snipsync.domain.entities.snippet import PLAIN_TEXT, Snippet

NO_FOLDER = "No Folder"

_LEGACY_KEYS = {
    "snippet name": "name",
    "name": "name",
    "folder": "folder",
    "folder id": "folderId",
    "folderid": "folderId",
    "id": "id",
    "language": "language",
    "notes": "notes",
    "tags": "tags",
}

_UNSAFE_NAME = re.compile(r"[^A-Za-z0-9._-]+")


class GistDecodeError(ValueError):
    pass


@dataclass(frozen=True)
class DecodedDocument:
    snippet: Snippet
    folder: Optional[Folder]
    layout: str  # "structured" | "legacy" | "fenced"


def _ms(value: Optional[datetime]) -> Optional[int]:
    if value is None:
        return None
    return int(value.timestamp() * 1000)


class GistDocumentCodec:
    def file_name(self, snippet: Snippet) -> str:
        stem = _UNSAFE_NAME.sub("_", snippet.name).strip("._") or "snippet"
        language = snippet.language if snippet.language and snippet.language != PLAIN_TEXT else "txt"
        return f"{stem}.{language}"

    def description(self, snippet: Snippet, folder_name: Optional[str], prefix: str = "Snippet") -> str:
        return f"{prefix}: {snippet.name} ({folder_name or NO_FOLDER})"

    def encode(self, snippet: Snippet, folder_name: Optional[str]) -> Tuple[str, str]:
        metadata: Dict[str, Any] = {
            "name": snippet.name,
            "folder": folder_name or NO_FOLDER,
            "folderId": snippet.folder_id,
            "language": snippet.language or PLAIN_TEXT,
            "notes": snippet.notes,
            "tags": list(snippet.tags),
            "id": snippet.id,
        }
        if snippet.last_modified is not None:
            metadata["lastModified"] = snippet.last_modified
        content = json.dumps({"metadata": metadata, "code": snippet.code}, indent=2, ensure_ascii=False)
        return self.file_name(snippet), content

    @staticmethod
    def digest(file_name: str, content: str, description: str = "") -> str:
        h = hashlib.sha256()
        for part in (description, file_name, content):
            h.update(part.encode("utf-8"))
            h.update(b"\0")
        return h.hexdigest()

    # ---------- Decoding ----------
    def decode(
        self,
        content: str,
        fallback_id: str,
        updated_at: Optional[datetime] = None,
    ) -> DecodedDocument:
        """Structured JSON first, then the comment header, then the fenced layout."""
        text = content or ""
        parsed = self._try_json(text)
        if parsed is not None:
            layout = "structured"
            code = parsed.get("code")
            metadata = parsed.get("metadata")
            if not isinstance(metadata, dict):
                raise GistDecodeError("structured gist has no metadata object")
            if code is not None and not isinstance(code, str):
                raise GistDecodeError("structured gist code must be a string")
            fields = dict(metadata)
            body = code or ""
        elif text.lstrip().startswith("//"):
            fields, body = self._parse_comment_header(text)
            layout = "legacy"
        elif "```" in text:
            fields, body = self._parse_fenced(text)
            layout = "fenced"
        else:
            raise GistDecodeError("unrecognized gist layout")
        return self._build(fields, body, fallback_id, _ms(updated_at), layout)

    @staticmethod
    def _try_json(text: str) -> Optional[Dict[str, Any]]:
        stripped = text.strip()
        if not stripped.startswith("{"):
            return None
        try:
            value = json.loads(stripped)
        except ValueError:
            return None
        return value if isinstance(value, dict) else None

    @staticmethod
    def _header_pair(line: str) -> Optional[Tuple[str, str]]:
        if ":" not in line:
            return None
        key, value = line.split(":", 1)
        mapped = _LEGACY_KEYS.get(key.strip().lower())
        if mapped is None:
            return None
        return mapped, value.strip()

    def _parse_comment_header(self, text: str) -> Tuple[Dict[str, Any], str]:
        lines = text.split("\n")
        fields: Dict[str, Any] = {}
        start = len(lines)
        for i, line in enumerate(lines):
            stripped = line.strip()
            if not stripped.startswith("//"):
                start = i
                break
            pair = self._header_pair(stripped[2:])
            if pair is not None:
                fields[pair[0]] = pair[1]
        return fields, "\n".join(lines[start:]).strip()

    def _parse_fenced(self, text: str) -> Tuple[Dict[str, Any], str]:
        lines = text.split("\n")
        fields: Dict[str, Any] = {}
        start = None
        for i, line in enumerate(lines):
            stripped = line.strip()
            if stripped.startswith("```"):
                start = i + 1
                break
            pair = self._header_pair(stripped)
            if pair is not None:
                fields[pair[0]] = pair[1]
        if start is None:
            raise GistDecodeError("fenced gist has no code block")
        body_lines = lines[start:]
        for j in range(len(body_lines) - 1, -1, -1):
            if body_lines[j].strip() == "```":
                body_lines = body_lines[:j]
                break
        return fields, "\n".join(body_lines)

    def _build(
        self,
        fields: Dict[str, Any],
        body: str,
        fallback_id: str,
        remote_ms: Optional[int],
        layout: str,
    ) -> DecodedDocument:
        def text(key: str, default: str = "") -> str:
            value = fields.get(key)
            return value if isinstance(value, str) else default

        snippet_id = text("id") or fallback_id
        name = text("name")
        folder_id = text("folderId")
        if not snippet_id or not name or not folder_id:
            raise GistDecodeError("gist metadata lacks id, name or folderId")

        tags = fields.get("tags") or []
        if isinstance(tags, str):
            tags = [t for t in (p.strip() for p in tags.split(",")) if t]
        if not isinstance(tags, list):
            tags = []

        last_modified = fields.get("lastModified")
        if isinstance(last_modified, bool) or not isinstance(last_modified, (int, float)):
            last_modified = remote_ms
        snippet = Snippet(
            id=snippet_id,
            name=name,
            folder_id=folder_id,
            code=body,
            notes=text("notes"),
            language=text("language", PLAIN_TEXT) or PLAIN_TEXT,
            tags=[str(t) for t in tags],
            last_modified=None if last_modified is None else int(last_modified),
        )
        folder_name = text("folder")
        folder = None
        if folder_name and folder_name != NO_FOLDER:
            # Only fills gaps: any real local version of the folder is newer.
            folder = Folder(id=folder_id, name=folder_name, parent_id=None, last_modified=0)
        return DecodedDocument(snippet=snippet, folder=folder, layout=layout)
