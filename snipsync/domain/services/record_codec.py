"""
Domain service: decode untyped JSON records into strict Folder/Snippet entities.

Every boundary (store file, backup file, gist document) funnels raw dicts
through this module once. Decoding is strict about identity and types and
lenient about optional content, which gets default-filled:
- missing code / notes -> ""
- missing language -> "plaintext"
- missing tags -> []
Missing `lastModified` stays None here; `sanitize_snippet` fills it on read.
"""

from __future__ import annotations

import dataclasses
from typing import Any, Dict, Mapping, Optional

from snipsync.domain.entities.folder import Folder
from snipsync.domain.entities.snippet import PLAIN_TEXT, Snippet

FOLDER_TYPE = "folder"


class RecordFormatError(ValueError):
    def __init__(self, message: str, *, field: Optional[str] = None) -> None:
        super().__init__(message)
        self.field = field


def classify_record(raw: Mapping[str, Any]) -> str:
    """Return "folder" or "snippet" for a raw record.

    The explicit `type` discriminator wins; otherwise a record owning a
    `folderId` is a snippet.
    """
    if raw.get("type") == FOLDER_TYPE:
        return "folder"
    if "folderId" in raw:
        return "snippet"
    return "folder"


def _require_mapping(raw: Any) -> Mapping[str, Any]:
    if not isinstance(raw, Mapping):
        raise RecordFormatError(f"record must be an object, got {type(raw).__name__}")
    return raw


def _require_id(raw: Mapping[str, Any], key: str = "id") -> str:
    value = raw.get(key)
    if not isinstance(value, str) or not value.strip():
        raise RecordFormatError(f"{key} must be a non-empty string", field=key)
    return value


def _optional_str(raw: Mapping[str, Any], key: str, default: str) -> str:
    value = raw.get(key)
    if value is None:
        return default
    if not isinstance(value, str):
        raise RecordFormatError(f"{key} must be a string", field=key)
    return value


def _optional_number(raw: Mapping[str, Any], key: str) -> Optional[float]:
    value = raw.get(key)
    if value is None:
        return None
    # bool is an int subclass; "true" is never a timestamp
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise RecordFormatError(f"{key} must be a number", field=key)
    return value


def _timestamp(raw: Mapping[str, Any]) -> Optional[int]:
    value = _optional_number(raw, "lastModified")
    return None if value is None else int(value)


def folder_from_dict(raw: Any) -> Folder:
    data = _require_mapping(raw)
    parent_id = data.get("parentId")
    if parent_id is not None and (not isinstance(parent_id, str) or not parent_id):
        raise RecordFormatError("parentId must be a string or null", field="parentId")
    return Folder(
        id=_require_id(data),
        name=_optional_str(data, "name", ""),
        parent_id=parent_id,
        order=_optional_number(data, "order"),
        last_modified=_timestamp(data),
    )


def snippet_from_dict(raw: Any) -> Snippet:
    data = _require_mapping(raw)
    tags = data.get("tags")
    if tags is None:
        tags = []
    if not isinstance(tags, list) or not all(isinstance(t, str) for t in tags):
        raise RecordFormatError("tags must be a list of strings", field="tags")
    return Snippet(
        id=_require_id(data),
        name=_optional_str(data, "name", ""),
        folder_id=_require_id(data, "folderId"),
        code=_optional_str(data, "code", ""),
        notes=_optional_str(data, "notes", ""),
        language=_optional_str(data, "language", PLAIN_TEXT) or PLAIN_TEXT,
        tags=list(tags),
        last_modified=_timestamp(data),
    )


def folder_to_dict(folder: Folder) -> Dict[str, Any]:
    out: Dict[str, Any] = {
        "id": folder.id,
        "name": folder.name,
        "parentId": folder.parent_id,
    }
    if folder.order is not None:
        out["order"] = folder.order
    if folder.last_modified is not None:
        out["lastModified"] = folder.last_modified
    return out


def snippet_to_dict(snippet: Snippet) -> Dict[str, Any]:
    out: Dict[str, Any] = {
        "id": snippet.id,
        "name": snippet.name,
        "folderId": snippet.folder_id,
        "code": snippet.code,
        "notes": snippet.notes,
        "language": snippet.language,
        "tags": list(snippet.tags),
    }
    if snippet.last_modified is not None:
        out["lastModified"] = snippet.last_modified
    return out


def sanitize_snippet(snippet: Snippet, now: int) -> Snippet:
    """Read-time normalization; returns the same object when nothing is missing."""
    if snippet.last_modified is not None:
        return snippet
    return dataclasses.replace(snippet, last_modified=now)
