"""
Domain service: the flat backup file format.

Written shape (always):

    {"version": "1.0", "timestamp": "<ISO-8601>",
     "data": [{...folder, "type": "folder"}, ..., {...snippet}, ...]}

Accepted on read:
- the versioned envelope with a flat `data` array
- the versioned envelope with `data` as {"folders": [...], "snippets": [...]}
- {"folders": [...], "snippets": [...]}
- a bare array of mixed records

A file that fails any structural check raises InvalidImportFormat as a whole.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple

from snipsync.domain.entities.collection import Collection
from snipsync.domain.entities.folder import Folder
from snipsync.domain.entities.snippet import Snippet
from snipsync.domain.errors import InvalidImportFormat
from snipsync.domain.services.record_codec import (
    FOLDER_TYPE,
    RecordFormatError,
    classify_record,
    folder_from_dict,
    folder_to_dict,
    snippet_from_dict,
    snippet_to_dict,
)

logger = logging.getLogger(__name__)

ENVELOPE_VERSION = "1.0"


def encode(collection: Collection, now: Optional[datetime] = None) -> Dict[str, Any]:
    stamp = (now or datetime.now(timezone.utc)).isoformat()
    data: List[Dict[str, Any]] = []
    for f in collection.folders:
        item = folder_to_dict(f)
        item["type"] = FOLDER_TYPE
        data.append(item)
    data.extend(snippet_to_dict(s) for s in collection.snippets)
    return {"version": ENVELOPE_VERSION, "timestamp": stamp, "data": data}


def dumps(collection: Collection, now: Optional[datetime] = None) -> str:
    return json.dumps(encode(collection, now), indent=2, ensure_ascii=False)


def _split_mixed(items: Sequence[Any]) -> Tuple[List[Any], List[Any]]:
    folders: List[Any] = []
    snippets: List[Any] = []
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            raise InvalidImportFormat(f"data[{index}] must be an object")
        if classify_record(item) == "folder":
            folders.append(item)
        else:
            snippets.append(item)
    return folders, snippets


def _split_keyed(raw: Dict[str, Any], where: str) -> Tuple[List[Any], List[Any]]:
    folders = raw.get("folders", [])
    snippets = raw.get("snippets", [])
    if not isinstance(folders, list):
        raise InvalidImportFormat(f"{where}folders must be an array")
    if not isinstance(snippets, list):
        raise InvalidImportFormat(f"{where}snippets must be an array")
    return folders, snippets


def _split(raw: Any) -> Tuple[List[Any], List[Any]]:
    if isinstance(raw, list):
        return _split_mixed(raw)
    if not isinstance(raw, dict):
        raise InvalidImportFormat(f"unsupported backup root: {type(raw).__name__}")

    if "data" in raw:
        version = raw.get("version")
        if version is None:
            raise InvalidImportFormat("envelope is missing a version")
        if str(version) != ENVELOPE_VERSION:
            logger.warning("Importing backup written with envelope version %s", version)
        data = raw["data"]
        if isinstance(data, list):
            return _split_mixed(data)
        if isinstance(data, dict):
            return _split_keyed(data, "data.")
        raise InvalidImportFormat("envelope data must be an array or an object")

    if "folders" in raw or "snippets" in raw:
        return _split_keyed(raw, "")
    raise InvalidImportFormat("unrecognized backup layout")


def _decode_all(items: List[Any], decoder, kind: str) -> List[Any]:
    out = []
    seen = set()
    for index, item in enumerate(items):
        try:
            record = decoder(item)
        except RecordFormatError as exc:
            raise InvalidImportFormat(f"invalid {kind} at index {index}: {exc}", cause=exc) from exc
        if record.id in seen:
            raise InvalidImportFormat(f"duplicate {kind} id {record.id!r} at index {index}")
        seen.add(record.id)
        out.append(record)
    return out


def decode(raw: Any) -> Collection:
    raw_folders, raw_snippets = _split(raw)
    folders: List[Folder] = _decode_all(raw_folders, folder_from_dict, "folder")
    snippets: List[Snippet] = _decode_all(raw_snippets, snippet_from_dict, "snippet")
    return Collection.of(folders, snippets)


def loads(text: str) -> Collection:
    try:
        raw = json.loads(text)
    except (TypeError, ValueError) as exc:
        raise InvalidImportFormat(f"backup is not valid JSON: {exc}", cause=exc) from exc
    return decode(raw)
