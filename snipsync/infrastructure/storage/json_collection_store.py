from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

from snipsync.domain.entities.collection import Collection, Record
from snipsync.domain.entities.folder import Folder
from snipsync.domain.entities.snippet import Snippet
from snipsync.domain.errors import CorruptCollection, RecordNotFound, StorageUnavailable
from snipsync.domain.interfaces.collection_store_interface import ICollectionStore, StoreListener
from snipsync.domain.services.clock import Clock, now_ms
from snipsync.domain.services.record_codec import (
    RecordFormatError,
    folder_from_dict,
    folder_to_dict,
    sanitize_snippet,
    snippet_from_dict,
    snippet_to_dict,
)
from snipsync.domain.services.tree_projection import FolderIndex
from snipsync.observability import emit_event

logger = logging.getLogger(__name__)

STORE_FILE_NAME = "store.json"
LEGACY_FOLDERS_FILE = "folders.json"
LEGACY_SNIPPETS_FILE = "snippets.json"
STORE_FORMAT_VERSION = 1


def write_json_atomic(path: Path, payload: Any) -> bytes:
    """Serialize `payload` next to `path` and swap it in with os.replace.

    Returns the bytes written so callers can fingerprint them.
    """
    data = json.dumps(payload, indent=2, ensure_ascii=False).encode("utf-8")
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent))
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(data)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except OSError:
            pass
        raise
    return data


class JsonCollectionStore(ICollectionStore):
    """Canonical store: one JSON document holding both record collections.

    The sanitized snapshot is cached and reused until the file's
    (mtime_ns, size) signature changes, so read-time defaults stay stable
    across reads. An RLock serializes in-process readers and writers.
    """

    def __init__(self, store_dir: Path, clock: Optional[Clock] = None) -> None:
        self._dir = Path(store_dir)
        self._path = self._dir / STORE_FILE_NAME
        self._clock = clock or now_ms
        self._lock = threading.RLock()
        self._listeners: List[StoreListener] = []
        self._snapshot: Optional[Collection] = None
        self._signature: Optional[Tuple[int, int]] = None
        self._last_good: Collection = Collection()

    @property
    def path(self) -> Path:
        return self._path

    def add_listener(self, listener: StoreListener) -> None:
        with self._lock:
            self._listeners.append(listener)

    def atomic(self) -> threading.RLock:
        return self._lock

    def last_good(self) -> Collection:
        """Most recent snapshot that parsed cleanly (empty before the first read)."""
        return self._last_good

    # ---------- Reads ----------
    def list(self) -> Collection:
        with self._lock:
            signature = self._stat_signature()
            if self._snapshot is not None and signature == self._signature:
                return self._snapshot
            collection = self._load()
            self._snapshot = collection
            self._signature = signature
            self._last_good = collection
            return collection

    def get(self, record_id: str) -> Optional[Record]:
        return self.list().find(record_id)

    def _stat_signature(self) -> Optional[Tuple[int, int]]:
        try:
            st = self._path.stat()
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise StorageUnavailable(f"cannot stat {self._path}: {exc}", cause=exc) from exc
        return (st.st_mtime_ns, st.st_size)

    def _read_json(self, path: Path) -> Any:
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as exc:
            raise StorageUnavailable(f"cannot read {path}: {exc}", cause=exc) from exc
        try:
            return json.loads(text)
        except ValueError as exc:
            emit_event("store_corrupt", severity="error", path=str(path), error=str(exc))
            raise CorruptCollection(f"{path.name} is not valid JSON: {exc}", cause=exc) from exc

    def _load(self) -> Collection:
        if self._path.exists():
            raw = self._read_json(self._path)
            if not isinstance(raw, dict):
                raise CorruptCollection(f"{self._path.name} must hold an object")
            raw_folders = raw.get("folders", [])
            raw_snippets = raw.get("snippets", [])
        else:
            raw_folders, raw_snippets = self._load_legacy()
        if not isinstance(raw_folders, list) or not isinstance(raw_snippets, list):
            raise CorruptCollection("folders and snippets must be arrays")
        return self._decode(raw_folders, raw_snippets)

    def _load_legacy(self) -> Tuple[List[Any], List[Any]]:
        folders_path = self._dir / LEGACY_FOLDERS_FILE
        snippets_path = self._dir / LEGACY_SNIPPETS_FILE
        folders = self._read_json(folders_path) if folders_path.exists() else []
        snippets = self._read_json(snippets_path) if snippets_path.exists() else []
        if folders or snippets:
            logger.info("Loaded legacy two-file store from %s", self._dir)
        return folders, snippets

    def _decode(self, raw_folders: List[Any], raw_snippets: List[Any]) -> Collection:
        now = self._clock()
        try:
            folders = [folder_from_dict(item) for item in raw_folders]
            snippets = [sanitize_snippet(snippet_from_dict(item), now) for item in raw_snippets]
        except RecordFormatError as exc:
            emit_event("store_corrupt", severity="error", path=str(self._path), error=str(exc))
            raise CorruptCollection(f"invalid record in store: {exc}", cause=exc) from exc
        return Collection.of(folders, snippets)

    # ---------- Writes ----------
    def _write(self, collection: Collection) -> Collection:
        payload: Dict[str, Any] = {
            "version": STORE_FORMAT_VERSION,
            "folders": [folder_to_dict(f) for f in collection.folders],
            "snippets": [snippet_to_dict(s) for s in collection.snippets],
        }
        try:
            write_json_atomic(self._path, payload)
            signature = self._stat_signature()
        except OSError as exc:
            emit_event("store_write_failed", severity="error", path=str(self._path), error=str(exc))
            raise StorageUnavailable(f"cannot write {self._path}: {exc}", cause=exc) from exc
        # The file keeps what was given; the cache matches what a fresh read would return.
        now = self._clock()
        snapshot = Collection.of(collection.folders, [sanitize_snippet(s, now) for s in collection.snippets])
        self._snapshot = snapshot
        self._signature = signature
        self._last_good = snapshot
        return snapshot

    def _commit(self, collection: Collection) -> Collection:
        with self._lock:
            written = self._write(collection)
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(written)
            except Exception:
                logger.exception("Store listener failed")
        return written

    def put(self, record: Record) -> Collection:
        with self._lock:
            current = self.list()
            if isinstance(record, Folder):
                folders = _upsert(current.folders, record)
                return self._commit(Collection.of(folders, current.snippets))
            if isinstance(record, Snippet):
                if current.folder(record.folder_id) is None:
                    raise RecordNotFound(record.folder_id, kind="folder")
                snippets = _upsert(current.snippets, record)
                return self._commit(Collection.of(current.folders, snippets))
            raise TypeError(f"unsupported record type: {type(record).__name__}")

    def delete(self, record_id: str) -> Collection:
        with self._lock:
            current = self.list()
            if current.snippet(record_id) is not None:
                snippets = [s for s in current.snippets if s.id != record_id]
                return self._commit(Collection.of(current.folders, snippets))
            if current.folder(record_id) is None:
                raise RecordNotFound(record_id)
            doomed = {record_id, *FolderIndex(current.folders).descendants(record_id)}
            folders = [f for f in current.folders if f.id not in doomed]
            snippets = [s for s in current.snippets if s.folder_id not in doomed]
            logger.info(
                "Deleting folder %s with %d subfolder(s) and %d snippet(s)",
                record_id,
                len(doomed) - 1,
                len(current.snippets) - len(snippets),
            )
            return self._commit(Collection.of(folders, snippets))

    def replace_all(self, folders: Iterable[Folder], snippets: Iterable[Snippet]) -> Collection:
        with self._lock:
            return self._commit(Collection.of(folders, snippets))


def _upsert(records, record):
    out = list(records)
    for i, existing in enumerate(out):
        if existing.id == record.id:
            out[i] = record
            return out
    out.append(record)
    return out
