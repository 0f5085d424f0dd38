from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterator, Optional, Tuple

from snipsync.domain.errors import CorruptCollection, StorageUnavailable
from snipsync.infrastructure.storage.json_collection_store import write_json_atomic
from snipsync.observability import emit_event

logger = logging.getLogger(__name__)

MAPPING_FILE_NAME = "gist_mapping.json"


@dataclass(frozen=True)
class GistLink:
    gist_id: str
    digest: Optional[str] = None


class GistMappingStore:
    """Persistent snippet id -> gist link map.

    On disk: {"<snippetId>": {"gistId": "...", "digest": "..."}}. Older files
    stored the bare gist id as the value; those load with no digest, so the
    next push updates them once.
    """

    def __init__(self, path: Path) -> None:
        self._path = Path(path)
        self._lock = threading.RLock()
        self._links: Optional[Dict[str, GistLink]] = None

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> Dict[str, GistLink]:
        if self._links is not None:
            return self._links
        links: Dict[str, GistLink] = {}
        if self._path.exists():
            try:
                raw = json.loads(self._path.read_text(encoding="utf-8"))
            except OSError as exc:
                raise StorageUnavailable(f"cannot read {self._path}: {exc}", cause=exc) from exc
            except ValueError as exc:
                # Starting empty would create a second gist for every snippet.
                emit_event("gist_mapping_corrupt", severity="error", path=str(self._path), error=str(exc))
                raise CorruptCollection(f"{self._path.name} is not valid JSON: {exc}", cause=exc) from exc
            if not isinstance(raw, dict):
                raise CorruptCollection(f"{self._path.name} must hold an object")
            for snippet_id, value in raw.items():
                if isinstance(value, str) and value:
                    links[snippet_id] = GistLink(gist_id=value)
                elif isinstance(value, dict) and isinstance(value.get("gistId"), str):
                    digest = value.get("digest")
                    links[snippet_id] = GistLink(
                        gist_id=value["gistId"],
                        digest=digest if isinstance(digest, str) else None,
                    )
        self._links = links
        return links

    def _save(self) -> None:
        payload = {
            sid: ({"gistId": link.gist_id, "digest": link.digest} if link.digest else {"gistId": link.gist_id})
            for sid, link in (self._links or {}).items()
        }
        try:
            write_json_atomic(self._path, payload)
        except OSError as exc:
            raise StorageUnavailable(f"cannot write {self._path}: {exc}", cause=exc) from exc

    def get(self, snippet_id: str) -> Optional[GistLink]:
        with self._lock:
            return self._load().get(snippet_id)

    def set(self, snippet_id: str, gist_id: str, digest: Optional[str] = None) -> None:
        with self._lock:
            self._load()[snippet_id] = GistLink(gist_id=gist_id, digest=digest)
            self._save()

    def remove(self, snippet_id: str) -> Optional[GistLink]:
        with self._lock:
            link = self._load().pop(snippet_id, None)
            if link is not None:
                self._save()
            return link

    def items(self) -> Iterator[Tuple[str, GistLink]]:
        with self._lock:
            return iter(list(self._load().items()))

    def __len__(self) -> int:
        with self._lock:
            return len(self._load())

    def __contains__(self, snippet_id: object) -> bool:
        with self._lock:
            return snippet_id in self._load()
