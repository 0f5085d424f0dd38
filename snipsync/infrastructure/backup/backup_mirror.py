"""
Backup mirror: keep one human-readable JSON file in step with the canonical store.

Write path: every successful store write is serialized into the versioned
envelope and written atomically. Failures are reported, never raised into the
mutation that triggered them.

Absorb path: the file is read back (e.g. after another machine edited it via
a cloud-synced folder), merged into the store and written back. The sha256
of the last bytes written or absorbed is kept, so our own writes echoing
back through the file watcher are skipped without any timer.
"""

from __future__ import annotations

import hashlib
import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from snipsync.config import BackupSettings
from snipsync.domain.entities.collection import Collection
from snipsync.domain.errors import InvalidImportFormat, MirrorUnreachable, SnipSyncError
from snipsync.domain.interfaces.backup_mirror_interface import AbsorbResult, IBackupMirror
from snipsync.domain.interfaces.collection_store_interface import ICollectionStore
from snipsync.domain.services import backup_envelope
from snipsync.domain.services.merge_engine import MergeEngine
from snipsync.infrastructure.storage.json_collection_store import write_json_atomic
from snipsync.observability import emit_event

logger = logging.getLogger(__name__)


def _digest(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


@dataclass(frozen=True)
class MirrorResult:
    written: bool
    path: Optional[Path] = None
    digest: Optional[str] = None
    error: Optional[str] = None


class BackupMirror(IBackupMirror):
    def __init__(
        self,
        store: ICollectionStore,
        merge_engine: MergeEngine,
        settings: BackupSettings,
    ) -> None:
        self._store = store
        self._merge = merge_engine
        self._settings = settings
        self._lock = threading.Lock()
        self._last_digest: Optional[str] = None
        self._last_synced_at: Optional[datetime] = None

    @property
    def enabled(self) -> bool:
        return self._settings.path is not None

    @property
    def path(self) -> Optional[Path]:
        return self._settings.path

    @property
    def settings(self) -> BackupSettings:
        return self._settings

    @property
    def last_digest(self) -> Optional[str]:
        return self._last_digest

    @property
    def last_synced_at(self) -> Optional[datetime]:
        return self._last_synced_at

    def attach(self) -> None:
        self._store.add_listener(self.on_store_changed)

    def _mark_synced(self, digest: str) -> None:
        self._last_digest = digest
        self._last_synced_at = datetime.now(timezone.utc)

    # ---------- Write path ----------
    def write(self, collection: Collection) -> MirrorResult:
        """Mirror the whole collection; raises MirrorUnreachable on I/O failure."""
        path = self._settings.path
        if path is None:
            return MirrorResult(written=False)
        payload = backup_envelope.encode(collection)
        with self._lock:
            try:
                data = write_json_atomic(path, payload)
            except OSError as exc:
                raise MirrorUnreachable(f"cannot write backup file {path}: {exc}", cause=exc) from exc
            digest = _digest(data)
            self._mark_synced(digest)
        emit_event(
            "backup_mirror_written",
            path=str(path),
            folders=len(collection.folders),
            snippets=len(collection.snippets),
        )
        return MirrorResult(written=True, path=path, digest=digest)

    def on_store_changed(self, collection: Collection) -> MirrorResult:
        try:
            return self.write(collection)
        except MirrorUnreachable as exc:
            emit_event("backup_mirror_unreachable", severity="warning", path=str(self.path), error=str(exc))
            return MirrorResult(written=False, path=self.path, error=str(exc))

    # ---------- Absorb path ----------
    def absorb(self) -> AbsorbResult:
        path = self._settings.path
        if path is None:
            return AbsorbResult(status="disabled")
        try:
            data = path.read_bytes()
        except FileNotFoundError:
            return AbsorbResult(status="missing")
        except OSError as exc:
            emit_event("backup_absorb_unreachable", severity="warning", path=str(path), error=str(exc))
            return AbsorbResult(status="missing", error=str(exc))

        digest = _digest(data)
        with self._lock:
            already_synced = digest == self._last_digest
        if already_synced:
            logger.debug("Backup file unchanged since last sync, skipping absorb")
            return AbsorbResult(status="skipped")

        try:
            incoming = backup_envelope.loads(data.decode("utf-8"))
        except (InvalidImportFormat, UnicodeDecodeError) as exc:
            emit_event("backup_absorb_rejected", severity="warning", path=str(path), error=str(exc))
            return AbsorbResult(status="rejected", error=str(exc))

        try:
            with self._store.atomic():
                current = self._store.list()
                merged, stats = self._merge.merge_with_stats(current, incoming)
                merged = MergeEngine.repair_references(merged)
                if merged == current:
                    with self._lock:
                        self._mark_synced(digest)
                    return AbsorbResult(status="unchanged", stats=stats)
                self._store.replace_all(merged.folders, merged.snippets)
        except SnipSyncError as exc:
            emit_event("backup_absorb_failed", severity="error", path=str(path), error=str(exc))
            return AbsorbResult(status="rejected", error=str(exc))

        emit_event(
            "backup_absorbed",
            path=str(path),
            added=stats.added,
            replaced=stats.replaced,
            kept=stats.kept,
        )
        return AbsorbResult(status="merged", stats=stats)

    # ---------- Import / Export ----------
    def read_file(self, path: Path) -> Collection:
        try:
            text = Path(path).read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise InvalidImportFormat(f"cannot read import file {path}: {exc}", cause=exc) from exc
        return backup_envelope.loads(text)

    def export_to(self, path: Path, collection: Collection) -> Path:
        target = Path(path)
        try:
            write_json_atomic(target, backup_envelope.encode(collection))
        except OSError as exc:
            raise MirrorUnreachable(f"cannot write export file {target}: {exc}", cause=exc) from exc
        emit_event("backup_exported", path=str(target), folders=len(collection.folders), snippets=len(collection.snippets))
        return target
