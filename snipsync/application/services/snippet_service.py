from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, replace
from pathlib import Path
from typing import List, Optional

from snipsync.application.dto.create_snippet_dto import CreateSnippetDTO
from snipsync.application.dto.update_snippet_dto import UpdateSnippetDTO
from snipsync.domain.entities.collection import Collection
from snipsync.domain.entities.folder import Folder
from snipsync.domain.entities.snippet import PLAIN_TEXT, Snippet, normalize_tags
from snipsync.domain.errors import (
    InvalidMove,
    MirrorUnreachable,
    RecordNotFound,
    RemoteNotConfigured,
    RemoteSyncError,
    StorageUnavailable,
)
from snipsync.domain.interfaces.backup_mirror_interface import AbsorbResult, IBackupMirror
from snipsync.domain.interfaces.collection_store_interface import ICollectionStore
from snipsync.domain.interfaces.remote_replica_interface import IRemoteReplica, PullReport, SyncReport
from snipsync.domain.services.clock import Clock, advance, now_ms
from snipsync.domain.services.language_detector import LanguageDetector
from snipsync.domain.services.merge_engine import MergeEngine, MergeStats
from snipsync.domain.services.tree_projection import FolderIndex, SnippetTree
from snipsync.observability import bind_operation, emit_event

logger = logging.getLogger(__name__)


def new_record_id() -> str:
    return uuid.uuid4().hex


@dataclass(frozen=True)
class PullOutcome:
    report: PullReport
    stats: MergeStats

    @property
    def changed(self) -> bool:
        return self.stats.changed


class SnippetService:
    """Application service orchestrating folder/snippet commands and replica sync.

    Thin orchestration over domain + ports. No file formats or GitHub here:
    the store, the backup mirror and the remote replica are injected.
    """

    def __init__(
        self,
        store: ICollectionStore,
        merge_engine: MergeEngine,
        backup_mirror: Optional[IBackupMirror] = None,
        remote: Optional[IRemoteReplica] = None,
        language_detector: Optional[LanguageDetector] = None,
        clock: Optional[Clock] = None,
        auto_sync_on_open: bool = False,
    ) -> None:
        self._store = store
        self._merge = merge_engine
        self._mirror = backup_mirror
        self._remote = remote
        self._detector = language_detector
        self._clock = clock or now_ms
        self._auto_sync_on_open = auto_sync_on_open

    @property
    def remote_configured(self) -> bool:
        return self._remote is not None

    # ---------- Lookups ----------
    def _folder(self, collection: Collection, folder_id: str) -> Folder:
        folder = collection.folder(folder_id)
        if folder is None:
            raise RecordNotFound(folder_id, kind="folder")
        return folder

    def _snippet(self, collection: Collection, snippet_id: str) -> Snippet:
        snippet = collection.snippet(snippet_id)
        if snippet is None:
            raise RecordNotFound(snippet_id, kind="snippet")
        return snippet

    async def get_collection(self) -> Collection:
        return self._store.list()

    async def get_snippet(self, snippet_id: str) -> Snippet:
        return self._snippet(self._store.list(), snippet_id)

    async def tree(self, query: str = "") -> SnippetTree:
        return SnippetTree(self._store.list(), query)

    async def search(self, query: str) -> List[Snippet]:
        return SnippetTree(self._store.list(), query).matching_snippets()

    # ---------- Folders ----------
    async def add_folder(self, name: str, parent_id: Optional[str] = None, order: Optional[float] = None) -> Folder:
        if not name or not name.strip():
            raise ValueError("folder name is required")
        collection = self._store.list()
        if parent_id is not None:
            self._folder(collection, parent_id)
        folder = Folder(
            id=new_record_id(),
            name=name.strip(),
            parent_id=parent_id,
            order=order,
            last_modified=self._clock(),
        )
        self._store.put(folder)
        return folder

    def _touch_folder(self, folder: Folder, **changes) -> Folder:
        updated = replace(folder, **changes)
        if updated == folder:
            return folder
        updated.last_modified = advance(folder.last_modified, self._clock())
        self._store.put(updated)
        return updated

    async def rename_folder(self, folder_id: str, name: str) -> Folder:
        if not name or not name.strip():
            raise ValueError("folder name is required")
        folder = self._folder(self._store.list(), folder_id)
        return self._touch_folder(folder, name=name.strip())

    async def move_folder(self, folder_id: str, new_parent_id: Optional[str]) -> Folder:
        collection = self._store.list()
        folder = self._folder(collection, folder_id)
        if new_parent_id is not None:
            self._folder(collection, new_parent_id)
        if FolderIndex(collection.folders).would_create_cycle(folder_id, new_parent_id):
            raise InvalidMove(f"cannot move folder {folder_id} under its own descendant {new_parent_id}")
        return self._touch_folder(folder, parent_id=new_parent_id)

    async def reorder_folder(self, folder_id: str, order: Optional[float]) -> Folder:
        folder = self._folder(self._store.list(), folder_id)
        return self._touch_folder(folder, order=order)

    async def delete_folder(self, folder_id: str) -> Collection:
        collection = self._store.list()
        self._folder(collection, folder_id)
        doomed = {folder_id, *FolderIndex(collection.folders).descendants(folder_id)}
        doomed_snippets = [s.id for s in collection.snippets if s.folder_id in doomed]
        result = self._store.delete(folder_id)
        for snippet_id in doomed_snippets:
            await self._unlink_remote(snippet_id)
        return result

    # ---------- Snippets ----------
    async def add_snippet(self, dto: CreateSnippetDTO) -> Snippet:
        self._folder(self._store.list(), dto.folder_id)
        language = dto.language
        if not language and self._detector is not None:
            language = self._detector.detect_language(dto.code, dto.name)
        snippet = Snippet(
            id=new_record_id(),
            name=dto.name.strip(),
            folder_id=dto.folder_id,
            code=dto.code,
            notes=dto.notes,
            language=language or PLAIN_TEXT,
            tags=list(dto.tags or []),
            last_modified=self._clock(),
        )
        self._store.put(snippet)
        return snippet

    async def update_snippet(self, dto: UpdateSnippetDTO) -> Snippet:
        collection = self._store.list()
        current = self._snippet(collection, dto.id)
        changes = dto.changes()
        if "name" in changes:
            changes["name"] = changes["name"].strip()
        if "tags" in changes:
            changes["tags"] = normalize_tags(changes["tags"])
        if "folder_id" in changes and changes["folder_id"] != current.folder_id:
            self._folder(collection, changes["folder_id"])
        updated = replace(current, **changes)
        if updated == current:
            return current
        updated.last_modified = advance(current.last_modified, self._clock())
        self._store.put(updated)
        return updated

    async def rename_snippet(self, snippet_id: str, name: str) -> Snippet:
        return await self.update_snippet(UpdateSnippetDTO(id=snippet_id, name=name))

    async def move_snippet(self, snippet_id: str, folder_id: str) -> Snippet:
        return await self.update_snippet(UpdateSnippetDTO(id=snippet_id, folder_id=folder_id))

    async def delete_snippet(self, snippet_id: str) -> Collection:
        self._snippet(self._store.list(), snippet_id)
        result = self._store.delete(snippet_id)
        await self._unlink_remote(snippet_id)
        return result

    async def _unlink_remote(self, snippet_id: str) -> None:
        if self._remote is None:
            return
        try:
            await asyncio.to_thread(self._remote.unlink, snippet_id)
        except (RemoteSyncError, StorageUnavailable) as exc:
            # The next push prunes the orphaned gist.
            logger.warning("Could not remove remote copy of %s: %s", snippet_id, exc)

    # ---------- Backup file ----------
    def _require_mirror(self) -> IBackupMirror:
        if self._mirror is None:
            raise MirrorUnreachable("no backup mirror configured")
        return self._mirror

    def _merge_into_store(self, incoming: Collection) -> MergeStats:
        with self._store.atomic():
            current = self._store.list()
            merged, stats = self._merge.merge_with_stats(current, incoming)
            merged = MergeEngine.repair_references(merged)
            if merged != current:
                self._store.replace_all(merged.folders, merged.snippets)
        return stats

    async def import_backup(self, path: Path) -> MergeStats:
        """Merge a user-chosen backup file; an invalid file changes nothing."""
        bind_operation("import_backup")
        incoming = self._require_mirror().read_file(Path(path))
        stats = self._merge_into_store(incoming)
        emit_event(
            "backup_imported",
            path=str(path),
            added=stats.added,
            replaced=stats.replaced,
            kept=stats.kept,
        )
        return stats

    async def export_backup(self, path: Path) -> Path:
        return self._require_mirror().export_to(Path(path), self._store.list())

    async def sync_from_backup(self) -> AbsorbResult:
        if self._mirror is None or not self._mirror.enabled:
            return AbsorbResult(status="disabled")
        bind_operation("sync_from_backup")
        return self._mirror.absorb()

    async def startup(self) -> Optional[AbsorbResult]:
        """Fold in edits made to the backup file while the app was closed."""
        if not self._auto_sync_on_open:
            return None
        result = await self.sync_from_backup()
        logger.info("Startup backup sync: %s", result.status)
        return result

    # ---------- Remote replica ----------
    def _require_remote(self) -> IRemoteReplica:
        if self._remote is None:
            raise RemoteNotConfigured("remote replica is not configured (set GITHUB_TOKEN)")
        return self._remote

    async def push_to_remote(self) -> SyncReport:
        remote = self._require_remote()
        bind_operation("push_to_remote")
        return await asyncio.to_thread(remote.push, self._store.list())

    async def pull_from_remote(self) -> PullOutcome:
        remote = self._require_remote()
        bind_operation("pull_from_remote")
        report = await asyncio.to_thread(remote.pull)
        stats = self._merge_into_store(report.collection)
        emit_event(
            "remote_pull_merged",
            added=stats.added,
            replaced=stats.replaced,
            kept=stats.kept,
            failed=len(report.failed),
        )
        return PullOutcome(report=report, stats=stats)
