"""
Remote replica over GitHub Gists: one private gist per snippet.

Push is incremental. The mapping remembers each snippet's gist id and the
digest of what was last uploaded, so only changed snippets are sent;
unchanged ones are checked for existence and recreated if they vanished.
Pull reconstructs a collection from every mapped gist; folders that only
exist remotely come back as roots with `last_modified=0` so any local
version of the same folder wins the merge.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional

from snipsync.domain.entities.collection import Collection
from snipsync.domain.entities.folder import Folder
from snipsync.domain.entities.snippet import Snippet
from snipsync.domain.errors import (
    RemoteAuthInvalid,
    RemoteDocumentMissing,
    RemoteSyncError,
    RemoteUnavailable,
)
from snipsync.domain.interfaces.remote_replica_interface import (
    CREATED,
    DELETED,
    FAILED,
    FETCHED,
    MISSING,
    RECREATED,
    UNCHANGED,
    UPDATED,
    IRemoteReplica,
    ItemOutcome,
    PullReport,
    SyncReport,
)
from snipsync.infrastructure.gist.gist_client import IGistClient
from snipsync.infrastructure.gist.gist_document_codec import GistDecodeError, GistDocumentCodec
from snipsync.infrastructure.gist.gist_mapping_store import GistMappingStore
from snipsync.observability import emit_event

logger = logging.getLogger(__name__)

_ABORTING = (RemoteAuthInvalid, RemoteUnavailable)


def _summary(report: SyncReport) -> Dict[str, int]:
    counts: Dict[str, int] = {}
    for outcome in report.outcomes:
        counts[outcome.action] = counts.get(outcome.action, 0) + 1
    return counts


class GistReplicaChannel(IRemoteReplica):
    def __init__(
        self,
        client: IGistClient,
        mapping: GistMappingStore,
        codec: Optional[GistDocumentCodec] = None,
        *,
        description_prefix: str = "Snippet",
        prune_missing: bool = True,
    ) -> None:
        self._client = client
        self._mapping = mapping
        self._codec = codec or GistDocumentCodec()
        self._prefix = description_prefix
        self._prune_missing = prune_missing

    @property
    def mapping(self) -> GistMappingStore:
        return self._mapping

    def _abort(self, operation: str, exc: RemoteSyncError, report: SyncReport) -> None:
        exc.report = report
        emit_event(
            f"remote_{operation}_aborted",
            severity="error",
            error=str(exc),
            error_type=type(exc).__name__,
            partially_applied=report.changed,
            **_summary(report),
        )

    # ---------- Push ----------
    def push(self, collection: Collection) -> SyncReport:
        report = SyncReport()
        try:
            self._prune_orphans(collection, report)
            folder_names = {f.id: f.name for f in collection.folders}
            for snippet in collection.snippets:
                try:
                    report.add(self._push_one(snippet, folder_names.get(snippet.folder_id)))
                except _ABORTING:
                    raise
                except RemoteSyncError as exc:
                    logger.warning("Pushing snippet %s failed: %s", snippet.id, exc)
                    report.add(ItemOutcome(snippet.id, FAILED, error=str(exc)))
        except _ABORTING as exc:
            self._abort("push", exc, report)
            raise
        emit_event("remote_push_completed", **_summary(report))
        return report

    def _prune_orphans(self, collection: Collection, report: SyncReport) -> None:
        local_ids = collection.snippet_ids()
        for snippet_id, link in self._mapping.items():
            if snippet_id in local_ids:
                continue
            try:
                self._client.delete(link.gist_id)
            except RemoteDocumentMissing:
                logger.debug("Gist %s for %s already gone", link.gist_id, snippet_id)
            except _ABORTING:
                raise
            except RemoteSyncError as exc:
                report.add(ItemOutcome(snippet_id, FAILED, remote_id=link.gist_id, error=str(exc)))
                continue
            self._mapping.remove(snippet_id)
            report.add(ItemOutcome(snippet_id, DELETED, remote_id=link.gist_id))

    def _push_one(self, snippet: Snippet, folder_name: Optional[str]) -> ItemOutcome:
        file_name, content = self._codec.encode(snippet, folder_name)
        description = self._codec.description(snippet, folder_name, self._prefix)
        digest = self._codec.digest(file_name, content, description)
        link = self._mapping.get(snippet.id)

        if link is None:
            gist_id = self._client.create(description, file_name, content)
            self._mapping.set(snippet.id, gist_id, digest)
            return ItemOutcome(snippet.id, CREATED, remote_id=gist_id)

        try:
            if link.digest == digest:
                # Content matches the last upload; only confirm the gist is still there.
                self._client.fetch(link.gist_id)
                return ItemOutcome(snippet.id, UNCHANGED, remote_id=link.gist_id)
            self._client.update(link.gist_id, description, file_name, content)
        except RemoteDocumentMissing:
            logger.info("Gist %s for %s vanished; recreating", link.gist_id, snippet.id)
            gist_id = self._client.create(description, file_name, content)
            self._mapping.set(snippet.id, gist_id, digest)
            return ItemOutcome(snippet.id, RECREATED, remote_id=gist_id)
        self._mapping.set(snippet.id, link.gist_id, digest)
        return ItemOutcome(snippet.id, UPDATED, remote_id=link.gist_id)

    # ---------- Pull ----------
    def pull(self) -> PullReport:
        report = PullReport()
        folders: Dict[str, Folder] = {}
        snippets: List[Snippet] = []
        try:
            for snippet_id, link in self._mapping.items():
                try:
                    doc = self._client.fetch(link.gist_id)
                except RemoteDocumentMissing:
                    if self._prune_missing:
                        self._mapping.remove(snippet_id)
                    report.add(ItemOutcome(snippet_id, MISSING, remote_id=link.gist_id))
                    continue
                except _ABORTING:
                    raise
                except RemoteSyncError as exc:
                    report.add(ItemOutcome(snippet_id, FAILED, remote_id=link.gist_id, error=str(exc)))
                    continue

                content = doc.first_content()
                if content is None:
                    report.add(ItemOutcome(snippet_id, FAILED, remote_id=link.gist_id, error="gist has no content"))
                    continue
                try:
                    decoded = self._codec.decode(content, snippet_id, doc.updated_at)
                except GistDecodeError as exc:
                    report.add(ItemOutcome(snippet_id, FAILED, remote_id=link.gist_id, error=str(exc)))
                    continue

                snippets.append(decoded.snippet)
                if decoded.folder is not None and decoded.folder.id not in folders:
                    folders[decoded.folder.id] = decoded.folder
                report.add(ItemOutcome(snippet_id, FETCHED, remote_id=link.gist_id))
        except _ABORTING as exc:
            self._abort("pull", exc, report)
            raise

        report.collection = Collection.of(list(folders.values()), snippets)
        emit_event("remote_pull_completed", **_summary(report))
        return report

    # ---------- Unlink ----------
    def unlink(self, snippet_id: str) -> Optional[ItemOutcome]:
        link = self._mapping.get(snippet_id)
        if link is None:
            return None
        try:
            self._client.delete(link.gist_id)
        except RemoteDocumentMissing:
            pass
        self._mapping.remove(snippet_id)
        return ItemOutcome(snippet_id, DELETED, remote_id=link.gist_id)
