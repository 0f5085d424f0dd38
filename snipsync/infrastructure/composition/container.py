from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Optional

from snipsync.application.services.snippet_service import SnippetService
from snipsync.config import SyncConfig, load_config
from snipsync.domain.interfaces.backup_mirror_interface import AbsorbResult
from snipsync.domain.services.language_detector import LanguageDetector
from snipsync.domain.services.merge_engine import MergeEngine
from snipsync.infrastructure.backup.backup_mirror import BackupMirror
from snipsync.infrastructure.backup.backup_watcher import BackupWatcher
from snipsync.infrastructure.gist.gist_client import GitHubGistClient
from snipsync.infrastructure.gist.gist_mapping_store import MAPPING_FILE_NAME, GistMappingStore
from snipsync.infrastructure.gist.gist_replica_channel import GistReplicaChannel
from snipsync.infrastructure.storage.json_collection_store import JsonCollectionStore
from snipsync.observability import setup_structlog_logging

logger = logging.getLogger(__name__)


@dataclass
class Application:
    config: SyncConfig
    store: JsonCollectionStore
    mirror: BackupMirror
    watcher: BackupWatcher
    remote: Optional[GistReplicaChannel]
    service: SnippetService

    async def start(self) -> Optional[AbsorbResult]:
        """Start watching the backup file, then fold in edits made while closed."""
        self.watcher.start()
        return await self.service.startup()

    def close(self) -> None:
        self.watcher.stop()


def build_application(config: Optional[SyncConfig] = None, *, configure_logging: bool = True) -> Application:
    """Wire store, mirror, watcher and the optional gist replica from one config."""
    cfg = config or load_config()
    if configure_logging:
        setup_structlog_logging(cfg.LOG_LEVEL, cfg.LOG_FORMAT)

    store = JsonCollectionStore(cfg.store_dir)
    merge_engine = MergeEngine()
    mirror = BackupMirror(store, merge_engine, cfg.backup_settings())
    mirror.attach()
    watcher = BackupWatcher(mirror)

    remote: Optional[GistReplicaChannel] = None
    remote_settings = cfg.remote_settings()
    if remote_settings.configured:
        remote = GistReplicaChannel(
            GitHubGistClient(remote_settings.token or ""),
            GistMappingStore(cfg.store_dir / MAPPING_FILE_NAME),
            description_prefix=remote_settings.description_prefix,
            prune_missing=remote_settings.prune_missing_on_pull,
        )
    else:
        logger.info("GITHUB_TOKEN not set; remote replica disabled")

    service = SnippetService(
        store=store,
        merge_engine=merge_engine,
        backup_mirror=mirror,
        remote=remote,
        language_detector=LanguageDetector(),
        auto_sync_on_open=cfg.AUTO_SYNC_ON_OPEN,
    )
    return Application(
        config=cfg,
        store=store,
        mirror=mirror,
        watcher=watcher,
        remote=remote,
        service=service,
    )


_application_singleton = None  # type: Optional[Application]
_singleton_lock = threading.Lock()


def get_application() -> Application:
    global _application_singleton
    if _application_singleton is not None:
        return _application_singleton
    # Ensure singleton creation is thread-safe under concurrent first requests
    with _singleton_lock:
        if _application_singleton is None:
            _application_singleton = build_application()
        return _application_singleton


def get_snippet_service() -> SnippetService:
    """Composition Root: the UI shell only depends on the application layer."""
    return get_application().service


def reset_application() -> None:
    global _application_singleton
    with _singleton_lock:
        if _application_singleton is not None:
            _application_singleton.close()
        _application_singleton = None
