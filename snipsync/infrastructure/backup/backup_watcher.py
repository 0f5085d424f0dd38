"""
Watch the mirrored backup file and absorb external edits.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer
from watchdog.observers.polling import PollingObserver

from snipsync.domain.interfaces.backup_mirror_interface import AbsorbResult
from snipsync.infrastructure.backup.backup_mirror import BackupMirror

logger = logging.getLogger(__name__)


def _same_file(a: str | bytes, b: Path) -> bool:
    path = os.fsdecode(a)
    try:
        return os.path.normcase(os.path.abspath(path)) == os.path.normcase(os.path.abspath(str(b)))
    except (TypeError, ValueError):
        return False


class BackupFileHandler(FileSystemEventHandler):
    """Forward created / modified / moved-to events on the mirror file to absorb()."""

    def __init__(self, mirror: BackupMirror) -> None:
        super().__init__()
        self._mirror = mirror
        self.last_result: Optional[AbsorbResult] = None

    def _targets_mirror(self, event: FileSystemEvent) -> bool:
        target = self._mirror.path
        if target is None or event.is_directory:
            return False
        if event.event_type == "moved":
            return _same_file(getattr(event, "dest_path", ""), target)
        return _same_file(event.src_path, target)

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.event_type not in {"created", "modified", "moved"}:
            return
        if not self._targets_mirror(event):
            return
        try:
            self.last_result = self._mirror.absorb()
        except Exception:
            # Never let an absorb failure kill the observer thread.
            logger.exception("Absorbing backup file failed")
            return
        if self.last_result.changed:
            logger.info("Absorbed external change from %s", self._mirror.path)


class BackupWatcher:
    def __init__(self, mirror: BackupMirror) -> None:
        self._mirror = mirror
        self._handler = BackupFileHandler(mirror)
        self._observer = None

    @property
    def handler(self) -> BackupFileHandler:
        return self._handler

    @property
    def running(self) -> bool:
        return self._observer is not None

    def _make_observer(self):
        settings = self._mirror.settings
        if settings.polling:
            return PollingObserver(timeout=settings.poll_interval)
        return Observer()

    def start(self) -> bool:
        path = self._mirror.path
        if path is None or not self._mirror.settings.watch:
            logger.info("Backup watcher disabled")
            return False
        if self._observer is not None:
            return True
        path.parent.mkdir(parents=True, exist_ok=True)
        observer = self._make_observer()
        observer.schedule(self._handler, str(path.parent), recursive=False)
        observer.start()
        self._observer = observer
        logger.info("Watching backup file %s (polling=%s)", path, self._mirror.settings.polling)
        return True

    def stop(self, timeout: float = 5.0) -> None:
        observer = self._observer
        if observer is None:
            return
        self._observer = None
        observer.stop()
        observer.join(timeout=timeout)

    def __enter__(self) -> "BackupWatcher":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()
