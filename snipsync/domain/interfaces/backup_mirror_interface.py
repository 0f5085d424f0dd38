from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from snipsync.domain.entities.collection import Collection
from snipsync.domain.services.merge_engine import MergeStats


@dataclass(frozen=True)
class AbsorbResult:
    """Outcome of folding the backup file back into the canonical store.

    status: "merged" | "unchanged" | "skipped" | "missing" | "rejected" | "disabled"
    """

    status: str
    stats: MergeStats = MergeStats()
    error: Optional[str] = None

    @property
    def changed(self) -> bool:
        return self.status == "merged"


class IBackupMirror(ABC):
    @property
    @abstractmethod
    def enabled(self) -> bool:
        raise NotImplementedError

    @abstractmethod
    def absorb(self) -> AbsorbResult:
        raise NotImplementedError

    @abstractmethod
    def read_file(self, path: Path) -> Collection:
        """Decode a user-chosen backup file; raises InvalidImportFormat."""
        raise NotImplementedError

    @abstractmethod
    def export_to(self, path: Path, collection: Collection) -> Path:
        raise NotImplementedError
