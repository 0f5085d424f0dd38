from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Optional

from snipsync.domain.entities.collection import Collection

CREATED = "created"
UPDATED = "updated"
RECREATED = "recreated"
UNCHANGED = "unchanged"
DELETED = "deleted"
FETCHED = "fetched"
MISSING = "missing"
FAILED = "failed"

_CHANGING_ACTIONS = {CREATED, UPDATED, RECREATED, DELETED}


@dataclass(frozen=True)
class ItemOutcome:
    snippet_id: str
    action: str
    remote_id: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.action != FAILED


@dataclass
class SyncReport:
    """Per-item outcome list of one push (or the failed part of a pull)."""

    outcomes: List[ItemOutcome] = field(default_factory=list)

    def add(self, outcome: ItemOutcome) -> ItemOutcome:
        self.outcomes.append(outcome)
        return outcome

    def by_action(self, action: str) -> List[ItemOutcome]:
        return [o for o in self.outcomes if o.action == action]

    @property
    def failed(self) -> List[ItemOutcome]:
        return self.by_action(FAILED)

    @property
    def changed(self) -> bool:
        return any(o.action in _CHANGING_ACTIONS for o in self.outcomes)

    @property
    def ok(self) -> bool:
        return not self.failed


@dataclass
class PullReport(SyncReport):
    collection: Collection = field(default_factory=Collection)


class IRemoteReplica(ABC):
    @abstractmethod
    def push(self, collection: Collection) -> SyncReport:
        raise NotImplementedError

    @abstractmethod
    def pull(self) -> PullReport:
        raise NotImplementedError

    @abstractmethod
    def unlink(self, snippet_id: str) -> Optional[ItemOutcome]:
        """Remove one snippet's remote document and mapping, if any."""
        raise NotImplementedError
