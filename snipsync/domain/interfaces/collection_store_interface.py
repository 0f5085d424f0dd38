from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import nullcontext
from typing import Callable, ContextManager, Iterable, Optional

from snipsync.domain.entities.collection import Collection, Record
from snipsync.domain.entities.folder import Folder
from snipsync.domain.entities.snippet import Snippet

StoreListener = Callable[[Collection], None]


class ICollectionStore(ABC):
    """Canonical store contract.

    All operations work on the full collection; there are no partial-record
    patches at this boundary.
    """

    @abstractmethod
    def list(self) -> Collection:
        raise NotImplementedError

    @abstractmethod
    def get(self, record_id: str) -> Optional[Record]:
        raise NotImplementedError

    @abstractmethod
    def put(self, record: Record) -> Collection:
        raise NotImplementedError

    @abstractmethod
    def delete(self, record_id: str) -> Collection:
        raise NotImplementedError

    @abstractmethod
    def replace_all(self, folders: Iterable[Folder], snippets: Iterable[Snippet]) -> Collection:
        raise NotImplementedError

    def atomic(self) -> ContextManager:
        """Hold off other writers for a read-merge-write sequence."""
        return nullcontext()

    @abstractmethod
    def add_listener(self, listener: StoreListener) -> None:
        """Called with the new collection after every successful write."""
        raise NotImplementedError
