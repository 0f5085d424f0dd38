from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Optional, Set, Tuple, Union

from snipsync.domain.entities.folder import Folder
from snipsync.domain.entities.snippet import Snippet

Record = Union[Folder, Snippet]


@dataclass(frozen=True)
class Collection:
    """Immutable snapshot of both record kinds, in stored order."""

    folders: Tuple[Folder, ...] = field(default_factory=tuple)
    snippets: Tuple[Snippet, ...] = field(default_factory=tuple)

    @classmethod
    def of(cls, folders: Iterable[Folder] = (), snippets: Iterable[Snippet] = ()) -> "Collection":
        return cls(folders=tuple(folders), snippets=tuple(snippets))

    @property
    def is_empty(self) -> bool:
        return not self.folders and not self.snippets

    def folder(self, folder_id: Optional[str]) -> Optional[Folder]:
        if folder_id is None:
            return None
        for f in self.folders:
            if f.id == folder_id:
                return f
        return None

    def snippet(self, snippet_id: str) -> Optional[Snippet]:
        for s in self.snippets:
            if s.id == snippet_id:
                return s
        return None

    def find(self, record_id: str) -> Optional[Record]:
        return self.folder(record_id) or self.snippet(record_id)

    def folder_ids(self) -> Set[str]:
        return {f.id for f in self.folders}

    def snippet_ids(self) -> Set[str]:
        return {s.id for s in self.snippets}

    def snippets_in(self, folder_id: str) -> Tuple[Snippet, ...]:
        return tuple(s for s in self.snippets if s.folder_id == folder_id)

    def dangling_snippets(self) -> Tuple[Snippet, ...]:
        """Snippets whose folder is not part of this collection."""
        known = self.folder_ids()
        return tuple(s for s in self.snippets if s.folder_id not in known)
