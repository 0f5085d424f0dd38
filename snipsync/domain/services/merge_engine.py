"""
Domain service: last-write-wins union of two record collections.

Rules:
- seed with `local`, keeping its order
- incoming ids not present locally are appended in incoming order
- a known id is replaced only when the incoming timestamp is strictly greater
- a missing `last_modified` counts as the merge time
- ties keep the local record
- nothing is ever deleted; deletions are explicit store operations

Folders and snippets are merged independently.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple, TypeVar, Union

from snipsync.domain.entities.collection import Collection
from snipsync.domain.entities.folder import Folder
from snipsync.domain.entities.snippet import Snippet
from snipsync.domain.services.clock import Clock, now_ms

R = TypeVar("R", Folder, Snippet)

RECOVERED_FOLDER_NAME = "Recovered"


@dataclass(frozen=True)
class MergeStats:
    added: int = 0
    replaced: int = 0
    kept: int = 0

    def __add__(self, other: "MergeStats") -> "MergeStats":
        return MergeStats(
            added=self.added + other.added,
            replaced=self.replaced + other.replaced,
            kept=self.kept + other.kept,
        )

    @property
    def changed(self) -> bool:
        return bool(self.added or self.replaced)


def effective_timestamp(record: Union[Folder, Snippet], merge_time: int) -> int:
    return merge_time if record.last_modified is None else int(record.last_modified)


def merge_records(
    local: Sequence[R],
    incoming: Sequence[R],
    merge_time: int,
) -> Tuple[List[R], MergeStats]:
    by_id: Dict[str, R] = {}
    order: List[str] = []
    for rec in local:
        if rec.id not in by_id:
            order.append(rec.id)
        by_id[rec.id] = rec

    added = replaced = kept = 0
    for rec in incoming:
        current = by_id.get(rec.id)
        if current is None:
            by_id[rec.id] = rec
            order.append(rec.id)
            added += 1
        elif effective_timestamp(rec, merge_time) > effective_timestamp(current, merge_time):
            by_id[rec.id] = rec
            replaced += 1
        else:
            kept += 1
    return [by_id[i] for i in order], MergeStats(added=added, replaced=replaced, kept=kept)


class MergeEngine:
    """Combine two collections with timestamp precedence."""

    def __init__(self, clock: Optional[Clock] = None) -> None:
        self._clock = clock or now_ms

    def merge(self, local: Collection, incoming: Collection) -> Collection:
        merged, _stats = self.merge_with_stats(local, incoming)
        return merged

    def merge_with_stats(self, local: Collection, incoming: Collection) -> Tuple[Collection, MergeStats]:
        merge_time = self._clock()
        folders, folder_stats = merge_records(local.folders, incoming.folders, merge_time)
        snippets, snippet_stats = merge_records(local.snippets, incoming.snippets, merge_time)
        return Collection.of(folders, snippets), folder_stats + snippet_stats

    @staticmethod
    def repair_references(collection: Collection) -> Collection:
        """Give every dangling snippet a placeholder root folder.

        The placeholder carries `last_modified=0`, so the real folder wins as
        soon as any replica supplies it.
        """
        dangling = collection.dangling_snippets()
        if not dangling:
            return collection
        placeholders: Dict[str, Folder] = {}
        for s in dangling:
            placeholders.setdefault(
                s.folder_id,
                Folder(id=s.folder_id, name=RECOVERED_FOLDER_NAME, parent_id=None, last_modified=0),
            )
        return Collection.of(list(collection.folders) + list(placeholders.values()), collection.snippets)
