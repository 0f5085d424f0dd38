"""
Domain service: project the flat folder/snippet arrays into a browsable tree.

The raw `parentId` graph is untrusted: merges from other replicas can leave
orphans (parent missing) or even cycles. The projection keeps every folder
reachable exactly once:
- folders with no parent, or a missing parent, are roots
- each parent cycle contributes one root, its first member in stored order

Search: the query is lower-cased and split on whitespace. A snippet matches
when every term is a substring of its name, one of its tags, its notes or its
code. Folders match on name only. With an active query, matching snippets are
listed flat at the root, annotated with their folder name.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Sequence, Set, Tuple

from snipsync.domain.entities.collection import Collection
from snipsync.domain.entities.folder import Folder
from snipsync.domain.entities.snippet import Snippet

UNKNOWN_FOLDER = "Unknown Folder"


class FolderIndex:
    """Arena of folders plus a parent -> children index."""

    def __init__(self, folders: Sequence[Folder]) -> None:
        self._by_id: Dict[str, Folder] = {}
        self._position: Dict[str, int] = {}
        for pos, f in enumerate(folders):
            if f.id not in self._by_id:
                self._position[f.id] = pos
            self._by_id[f.id] = f
        self._children: Dict[Optional[str], List[str]] = {}
        for fid in sorted(self._by_id, key=self._position.__getitem__):
            self._children.setdefault(self._by_id[fid].parent_id, []).append(fid)

    def __contains__(self, folder_id: object) -> bool:
        return folder_id in self._by_id

    def get(self, folder_id: Optional[str]) -> Optional[Folder]:
        return self._by_id.get(folder_id) if folder_id is not None else None

    def position(self, folder_id: str) -> int:
        return self._position[folder_id]

    def child_ids(self, parent_id: Optional[str]) -> List[str]:
        return list(self._children.get(parent_id, []))

    def ancestors(self, folder_id: str) -> List[str]:
        """Parent chain, nearest first; stops at a missing parent or a repeat."""
        chain: List[str] = []
        seen: Set[str] = {folder_id}
        current = self.get(folder_id)
        while current is not None and current.parent_id is not None:
            pid = current.parent_id
            if pid in seen or pid not in self._by_id:
                break
            chain.append(pid)
            seen.add(pid)
            current = self._by_id[pid]
        return chain

    def descendants(self, folder_id: str) -> List[str]:
        out: List[str] = []
        seen: Set[str] = {folder_id}
        stack = list(reversed(self.child_ids(folder_id)))
        while stack:
            fid = stack.pop()
            if fid in seen:
                continue
            seen.add(fid)
            out.append(fid)
            stack.extend(reversed(self.child_ids(fid)))
        return out

    def would_create_cycle(self, folder_id: str, new_parent_id: Optional[str]) -> bool:
        if new_parent_id is None:
            return False
        if new_parent_id == folder_id:
            return True
        return folder_id in self.ancestors(new_parent_id)


@dataclass(frozen=True)
class SearchQuery:
    terms: Tuple[str, ...] = ()

    @classmethod
    def parse(cls, text: Optional[str]) -> "SearchQuery":
        return cls(terms=tuple((text or "").lower().split()))

    @property
    def active(self) -> bool:
        return bool(self.terms)

    def matches_snippet(self, snippet: Snippet) -> bool:
        fields = [snippet.name.lower(), snippet.notes.lower(), snippet.code.lower()]
        fields.extend(t.lower() for t in snippet.tags)
        return all(any(term in value for value in fields) for term in self.terms)

    def matches_folder(self, folder: Folder) -> bool:
        name = folder.name.lower()
        return all(term in name for term in self.terms)


@dataclass(frozen=True)
class TreeNode:
    kind: str  # "folder" | "snippet"
    id: str
    label: str
    language: Optional[str] = None
    folder_name: Optional[str] = None
    has_children: bool = False


class SnippetTree:
    """Read-only hierarchy over one collection snapshot."""

    def __init__(self, collection: Collection, query: str = "") -> None:
        self._collection = collection
        self._index = FolderIndex(collection.folders)
        self._query = SearchQuery.parse(query)
        self._snippets_by_folder: Dict[str, List[Snippet]] = {}
        for s in collection.snippets:
            self._snippets_by_folder.setdefault(s.folder_id, []).append(s)
        self._root_ids = self._compute_roots()
        self._root_set = set(self._root_ids)

    @property
    def index(self) -> FolderIndex:
        return self._index

    @property
    def query(self) -> SearchQuery:
        return self._query

    def _compute_roots(self) -> List[str]:
        folders = self._collection.folders
        roots = [
            f.id
            for f in folders
            if f.parent_id is None or f.parent_id not in self._index
        ]
        roots = list(dict.fromkeys(roots))
        reached: Set[str] = set()
        for rid in roots:
            reached.add(rid)
            reached.update(self._index.descendants(rid))
        # Whatever is left sits on a parent cycle: break each at its first member.
        for f in folders:
            if f.id in reached:
                continue
            roots.append(f.id)
            reached.add(f.id)
            reached.update(self._index.descendants(f.id))
        return roots

    def _sorted_folder_ids(self, ids: List[str]) -> List[str]:
        def key(fid: str):
            folder = self._index.get(fid)
            order = folder.order if folder is not None else None
            return (order is None, order if order is not None else 0, self._index.position(fid))

        return sorted(ids, key=key)

    def _folder_node(self, folder: Folder) -> TreeNode:
        has_children = bool(self._child_folder_ids(folder.id)) or bool(self._snippets_by_folder.get(folder.id))
        return TreeNode(kind="folder", id=folder.id, label=folder.name, has_children=has_children)

    def _snippet_node(self, snippet: Snippet, annotate: bool = False) -> TreeNode:
        folder = self._index.get(snippet.folder_id)
        folder_name = folder.name if folder is not None else UNKNOWN_FOLDER
        label = f"{snippet.name} ({folder_name})" if annotate else snippet.name
        return TreeNode(
            kind="snippet",
            id=snippet.id,
            label=label,
            language=snippet.language,
            folder_name=folder_name,
        )

    def _child_folder_ids(self, folder_id: str) -> List[str]:
        return [fid for fid in self._index.child_ids(folder_id) if fid not in self._root_set]

    def root_folder_ids(self) -> List[str]:
        return self._sorted_folder_ids(list(self._root_ids))

    def roots(self) -> List[TreeNode]:
        folder_ids = self.root_folder_ids()
        if not self._query.active:
            return [self._folder_node(self._index.get(fid)) for fid in folder_ids]
        nodes = [
            self._folder_node(self._index.get(fid))
            for fid in self._sorted_folder_ids(
                [f.id for f in self._collection.folders if self._query.matches_folder(f)]
            )
        ]
        nodes.extend(self._snippet_node(s, annotate=True) for s in self.matching_snippets())
        return nodes

    def children(self, folder_id: str) -> List[TreeNode]:
        if folder_id not in self._index:
            return []
        nodes = [self._folder_node(self._index.get(fid)) for fid in self._sorted_folder_ids(self._child_folder_ids(folder_id))]
        nodes.extend(self._snippet_node(s) for s in self._snippets_by_folder.get(folder_id, []))
        return nodes

    def matching_snippets(self) -> List[Snippet]:
        if not self._query.active:
            return list(self._collection.snippets)
        return [s for s in self._collection.snippets if self._query.matches_snippet(s)]

    def walk(self) -> Iterator[Tuple[int, TreeNode]]:
        """Depth-first (depth, node) pairs over the unfiltered hierarchy."""
        seen: Set[str] = set()
        stack: List[Tuple[int, TreeNode]] = [
            (0, self._folder_node(self._index.get(fid))) for fid in reversed(self.root_folder_ids())
        ]
        while stack:
            depth, node = stack.pop()
            if node.kind == "folder":
                if node.id in seen:
                    continue
                seen.add(node.id)
            yield depth, node
            if node.kind == "folder":
                stack.extend((depth + 1, child) for child in reversed(self.children(node.id)))
