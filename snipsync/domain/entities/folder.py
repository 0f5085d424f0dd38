from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass
class Folder:
    """Domain entity: a folder in the snippet hierarchy.

    `parent_id=None` marks a root folder. `order` ranks siblings sharing the
    same parent; folders without it are unordered.
    """

    id: str
    name: str
    parent_id: Optional[str] = None
    order: Optional[float] = None
    last_modified: Optional[int] = None

    @property
    def is_root(self) -> bool:
        return self.parent_id is None
