from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, List, Optional

PLAIN_TEXT = "plaintext"


def normalize_tags(tags: Optional[Iterable[str]]) -> List[str]:
    """Tags are a set: drop blanks and duplicates, keep a stable sorted order."""
    cleaned = {str(t).strip() for t in (tags or []) if str(t).strip()}
    return sorted(cleaned)


@dataclass
class Snippet:
    """Domain entity: a named text blob owned by exactly one folder.

    Kept framework-free to allow use across layers.
    """

    id: str
    name: str
    folder_id: str
    code: str = ""
    notes: str = ""
    language: str = PLAIN_TEXT
    tags: List[str] = field(default_factory=list)
    last_modified: Optional[int] = None

    def __post_init__(self) -> None:
        self.tags = normalize_tags(self.tags)
        if not self.language:
            self.language = PLAIN_TEXT
