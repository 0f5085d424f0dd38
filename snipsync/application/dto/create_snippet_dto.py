from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional


@dataclass
class CreateSnippetDTO:
    name: str
    folder_id: str
    code: str = ""
    notes: str = ""
    language: Optional[str] = None
    tags: Optional[List[str]] = None

    def __post_init__(self) -> None:
        if not isinstance(self.name, str) or not self.name.strip():
            raise ValueError("name is required")
        if not isinstance(self.folder_id, str) or not self.folder_id:
            raise ValueError("folder_id is required")
        if self.code is None:
            self.code = ""
        if self.notes is None:
            self.notes = ""
