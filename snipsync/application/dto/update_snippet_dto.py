from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional


@dataclass
class UpdateSnippetDTO:
    """Partial update: fields left as None are not touched."""

    id: str
    name: Optional[str] = None
    code: Optional[str] = None
    notes: Optional[str] = None
    language: Optional[str] = None
    tags: Optional[List[str]] = None
    folder_id: Optional[str] = None

    def __post_init__(self) -> None:
        if not isinstance(self.id, str) or not self.id:
            raise ValueError("id is required")
        if self.name is not None and not self.name.strip():
            raise ValueError("name cannot be blank")
        if self.folder_id is not None and not self.folder_id:
            raise ValueError("folder_id cannot be empty")

    def changes(self) -> dict:
        return {
            key: value
            for key, value in (
                ("name", self.name),
                ("code", self.code),
                ("notes", self.notes),
                ("language", self.language),
                ("tags", self.tags),
                ("folder_id", self.folder_id),
            )
            if value is not None
        }
