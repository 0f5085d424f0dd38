"""
tests/conftest.py

Safe env defaults (no real token, no real home-directory writes) plus shared
fixtures: a controllable clock, a temp store and an in-memory gist client.
"""

import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import pytest

project_root = Path(__file__).resolve().parents[1]
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

os.environ.pop("GITHUB_TOKEN", None)
os.environ.setdefault("LOG_FORMAT", "console")

from snipsync.domain.errors import RemoteAuthInvalid, RemoteDocumentMissing  # noqa: E402
from snipsync.infrastructure.gist.gist_client import IGistClient, RemoteDocument  # noqa: E402
from snipsync.infrastructure.storage.json_collection_store import JsonCollectionStore  # noqa: E402


class FakeClock:
    def __init__(self, start: int = 1_000):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def tick(self, ms: int = 1) -> int:
        self.now += ms
        return self.now


class FakeGistClient(IGistClient):
    """In-memory gists; `fail_with` makes the next matching call raise."""

    def __init__(self):
        self.gists: Dict[str, RemoteDocument] = {}
        self.calls: List[Tuple[str, str]] = []
        self.fail_with: Dict[str, Exception] = {}
        self._seq = 0

    def _maybe_fail(self, op: str) -> None:
        exc = self.fail_with.get(op)
        if exc is not None:
            raise exc

    def create(self, description: str, file_name: str, content: str) -> str:
        self._maybe_fail("create")
        self._seq += 1
        gist_id = f"g{self._seq}"
        self.gists[gist_id] = RemoteDocument(
            id=gist_id,
            files={file_name: content},
            description=description,
            updated_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
        )
        self.calls.append(("create", gist_id))
        return gist_id

    def update(self, gist_id: str, description: str, file_name: str, content: str) -> None:
        self._maybe_fail("update")
        if gist_id not in self.gists:
            raise RemoteDocumentMissing(gist_id)
        self.gists[gist_id] = RemoteDocument(
            id=gist_id,
            files={file_name: content},
            description=description,
            updated_at=datetime(2024, 1, 2, tzinfo=timezone.utc),
        )
        self.calls.append(("update", gist_id))

    def fetch(self, gist_id: str) -> RemoteDocument:
        self._maybe_fail("fetch")
        if gist_id not in self.gists:
            raise RemoteDocumentMissing(gist_id)
        self.calls.append(("fetch", gist_id))
        return self.gists[gist_id]

    def delete(self, gist_id: str) -> None:
        self._maybe_fail("delete")
        if gist_id not in self.gists:
            raise RemoteDocumentMissing(gist_id)
        del self.gists[gist_id]
        self.calls.append(("delete", gist_id))

    def verify(self) -> str:
        if "verify" in self.fail_with:
            raise RemoteAuthInvalid("bad token")
        return "octocat"

    def count(self, op: str) -> int:
        return sum(1 for name, _ in self.calls if name == op)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(tmp_path, clock) -> JsonCollectionStore:
    return JsonCollectionStore(tmp_path / "store", clock=clock)


@pytest.fixture
def gist_client() -> FakeGistClient:
    return FakeGistClient()


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch, tmp_path):
    monkeypatch.delenv("GITHUB_TOKEN", raising=False)
    monkeypatch.setenv("STORE_DIR", str(tmp_path / "env-store"))
    monkeypatch.chdir(tmp_path)
    yield
