import json

import pytest

from snipsync.application.dto.create_snippet_dto import CreateSnippetDTO
from snipsync.application.dto.update_snippet_dto import UpdateSnippetDTO
from snipsync.application.services.snippet_service import SnippetService
from snipsync.config import BackupSettings
from snipsync.domain.entities.snippet import PLAIN_TEXT
from snipsync.domain.errors import (
    InvalidImportFormat,
    InvalidMove,
    RecordNotFound,
    RemoteNotConfigured,
)
from snipsync.domain.services.language_detector import LanguageDetector
from snipsync.domain.services.merge_engine import MergeEngine
from snipsync.infrastructure.backup.backup_mirror import BackupMirror
from snipsync.infrastructure.gist.gist_mapping_store import GistMappingStore
from snipsync.infrastructure.gist.gist_replica_channel import GistReplicaChannel


@pytest.fixture
def mirror(store, clock, tmp_path):
    m = BackupMirror(store, MergeEngine(clock=clock), BackupSettings(folder=tmp_path / "cloud"))
    m.attach()
    return m


@pytest.fixture
def remote(gist_client, tmp_path):
    return GistReplicaChannel(gist_client, GistMappingStore(tmp_path / "map.json"))


@pytest.fixture
def service(store, clock, mirror, remote):
    return SnippetService(
        store=store,
        merge_engine=MergeEngine(clock=clock),
        backup_mirror=mirror,
        remote=remote,
        language_detector=LanguageDetector(),
        clock=clock,
    )


@pytest.mark.asyncio
async def test_add_folder_and_snippet_detects_language(service, clock):
    folder = await service.add_folder("http")
    snippet = await service.add_snippet(CreateSnippetDTO(name="retry.py", folder_id=folder.id, code="pass"))
    assert snippet.language == "python"
    assert snippet.last_modified == clock.now
    assert (await service.get_snippet(snippet.id)).name == "retry.py"


@pytest.mark.asyncio
async def test_explicit_language_wins_and_unknown_is_plain_text(service):
    folder = await service.add_folder("misc")
    a = await service.add_snippet(CreateSnippetDTO(name="x.py", folder_id=folder.id, language="ruby"))
    b = await service.add_snippet(CreateSnippetDTO(name="untitled", folder_id=folder.id))
    assert a.language == "ruby"
    assert b.language == PLAIN_TEXT


@pytest.mark.asyncio
async def test_add_snippet_to_unknown_folder(service):
    with pytest.raises(RecordNotFound):
        await service.add_snippet(CreateSnippetDTO(name="a", folder_id="nope"))


@pytest.mark.asyncio
async def test_mutations_advance_timestamp_even_with_a_frozen_clock(service):
    folder = await service.add_folder("http")
    snippet = await service.add_snippet(CreateSnippetDTO(name="a", folder_id=folder.id))
    renamed = await service.rename_snippet(snippet.id, "b")
    assert renamed.last_modified > snippet.last_modified
    renamed_folder = await service.rename_folder(folder.id, "web")
    assert renamed_folder.last_modified > folder.last_modified


@pytest.mark.asyncio
async def test_update_without_changes_is_a_noop(service, store):
    folder = await service.add_folder("http")
    snippet = await service.add_snippet(
        CreateSnippetDTO(name="a", folder_id=folder.id, code="x", tags=["b", "a"])
    )
    mtime = store.path.stat().st_mtime_ns
    same = await service.update_snippet(UpdateSnippetDTO(id=snippet.id, code="x", tags=["a", "b", "a"]))
    assert same == snippet
    assert store.path.stat().st_mtime_ns == mtime


@pytest.mark.asyncio
async def test_partial_update(service):
    folder = await service.add_folder("http")
    snippet = await service.add_snippet(CreateSnippetDTO(name="a", folder_id=folder.id, code="x", notes="keep"))
    updated = await service.update_snippet(UpdateSnippetDTO(id=snippet.id, code="y", tags=["t"]))
    assert (updated.code, updated.notes, updated.tags) == ("y", "keep", ["t"])


@pytest.mark.asyncio
async def test_move_snippet_and_folder(service):
    a = await service.add_folder("a")
    b = await service.add_folder("b")
    child = await service.add_folder("child", parent_id=a.id)
    snippet = await service.add_snippet(CreateSnippetDTO(name="s", folder_id=a.id))
    moved = await service.move_snippet(snippet.id, b.id)
    assert moved.folder_id == b.id
    with pytest.raises(RecordNotFound):
        await service.move_snippet(snippet.id, "nope")
    with pytest.raises(InvalidMove):
        await service.move_folder(a.id, child.id)
    with pytest.raises(InvalidMove):
        await service.move_folder(a.id, a.id)
    assert (await service.move_folder(b.id, a.id)).parent_id == a.id
    assert (await service.move_folder(b.id, None)).parent_id is None


@pytest.mark.asyncio
async def test_reorder_folder_changes_sibling_order(service):
    root = await service.add_folder("root")
    first = await service.add_folder("first", parent_id=root.id)
    second = await service.add_folder("second", parent_id=root.id)
    await service.reorder_folder(second.id, 0)
    await service.reorder_folder(first.id, 1)
    tree = await service.tree()
    assert [n.label for n in tree.children(root.id)] == ["second", "first"]


@pytest.mark.asyncio
async def test_delete_folder_cascades_and_unlinks_gists(service, gist_client):
    parent = await service.add_folder("parent")
    child = await service.add_folder("child", parent_id=parent.id)
    keep = await service.add_folder("keep")
    await service.add_snippet(CreateSnippetDTO(name="a", folder_id=child.id))
    kept = await service.add_snippet(CreateSnippetDTO(name="b", folder_id=keep.id))
    await service.push_to_remote()
    assert len(gist_client.gists) == 2

    after = await service.delete_folder(parent.id)

    assert after.folder_ids() == {keep.id}
    assert after.snippet_ids() == {kept.id}
    assert len(gist_client.gists) == 1


@pytest.mark.asyncio
async def test_delete_snippet_survives_remote_failure(service, gist_client):
    from snipsync.domain.errors import RemoteUnavailable

    folder = await service.add_folder("http")
    snippet = await service.add_snippet(CreateSnippetDTO(name="a", folder_id=folder.id))
    await service.push_to_remote()
    gist_client.fail_with["delete"] = RemoteUnavailable("offline")
    after = await service.delete_snippet(snippet.id)
    assert snippet.id not in after.snippet_ids()
    with pytest.raises(RecordNotFound):
        await service.delete_snippet(snippet.id)


@pytest.mark.asyncio
async def test_delete_snippet_survives_unwritable_gist_mapping(service, remote, monkeypatch):
    from snipsync.domain.errors import StorageUnavailable

    folder = await service.add_folder("http")
    snippet = await service.add_snippet(CreateSnippetDTO(name="a", folder_id=folder.id))
    await service.push_to_remote()

    def _fail(snippet_id):
        raise StorageUnavailable("read-only volume")

    monkeypatch.setattr(remote.mapping, "remove", _fail)
    after = await service.delete_snippet(snippet.id)
    assert snippet.id not in after.snippet_ids()


@pytest.mark.asyncio
async def test_search_and_tree(service):
    folder = await service.add_folder("http")
    await service.add_snippet(CreateSnippetDTO(name="retry", folder_id=folder.id, notes="with http backoff"))
    await service.add_snippet(CreateSnippetDTO(name="retry", folder_id=folder.id, notes="local only"))
    hits = await service.search("http retry")
    assert [s.notes for s in hits] == ["with http backoff"]
    tree = await service.tree("backoff")
    assert [n.label for n in tree.roots()] == ["retry (http)"]


@pytest.mark.asyncio
async def test_import_backup_merges(service, tmp_path):
    folder = await service.add_folder("http")
    path = tmp_path / "import.json"
    path.write_text(
        json.dumps(
            [
                {"type": "folder", "id": "other", "name": "other", "parentId": None, "lastModified": 1},
                {"id": "s9", "name": "imported", "folderId": "other", "lastModified": 1},
            ]
        ),
        encoding="utf-8",
    )
    stats = await service.import_backup(path)
    assert stats.added == 2
    collection = await service.get_collection()
    assert {folder.id, "other"} == collection.folder_ids()
    assert "s9" in collection.snippet_ids()


@pytest.mark.asyncio
async def test_import_with_id_less_record_leaves_store_unchanged(service, tmp_path):
    await service.add_folder("http")
    before = await service.get_collection()
    path = tmp_path / "bad.json"
    path.write_text(
        json.dumps({"version": "1.0", "data": [{"type": "folder", "id": "x", "name": "x"}, {"name": "no id", "folderId": "x"}]}),
        encoding="utf-8",
    )
    with pytest.raises(InvalidImportFormat):
        await service.import_backup(path)
    assert await service.get_collection() == before


@pytest.mark.asyncio
async def test_export_backup(service, tmp_path):
    await service.add_folder("http")
    target = await service.export_backup(tmp_path / "out.json")
    raw = json.loads(target.read_text(encoding="utf-8"))
    assert raw["version"] == "1.0"
    assert raw["data"][0]["name"] == "http"


@pytest.mark.asyncio
async def test_pull_merges_remote_into_store(service, store, gist_client, clock):
    folder = await service.add_folder("http")
    snippet = await service.add_snippet(CreateSnippetDTO(name="a", folder_id=folder.id, code="v1"))
    await service.push_to_remote()

    # Another machine edits the gist later.
    clock.tick(1_000)
    other = await service.update_snippet(UpdateSnippetDTO(id=snippet.id, code="v2"))
    await service.push_to_remote()
    store.replace_all(store.list().folders, [snippet])

    outcome = await service.pull_from_remote()

    assert outcome.changed
    assert outcome.stats.replaced == 1
    assert (await service.get_snippet(snippet.id)).code == other.code == "v2"
    assert (await service.get_collection()).folder(folder.id).name == "http"


@pytest.mark.asyncio
async def test_pull_restores_folder_missing_locally(service, store):
    folder = await service.add_folder("http")
    snippet = await service.add_snippet(CreateSnippetDTO(name="a", folder_id=folder.id))
    await service.push_to_remote()
    store.replace_all([], [])

    await service.pull_from_remote()

    collection = await service.get_collection()
    assert collection.snippet(snippet.id) is not None
    assert collection.folder(folder.id).name == "http"
    assert not collection.dangling_snippets()


@pytest.mark.asyncio
async def test_remote_not_configured(store, clock):
    service = SnippetService(store=store, merge_engine=MergeEngine(clock=clock), clock=clock)
    with pytest.raises(RemoteNotConfigured):
        await service.push_to_remote()
    with pytest.raises(RemoteNotConfigured):
        await service.pull_from_remote()
    assert (await service.sync_from_backup()).status == "disabled"


@pytest.mark.asyncio
async def test_startup_absorbs_backup_only_when_enabled(store, clock, mirror):
    quiet = SnippetService(store=store, merge_engine=MergeEngine(clock=clock), backup_mirror=mirror, clock=clock)
    assert await quiet.startup() is None
    eager = SnippetService(
        store=store,
        merge_engine=MergeEngine(clock=clock),
        backup_mirror=mirror,
        clock=clock,
        auto_sync_on_open=True,
    )
    assert (await eager.startup()).status == "missing"


@pytest.mark.asyncio
async def test_no_dangling_folder_ids_after_core_operations(service):
    a = await service.add_folder("a")
    b = await service.add_folder("b", parent_id=a.id)
    s = await service.add_snippet(CreateSnippetDTO(name="s", folder_id=b.id))
    await service.move_snippet(s.id, a.id)
    await service.add_snippet(CreateSnippetDTO(name="t", folder_id=b.id))
    await service.delete_folder(b.id)
    await service.rename_folder(a.id, "renamed")
    collection = await service.get_collection()
    assert not collection.dangling_snippets()
    assert collection.snippet_ids() == {s.id}


@pytest.mark.asyncio
async def test_missing_ids_raise_record_not_found(service):
    for call in (
        service.get_snippet("x"),
        service.rename_folder("x", "y"),
        service.reorder_folder("x", 1),
        service.delete_folder("x"),
        service.update_snippet(UpdateSnippetDTO(id="x", code="y")),
    ):
        with pytest.raises(RecordNotFound):
            await call
