import json
import threading

import pytest

from snipsync.config import BackupSettings
from snipsync.domain.entities.collection import Collection
from snipsync.domain.entities.folder import Folder
from snipsync.domain.entities.snippet import Snippet
from snipsync.domain.errors import InvalidImportFormat, MirrorUnreachable
from snipsync.domain.services import backup_envelope
from snipsync.domain.services.merge_engine import MergeEngine
from snipsync.infrastructure.backup.backup_mirror import BackupMirror


@pytest.fixture
def mirror(store, clock, tmp_path):
    m = BackupMirror(store, MergeEngine(clock=clock), BackupSettings(folder=tmp_path / "cloud"))
    m.attach()
    return m


def _write_backup(path, collection):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(backup_envelope.dumps(collection), encoding="utf-8")


def test_store_writes_are_mirrored(store, mirror):
    store.put(Folder(id="f1", name="http", last_modified=1))
    raw = json.loads(mirror.path.read_text(encoding="utf-8"))
    assert raw["version"] == "1.0"
    assert raw["data"][0]["id"] == "f1"
    assert mirror.last_digest is not None
    assert mirror.last_synced_at is not None


def test_own_write_is_skipped_on_absorb(store, mirror):
    store.put(Folder(id="f1", name="http", last_modified=1))
    assert mirror.absorb().status == "skipped"


def test_absorb_checks_the_digest_under_the_write_lock(store, mirror):
    store.put(Folder(id="f1", name="http", last_modified=1))
    results = []
    with mirror._lock:
        worker = threading.Thread(target=lambda: results.append(mirror.absorb()))
        worker.start()
        worker.join(0.2)
        assert worker.is_alive()
    worker.join(5)
    assert [r.status for r in results] == ["skipped"]


def test_external_edit_is_merged_and_written_back(store, mirror):
    store.put(Folder(id="f1", name="http", last_modified=1))
    store.put(Snippet(id="s1", name="retry", folder_id="f1", code="old", last_modified=100))
    remote = Collection.of(
        [Folder(id="f1", name="http", last_modified=1)],
        [
            Snippet(id="s1", name="retry", folder_id="f1", code="new", last_modified=150),
            Snippet(id="s2", name="other", folder_id="f1", last_modified=120),
        ],
    )
    _write_backup(mirror.path, remote)

    result = mirror.absorb()

    assert result.status == "merged"
    assert result.changed
    assert result.stats.added == 1 and result.stats.replaced == 1
    assert store.get("s1").code == "new"
    assert backup_envelope.loads(mirror.path.read_text(encoding="utf-8")) == store.list()
    assert mirror.absorb().status == "skipped"


def test_stale_external_edit_leaves_store_unchanged(store, mirror):
    store.put(Folder(id="f1", name="http", last_modified=1))
    store.put(Snippet(id="s1", name="retry", folder_id="f1", code="local", last_modified=100))
    _write_backup(
        mirror.path,
        Collection.of([], [Snippet(id="s1", name="retry", folder_id="f1", code="stale", last_modified=50)]),
    )
    assert mirror.absorb().status == "unchanged"
    assert store.get("s1").code == "local"
    assert mirror.absorb().status == "skipped"


def test_absorb_repairs_dangling_folder_reference(store, mirror):
    _write_backup(mirror.path, Collection.of([], [Snippet(id="s1", name="x", folder_id="gone", last_modified=5)]))
    assert mirror.absorb().status == "merged"
    assert not store.list().dangling_snippets()


def test_invalid_backup_is_rejected_without_touching_store(store, mirror):
    store.put(Folder(id="f1", name="http", last_modified=1))
    before = store.list()
    mirror.path.write_text('[{"name": "no id", "folderId": "f1"}]', encoding="utf-8")
    result = mirror.absorb()
    assert result.status == "rejected"
    assert result.error
    assert store.list() == before


def test_missing_and_disabled(store, clock, mirror):
    assert mirror.absorb().status == "missing"
    disabled = BackupMirror(store, MergeEngine(clock=clock), BackupSettings(folder=None))
    assert not disabled.enabled
    assert disabled.absorb().status == "disabled"
    assert not disabled.write(store.list()).written


def test_unreachable_mirror_does_not_fail_the_store_write(store, clock, tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("a file, not a folder", encoding="utf-8")
    m = BackupMirror(store, MergeEngine(clock=clock), BackupSettings(folder=blocker / "sub"))
    m.attach()
    store.put(Folder(id="f1", name="http", last_modified=1))
    assert store.get("f1") is not None
    with pytest.raises(MirrorUnreachable):
        m.write(store.list())
    assert m.on_store_changed(store.list()).error


def test_export_and_read_file(store, mirror, tmp_path):
    store.put(Folder(id="f1", name="http", last_modified=1))
    target = mirror.export_to(tmp_path / "export" / "all.json", store.list())
    assert mirror.read_file(target) == store.list()
    with pytest.raises(InvalidImportFormat):
        mirror.read_file(tmp_path / "does-not-exist.json")
