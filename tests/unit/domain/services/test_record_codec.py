import pytest

from snipsync.domain.entities.folder import Folder
from snipsync.domain.entities.snippet import PLAIN_TEXT, Snippet
from snipsync.domain.services.record_codec import (
    RecordFormatError,
    classify_record,
    folder_from_dict,
    folder_to_dict,
    sanitize_snippet,
    snippet_from_dict,
    snippet_to_dict,
)


def test_snippet_defaults_are_filled():
    s = snippet_from_dict({"id": "s1", "name": "a", "folderId": "f1"})
    assert s.code == "" and s.notes == ""
    assert s.language == PLAIN_TEXT
    assert s.tags == []
    assert s.last_modified is None


@pytest.mark.parametrize(
    "raw",
    [
        {"name": "a", "folderId": "f1"},
        {"id": "", "name": "a", "folderId": "f1"},
        {"id": "s1", "name": "a"},
        {"id": "s1", "name": "a", "folderId": "f1", "tags": "x"},
        {"id": "s1", "name": "a", "folderId": "f1", "lastModified": "yesterday"},
        {"id": "s1", "name": "a", "folderId": "f1", "lastModified": True},
        {"id": "s1", "name": 3, "folderId": "f1"},
    ],
)
def test_invalid_snippets_are_rejected(raw):
    with pytest.raises(RecordFormatError):
        snippet_from_dict(raw)


def test_folder_parent_must_be_string_or_null():
    assert folder_from_dict({"id": "f1", "name": "a", "parentId": None}).parent_id is None
    with pytest.raises(RecordFormatError):
        folder_from_dict({"id": "f1", "name": "a", "parentId": 7})


def test_float_timestamp_is_truncated():
    assert folder_from_dict({"id": "f1", "lastModified": 12.9}).last_modified == 12


def test_classify_record():
    assert classify_record({"type": "folder", "id": "f"}) == "folder"
    assert classify_record({"id": "s", "folderId": "f"}) == "snippet"
    assert classify_record({"id": "f", "parentId": None}) == "folder"


def test_to_dict_omits_unset_optionals():
    assert folder_to_dict(Folder(id="f1", name="a")) == {"id": "f1", "name": "a", "parentId": None}
    d = snippet_to_dict(Snippet(id="s1", name="a", folder_id="f1", tags=["b", "a"], last_modified=5))
    assert d["folderId"] == "f1"
    assert d["tags"] == ["a", "b"]
    assert d["lastModified"] == 5


def test_sanitize_only_fills_missing_timestamp():
    s = Snippet(id="s1", name="a", folder_id="f1")
    assert sanitize_snippet(s, 77).last_modified == 77
    stamped = Snippet(id="s1", name="a", folder_id="f1", last_modified=5)
    assert sanitize_snippet(stamped, 77) is stamped
