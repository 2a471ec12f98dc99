"""Tests for the file store: atomic writes, path safety and JSON helpers."""

import json

import pytest

from memvault.codec import serialise_record
from memvault.errors import FormatError, NotFoundError, SecurityError, StorageError
from memvault.models import Frontmatter
from memvault.store import FileStore, json_lock, read_json, write_atomic, write_json


def _record_text(title="T", memory_type="learning"):
    return serialise_record(Frontmatter.new(memory_type, title, ["project"]), "body")


# ---------------------------------------------------------------------------
# Atomic writes
# ---------------------------------------------------------------------------


def test_write_atomic_leaves_no_temp_files(tmp_path):
    target = tmp_path / "sub" / "doc.txt"
    write_atomic(target, "one")
    write_atomic(target, "two")
    assert target.read_text() == "two"
    assert [p.name for p in target.parent.iterdir()] == ["doc.txt"]


def test_write_atomic_failure_is_storage_error(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("a file, not a directory")
    with pytest.raises(StorageError, match="failed to write"):
        write_atomic(blocker / "doc.txt", "x")
    assert [p.name for p in tmp_path.iterdir()] == ["blocker"]


def test_read_json_missing_and_corrupt(tmp_path):
    assert read_json(tmp_path / "nope.json") is None
    bad = tmp_path / "bad.json"
    bad.write_text("{not json")
    assert read_json(bad) is None


def test_write_json_round_trip(tmp_path):
    path = tmp_path / "doc.json"
    write_json(path, {"b": 1, "a": ["é"]})
    assert json.loads(path.read_text(encoding="utf-8")) == {"b": 1, "a": ["é"]}


def test_json_lock_uses_sibling_lock_file(tmp_path):
    path = tmp_path / "graph.json"
    with json_lock(path):
        write_json(path, {"ok": True})
    assert (tmp_path / "graph.json.lock").exists()
    assert read_json(path) == {"ok": True}


# ---------------------------------------------------------------------------
# FileStore paths
# ---------------------------------------------------------------------------


def test_path_for_routes_by_type(tmp_path):
    store = FileStore(tmp_path)
    assert store.path_for("gotcha-x", "gotcha") == tmp_path / "permanent" / "gotcha-x.md"
    assert store.path_for("thought-x", "thought") == tmp_path / "temporary" / "thought-x.md"
    assert store.path_for("breadcrumb-x", "breadcrumb").parent.name == "temporary"


@pytest.mark.parametrize("bad_id", ["../etc/passwd", "a/b", "a\\b", ".hidden", "", "nul\0byte"])
def test_check_id_rejects_traversal(tmp_path, bad_id):
    with pytest.raises(SecurityError):
        FileStore(tmp_path).check_id(bad_id)


def test_safe_path_rejects_escapes(tmp_path):
    store = FileStore(tmp_path / "root")
    with pytest.raises(SecurityError):
        store.safe_path("../outside.md")
    with pytest.raises(SecurityError):
        store.safe_path(tmp_path / "abs.md")


def test_symlink_escaping_root_is_refused(tmp_path):
    outside = tmp_path / "outside"
    outside.mkdir()
    (outside / "learning-leak.md").write_text(_record_text())
    root = tmp_path / "root"
    (root / "permanent").mkdir(parents=True)
    (root / "permanent" / "learning-leak.md").symlink_to(outside / "learning-leak.md")

    store = FileStore(root)
    assert "learning-leak" not in store.list_files()
    with pytest.raises(SecurityError):
        store.locate("learning-leak")


def test_symlink_inside_root_is_allowed(tmp_path):
    store = FileStore(tmp_path)
    real = store.path_for("learning-real", "learning")
    store.write(real, _record_text())
    (tmp_path / "permanent" / "learning-alias.md").symlink_to(real)
    assert set(store.list_files()) == {"learning-real", "learning-alias"}


# ---------------------------------------------------------------------------
# FileStore read/write
# ---------------------------------------------------------------------------


def test_write_load_delete(tmp_path):
    store = FileStore(tmp_path)
    path = store.path_for("learning-t", "learning")
    store.write(path, _record_text("T"))
    assert store.exists("learning-t")
    record = store.load(path)
    assert record.id == "learning-t"
    assert record.relative_path == "permanent/learning-t.md"
    assert store.delete(path) is True
    assert store.delete(path) is False
    assert not store.exists("learning-t")


def test_read_missing_file(tmp_path):
    store = FileStore(tmp_path)
    with pytest.raises(NotFoundError):
        store.read(tmp_path / "permanent" / "learning-none.md")


def test_permanent_wins_over_temporary_on_clash(tmp_path):
    store = FileStore(tmp_path)
    store.write(tmp_path / "temporary" / "learning-dup.md", _record_text("temp"))
    store.write(tmp_path / "permanent" / "learning-dup.md", _record_text("perm"))
    assert store.list_files()["learning-dup"].parent.name == "permanent"
    assert store.locate("learning-dup").parent.name == "permanent"


def test_iter_files_ignores_other_suffixes(tmp_path):
    store = FileStore(tmp_path)
    store.write(store.path_for("learning-a", "learning"), _record_text())
    (tmp_path / "permanent" / "notes.txt").write_text("x")
    (tmp_path / "permanent" / "learning-a.md.tmp.1-abc").write_text("x")
    assert list(store.list_files()) == ["learning-a"]


def test_invalid_utf8_is_format_error(tmp_path):
    store = FileStore(tmp_path)
    path = tmp_path / "permanent" / "learning-bin.md"
    path.parent.mkdir(parents=True)
    path.write_bytes(b"---\ntitle: \xff\xfe\n---\n")
    with pytest.raises(FormatError, match="not valid UTF-8"):
        store.load(path)
