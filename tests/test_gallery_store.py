import pytest

from identharness.errors import InputFileError, StageError
from identharness.gallery.edb import EnrollmentDatabaseWriter
from identharness.gallery.store import GalleryStore, finalize, initialize_identification
from identharness.reference.null_impl import NullImplementation
from identharness.types import GalleryType, ReturnCode, ReturnStatus


def test_delete_is_idempotent():
    store = GalleryStore({"a": b"1", "b": b"2"})

    assert store.delete("a") is True
    assert "a" not in store
    assert store.delete("a") is False
    assert "a" not in store
    assert store.ids() == ["b"]


def test_insert_adds_and_replaces():
    store = GalleryStore()
    store.insert(b"first", "x")
    store.insert(b"", "y")
    store.insert(b"second", "x")

    assert len(store) == 2
    assert store.get("x") == b"second"
    assert store.get("y") == b""


def test_load_reads_every_manifest_entry(tmp_path):
    with EnrollmentDatabaseWriter(tmp_path / "edb", tmp_path / "manifest") as writer:
        writer.append("a", b"aaaa")
        writer.append("b", b"")
        writer.append("c", b"cc")

    store = GalleryStore.load(tmp_path / "edb", tmp_path / "manifest")

    assert store.ids() == ["a", "b", "c"]
    assert store.get("b") == b""
    assert store.get("c") == b"cc"


def test_finalize_requires_both_files(tmp_path):
    (tmp_path / "edb").write_bytes(b"")

    with pytest.raises(InputFileError):
        finalize(NullImplementation(), tmp_path, tmp_path, tmp_path / "edb", tmp_path / "manifest")


class _RefusingEngine(NullImplementation):
    def finalize_enrollment(self, *args, **kwargs):
        return ReturnStatus(ReturnCode.ENROLL_DIR_ERROR, "disk full")

    def initialize_identification(self, config_dir, enrollment_dir):
        return ReturnStatus(ReturnCode.CONFIG_ERROR)


def test_finalize_failure_is_fatal(tmp_path):
    (tmp_path / "edb").write_bytes(b"")
    (tmp_path / "manifest").write_text("", encoding="utf-8")

    with pytest.raises(StageError) as excinfo:
        finalize(_RefusingEngine(), tmp_path, tmp_path, tmp_path / "edb", tmp_path / "manifest")

    assert excinfo.value.status.code == ReturnCode.ENROLL_DIR_ERROR


def test_load_failure_is_fatal(tmp_path):
    with pytest.raises(StageError):
        initialize_identification(_RefusingEngine(), tmp_path, tmp_path)


def test_null_engine_finalize_then_load(tmp_path):
    out_dir = tmp_path / "out"
    enroll_dir = tmp_path / "enroll"
    out_dir.mkdir()
    enroll_dir.mkdir()
    with EnrollmentDatabaseWriter(out_dir / "edb", out_dir / "manifest") as writer:
        writer.append("s1", b"t1")
        writer.append("s2", b"t2")

    engine = NullImplementation()
    finalize(engine, tmp_path, enroll_dir, out_dir / "edb", out_dir / "manifest", GalleryType.CONSOLIDATED)
    initialize_identification(engine, tmp_path, enroll_dir)

    assert engine.gallery.ids() == ["s1", "s2"]
