"""清单存储测试"""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from filelock import FileLock

from birdy.core.exceptions import PackageNotFoundError, PersistenceError, RemovalError
from birdy.core.manifest import (
    STATE_CORRUPT,
    STATE_EMPTY,
    STATE_MISSING,
    STATE_OK,
    ManifestStore,
    decode_records,
    encode_records,
)
from birdy.core.models import PackageRecord


def _record(name: str = "foo", version: str = "1.0.0", **kw) -> PackageRecord:
    kw.setdefault("files", ["bin/foo"])
    kw.setdefault("install_root", "/opt")
    return PackageRecord(name=name, version=version, **kw)


@pytest.fixture()
def store(tmp_path: Path) -> ManifestStore:
    return ManifestStore(tmp_path / "state" / "data.json", lock_timeout=2)


class TestSerialization:
    def test_round_trip(self) -> None:
        records = [
            _record(),
            _record("bar", "2.0", files=[], install_root="/", dirs=[]),
            _record("baz", "0.1", files=["a", "b/c"], dirs=["b"]),
        ]
        assert decode_records(encode_records(records).encode()) == records

    def test_wire_format_keys(self) -> None:
        data = json.loads(encode_records([_record()]))
        assert data == [{
            "name": "foo", "version": "1.0.0", "files": ["bin/foo"],
            "install-loc": "/opt", "dirs": [],
        }]

    def test_legacy_record_without_dirs(self) -> None:
        raw = b'[{"name": "foo", "version": "1", "files": ["x"], "install-loc": "/"}]'
        assert decode_records(raw) == [_record(version="1", files=["x"], install_root="/")]

    @pytest.mark.parametrize("raw", [
        b"{}",
        b'[{"name": "foo"}]',
        b'[{"name": 1, "version": "1", "files": [], "install-loc": "/"}]',
        b'[{"name": "a", "version": "1", "files": [3], "install-loc": "/"}]',
    ])
    def test_invalid_documents(self, raw: bytes) -> None:
        with pytest.raises(ValueError):
            decode_records(raw)


class TestLoad:
    def test_missing_manifest_is_created_empty(self, store: ManifestStore) -> None:
        assert store.load_state().state == STATE_MISSING
        assert store.list() == []
        assert store.path.read_text(encoding="utf-8") == "[]"

    def test_empty_file(self, store: ManifestStore) -> None:
        store.path.parent.mkdir(parents=True)
        store.path.write_text("")
        assert store.load_state().state == STATE_EMPTY
        assert store.load() == []

    def test_corrupt_manifest_reads_as_empty(self, store: ManifestStore) -> None:
        store.path.parent.mkdir(parents=True)
        store.path.write_text("{not json")
        snap = store.load_state()
        assert snap.state == STATE_CORRUPT
        assert snap.raw == b"{not json"
        assert store.list() == []

    def test_list_when_manifest_cannot_be_created(self, tmp_path: Path) -> None:
        blocker = tmp_path / "blocker"
        blocker.write_text("a file, not a directory")
        store = ManifestStore(blocker / "data.json")
        assert store.list() == []


class TestAppend:
    def test_append_preserves_order(self, store: ManifestStore) -> None:
        store.append(_record("a"))
        store.append(_record("b"))
        store.append(_record("a"))
        assert [r.name for r in store.list()] == ["a", "b", "a"]
        assert store.load_state().state == STATE_OK

    def test_append_refuses_corrupt_manifest(self, store: ManifestStore) -> None:
        store.path.parent.mkdir(parents=True)
        store.path.write_text("garbage")
        with pytest.raises(PersistenceError, match="已损坏"):
            store.append(_record())
        assert store.path.read_text() == "garbage"

    def test_recover_corrupt_manifest(self, tmp_path: Path) -> None:
        store = ManifestStore(tmp_path / "data.json", recover_corrupt=True)
        store.path.write_text("garbage")
        store.append(_record())
        assert store.list() == [_record()]
        assert (tmp_path / "data.json.corrupt").read_text() == "garbage"

    def test_write_failure_is_persistence_error(
        self, store: ManifestStore, monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        def boom(path, content):
            raise OSError("disk full")

        store.list()
        monkeypatch.setattr("birdy.core.manifest.atomic_write", boom)
        with pytest.raises(PersistenceError, match="disk full"):
            store.append(_record())

    def test_lock_file_beside_manifest(self, store: ManifestStore) -> None:
        store.append(_record())
        assert store.lock_path == store.path.with_name("data.json.lock")
        assert [r.name for r in store.list()] == ["foo"]

    def test_lock_held_elsewhere_times_out(self, tmp_path: Path) -> None:
        store = ManifestStore(tmp_path / "data.json", lock_timeout=0.2)
        store.append(_record())
        before = store.path.read_text()
        cleaned: list[PackageRecord] = []

        with FileLock(str(store.lock_path)):
            with pytest.raises(PersistenceError, match="等待清单锁超时"):
                store.append(_record("bar", "2.0"))
            with pytest.raises(PersistenceError, match="等待清单锁超时"):
                store.find_and_remove("foo", "1.0.0", cleaned.append)

        assert cleaned == []
        assert store.path.read_text() == before
        assert store.list() == [_record()]


class TestRemove:
    def test_lookup_first_match(self, store: ManifestStore) -> None:
        store.append(_record(install_root="/first"))
        store.append(_record(install_root="/second"))
        index, record = store.lookup("foo", "1.0.0")
        assert index == 0
        assert record.install_root == "/first"
        assert store.lookup("foo", "9.9") is None

    def test_find_and_remove_first_match_only(self, store: ManifestStore) -> None:
        store.append(_record("bar"))
        store.append(_record(install_root="/first"))
        store.append(_record(install_root="/second"))

        removed = store.find_and_remove("foo", "1.0.0")

        assert removed.install_root == "/first"
        assert [(r.name, r.install_root) for r in store.list()] == [
            ("bar", "/opt"), ("foo", "/second"),
        ]

    def test_cleanup_runs_before_write(self, store: ManifestStore) -> None:
        store.append(_record())
        seen: list[int] = []

        def cleanup(record: PackageRecord) -> None:
            # 清理期间清单仍包含该记录
            seen.append(len(json.loads(store.path.read_text())))

        store.find_and_remove("foo", "1.0.0", cleanup)
        assert seen == [1]
        assert store.list() == []

    def test_cleanup_failure_keeps_record(self, store: ManifestStore) -> None:
        store.append(_record())

        def cleanup(record: PackageRecord) -> None:
            raise RemovalError("permission denied")

        with pytest.raises(RemovalError):
            store.find_and_remove("foo", "1.0.0", cleanup)
        assert store.list() == [_record()]

    def test_not_found(self, store: ManifestStore) -> None:
        store.append(_record())
        called: list[PackageRecord] = []
        with pytest.raises(PackageNotFoundError):
            store.find_and_remove("foo", "2.0.0", called.append)
        assert called == []
        assert store.list() == [_record()]

    def test_remove_at(self, store: ManifestStore) -> None:
        store.append(_record("a"))
        store.append(_record("b"))
        removed = store.remove_at(1, "b", "1.0.0")
        assert removed.name == "b"
        assert [r.name for r in store.list()] == ["a"]

    def test_remove_at_stale_index(self, store: ManifestStore) -> None:
        store.append(_record("a"))
        with pytest.raises(PersistenceError, match="清单已变化"):
            store.remove_at(0, "b", "1.0.0")
        with pytest.raises(PersistenceError):
            store.remove_at(5, "a", "1.0.0")
        assert [r.name for r in store.list()] == ["a"]
