"""公共测试夹具：内存注册中心、归档构造器、组装好的事务环境"""

from __future__ import annotations

import io
import tarfile
from dataclasses import dataclass, field
from pathlib import Path

import pytest

from birdy.core.exceptions import FetchError, ResolutionError
from birdy.core.manifest import ManifestStore
from birdy.core.pkg.extractor import ArchiveExtractor
from birdy.core.pkg.fetcher import ArchiveFetcher
from birdy.core.pkg.resolver import VersionResolver
from birdy.services.transaction.install import InstallTransaction
from birdy.services.transaction.remove import RemoveTransaction

# (路径, 内容)；内容为 None 表示目录，以 "->" 开头表示符号链接目标
Entry = tuple[str, "bytes | str | None"]


def build_archive(path: Path, entries: list[Entry]) -> Path:
    """按给定顺序构造 tar.gz 归档"""
    path.parent.mkdir(parents=True, exist_ok=True)
    with tarfile.open(path, "w:gz") as tf:
        for name, data in entries:
            info = tarfile.TarInfo(name)
            if data is None:
                info.type = tarfile.DIRTYPE
                info.mode = 0o755
                tf.addfile(info)
            elif isinstance(data, str) and data.startswith("->"):
                info.type = tarfile.SYMTYPE
                info.linkname = data[2:]
                tf.addfile(info)
            else:
                raw = data.encode() if isinstance(data, str) else data
                info.size = len(raw)
                info.mode = 0o644
                tf.addfile(info, io.BytesIO(raw))
    return path


def archive_bytes(tmp_path: Path, entries: list[Entry]) -> bytes:
    return build_archive(tmp_path / "_build" / "pkg.tar.gz", entries).read_bytes()


@dataclass
class FakeRegistry:
    """内存注册中心，记录每次调用"""

    versions: dict[str, list[str]] = field(default_factory=dict)
    archives: dict[tuple[str, str], bytes] = field(default_factory=dict)
    unreachable: bool = False
    version_calls: list[str] = field(default_factory=list)
    download_calls: list[tuple[str, str]] = field(default_factory=list)

    def list_versions(self, name: str) -> list[str]:
        self.version_calls.append(name)
        if self.unreachable:
            raise ResolutionError(
                "注册中心不可达", kind=ResolutionError.REGISTRY_UNREACHABLE,
            )
        return list(self.versions.get(name, []))

    def download(self, name: str, version: str) -> bytes:
        self.download_calls.append((name, version))
        if self.unreachable:
            raise FetchError("下载失败: 连接被拒绝")
        data = self.archives.get((name, version))
        if data is None:
            raise FetchError(f"下载 {name}@{version} 失败: HTTP 404", status=404)
        return data

    def publish(self, name: str, version: str, data: bytes) -> None:
        self.archives[(name, version)] = data
        self.versions.setdefault(name, []).append(version)


@dataclass
class Env:
    """按依赖顺序组装好的一套组件"""

    registry: FakeRegistry
    cache_dir: Path
    root: Path
    store: ManifestStore
    fetcher: ArchiveFetcher
    install: InstallTransaction
    remove: RemoveTransaction


@pytest.fixture()
def make_archive(tmp_path: Path):
    """make_archive(entries, name="pkg.tar.gz") -> 归档路径"""
    def _make(entries: list[Entry], name: str = "pkg.tar.gz") -> Path:
        return build_archive(tmp_path / "archives" / name, entries)
    return _make


@pytest.fixture()
def registry() -> FakeRegistry:
    return FakeRegistry()


@pytest.fixture()
def env(tmp_path: Path, registry: FakeRegistry) -> Env:
    cache_dir = tmp_path / "cache"
    root = tmp_path / "opt"
    store = ManifestStore(tmp_path / "state" / "data.json", lock_timeout=2)
    resolver = VersionResolver(registry)
    fetcher = ArchiveFetcher(registry, cache_dir)
    return Env(
        registry=registry,
        cache_dir=cache_dir,
        root=root,
        store=store,
        fetcher=fetcher,
        install=InstallTransaction(resolver, fetcher, ArchiveExtractor(), store),
        remove=RemoveTransaction(resolver, store),
    )
