"""已安装包清单

清单是一个 JSON 数组，每个元素对应一条 PackageRecord:
    [{"name": ..., "version": ..., "files": [...], "install-loc": ..., "dirs": [...]}]

读写规则:
  - 每次变更都读取完整清单、计算新的完整序列、整体原子写回（临时文件 + rename）
  - 读-改-写全程持有 <清单>.lock 上的进程间文件锁，避免多个 birdy 进程互相覆盖
  - 读取时对损坏的清单宽容处理（视为空清单并告警）；但变更操作拒绝覆盖损坏的清单，
    除非显式开启 recover_corrupt_manifest（此时先备份为 <清单>.corrupt）
  - 同名同版本可能存在多条记录，查找与删除一律取插入顺序中的第一条
"""

from __future__ import annotations

import json
import logging
import shutil
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from filelock import FileLock, Timeout

from birdy.core.exceptions import PackageNotFoundError, PersistenceError
from birdy.core.models import PackageRecord
from birdy.utils.yaml_io import atomic_write

logger = logging.getLogger(__name__)

STATE_MISSING = "missing"
STATE_EMPTY = "empty"
STATE_OK = "ok"
STATE_CORRUPT = "corrupt"


@dataclass
class ManifestSnapshot:
    """一次读取清单的结果，区分 "不存在/空" 与 "已损坏" """

    state: str
    records: list[PackageRecord] = field(default_factory=list)
    raw: bytes = b""
    error: str = ""

    @property
    def corrupt(self) -> bool:
        return self.state == STATE_CORRUPT


def encode_records(records: list[PackageRecord]) -> str:
    return json.dumps([r.to_dict() for r in records], indent=2, ensure_ascii=False)


def decode_records(raw: bytes) -> list[PackageRecord]:
    """解析清单内容；格式不符时抛出 ValueError"""
    data = json.loads(raw)
    if not isinstance(data, list):
        raise ValueError(f"清单顶层应为数组，实际为 {type(data).__name__}")
    return [PackageRecord.from_dict(item) for item in data]


class ManifestStore:
    """清单存储 - 追加、查找、按下标删除、全量枚举"""

    def __init__(
        self,
        path: Path,
        *,
        lock_timeout: float = 10.0,
        recover_corrupt: bool = False,
    ) -> None:
        self.path = path
        self.lock_path = path.with_name(path.name + ".lock")
        self.lock_timeout = lock_timeout
        self.recover_corrupt = recover_corrupt

    # ------------------------------------------------------------------
    # 读取
    # ------------------------------------------------------------------

    def load_state(self) -> ManifestSnapshot:
        """读取清单并报告状态，不创建文件"""
        if not self.path.exists():
            return ManifestSnapshot(state=STATE_MISSING)
        try:
            raw = self.path.read_bytes()
        except OSError as e:
            raise PersistenceError(f"无法读取清单 {self.path}: {e}") from e
        if not raw.strip():
            return ManifestSnapshot(state=STATE_EMPTY, raw=raw)
        try:
            records = decode_records(raw)
        except ValueError as e:
            # json.JSONDecodeError / UnicodeDecodeError 均为 ValueError 子类
            return ManifestSnapshot(state=STATE_CORRUPT, raw=raw, error=str(e))
        return ManifestSnapshot(state=STATE_OK, records=records, raw=raw)

    def load(self) -> list[PackageRecord]:
        """读取全部记录；清单不存在时创建空清单，清单损坏时返回空序列"""
        snap = self.load_state()
        if snap.state == STATE_MISSING:
            self._create_empty()
        elif snap.corrupt:
            logger.warning("清单已损坏，按空清单处理: %s (%s)", self.path, snap.error)
        return snap.records

    def list(self) -> list[PackageRecord]:
        return self.load()

    def lookup(self, name: str, version: str) -> tuple[int, PackageRecord] | None:
        """按插入顺序查找第一条匹配记录"""
        return _first_match(self.load(), name, version)

    # ------------------------------------------------------------------
    # 变更
    # ------------------------------------------------------------------

    def append(self, record: PackageRecord) -> None:
        """在清单末尾追加一条记录"""
        def _append(records: list[PackageRecord]) -> list[PackageRecord]:
            records.append(record)
            return records

        self._mutate(_append)
        logger.info(
            "清单已记录: %s@%s (%d 个文件) -> %s",
            record.name, record.version, len(record.files), self.path,
        )

    def remove_at(self, index: int, name: str, version: str) -> PackageRecord:
        """删除指定下标的记录；下标处的记录必须仍是 (name, version)"""
        removed: list[PackageRecord] = []

        def _remove(records: list[PackageRecord]) -> list[PackageRecord]:
            if not 0 <= index < len(records) or not records[index].matches(name, version):
                raise PersistenceError(
                    f"清单已变化: 下标 {index} 处不再是 {name}@{version}",
                )
            removed.append(records.pop(index))
            return records

        self._mutate(_remove)
        return removed[0]

    def find_and_remove(
        self,
        name: str,
        version: str,
        cleanup: Callable[[PackageRecord], None] | None = None,
    ) -> PackageRecord:
        """查找第一条匹配记录，执行 cleanup 成功后再从清单中删除

        cleanup 抛出的任何异常都会原样传播，清单保持不变。
        """
        removed: list[PackageRecord] = []

        def _remove(records: list[PackageRecord]) -> list[PackageRecord]:
            match = _first_match(records, name, version)
            if match is None:
                raise PackageNotFoundError(f"未安装 {name} 版本 {version}")
            index, record = match
            if cleanup is not None:
                cleanup(record)
            removed.append(records.pop(index))
            return records

        self._mutate(_remove)
        logger.info("清单已删除: %s@%s", name, version)
        return removed[0]

    # ------------------------------------------------------------------
    # 内部实现
    # ------------------------------------------------------------------

    def _lock(self) -> FileLock:
        try:
            self.lock_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise PersistenceError(f"无法创建清单目录 {self.lock_path.parent}: {e}") from e
        return FileLock(str(self.lock_path), timeout=self.lock_timeout)

    def _mutate(
        self, change: Callable[[list[PackageRecord]], list[PackageRecord]],
    ) -> None:
        """加锁执行 读取 -> 变更 -> 整体写回"""
        try:
            with self._lock():
                snap = self.load_state()
                if snap.corrupt:
                    self._handle_corrupt(snap)
                records = change(list(snap.records))
                self._write(records)
        except Timeout as e:
            raise PersistenceError(
                f"等待清单锁超时 ({self.lock_timeout}s): {self.lock_path}",
            ) from e
        except OSError as e:
            raise PersistenceError(f"无法锁定清单 {self.lock_path}: {e}") from e

    def _handle_corrupt(self, snap: ManifestSnapshot) -> None:
        if not self.recover_corrupt:
            raise PersistenceError(
                f"清单已损坏，拒绝覆盖: {self.path} ({snap.error})；"
                "确认后可开启 recover_corrupt_manifest 重建清单",
            )
        backup = self.path.with_name(self.path.name + ".corrupt")
        try:
            shutil.copyfile(self.path, backup)
        except OSError as e:
            raise PersistenceError(f"无法备份损坏的清单到 {backup}: {e}") from e
        logger.warning("清单已损坏，已备份到 %s 并重建", backup)
        snap.records = []

    def _write(self, records: list[PackageRecord]) -> None:
        try:
            atomic_write(self.path, encode_records(records))
        except OSError as e:
            raise PersistenceError(f"无法写入清单 {self.path}: {e}") from e

    def _create_empty(self) -> None:
        try:
            with self._lock():
                if not self.path.exists():
                    atomic_write(self.path, "[]")
                    logger.info("已创建空清单: %s", self.path)
        except (OSError, Timeout, PersistenceError) as e:
            # 只读场景（如 list）下无法创建不影响返回空序列
            logger.warning("无法创建空清单 %s: %s", self.path, e)


def _first_match(
    records: list[PackageRecord], name: str, version: str,
) -> tuple[int, PackageRecord] | None:
    for i, record in enumerate(records):
        if record.matches(name, version):
            return i, record
    return None
