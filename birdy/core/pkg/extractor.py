"""归档解压器

职责:
- 将归档的每个条目解压到目标根目录，保留归档内相对路径
- 返回按归档存储顺序排列的条目列表（含条目类型），作为日后删除的依据
- 记录本次解压新建的目录（含未显式出现在归档中的父目录），删除时逆序清理

安全:
  每个条目都经过 tarfile 的 "data" 过滤器检查：".." 路径穿越、指向根目录外的
  链接、设备文件/FIFO 等特殊条目一律拒绝，抛出 ExtractionError。前导 "/" 会被
  剥离，条目落在目标根目录之下。

两种模式:
  - 直接模式（默认）: 逐条解压到目标根目录。中途失败时已写入的文件保留在磁盘上，
    不做回滚
  - 暂存模式: 先完整解压到目标根目录下的临时暂存目录，全部成功后再逐条移动到位；
    无论成功失败都会删除暂存目录
"""

from __future__ import annotations

import logging
import os
import posixpath
import shutil
import tarfile
import tempfile
import zlib
from pathlib import Path

from birdy.core.exceptions import ExtractionError
from birdy.core.models import (
    ENTRY_DIR,
    ENTRY_FILE,
    ENTRY_HARDLINK,
    ENTRY_SYMLINK,
    ExtractedEntry,
    ExtractionResult,
)

logger = logging.getLogger(__name__)

# 归档损坏时 tarfile/gzip 可能抛出的异常
_CORRUPT_ERRORS = (tarfile.TarError, EOFError, zlib.error)


def _entry_kind(member: tarfile.TarInfo) -> str:
    if member.isdir():
        return ENTRY_DIR
    if member.issym():
        return ENTRY_SYMLINK
    if member.islnk():
        return ENTRY_HARDLINK
    return ENTRY_FILE


def _relative_name(member: tarfile.TarInfo, dest: Path) -> str:
    """经 data 过滤器校验后的规范化相对路径，"." 表示根目录本身"""
    try:
        filtered = tarfile.data_filter(member, str(dest))
    except tarfile.FilterError as e:
        raise ExtractionError(f"拒绝解压不安全的条目 '{member.name}': {e}") from e
    return posixpath.normpath(filtered.name.replace(os.sep, "/"))


class _DirTracker:
    """记录解压过程中新建的目录，顺序为父目录在前"""

    def __init__(self, root: Path) -> None:
        self.root = root
        self.created: list[str] = []
        self._seen: set[str] = set()

    def note(self, rel: str, *, include_self: bool) -> None:
        parts = rel.split("/")
        upto = len(parts) if include_self else len(parts) - 1
        for i in range(1, upto + 1):
            sub = "/".join(parts[:i])
            if sub in self._seen:
                continue
            self._seen.add(sub)
            if not (self.root / sub).exists():
                self.created.append(sub)


class ArchiveExtractor:
    """tar 归档解压器"""

    def __init__(self, staged: bool = False) -> None:
        self.staged = staged

    def extract(
        self, archive: Path, root: Path, *, staged: bool | None = None,
    ) -> ExtractionResult:
        """解压 archive 到 root，返回写入的条目列表"""
        use_staging = self.staged if staged is None else staged
        try:
            root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ExtractionError(f"无法创建安装根目录 {root}: {e}") from e

        if use_staging:
            result = self._extract_staged(archive, root)
        else:
            result = self._extract_direct(archive, root)
        logger.info(
            "解压完成: %s -> %s (%d 个条目, 新建 %d 个目录)",
            archive.name, root, len(result.entries), len(result.created_dirs),
        )
        return result

    def _extract_direct(self, archive: Path, root: Path) -> ExtractionResult:
        result = ExtractionResult()
        tracker = _DirTracker(root)
        try:
            with tarfile.open(archive) as tf:
                for member in tf:
                    rel = _relative_name(member, root)
                    if rel == ".":
                        continue
                    kind = _entry_kind(member)
                    tracker.note(rel, include_self=kind == ENTRY_DIR)
                    tf.extract(member, path=str(root), filter="data")
                    result.entries.append(ExtractedEntry(rel, kind))
        except ExtractionError:
            self._report_partial(result, root)
            raise
        except (*_CORRUPT_ERRORS, OSError) as e:
            self._report_partial(result, root)
            raise ExtractionError(f"解压 {archive} 失败: {e}") from e
        result.created_dirs = tracker.created
        return result

    def _extract_staged(self, archive: Path, root: Path) -> ExtractionResult:
        try:
            staging = Path(tempfile.mkdtemp(prefix=".birdy-stage-", dir=str(root)))
        except OSError as e:
            raise ExtractionError(f"无法在 {root} 下创建暂存目录: {e}") from e

        try:
            entries: list[ExtractedEntry] = []
            try:
                with tarfile.open(archive) as tf:
                    for member in tf:
                        rel = _relative_name(member, staging)
                        if rel == ".":
                            continue
                        tf.extract(member, path=str(staging), filter="data")
                        entries.append(ExtractedEntry(rel, _entry_kind(member)))
            except ExtractionError:
                raise
            except (*_CORRUPT_ERRORS, OSError) as e:
                raise ExtractionError(f"解压 {archive} 失败: {e}") from e
            return self._promote(staging, root, entries)
        finally:
            shutil.rmtree(staging, ignore_errors=True)

    def _promote(
        self, staging: Path, root: Path, entries: list[ExtractedEntry],
    ) -> ExtractionResult:
        """把暂存目录中的条目按归档顺序移动到目标根目录"""
        tracker = _DirTracker(root)
        moved: set[str] = set()
        for entry in entries:
            if entry.path in moved:
                continue
            moved.add(entry.path)
            tracker.note(entry.path, include_self=entry.is_dir)
            target = root / entry.path
            try:
                if entry.is_dir:
                    target.mkdir(parents=True, exist_ok=True)
                else:
                    target.parent.mkdir(parents=True, exist_ok=True)
                    os.replace(staging / entry.path, target)
            except OSError as e:
                raise ExtractionError(
                    f"移动暂存条目 {entry.path} 到 {root} 失败: {e}",
                ) from e
        return ExtractionResult(entries=entries, created_dirs=tracker.created)

    @staticmethod
    def _report_partial(result: ExtractionResult, root: Path) -> None:
        if result.entries:
            logger.warning(
                "解压中途失败，已写入的 %d 个条目保留在 %s 下（不回滚）",
                len(result.entries), root,
            )
