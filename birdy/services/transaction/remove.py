"""删除事务 - 协调 4 个阶段

阶段顺序：
1. resolve_version - 未指定版本时向注册中心查询最新版本
2. lookup - 在清单中查找第一条匹配记录
3. delete_files - 逐个删除记录中的文件，再逆序清理安装时新建的空目录
4. persist_removal - 从清单中删除记录

只有全部文件删除成功后才会更新清单；任一文件删除失败时清单记录保持不变，
重试删除时可以继续处理剩余文件（配合 missing_ok 跳过已经删掉的文件）。
"""

from __future__ import annotations

import logging
import posixpath
from pathlib import Path

from birdy.core.exceptions import BirdyError, PackageNotFoundError, RemovalError
from birdy.core.manifest import ManifestStore
from birdy.core.models import PackageRecord
from birdy.core.pkg.resolver import VersionResolver
from birdy.services.transaction.models import (
    STAGE_DELETE,
    STAGE_LOOKUP,
    STAGE_PERSIST_REMOVAL,
    STAGE_RESOLVE,
    STATUS_NOT_FOUND,
    STATUS_REMOVED,
    RemoveReport,
)

logger = logging.getLogger(__name__)


def _is_contained(rel: str) -> bool:
    """记录中的路径必须是不含 ".." 的相对路径"""
    if not rel or rel.startswith("/") or "\\" in rel:
        return False
    return ".." not in posixpath.normpath(rel).split("/")


class RemoveTransaction:
    """删除事务"""

    def __init__(
        self,
        resolver: VersionResolver,
        store: ManifestStore,
        *,
        missing_ok: bool = False,
    ) -> None:
        self.resolver = resolver
        self.store = store
        self.missing_ok = missing_ok

    def run(
        self,
        name: str,
        version: str | None = None,
        *,
        missing_ok: bool | None = None,
    ) -> RemoveReport:
        report = RemoveReport(name=name, version=version or "")
        tolerate_missing = self.missing_ok if missing_ok is None else missing_ok

        def _cleanup(record: PackageRecord) -> None:
            report.step(STAGE_LOOKUP, install_root=record.install_root)
            report.enter(STAGE_DELETE)
            report.deleted = self._delete_files(record, tolerate_missing)
            report.step(STAGE_DELETE, files=len(report.deleted))
            report.enter(STAGE_PERSIST_REMOVAL)

        try:
            if not version:
                report.enter(STAGE_RESOLVE)
                report.version = self.resolver.resolve(name)
                report.step(STAGE_RESOLVE, version=report.version)
            logger.info("删除 %s 版本 %s", name, report.version)

            report.enter(STAGE_LOOKUP)
            report.record = self.store.find_and_remove(name, report.version, _cleanup)
            report.step(STAGE_PERSIST_REMOVAL)
        except PackageNotFoundError as e:
            report.fail(e, STATUS_NOT_FOUND)
            return report
        except BirdyError as e:
            report.fail(e)
            return report

        report.status = STATUS_REMOVED
        logger.info("%s@%s 已删除", name, report.version)
        return report

    def _delete_files(self, record: PackageRecord, missing_ok: bool) -> list[str]:
        """删除记录中的全部文件；有任何失败则汇总抛出 RemovalError"""
        root = Path(record.install_root)
        deleted: list[str] = []
        failures: list[tuple[str, str]] = []

        for rel in record.files:
            if not _is_contained(rel):
                failures.append((rel, "路径不在安装根目录内"))
                continue
            path = root / rel
            try:
                path.unlink()
            except FileNotFoundError:
                if missing_ok:
                    logger.info("文件已不存在，跳过: %s", path)
                    continue
                failures.append((rel, "文件不存在"))
                continue
            except OSError as e:
                failures.append((rel, str(e)))
                continue
            deleted.append(rel)
            logger.debug("已删除 %s", path)

        if failures:
            detail = "; ".join(f"{p}: {reason}" for p, reason in failures)
            raise RemovalError(
                f"{record.name}@{record.version} 有 {len(failures)} 个文件删除失败，"
                f"清单记录保留: {detail}",
                failures=failures,
            )

        self._prune_dirs(root, record.dirs)
        return deleted

    @staticmethod
    def _prune_dirs(root: Path, dirs: list[str]) -> None:
        """逆序删除安装时新建的目录，非空或已不存在的目录直接跳过"""
        for rel in reversed(dirs):
            if not _is_contained(rel):
                continue
            path = root / rel
            try:
                path.rmdir()
            except OSError as e:
                logger.debug("保留目录 %s: %s", path, e)
