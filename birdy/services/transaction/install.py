"""安装事务 - 协调 5 个阶段

阶段顺序：
1. resolve_version - 确定版本
2. fetch_archive - 拉取归档（缓存优先）
3. extract - 解压到安装根目录
4. persist - 追加清单记录
5. cleanup - 删除缓存归档

任一阶段失败立即终止并报告失败阶段，不做自动重试。persist 只在 extract 成功后
执行，因此清单不会记录磁盘上不存在的文件。cleanup 失败仅记录告警，包仍视为已安装。
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from birdy.core.exceptions import BirdyError
from birdy.core.manifest import ManifestStore
from birdy.core.models import PackageRecord
from birdy.core.pkg.extractor import ArchiveExtractor
from birdy.core.pkg.fetcher import ArchiveFetcher
from birdy.core.pkg.resolver import VersionResolver
from birdy.services.transaction.models import (
    STAGE_CLEANUP,
    STAGE_EXTRACT,
    STAGE_FETCH,
    STAGE_PERSIST,
    STAGE_RESOLVE,
    STATUS_INSTALLED,
    InstallReport,
)

logger = logging.getLogger(__name__)


class InstallTransaction:
    """安装事务"""

    def __init__(
        self,
        resolver: VersionResolver,
        fetcher: ArchiveFetcher,
        extractor: ArchiveExtractor,
        store: ManifestStore,
    ) -> None:
        self.resolver = resolver
        self.fetcher = fetcher
        self.extractor = extractor
        self.store = store

    def run(
        self,
        name: str,
        version: str | None = None,
        root: str | Path = "/",
        *,
        staged: bool | None = None,
    ) -> InstallReport:
        install_root = Path(os.path.abspath(root))
        report = InstallReport(name=name, root=str(install_root))

        try:
            report.enter(STAGE_RESOLVE)
            report.version = self.resolver.resolve(name, version)
            report.step(STAGE_RESOLVE, version=report.version)
            logger.info("安装 %s 版本 %s -> %s", name, report.version, install_root)

            report.enter(STAGE_FETCH)
            archive = self.fetcher.fetch(name, report.version)
            report.archive = str(archive)
            report.step(STAGE_FETCH, archive=str(archive))

            report.enter(STAGE_EXTRACT)
            result = self.extractor.extract(archive, install_root, staged=staged)
            report.step(STAGE_EXTRACT, entries=len(result.entries))

            report.enter(STAGE_PERSIST)
            record = PackageRecord(
                name=name,
                version=report.version,
                files=result.files,
                install_root=str(install_root),
                dirs=result.created_dirs,
            )
            self.store.append(record)
            report.record = record
            report.step(STAGE_PERSIST, files=len(record.files))
        except BirdyError as e:
            report.fail(e)
            return report

        report.status = STATUS_INSTALLED
        report.enter(STAGE_CLEANUP)
        try:
            self.fetcher.discard(archive)
            report.step(STAGE_CLEANUP)
        except OSError as e:
            msg = f"无法删除缓存归档 {archive}: {e}"
            logger.warning(msg, extra={"stage": STAGE_CLEANUP})
            report.warnings.append(msg)
            report.step(STAGE_CLEANUP, "warning", error=str(e))

        logger.info("%s@%s 已安装到 %s", name, report.version, install_root)
        return report
