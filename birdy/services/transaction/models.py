"""事务数据模型

数据类：
- InstallReport: 安装事务报告
- RemoveReport: 删除事务报告
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from birdy.core.exceptions import BirdyError
from birdy.core.models import PackageRecord

logger = logging.getLogger(__name__)

# 安装阶段
STAGE_RESOLVE = "resolve_version"
STAGE_FETCH = "fetch_archive"
STAGE_EXTRACT = "extract"
STAGE_PERSIST = "persist"
STAGE_CLEANUP = "cleanup"

# 删除阶段
STAGE_LOOKUP = "lookup"
STAGE_DELETE = "delete_files"
STAGE_PERSIST_REMOVAL = "persist_removal"

# 终态
STATUS_PENDING = "pending"
STATUS_INSTALLED = "installed"
STATUS_REMOVED = "removed"
STATUS_NOT_FOUND = "not_found"
STATUS_FAILED = "failed"


@dataclass
class TransactionReport:
    """事务执行报告 — 终态、失败阶段与逐步记录"""

    name: str
    version: str = ""
    status: str = STATUS_PENDING
    stage: str = ""
    error: BirdyError | None = None
    record: PackageRecord | None = None
    steps: list[dict[str, Any]] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def failed(self) -> bool:
        return self.status == STATUS_FAILED

    def enter(self, stage: str) -> None:
        self.stage = stage

    def step(self, stage: str, status: str = "done", **detail: Any) -> None:
        self.steps.append({"step": stage, "status": status, **detail})

    def fail(self, error: BirdyError, status: str = STATUS_FAILED) -> None:
        """以当前阶段标记失败，异常上未填写阶段时一并补上"""
        if not error.stage:
            error.stage = self.stage
        self.error = error
        self.status = status
        self.step(error.stage, status, error=str(error))
        logger.error(
            "[%s] %s@%s 失败: %s", error.stage, self.name, self.version or "?", error,
            extra={"stage": error.stage},
        )


@dataclass
class InstallReport(TransactionReport):
    """安装事务报告"""

    root: str = ""
    archive: str = ""

    @property
    def installed(self) -> bool:
        return self.status == STATUS_INSTALLED


@dataclass
class RemoveReport(TransactionReport):
    """删除事务报告"""

    deleted: list[str] = field(default_factory=list)

    @property
    def removed(self) -> bool:
        return self.status == STATUS_REMOVED
