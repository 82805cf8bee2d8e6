"""版本解析器

职责:
- 调用方指定版本时原样返回（不访问注册中心，不校验版本是否存在）
- 未指定版本时向注册中心查询，取最大版本

排序策略:
  - lexicographic（默认）: 按字符串比较取最大值。注意 "1.10.0" < "1.2.0"
  - numeric: 按 "." / "-" 拆分，数字段按整数比较，非数字段排在数字段之后并按字符串比较
"""

from __future__ import annotations

import logging
import re
from typing import Protocol

from birdy.core.exceptions import ResolutionError

logger = logging.getLogger(__name__)

_SPLIT_RE = re.compile(r"[.\-]")


class VersionSource(Protocol):
    def list_versions(self, name: str) -> list[str]: ...


def numeric_key(version: str) -> tuple[tuple[int, int, str], ...]:
    """数字感知的版本排序键，任何字符串都能产生键，不存在无法解析的情况"""
    key = []
    for part in _SPLIT_RE.split(version):
        if part.isdigit():
            key.append((0, int(part), ""))
        else:
            key.append((1, 0, part))
    return tuple(key)


def max_version(versions: list[str], ordering: str = "lexicographic") -> str:
    """按指定排序策略取最大版本"""
    if ordering == "numeric":
        # 键相同时以原字符串决胜，保证结果确定
        return max(versions, key=lambda v: (numeric_key(v), v))
    return max(versions)


class VersionResolver:
    """确定本次操作的目标版本"""

    def __init__(self, source: VersionSource, ordering: str = "lexicographic") -> None:
        self.source = source
        self.ordering = ordering

    def resolve(self, name: str, requested: str | None = None) -> str:
        if requested:
            return requested

        versions = self.source.list_versions(name)
        if not versions:
            raise ResolutionError(
                f"无法确定 {name} 的最新版本: 注册中心没有任何版本",
                kind=ResolutionError.NOT_FOUND,
            )
        latest = max_version(versions, self.ordering)
        logger.info(
            "解析最新版本: %s -> %s (共 %d 个版本, 排序=%s)",
            name, latest, len(versions), self.ordering,
        )
        return latest
