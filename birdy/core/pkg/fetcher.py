"""归档拉取器

职责:
- 计算 (name, version) 对应的缓存路径
- 缓存命中直接返回（不检查新鲜度，不做校验和）
- 缓存未命中时从注册中心下载，先写临时文件再 rename 到缓存路径
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Protocol

from birdy.core.exceptions import FetchError, ValidationError
from birdy.utils.yaml_io import atomic_write

logger = logging.getLogger(__name__)

ARCHIVE_SUFFIX = ".tar.gz"


class ArchiveSource(Protocol):
    def download(self, name: str, version: str) -> bytes: ...


def check_component(value: str, label: str) -> str:
    """包名/版本号必须能作为单个路径段使用"""
    if not value or value in (".", "..") or "/" in value or "\\" in value or "\0" in value:
        raise ValidationError(f"无效的{label}: {value!r}")
    return value


class ArchiveFetcher:
    """归档拉取器 - 缓存优先 + 远程下载"""

    def __init__(self, source: ArchiveSource, cache_dir: Path) -> None:
        self.source = source
        self.cache_dir = cache_dir

    def cache_path(self, name: str, version: str) -> Path:
        check_component(name, "包名")
        check_component(version, "版本号")
        return self.cache_dir / f"{name}-{version}{ARCHIVE_SUFFIX}"

    def fetch(self, name: str, version: str) -> Path:
        """确保本地存在该版本的归档，返回其路径"""
        dest = self.cache_path(name, version)
        if dest.exists():
            logger.info("缓存命中，直接使用: %s", dest)
            return dest

        data = self.source.download(name, version)
        try:
            atomic_write(dest, data)
        except OSError as e:
            raise FetchError(f"无法写入缓存文件 {dest}: {e}") from e
        logger.info("已保存: %s (%d 字节)", dest, len(data))
        return dest

    def discard(self, path: Path) -> None:
        """删除已消费的缓存归档；失败时抛出 OSError 由调用方决定如何处理"""
        path.unlink()
        logger.debug("已删除缓存归档: %s", path)
