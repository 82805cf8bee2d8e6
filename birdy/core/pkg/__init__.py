"""包获取模块

- registry.py: 注册中心 HTTP 客户端
- resolver.py: 版本解析
- fetcher.py: 归档下载与缓存
- extractor.py: 归档解压
"""

from birdy.core.pkg.extractor import ArchiveExtractor
from birdy.core.pkg.fetcher import ArchiveFetcher
from birdy.core.pkg.registry import RegistryClient
from birdy.core.pkg.resolver import VersionResolver

__all__ = [
    "ArchiveExtractor",
    "ArchiveFetcher",
    "RegistryClient",
    "VersionResolver",
]
