"""服务容器 — 统一依赖注入，所有组件从同一份 Config 构造

依赖关系图（→ 表示依赖）:
  resolver → registry
  fetcher  → registry
  install  → resolver, fetcher, extractor, manifest
  remove   → resolver, manifest

清单路径、缓存目录、注册中心地址全部来自 Config，不依赖当前工作目录。

用法:
    container = ServiceContainer(config=Config.from_file("birdy.yml"))
    report = container.install.run("foo", root="/opt")

    # CLI 共享的全局单例
    from birdy.services.container import get_container
    records = get_container().manifest.list()
"""

from __future__ import annotations

import threading
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from birdy.core.config import Config
    from birdy.core.manifest import ManifestStore
    from birdy.core.pkg.extractor import ArchiveExtractor
    from birdy.core.pkg.fetcher import ArchiveFetcher
    from birdy.core.pkg.registry import RegistryClient
    from birdy.core.pkg.resolver import VersionResolver
    from birdy.services.transaction.install import InstallTransaction
    from birdy.services.transaction.remove import RemoveTransaction


class ServiceContainer:
    """懒加载服务容器 — 每个实例持有一组共享的组件"""

    def __init__(self, config: Config | None = None) -> None:
        self._instances: dict[str, object] = {}
        if config is None:
            from birdy.core.config import get_config
            config = get_config()
        self._config = config

    @property
    def config(self) -> Config:
        return self._config

    # ---- 组件 ----

    @property
    def registry(self) -> RegistryClient:
        if "registry" not in self._instances:
            from birdy.core.pkg.registry import RegistryClient
            self._instances["registry"] = RegistryClient(
                self._config.registry_url,
                token=self._config.registry_token,
                timeout=self._config.request_timeout,
            )
        return self._instances["registry"]  # type: ignore[return-value]

    @property
    def resolver(self) -> VersionResolver:
        if "resolver" not in self._instances:
            from birdy.core.pkg.resolver import VersionResolver
            self._instances["resolver"] = VersionResolver(
                self.registry, ordering=self._config.version_ordering,
            )
        return self._instances["resolver"]  # type: ignore[return-value]

    @property
    def fetcher(self) -> ArchiveFetcher:
        if "fetcher" not in self._instances:
            from birdy.core.pkg.fetcher import ArchiveFetcher
            self._instances["fetcher"] = ArchiveFetcher(
                self.registry, Path(self._config.cache_dir),
            )
        return self._instances["fetcher"]  # type: ignore[return-value]

    @property
    def extractor(self) -> ArchiveExtractor:
        if "extractor" not in self._instances:
            from birdy.core.pkg.extractor import ArchiveExtractor
            self._instances["extractor"] = ArchiveExtractor(
                staged=self._config.staged_extract,
            )
        return self._instances["extractor"]  # type: ignore[return-value]

    @property
    def manifest(self) -> ManifestStore:
        if "manifest" not in self._instances:
            from birdy.core.manifest import ManifestStore
            self._instances["manifest"] = ManifestStore(
                Path(self._config.manifest_path),
                lock_timeout=self._config.manifest_lock_timeout,
                recover_corrupt=self._config.recover_corrupt_manifest,
            )
        return self._instances["manifest"]  # type: ignore[return-value]

    # ---- 事务 ----

    @property
    def install(self) -> InstallTransaction:
        if "install" not in self._instances:
            from birdy.services.transaction.install import InstallTransaction
            self._instances["install"] = InstallTransaction(
                self.resolver, self.fetcher, self.extractor, self.manifest,
            )
        return self._instances["install"]  # type: ignore[return-value]

    @property
    def remove(self) -> RemoveTransaction:
        if "remove" not in self._instances:
            from birdy.services.transaction.remove import RemoveTransaction
            self._instances["remove"] = RemoveTransaction(
                self.resolver, self.manifest,
            )
        return self._instances["remove"]  # type: ignore[return-value]


# ---- 全局单例 ----

_global: ServiceContainer | None = None
_global_lock = threading.Lock()


def get_container() -> ServiceContainer:
    """获取全局 ServiceContainer 单例（线程安全）"""
    global _global  # noqa: PLW0603
    if _global is not None:
        return _global
    with _global_lock:
        if _global is None:
            _global = ServiceContainer()
        return _global


def reset_container() -> None:
    """重置全局容器（配置切换或测试时使用）"""
    global _global  # noqa: PLW0603
    with _global_lock:
        _global = None
