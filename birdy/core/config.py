"""集中配置管理

清单路径、缓存目录、注册中心地址等全部由 Config 显式传入各组件，
不依赖当前工作目录。支持从 YAML 文件加载 + 编程式覆盖。
"""

from __future__ import annotations

import logging
import os
import tempfile
from dataclasses import asdict, dataclass, field

import yaml

from birdy.core.exceptions import ConfigError, ValidationError
from birdy.core.pkg.registry import check_registry_url
from birdy.utils.yaml_io import load_yaml

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "/etc/birdy/config.yml"

VERSION_ORDERINGS = ("lexicographic", "numeric")


def _default_cache_dir() -> str:
    return os.path.join(tempfile.gettempdir(), "birdy")


@dataclass
class Config:
    """birdy 全局配置"""

    # 注册中心
    registry_url: str = "http://localhost:5000"
    registry_token: str = ""
    request_timeout: int = 60

    # 本地状态
    manifest_path: str = "/var/lib/birdy/data.json"
    cache_dir: str = field(default_factory=_default_cache_dir)
    default_root: str = "/"
    manifest_lock_timeout: float = 10.0

    # 行为开关
    version_ordering: str = "lexicographic"
    staged_extract: bool = False
    recover_corrupt_manifest: bool = False

    # 放不到字段里的配置项
    extra: dict = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.version_ordering not in VERSION_ORDERINGS:
            raise ConfigError(
                f"无效的 version_ordering '{self.version_ordering}'，"
                f"可选: {', '.join(VERSION_ORDERINGS)}"
            )
        try:
            check_registry_url(self.registry_url)
        except ValidationError as e:
            raise ConfigError(f"无效的 registry_url: {e}") from e

    @classmethod
    def from_file(cls, path: str = DEFAULT_CONFIG_PATH) -> Config:
        """从 YAML 文件加载配置，不存在则返回默认"""
        try:
            data = load_yaml(path)
        except (yaml.YAMLError, OSError, ValueError) as e:
            raise ConfigError(f"无法读取配置文件 {path}: {e}") from e
        if not data:
            return cls()
        known = {f for f in cls.__dataclass_fields__ if f != "extra"}
        matched = {k: v for k, v in data.items() if k in known}
        extra = {k: v for k, v in data.items() if k not in known}
        try:
            cfg = cls(**matched)
        except TypeError as e:
            raise ConfigError(f"配置文件 {path} 内容无效: {e}") from e
        cfg.extra = extra
        return cfg

    def to_dict(self) -> dict:
        return asdict(self)


# 全局单例，首次 import 时不加载文件；由 CLI 入口显式初始化
_current: Config | None = None


def get_config() -> Config:
    """获取当前配置（未初始化则返回默认值）"""
    global _current  # noqa: PLW0603
    if _current is None:
        _current = Config()
    return _current


def init_config(path: str = DEFAULT_CONFIG_PATH) -> Config:
    """从文件初始化全局配置"""
    global _current  # noqa: PLW0603
    _current = Config.from_file(path)
    logger.debug("配置已加载: %s", path)
    return _current
