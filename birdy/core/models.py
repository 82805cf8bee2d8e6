"""核心数据模型

数据类:
- PackageRecord: 清单中的一条已安装包记录
- ExtractedEntry / ExtractionResult: 解压产出的条目列表
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

# 条目类型
ENTRY_FILE = "file"
ENTRY_DIR = "dir"
ENTRY_SYMLINK = "symlink"
ENTRY_HARDLINK = "hardlink"


@dataclass
class PackageRecord:
    """已安装包记录，(name, version) 为逻辑键但不要求唯一"""

    name: str
    version: str
    files: list[str] = field(default_factory=list)
    install_root: str = ""
    dirs: list[str] = field(default_factory=list)  # 解压时新建的目录

    def matches(self, name: str, version: str) -> bool:
        return self.name == name and self.version == version

    def to_dict(self) -> dict[str, Any]:
        """序列化为清单 JSON 对象（键名与历史清单格式保持一致）"""
        return {
            "name": self.name,
            "version": self.version,
            "files": list(self.files),
            "install-loc": self.install_root,
            "dirs": list(self.dirs),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PackageRecord:
        """从清单 JSON 对象反序列化；字段缺失或类型不符时抛出 ValueError"""
        if not isinstance(data, dict):
            raise ValueError(f"清单条目不是对象: {data!r}")
        try:
            name = data["name"]
            version = data["version"]
            files = data["files"]
            install_root = data["install-loc"]
        except KeyError as e:
            raise ValueError(f"清单条目缺少字段 {e}") from e
        dirs = data.get("dirs", [])
        if not isinstance(name, str) or not isinstance(version, str):
            raise ValueError(f"清单条目 name/version 必须是字符串: {data!r}")
        if not isinstance(install_root, str):
            raise ValueError(f"清单条目 install-loc 必须是字符串: {data!r}")
        for seq in (files, dirs):
            if not isinstance(seq, list) or not all(isinstance(p, str) for p in seq):
                raise ValueError(f"清单条目 files/dirs 必须是字符串数组: {data!r}")
        return cls(
            name=name, version=version, files=list(files),
            install_root=install_root, dirs=list(dirs),
        )


@dataclass(frozen=True)
class ExtractedEntry:
    """解压写入的单个条目（相对安装根目录的路径）"""

    path: str
    kind: str = ENTRY_FILE

    @property
    def is_dir(self) -> bool:
        return self.kind == ENTRY_DIR


@dataclass
class ExtractionResult:
    """一次解压的完整产出，顺序与归档内存储顺序一致"""

    entries: list[ExtractedEntry] = field(default_factory=list)
    created_dirs: list[str] = field(default_factory=list)

    @property
    def files(self) -> list[str]:
        """非目录条目（普通文件、符号链接、硬链接），重复条目只保留首次出现"""
        return list(dict.fromkeys(e.path for e in self.entries if not e.is_dir))
