"""统一异常体系

所有业务异常继承 BirdyError。每类异常带有稳定的 code 与进程退出码，
CLI 层据此输出友好提示并以对应退出码结束。

stage 字段由事务编排在失败时填写，标识失败发生在哪个阶段。
"""

from __future__ import annotations


class BirdyError(Exception):
    """框架基础异常"""

    code: str = "UNKNOWN"
    exit_code: int = 1

    def __init__(self, message: str, *, stage: str = "") -> None:
        super().__init__(message)
        self.stage = stage


class ConfigError(BirdyError):
    """配置文件缺失或内容无效"""

    code = "CONFIG_ERROR"
    exit_code = 2


class ValidationError(BirdyError):
    """输入数据校验失败（包名/版本号/URL 等）"""

    code = "VALIDATION_ERROR"
    exit_code = 2


class ResolutionError(BirdyError):
    """版本解析失败

    kind:
      - not_found: 注册中心没有该包的任何版本
      - registry_unreachable: 注册中心不可达或返回了无法解析的响应
    """

    code = "RESOLUTION_ERROR"
    exit_code = 3

    NOT_FOUND = "not_found"
    REGISTRY_UNREACHABLE = "registry_unreachable"

    def __init__(self, message: str, *, kind: str, stage: str = "") -> None:
        super().__init__(message, stage=stage)
        self.kind = kind


class FetchError(BirdyError):
    """归档下载失败；status 为 HTTP 状态码，传输层失败时为 None"""

    code = "FETCH_ERROR"
    exit_code = 4

    def __init__(
        self, message: str, *, status: int | None = None, stage: str = "",
    ) -> None:
        super().__init__(message, stage=stage)
        self.status = status


class ExtractionError(BirdyError):
    """归档损坏、路径穿越或不支持的条目类型"""

    code = "EXTRACTION_ERROR"
    exit_code = 5


class PersistenceError(BirdyError):
    """清单文件不可读写、已损坏或加锁超时"""

    code = "PERSISTENCE_ERROR"
    exit_code = 6


class PackageNotFoundError(BirdyError):
    """清单中没有匹配 (name, version) 的记录"""

    code = "NOT_FOUND"
    exit_code = 7


class RemovalError(BirdyError):
    """删除已安装文件失败，清单记录保持不变"""

    code = "REMOVAL_ERROR"
    exit_code = 8

    def __init__(
        self, message: str, *, failures: list[tuple[str, str]] | None = None,
        stage: str = "",
    ) -> None:
        super().__init__(message, stage=stage)
        self.failures = failures or []
