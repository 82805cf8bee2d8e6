"""birdy 日志配置

日志统一写 stderr，stdout 只留给命令输出（list / files 的结果可直接被管道消费）。

环境变量:
    BIRDY_LOG_LEVEL  日志级别，默认 WARNING（安装/删除成功时不输出日志）
    BIRDY_LOG_JSON   设为 1 时输出 JSON 行，供 CI 采集
"""

from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone

LEVEL_ENV = "BIRDY_LOG_LEVEL"
JSON_ENV = "BIRDY_LOG_JSON"
DEFAULT_LEVEL = "WARNING"

# filelock 在 DEBUG 级别为每次加锁/解锁打日志，只在排查锁问题时打开
_NOISY_LOGGERS = ("filelock",)


class JSONFormatter(logging.Formatter):
    """每条日志一行 JSON

    除通用字段外，带 stage 属性的记录（extra={"stage": ...}）会附带事务阶段。
    """

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(
                record.created, tz=timezone.utc
            ).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "line": record.lineno,
        }
        stage = getattr(record, "stage", None)
        if stage:
            entry["stage"] = stage
        if record.exc_info and record.exc_info[1]:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False)


def _resolve_level(level: str | None) -> int:
    name = (level or os.getenv(LEVEL_ENV) or DEFAULT_LEVEL).upper()
    value = logging.getLevelName(name)
    return value if isinstance(value, int) else logging.getLevelName(DEFAULT_LEVEL)


def setup_logging(level: str | None = None, json_output: bool | None = None) -> None:
    """配置根日志器；参数为 None 时读取 BIRDY_LOG_LEVEL / BIRDY_LOG_JSON

    无法识别的级别按 WARNING 处理。重复调用只保留一个 handler。
    """
    reset_logging()
    if json_output is None:
        json_output = os.getenv(JSON_ENV, "") == "1"

    root = logging.getLogger()
    resolved = _resolve_level(level)
    root.setLevel(resolved)

    handler = logging.StreamHandler(sys.stderr)
    if json_output:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter("birdy: %(levelname)s %(name)s: %(message)s"))
    root.addHandler(handler)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(resolved, logging.INFO))


def reset_logging() -> None:
    """清理根日志器上所有已注册的 handlers"""
    root = logging.getLogger()
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()
