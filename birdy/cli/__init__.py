"""birdy 命令行接口

CLI 按领域拆分为子模块，每个模块注册自己的命令到 main group。
失败时向 stderr 输出失败阶段与原因，并以异常类型对应的退出码结束。
"""

from __future__ import annotations

import os
from typing import Any

import click

from birdy import __version__
from birdy.core.exceptions import BirdyError
from birdy.services.container import get_container, reset_container
from birdy.utils.logger import setup_logging


def _svc() -> Any:
    """获取全局服务容器的快捷方式"""
    return get_container()


def _abort(error: BirdyError) -> None:
    """输出错误并以对应退出码结束进程"""
    stage = f" [{error.stage}]" if error.stage else ""
    click.echo(f"错误{stage}: {error}", err=True)
    raise SystemExit(error.exit_code)


@click.group()
@click.version_option(version=__version__)
@click.option(
    "--config", "-c", "config_path",
    default=lambda: os.getenv("BIRDY_CONFIG", "/etc/birdy/config.yml"),
    help="配置文件路径（默认读取 BIRDY_CONFIG）",
)
def main(config_path: str) -> None:
    """birdy - 包管理器"""
    setup_logging()
    from birdy.core.config import init_config
    try:
        init_config(config_path)
    except BirdyError as e:
        _abort(e)
    reset_container()


# 注册各领域子命令
from birdy.cli.cmd_pkg import register as _reg_pkg  # noqa: E402

_reg_pkg(main)
