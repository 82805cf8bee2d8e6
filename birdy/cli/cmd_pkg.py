"""CLI — 包安装、删除与查询命令"""

from __future__ import annotations

import json

import click

from birdy.cli import _abort, _svc
from birdy.core.exceptions import BirdyError, PackageNotFoundError
from birdy.core.pkg.resolver import max_version


def register(group: click.Group) -> None:
    group.add_command(install)
    group.add_command(remove)
    group.add_command(list_packages)
    group.add_command(files)
    group.add_command(versions)


@click.command()
@click.argument("name")
@click.argument("version", required=False)
@click.option("--root", "-r", default=None, help="安装根目录（默认读取配置 default_root）")
@click.option("--staged/--direct", default=None, help="先解压到暂存目录，全部成功后再移动到位")
def install(name: str, version: str | None, root: str | None, staged: bool | None) -> None:
    """安装包（未指定版本时安装注册中心的最新版本）"""
    svc = _svc()
    try:
        txn = svc.install
    except BirdyError as e:
        _abort(e)
    report = txn.run(name, version, root or svc.config.default_root, staged=staged)
    if report.error is not None:
        _abort(report.error)
    for warning in report.warnings:
        click.echo(f"警告: {warning}", err=True)
    click.echo(f"已安装 {name}@{report.version} -> {report.root}")


@click.command()
@click.argument("name")
@click.argument("version", required=False)
@click.option("--missing-ok", is_flag=True, help="已不存在的文件视为删除成功（用于完成中断的删除）")
def remove(name: str, version: str | None, missing_ok: bool) -> None:
    """删除已安装的包（未指定版本时删除注册中心的最新版本）"""
    try:
        txn = _svc().remove
    except BirdyError as e:
        _abort(e)
    report = txn.run(name, version, missing_ok=missing_ok)
    if report.error is not None:
        _abort(report.error)
    click.echo(f"已删除 {name}@{report.version} ({len(report.deleted)} 个文件)")


@click.command(name="list")
@click.option("--json", "as_json", is_flag=True, help="以 JSON 输出完整清单")
def list_packages(as_json: bool) -> None:
    """列出全部已安装的包"""
    try:
        records = _svc().manifest.list()
    except BirdyError as e:
        _abort(e)
    if as_json:
        click.echo(json.dumps([r.to_dict() for r in records], indent=2, ensure_ascii=False))
        return
    for r in records:
        click.echo(f"{r.name}-{r.version}-{r.install_root}")


@click.command()
@click.argument("name")
@click.argument("version")
def files(name: str, version: str) -> None:
    """列出已安装包记录的文件"""
    try:
        match = _svc().manifest.lookup(name, version)
        if match is None:
            raise PackageNotFoundError(f"未安装 {name} 版本 {version}", stage="lookup")
    except BirdyError as e:
        _abort(e)
    _, record = match
    click.echo(f"# {record.name}@{record.version} ({record.install_root})")
    for path in record.files:
        click.echo(path)


@click.command()
@click.argument("name")
def versions(name: str) -> None:
    """列出注册中心中包的全部版本，并标记将被选中的版本"""
    svc = _svc()
    try:
        available = svc.registry.list_versions(name)
        if not available:
            click.echo(f"注册中心没有 {name} 的任何版本")
            return
    except BirdyError as e:
        _abort(e)
    latest = max_version(available, svc.config.version_ordering)
    for v in available:
        marker = " <- 最新" if v == latest else ""
        click.echo(f"  {v}{marker}")
