"""
CLI 命令行入口 - 使用 Click 框架
"""

import asyncio
import sys
from pathlib import Path

import click

from cosmos_cdc import __version__
from cosmos_cdc.config import ConfigError, load_config, save_config_template
from cosmos_cdc.errors import DestinationUnavailable, SyncError
from cosmos_cdc.models.sync_config import SyncConfig
from cosmos_cdc.utils.logging import configure_logging, get_logger

logger = get_logger(__name__)

config_option = click.option(
    "--config", "-c", "config_path",
    type=click.Path(exists=True, dir_okay=False),
    required=True,
    help="同步配置文件 (YAML)",
)


@click.group()
@click.option(
    "--log-level",
    "-l",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"]),
    default=None,
    help="日志级别（默认使用配置文件中的 log_level）",
)
@click.option(
    "--json-logs",
    is_flag=True,
    default=False,
    help="以 JSON 格式输出日志",
)
@click.version_option(version=__version__, prog_name="cosmos-cdc")
@click.pass_context
def cli(ctx: click.Context, log_level: str, json_logs: bool) -> None:
    """
    Cosmos CDC 同步引擎 CLI

    增量同步 Cosmos DB 容器变更到 Snowflake。
    """
    ctx.ensure_object(dict)
    ctx.obj["log_level"] = log_level
    ctx.obj["json_logs"] = json_logs
    configure_logging(log_level=log_level or "INFO", json_format=json_logs)


def _read_config(config_path: str) -> SyncConfig:
    try:
        return load_config(config_path)
    except ConfigError as e:
        click.echo(f"✗ 配置错误: {e}", err=True)
        sys.exit(1)


def _load(ctx: click.Context, config_path: str) -> SyncConfig:
    """加载配置；未指定 --log-level 时按配置文件调整日志级别"""
    config = _read_config(config_path)
    if ctx.obj.get("log_level") is None:
        configure_logging(log_level=config.log_level, json_format=ctx.obj["json_logs"])
    return config


@cli.command()
@click.argument("output_path", type=click.Path(), default="sync.yaml")
def init(output_path: str) -> None:
    """
    生成配置文件模板

    示例:
        cosmos-cdc init sync.yaml
    """
    path = Path(output_path)

    if path.exists():
        click.confirm(f"文件 {output_path} 已存在，是否覆盖？", abort=True)

    save_config_template(output_path)
    click.echo(f"✓ 配置模板已生成: {output_path}")


@cli.command()
@click.argument("config_path", type=click.Path(exists=True))
def validate(config_path: str) -> None:
    """
    验证配置文件

    示例:
        cosmos-cdc validate sync.yaml
    """
    config = _read_config(config_path)
    click.echo("✓ 配置验证通过")
    click.echo(f"  实体: {config.entity}")
    click.echo(f"  源容器: {config.source.database}/{config.source.container}")
    click.echo(f"  目标: {config.destination.type} {config.destination.table}")
    click.echo(f"  批量大小: {config.batch_size}")


@cli.command()
@config_option
@click.pass_context
def run(ctx: click.Context, config_path: str) -> None:
    """
    执行一次增量同步

    示例:
        cosmos-cdc run -c sync.yaml
    """
    config = _load(ctx, config_path)

    try:
        result = asyncio.run(_run_once(config))
    except SyncError as e:
        click.echo(f"✗ 同步失败: {e}", err=True)
        sys.exit(1)

    if result.fetched == 0:
        click.echo(f"✓ 无新变更（断点 {result.watermark_before}）")
    else:
        click.echo(
            f"✓ 已同步 {result.fetched} 条记录（合并 {result.merged} 行），"
            f"断点 {result.watermark_before} -> {result.watermark_after}"
        )


@cli.command()
@config_option
@click.option(
    "--interval",
    "-i",
    type=click.IntRange(min=1),
    default=300,
    show_default=True,
    help="两次运行之间的间隔（秒）",
)
@click.pass_context
def watch(ctx: click.Context, config_path: str, interval: int) -> None:
    """
    按固定间隔循环执行同步

    失败的运行只记录日志，下一次调度自然重试。

    示例:
        cosmos-cdc watch -c sync.yaml --interval 300
    """
    config = _load(ctx, config_path)
    click.echo(f"每 {interval} 秒同步一次 {config.entity}，按 Ctrl+C 停止...")

    try:
        asyncio.run(_watch(config, interval))
    except KeyboardInterrupt:
        click.echo("\n同步已停止")


@cli.command()
@config_option
@click.pass_context
def status(ctx: click.Context, config_path: str) -> None:
    """
    查看断点状态

    示例:
        cosmos-cdc status -c sync.yaml
    """
    config = _load(ctx, config_path)

    try:
        checkpoints = asyncio.run(_list_checkpoints(config))
    except SyncError as e:
        click.echo(f"✗ 获取状态失败: {e}", err=True)
        sys.exit(1)

    click.echo("Cosmos CDC 同步状态")
    click.echo("=" * 40)
    click.echo(f"目标表: {config.destination.table}")
    click.echo(f"断点表: {config.destination.checkpoint_table}")
    click.echo("")

    if not checkpoints:
        click.echo("（尚无断点）")
        return

    for cp in checkpoints:
        marker = "*" if cp.entity == config.entity else " "
        click.echo(f" {marker} {cp.entity}: {cp.last_sequence}")


# ============================================================================
# 异步执行函数
# ============================================================================

async def _run_once(config: SyncConfig):
    """打开连接并执行一次同步"""
    from cosmos_cdc.core.factory import open_engine

    async with open_engine(config) as engine:
        return await engine.run_once()


async def _watch(config: SyncConfig, interval: int) -> None:
    """固定间隔执行，运行之间不重叠"""
    loop = asyncio.get_running_loop()
    while True:
        started = loop.time()
        try:
            await _run_once(config)
        except SyncError as e:
            logger.warning("scheduled_run_failed", error=str(e))

        elapsed = loop.time() - started
        await asyncio.sleep(max(0.0, interval - elapsed))


async def _list_checkpoints(config: SyncConfig):
    """读取断点表"""
    from cosmos_cdc.core.factory import open_warehouse
    from cosmos_cdc.storage.checkpoint import CheckpointStore

    async with open_warehouse(config) as warehouse:
        store = CheckpointStore(warehouse)
        try:
            return await asyncio.to_thread(store.list_checkpoints)
        except warehouse.errors as e:
            raise DestinationUnavailable("读取断点表失败", phase="status", cause=e) from e


if __name__ == "__main__":
    cli()
