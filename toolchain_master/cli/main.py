"""
toolchain-master CLI 主入口

提供 install/validate/info/example 等命令。
"""

import sys
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from .. import __version__
from ..config import ConfigError, InstallerConfig, save_config
from ..install.decompressor import DecompressorFactory
from ..utils import host_triple
from ..utils.paths import default_rustup_home
from .commands import install, validate


# 创建主应用
app = typer.Typer(
    name="toolchain-master",
    help="toolchain-master - 按提交哈希安装编译器 CI 构建",
    no_args_is_help=True,
    rich_markup_mode="rich",
    add_completion=False,
)

# 控制台输出
console = Console()


def version_callback(value: bool) -> None:
    """显示版本信息"""
    if value:
        console.print(f"toolchain-master v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        callback=version_callback,
        is_eager=True,
        help="显示版本信息"
    ),
) -> None:
    """toolchain-master - 按提交哈希安装编译器 CI 构建

    使用 --help 查看可用命令的详细信息。
    """
    pass


# 注册子命令
app.command("install", help="安装工具链")(install.install_command)
app.command("validate", help="验证配置文件")(validate.validate_command)


@app.command("info")
def info_command() -> None:
    """显示系统信息"""
    import zstandard

    console.print("[bold]toolchain-master 系统信息[/bold]")
    console.print()

    table = Table(title="环境")
    table.add_column("项目", style="cyan")
    table.add_column("值", style="green")

    table.add_row("toolchain-master", __version__)
    table.add_row("Python", f"{sys.version_info.major}.{sys.version_info.minor}.{sys.version_info.micro}")
    try:
        table.add_row("主机三元组", host_triple())
    except ValueError as e:
        table.add_row("主机三元组", f"[red]{e}[/red]")
    table.add_row("RUSTUP_HOME", str(default_rustup_home()))

    console.print(table)
    console.print()

    format_table = Table(title="支持的归档格式")
    format_table.add_column("格式", style="cyan")
    format_table.add_column("扩展名")
    format_table.add_column("状态", style="green")

    for archive_format in DecompressorFactory.get_available_formats():
        status = "✓ 可用"
        if archive_format.value == "zst":
            status = f"✓ 可用 (zstandard {zstandard.__version__})"
        format_table.add_row(archive_format.value, archive_format.extension, status)

    console.print(format_table)


@app.command("example")
def example_command(
    output: str = typer.Option(
        "toolchain-master.yaml",
        "--output", "-o",
        help="输出配置文件路径"
    )
) -> None:
    """生成示例配置文件"""
    config = InstallerConfig(
        targets=["wasm32-unknown-unknown"],
        components=["rust-src"],
        keep_going=True,
        jobs=4,
    )

    try:
        save_config(config, output)
    except ConfigError as e:
        console.print(f"[red]生成示例配置失败: {e}[/red]")
        raise typer.Exit(1)

    console.print(f"✓ 示例配置文件已生成: [green]{output}[/green]")
    console.print("请根据需要修改配置文件，然后运行:")
    console.print(f"  [cyan]toolchain-master install --config {output} <commit>[/cyan]")


if __name__ == "__main__":
    app()
