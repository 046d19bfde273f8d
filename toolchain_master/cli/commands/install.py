"""
Install 命令实现

按提交哈希下载并安装工具链。命令行参数与可选的 YAML 默认配置合并后
交给 Orchestrator，结果以表格汇总，任一提交失败时退出码为 1。
"""

import threading
from typing import Dict, List, Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    TaskID,
    TextColumn,
    TransferSpeedColumn,
)
from rich.table import Table

from ...config import load_config, ConfigError, ConfigValidationError
from ...install.models import ArchiveFormat, CommitRef, InstallResult
from ...install.orchestrator import Orchestrator
from ...utils.logging import configure_logging, get_output_facade, OutputLevel


console = Console()


class DownloadProgress:
    """把下载进度回调绑定到 rich Progress，每个归档一个进度条"""

    def __init__(self, progress: Progress):
        self._progress = progress
        self._tasks: Dict[str, TaskID] = {}
        self._lock = threading.Lock()

    def __call__(self, description: str, completed: int, total: Optional[int]) -> None:
        with self._lock:
            task = self._tasks.get(description)
            if task is None:
                task = self._progress.add_task(escape(description), total=total)
                self._tasks[description] = task
        self._progress.update(task, completed=completed, total=total)


def _print_failure(result: InstallResult) -> None:
    err_console = get_output_facade().console
    err_console.print(f"[red bold]error:[/red bold] {escape(result.describe())}")
    cause = result.error.__cause__ if result.error is not None else None
    while cause is not None:
        err_console.print(f"[red]caused by:[/red] {escape(str(cause))}")
        cause = cause.__cause__
    # 同一提交中其他失败的组件
    for other in result.errors[1:]:
        err_console.print(f"[red]also failed:[/red] {escape(str(other))}")


def _print_summary(results: List[InstallResult]) -> None:
    table = Table(title="安装结果")
    table.add_column("提交", style="cyan", no_wrap=True)
    table.add_column("通道")
    table.add_column("工具链")
    table.add_column("状态")

    for result in results:
        if not result.succeeded:
            status = f"[red]失败 ({result.stage.value if result.stage else '-'})[/red]"
        elif result.already_installed:
            status = "[yellow]已安装[/yellow]"
        elif result.dry_run:
            status = "[blue]试运行[/blue]"
        else:
            status = "[green]成功[/green]"
        table.add_row(
            result.resolved_commit or str(result.commit),
            str(result.channel) if result.channel else "-",
            result.toolchain or "-",
            status,
        )

    console.print(table)


def install_command(
    commits: Optional[List[str]] = typer.Argument(None, help="要安装的提交哈希，省略时安装最新提交"),
    name: Optional[str] = typer.Option(None, "--name", "-n", help="工具链名称（默认为提交哈希）"),
    alt: bool = typer.Option(False, "--alt", "-a", help="下载 alt 构建"),
    server: Optional[str] = typer.Option(None, "--server", "-s", help="存放编译器构建的服务器地址"),
    host: Optional[str] = typer.Option(None, "--host", "-i", help="主机三元组（默认自动检测）"),
    targets: Optional[List[str]] = typer.Option(None, "--targets", "-t", help="额外安装 rust-std 的目标三元组"),
    components: Optional[List[str]] = typer.Option(None, "--component", "-c", help="额外安装的组件"),
    no_defaults: bool = typer.Option(False, "--no-defaults", help="不安装默认组件（rustc 和主机 rust-std）"),
    channel: Optional[str] = typer.Option(None, "--channel", help="指定通道，跳过自动探测"),
    proxy: Optional[str] = typer.Option(None, "--proxy", "-p", help="下载使用的 HTTP 代理"),
    github_token: Optional[str] = typer.Option(None, "--github-token", envvar="GITHUB_TOKEN",
                                               help="访问 GitHub API 的令牌"),
    dry_run: bool = typer.Option(False, "--dry-run", help="只输出下载地址，不下载"),
    force: bool = typer.Option(False, "--force", "-f", help="替换同名已存在的工具链"),
    keep_going: bool = typer.Option(False, "--keep-going", "-k", help="某个工具链失败时继续安装其余工具链"),
    jobs: Optional[int] = typer.Option(None, "--jobs", "-j", help="并发下载的组件数"),
    archive_format: Optional[ArchiveFormat] = typer.Option(None, "--format", help="制品库归档格式"),
    config_file: Optional[str] = typer.Option(None, "--config", help="YAML 默认配置文件"),
    log_file: Optional[str] = typer.Option(None, "--log-file", help="日志输出文件"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="输出详细调试日志 (DEBUG 级别)"),
) -> None:
    """安装一个或多个提交对应的工具链

    示例:
        toolchain-master install
        toolchain-master install 4fb54ed484e2239a3e9eff3be17df00d2a162be3 --channel nightly
        toolchain-master install <commit1> <commit2> -k -t wasm32-unknown-unknown
    """
    level = OutputLevel.DEBUG if verbose else OutputLevel.INFO
    try:
        configure_logging(level, log_file)
    except OSError:
        console.print(f"[yellow]无法写入日志文件: {log_file}[/yellow]")

    # 未在命令行给出的开关保持 None，不覆盖配置文件
    overrides = {
        "name": name,
        "alt": alt or None,
        "server": server,
        "host": host,
        "targets": targets or [],
        "components": components or [],
        "use_defaults": False if no_defaults else None,
        "channel": channel,
        "proxy": proxy,
        "github_token": github_token,
        "dry_run": dry_run or None,
        "force": force or None,
        "keep_going": keep_going or None,
        "jobs": jobs,
        "archive_format": archive_format,
    }

    try:
        config = load_config(config_file, overrides)
    except ConfigValidationError as e:
        console.print("[red]配置验证失败:[/red]")
        console.print(e.format_errors())
        raise typer.Exit(1)
    except ConfigError as e:
        console.print(f"[red]配置错误[/red]: {e}")
        raise typer.Exit(1)

    refs = [CommitRef.parse(commit) for commit in commits or []]

    progress = Progress(
        TextColumn("[cyan]{task.description}"),
        BarColumn(),
        DownloadColumn(),
        TransferSpeedColumn(),
        console=get_output_facade().console,
        transient=True,
    )
    try:
        with progress:
            orchestrator = Orchestrator(config, progress_callback=DownloadProgress(progress))
            results = orchestrator.run(refs)
    except ConfigError as e:
        console.print(f"[red]参数错误[/red]: {e}")
        raise typer.Exit(1)

    if config.dry_run:
        for result in results:
            for url in result.urls:
                typer.echo(url)

    for result in results:
        if not result.succeeded:
            _print_failure(result)

    _print_summary(results)
    raise typer.Exit(Orchestrator.exit_code(results))
