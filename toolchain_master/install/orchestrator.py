"""
安装编排器

负责多个提交的整体流程：为每个提交创建独立的上下文并执行安装管道，
按 keep-going 策略决定失败后是否继续，最后汇总退出码。

网络会话、解析器和下载器都可以在构造时注入，便于隔离测试。
"""

from typing import List, Optional, Sequence

import requests

from ..config.loader import ConfigError
from ..config.schema import InstallerConfig
from ..utils.host import host_triple
from ..utils.logging import done_logger
from .archive import ArchiveInstaller
from .channel import ChannelResolver
from .context import InstallContext, ProgressCallback
from .fetcher import Fetcher
from .locator import ArtifactLocator
from .models import CommitRef, InstallResult
from .pipeline import InstallPipeline
from .retry import RetryPolicy
from .steps import FetchInstallStep, LocateStep, PrepareStep, ResolveStep
from .transport import create_session


class Orchestrator:
    """安装编排器"""

    def __init__(
        self,
        config: InstallerConfig,
        session: Optional[requests.Session] = None,
        resolver: Optional[ChannelResolver] = None,
        fetcher: Optional[Fetcher] = None,
        installer: Optional[ArchiveInstaller] = None,
        progress_callback: Optional[ProgressCallback] = None,
        retry: Optional[RetryPolicy] = None,
    ):
        self.config = config
        self.progress_callback = progress_callback
        self.session = session or create_session(config)
        self.resolver = resolver or ChannelResolver(config, self.session)
        self.locator = ArtifactLocator(config.server, config.archive_format)
        self.fetcher = fetcher or Fetcher(self.session, config.timeout, progress_callback)
        self.installer = installer or ArchiveInstaller(config.staging_root)
        self.retry = retry or RetryPolicy(attempts=config.retries, backoff=config.retry_backoff)
        self.pipeline = InstallPipeline([
            ResolveStep(self.resolver, self.retry),
            LocateStep(self.locator),
            PrepareStep(),
            FetchInstallStep(self.fetcher, self.installer, self.retry),
        ])

    def host(self) -> str:
        """主机三元组：配置优先，否则自动检测"""
        if self.config.host:
            return self.config.host
        try:
            return host_triple()
        except ValueError as e:
            raise ConfigError(f"{e}，请使用 --host 指定") from e

    def install_one(self, commit: CommitRef, host: str) -> InstallResult:
        """安装单个提交"""
        context = InstallContext(
            config=self.config,
            commit=commit,
            progress_callback=self.progress_callback,
            host=host,
        )
        return self.pipeline.execute(context)

    def run(self, commits: Sequence[CommitRef] = ()) -> List[InstallResult]:
        """依次安装所有提交

        Args:
            commits: 提交列表；为空时安装上游最新提交

        Returns:
            List[InstallResult]: 已处理提交的结果。keep_going 为 False 时，
            第一个失败之后的提交不会出现在结果中。

        Raises:
            ConfigError: 参数组合无效（例如多个提交共用一个 --name）
        """
        refs = list(commits) or [CommitRef.latest()]
        if self.config.name and len(refs) > 1:
            raise ConfigError("不能为多个提交指定同一个工具链名称 (--name)")

        host = self.host()
        results: List[InstallResult] = []
        for ref in refs:
            result = self.install_one(ref, host)
            results.append(result)
            if result.succeeded:
                continue
            if not self.config.keep_going:
                break
            label = result.resolved_commit or str(ref)
            done_logger.warning(f"skipping toolchain `{label}` due to a failure")

        return results

    @staticmethod
    def exit_code(results: Sequence[InstallResult]) -> int:
        """全部成功返回 0，否则返回 1"""
        if results and all(result.succeeded for result in results):
            return 0
        return 1
