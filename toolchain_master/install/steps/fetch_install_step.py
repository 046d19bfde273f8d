"""
下载安装步骤模块

在有上限的线程池中并发处理本提交的各个组件。每个组件的下载和安装作为
一个整体按重试策略重试；某个组件失败不会取消其他组件，所有组件结束后
提交以第一个失败组件的错误失败。
"""

from concurrent.futures import ThreadPoolExecutor, as_completed
from contextlib import closing
from typing import Dict, List, Tuple

from ...utils.logging import install_logger
from ...utils.paths import ensure_directory
from ..archive import ArchiveInstaller
from ..context import InstallContext, InstallError, StageError
from ..fetcher import Fetcher
from ..models import ArchiveDescriptor, CommitStatus, Stage
from ..retry import RetryPolicy
from .install_step import InstallStep


class FetchInstallStep(InstallStep):
    """组件下载与安装步骤"""
    status = CommitStatus.FETCHING
    stage = Stage.FETCH

    def __init__(self, fetcher: Fetcher, installer: ArchiveInstaller, retry: RetryPolicy):
        super().__init__("fetch-install", "下载并安装组件")
        self.fetcher = fetcher
        self.installer = installer
        self.retry = retry

    def execute(self, context: InstallContext) -> None:
        if context.already_installed:
            return

        descriptors = context.descriptors
        for descriptor in descriptors:
            context.record_url(descriptor.url)
        if not context.config.dry_run:
            ensure_directory(context.toolchain_path)

        failures: List[Tuple[int, StageError]] = []
        workers = max(1, min(context.config.jobs, len(descriptors)))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="component") as executor:
            futures: Dict = {
                executor.submit(self._install_component, context, descriptor): index
                for index, descriptor in enumerate(descriptors)
            }
            for future in as_completed(futures):
                index = futures[future]
                descriptor = descriptors[index]
                try:
                    future.result()
                except StageError as e:
                    failures.append((index, e))
                    install_logger.error(f"{descriptor.component} 失败: {e}")
                except Exception as e:
                    wrapped = InstallError(f"{descriptor.component} 安装异常: {e}", commit=context.label)
                    wrapped.__cause__ = e
                    failures.append((index, wrapped))
                    install_logger.error(str(wrapped))

        if failures:
            failures.sort(key=lambda item: item[0])
            context.errors.extend(error for _, error in failures)
            raise failures[0][1]

    def _install_component(self, context: InstallContext, descriptor: ArchiveDescriptor) -> None:
        config = context.config

        @self.retry
        def attempt():
            stream = self.fetcher.fetch(descriptor, dry_run=config.dry_run)
            if stream is None:
                return []
            context.advance(CommitStatus.INSTALLING)
            with closing(stream):
                return self.installer.install(stream, descriptor, context.toolchain_path, force=config.force)

        attempt()
        if not config.dry_run:
            context.record_installed(descriptor.component.record_id)
