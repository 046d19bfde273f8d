"""
提交解析步骤模块

把提交引用解析为具体哈希并确定通道。元数据请求的瞬时错误按重试策略重试。
"""

from ...utils.logging import resolve_logger
from ..channel import ChannelResolver
from ..context import InstallContext
from ..models import CommitStatus, Stage
from ..retry import RetryPolicy
from .install_step import InstallStep


class ResolveStep(InstallStep):
    """提交与通道解析步骤"""
    status = CommitStatus.RESOLVING
    stage = Stage.RESOLVE

    def __init__(self, resolver: ChannelResolver, retry: RetryPolicy):
        super().__init__("resolve", "解析提交与通道")
        self.resolver = resolver
        self.retry = retry

    def execute(self, context: InstallContext) -> None:
        resolve = self.retry(self.resolver.resolve)
        commit, channel = resolve(context.commit, context.config.channel_override)
        context.resolved_commit = commit
        context.channel = channel
        resolve_logger.debug(f"{context.commit} -> {commit} ({channel})")
