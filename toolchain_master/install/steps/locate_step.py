"""
制品定位步骤模块
"""

from ...utils.logging import locate_logger
from ..context import InstallContext, LocateError
from ..locator import ArtifactLocator
from ..models import CommitStatus, Stage
from .install_step import InstallStep


class LocateStep(InstallStep):
    """生成本提交需要下载的归档列表"""
    status = CommitStatus.LOCATING
    stage = Stage.LOCATE

    def __init__(self, locator: ArtifactLocator):
        super().__init__("locate", "定位组件归档")
        self.locator = locator

    def execute(self, context: InstallContext) -> None:
        config = context.config
        if context.resolved_commit is None or context.channel is None or context.host is None:
            raise LocateError("提交尚未解析，无法定位归档", commit=context.label)

        context.descriptors = self.locator.locate(
            context.resolved_commit,
            context.channel,
            config.variant,
            context.host,
            targets=config.targets,
            components=config.components,
            use_defaults=config.use_defaults,
        )
        locate_logger.info(f"工具链 `{context.resolved_commit}` 需要 {len(context.descriptors)} 个归档")
