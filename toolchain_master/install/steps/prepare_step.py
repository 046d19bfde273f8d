"""
工具链目录准备步骤模块

确定工具链目录，并决定已存在的目录如何处理：

- ``force``：删除后重新安装（试运行时不删除）
- 目录是同一组件集合的完整安装：标记为已安装，跳过下载
- 空目录：直接使用
- 其他内容：冲突，需要 ``--force``
"""

import shutil

from ...utils.logging import install_logger
from ..archive import verify_installed
from ..context import ConflictError, InstallContext, InstallError
from ..models import CommitStatus, Stage
from .install_step import InstallStep


class PrepareStep(InstallStep):
    """工具链目录准备步骤"""
    status = CommitStatus.LOCATING
    stage = Stage.INSTALL

    def __init__(self):
        super().__init__("prepare", "检查工具链目录")

    def execute(self, context: InstallContext) -> None:
        config = context.config
        toolchains_dir = config.toolchains_dir
        if not toolchains_dir.is_dir():
            raise InstallError(
                f"找不到 toolchains 目录 `{toolchains_dir}`，请确认 rustup 已安装",
                commit=context.label,
            )

        name = config.name or f"{context.resolved_commit}{config.variant.name_suffix}"
        path = toolchains_dir / name
        context.toolchain_name = name
        context.toolchain_path = path

        if not path.exists():
            return

        if config.force:
            if config.dry_run:
                install_logger.info(f"将替换已存在的工具链 `{name}`（试运行，未删除）")
            else:
                install_logger.info(f"删除已存在的工具链 `{name}`")
                shutil.rmtree(path)
            return

        if path.is_dir() and verify_installed(path, context.descriptors):
            install_logger.success(f"工具链 `{name}` 已安装，跳过下载")
            context.already_installed = True
            return

        if path.is_dir() and not any(path.iterdir()):
            return

        message = f"工具链 `{name}` 已存在且内容与本次安装不一致，使用 --force 替换"
        if config.dry_run:
            install_logger.warning(message)
            return
        raise ConflictError(message, paths=[path], commit=context.label)
