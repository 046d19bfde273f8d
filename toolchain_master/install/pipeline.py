"""
安装管道模块

使用管道模式按顺序执行单个提交的安装步骤，并把结果整理为 InstallResult。
"""

from typing import Dict, List, Optional, Type

from ..utils.logging import error, info, success, LogStage
from .context import (
    FetchError,
    InstallContext,
    InstallError,
    LocateError,
    ResolveError,
    StageError,
)
from .models import CommitStatus, InstallResult, Stage
from .steps.install_step import InstallStep

_STAGE_ERRORS: Dict[Stage, Type[StageError]] = {
    Stage.RESOLVE: ResolveError,
    Stage.LOCATE: LocateError,
    Stage.FETCH: FetchError,
    Stage.INSTALL: InstallError,
}


class InstallPipeline:
    """安装管道，负责协调单个提交的安装步骤"""

    def __init__(self, steps: Optional[List[InstallStep]] = None):
        self._steps: List[InstallStep] = list(steps or [])

    def add_step(self, step: InstallStep, position: Optional[int] = None):
        """添加安装步骤"""
        if position is None:
            self._steps.append(step)
        else:
            self._steps.insert(position, step)

    def remove_step(self, step_name: str):
        """移除安装步骤"""
        self._steps = [step for step in self._steps if step.name != step_name]

    def get_steps(self) -> List[InstallStep]:
        """获取所有安装步骤"""
        return self._steps.copy()

    def execute(self, context: InstallContext) -> InstallResult:
        """执行安装管道

        任何步骤失败都不会抛出异常，而是以失败的 InstallResult 返回，失败
        阶段和原因保存在结果中。
        """
        info(f"开始处理工具链 `{context.label}`", stage=LogStage.RESOLVE)

        for step in self._steps:
            context.advance(step.status)
            try:
                step.execute(context)
            except StageError as e:
                if e.commit is None:
                    e.commit = context.label
                return self._fail(context, e)
            except Exception as e:
                wrapped = _STAGE_ERRORS[step.stage](f"{step.description}时发生异常: {e}", commit=context.label)
                wrapped.__cause__ = e
                return self._fail(context, wrapped)

            if context.already_installed:
                break

        context.advance(CommitStatus.SUCCEEDED)
        result = context.to_result()
        if not result.already_installed:
            success(result.describe(), stage=LogStage.DONE)
        return result

    def _fail(self, context: InstallContext, err: StageError) -> InstallResult:
        context.advance(CommitStatus.FAILED)
        error(f"工具链 `{context.label}` 在 {err.stage.value} 阶段失败: {err}", stage=LogStage.DONE)
        return context.to_result(err)
