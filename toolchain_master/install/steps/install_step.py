"""
安装步骤基类模块

定义单个提交处理步骤的抽象接口。
"""

from abc import ABC, abstractmethod

from ..context import InstallContext
from ..models import CommitStatus, Stage


class InstallStep(ABC):
    """安装步骤抽象基类

    Attributes:
        name: 步骤名
        description: 日志中显示的描述
        status: 步骤开始时提交进入的状态
        stage: 步骤内未归类的异常归属的阶段
    """
    status: CommitStatus = CommitStatus.PENDING
    stage: Stage = Stage.INSTALL

    def __init__(self, name: str, description: str):
        self.name = name
        self.description = description

    @abstractmethod
    def execute(self, context: InstallContext) -> None:
        """执行安装步骤"""
        pass
