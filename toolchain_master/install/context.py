"""
安装上下文模块

定义单个提交处理过程中的共享数据结构，以及按阶段划分的异常类。
"""

import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Callable, List, Optional, Sequence

from .models import (
    ArchiveDescriptor,
    Channel,
    CommitRef,
    CommitStatus,
    InstallResult,
    Stage,
)

if TYPE_CHECKING:
    from ..config.schema import InstallerConfig

# 下载进度回调: (描述, 已完成字节数, 总字节数或 None)
ProgressCallback = Callable[[str, int, Optional[int]], None]


class StageError(Exception):
    """阶段错误基类

    Attributes:
        stage: 失败所在阶段
        commit: 相关提交（可能尚未解析）
        transient: 是否为可重试的瞬时错误（连接重置、超时、截断等）
    """
    stage: Stage = Stage.INSTALL

    def __init__(self, message: str, *, commit: Optional[str] = None, transient: bool = False):
        super().__init__(message)
        self.commit = commit
        self.transient = transient


class ResolveError(StageError):
    """提交或通道解析失败"""
    stage = Stage.RESOLVE


class LocateError(StageError):
    """过滤后没有任何组件可下载"""
    stage = Stage.LOCATE


class FetchError(StageError):
    """HTTP 状态错误、传输错误或流被截断"""
    stage = Stage.FETCH

    def __init__(self, message: str, *, url: Optional[str] = None, status: Optional[int] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.url = url
        self.status = status


class InstallError(StageError):
    """解压失败、文件系统写入失败等"""
    stage = Stage.INSTALL


class ConflictError(InstallError):
    """目标文件已存在且未指定 force"""

    def __init__(self, message: str, *, paths: Sequence[Path] = (), **kwargs):
        super().__init__(message, **kwargs)
        self.paths = list(paths)


@dataclass
class InstallContext:
    """安装上下文，包含单个提交处理过程中的共享数据"""
    config: "InstallerConfig"
    commit: CommitRef
    progress_callback: Optional[ProgressCallback] = None
    host: Optional[str] = None

    # 处理过程中生成的数据
    status: CommitStatus = CommitStatus.PENDING
    resolved_commit: Optional[str] = None
    channel: Optional[Channel] = None
    descriptors: List[ArchiveDescriptor] = field(default_factory=list)
    toolchain_name: Optional[str] = None
    toolchain_path: Optional[Path] = None
    already_installed: bool = False
    installed: List[str] = field(default_factory=list)
    urls: List[str] = field(default_factory=list)
    errors: List[StageError] = field(default_factory=list)

    def __post_init__(self):
        self._lock = threading.Lock()

    def advance(self, status: CommitStatus) -> None:
        """推进状态机；组件线程可能并发调用，只允许向前推进"""
        order = list(CommitStatus)
        with self._lock:
            if order.index(status) > order.index(self.status):
                self.status = status

    def record_installed(self, record_id: str) -> None:
        with self._lock:
            self.installed.append(record_id)

    def record_url(self, url: str) -> None:
        with self._lock:
            self.urls.append(url)

    @property
    def label(self) -> str:
        return self.resolved_commit or str(self.commit)

    def to_result(self, error: Optional[StageError] = None) -> InstallResult:
        """转换为对外的 InstallResult"""
        return InstallResult(
            commit=self.commit,
            status=CommitStatus.FAILED if error else CommitStatus.SUCCEEDED,
            toolchain=self.toolchain_name,
            resolved_commit=self.resolved_commit,
            channel=self.channel,
            stage=error.stage if error else None,
            error=error,
            errors=list(self.errors) or ([error] if error else []),
            already_installed=self.already_installed,
            dry_run=bool(self.config.dry_run),
            urls=list(self.urls),
            installed=list(self.installed),
        )
