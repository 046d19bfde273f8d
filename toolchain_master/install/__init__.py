"""安装引擎

只导出数据模型和阶段错误；编排器请从 ``toolchain_master.install.orchestrator``
导入（配置模块依赖本包的数据模型）。
"""

from .models import (
    ArchiveDescriptor,
    ArchiveFormat,
    BuildVariant,
    Channel,
    ChannelKind,
    CommitRef,
    CommitStatus,
    ComponentKind,
    ComponentSpec,
    InstallResult,
    Stage,
)
from .context import (
    ConflictError,
    FetchError,
    InstallContext,
    InstallError,
    LocateError,
    ResolveError,
    StageError,
)

__all__ = [
    "ArchiveDescriptor",
    "ArchiveFormat",
    "BuildVariant",
    "Channel",
    "ChannelKind",
    "CommitRef",
    "CommitStatus",
    "ComponentKind",
    "ComponentSpec",
    "InstallResult",
    "Stage",
    "ConflictError",
    "FetchError",
    "InstallContext",
    "InstallError",
    "LocateError",
    "ResolveError",
    "StageError",
]
