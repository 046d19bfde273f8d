"""单个提交的安装步骤"""

from .install_step import InstallStep
from .resolve_step import ResolveStep
from .locate_step import LocateStep
from .prepare_step import PrepareStep
from .fetch_install_step import FetchInstallStep

__all__ = [
    "InstallStep",
    "ResolveStep",
    "LocateStep",
    "PrepareStep",
    "FetchInstallStep",
]
