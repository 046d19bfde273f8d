"""
toolchain-master - 按提交哈希安装编译器 CI 构建

Install compiler CI builds by commit hash into a rustup-compatible toolchain directory.
"""

__version__ = "0.1.0"
__license__ = "MIT"

# 导出主要 API
from .config.schema import InstallerConfig
from .install.orchestrator import Orchestrator

__all__ = ["InstallerConfig", "Orchestrator", "__version__"]
