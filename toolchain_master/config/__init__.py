"""配置和 Schema 模块

提供安装器配置的验证，以及 YAML 默认配置文件的加载与保存。
"""

from .schema import InstallerConfig, DEFAULT_SERVER, USER_AGENT
from .loader import (
    ConfigLoader,
    ConfigValidationError,
    ConfigError,
    load_config,
    validate_config,
    save_config,
    config_loader
)

__all__ = [
    # 主要类
    "InstallerConfig",
    "ConfigLoader",

    # 常量
    "DEFAULT_SERVER",
    "USER_AGENT",

    # 异常类
    "ConfigError",
    "ConfigValidationError",

    # 便捷函数
    "load_config",
    "validate_config",
    "save_config",

    # 单例
    "config_loader",
]
