"""通用工具模块"""

from .logging import (
    configure_logging,
    get_output_facade,
    get_stage_logger,
    StageLogger,
    LogStage,
    OutputLevel,
    # 预定义日志器
    resolve_logger,
    locate_logger,
    fetch_logger,
    install_logger,
    done_logger,
)

from .paths import (
    expand_path,
    default_rustup_home,
    ensure_directory,
    make_staging_dir,
    archive_member_path,
    format_size,
    is_safe_filename,
)

from .host import host_triple

__all__ = [
    # 日志相关
    "configure_logging",
    "get_output_facade",
    "get_stage_logger",
    "StageLogger",
    "LogStage",
    "OutputLevel",
    "resolve_logger",
    "locate_logger",
    "fetch_logger",
    "install_logger",
    "done_logger",

    # 路径相关
    "expand_path",
    "default_rustup_home",
    "ensure_directory",
    "make_staging_dir",
    "archive_member_path",
    "format_size",
    "is_safe_filename",

    # 平台相关
    "host_triple",
]
