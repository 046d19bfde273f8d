"""
路径工具

提供工具链目录定位、归档内路径校验等路径处理函数。
"""

import os
import tempfile
from pathlib import Path, PurePosixPath
from typing import Optional, Union


def expand_path(path: Union[str, Path]) -> Path:
    """扩展路径（处理环境变量和用户目录）"""
    if isinstance(path, str):
        path = os.path.expandvars(path)
        path = os.path.expanduser(path)
    return Path(path).resolve()


def default_rustup_home() -> Path:
    """获取 rustup 主目录

    优先使用 ``$RUSTUP_HOME``，否则为 ``~/.rustup``。
    """
    env_home = os.environ.get("RUSTUP_HOME")
    if env_home:
        return expand_path(env_home)
    return expand_path("~/.rustup")


def ensure_directory(path: Union[str, Path]) -> Path:
    """确保目录存在

    使用 create-if-absent 语义，多个线程同时创建同一目录是安全的。
    """
    dir_path = Path(path)
    dir_path.mkdir(parents=True, exist_ok=True)
    return dir_path


def make_staging_dir(parent: Optional[Path], prefix: str = "toolchain-master-") -> Path:
    """在指定目录下创建临时暂存目录

    暂存目录与工具链目录位于同一文件系统时，移动文件只是一次 rename。
    ``parent`` 不可用时回退到系统临时目录。
    """
    if parent is not None:
        try:
            ensure_directory(parent)
            return Path(tempfile.mkdtemp(prefix=prefix, dir=str(parent)))
        except OSError:
            pass
    return Path(tempfile.mkdtemp(prefix=prefix))


def archive_member_path(name: str) -> PurePosixPath:
    """校验并规范化归档成员路径

    Args:
        name: tar 条目中记录的路径

    Returns:
        PurePosixPath: 规范化后的相对路径

    Raises:
        ValueError: 路径为绝对路径或包含 ``..`` 等非常规分量
    """
    path = PurePosixPath(name)
    if path.is_absolute():
        raise ValueError(f"归档中存在绝对路径: {name}")
    parts = [part for part in path.parts if part != "."]
    if any(part == ".." for part in parts):
        raise ValueError(f"归档中存在目录穿越路径: {name}")
    return PurePosixPath(*parts) if parts else PurePosixPath(".")


def format_size(size_bytes: int) -> str:
    """格式化文件大小"""
    if size_bytes == 0:
        return "0 B"

    units = ["B", "KB", "MB", "GB", "TB"]
    unit_index = 0
    size = float(size_bytes)

    while size >= 1024.0 and unit_index < len(units) - 1:
        size /= 1024.0
        unit_index += 1

    if unit_index == 0:
        return f"{int(size)} {units[unit_index]}"
    return f"{size:.1f} {units[unit_index]}"


def is_safe_filename(filename: str) -> bool:
    """检查工具链名称能否安全地用作单层目录名"""
    if not filename or filename in (".", ".."):
        return False

    illegal_chars = '<>:"/\\|?*\0'
    if any(char in filename for char in illegal_chars):
        return False

    reserved_names = {
        'CON', 'PRN', 'AUX', 'NUL',
        'COM1', 'COM2', 'COM3', 'COM4', 'COM5', 'COM6', 'COM7', 'COM8', 'COM9',
        'LPT1', 'LPT2', 'LPT3', 'LPT4', 'LPT5', 'LPT6', 'LPT7', 'LPT8', 'LPT9'
    }
    if filename.split('.')[0].upper() in reserved_names:
        return False

    return len(filename) <= 255
