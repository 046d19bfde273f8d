"""
组件目录布局

归档中每个组件目录下的路径（``bin/rustc``、``lib/rustlib/...``）按组件
种类映射到工具链目录。映射表以归档内的顶层目录为键，未列出的顶层目录
视为非法内容。
"""

from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Dict, Mapping

from .models import ComponentKind

# 安装记录所在目录（相对工具链根目录）
RECORD_DIR = PurePosixPath("lib/rustlib")
RECORD_PREFIX = "manifest-"
COMPONENTS_FILE = "components"
INSTALLER_VERSION_FILE = "rust-installer-version"
INSTALLER_VERSION = "3"


class LayoutError(ValueError):
    """归档路径不属于组件可写入的目录"""
    pass


@dataclass(frozen=True)
class ComponentLayout:
    """一种组件的路径映射

    Attributes:
        kind: 组件种类
        mapping: 归档顶层目录 -> 工具链内目录
    """
    kind: ComponentKind
    mapping: Mapping[str, str]

    def rewrite(self, relpath: PurePosixPath) -> PurePosixPath:
        """把组件内相对路径改写为工具链内相对路径

        Raises:
            LayoutError: 顶层目录不在映射表中
        """
        if not relpath.parts:
            raise LayoutError("组件清单中存在空路径")
        head, *rest = relpath.parts
        if head not in self.mapping:
            raise LayoutError(f"{self.kind.value} 组件不能写入 `{relpath}`")
        return PurePosixPath(self.mapping[head], *rest)


_TOOLCHAIN_DIRS = {name: name for name in ("bin", "lib", "libexec", "share", "etc")}

LAYOUTS: Dict[ComponentKind, ComponentLayout] = {
    ComponentKind.COMPILER: ComponentLayout(ComponentKind.COMPILER, _TOOLCHAIN_DIRS),
    # 标准库只包含 lib/rustlib/<target>/ 下的内容
    ComponentKind.STANDARD_LIBRARY: ComponentLayout(ComponentKind.STANDARD_LIBRARY, {"lib": "lib"}),
    ComponentKind.TOOL: ComponentLayout(ComponentKind.TOOL, _TOOLCHAIN_DIRS),
}


def layout_for(kind: ComponentKind) -> ComponentLayout:
    return LAYOUTS[kind]


def record_path(record_id: str) -> PurePosixPath:
    """组件安装记录的相对路径，例如 ``lib/rustlib/manifest-rustc-x86_64-unknown-linux-gnu``"""
    return RECORD_DIR / f"{RECORD_PREFIX}{record_id}"
