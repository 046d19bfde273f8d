"""
安装数据模型

描述一次安装中流转的各种值对象：提交引用、发布通道、组件、归档描述符和
每个提交的安装结果。除 InstallResult 外均为不可变对象。
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

COMMIT_PATTERN = re.compile(r"^[0-9a-f]{40}$")
STABLE_VERSION_PATTERN = re.compile(r"^\d+\.\d+\.\d+$")

# 通道自动探测时依次尝试的通道
SUPPORTED_CHANNELS = ("nightly", "beta", "stable")

# 与目标平台无关的组件，其归档名不带三元组
TARGET_INDEPENDENT_COMPONENTS = frozenset({"rust-src"})


class BuildVariant(str, Enum):
    """构建变体：普通构建或 alt 构建，对应制品库中不同的路径前缀"""
    NORMAL = "normal"
    ALT = "alt"

    @property
    def store_prefix(self) -> str:
        return "rustc-builds-alt" if self is BuildVariant.ALT else "rustc-builds"

    @property
    def name_suffix(self) -> str:
        return "-alt" if self is BuildVariant.ALT else ""


class ArchiveFormat(str, Enum):
    """制品库使用的归档格式（每次运行固定，不自动探测）"""
    XZ = "xz"
    ZSTD = "zst"

    @property
    def extension(self) -> str:
        return f"tar.{self.value}"


class ChannelKind(str, Enum):
    NIGHTLY = "nightly"
    BETA = "beta"
    STABLE = "stable"


@dataclass(frozen=True)
class Channel:
    """发布通道

    ``name`` 是出现在归档文件名中的原始标签：``nightly``、``beta``、
    ``stable`` 或者稳定版的版本号（如 ``1.76.0``）。
    """
    name: str
    kind: ChannelKind

    @classmethod
    def parse(cls, value: str) -> "Channel":
        """从字符串解析通道

        Raises:
            ValueError: 无法识别的通道标签
        """
        label = (value or "").strip()
        if label in (ChannelKind.NIGHTLY.value, ChannelKind.BETA.value, ChannelKind.STABLE.value):
            return cls(name=label, kind=ChannelKind(label))
        if STABLE_VERSION_PATTERN.match(label):
            return cls(name=label, kind=ChannelKind.STABLE)
        raise ValueError(f"无法识别的通道: {value!r}")

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class CommitRef:
    """提交引用：40 位十六进制哈希，或表示“默认分支最新提交”的哨兵值"""
    value: Optional[str] = None

    LATEST_ALIASES = ("latest", "HEAD")

    @classmethod
    def latest(cls) -> "CommitRef":
        return cls(None)

    @classmethod
    def parse(cls, text: Optional[str]) -> "CommitRef":
        """解析命令行传入的提交；合法性检查推迟到解析阶段"""
        if text is None or text.strip() in cls.LATEST_ALIASES:
            return cls.latest()
        return cls(text.strip())

    @property
    def is_latest(self) -> bool:
        return self.value is None

    @property
    def is_resolved(self) -> bool:
        return self.value is not None and bool(COMMIT_PATTERN.match(self.value))

    def __str__(self) -> str:
        return self.value if self.value is not None else "HEAD"


class ComponentKind(str, Enum):
    """组件种类，决定归档内路径如何映射到工具链目录"""
    COMPILER = "compiler"
    STANDARD_LIBRARY = "standard-library"
    TOOL = "tool"


_COMPONENT_KINDS = {
    "rustc": ComponentKind.COMPILER,
    "rust-std": ComponentKind.STANDARD_LIBRARY,
}


@dataclass(frozen=True)
class ComponentSpec:
    """组件名 + 适用的目标三元组（与目标无关的组件 target 为 None）"""
    name: str
    target: Optional[str] = None

    @classmethod
    def for_target(cls, name: str, target: str) -> "ComponentSpec":
        if name in TARGET_INDEPENDENT_COMPONENTS:
            return cls(name, None)
        return cls(name, target)

    @property
    def kind(self) -> ComponentKind:
        return _COMPONENT_KINDS.get(self.name, ComponentKind.TOOL)

    @property
    def record_id(self) -> str:
        """安装记录名，与 rustup 的 ``lib/rustlib/manifest-<id>`` 一致"""
        return f"{self.name}-{self.target}" if self.target else self.name

    def archive_base(self, channel: Channel) -> str:
        base = f"{self.name}-{channel.name}"
        return f"{base}-{self.target}" if self.target else base

    def __str__(self) -> str:
        return self.record_id


@dataclass(frozen=True)
class ArchiveDescriptor:
    """一个待下载归档：完整 URL + 它满足的组件 + 归档格式"""
    url: str
    component: ComponentSpec
    archive_format: ArchiveFormat
    channel: Channel
    commit: str


class Stage(str, Enum):
    """失败可归属的处理阶段"""
    RESOLVE = "resolve"
    LOCATE = "locate"
    FETCH = "fetch"
    INSTALL = "install"


class CommitStatus(str, Enum):
    """单个提交的状态机"""
    PENDING = "pending"
    RESOLVING = "resolving"
    LOCATING = "locating"
    FETCHING = "fetching"
    INSTALLING = "installing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class InstallResult:
    """单个提交的处理结果，由编排器汇总，不持久化"""
    commit: CommitRef
    status: CommitStatus
    toolchain: Optional[str] = None
    resolved_commit: Optional[str] = None
    channel: Optional[Channel] = None
    stage: Optional[Stage] = None
    error: Optional[BaseException] = None
    # 同一提交内所有失败组件的错误，第一个与 error 相同
    errors: List[BaseException] = field(default_factory=list)
    already_installed: bool = False
    dry_run: bool = False
    urls: List[str] = field(default_factory=list)
    installed: List[str] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.status is CommitStatus.SUCCEEDED

    def describe(self) -> str:
        """面向用户的一行描述"""
        label = self.resolved_commit or str(self.commit)
        if self.succeeded:
            if self.already_installed:
                return f"toolchain `{self.toolchain}` 已安装，跳过"
            if self.dry_run:
                return f"toolchain `{self.toolchain}` 试运行完成（{len(self.urls)} 个归档）"
            return f"toolchain `{self.toolchain}` 安装成功"
        stage = self.stage.value if self.stage else "unknown"
        return f"提交 `{label}` 在 {stage} 阶段失败: {self.error}"
