"""
配置 Schema 定义

使用 Pydantic 定义安装器配置模型。命令行参数与可选的 YAML 默认配置文件
合并后在这里统一验证，之后作为只读对象传入编排器。
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field, field_validator, model_validator

from ..install.models import ArchiveFormat, BuildVariant, Channel
from ..utils.paths import default_rustup_home, expand_path, is_safe_filename

DEFAULT_SERVER = "https://ci-artifacts.rust-lang.org"
DEFAULT_UPSTREAM_REPO = "rust-lang/rust"
USER_AGENT = "rustup-toolchain-install-master"


def _dedupe(values: List[str]) -> List[str]:
    cleaned: List[str] = []
    for value in values:
        value = value.strip()
        if value and value not in cleaned:
            cleaned.append(value)
    return cleaned


class InstallerConfig(BaseModel):
    """安装器主配置模型

    这是整个配置的根模型，由命令行层填充后传给 Orchestrator。
    """

    # 下载内容
    host: Optional[str] = Field(None, description="主机三元组（默认自动检测）")
    targets: List[str] = Field(default_factory=list, description="额外安装 rust-std 的目标三元组")
    components: List[str] = Field(default_factory=list, description="除 rustc 与 rust-std 外的额外组件")
    use_defaults: bool = Field(True, description="是否包含默认组件（rustc、主机 rust-std）")
    channel: Optional[str] = Field(None, description="指定通道，跳过自动探测")
    alt: bool = Field(False, description="下载 alt 构建")
    archive_format: ArchiveFormat = Field(ArchiveFormat.XZ, description="制品库归档格式")

    # 远端
    server: str = Field(DEFAULT_SERVER, description="存放编译器构建的服务器地址", min_length=1)
    upstream_repo: str = Field(DEFAULT_UPSTREAM_REPO, description="上游源码仓库 owner/name")
    proxy: Optional[str] = Field(None, description="所有下载请求使用的 HTTP 代理")
    github_token: Optional[str] = Field(None, description="访问 GitHub API 的令牌")
    use_git: bool = Field(True, description="获取最新提交时优先使用 git ls-remote")
    timeout: float = Field(30.0, description="单次请求超时（秒）", gt=0, le=600)

    # 重试与并发
    retries: int = Field(3, description="瞬时错误的最大尝试次数", ge=1, le=10)
    retry_backoff: float = Field(1.0, description="重试退避基数（秒）", ge=0, le=60)
    jobs: int = Field(4, description="单个提交内并发下载的组件数", ge=1, le=16)

    # 本地
    rustup_home: Path = Field(default_factory=default_rustup_home, description="rustup 主目录")
    name: Optional[str] = Field(None, description="工具链名称")

    # 行为开关
    dry_run: bool = Field(False, description="只输出 URL，不下载")
    force: bool = Field(False, description="替换同名已存在的工具链")
    keep_going: bool = Field(False, description="某个工具链失败时继续处理其余工具链")

    model_config = {
        "extra": "forbid",
        "validate_assignment": True,
        "str_strip_whitespace": True,
    }

    @field_validator('server')
    @classmethod
    def validate_server(cls, v: str) -> str:
        """服务器地址必须是 http(s) URL，去掉末尾斜杠"""
        if not re.match(r'^https?://', v):
            raise ValueError("服务器地址必须以 http:// 或 https:// 开头")
        return v.rstrip('/')

    @field_validator('upstream_repo')
    @classmethod
    def validate_upstream_repo(cls, v: str) -> str:
        if not re.match(r'^[\w.-]+/[\w.-]+$', v):
            raise ValueError("上游仓库格式必须是 owner/name")
        return v

    @field_validator('channel')
    @classmethod
    def validate_channel(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        return Channel.parse(v).name

    @field_validator('targets', 'components')
    @classmethod
    def validate_name_list(cls, v: List[str]) -> List[str]:
        """去除空白和重复项，保持原有顺序"""
        return _dedupe(v)

    @field_validator('name')
    @classmethod
    def validate_name(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not is_safe_filename(v):
            raise ValueError(f"工具链名称不能用作目录名: {v!r}")
        return v

    @field_validator('rustup_home', mode='before')
    @classmethod
    def validate_rustup_home(cls, v: Union[str, Path]) -> Path:
        return expand_path(v)

    @model_validator(mode='after')
    def validate_host_not_in_targets(self) -> 'InstallerConfig':
        """主机三元组总会安装 rust-std，从额外目标中剔除以免重复"""
        if self.host and self.host in self.targets:
            self.__dict__['targets'] = [t for t in self.targets if t != self.host]
        return self

    @property
    def variant(self) -> BuildVariant:
        return BuildVariant.ALT if self.alt else BuildVariant.NORMAL

    @property
    def channel_override(self) -> Optional[Channel]:
        return Channel.parse(self.channel) if self.channel else None

    @property
    def store_prefix(self) -> str:
        """制品库前缀，例如 ``https://ci-artifacts.rust-lang.org/rustc-builds``"""
        return f"{self.server}/{self.variant.store_prefix}"

    @property
    def toolchains_dir(self) -> Path:
        return self.rustup_home / "toolchains"

    @property
    def staging_root(self) -> Path:
        return self.rustup_home / "tmp"

    def to_dict(self) -> Dict[str, Any]:
        """转换为可写入 YAML 的字典，不包含令牌"""
        data = self.model_dump(exclude_none=True, exclude={'github_token'})

        def convert_values(obj):
            if isinstance(obj, dict):
                return {k: convert_values(v) for k, v in obj.items()}
            if isinstance(obj, list):
                return [convert_values(item) for item in obj]
            if isinstance(obj, Path):
                return str(obj)
            if isinstance(obj, ArchiveFormat):
                return obj.value
            return obj

        return convert_values(data)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'InstallerConfig':
        """从字典创建配置实例"""
        return cls.model_validate(data)
