"""
制品定位器

根据提交、通道、主机与目标三元组以及组件列表，按确定的顺序生成需要
下载的归档 URL。不访问网络。
"""

from dataclasses import dataclass, field
from typing import Iterable, List, Sequence

from ..utils.logging import locate_logger
from .context import LocateError
from .models import (
    ArchiveDescriptor,
    ArchiveFormat,
    BuildVariant,
    Channel,
    ComponentSpec,
)

DEFAULT_HOST_COMPONENTS = ("rustc", "rust-std")


@dataclass
class ArtifactLocator:
    """制品定位器

    Attributes:
        server: 服务器根地址（不带末尾斜杠）
        archive_format: 归档格式，决定固定的扩展名
    """
    server: str
    archive_format: ArchiveFormat = ArchiveFormat.XZ
    default_components: Sequence[str] = field(default=DEFAULT_HOST_COMPONENTS)

    def url_for(self, commit: str, channel: Channel, variant: BuildVariant, component: ComponentSpec) -> str:
        """``<server>/<variant-prefix>/<commit>/<base>-<channel>[-<triple>].<ext>``"""
        return (
            f"{self.server}/{variant.store_prefix}/{commit}/"
            f"{component.archive_base(channel)}.{self.archive_format.extension}"
        )

    def plan(
        self,
        host: str,
        targets: Iterable[str],
        components: Iterable[str],
        use_defaults: bool = True,
    ) -> List[ComponentSpec]:
        """计算去重后的组件列表

        顺序：主机默认组件 → 调用者指定的组件 → 额外目标的 rust-std。
        """
        planned: List[ComponentSpec] = []

        def add(spec: ComponentSpec) -> None:
            if spec not in planned:
                planned.append(spec)

        if use_defaults:
            for name in self.default_components:
                add(ComponentSpec.for_target(name, host))
        for name in components:
            add(ComponentSpec.for_target(name, host))
        for target in targets:
            if target != host:
                add(ComponentSpec.for_target("rust-std", target))

        return planned

    def locate(
        self,
        commit: str,
        channel: Channel,
        variant: BuildVariant,
        host: str,
        targets: Iterable[str] = (),
        components: Iterable[str] = (),
        use_defaults: bool = True,
    ) -> List[ArchiveDescriptor]:
        """生成有序的归档描述符列表

        Raises:
            LocateError: 过滤后没有任何组件
        """
        planned = self.plan(host, targets, components, use_defaults)
        if not planned:
            raise LocateError("没有需要下载的组件：默认组件已禁用且未指定任何组件或目标", commit=commit)

        descriptors = [
            ArchiveDescriptor(
                url=self.url_for(commit, channel, variant, spec),
                component=spec,
                archive_format=self.archive_format,
                channel=channel,
                commit=commit,
            )
            for spec in planned
        ]
        for descriptor in descriptors:
            locate_logger.debug(f"{descriptor.component}: {descriptor.url}")
        return descriptors
