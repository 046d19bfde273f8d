"""
归档安装器

把一个组件归档解包到工具链目录。流程分三段：

1. 解包：把整个 tar 流解到 ``<rustup_home>/tmp`` 下的暂存目录，只接受
   普通文件和目录。
2. 计划：读取 ``components`` 和各组件的 ``manifest.in``，按组件种类改写
   目标路径，并在写入任何文件之前检查冲突。
3. 提交：逐个移动到工具链目录并写入安装记录；中途失败时删除本次已移动
   的文件。

暂存目录在任何情况下都会被删除。
"""

import shutil
import tarfile
import threading
from pathlib import Path, PurePosixPath
from typing import BinaryIO, Iterable, List, Optional, Sequence, Tuple

from ..utils.logging import install_logger
from ..utils.paths import archive_member_path, ensure_directory, format_size, make_staging_dir
from .context import ConflictError, FetchError, InstallError, StageError
from .decompressor import DecompressionError, DecompressorFactory, TruncatedArchiveError
from .layout import (
    COMPONENTS_FILE,
    INSTALLER_VERSION,
    INSTALLER_VERSION_FILE,
    RECORD_DIR,
    LayoutError,
    layout_for,
    record_path,
)
from .models import ArchiveDescriptor

MANIFEST_FILE = "manifest.in"
COPY_BUFFER_SIZE = 64 * 1024

# 同一工具链的多个组件并发安装时共享 components 文件
_records_lock = threading.Lock()

# (暂存区源文件, 工具链内相对路径)
InstallPlan = List[Tuple[Path, PurePosixPath]]


def read_record(path: Path) -> List[PurePosixPath]:
    """读取安装记录中的 ``file:`` 条目"""
    entries = []
    for line in path.read_text(encoding="utf-8").splitlines():
        kind, _, value = line.strip().partition(":")
        if kind == "file" and value:
            entries.append(PurePosixPath(value))
    return entries


def verify_installed(destination: Path, descriptors: Iterable[ArchiveDescriptor]) -> bool:
    """检查工具链目录是否为这些组件的完整安装

    每个组件的安装记录必须存在，且记录中列出的文件全部存在。
    """
    for descriptor in descriptors:
        record = destination / record_path(descriptor.component.record_id)
        if not record.is_file():
            return False
        try:
            entries = read_record(record)
        except (OSError, UnicodeDecodeError):
            return False
        if not entries:
            return False
        for entry in entries:
            if not (destination / entry).is_file():
                return False
    return True


class ArchiveInstaller:
    """组件归档安装器"""

    def __init__(self, staging_root: Optional[Path] = None):
        self.staging_root = staging_root

    def install(
        self,
        stream: Optional[BinaryIO],
        descriptor: ArchiveDescriptor,
        destination: Path,
        force: bool = False,
    ) -> List[PurePosixPath]:
        """安装一个组件归档

        Args:
            stream: 归档字节流；None 表示试运行，不做任何事
            descriptor: 归档描述符
            destination: 工具链目录
            force: 是否覆盖已存在的文件

        Returns:
            List[PurePosixPath]: 写入的文件（相对工具链目录）

        Raises:
            ConflictError: 目标文件已存在且未指定 force
            FetchError: 数据流被截断（可重试）
            InstallError: 归档损坏、内容非法或写入失败
        """
        if stream is None:
            return []

        component = descriptor.component
        commit = descriptor.commit
        staging = make_staging_dir(self.staging_root, prefix=f"{component.record_id}-")
        try:
            self._unpack(stream, descriptor, staging)
            plan = self._plan(staging, descriptor)
            self._check_conflicts(plan, descriptor, destination, force)
            written = self._commit(plan, descriptor, destination)
            size = sum((destination / target).stat().st_size for target in written)
            install_logger.success(f"{component} 安装完成（{len(written)} 个文件，{format_size(size)}）")
            return written
        except TruncatedArchiveError as e:
            raise FetchError(f"{descriptor.url} 数据不完整: {e}", url=descriptor.url,
                             commit=commit, transient=True) from e
        except DecompressionError as e:
            raise InstallError(f"无法解压 {descriptor.url}: {e}", commit=commit) from e
        except StageError:
            raise
        except OSError as e:
            raise InstallError(f"安装 {component} 时写入失败: {e}", commit=commit) from e
        finally:
            shutil.rmtree(staging, ignore_errors=True)

    def _unpack(self, stream: BinaryIO, descriptor: ArchiveDescriptor, staging: Path) -> None:
        decompressor = DecompressorFactory.create(descriptor.archive_format)
        with decompressor.open_tar(stream) as tar:
            for member in tar:
                try:
                    relpath = archive_member_path(member.name)
                except ValueError as e:
                    raise InstallError(str(e), commit=descriptor.commit) from e
                if relpath == PurePosixPath("."):
                    continue

                target = staging / relpath
                if member.isdir():
                    ensure_directory(target)
                elif member.isfile():
                    ensure_directory(target.parent)
                    source = tar.extractfile(member)
                    with open(target, "wb") as output:
                        shutil.copyfileobj(source, output, COPY_BUFFER_SIZE)
                    # 保留可执行位
                    target.chmod(0o755 if member.mode & 0o111 else 0o644)
                else:
                    raise InstallError(
                        f"归档条目 `{member.name}` 不是普通文件或目录",
                        commit=descriptor.commit,
                    )

    def _archive_root(self, staging: Path, descriptor: ArchiveDescriptor) -> Path:
        root = staging / descriptor.component.archive_base(descriptor.channel)
        if root.is_dir():
            return root
        children = [child for child in staging.iterdir() if child.is_dir()]
        if len(children) == 1:
            return children[0]
        raise InstallError(f"{descriptor.url} 不是有效的组件归档：找不到根目录", commit=descriptor.commit)

    def _plan(self, staging: Path, descriptor: ArchiveDescriptor) -> InstallPlan:
        """根据组件清单生成安装计划，只包含清单列出的文件"""
        root = self._archive_root(staging, descriptor)
        components_file = root / COMPONENTS_FILE
        if not components_file.is_file():
            raise InstallError(f"{descriptor.url} 缺少 {COMPONENTS_FILE} 文件", commit=descriptor.commit)

        layout = layout_for(descriptor.component.kind)
        plan: InstallPlan = []
        names = [line.strip() for line in components_file.read_text(encoding="utf-8").splitlines() if line.strip()]
        for name in names:
            if "/" in name or name in (".", ".."):
                raise InstallError(f"无效的组件目录名: {name!r}", commit=descriptor.commit)
            component_dir = root / name
            manifest = component_dir / MANIFEST_FILE
            if not manifest.is_file():
                raise InstallError(f"组件 `{name}` 缺少 {MANIFEST_FILE}", commit=descriptor.commit)
            for relpath in self._manifest_files(manifest, component_dir, descriptor):
                try:
                    target = layout.rewrite(relpath)
                except LayoutError as e:
                    raise InstallError(str(e), commit=descriptor.commit) from e
                plan.append((component_dir / relpath, target))

        if not plan:
            raise InstallError(f"{descriptor.url} 中没有可安装的文件", commit=descriptor.commit)
        return plan

    def _manifest_files(self, manifest: Path, component_dir: Path, descriptor: ArchiveDescriptor) -> List[PurePosixPath]:
        files: List[PurePosixPath] = []
        for line in manifest.read_text(encoding="utf-8").splitlines():
            line = line.strip()
            if not line:
                continue
            kind, sep, value = line.partition(":")
            try:
                relpath = archive_member_path(value)
            except ValueError as e:
                raise InstallError(str(e), commit=descriptor.commit) from e
            source = component_dir / relpath

            if sep and kind == "file":
                if not source.is_file():
                    raise InstallError(f"归档不完整：清单中的文件 `{relpath}` 不存在", commit=descriptor.commit)
                files.append(relpath)
            elif sep and kind == "dir":
                if not source.is_dir():
                    raise InstallError(f"归档不完整：清单中的目录 `{relpath}` 不存在", commit=descriptor.commit)
                files.extend(
                    PurePosixPath(path.relative_to(component_dir).as_posix())
                    for path in sorted(source.rglob("*"))
                    if path.is_file()
                )
            else:
                raise InstallError(f"无法识别的清单条目: {line!r}", commit=descriptor.commit)
        return files

    def _check_conflicts(self, plan: InstallPlan, descriptor: ArchiveDescriptor, destination: Path, force: bool) -> None:
        if force:
            return
        targets: Sequence[PurePosixPath] = [target for _, target in plan] + [record_path(descriptor.component.record_id)]
        conflicts = [destination / target for target in targets if (destination / target).exists()]
        if conflicts:
            more = f" 等 {len(conflicts)} 个文件" if len(conflicts) > 1 else ""
            raise ConflictError(
                f"安装 {descriptor.component} 会覆盖已存在的 `{conflicts[0]}`{more}，使用 --force 强制覆盖",
                paths=conflicts,
                commit=descriptor.commit,
            )

    def _commit(self, plan: InstallPlan, descriptor: ArchiveDescriptor, destination: Path) -> List[PurePosixPath]:
        moved: List[Path] = []
        try:
            for source, target in plan:
                path = destination / target
                ensure_directory(path.parent)
                if path.is_dir():
                    shutil.rmtree(path)
                shutil.move(str(source), str(path))
                moved.append(path)

            record = destination / record_path(descriptor.component.record_id)
            ensure_directory(record.parent)
            record.write_text("".join(f"file:{target}\n" for _, target in plan), encoding="utf-8")
            moved.append(record)
            self._register(destination, descriptor.component.record_id)
        except BaseException:
            for path in reversed(moved):
                try:
                    path.unlink()
                except OSError:
                    install_logger.warning(f"回滚时无法删除 {path}")
            raise
        return [target for _, target in plan]

    def _register(self, destination: Path, record_id: str) -> None:
        """把组件登记到 ``lib/rustlib/components``"""
        record_dir = destination / RECORD_DIR
        with _records_lock:
            version_file = record_dir / INSTALLER_VERSION_FILE
            if not version_file.exists():
                version_file.write_text(f"{INSTALLER_VERSION}\n", encoding="utf-8")

            components_file = record_dir / COMPONENTS_FILE
            registered = []
            if components_file.exists():
                registered = components_file.read_text(encoding="utf-8").split()
            if record_id not in registered:
                with open(components_file, "a", encoding="utf-8") as f:
                    f.write(f"{record_id}\n")
