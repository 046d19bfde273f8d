"""
归档安装器单元测试

覆盖清单驱动的解包、路径改写、冲突检测、截断回滚和安装记录。
"""

import io
import tarfile
from pathlib import Path, PurePosixPath

import pytest

from toolchain_master.install.archive import ArchiveInstaller, read_record, verify_installed
from toolchain_master.install.context import ConflictError, FetchError, InstallError
from toolchain_master.install.layout import ComponentLayout, LayoutError, layout_for, record_path
from toolchain_master.install.models import (
    ArchiveDescriptor,
    ArchiveFormat,
    Channel,
    ComponentKind,
    ComponentSpec,
)

COMMIT = "4fb54ed484e2239a3e9eff3be17df00d2a162be3"
HOST = "x86_64-unknown-linux-gnu"
NIGHTLY = Channel.parse("nightly")


def descriptor_for(component: ComponentSpec, archive_format: ArchiveFormat = ArchiveFormat.XZ) -> ArchiveDescriptor:
    return ArchiveDescriptor(
        url=f"https://example.invalid/{component.archive_base(NIGHTLY)}.{archive_format.extension}",
        component=component,
        archive_format=archive_format,
        channel=NIGHTLY,
        commit=COMMIT,
    )


def all_files(root: Path):
    return sorted(p.relative_to(root).as_posix() for p in root.rglob("*") if p.is_file())


@pytest.fixture
def staging_root(tmp_path):
    return tmp_path / "staging"


@pytest.fixture
def destination(tmp_path):
    path = tmp_path / "toolchains" / COMMIT
    path.mkdir(parents=True)
    return path


@pytest.fixture
def installer(staging_root):
    return ArchiveInstaller(staging_root)


class TestComponentLayout:
    """组件布局映射测试"""

    def test_compiler_layout(self):
        layout = layout_for(ComponentKind.COMPILER)
        assert layout.rewrite(PurePosixPath("bin/rustc")) == PurePosixPath("bin/rustc")
        assert layout.rewrite(PurePosixPath("share/man/man1/rustc.1")) == PurePosixPath("share/man/man1/rustc.1")

    def test_standard_library_is_lib_only(self):
        layout = layout_for(ComponentKind.STANDARD_LIBRARY)
        assert layout.rewrite(PurePosixPath(f"lib/rustlib/{HOST}/lib/libstd.rlib")).parts[0] == "lib"
        with pytest.raises(LayoutError):
            layout.rewrite(PurePosixPath("bin/rustc"))

    def test_custom_mapping(self):
        layout = ComponentLayout(ComponentKind.TOOL, {"bin": "tools/bin"})
        assert layout.rewrite(PurePosixPath("bin/cargo")) == PurePosixPath("tools/bin/cargo")

    def test_record_path(self):
        assert record_path(f"rustc-{HOST}") == PurePosixPath(f"lib/rustlib/manifest-rustc-{HOST}")


class TestArchiveInstaller:
    """ArchiveInstaller 测试"""

    def test_dry_run_stream_is_noop(self, installer, destination):
        assert installer.install(None, descriptor_for(ComponentSpec("rustc", HOST)), destination) == []
        assert all_files(destination) == []

    @pytest.mark.parametrize("archive_format", [ArchiveFormat.XZ, ArchiveFormat.ZSTD])
    def test_install_compiler(self, installer, destination, staging_root, make_archive, archive_format):
        component = ComponentSpec("rustc", HOST)
        data = make_archive(component, archive_format=archive_format)

        written = installer.install(io.BytesIO(data), descriptor_for(component, archive_format), destination)

        assert written == [PurePosixPath("bin/rustc"), PurePosixPath("lib/librustc_driver.so")]
        assert (destination / "bin" / "rustc").read_bytes() == b"\x7fELF rustc"
        assert (destination / "bin" / "rustc").stat().st_mode & 0o111
        # 打包元数据不会被安装
        assert not (destination / "install.sh").exists()
        assert not (destination / "manifest.in").exists()

        record = destination / record_path(component.record_id)
        assert read_record(record) == written
        rustlib = destination / "lib" / "rustlib"
        assert (rustlib / "components").read_text().split() == [component.record_id]
        assert (rustlib / "rust-installer-version").read_text().strip() == "3"
        # 暂存目录已清理
        assert list(staging_root.iterdir()) == []

    def test_only_manifest_files_are_installed(self, installer, destination, make_archive):
        component = ComponentSpec("rustc", HOST)
        data = make_archive(
            component,
            files={"bin/rustc": b"rustc", "bin/stray-debug-tool": b"nope"},
            manifest=["file:bin/rustc"],
        )
        installer.install(io.BytesIO(data), descriptor_for(component), destination)

        assert (destination / "bin" / "rustc").exists()
        assert not (destination / "bin" / "stray-debug-tool").exists()

    def test_dir_manifest_entry(self, installer, destination, make_archive):
        component = ComponentSpec.for_target("rust-src", HOST)
        files = {
            "lib/rustlib/src/rust/library/core/src/lib.rs": b"//! core",
            "lib/rustlib/src/rust/library/std/src/lib.rs": b"//! std",
        }
        data = make_archive(component, files=files, manifest=["dir:lib/rustlib/src/rust"])

        installer.install(io.BytesIO(data), descriptor_for(component), destination)

        record = destination / record_path("rust-src")
        assert sorted(str(p) for p in read_record(record)) == sorted(files)

    def test_std_cannot_write_bin(self, installer, destination, make_archive):
        component = ComponentSpec("rust-std", HOST)
        data = make_archive(component, files={"bin/evil": b"x"})
        with pytest.raises(InstallError):
            installer.install(io.BytesIO(data), descriptor_for(component), destination)
        assert all_files(destination) == []

    def test_conflict_leaves_existing_file_unmodified(self, installer, destination, make_archive):
        (destination / "bin").mkdir()
        stray = destination / "bin" / "rustc"
        stray.write_bytes(b"someone else's rustc")
        component = ComponentSpec("rustc", HOST)

        with pytest.raises(ConflictError) as exc_info:
            installer.install(io.BytesIO(make_archive(component)), descriptor_for(component), destination)

        assert exc_info.value.paths == [stray]
        assert stray.read_bytes() == b"someone else's rustc"
        # 检查在写入之前完成，归档中的其他文件也没有写入
        assert all_files(destination) == ["bin/rustc"]

    def test_force_overwrites(self, installer, destination, make_archive):
        (destination / "bin").mkdir()
        (destination / "bin" / "rustc").write_bytes(b"old")
        component = ComponentSpec("rustc", HOST)

        installer.install(io.BytesIO(make_archive(component)), descriptor_for(component), destination, force=True)

        assert (destination / "bin" / "rustc").read_bytes() == b"\x7fELF rustc"

    @pytest.mark.parametrize("archive_format", [ArchiveFormat.XZ, ArchiveFormat.ZSTD])
    @pytest.mark.parametrize("keep", [0.5, 0.9, 0.99])
    def test_truncated_archive_leaves_no_files(self, installer, destination, staging_root, make_archive,
                                               archive_format, keep):
        component = ComponentSpec("rustc", HOST)
        files = {"bin/rustc": bytes(range(256)) * 256, "lib/librustc_driver.so": b"driver" * 1000}
        data = make_archive(component, files=files, archive_format=archive_format)
        cut = data[: int(len(data) * keep)]

        with pytest.raises(FetchError) as exc_info:
            installer.install(io.BytesIO(cut), descriptor_for(component, archive_format), destination)

        assert exc_info.value.transient
        assert all_files(destination) == []
        assert list(staging_root.iterdir()) == []

    def test_disk_error_rolls_back(self, installer, destination, make_archive, monkeypatch):
        component = ComponentSpec("rustc", HOST)
        import toolchain_master.install.archive as archive_module

        real_move = archive_module.shutil.move
        calls = []

        def flaky_move(src, dst):
            calls.append(dst)
            if len(calls) == 2:
                raise OSError("No space left on device")
            return real_move(src, dst)

        monkeypatch.setattr(archive_module.shutil, "move", flaky_move)

        with pytest.raises(InstallError, match="No space left"):
            installer.install(io.BytesIO(make_archive(component)), descriptor_for(component), destination)

        assert all_files(destination) == []

    def test_rejects_symlinks(self, installer, destination, make_archive):
        def add_link(tar, base):
            info = tarfile.TarInfo(f"{base}/rustc/bin/link")
            info.type = tarfile.SYMTYPE
            info.linkname = "/etc/passwd"
            tar.addfile(info)

        component = ComponentSpec("rustc", HOST)
        data = make_archive(component, extra=add_link)
        with pytest.raises(InstallError, match="不是普通文件或目录"):
            installer.install(io.BytesIO(data), descriptor_for(component), destination)

    def test_rejects_parent_paths(self, installer, destination, make_archive):
        def add_escape(tar, base):
            info = tarfile.TarInfo(f"{base}/../../escape")
            info.size = 1
            tar.addfile(info, io.BytesIO(b"x"))

        component = ComponentSpec("rustc", HOST)
        data = make_archive(component, extra=add_escape)
        with pytest.raises(InstallError):
            installer.install(io.BytesIO(data), descriptor_for(component), destination)
        assert not (destination.parent.parent / "escape").exists()

    def test_missing_manifest_file(self, installer, destination, make_archive):
        component = ComponentSpec("rustc", HOST)
        data = make_archive(component, files={"bin/rustc": b"r"}, manifest=["file:bin/rustc", "file:bin/rustdoc"])
        with pytest.raises(InstallError, match="rustdoc"):
            installer.install(io.BytesIO(data), descriptor_for(component), destination)
        assert all_files(destination) == []


class TestVerifyInstalled:
    """verify_installed 测试"""

    def test_complete_install(self, installer, destination, make_archive):
        descriptors = [descriptor_for(ComponentSpec("rustc", HOST)), descriptor_for(ComponentSpec("rust-std", HOST))]
        for descriptor in descriptors:
            installer.install(io.BytesIO(make_archive(descriptor.component)), descriptor, destination)

        assert verify_installed(destination, descriptors)

    def test_missing_record(self, installer, destination, make_archive):
        rustc = descriptor_for(ComponentSpec("rustc", HOST))
        installer.install(io.BytesIO(make_archive(rustc.component)), rustc, destination)

        assert not verify_installed(destination, [rustc, descriptor_for(ComponentSpec("rust-std", HOST))])

    def test_missing_listed_file(self, installer, destination, make_archive):
        rustc = descriptor_for(ComponentSpec("rustc", HOST))
        installer.install(io.BytesIO(make_archive(rustc.component)), rustc, destination)
        (destination / "bin" / "rustc").unlink()

        assert not verify_installed(destination, [rustc])
