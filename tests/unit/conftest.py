"""共享测试夹具：假 HTTP 会话、内存中构造的组件归档、配置工厂"""

import io
import lzma
import tarfile
from pathlib import Path
from typing import Callable, Dict, List, Optional

import pytest
import requests
import zstandard as zstd
from requests.structures import CaseInsensitiveDict

from toolchain_master.config.schema import InstallerConfig
from toolchain_master.install.models import ArchiveFormat, Channel, ComponentKind, ComponentSpec

HOST = "x86_64-unknown-linux-gnu"


class FakeResponse:
    """requests.Response 的最小替身"""

    def __init__(
        self,
        status_code: int = 200,
        body: bytes = b"",
        headers: Optional[Dict[str, str]] = None,
        error: Optional[Exception] = None,
    ):
        self.status_code = status_code
        self.content = body
        self.headers = CaseInsensitiveDict(headers or {})
        self.error = error
        self.closed = False

    @property
    def text(self) -> str:
        return self.content.decode("utf-8")

    def iter_content(self, chunk_size: int = 1):
        for start in range(0, len(self.content), chunk_size):
            yield self.content[start:start + chunk_size]
        if self.error is not None:
            raise self.error

    def close(self) -> None:
        self.closed = True


class FakeSession:
    """按 URL 返回预设响应的会话

    路由值可以是 FakeResponse、bytes（200 响应）、异常或它们组成的列表
    （依次返回，最后一个重复使用）。``(method, url)`` 形式的键优先。
    未配置的 URL 返回 404。
    """

    def __init__(self, routes: Optional[Dict] = None):
        self.routes = dict(routes or {})
        self.calls: List[tuple] = []
        self._served: Dict = {}

    def request(self, method: str, url: str, **kwargs):
        self.calls.append((method, url, kwargs))
        key = (method, url) if (method, url) in self.routes else url
        route = self.routes.get(key)
        if route is None:
            return FakeResponse(404)

        if isinstance(route, list):
            index = self._served.get(key, 0)
            self._served[key] = index + 1
            route = route[min(index, len(route) - 1)]

        if isinstance(route, Exception):
            raise route
        if isinstance(route, bytes):
            return FakeResponse(200, route, {"Content-Length": str(len(route))})
        return route

    def get(self, url: str, **kwargs):
        return self.request("GET", url, **kwargs)

    def head(self, url: str, **kwargs):
        return self.request("HEAD", url, **kwargs)

    def urls(self, method: Optional[str] = None) -> List[str]:
        return [url for m, url, _ in self.calls if method is None or m == method]


def _component_dir(component: ComponentSpec) -> str:
    # rust-installer 用组件名作为目录，标准库目录带目标三元组
    if component.kind is ComponentKind.STANDARD_LIBRARY:
        return component.record_id
    return component.name


def build_tar(
    component: ComponentSpec,
    files: Dict[str, bytes],
    channel: str = "nightly",
    manifest: Optional[List[str]] = None,
    extra: Optional[Callable[[tarfile.TarFile, str], None]] = None,
) -> bytes:
    """构造 rust-installer 格式的未压缩 tar"""
    base = component.archive_base(Channel.parse(channel))
    comp_dir = _component_dir(component)
    manifest_lines = manifest if manifest is not None else [f"file:{path}" for path in files]

    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w") as tar:
        def add_dir(name: str) -> None:
            info = tarfile.TarInfo(name)
            info.type = tarfile.DIRTYPE
            info.mode = 0o755
            tar.addfile(info)

        def add_file(name: str, data: bytes, mode: int = 0o644) -> None:
            info = tarfile.TarInfo(name)
            info.size = len(data)
            info.mode = mode
            tar.addfile(info, io.BytesIO(data))

        add_dir(base)
        add_file(f"{base}/components", f"{comp_dir}\n".encode())
        add_file(f"{base}/rust-installer-version", b"3\n")
        add_file(f"{base}/install.sh", b"#!/bin/sh\n", 0o755)
        add_dir(f"{base}/{comp_dir}")
        add_file(f"{base}/{comp_dir}/manifest.in", "".join(f"{line}\n" for line in manifest_lines).encode())
        for path, data in files.items():
            mode = 0o755 if path.startswith("bin/") else 0o644
            add_file(f"{base}/{comp_dir}/{path}", data, mode)
        if extra is not None:
            extra(tar, base)

    return buffer.getvalue()


def compress(data: bytes, archive_format: ArchiveFormat = ArchiveFormat.XZ) -> bytes:
    if archive_format is ArchiveFormat.ZSTD:
        return zstd.ZstdCompressor().compress(data)
    return lzma.compress(data)


DEFAULT_FILES = {
    "rustc": {
        "bin/rustc": b"\x7fELF rustc",
        "lib/librustc_driver.so": b"\x7fELF driver",
    },
    "rust-std": {
        f"lib/rustlib/{HOST}/lib/libstd.rlib": b"!<arch> std",
    },
}


@pytest.fixture
def make_archive() -> Callable[..., bytes]:
    """工厂夹具：构造压缩后的组件归档"""

    def _factory(
        component: ComponentSpec,
        files: Optional[Dict[str, bytes]] = None,
        channel: str = "nightly",
        archive_format: ArchiveFormat = ArchiveFormat.XZ,
        **kwargs,
    ) -> bytes:
        if files is None:
            files = DEFAULT_FILES.get(component.name, {"share/doc/README": b"readme"})
        return compress(build_tar(component, files, channel, **kwargs), archive_format)

    return _factory


@pytest.fixture
def fake_session() -> Callable[..., FakeSession]:
    """工厂夹具：构造假会话"""

    def _factory(routes: Optional[Dict] = None) -> FakeSession:
        return FakeSession(routes)

    return _factory


@pytest.fixture
def rustup_home(tmp_path: Path) -> Path:
    """带有 toolchains 目录的 rustup 主目录"""
    home = tmp_path / "rustup"
    (home / "toolchains").mkdir(parents=True)
    return home


@pytest.fixture
def make_config(rustup_home: Path) -> Callable[..., InstallerConfig]:
    """工厂夹具：指向临时 rustup 主目录、主机固定、不使用 git 的配置"""

    def _factory(**overrides) -> InstallerConfig:
        data = {
            "rustup_home": rustup_home,
            "host": HOST,
            "channel": "nightly",
            "use_git": False,
            "retries": 2,
            "retry_backoff": 0,
        }
        data.update(overrides)
        return InstallerConfig(**data)

    return _factory


@pytest.fixture
def transport_error() -> requests.ConnectionError:
    return requests.ConnectionError("connection reset by peer")


@pytest.fixture
def make_response() -> Callable[..., FakeResponse]:
    """工厂夹具：构造假响应"""
    return FakeResponse


@pytest.fixture
def make_tar() -> Callable[..., bytes]:
    """工厂夹具：构造未压缩的组件 tar"""
    return build_tar
