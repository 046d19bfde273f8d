"""
归档下载器

以流的方式获取归档。返回的 ArchiveStream 是一个只读文件对象，由安装器
边读边解压，内存占用与归档大小无关。试运行模式只输出 URL。
"""

import io
from typing import Iterator, Optional

import requests

from ..utils.logging import fetch_logger
from .context import FetchError, ProgressCallback
from .models import ArchiveDescriptor
from .transport import is_transient_exception, is_transient_status

CHUNK_SIZE = 64 * 1024


class ArchiveStream(io.RawIOBase):
    """HTTP 响应体的只读流包装

    统计已读取字节数并上报进度；在响应体提前结束（少于 Content-Length）
    或底层连接中断时抛出瞬时 FetchError。
    """

    def __init__(
        self,
        response: requests.Response,
        url: str,
        progress_callback: Optional[ProgressCallback] = None,
        description: str = "",
    ):
        super().__init__()
        self._response = response
        self._url = url
        self._chunks: Iterator[bytes] = response.iter_content(CHUNK_SIZE)
        self._pending = b""
        self._eof = False
        self._progress = progress_callback
        self._description = description or url
        self.bytes_read = 0

        length = response.headers.get("Content-Length")
        self.expected_length: Optional[int] = int(length) if length and length.isdigit() else None

    def readable(self) -> bool:
        return True

    def _next_chunk(self) -> bytes:
        try:
            return next(self._chunks)
        except StopIteration:
            return b""
        except requests.RequestException as e:
            raise FetchError(f"读取 {self._url} 时连接中断: {e}", url=self._url,
                             transient=is_transient_exception(e)) from e

    def readinto(self, buffer) -> int:
        if self._eof and not self._pending:
            return 0

        while not self._pending and not self._eof:
            chunk = self._next_chunk()
            if chunk:
                self._pending = chunk
            else:
                self._eof = True
                self._check_complete()

        size = min(len(buffer), len(self._pending))
        buffer[:size] = self._pending[:size]
        self._pending = self._pending[size:]
        self.bytes_read += size
        if self._progress and size:
            self._progress(self._description, self.bytes_read, self.expected_length)
        return size

    def _check_complete(self) -> None:
        if self.expected_length is not None and self.bytes_read + len(self._pending) < self.expected_length:
            raise FetchError(
                f"下载 {self._url} 时数据流被截断: 期望 {self.expected_length} 字节，实际 {self.bytes_read} 字节",
                url=self._url,
                transient=True,
            )

    def close(self) -> None:
        if not self.closed:
            self._response.close()
        super().close()


class Fetcher:
    """归档下载器"""

    def __init__(
        self,
        session: requests.Session,
        timeout: float = 30.0,
        progress_callback: Optional[ProgressCallback] = None,
    ):
        self.session = session
        self.timeout = timeout
        self.progress_callback = progress_callback

    def fetch(self, descriptor: ArchiveDescriptor, dry_run: bool = False) -> Optional[ArchiveStream]:
        """获取归档流

        Args:
            descriptor: 归档描述符
            dry_run: 试运行时只输出 URL 并返回 None

        Returns:
            ArchiveStream 或 None（试运行）

        Raises:
            FetchError: 非 2xx 响应或传输错误
        """
        url = descriptor.url
        if dry_run:
            fetch_logger.info(f"下载 <{url}>（试运行，跳过）")
            return None

        fetch_logger.info(f"下载 <{url}>...")
        try:
            response = self.session.get(url, stream=True, timeout=self.timeout)
        except requests.RequestException as e:
            raise FetchError(f"GET {url} 请求失败: {e}", url=url, transient=is_transient_exception(e)) from e

        status = response.status_code
        if not 200 <= status < 300:
            response.close()
            component = descriptor.component
            if status == 404:
                raise FetchError(
                    f"缺少组件 `{component.name}`: 工具链 `{descriptor.commit}`，通道 `{descriptor.channel}`，"
                    f"目标 `{component.target or '*'}`",
                    url=url,
                    commit=descriptor.commit,
                    status=status,
                )
            raise FetchError(f"GET {url} 返回状态 {status}", url=url, status=status,
                             transient=is_transient_status(status))

        return ArchiveStream(response, url, self.progress_callback, str(descriptor.component))
