"""
解压器抽象接口和实现

制品库的归档格式在一次运行中是固定的（默认 xz，镜像仓库可能重新打包为
zstd），这里不做格式探测。解压器把压缩流包装成未压缩的顺序读取流，交给
tarfile 以流模式逐条读取。
"""

import io
import lzma
import tarfile
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import BinaryIO, Iterator

import zstandard as zstd

from .models import ArchiveFormat


class DecompressionError(Exception):
    """归档损坏或格式不符"""
    pass


class TruncatedArchiveError(DecompressionError):
    """压缩流在结束标记之前终止"""
    pass


class Decompressor(ABC):
    """解压器抽象基类"""

    @abstractmethod
    def get_format(self) -> ArchiveFormat:
        """获取归档格式"""
        pass

    @abstractmethod
    def reader(self, stream: BinaryIO) -> BinaryIO:
        """把压缩流包装为解压后的只读流"""
        pass

    @contextmanager
    def open_tar(self, stream: BinaryIO) -> Iterator[tarfile.TarFile]:
        """以流模式打开 tar

        退出时把剩余数据读完，使截断的压缩流在这里暴露出来，而不是被
        tar 的结束块掩盖。
        """
        decompressed = self.reader(stream)
        try:
            with tarfile.open(fileobj=decompressed, mode="r|") as tar:
                yield tar
            while decompressed.read(64 * 1024):
                pass
        except EOFError as e:
            raise TruncatedArchiveError(f"{self.get_format().extension} 数据流被截断: {e}") from e
        except (tarfile.TarError, lzma.LZMAError, zstd.ZstdError) as e:
            raise DecompressionError(f"{self.get_format().extension} 解压失败: {e}") from e
        finally:
            decompressed.close()


class XzDecompressor(Decompressor):
    """xz 解压器（制品库默认格式）"""

    def get_format(self) -> ArchiveFormat:
        return ArchiveFormat.XZ

    def reader(self, stream: BinaryIO) -> BinaryIO:
        return lzma.LZMAFile(stream, mode="rb")


class ZstdFrameReader(io.RawIOBase):
    """逐帧解压 zstd 流的只读包装

    可以连续读取多个帧。源数据在帧的中间结束时抛出 EOFError，与
    ``lzma.LZMAFile`` 对截断流的处理一致。
    """

    READ_SIZE = 64 * 1024

    def __init__(self, dctx: zstd.ZstdDecompressor, source: BinaryIO):
        super().__init__()
        self._dctx = dctx
        self._source = source
        self._decompressobj = dctx.decompressobj()
        self._in_frame = False
        self._pending = b""

    def readable(self) -> bool:
        return True

    def _feed(self, data: bytes) -> bytes:
        output = []
        while data:
            self._in_frame = True
            output.append(self._decompressobj.decompress(data))
            if not self._decompressobj.eof:
                break
            self._in_frame = False
            data = self._decompressobj.unused_data
            self._decompressobj = self._dctx.decompressobj()
        return b"".join(output)

    def readinto(self, buffer) -> int:
        while not self._pending:
            chunk = self._source.read(self.READ_SIZE)
            if not chunk:
                if self._in_frame:
                    raise EOFError("zstd 帧在结束标记之前终止")
                return 0
            self._pending = self._feed(chunk)

        size = min(len(buffer), len(self._pending))
        buffer[:size] = self._pending[:size]
        self._pending = self._pending[size:]
        return size


class ZstdDecompressor(Decompressor):
    """Zstd 解压器"""

    def __init__(self):
        self._dctx = zstd.ZstdDecompressor()

    def get_format(self) -> ArchiveFormat:
        return ArchiveFormat.ZSTD

    def reader(self, stream: BinaryIO) -> BinaryIO:
        return ZstdFrameReader(self._dctx, stream)

class DecompressorFactory:
    """解压器工厂"""

    @staticmethod
    def create(archive_format: ArchiveFormat) -> Decompressor:
        """创建解压器

        Raises:
            DecompressionError: 不支持的格式
        """
        if archive_format == ArchiveFormat.XZ:
            return XzDecompressor()
        if archive_format == ArchiveFormat.ZSTD:
            return ZstdDecompressor()
        raise DecompressionError(f"不支持的归档格式: {archive_format}")

    @staticmethod
    def get_available_formats() -> list[ArchiveFormat]:
        return [ArchiveFormat.XZ, ArchiveFormat.ZSTD]
