"""
主机三元组检测

根据当前解释器所在平台推断 Rust 目标三元组。
"""

import platform
from typing import Optional

_ARCH_ALIASES = {
    "amd64": "x86_64",
    "x86_64": "x86_64",
    "x64": "x86_64",
    "arm64": "aarch64",
    "aarch64": "aarch64",
    "i386": "i686",
    "i686": "i686",
    "x86": "i686",
    "armv7l": "armv7",
    "ppc64le": "powerpc64le",
    "s390x": "s390x",
    "riscv64": "riscv64gc",
}


def _libc_suffix() -> str:
    libc, _ = platform.libc_ver()
    if libc == "glibc":
        return "gnu"
    # libc_ver 在 musl 上返回空字符串
    return "musl" if not libc else "gnu"


def host_triple(system: Optional[str] = None, machine: Optional[str] = None) -> str:
    """推断主机三元组

    Args:
        system: 操作系统名称（默认 ``platform.system()``）
        machine: CPU 架构名称（默认 ``platform.machine()``）

    Returns:
        str: 例如 ``x86_64-unknown-linux-gnu``

    Raises:
        ValueError: 无法识别的平台
    """
    system = (system or platform.system()).lower()
    machine = (machine or platform.machine()).lower()
    arch = _ARCH_ALIASES.get(machine)
    if arch is None:
        raise ValueError(f"无法识别的 CPU 架构: {machine}")

    if system == "linux":
        abi = _libc_suffix()
        if arch == "armv7":
            return f"armv7-unknown-linux-{abi}eabihf"
        return f"{arch}-unknown-linux-{abi}"
    if system == "darwin":
        return f"{arch}-apple-darwin"
    if system == "windows":
        return f"{arch}-pc-windows-msvc"
    if system == "freebsd":
        return f"{arch}-unknown-freebsd"

    raise ValueError(f"无法识别的操作系统: {system}")
