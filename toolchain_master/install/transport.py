"""
HTTP 传输层

创建所有网络请求共享的 requests.Session（代理、User-Agent），并把底层
传输异常归类为瞬时 / 永久错误。
"""

import requests

from ..config.schema import USER_AGENT, InstallerConfig

# 服务端限流或临时不可用时返回的状态码，可以重试
TRANSIENT_STATUS_CODES = frozenset({408, 429, 500, 502, 503, 504})


def create_session(config: InstallerConfig) -> requests.Session:
    """根据配置创建 HTTP 会话

    代理与令牌在运行期间只读，所有解析和下载请求共享同一个会话。
    """
    session = requests.Session()
    session.headers.update({"User-Agent": USER_AGENT})
    if config.proxy:
        session.proxies.update({"http": config.proxy, "https": config.proxy})
    return session


def is_transient_exception(exc: BaseException) -> bool:
    """连接错误、超时和不完整的分块传输视为瞬时错误"""
    return isinstance(
        exc,
        (
            requests.ConnectionError,
            requests.Timeout,
            requests.exceptions.ChunkedEncodingError,
        ),
    )


def is_transient_status(status_code: int) -> bool:
    return status_code in TRANSIENT_STATUS_CODES
