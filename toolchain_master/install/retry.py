"""
重试策略

以装饰器的形式为网络操作提供有上限的指数退避重试。只有标记为
``transient`` 的 StageError 会被重试，404、归档损坏等永久错误立即抛出。
"""

import functools
import time
from dataclasses import dataclass, field
from typing import Callable, TypeVar

from ..utils.logging import warning
from .context import StageError

F = TypeVar("F", bound=Callable)


@dataclass
class RetryPolicy:
    """重试策略

    Attributes:
        attempts: 最大尝试次数（含第一次）
        backoff: 退避基数（秒），第 n 次重试前等待 ``backoff * 2**(n-1)``
        sleep: 等待函数，测试中可替换
    """
    attempts: int = 3
    backoff: float = 1.0
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False)

    def delay_for(self, attempt: int) -> float:
        return self.backoff * (2 ** (attempt - 1))

    def __call__(self, func: F) -> F:
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            attempt = 1
            while True:
                try:
                    return func(*args, **kwargs)
                except StageError as e:
                    if not e.transient or attempt >= self.attempts:
                        raise
                    delay = self.delay_for(attempt)
                    warning(f"{e}（第 {attempt}/{self.attempts} 次尝试失败，{delay:.1f} 秒后重试）", stage=e.stage.value.upper())
                    self.sleep(delay)
                    attempt += 1

        return wrapper  # type: ignore[return-value]
