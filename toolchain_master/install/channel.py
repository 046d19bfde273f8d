"""
通道解析器

把提交引用解析为具体的 40 位哈希，并确定它所属的发布通道。通道可以由
调用者显式指定；否则先读取制品库中的 ``package-version`` 文件，缺失时再
逐个探测 ``rust-src`` 归档。

本模块不做任何重试，重试由调用方的 RetryPolicy 统一处理。
"""

import subprocess
from typing import Callable, List, Optional, Sequence, Tuple

import requests

from ..config.schema import InstallerConfig
from ..utils.logging import resolve_logger
from .context import ResolveError
from .models import COMMIT_PATTERN, SUPPORTED_CHANNELS, Channel, CommitRef
from .transport import is_transient_exception, is_transient_status

GITHUB_API = "https://api.github.com"
SHA_MEDIA_TYPE = "application/vnd.github.VERSION.sha"

# git 命令执行器: 参数列表 -> 标准输出
GitRunner = Callable[[Sequence[str]], str]


def run_git(args: Sequence[str]) -> str:
    """执行 git 命令并返回标准输出"""
    completed = subprocess.run(
        ["git", *args],
        capture_output=True,
        text=True,
        timeout=60,
        check=True,
    )
    return completed.stdout


class ChannelResolver:
    """通道解析器"""

    def __init__(
        self,
        config: InstallerConfig,
        session: requests.Session,
        git_runner: Optional[GitRunner] = None,
    ):
        self.config = config
        self.session = session
        self.git_runner = git_runner or run_git

    def resolve(self, commit: CommitRef, override: Optional[Channel] = None) -> Tuple[str, Channel]:
        """解析提交和通道

        Args:
            commit: 提交引用（可能是 latest 哨兵）
            override: 显式指定的通道，给出时不做任何探测

        Returns:
            (40 位提交哈希, 通道)

        Raises:
            ResolveError: 提交不存在、通道无法确定或元数据服务失败
        """
        concrete = self.resolve_commit(commit)
        if override is not None:
            resolve_logger.debug(f"使用指定通道 `{override}`，跳过通道探测")
            return concrete, override
        return concrete, self.detect_channel(concrete)

    # ------------------------------------------------------------------
    # 提交解析
    # ------------------------------------------------------------------

    def resolve_commit(self, commit: CommitRef) -> str:
        if commit.is_latest:
            return self.fetch_latest_commit()
        if not commit.is_resolved:
            raise ResolveError(
                f"`{commit}` 不是完整的提交哈希，需要全部 40 位十六进制小写字符",
                commit=str(commit),
            )
        return commit.value  # type: ignore[return-value]

    def fetch_latest_commit(self) -> str:
        """获取上游默认分支的 HEAD 提交"""
        resolve_logger.info("正在获取 HEAD 提交哈希...")
        if self.config.use_git:
            try:
                sha = self._latest_via_git()
                resolve_logger.info(f"HEAD 提交: {sha}")
                return sha
            except ResolveError as e:
                resolve_logger.warning(f"无法通过 git 获取 HEAD 提交，改用 HTTP: {e}")

        sha = self._latest_via_http()
        resolve_logger.info(f"HEAD 提交: {sha}")
        return sha

    def _latest_via_git(self) -> str:
        url = f"https://github.com/{self.config.upstream_repo}.git"
        try:
            output = self.git_runner(["ls-remote", url, "HEAD"])
        except (OSError, subprocess.SubprocessError) as e:
            raise ResolveError(f"git ls-remote 执行失败: {e}") from e

        sha = output[:40]
        if not COMMIT_PATTERN.match(sha):
            raise ResolveError("git ls-remote 没有返回提交哈希")
        return sha

    def _latest_via_http(self) -> str:
        url = f"{GITHUB_API}/repos/{self.config.upstream_repo}/commits/HEAD"
        headers = {"Accept": SHA_MEDIA_TYPE}
        if self.config.github_token:
            headers["Authorization"] = f"token {self.config.github_token}"

        response = self._request("GET", url, headers=headers)
        if response.status_code == 403:
            remaining = response.headers.get("X-RateLimit-Remaining", "0")
            if remaining.strip() in ("", "0"):
                raise ResolveError("GitHub API 请求频率超出限制，可以通过 --github-token 提高限额")
            raise ResolveError(f"GitHub API 返回 403（剩余额度 {remaining}）")
        if response.status_code != 200:
            raise ResolveError(
                f"GET {url} 返回状态 {response.status_code}",
                transient=is_transient_status(response.status_code),
            )

        sha = response.text.strip()
        if not COMMIT_PATTERN.match(sha):
            raise ResolveError(f"无法把 `{sha}` 解析为提交哈希")
        return sha

    # ------------------------------------------------------------------
    # 通道探测
    # ------------------------------------------------------------------

    def detect_channel(self, commit: str) -> Channel:
        """探测提交所属的通道"""
        resolve_logger.info(f"正在探测工具链 `{commit}` 的通道...")
        prefix = self.config.store_prefix

        url = f"{prefix}/{commit}/package-version"
        response = self._request("GET", url, commit=commit)
        if response.status_code == 200:
            label = response.text.strip()
            try:
                channel = Channel.parse(label)
            except ValueError as e:
                raise ResolveError(f"package-version 内容无法识别: {label!r}", commit=commit) from e
            resolve_logger.info(f"通道: {channel}")
            return channel
        if response.status_code not in (403, 404):
            raise ResolveError(
                f"GET {url} 返回意外状态 {response.status_code}",
                commit=commit,
                transient=is_transient_status(response.status_code),
            )

        # 较早的构建没有 package-version，逐个探测 rust-src 归档
        hits: List[str] = []
        for label in SUPPORTED_CHANNELS:
            probe = f"{prefix}/{commit}/rust-src-{label}.{self.config.archive_format.extension}"
            response = self._request("HEAD", probe, commit=commit)
            if response.status_code == 200:
                hits.append(label)
            elif response.status_code not in (403, 404):
                raise ResolveError(
                    f"HEAD {probe} 返回意外状态 {response.status_code}",
                    commit=commit,
                    transient=is_transient_status(response.status_code),
                )

        if not hits:
            raise ResolveError(f"工具链 `{commit}` 在任何通道中都不存在", commit=commit)
        if len(hits) > 1:
            raise ResolveError(
                f"工具链 `{commit}` 的通道不明确: {', '.join(hits)}；请使用 --channel 指定",
                commit=commit,
            )

        resolve_logger.info(f"通道: {hits[0]}")
        return Channel.parse(hits[0])

    def _request(self, method: str, url: str, commit: Optional[str] = None, **kwargs) -> requests.Response:
        try:
            return self.session.request(method, url, timeout=self.config.timeout, **kwargs)
        except requests.RequestException as e:
            raise ResolveError(
                f"{method} {url} 请求失败: {e}",
                commit=commit,
                transient=is_transient_exception(e),
            ) from e
