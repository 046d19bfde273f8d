"""
命令行接口测试

使用 typer.testing.CliRunner 调用命令；只测试不访问网络的路径
（试运行且显式指定通道）。
"""

import io
import json
from types import SimpleNamespace

import pytest
from rich.console import Console
from ruamel.yaml import YAML
from typer.testing import CliRunner

from toolchain_master import __version__
from toolchain_master.cli.commands import install as install_module
from toolchain_master.cli.main import app
from toolchain_master.install.context import FetchError
from toolchain_master.install.models import CommitRef, CommitStatus, InstallResult, Stage

COMMIT = "4fb54ed484e2239a3e9eff3be17df00d2a162be3"
OTHER = "0123456789abcdef0123456789abcdef01234567"
HOST = "x86_64-unknown-linux-gnu"
SERVER = "https://ci-artifacts.rust-lang.org"


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def env(rustup_home):
    return {"RUSTUP_HOME": str(rustup_home), "GITHUB_TOKEN": ""}


class TestRootCommand:
    """根命令测试"""

    def test_version(self, runner):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.stdout

    def test_info(self, runner):
        result = runner.invoke(app, ["info"])
        assert result.exit_code == 0
        assert "tar.xz" in result.stdout
        assert "tar.zst" in result.stdout

    def test_example(self, runner, tmp_path):
        output = tmp_path / "example.yaml"
        result = runner.invoke(app, ["example", "-o", str(output)])

        assert result.exit_code == 0
        data = YAML(typ='safe').load(output.read_text(encoding="utf-8"))
        assert data["targets"] == ["wasm32-unknown-unknown"]
        assert data["keep_going"] is True


class TestInstallCommand:
    """install 命令测试"""

    def test_dry_run_prints_urls(self, runner, env, rustup_home):
        result = runner.invoke(
            app,
            ["install", COMMIT, "--dry-run", "--channel", "nightly", "--host", HOST, "-t", "wasm32-unknown-unknown"],
            env=env,
        )

        assert result.exit_code == 0, result.output
        lines = [line for line in result.stdout.splitlines() if line.startswith("https://")]
        assert lines == [
            f"{SERVER}/rustc-builds/{COMMIT}/rustc-nightly-{HOST}.tar.xz",
            f"{SERVER}/rustc-builds/{COMMIT}/rust-std-nightly-{HOST}.tar.xz",
            f"{SERVER}/rustc-builds/{COMMIT}/rust-std-nightly-wasm32-unknown-unknown.tar.xz",
        ]
        assert list((rustup_home / "toolchains").iterdir()) == []

    def test_dry_run_alt_zstd(self, runner, env):
        result = runner.invoke(
            app,
            ["install", COMMIT, "--dry-run", "--channel", "nightly", "--host", HOST, "--alt", "--format", "zst",
             "--no-defaults", "-c", "rust-src"],
            env=env,
        )

        assert result.exit_code == 0, result.output
        assert f"{SERVER}/rustc-builds-alt/{COMMIT}/rust-src-nightly.tar.zst" in result.stdout

    def test_invalid_commit_fails(self, runner, env):
        result = runner.invoke(app, ["install", "abc123", "--dry-run", "--channel", "nightly", "--host", HOST], env=env)
        assert result.exit_code == 1
        assert "error:" in result.output

    def test_keep_going_reports_each_failure(self, runner, env):
        result = runner.invoke(
            app,
            ["install", "bad1", COMMIT, "bad2", "-k", "--dry-run", "--channel", "nightly", "--host", HOST],
            env=env,
        )
        assert result.exit_code == 1
        assert result.output.count("error:") == 2
        assert f"rustc-nightly-{HOST}.tar.xz" in result.stdout

    def test_name_with_multiple_commits(self, runner, env):
        result = runner.invoke(
            app,
            ["install", COMMIT, OTHER, "--name", "master", "--dry-run", "--channel", "nightly", "--host", HOST],
            env=env,
        )
        assert result.exit_code == 1
        assert "--name" in result.stdout

    def test_invalid_channel(self, runner, env):
        result = runner.invoke(app, ["install", COMMIT, "--channel", "weekly", "--host", HOST], env=env)
        assert result.exit_code == 1
        assert "配置验证失败" in result.stdout

    def test_config_file_defaults(self, runner, env, tmp_path):
        config = tmp_path / "defaults.yaml"
        config.write_text("targets:\n  - wasm32-unknown-unknown\nchannel: nightly\n", encoding="utf-8")

        result = runner.invoke(
            app,
            ["install", COMMIT, "--dry-run", "--host", HOST, "--config", str(config)],
            env=env,
        )

        assert result.exit_code == 0, result.output
        assert "rust-std-nightly-wasm32-unknown-unknown.tar.xz" in result.stdout


class TestValidateCommand:
    """validate 命令测试"""

    def test_valid(self, runner, tmp_path):
        config = tmp_path / "defaults.yaml"
        config.write_text("jobs: 2\nkeep_going: true\n", encoding="utf-8")

        result = runner.invoke(app, ["validate", "-c", str(config)])
        assert result.exit_code == 0
        assert "验证通过" in result.stdout

    def test_invalid_json(self, runner, tmp_path):
        config = tmp_path / "defaults.yaml"
        config.write_text("jobs: 100\nunknown_key: 1\n", encoding="utf-8")

        result = runner.invoke(app, ["validate", "-c", str(config), "--json"])

        assert result.exit_code == 1
        data = json.loads(result.stdout)
        assert data["valid"] is False
        assert data["error_count"] == 2
        assert sorted(e["loc"][0] for e in data["errors"]) == ["jobs", "unknown_key"]

    def test_missing_file(self, runner, tmp_path):
        result = runner.invoke(app, ["validate", "-c", str(tmp_path / "nope.yaml")])
        assert result.exit_code == 1


class TestFailureReport:
    """失败报告输出"""

    def test_prints_cause_and_sibling_failures(self, monkeypatch):
        buffer = io.StringIO()
        facade = SimpleNamespace(console=Console(file=buffer, width=200, color_system=None))
        monkeypatch.setattr(install_module, "get_output_facade", lambda: facade)

        first = FetchError("缺少组件 `rust-analyzer`", url="u1", status=404)
        first.__cause__ = OSError("connection closed")
        second = FetchError("缺少组件 `clippy`", url="u2", status=404)
        result = InstallResult(
            commit=CommitRef.parse(COMMIT),
            status=CommitStatus.FAILED,
            resolved_commit=COMMIT,
            stage=Stage.FETCH,
            error=first,
            errors=[first, second],
        )

        install_module._print_failure(result)

        output = buffer.getvalue()
        assert "error:" in output
        assert "caused by: connection closed" in output
        assert "also failed: 缺少组件 `clippy`" in output
        assert output.count("rust-analyzer") == 1
