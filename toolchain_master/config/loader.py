"""
配置加载器

负责从 YAML 文件加载默认配置、与命令行参数合并并进行验证。
"""

from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from pydantic import ValidationError
from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from .schema import InstallerConfig


class ConfigError(Exception):
    """配置错误基类"""
    pass


class ConfigValidationError(ConfigError):
    """配置验证错误"""

    def __init__(self, message: str, errors: List[Dict[str, Any]]):
        super().__init__(message)
        self.errors = errors

    def format_errors(self) -> str:
        """格式化错误信息为人类可读的格式"""
        formatted = []
        for error in self.errors:
            loc = " -> ".join(str(item) for item in error.get('loc', []))
            msg = error.get('msg', '未知错误')
            input_val = error.get('input', '')

            if loc:
                formatted.append(f"字段 '{loc}': {msg}")
                if input_val not in ('', None):
                    formatted.append(f"  输入值: {input_val}")
            else:
                formatted.append(f"根级别: {msg}")

        return "\n".join(formatted)


def _plain_errors(exc: ValidationError) -> List[Dict[str, Any]]:
    # ctx 里可能包含异常对象，无法序列化
    return [
        {'loc': list(err.get('loc', [])), 'msg': err.get('msg', ''), 'type': err.get('type', ''),
         'input': err.get('input')}
        for err in exc.errors()
    ]


class ConfigLoader:
    """配置加载器"""

    def __init__(self):
        self.yaml = YAML(typ='safe')
        self.yaml.default_flow_style = False

    def load_raw(self, config_path: Union[str, Path]) -> Dict[str, Any]:
        """读取 YAML 文件为字典（不做 schema 验证）

        Raises:
            ConfigError: 文件不存在、格式不对或解析失败
        """
        config_path = Path(config_path)

        if not config_path.exists():
            raise ConfigError(f"配置文件不存在: {config_path}")

        if not config_path.is_file():
            raise ConfigError(f"配置路径不是文件: {config_path}")

        if config_path.suffix.lower() not in ['.yaml', '.yml']:
            raise ConfigError(f"配置文件必须是 .yaml 或 .yml 格式: {config_path}")

        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                raw_data = self.yaml.load(f)
        except YAMLError as e:
            raise ConfigError(f"YAML 解析错误: {e}") from e
        except OSError as e:
            raise ConfigError(f"文件读取错误: {e}") from e

        if raw_data is None:
            return {}

        if not isinstance(raw_data, dict):
            raise ConfigError("配置文件根级别必须是对象/字典格式")

        # rustup_home 相对于配置文件所在目录
        home = raw_data.get('rustup_home')
        if isinstance(home, str) and home and not home.startswith(('~', '$')) and not Path(home).is_absolute():
            raw_data['rustup_home'] = str((config_path.parent / home).resolve())

        return dict(raw_data)

    def load_from_dict(self, data: Dict[str, Any]) -> InstallerConfig:
        """从字典加载配置

        Raises:
            ConfigValidationError: 配置验证错误
        """
        try:
            return InstallerConfig.from_dict(data)
        except ValidationError as e:
            raise ConfigValidationError("配置验证失败", _plain_errors(e)) from e

    def load_from_file(
        self,
        config_path: Optional[Union[str, Path]] = None,
        overrides: Optional[Dict[str, Any]] = None,
    ) -> InstallerConfig:
        """从文件加载配置，并用 ``overrides`` 中非 None 的值覆盖

        Args:
            config_path: 配置文件路径，None 表示只使用 overrides
            overrides: 命令行传入的参数

        Returns:
            InstallerConfig: 验证后的配置实例
        """
        data: Dict[str, Any] = self.load_raw(config_path) if config_path else {}
        for key, value in (overrides or {}).items():
            if value is None:
                continue
            # 命令行未给出的列表参数不覆盖文件中的值
            if isinstance(value, (list, tuple)) and not value and key in data:
                continue
            data[key] = list(value) if isinstance(value, tuple) else value
        return self.load_from_dict(data)

    def save_to_file(self, config: InstallerConfig, output_path: Union[str, Path]) -> None:
        """保存配置到文件

        Raises:
            ConfigError: 保存错误
        """
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        try:
            with open(output_path, 'w', encoding='utf-8') as f:
                self.yaml.dump(config.to_dict(), f)
        except (OSError, YAMLError) as e:
            raise ConfigError(f"保存配置文件失败: {e}") from e

    def validate_file(self, config_path: Union[str, Path]) -> List[Dict[str, Any]]:
        """验证配置文件并返回错误列表，空列表表示验证通过"""
        try:
            self.load_from_file(config_path)
            return []
        except ConfigValidationError as e:
            return e.errors
        except ConfigError as e:
            return [{
                'loc': [],
                'msg': str(e),
                'type': 'config_error'
            }]


# 全局加载器实例
config_loader = ConfigLoader()


def load_config(
    config_path: Optional[Union[str, Path]] = None,
    overrides: Optional[Dict[str, Any]] = None,
) -> InstallerConfig:
    """便捷函数：加载配置文件并合并命令行参数"""
    return config_loader.load_from_file(config_path, overrides)


def validate_config(config_path: Union[str, Path]) -> List[Dict[str, Any]]:
    """便捷函数：验证配置文件"""
    return config_loader.validate_file(config_path)


def save_config(config: InstallerConfig, output_path: Union[str, Path]) -> None:
    """便捷函数：保存配置文件"""
    config_loader.save_to_file(config, output_path)
