"""
配置管理器

负责应用配置文件的解析：读取 YAML/JSON、替换 ${name} 变量、合并环境专属配置段
"""

import json
from pathlib import Path
from string import Template
from typing import Any, Dict, Mapping, Optional, Union

import aiofiles
import aiofiles.os
import yaml

from ..exceptions import ConfigReloadError
from ..logger import logger
from ..utils.helpers import deep_merge
from ..utils.types import ConfigDict

ENVIRONMENTS_KEY = "environments"


class ConfigManager:
    """配置管理器

    配置文件中可以用 environments.<环境名> 段覆盖根级配置：

        server:
          port: 8080
        environments:
          production:
            server:
              port: 80
    """

    async def parse(
        self,
        file: Union[str, Path],
        environment: Optional[str] = None,
        bindings: Optional[Mapping[str, Any]] = None,
    ) -> ConfigDict:
        """解析配置文件

        Args:
            file: 配置文件路径，.yml/.yaml 按 YAML 解析，.json 按 JSON 解析
            environment: 当前环境名，用于合并 environments 下对应的配置段
            bindings: 替换 ${name} 占位符的变量

        Returns:
            解析后的嵌套配置字典

        Raises:
            ConfigReloadError: 文件不存在、无法读取或格式错误时
        """
        file = Path(file)
        if not await aiofiles.os.path.exists(file):
            raise ConfigReloadError(f"配置文件不存在: {file}", file)

        try:
            async with aiofiles.open(file, "r", encoding="utf-8") as f:
                content = await f.read()
        except OSError as e:
            raise ConfigReloadError(f"读取配置文件 {file} 失败: {e}", file) from e

        if bindings:
            content = Template(content).safe_substitute(
                {k: "" if v is None else str(v) for k, v in bindings.items()}
            )

        try:
            if file.suffix == ".json":
                data = json.loads(content) if content.strip() else {}
            else:
                data = yaml.safe_load(content) or {}
        except (yaml.YAMLError, json.JSONDecodeError) as e:
            raise ConfigReloadError(f"解析配置文件 {file} 失败:\n{e}", file) from e

        if not isinstance(data, dict):
            raise ConfigReloadError(f"配置文件 {file} 的顶层必须是映射", file)

        return self._apply_environment(data, environment)

    @staticmethod
    def _apply_environment(data: Dict[str, Any], environment: Optional[str]) -> ConfigDict:
        environments = data.pop(ENVIRONMENTS_KEY, None)
        if not isinstance(environments, Mapping) or environment is None:
            return data
        block = environments.get(environment)
        if isinstance(block, Mapping):
            logger.debug(f"合并环境 {environment} 的专属配置")
            deep_merge(data, block)
        return data
