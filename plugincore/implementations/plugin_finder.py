"""
插件查找器默认实现模块

包含插件目录扫描与核心插件发现
"""

import zipfile
from importlib.metadata import entry_points
from pathlib import Path
from typing import AsyncIterable, Iterable, List, Optional, Union

import aiofiles.os

from ..abc.plugins import PluginFinder
from ..core.plugins import Plugin, PluginSource
from ..exceptions import DiscoveryError
from ..logger import logger
from ..utils.constants import CORE_PLUGIN_ENTRY_POINT_GROUP, PluginSourceType


class DefaultPluginFinder(PluginFinder):
    """默认插件查找器

    在指定目录中扫描包目录（含 __init__.py）、ZIP 包与 .py 文件。
    同一目录下按名称排序，保证发现顺序稳定。

    Attributes:
        plugin_dirs: 插件目录列表
    """

    def __init__(self, plugin_dirs: Iterable[Union[str, Path]]) -> None:
        self.plugin_dirs = [Path(d) for d in plugin_dirs]

    async def find_plugins(self) -> List[PluginSource]:
        sources: List[PluginSource] = []

        for plugin_dir in self.plugin_dirs:
            if not await aiofiles.os.path.exists(plugin_dir):
                logger.debug(f"插件目录 {plugin_dir} 不存在，跳过")
                continue

            async for entry in self._scan_directory(plugin_dir):
                sources.append(entry)

        return sources

    async def _scan_directory(self, directory: Path) -> AsyncIterable[PluginSource]:
        """扫描目录查找插件

        Args:
            directory: 要扫描的目录

        Yields:
            插件源对象
        """
        try:
            entries = sorted(await aiofiles.os.scandir(directory), key=lambda e: e.name)
        except OSError as e:
            raise DiscoveryError(f"扫描插件目录 {directory} 失败:\n{e}", directory) from e

        for entry in entries:
            if entry.name.startswith((".", "_")):
                continue
            path = Path(entry.path)
            if entry.is_dir():
                if await aiofiles.os.path.exists(path / "__init__.py"):
                    yield PluginSource(PluginSourceType.DIRECTORY, path, entry.name)

            elif entry.is_file():
                if entry.name.endswith(".zip"):
                    if self._is_valid_zip_plugin(path):
                        yield PluginSource(PluginSourceType.ZIP_PACKAGE, path, entry.name[:-4])
                    else:
                        logger.warning(f"ZIP 文件 {path} 不是有效的插件包，跳过")

                elif entry.name.endswith(".py"):
                    yield PluginSource(PluginSourceType.FILE, path, entry.name[:-3])

    @staticmethod
    def _is_valid_zip_plugin(zip_path: Path) -> bool:
        """检查ZIP文件是否为有效的插件包"""
        try:
            with zipfile.ZipFile(zip_path, "r") as zf:
                return any(name.endswith("__init__.py") for name in zf.namelist())
        except (zipfile.BadZipFile, OSError):
            return False


class CorePluginFinder:
    """核心插件查找器

    核心插件来自显式提供的插件类，以及已安装发行包通过
    entry point 分组 "plugincore.core_plugins" 暴露的插件类。
    """

    def __init__(
        self,
        plugin_classes: Iterable[type] = (),
        entry_point_group: Optional[str] = CORE_PLUGIN_ENTRY_POINT_GROUP,
    ) -> None:
        self.plugin_classes = list(plugin_classes)
        self.entry_point_group = entry_point_group

    def find_plugin_classes(self) -> List[type]:
        """返回全部核心插件类

        Raises:
            DiscoveryError: entry point 无法加载或指向的不是插件类时
        """
        classes = list(self.plugin_classes)
        if not self.entry_point_group:
            return classes

        for ep in entry_points(group=self.entry_point_group):
            try:
                obj = ep.load()
            except Exception as e:
                raise DiscoveryError(f"加载核心插件入口 {ep.name} ({ep.value}) 失败: {e}", ep.value) from e
            if not (isinstance(obj, type) and issubclass(obj, Plugin)):
                raise DiscoveryError(f"核心插件入口 {ep.name} 指向的 {ep.value} 不是插件类", ep.value)
            if obj not in classes:
                logger.debug(f"通过入口 {ep.name} 发现核心插件 {obj.name}")
                classes.append(obj)
        return classes
