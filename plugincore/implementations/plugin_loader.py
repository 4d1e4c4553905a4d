"""
插件加载器默认实现模块

负责从不同源导入模块并找出其中的插件类
"""

import importlib
import importlib.util
import inspect
import sys
from pathlib import Path
from types import ModuleType
from typing import Dict, List, Type

from ..abc.plugins import PluginLoader
from ..core.plugins import Plugin, PluginSource
from ..exceptions import DiscoveryError, PluginNotFound
from ..logger import logger
from ..utils.constants import PluginSourceType


class DefaultPluginLoader(PluginLoader):
    """默认插件加载器

    任何导入失败（语法错误、导入错误、文件缺失）都会抛出 DiscoveryError；
    模块中没有插件类时只记录警告。
    """

    def __init__(self) -> None:
        self._modules: Dict[str, PluginSource] = {}

    async def load_from_source(self, source: PluginSource) -> List[Type[Plugin]]:
        """从源加载插件类"""
        module = self._import(source, reload=False)
        try:
            return self._find_plugin_classes(module, source.module_name)
        except PluginNotFound:
            logger.warning(f"{source.path} 中没有找到插件类")
            return []

    async def reload_source(self, source: PluginSource) -> List[Type[Plugin]]:
        """重新导入插件源，返回新的插件类"""
        module = self._import(source, reload=True)
        return self._find_plugin_classes(module, source.module_name)

    def _import(self, source: PluginSource, reload: bool) -> ModuleType:
        module_name = source.module_name
        if not source.path.exists():
            raise DiscoveryError(f"插件源 {source.path} 不存在", source.path)

        if source.source_type == PluginSourceType.DIRECTORY:
            location, search_path = source.path / "__init__.py", source.path.parent
        elif source.source_type == PluginSourceType.FILE:
            location, search_path = source.path, source.path.parent
        elif source.source_type == PluginSourceType.ZIP_PACKAGE:
            location, search_path = None, source.path
        else:
            raise DiscoveryError(f"未知的插件源类型: {source.source_type}", source.path)

        path_entry = str(search_path)
        sys.path.insert(0, path_entry)
        try:
            if module_name in sys.modules and (reload or module_name in self._modules):
                module = importlib.reload(sys.modules[module_name])
            elif location is None:
                module = importlib.import_module(module_name)
            else:
                module = self._exec_from_location(module_name, location)
        except DiscoveryError:
            raise
        except Exception as e:
            sys.modules.pop(module_name, None)
            raise DiscoveryError(f"从源({source.path})加载插件失败: {e}", source.path) from e
        finally:
            # ZIP 包中的子模块可能延迟导入，保留其路径直到 cleanup
            if source.source_type != PluginSourceType.ZIP_PACKAGE and path_entry in sys.path:
                sys.path.remove(path_entry)

        self._modules[module_name] = source
        return module

    @staticmethod
    def _exec_from_location(module_name: str, location: Path) -> ModuleType:
        spec = importlib.util.spec_from_file_location(module_name, location)
        if spec is None or spec.loader is None:
            raise DiscoveryError(f"无法为 {location} 创建导入规范", location)

        module = importlib.util.module_from_spec(spec)
        sys.modules[module_name] = module
        spec.loader.exec_module(module)
        return module

    def _find_plugin_classes(self, module: ModuleType, module_name: str) -> List[Type[Plugin]]:
        """在模块中查找插件类

        模块定义了 __all__ 或 __plugin__ 时只检查其中列出的名称，
        否则检查模块中定义的全部类。

        Raises:
            PluginNotFound: 当未找到插件类时
        """
        export_names = getattr(module, "__plugin__", None) or getattr(module, "__all__", None)

        if export_names:
            if isinstance(export_names, (str, type)):
                export_names = [export_names]
            candidates = []
            for item in export_names:
                if isinstance(item, str):
                    candidates.append(getattr(module, item, None))
                elif inspect.isclass(item):
                    candidates.append(item)
                else:
                    logger.warning(f"忽略 {module_name} 导出列表中的非字符串/类元素: {item}")
        else:
            candidates = [
                obj
                for _, obj in inspect.getmembers(module, inspect.isclass)
                if obj.__module__ == module.__name__
            ]

        plugin_classes = [obj for obj in candidates if self._is_plugin_class(obj)]
        if not plugin_classes:
            raise PluginNotFound(f"在模块 {module_name} 中未找到插件类")
        return plugin_classes

    @staticmethod
    def _is_plugin_class(obj: object) -> bool:
        return (
            inspect.isclass(obj)
            and issubclass(obj, Plugin)
            and not obj.__dict__.get("__abstract__", False)
            and not inspect.isabstract(obj)
        )
