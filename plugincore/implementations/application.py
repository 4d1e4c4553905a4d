"""
默认应用模型

配置树、制品注册表与类加载
"""

import importlib
from pathlib import Path
from types import ModuleType
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Union

from ..abc.application import Application, ApplicationMetadata, ArtefactHandler
from ..logger import logger
from ..utils.helpers import class_id, deep_merge, flatten_config
from ..utils.types import ClassId, PluginName
from .dynamic import DynamicMethodRegistry

_MISSING = object()


class ConfigTree(dict):
    """可合并、可按点分路径查询的嵌套配置"""

    def merge(self, other: Mapping[str, Any]) -> "ConfigTree":
        """递归合并，other 中的值覆盖同名键"""
        deep_merge(self, other)
        return self

    def flatten(self) -> Dict[str, Any]:
        return flatten_config(self)

    def navigate(self, path: str, default: Any = None) -> Any:
        """按 "a.b.c" 路径取值，任一级不存在时返回 default"""
        node: Any = self
        for key in path.split("."):
            if not isinstance(node, Mapping):
                return default
            node = node.get(key, _MISSING)
            if node is _MISSING:
                return default
        return node


class DefaultApplication(Application):
    """默认应用实现"""

    def __init__(
        self,
        metadata: Optional[ApplicationMetadata] = None,
        config: Optional[Mapping[str, Any]] = None,
        source_roots: Iterable[Union[str, Path]] = (),
        config_file: Optional[Union[str, Path]] = None,
    ):
        """
        Args:
            metadata: 应用元数据
            config: 初始配置
            source_roots: 源码根目录，用于把变更文件映射为模块名
            config_file: 应用配置文件路径
        """
        self.metadata = metadata or ApplicationMetadata()
        self.config = ConfigTree()
        if config:
            self.config.merge(config)
        self.source_roots: List[Path] = [Path(p) for p in source_roots]
        self.config_file = Path(config_file) if config_file else None
        self.dynamic_methods = DynamicMethodRegistry()
        self._artefact_handlers: List[ArtefactHandler] = []
        self._artefacts: Dict[ClassId, type] = {}
        self._config_listeners: List[Callable[["DefaultApplication"], Any]] = []

    # ==================== 类加载 ====================

    def load_class(self, class_id_: ClassId) -> Optional[type]:
        if class_id_ in self._artefacts:
            return self._artefacts[class_id_]
        module_name, _, qualname = class_id_.rpartition(".")
        if not module_name:
            return None
        try:
            target: Any = importlib.import_module(module_name)
        except ImportError:
            logger.debug(f"无法加载类 {class_id_}: 模块 {module_name} 不存在")
            return None
        for part in qualname.split("."):
            target = getattr(target, part, None)
            if target is None:
                return None
        return target if isinstance(target, type) else None

    def module_name_for(self, path: Union[str, Path]) -> Optional[str]:
        path = Path(path).resolve()
        for root in self.source_roots:
            try:
                relative = path.relative_to(root.resolve())
            except ValueError:
                continue
            parts = list(relative.with_suffix("").parts)
            if parts and parts[-1] == "__init__":
                parts.pop()
            if parts:
                return ".".join(parts)
        return None

    # ==================== 制品 ====================

    def register_artefact_handler(self, handler: ArtefactHandler) -> None:
        self._artefact_handlers.append(handler)
        logger.debug(f"已注册制品类型 {handler.type}（插件 {handler.plugin_name}）")

    @property
    def artefact_handlers(self) -> List[ArtefactHandler]:
        return list(self._artefact_handlers)

    def get_artefact_type(self, cls: type) -> Optional[ArtefactHandler]:
        for handler in self._artefact_handlers:
            if handler.is_artefact(cls):
                return handler
        return None

    def add_artefact(self, cls: type, plugin_name: Optional[PluginName] = None) -> None:
        self._artefacts[class_id(cls)] = cls
        logger.debug(f"已注册制品 {class_id(cls)}（插件 {plugin_name}）")

    def is_artefact(self, cls: type) -> bool:
        return class_id(cls) in self._artefacts

    def artefacts_in_module(self, module: Union[str, ModuleType]) -> List[type]:
        module_name = module if isinstance(module, str) else module.__name__
        return [cls for cls in self._artefacts.values() if cls.__module__ == module_name]

    # ==================== 配置 ====================

    def add_config_listener(self, listener: Callable[["DefaultApplication"], Any]) -> None:
        self._config_listeners.append(listener)

    def config_changed(self) -> None:
        for listener in self._config_listeners:
            listener(self)
