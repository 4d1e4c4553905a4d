"""
插件注册表

名称索引、有序加载列表、类标识符索引与失败集合
"""

from typing import Dict, Iterator, List, Optional, Sequence, Union

from ..utils.constants import PluginOrigin, PluginState
from ..utils.helpers import class_id, normalize_plugin_name
from ..utils.types import ClassId, PluginName
from .plugins import PluginDescriptor
from .versions import is_valid_version


class PluginRegistry:
    """已注册插件的集合

    名称在注册后唯一；加载列表在加载期间只追加，
    之后仅被驱逐和最终排序修改。
    """

    def __init__(self) -> None:
        self._plugins: Dict[PluginName, PluginDescriptor] = {}
        self._order: List[PluginDescriptor] = []
        self._class_index: Dict[ClassId, PluginDescriptor] = {}
        self._failed: Dict[PluginName, PluginDescriptor] = {}

    # ==================== 注册 ====================

    def add(self, plugin: PluginDescriptor) -> None:
        """将插件加入注册表

        Raises:
            ValueError: 同名插件已注册时
        """
        if plugin.name in self._plugins:
            raise ValueError(f"插件 {plugin.name} 已注册")
        self._plugins[plugin.name] = plugin
        self._order.append(plugin)
        self._class_index[plugin.class_id] = plugin
        plugin.state = PluginState.REGISTERED

    def remove(self, plugin: PluginDescriptor) -> None:
        """从名称索引、加载列表与类索引中移除插件"""
        self._plugins.pop(plugin.name, None)
        self._order = [p for p in self._order if p is not plugin]
        for key in [k for k, v in self._class_index.items() if v is plugin]:
            del self._class_index[key]

    def mark_failed(self, plugin: PluginDescriptor, error: Optional[BaseException] = None) -> None:
        plugin.state = PluginState.FAILED
        plugin.error = error
        self._failed[plugin.name] = plugin

    def reorder(self, ordered: Sequence[PluginDescriptor]) -> None:
        """以排序结果替换加载列表

        Raises:
            ValueError: 排序结果与当前加载列表不是同一组插件时
        """
        if {id(p) for p in ordered} != {id(p) for p in self._order} or len(ordered) != len(self._order):
            raise ValueError("排序结果与已注册插件不一致")
        self._order = list(ordered)

    def register_class(self, cls: Union[type, ClassId], plugin: PluginDescriptor) -> None:
        """登记类标识符到插件的映射（插件类与其提供的制品类）"""
        self._class_index[class_id(cls)] = plugin

    # ==================== 查询 ====================

    def get(self, name: PluginName, version: Optional[str] = None) -> Optional[PluginDescriptor]:
        """按名称（可选版本要求）获取已注册插件"""
        plugin = self._plugins.get(normalize_plugin_name(name))
        if plugin is None:
            return None
        if version is not None and not is_valid_version(plugin.version, version):
            return None
        return plugin

    def has(self, name: PluginName) -> bool:
        return normalize_plugin_name(name) in self._plugins

    def for_class(self, cls: Union[type, ClassId]) -> Optional[PluginDescriptor]:
        return self._class_index.get(class_id(cls))

    def get_failed(self, name: PluginName) -> Optional[PluginDescriptor]:
        return self._failed.get(normalize_plugin_name(name))

    @property
    def plugins(self) -> List[PluginDescriptor]:
        """加载顺序的副本"""
        return list(self._order)

    @property
    def failed(self) -> List[PluginDescriptor]:
        return list(self._failed.values())

    @property
    def user_plugins(self) -> List[PluginDescriptor]:
        return [p for p in self._order if p.origin is PluginOrigin.USER]

    def __iter__(self) -> Iterator[PluginDescriptor]:
        return iter(list(self._order))

    def __len__(self) -> int:
        return len(self._order)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.has(name)
