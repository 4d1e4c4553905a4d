"""
驱逐管理

插件注册时记录其声明要驱逐的插件名，两轮注册完成后统一执行一次。
驱逐不级联：依赖被驱逐插件的插件仍保留在注册表中。
"""

from typing import Dict, List

from ..logger import logger
from ..utils.constants import PluginState
from ..utils.types import PluginName
from .observers import ObserverRegistry
from .plugins import PluginDescriptor
from .registry import PluginRegistry


class EvictionManager:
    """延迟驱逐"""

    def __init__(self) -> None:
        self._pending: Dict[PluginName, List[PluginName]] = {}
        self._evictors: Dict[PluginName, PluginDescriptor] = {}

    def record(self, evictor: PluginDescriptor) -> None:
        """登记插件声明的驱逐名单"""
        if evictor.eviction_names:
            self._pending[evictor.name] = list(evictor.eviction_names)
            self._evictors[evictor.name] = evictor

    @property
    def pending(self) -> Dict[PluginName, List[PluginName]]:
        return {name: list(names) for name, names in self._pending.items()}

    def apply(self, registry: PluginRegistry, observers: ObserverRegistry) -> List[PluginDescriptor]:
        """执行全部已登记的驱逐

        Returns:
            被驱逐的插件
        """
        evicted: List[PluginDescriptor] = []
        for evictor_name, names in self._pending.items():
            for name in names:
                evictee = registry.get(name)
                if evictee is None or evictee is self._evictors[evictor_name]:
                    continue
                registry.remove(evictee)
                observers.remove(evictee)
                evictee.state = PluginState.EVICTED
                evicted.append(evictee)
                logger.info(f"插件 {evictee.name} 被插件 {evictor_name} 驱逐")
        self._pending.clear()
        self._evictors.clear()
        return evicted
