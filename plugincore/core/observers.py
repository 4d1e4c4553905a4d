"""
观察者注册表

被观察插件名 -> 观察者集合，"*" 键表示观察所有插件
"""

from typing import Any, Dict, Iterable, List, Optional

from ..logger import logger
from ..utils.constants import WILDCARD
from ..utils.helpers import normalize_plugin_name
from ..utils.types import PluginName
from .plugins import PluginDescriptor


class ObserverRegistry:
    """维护观察关系并计算某插件的观察者"""

    def __init__(self) -> None:
        # 用列表保存，保证投递顺序与注册顺序一致
        self._observers: Dict[PluginName, List[PluginDescriptor]] = {}

    def register(self, observer: PluginDescriptor) -> None:
        """按插件声明的观察名单登记观察者"""
        for name in observer.observed_plugin_names:
            bucket = self._observers.setdefault(name, [])
            if not any(o is observer for o in bucket):
                bucket.append(observer)

    def remove(self, plugin: PluginDescriptor) -> None:
        """从所有观察集合中移除插件"""
        for name in list(self._observers):
            remaining = [o for o in self._observers[name] if o is not plugin]
            if remaining:
                self._observers[name] = remaining
            else:
                del self._observers[name]

    def observers_of(self, subject: PluginDescriptor) -> List[PluginDescriptor]:
        """获取观察某插件的全部插件

        特定观察者与通配观察者的并集，排除插件自身；每次返回新列表。
        """
        result: List[PluginDescriptor] = []
        for observer in self._observers.get(subject.name, []) + self._observers.get(WILDCARD, []):
            if observer is subject or any(o is observer for o in result):
                continue
            result.append(observer)
        return result

    def enabled_observers_of(
        self, subject: PluginDescriptor, active_profiles: Optional[Iterable[str]] = None
    ) -> List[PluginDescriptor]:
        """在当前 profile 下启用的观察者；被观察插件未启用时为空"""
        if not subject.is_enabled(active_profiles):
            return []
        return [o for o in self.observers_of(subject) if o.is_enabled(active_profiles)]

    def observed_names(self) -> List[PluginName]:
        return list(self._observers)

    async def inform(
        self,
        subject: PluginDescriptor,
        event_kind: str,
        data: Any = None,
        active_profiles: Optional[Iterable[str]] = None,
    ) -> List[PluginDescriptor]:
        """向某插件的观察者投递事件

        被观察插件在当前 profile 下未启用时不投递；未启用的观察者被跳过。

        Returns:
            实际收到事件的观察者
        """
        if not subject.is_enabled(active_profiles):
            logger.debug(f"插件 [{subject.name}] 未启用，跳过观察者通知")
            return []

        delivered = []
        for observer in self.enabled_observers_of(subject, active_profiles):
            await observer.notify_of_event(event_kind, data=data, source=subject)
            delivered.append(observer)
        return delivered

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and normalize_plugin_name(name) in self._observers
