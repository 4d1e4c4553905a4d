"""
动态方法注册表

记录插件在动态方法阶段为各类型安装的行为。安装时同时挂到类型上（内建类型除外），
移除时一并撤销。
"""

from typing import Callable, Dict, Iterable, Optional

from ..logger import logger


class DynamicMethodRegistry:
    """类型 -> {方法名 -> 可调用对象} 的注册表"""

    def __init__(self) -> None:
        self._methods: Dict[type, Dict[str, Callable]] = {}

    def install(self, target: type, name: str, func: Callable) -> None:
        """为类型安装动态方法

        内建类型（如 str、int）无法设置属性，只记录在注册表中，可通过 lookup 获取。
        """
        self._methods.setdefault(target, {})[name] = func
        try:
            setattr(target, name, func)
        except TypeError:
            logger.debug(f"类型 {target.__name__} 不可修改，方法 {name} 仅记录在注册表中")

    def lookup(self, target: type, name: str) -> Optional[Callable]:
        """按 MRO 查找已安装的动态方法"""
        for klass in getattr(target, "__mro__", (target,)):
            method = self._methods.get(klass, {}).get(name)
            if method is not None:
                return method
        return None

    def methods_for(self, target: type) -> Dict[str, Callable]:
        return dict(self._methods.get(target, {}))

    def remove(self, target: type) -> None:
        """撤销为类型安装的全部动态方法"""
        methods = self._methods.pop(target, {})
        for name in methods:
            if target.__dict__.get(name) is methods[name]:
                delattr(target, name)

    def clear(self, targets: Iterable[type]) -> None:
        for target in targets:
            self.remove(target)

    def __contains__(self, target: type) -> bool:
        return bool(self._methods.get(target))
