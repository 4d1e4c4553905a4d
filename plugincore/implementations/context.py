"""
默认注入容器

DefaultRuntimeConfiguration 收集插件声明的 Bean 定义，
DefaultApplicationContext 在 refresh 时按依赖顺序创建 Bean。
"""

import logging
import time
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Optional

from ..abc.application import ApplicationContext, BeanSpec, RuntimeConfiguration
from ..logger import logger

startup_logger = logging.getLogger("plugincore.startup")


class DefaultRuntimeConfiguration(RuntimeConfiguration):
    """按注册顺序保存 Bean 定义，同名定义后者覆盖前者"""

    def __init__(self, parent: Optional[ApplicationContext] = None):
        self.parent = parent
        self._specs: Dict[str, BeanSpec] = {}

    def register_bean(self, name: str, factory: Callable[..., Any], *args, **kwargs) -> BeanSpec:
        depends_on = list(kwargs.pop("depends_on", []) or [])
        spec = BeanSpec(name, factory, tuple(args), dict(kwargs), depends_on)
        if name in self._specs:
            logger.debug(f"Bean 定义 {name} 被覆盖")
        self._specs[name] = spec
        return spec

    def get_bean_spec(self, name: str) -> Optional[BeanSpec]:
        return self._specs.get(name)

    def bean_names(self) -> List[str]:
        return list(self._specs)

    def register_beans_with_context(self, context: ApplicationContext) -> None:
        for spec in self._specs.values():
            context.register_bean_spec(spec)


class DefaultApplicationContext(ApplicationContext):
    """简单的单例 Bean 容器"""

    def __init__(
        self,
        active_profiles: Iterable[str] = (),
        parent: Optional[ApplicationContext] = None,
    ):
        self.active_profiles: FrozenSet[str] = frozenset(active_profiles)
        self.parent = parent
        self._specs: Dict[str, BeanSpec] = {}
        self._beans: Dict[str, Any] = {}
        self._creating: List[str] = []
        self.active = False

    def register_bean_spec(self, spec: BeanSpec) -> None:
        self._specs[spec.name] = spec

    def register_singleton(self, name: str, bean: Any) -> None:
        """直接注册已创建的 Bean"""
        self._beans[name] = bean

    def contains_bean(self, name: str) -> bool:
        if name in self._beans or name in self._specs:
            return True
        return self.parent is not None and self.parent.contains_bean(name)

    def get_bean(self, name: str) -> Any:
        if name in self._beans:
            return self._beans[name]
        if name in self._specs:
            return self._create_bean(self._specs[name])
        if self.parent is not None:
            return self.parent.get_bean(name)
        raise KeyError(f"Bean 不存在: {name}")

    def _create_bean(self, spec: BeanSpec) -> Any:
        if spec.name in self._creating:
            chain = " -> ".join(self._creating + [spec.name])
            raise RuntimeError(f"Bean 存在循环依赖: {chain}")

        self._creating.append(spec.name)
        try:
            for dependency in spec.depends_on:
                self.get_bean(dependency)
            start = time.perf_counter()
            bean = spec.factory(*spec.args, **spec.kwargs)
            elapsed = (time.perf_counter() - start) * 1000
            startup_logger.debug(f"创建 Bean {spec.name} 耗时 {elapsed:.2f}ms")
        finally:
            self._creating.pop()

        self._beans[spec.name] = bean
        return bean

    def refresh(self) -> None:
        start = time.perf_counter()
        for name, spec in self._specs.items():
            if name not in self._beans:
                self._create_bean(spec)
        self.active = True
        elapsed = (time.perf_counter() - start) * 1000
        startup_logger.debug(f"应用上下文刷新完成，共 {len(self._beans)} 个 Bean，耗时 {elapsed:.2f}ms")

    def close(self) -> None:
        for bean in reversed(list(self._beans.values())):
            closer = getattr(bean, "close", None)
            if callable(closer):
                closer()
        self._beans.clear()
        self.active = False
