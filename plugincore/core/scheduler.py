"""
延迟加载调度

第一轮：核心插件先于用户插件，依赖与 load_after 都已满足的插件立即注册，其余入队。
第二轮：反复检查队首插件，能注册则注册，可能被队列中其他插件满足则移到队尾，
否则判定为永久失败。一整轮既没有注册也没有失败即视为无进展，
连续无进展轮数达到上限时，剩余插件全部判定为失败。
"""

from typing import Callable, List, Sequence

from ..exceptions import UnresolvedDependencyError
from ..logger import logger
from ..utils.constants import DEFAULT_MAX_IDLE_ROUNDS, PluginOrigin
from ..utils.types import PluginName
from .plugins import PluginDescriptor
from .registry import PluginRegistry
from .versions import is_valid_version

# 注册回调：返回 False 表示插件被跳过（未启用或不支持当前环境）
Registrar = Callable[[PluginDescriptor], bool]


class DelayedLoadScheduler:
    """两轮注册调度器"""

    def __init__(
        self,
        registry: PluginRegistry,
        registrar: Registrar,
        max_idle_rounds: int = DEFAULT_MAX_IDLE_ROUNDS,
    ):
        """
        Args:
            registry: 插件注册表
            registrar: 执行实际注册的回调
            max_idle_rounds: 允许的最大连续无进展轮数
        """
        if max_idle_rounds < 1:
            raise ValueError("max_idle_rounds 必须大于等于 1")
        self.registry = registry
        self.registrar = registrar
        self.max_idle_rounds = max_idle_rounds
        self.delayed: List[PluginDescriptor] = []

    def schedule(self, candidates: Sequence[PluginDescriptor]) -> None:
        """执行两轮注册"""
        core = [p for p in candidates if p.origin is PluginOrigin.CORE]
        user = [p for p in candidates if p.origin is not PluginOrigin.CORE]
        for plugin in core + user:
            self.attempt_load(plugin)
        self.load_delayed()

    # ==================== 第一轮 ====================

    def attempt_load(self, plugin: PluginDescriptor) -> None:
        """依赖与前置插件均已就绪时立即注册，否则加入延迟队列"""
        if self.are_dependencies_resolved(plugin) and self.are_none_to_load_before(plugin):
            self.registrar(plugin)
        else:
            self.delayed.append(plugin)

    def are_dependencies_resolved(self, plugin: PluginDescriptor) -> bool:
        return not self.unresolved_dependencies(plugin)

    def unresolved_dependencies(self, plugin: PluginDescriptor) -> List[PluginName]:
        return [
            name
            for name, required in plugin.dependencies.items()
            if self.registry.get(name, required) is None
        ]

    def are_none_to_load_before(self, plugin: PluginDescriptor) -> bool:
        return all(self.registry.has(name) for name in plugin.load_after_names)

    # ==================== 第二轮 ====================

    def load_delayed(self) -> None:
        """处理延迟队列直到清空"""
        idle_rounds = 0
        while self.delayed:
            progressed = False
            for _ in range(len(self.delayed)):
                if not self.delayed:
                    break
                plugin = self.delayed.pop(0)
                if self.are_dependencies_resolved(plugin):
                    if self.has_valid_plugins_to_load_before(plugin):
                        self.delayed.append(plugin)
                    else:
                        self.registrar(plugin)
                        progressed = True
                elif any(self.is_dependent_on(plugin, other) for other in self.delayed):
                    self.delayed.append(plugin)
                else:
                    self._fail(plugin)
                    progressed = True

            idle_rounds = 0 if progressed else idle_rounds + 1
            if self.delayed and idle_rounds >= self.max_idle_rounds:
                logger.debug(f"延迟队列连续 {idle_rounds} 轮无进展，剩余插件判定为失败")
                while self.delayed:
                    self._fail(self.delayed.pop(0))

    def has_valid_plugins_to_load_before(self, plugin: PluginDescriptor) -> bool:
        """插件的某个 load_after 目标仍在队列中且还有可能注册时返回 True"""
        for queued in self.delayed:
            if queued.name in plugin.load_after_names:
                return self.has_delayed_dependencies(queued) or self.are_dependencies_resolved(queued)
        return False

    def has_delayed_dependencies(self, plugin: PluginDescriptor) -> bool:
        """插件的某个依赖仍在延迟队列中"""
        return any(
            queued.name in plugin.dependencies for queued in self.delayed
        )

    @staticmethod
    def is_dependent_on(plugin: PluginDescriptor, dependency: PluginDescriptor) -> bool:
        """dependency 的名称与版本能否满足 plugin 的某个依赖"""
        if dependency.name not in plugin.dependencies:
            return False
        return is_valid_version(dependency.version, plugin.dependencies[dependency.name])

    def _fail(self, plugin: PluginDescriptor) -> None:
        unresolved = self.unresolved_dependencies(plugin)
        if unresolved:
            message = f"插件 [{plugin.name}] 无法加载，因为其依赖 {unresolved} 无法解析"
        else:
            message = (
                f"插件 [{plugin.name}] 无法加载，延迟队列无进展，"
                f"其 load_after 目标 {plugin.load_after_names} 无法先于它加载"
            )
        self.registry.mark_failed(
            plugin, UnresolvedDependencyError(message, plugin.name, unresolved)
        )
        logger.error(message)
