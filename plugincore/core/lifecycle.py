"""
生命周期协调

按加载顺序驱动插件经过各生命周期阶段，并处理热重载时的变更通知。
每个阶段都有明确的错误处理策略（PhasePolicy）。
"""

from pathlib import Path
from typing import (
    TYPE_CHECKING,
    Any,
    Callable,
    Dict,
    FrozenSet,
    List,
    Mapping,
    Optional,
    Set,
    Union,
)

from ..exceptions import (
    ConfigReloadError,
    PhaseExecutionError,
    PluginNotFound,
    PluginStateError,
    UnresolvedDependencyError,
)
from ..logger import logger
from ..utils.constants import (
    COMMON_TYPES,
    CONFIG_FILE_NAME,
    DEFAULT_ENVIRONMENT,
    Phase,
    PhasePolicy,
    PluginEvents,
    PluginState,
)
from ..utils.helpers import class_id, invoke_hook
from ..utils.types import ClassId, PluginName
from .observers import ObserverRegistry
from .plugins import PluginDescriptor
from .registry import PluginRegistry

if TYPE_CHECKING:
    from ..abc.application import Application, ApplicationContext, RuntimeConfiguration
    from ..managers.config_manager import ConfigManager

DEFAULT_PHASE_POLICIES: Dict[Phase, PhasePolicy] = {
    Phase.ARTEFACT_CONFIGURATION: PhasePolicy.FAIL_FAST,
    Phase.RUNTIME_CONFIGURATION: PhasePolicy.FAIL_FAST,
    Phase.DYNAMIC_METHODS: PhasePolicy.FAIL_FAST,
    Phase.POST_PROCESSING: PhasePolicy.BEST_EFFORT,
    Phase.STARTUP: PhasePolicy.FAIL_FAST,
    Phase.SHUTDOWN: PhasePolicy.BEST_EFFORT,
    Phase.CHANGE_NOTIFICATION: PhasePolicy.BEST_EFFORT,
}

PluginAction = Callable[[PluginDescriptor], Any]


class LifecycleCoordinator:
    """生命周期协调器

    Attributes:
        registry: 插件注册表
        config_manager: 配置文件变更时用于重新解析配置
        policies: 各阶段的错误处理策略
        application: 宿主应用
        application_context: 应用上下文
        environment: 当前运行环境
        initialised: load_plugins() 是否已完成
        is_shutdown: 是否已关闭
        current_reload_error: 最近一次重载失败的异常，成功后清除
        event_source: 投递事件时使用的事件源（通常是插件管理器）
        observers: 观察者注册表，变更事件经它扇出给观察者
    """

    def __init__(
        self,
        registry: PluginRegistry,
        config_manager: Optional["ConfigManager"] = None,
        phase_policies: Optional[Mapping[Phase, PhasePolicy]] = None,
        environment: str = DEFAULT_ENVIRONMENT,
        observers: Optional[ObserverRegistry] = None,
    ):
        self.registry = registry
        self.config_manager = config_manager
        self.policies: Dict[Phase, PhasePolicy] = dict(DEFAULT_PHASE_POLICIES)
        self.policies.update(phase_policies or {})
        self.application: Optional["Application"] = None
        self.application_context: Optional["ApplicationContext"] = None
        self.environment = environment
        self.initialised = False
        self.is_shutdown = False
        self.current_reload_error: Optional[BaseException] = None
        self.event_source: Any = None
        self.observers = observers

    # ==================== 通用 ====================

    def check_initialised(self) -> None:
        if not self.initialised:
            raise PluginStateError("插件管理器尚未初始化，必须先调用 load_plugins()")

    @property
    def active_profiles(self) -> Optional[FrozenSet[str]]:
        """当前激活的 profile；尚无应用上下文时为 None（不按 profile 过滤）"""
        context = self.application_context
        if context is None:
            return None
        return frozenset(getattr(context, "active_profiles", ()) or ())

    def enabled_plugins(self, reverse: bool = False) -> List[PluginDescriptor]:
        plugins = self.registry.plugins
        if reverse:
            plugins.reverse()
        profiles = self.active_profiles
        return [p for p in plugins if p.is_enabled(profiles)]

    async def _apply(
        self,
        phase: Phase,
        plugin: PluginDescriptor,
        action: PluginAction,
        errors: List[PhaseExecutionError],
    ) -> None:
        """按阶段策略对单个插件执行动作"""
        try:
            await invoke_hook(action, plugin)
        except Exception as e:
            error = PhaseExecutionError(
                f"插件 [{plugin.name}] 在阶段 {phase.value} 执行失败: {e}",
                phase.value,
                plugin.name,
                e,
            )
            if self.policies[phase] is PhasePolicy.FAIL_FAST:
                raise error from e
            logger.exception(error)
            errors.append(error)

    async def run_phase(
        self,
        phase: Phase,
        plugins: List[PluginDescriptor],
        action: PluginAction,
    ) -> List[PhaseExecutionError]:
        """对插件依次执行阶段动作

        Returns:
            尽力而为策略下收集到的错误
        """
        errors: List[PhaseExecutionError] = []
        for plugin in plugins:
            await self._apply(phase, plugin, action, errors)
        return errors

    # ==================== 初始化 ====================

    def initialise_plugins(self) -> None:
        """向所有已注册插件推送应用与上下文，标记为已初始化"""
        for plugin in self.registry.plugins:
            plugin.set_application(self.application)
            plugin.set_application_context(self.application_context)
            plugin.state = PluginState.INITIALIZED
        self.initialised = True

    # ==================== 阶段 ====================

    async def do_artefact_configuration(self) -> List[PhaseExecutionError]:
        """各插件向应用注册制品类型"""
        self.check_initialised()
        return await self.run_phase(
            Phase.ARTEFACT_CONFIGURATION,
            self.enabled_plugins(),
            lambda p: p.do_artefact_configuration(),
        )

    async def register_provided_artefacts(self) -> List[PhaseExecutionError]:
        """按逆序将各插件提供的制品类注册到应用与类索引"""
        self.check_initialised()
        return await self.run_phase(
            Phase.ARTEFACT_CONFIGURATION,
            self.enabled_plugins(reverse=True),
            self._register_artefacts_of,
        )

    def _register_artefacts_of(self, plugin: PluginDescriptor) -> None:
        for cls in plugin.provided_artefacts:
            if cls.__module__ == "__main__":
                logger.warning(
                    f"插件 [{plugin.name}] 提供的类 {cls.__qualname__} 定义在 __main__ 中，只支持模块内的类"
                )
                continue
            if self.application is not None and not self.application.is_artefact(cls):
                self.application.add_artefact(cls, plugin.name)
            self.registry.register_class(cls, plugin)

    async def do_runtime_configuration(
        self,
        runtime_config: "RuntimeConfiguration",
        name: Optional[PluginName] = None,
    ) -> List[PhaseExecutionError]:
        """向运行时配置注册 Bean 定义

        Args:
            runtime_config: 运行时配置
            name: 只配置该插件（先配置其依赖与已存在的 load_after 插件）；为 None 时配置全部插件

        Raises:
            PluginNotFound: 指定的插件不存在
            UnresolvedDependencyError: 指定插件的某个依赖不存在
        """
        self.check_initialised()
        phase = Phase.RUNTIME_CONFIGURATION

        def configure(p: PluginDescriptor):
            return p.do_with_runtime_configuration(runtime_config)

        if name is None:
            return await self.run_phase(phase, self.enabled_plugins(), configure)

        plugin = self.registry.get(name)
        if plugin is None:
            raise PluginNotFound(f"插件 [{name}] 不存在", name)
        profiles = self.active_profiles
        if not plugin.is_enabled(profiles):
            logger.debug(f"插件 [{plugin.name}] 未启用，跳过运行时配置")
            return []

        errors: List[PhaseExecutionError] = []
        configured: Set[PluginName] = set()
        await self._configure_dependencies(plugin, configure, configured, errors)

        for after_name in plugin.load_after_names:
            current = self.registry.get(after_name)
            if current is not None and current.name not in configured and current.is_enabled(profiles):
                configured.add(current.name)
                await self._apply(phase, current, configure, errors)

        if plugin.name not in configured:
            configured.add(plugin.name)
            await self._apply(phase, plugin, configure, errors)
        return errors

    async def _configure_dependencies(
        self,
        plugin: PluginDescriptor,
        configure: PluginAction,
        configured: Set[PluginName],
        errors: List[PhaseExecutionError],
        visiting: Optional[Set[PluginName]] = None,
    ) -> None:
        visiting = visiting if visiting is not None else {plugin.name}
        for dependency_name in plugin.dependency_names:
            current = self.registry.get(dependency_name)
            if current is None:
                raise UnresolvedDependencyError(
                    f"无法配置插件 [{plugin.name}]: 依赖 [{dependency_name}] 不存在",
                    plugin.name,
                    [dependency_name],
                )
            if current.name in configured or current.name in visiting:
                continue
            visiting.add(current.name)
            await self._configure_dependencies(current, configure, configured, errors, visiting)
            if not current.is_enabled(self.active_profiles):
                continue
            configured.add(current.name)
            await self._apply(Phase.RUNTIME_CONFIGURATION, current, configure, errors)

    async def do_dynamic_methods(self) -> List[PhaseExecutionError]:
        """重置常用类型上的动态方法，再由各插件安装"""
        self.check_initialised()
        if self.application is not None:
            self.application.dynamic_methods.clear(COMMON_TYPES)
        context = self.application_context
        return await self.run_phase(
            Phase.DYNAMIC_METHODS,
            self.enabled_plugins(),
            lambda p: p.do_with_dynamic_methods(context),
        )

    async def do_post_processing(
        self, context: Optional["ApplicationContext"] = None
    ) -> List[PhaseExecutionError]:
        """应用上下文创建后的后置处理"""
        self.check_initialised()
        context = context if context is not None else self.application_context
        return await self.run_phase(
            Phase.POST_PROCESSING,
            self.enabled_plugins(),
            lambda p: p.do_with_application_context(context),
        )

    async def on_startup(self, event: Dict[str, Any]) -> List[PhaseExecutionError]:
        """向具备启动能力的插件投递启动事件"""
        self.check_initialised()
        plugins = [p for p in self.enabled_plugins() if p.supports_startup]
        return await self.run_phase(Phase.STARTUP, plugins, lambda p: p.on_startup(event))

    async def shutdown(self) -> List[PhaseExecutionError]:
        """按加载逆序关闭插件

        即使有插件出错，所有插件最终都处于 SHUTDOWN 状态，管理器也会被标记为已关闭。
        """
        self.check_initialised()
        if self.is_shutdown:
            logger.debug("插件管理器已经关闭")
            return []

        try:
            errors = await self.run_phase(
                Phase.SHUTDOWN,
                self.enabled_plugins(reverse=True),
                lambda p: p.notify_of_event(PluginEvents.ON_SHUTDOWN, source=self.event_source),
            )
        finally:
            for plugin in self.registry.plugins:
                plugin.state = PluginState.SHUTDOWN
            self.is_shutdown = True

        logger.info("插件管理器已关闭")
        return errors

    # ==================== 变更通知 ====================

    async def _notify_change(
        self,
        plugin: PluginDescriptor,
        data: Any,
        notified: List[PluginDescriptor],
        errors: List[PhaseExecutionError],
    ) -> None:
        """通知插件本身，再扇出给它的观察者

        一次变更中每个插件最多收到一次事件。
        """
        targets = [(plugin, self.event_source)]
        if self.observers is not None:
            targets.extend(
                (observer, plugin)
                for observer in self.observers.enabled_observers_of(plugin, self.active_profiles)
            )

        for target, source in targets:
            if any(t is target for t in notified):
                continue
            notified.append(target)
            await self._apply(
                Phase.CHANGE_NOTIFICATION,
                target,
                lambda p, s=source: p.notify_of_event(PluginEvents.ON_CHANGE, data=data, source=s),
                errors,
            )

    async def inform_of_class_change(self, target: Union[type, ClassId]) -> List[PluginDescriptor]:
        """通知与变更类相关的插件

        类属于某插件注册的制品类型时只通知该插件；
        否则通知监视目录中存在该类模块源文件的插件。
        收到通知的插件的观察者也会收到同一事件。

        Returns:
            收到通知的插件
        """
        self.check_initialised()
        cls = target if isinstance(target, type) else None
        if cls is None and self.application is not None:
            cls = self.application.load_class(target)
        if cls is None:
            logger.debug(f"无法加载变更的类 {target}，忽略")
            return []

        notified: List[PluginDescriptor] = []
        errors: List[PhaseExecutionError] = []

        owner = None
        if self.application is not None:
            handler = self.application.get_artefact_type(cls)
            if handler is not None and handler.plugin_name:
                owner = self.registry.get(handler.plugin_name)
        if owner is not None and owner.is_enabled(self.active_profiles):
            await self._notify_change(owner, cls, notified, errors)
        else:
            for plugin in self.enabled_plugins():
                if any(p.source_file_for(cls.__module__).exists() for p in plugin.watch_patterns):
                    await self._notify_change(plugin, cls, notified, errors)

        if not notified:
            logger.debug(f"没有插件关注类 {class_id(cls)} 的变更")
        self.current_reload_error = errors[0] if errors else None
        return notified

    async def inform_of_file_change(self, path: Union[str, Path]) -> List[PluginDescriptor]:
        """处理文件变更

        应用配置文件变更时重新解析并合并配置；
        其他文件通知监视规则命中的插件及其观察者。

        Returns:
            收到通知的插件
        """
        self.check_initialised()
        path = Path(path)
        if self._is_config_file(path):
            if await self._reload_config(path):
                return await self.inform_plugins_of_config_change()
            return []

        changed: Optional[type] = None
        if self.application is not None:
            module_name = self.application.module_name_for(path)
            artefacts = self.application.artefacts_in_module(module_name) if module_name else []
            if artefacts:
                changed = artefacts[0]
                self.application.dynamic_methods.remove(changed)

        notified: List[PluginDescriptor] = []
        errors: List[PhaseExecutionError] = []
        for plugin in self.enabled_plugins():
            if plugin.has_interest_in_change(path):
                logger.debug(f"插件 [{plugin.name}] 关注的文件 {path} 发生变更")
                await self._notify_change(
                    plugin, changed if changed is not None else path, notified, errors
                )
        self.current_reload_error = errors[0] if errors else None
        return notified

    async def inform_plugins_of_config_change(self) -> List[PluginDescriptor]:
        """向所有启用的插件投递配置变更事件"""
        self.check_initialised()
        config = self.application.config if self.application is not None else None
        plugins = self.enabled_plugins()
        errors = await self.run_phase(
            Phase.CHANGE_NOTIFICATION,
            plugins,
            lambda p: p.notify_of_event(
                PluginEvents.ON_CONFIG_CHANGE, data=config, source=self.event_source
            ),
        )
        self.current_reload_error = errors[0] if errors else None
        failed = {e.plugin_name for e in errors}
        return [p for p in plugins if p.name not in failed]

    def _is_config_file(self, path: Path) -> bool:
        config_file = getattr(self.application, "config_file", None)
        if config_file is not None:
            return path.resolve() == Path(config_file).resolve()
        return path.name == CONFIG_FILE_NAME

    def _config_bindings(self) -> Dict[str, Any]:
        metadata = getattr(self.application, "metadata", None)
        return {
            "userHome": str(Path.home()),
            "appName": getattr(metadata, "name", None),
            "appVersion": getattr(metadata, "version", None),
            "environment": self.environment,
        }

    async def _reload_config(self, path: Path) -> bool:
        """重新解析配置文件并合并；失败时保留原配置并记录重载错误"""
        if self.config_manager is None or self.application is None:
            logger.debug(f"未配置配置管理器，忽略配置文件 {path} 的变更")
            return False
        try:
            parsed = await self.config_manager.parse(path, self.environment, self._config_bindings())
        except ConfigReloadError as e:
            logger.error(f"重新加载配置文件 {path} 失败，保留原配置: {e}")
            self.current_reload_error = e
            return False

        self.application.config.merge(parsed)
        self.application.config_changed()
        self.current_reload_error = None
        logger.info(f"配置文件 {path} 已重新加载")
        return True

    # ==================== 重载 ====================

    async def reload_plugin(
        self, plugin: PluginDescriptor, runtime_config: "RuntimeConfiguration"
    ) -> List[PhaseExecutionError]:
        """对单个插件重新执行制品配置、运行时配置、后置处理与动态方法"""
        self.check_initialised()
        errors: List[PhaseExecutionError] = []
        context = self.application_context

        await self._apply(
            Phase.ARTEFACT_CONFIGURATION, plugin, lambda p: p.do_artefact_configuration(), errors
        )
        await self._apply(
            Phase.RUNTIME_CONFIGURATION,
            plugin,
            lambda p: p.do_with_runtime_configuration(runtime_config),
            errors,
        )
        if context is not None:
            runtime_config.register_beans_with_context(context)
        await self._apply(
            Phase.POST_PROCESSING, plugin, lambda p: p.do_with_application_context(context), errors
        )
        await self._apply(
            Phase.DYNAMIC_METHODS, plugin, lambda p: p.do_with_dynamic_methods(context), errors
        )
        return errors
