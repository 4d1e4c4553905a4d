"""
插件管理器

负责插件的发现、注册、排序与生命周期管理
"""

import asyncio
import threading
import time
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set, Union

from ..abc.application import Application, ApplicationContext, RuntimeConfiguration
from ..abc.plugins import PluginFinder, PluginLoader, PluginManager
from ..core.eviction import EvictionManager
from ..core.events import Event
from ..core.filters import PluginFilter, get_plugin_filter
from ..core.lifecycle import LifecycleCoordinator
from ..core.observers import ObserverRegistry
from ..core.plugins import PluginDescriptor, PluginSource
from ..core.registry import PluginRegistry
from ..core.resolver import DependencyResolver
from ..core.scheduler import DelayedLoadScheduler
from ..core.versions import CompatibilityChecker
from ..exceptions import PhaseExecutionError, PluginNotFound, PluginValidationError
from ..implementations.context import DefaultRuntimeConfiguration
from ..implementations.plugin_finder import CorePluginFinder, DefaultPluginFinder
from ..implementations.plugin_loader import DefaultPluginLoader
from ..implementations.watcher import FileChangeWatcher
from ..logger import logger
from ..meta import FRAMEWORK_VERSION
from ..utils.constants import (
    CORE_PLUGIN_ENTRY_POINT_GROUP,
    DEFAULT_DEBOUNCE_INTERVAL,
    DEFAULT_ENVIRONMENT,
    DEFAULT_MAX_IDLE_ROUNDS,
    CyclePolicy,
    Phase,
    PhasePolicy,
    PluginOrigin,
)
from ..utils.helpers import normalize_plugin_name
from ..utils.types import ClassId, PluginName
from .config_manager import ConfigManager


class DefaultPluginManager(PluginManager):
    """默认插件管理器

    拥有注册表、延迟队列、驱逐表与观察者表，对外提供统一的加载、查询与生命周期入口。
    加载与生命周期操作都是协程，在同一事件循环中顺序执行；
    文件监视线程的回调与这些操作通过同一把可重入锁串行化。

    Attributes:
        application: 宿主应用
        application_context: 应用上下文
        environment: 当前运行环境
        registry: 插件注册表
        observers: 观察者注册表
        coordinator: 生命周期协调器
        _lock: 线程锁
    """

    def __init__(
        self,
        application: Optional[Application] = None,
        plugin_dirs: Iterable[Union[str, Path]] = (),
        plugin_classes: Iterable[type] = (),
        core_plugin_classes: Iterable[type] = (),
        *,
        load_core_plugins: bool = True,
        core_entry_point_group: Optional[str] = CORE_PLUGIN_ENTRY_POINT_GROUP,
        environment: str = DEFAULT_ENVIRONMENT,
        plugin_filter: Optional[PluginFilter] = None,
        config_manager: Optional[ConfigManager] = None,
        cycle_policy: CyclePolicy = CyclePolicy.TOLERATE,
        phase_policies: Optional[Mapping[Phase, PhasePolicy]] = None,
        max_idle_rounds: int = DEFAULT_MAX_IDLE_ROUNDS,
        dev_mode: bool = False,
        debounce_interval: float = DEFAULT_DEBOUNCE_INTERVAL,
        finder: Optional[PluginFinder] = None,
        loader: Optional[PluginLoader] = None,
    ) -> None:
        """初始化插件管理器

        Args:
            application: 宿主应用
            plugin_dirs: 用户插件目录
            plugin_classes: 直接提供的用户插件类
            core_plugin_classes: 核心插件类
            load_core_plugins: 是否加载核心插件
            core_entry_point_group: 发现核心插件的 entry point 分组，为 None 时不扫描
            environment: 当前运行环境
            plugin_filter: 插件过滤器，缺省时由应用配置 plugins.include/exclude 决定
            config_manager: 配置管理器，用于配置文件变更后重新解析
            cycle_policy: 加载顺序图出现环时的策略
            phase_policies: 覆盖各生命周期阶段的错误处理策略
            max_idle_rounds: 延迟队列允许的最大连续无进展轮数
            dev_mode: 开发模式，加载完成后启动文件监视
            debounce_interval: 文件变更防抖时间（秒）
            finder: 用户插件查找器
            loader: 插件加载器
        """
        self.application = application
        self.application_context: Optional[ApplicationContext] = None
        self.parent_application_context: Optional[ApplicationContext] = None
        self.plugin_dirs = [Path(d) for d in plugin_dirs]
        self.plugin_classes = list(plugin_classes)
        self.load_core_plugins = load_core_plugins
        self.environment = environment
        self.plugin_filter = plugin_filter
        self.config_manager = config_manager or ConfigManager()
        self.dev_mode = dev_mode
        self.debounce_interval = debounce_interval

        self.core_finder = CorePluginFinder(core_plugin_classes, core_entry_point_group)
        self.finder = finder or DefaultPluginFinder(self.plugin_dirs)
        self.loader = loader or DefaultPluginLoader()

        self.registry = PluginRegistry()
        self.observers = ObserverRegistry()
        self.evictions = EvictionManager()
        self.resolver = DependencyResolver(cycle_policy)
        self.scheduler = DelayedLoadScheduler(self.registry, self._register_plugin, max_idle_rounds)
        self.coordinator = LifecycleCoordinator(
            self.registry,
            self.config_manager,
            phase_policies,
            environment,
            observers=self.observers,
        )
        self.coordinator.application = application
        self.coordinator.event_source = self

        self._lock = threading.RLock()
        self._watcher: Optional[FileChangeWatcher] = None

    # ==================== 加载 ====================

    async def load_plugins(self) -> List[PluginDescriptor]:
        """发现、注册并排序全部插件

        只在第一次调用时生效，之后直接返回已注册的插件。

        Raises:
            DiscoveryError: 插件源无法导入时
            PluginCycleError: 严格模式下加载顺序存在环时
        """
        if self.coordinator.initialised:
            return self.get_all_plugins()

        start = time.perf_counter()
        with self._lock:
            candidates = await self._discover()
            candidates = self._get_plugin_filter().filter_plugin_list(candidates)

            self.scheduler.schedule(candidates)
            self.evictions.apply(self.registry, self.observers)
            self.registry.reorder(self.resolver.sort(self.registry.plugins, self.registry.get))

            self.coordinator.application = self.application
            self.coordinator.application_context = self.application_context
            self.coordinator.initialise_plugins()

        elapsed = (time.perf_counter() - start) * 1000
        logger.info(f"共 {len(self.registry)} 个插件加载成功，耗时 {elapsed:.0f}ms")
        failed = self.registry.failed
        if failed:
            logger.warning(f"{len(failed)} 个插件加载失败: {[p.name for p in failed]}")

        if self.dev_mode:
            self.start_watching()
        return self.get_all_plugins()

    async def _discover(self) -> List[PluginDescriptor]:
        descriptors: List[PluginDescriptor] = []

        if self.load_core_plugins:
            for cls in self.core_finder.find_plugin_classes():
                descriptors.append(self._create_descriptor(cls, None, PluginOrigin.CORE))

        for cls in self.plugin_classes:
            descriptors.append(self._create_descriptor(cls, None, PluginOrigin.USER))

        for source in await self.finder.find_plugins():
            for cls in await self.loader.load_from_source(source):
                descriptors.append(self._create_descriptor(cls, source, PluginOrigin.USER))

        logger.debug(f"发现 {len(descriptors)} 个候选插件: {[d.name for d in descriptors]}")
        return descriptors

    def _create_descriptor(
        self, cls: type, source: Optional[PluginSource], origin: PluginOrigin
    ) -> PluginDescriptor:
        descriptor = PluginDescriptor(cls, source, origin, self.application)
        self._compatibility_checker().is_compatible(
            descriptor.name, descriptor.version, descriptor.framework_version
        )
        return descriptor

    def _compatibility_checker(self) -> CompatibilityChecker:
        metadata = getattr(self.application, "metadata", None)
        framework_version = getattr(metadata, "framework_version", None) or FRAMEWORK_VERSION
        return CompatibilityChecker(framework_version)

    def _get_plugin_filter(self) -> PluginFilter:
        if self.plugin_filter is not None:
            return self.plugin_filter
        config = self.application.config if self.application is not None else {}
        return get_plugin_filter(config)

    def _register_plugin(self, plugin: PluginDescriptor) -> bool:
        """注册插件：记录驱逐、登记观察者、加入注册表"""
        if not plugin.can_register(self.environment):
            logger.info(f"插件 [{plugin.name}] 未启用或不支持环境 {self.environment}，未加载")
            return False

        with self._lock:
            if self.registry.has(plugin.name):
                message = f"插件 [{plugin.name}] 与已注册的同名插件冲突，未加载"
                logger.error(message)
                self.registry.mark_failed(plugin, PluginValidationError(message, plugin.name))
                return False

            plugin.set_manager(self)
            self.evictions.record(plugin)
            self.observers.register(plugin)
            self.registry.add(plugin)

        logger.info(f"插件已注册: {plugin.name}@{plugin.version}")
        return True

    # ==================== 查询 ====================

    @property
    def is_initialised(self) -> bool:
        return self.coordinator.initialised

    @property
    def is_shutdown(self) -> bool:
        return self.coordinator.is_shutdown

    @property
    def current_reload_error(self) -> Optional[BaseException]:
        """最近一次重载失败的异常，重载成功后为 None"""
        return self.coordinator.current_reload_error

    def get_plugin(
        self, name: PluginName, version: Optional[str] = None
    ) -> Optional[PluginDescriptor]:
        with self._lock:
            return self.registry.get(name, version)

    def has_plugin(self, name: PluginName) -> bool:
        with self._lock:
            return self.registry.has(name)

    def get_plugin_for_class(self, cls: Union[type, ClassId]) -> Optional[PluginDescriptor]:
        with self._lock:
            return self.registry.for_class(cls)

    def get_all_plugins(self) -> List[PluginDescriptor]:
        with self._lock:
            return self.registry.plugins

    def get_user_plugins(self) -> List[PluginDescriptor]:
        with self._lock:
            return self.registry.user_plugins

    def get_failed_plugins(self) -> List[PluginDescriptor]:
        with self._lock:
            return self.registry.failed

    def get_failed_plugin(self, name: PluginName) -> Optional[PluginDescriptor]:
        with self._lock:
            return self.registry.get_failed(name)

    def get_plugin_observers(self, plugin: PluginDescriptor) -> List[PluginDescriptor]:
        with self._lock:
            return self.observers.observers_of(plugin)

    async def inform_observers(
        self, name: PluginName, event: Union[str, Event], data: Any = None
    ) -> List[PluginDescriptor]:
        """向观察某插件的插件投递事件

        Args:
            name: 被观察的插件名
            event: 事件名称或事件对象
            data: 事件数据（event 为事件对象时取其 data）

        Returns:
            实际收到事件的观察者
        """
        plugin = self.get_plugin(name)
        if plugin is None:
            logger.debug(f"插件 [{name}] 不存在，不通知观察者")
            return []
        if isinstance(event, Event):
            event, data = event.event, event.data
        return await self.observers.inform(
            plugin, event, data, self.coordinator.active_profiles
        )

    # ==================== 上下文 ====================

    def set_application(self, application: Optional[Application]) -> None:
        with self._lock:
            self.application = application
            self.coordinator.application = application
            for plugin in self.registry:
                plugin.set_application(application)

    def set_application_context(self, context: Optional[ApplicationContext]) -> None:
        with self._lock:
            self.application_context = context
            self.coordinator.application_context = context
            for plugin in self.registry:
                plugin.set_application_context(context)

    def set_parent_application_context(self, context: Optional[ApplicationContext]) -> None:
        with self._lock:
            self.parent_application_context = context
            for plugin in self.registry:
                plugin.set_parent_application_context(context)

    # ==================== 生命周期 ====================

    async def do_artefact_configuration(self) -> List[PhaseExecutionError]:
        with self._lock:
            return await self.coordinator.do_artefact_configuration()

    async def register_provided_artefacts(self) -> List[PhaseExecutionError]:
        with self._lock:
            return await self.coordinator.register_provided_artefacts()

    async def do_runtime_configuration(
        self,
        runtime_config: RuntimeConfiguration,
        name: Optional[PluginName] = None,
    ) -> List[PhaseExecutionError]:
        with self._lock:
            return await self.coordinator.do_runtime_configuration(runtime_config, name)

    async def do_dynamic_methods(self) -> List[PhaseExecutionError]:
        with self._lock:
            return await self.coordinator.do_dynamic_methods()

    async def do_post_processing(
        self, context: Optional[ApplicationContext] = None
    ) -> List[PhaseExecutionError]:
        with self._lock:
            return await self.coordinator.do_post_processing(context)

    async def on_startup(self, event: Dict[str, Any]) -> List[PhaseExecutionError]:
        with self._lock:
            return await self.coordinator.on_startup(event)

    async def shutdown(self) -> List[PhaseExecutionError]:
        """按加载逆序关闭插件并停止文件监视"""
        self.stop_watching()
        with self._lock:
            return await self.coordinator.shutdown()

    # ==================== 变更通知 ====================

    async def inform_of_class_change(self, cls: Union[type, ClassId]) -> List[PluginDescriptor]:
        with self._lock:
            return await self.coordinator.inform_of_class_change(cls)

    async def inform_of_file_change(self, path: Union[str, Path]) -> List[PluginDescriptor]:
        with self._lock:
            return await self.coordinator.inform_of_file_change(path)

    async def inform_plugins_of_config_change(self) -> List[PluginDescriptor]:
        with self._lock:
            return await self.coordinator.inform_plugins_of_config_change()

    async def refresh_plugin(self, name: PluginName) -> bool:
        """重新读取插件元数据；插件来自插件源时先重新导入源

        Returns:
            插件存在并已刷新时返回 True
        """
        with self._lock:
            plugin = self.registry.get(name)
            if plugin is None:
                return False

            fresh_class = None
            if plugin.source is not None:
                classes = await self.loader.reload_source(plugin.source)
                fresh_class = next(
                    (c for c in classes if normalize_plugin_name(c.name) == plugin.name), None
                )
                if fresh_class is None:
                    logger.warning(f"重新导入 {plugin.source.path} 后未找到插件 [{plugin.name}]")

            plugin.refresh(fresh_class)
            self.registry.register_class(plugin.plugin_class, plugin)
            return True

    async def reload_plugin(self, name: PluginName) -> List[PhaseExecutionError]:
        """对单个插件重新执行制品配置、运行时配置、后置处理与动态方法

        Raises:
            PluginNotFound: 插件不存在时
        """
        with self._lock:
            plugin = self.registry.get(name)
            if plugin is None:
                raise PluginNotFound(f"插件 [{name}] 不存在", name)
            runtime_config = DefaultRuntimeConfiguration(self.application_context)
            errors = await self.coordinator.reload_plugin(plugin, runtime_config)
        logger.info(f"插件已重载: {plugin.name}@{plugin.version}")
        return errors

    # ==================== 文件监视 ====================

    def _watched_directories(self) -> List[Path]:
        directories = list(self.plugin_dirs)
        for plugin in self.registry:
            directories.extend(pattern.directory for pattern in plugin.watch_patterns)
        config_file = getattr(self.application, "config_file", None)
        if config_file is not None:
            directories.append(Path(config_file).parent)
        directories.extend(getattr(self.application, "source_roots", []) or [])
        return directories

    def start_watching(self) -> None:
        """启动文件监视，变更经防抖后转交 inform_of_file_change"""
        if self._watcher is not None and self._watcher.is_running:
            return
        self._watcher = FileChangeWatcher(
            self._on_file_changes, self._watched_directories(), self.debounce_interval
        )
        self._watcher.start()

    def stop_watching(self) -> None:
        if self._watcher is not None:
            self._watcher.stop()
            self._watcher = None

    def _on_file_changes(self, paths: Set[Path]) -> None:
        """文件监视线程的回调"""
        with self._lock:
            asyncio.run(self._process_file_changes(paths))

    async def _process_file_changes(self, paths: Set[Path]) -> None:
        if not self.is_initialised or self.is_shutdown:
            return
        logger.info(f"检测到文件变更: {', '.join(p.name for p in sorted(paths))}")
        for path in sorted(paths):
            for plugin in self.registry:
                if plugin.source is not None and self._belongs_to_source(path, plugin.source):
                    await self.refresh_plugin(plugin.name)
                    await self.reload_plugin(plugin.name)
            await self.inform_of_file_change(path)

    @staticmethod
    def _belongs_to_source(path: Path, source: PluginSource) -> bool:
        path, source_path = path.resolve(), source.path.resolve()
        return path == source_path or source_path in path.parents
