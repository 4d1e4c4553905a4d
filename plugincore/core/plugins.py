"""
插件核心类

包含插件基类、插件元类、插件源与插件描述符
"""

import logging
import sys
from abc import ABC, ABCMeta
from dataclasses import dataclass
from fnmatch import fnmatch
from pathlib import Path, PurePath
from typing import (
    TYPE_CHECKING,
    Any,
    Dict,
    FrozenSet,
    Iterable,
    List,
    Optional,
    Tuple,
    Union,
)

from ..exceptions import PluginValidationError
from ..logger import logger
from ..utils.constants import PluginEvents, PluginOrigin, PluginSourceType, PluginState
from ..utils.helpers import (
    as_dependency_map,
    as_name_list,
    class_id,
    invoke_hook,
    normalize_plugin_name,
    plugin_name_from_class,
)
from ..utils.types import ClassId, PluginName, PluginVersion, VersionRange
from .capabilities import (
    ChangeAware,
    ConfigChangeAware,
    ContextConfigurer,
    DynamicMethodsProvider,
    RuntimeConfigurable,
    ShutdownAware,
    StartupAware,
)
from .events import Event

if TYPE_CHECKING:
    from ..abc.application import (
        Application,
        ApplicationContext,
        ArtefactHandler,
        RuntimeConfiguration,
    )

_GLOB_CHARS = "*?["


@dataclass
class PluginSource:
    """插件源类"""

    source_type: PluginSourceType
    path: Path
    module_name: str

    def cleanup(self) -> None:
        """清理插件源资源"""
        if self.source_type == PluginSourceType.ZIP_PACKAGE:
            zip_path = str(self.path)
            if zip_path in sys.path:
                sys.path.remove(zip_path)

            stale = [
                name
                for name, module in sys.modules.items()
                if getattr(module, "__file__", None) and zip_path in module.__file__
            ]
            for name in stale:
                del sys.modules[name]


@dataclass(frozen=True)
class WatchPattern:
    """被监视资源的匹配规则

    由 "file:./app/services/**/*Service.py" 这样的模式解析而来：
    通配符之前的部分为监视目录，最后一段为文件名匹配模式。

    Attributes:
        pattern: 原始模式
        directory: 监视目录
        file_glob: 文件名匹配模式
        recursive: 是否匹配子目录中的文件
    """

    pattern: str
    directory: Path
    file_glob: str
    recursive: bool = False

    @classmethod
    def parse(cls, pattern: str, base_dir: Optional[Path] = None) -> "WatchPattern":
        raw = pattern[len("file:"):] if pattern.startswith("file:") else pattern
        parts = PurePath(raw).parts
        base_dir = base_dir or Path.cwd()

        wildcard_at = next(
            (i for i, part in enumerate(parts) if any(c in part for c in _GLOB_CHARS)),
            None,
        )
        if wildcard_at is None:
            directory = Path(*parts[:-1]) if len(parts) > 1 else Path(".")
            file_glob = parts[-1] if parts else "*"
            recursive = False
        else:
            directory = Path(*parts[:wildcard_at]) if wildcard_at else Path(".")
            file_glob = parts[-1]
            recursive = len(parts) - wildcard_at > 1

        if not directory.is_absolute():
            directory = base_dir / directory
        return cls(pattern, directory, file_glob, recursive)

    @property
    def extension(self) -> str:
        """文件扩展名，如 ".py"；模式未限定扩展名时为空串"""
        suffix = PurePath(self.file_glob).suffix
        return "" if any(c in suffix for c in _GLOB_CHARS) else suffix

    def matches(self, path: Union[str, Path]) -> bool:
        """判断文件是否匹配该规则"""
        path = Path(path).resolve()
        try:
            relative = path.relative_to(self.directory.resolve())
        except ValueError:
            return False
        if not self.recursive and len(relative.parts) != 1:
            return False
        return fnmatch(path.name, self.file_glob)

    def source_file_for(self, module_name: str) -> Path:
        """推算模块在监视目录下对应的源文件路径"""
        return self.directory / (module_name.replace(".", "/") + (self.extension or ".py"))


class PluginMeta(ABCMeta):
    """插件元类

    校验并规范化插件类声明的元数据：
    名称缺省时由类名推导（"HibernatePlugin" -> "hibernate"），连字符名称转为驼峰；
    版本必填；依赖、加载顺序、驱逐与观察声明统一为列表/字典。
    """

    def __init__(
        cls, name: str, bases: Tuple[type, ...], attrs: Dict[str, Any]
    ) -> None:
        super().__init__(name, bases, attrs)
        if attrs.get("__abstract__") or getattr(cls, "__abstractmethods__", None):
            return

        if not getattr(cls, "name", None):
            cls.name = plugin_name_from_class(name)
        if not getattr(cls, "version", None):
            raise PluginValidationError(
                f"插件 {name} 必须有一个非空的 'version' 属性", str(cls.name)
            )

        cls.name = normalize_plugin_name(str(cls.name))
        cls.version = str(cls.version)

        cls.depends_on = as_dependency_map(getattr(cls, "depends_on", None))
        cls.load_after = as_name_list(getattr(cls, "load_after", None))
        cls.load_before = as_name_list(getattr(cls, "load_before", None))
        cls.evicts = as_name_list(getattr(cls, "evicts", None))
        cls.observe = as_name_list(getattr(cls, "observe", None))
        cls.profiles = frozenset(getattr(cls, "profiles", None) or ())
        cls.environments = frozenset(getattr(cls, "environments", None) or ())

        watched = getattr(cls, "watched_resources", None) or []
        cls.watched_resources = [watched] if isinstance(watched, str) else list(watched)
        cls.artefacts = list(getattr(cls, "artefacts", None) or [])
        cls.provided_artefacts = list(getattr(cls, "provided_artefacts", None) or [])

        if cls.name in cls.observe:
            logger.debug(f"插件 {cls.name} 声明观察自身，已忽略")
            cls.observe = [n for n in cls.observe if n != cls.name]


class Plugin(ABC, metaclass=PluginMeta):
    """插件基类

    子类通过类属性声明元数据，通过继承能力接口
    （RuntimeConfigurable、StartupAware 等）参与生命周期阶段。
    """

    __abstract__ = True

    # * 必需属性
    version: PluginVersion

    # * 可选属性
    name: PluginName
    depends_on: Dict[PluginName, Optional[str]] = {}
    load_after: List[PluginName] = []
    load_before: List[PluginName] = []
    evicts: List[PluginName] = []
    observe: List[PluginName] = []
    profiles: FrozenSet[str] = frozenset()
    environments: FrozenSet[str] = frozenset()
    enabled: bool = True
    framework_version: Optional[VersionRange] = None
    watched_resources: List[str] = []
    artefacts: List["ArtefactHandler"] = []
    provided_artefacts: List[type] = []

    def __init__(self) -> None:
        self.logger = logging.getLogger(f"Plugin.{self.name}")
        self.application: Optional["Application"] = None
        self.application_context: Optional["ApplicationContext"] = None
        self.manager: Any = None

    @property
    def config(self) -> Dict[str, Any]:
        """应用配置中 plugins.<name> 下的配置段"""
        if self.application is None:
            return {}
        return self.application.config.navigate(f"plugins.{self.name}", {}) or {}

    def __str__(self) -> str:
        return f"{self.name}@{self.version}"


class PluginDescriptor:
    """插件描述符

    包装插件类与实例，保存声明的元数据与生命周期状态。
    描述符在发现阶段创建一次，此后原地更新。
    """

    def __init__(
        self,
        plugin_class: type,
        source: Optional[PluginSource] = None,
        origin: PluginOrigin = PluginOrigin.USER,
        application: Optional["Application"] = None,
        base_dir: Optional[Path] = None,
    ):
        """
        Args:
            plugin_class: Plugin 子类
            source: 插件源，直接提供的类与核心插件为 None
            origin: 插件来源
            application: 宿主应用
            base_dir: 解析相对监视模式的基准目录，缺省为当前目录
        """
        if not isinstance(plugin_class, type) or not issubclass(plugin_class, Plugin):
            raise PluginValidationError(f"{plugin_class!r} 不是 Plugin 的子类")

        self.plugin_class = plugin_class
        self.source = source
        self.origin = origin
        self.base_dir = base_dir
        self.state = PluginState.UNREGISTERED
        self.error: Optional[BaseException] = None
        self.manager: Any = None
        self.application_context: Optional["ApplicationContext"] = None
        self.parent_context: Optional["ApplicationContext"] = None

        self.instance: Plugin = plugin_class()
        self.application: Optional["Application"] = None
        if application is not None:
            self.set_application(application)
        self._read_metadata()

    def _read_metadata(self) -> None:
        cls = self.plugin_class
        self.name: PluginName = cls.name
        self.version: PluginVersion = cls.version
        self.dependencies: Dict[PluginName, Optional[str]] = dict(cls.depends_on)
        self.load_after_names: List[PluginName] = list(cls.load_after)
        self.load_before_names: List[PluginName] = list(cls.load_before)
        self.eviction_names: List[PluginName] = list(cls.evicts)
        self.observed_plugin_names: List[PluginName] = list(cls.observe)
        self.profiles: FrozenSet[str] = cls.profiles
        self.environments: FrozenSet[str] = cls.environments
        self.framework_version: Optional[VersionRange] = cls.framework_version
        self.artefacts: List["ArtefactHandler"] = list(cls.artefacts)
        self.provided_artefacts: List[type] = list(cls.provided_artefacts)
        self.watch_patterns: List[WatchPattern] = [
            WatchPattern.parse(pattern, self.base_dir) for pattern in cls.watched_resources
        ]

    # ==================== 元数据 ====================

    @property
    def dependency_names(self) -> List[PluginName]:
        return list(self.dependencies)

    def get_dependent_version(self, name: PluginName) -> Optional[str]:
        """获取对某依赖的版本要求"""
        return self.dependencies.get(normalize_plugin_name(name))

    @property
    def class_id(self) -> ClassId:
        return class_id(self.plugin_class)

    @property
    def is_core(self) -> bool:
        return self.origin is PluginOrigin.CORE

    def is_enabled(self, active_profiles: Optional[Iterable[str]] = None) -> bool:
        """判断插件是否启用

        配置项 plugins.<name>.enabled 优先于类属性 enabled；
        声明了 profiles 时，需与激活的 profile 有交集（未提供激活 profile 时不做限制）。
        """
        enabled = self.plugin_class.enabled
        if self.application is not None:
            configured = self.application.config.navigate(f"plugins.{self.name}.enabled")
            if configured is not None:
                enabled = bool(configured)
        if not enabled:
            return False
        if active_profiles is None or not self.profiles:
            return True
        return bool(self.profiles.intersection(active_profiles))

    def supports_environment(self, environment: Optional[str]) -> bool:
        return not self.environments or environment is None or environment in self.environments

    def can_register(self, environment: Optional[str]) -> bool:
        """插件启用且支持当前环境时才可注册"""
        return self.is_enabled() and self.supports_environment(environment)

    def has_interest_in_change(self, path: Union[str, Path]) -> bool:
        """判断文件变更是否命中插件的监视规则"""
        return any(pattern.matches(path) for pattern in self.watch_patterns)

    def refresh(self, plugin_class: Optional[type] = None) -> None:
        """重新读取元数据

        Args:
            plugin_class: 重新导入后的插件类；提供时替换插件类并重建插件实例
        """
        if plugin_class is not None and plugin_class is not self.plugin_class:
            self.plugin_class = plugin_class
            self.instance = plugin_class()
            self.set_manager(self.manager)
            self.set_application(self.application)
            self.set_application_context(self.application_context)
        self._read_metadata()
        logger.debug(f"插件 [{self.name}] 的元数据已刷新")

    # ==================== 上下文推送 ====================

    def set_manager(self, manager: Any) -> None:
        self.manager = manager
        self.instance.manager = manager

    def set_application(self, application: Optional["Application"]) -> None:
        self.application = application
        self.instance.application = application

    def set_application_context(self, context: Optional["ApplicationContext"]) -> None:
        self.application_context = context
        self.instance.application_context = context

    def set_parent_application_context(self, context: Optional["ApplicationContext"]) -> None:
        self.parent_context = context

    # ==================== 生命周期钩子 ====================

    def do_artefact_configuration(self) -> None:
        """将插件声明的制品类型处理器注册到应用"""
        if self.application is None:
            return
        for handler in self.artefacts:
            handler.plugin_name = self.name
            self.application.register_artefact_handler(handler)

    async def do_with_runtime_configuration(self, runtime_config: "RuntimeConfiguration") -> None:
        if isinstance(self.instance, RuntimeConfigurable):
            await invoke_hook(self.instance.do_with_runtime_configuration, runtime_config)

    async def do_with_dynamic_methods(self, context: Optional["ApplicationContext"]) -> None:
        if isinstance(self.instance, DynamicMethodsProvider):
            await invoke_hook(self.instance.do_with_dynamic_methods, context)

    async def do_with_application_context(self, context: Optional["ApplicationContext"]) -> None:
        if isinstance(self.instance, ContextConfigurer):
            await invoke_hook(self.instance.do_with_application_context, context)

    @property
    def supports_startup(self) -> bool:
        return isinstance(self.instance, StartupAware)

    async def on_startup(self, event: Dict[str, Any]) -> None:
        if isinstance(self.instance, StartupAware):
            await invoke_hook(self.instance.on_startup, event)

    async def notify_of_event(
        self, event_kind: str, data: Any = None, source: Any = None
    ) -> Event:
        """向插件投递事件

        Args:
            event_kind: 事件名称，取值见 PluginEvents
            data: 事件数据
            source: 事件源

        Returns:
            投递的事件对象
        """
        event = Event(event_kind, data=data, source=source, target=self.name)
        instance = self.instance
        if event_kind == PluginEvents.ON_CHANGE and isinstance(instance, ChangeAware):
            await invoke_hook(instance.on_change, event)
        elif event_kind == PluginEvents.ON_CONFIG_CHANGE and isinstance(instance, ConfigChangeAware):
            await invoke_hook(instance.on_config_change, event)
        elif event_kind == PluginEvents.ON_SHUTDOWN and isinstance(instance, ShutdownAware):
            await invoke_hook(instance.on_shutdown, event)
        return event

    def __repr__(self) -> str:
        return f"PluginDescriptor({self.name}@{self.version}, {self.state.name})"
