"""插件内核主包

提供插件的发现、依赖排序、生命周期管理与热重载
"""

from .abc.application import (
    Application,
    ApplicationContext,
    ApplicationMetadata,
    ArtefactHandler,
    BeanSpec,
    RuntimeConfiguration,
)
from .abc.plugins import PluginFinder, PluginLoader, PluginManager
from .app import PluginApplication
from .core.capabilities import (
    ChangeAware,
    ConfigChangeAware,
    ContextConfigurer,
    DynamicMethodsProvider,
    RuntimeConfigurable,
    ShutdownAware,
    StartupAware,
)
from .core.events import Event
from .core.filters import ExcludingPluginFilter, IncludingPluginFilter, PluginFilter
from .core.plugins import Plugin, PluginDescriptor, PluginSource
from .core.versions import CompatibilityChecker, VersionComparator, is_valid_version
from .implementations.application import DefaultApplication
from .implementations.context import DefaultApplicationContext, DefaultRuntimeConfiguration
from .implementations.plugin_finder import CorePluginFinder, DefaultPluginFinder
from .implementations.plugin_loader import DefaultPluginLoader
from .managers.config_manager import ConfigManager
from .managers.plugin_manager import DefaultPluginManager
from .meta import __author__, __status__, __version__
from .utils.constants import CyclePolicy, Phase, PhasePolicy, PluginEvents, PluginState
from .utils.logger import setup_logging

__all__ = [
    # ABC 接口
    "Application",
    "ApplicationContext",
    "RuntimeConfiguration",
    "PluginManager",
    "PluginLoader",
    "PluginFinder",
    # 核心类
    "Plugin",
    "PluginDescriptor",
    "PluginSource",
    "Event",
    "ApplicationMetadata",
    "ArtefactHandler",
    "BeanSpec",
    # 能力接口
    "RuntimeConfigurable",
    "DynamicMethodsProvider",
    "ContextConfigurer",
    "StartupAware",
    "ChangeAware",
    "ConfigChangeAware",
    "ShutdownAware",
    # 版本
    "VersionComparator",
    "CompatibilityChecker",
    "is_valid_version",
    # 过滤器
    "PluginFilter",
    "IncludingPluginFilter",
    "ExcludingPluginFilter",
    # 默认实现
    "DefaultApplication",
    "DefaultApplicationContext",
    "DefaultRuntimeConfiguration",
    "DefaultPluginLoader",
    "DefaultPluginFinder",
    "CorePluginFinder",
    # 管理器
    "ConfigManager",
    "DefaultPluginManager",
    # 应用
    "PluginApplication",
    # 常量
    "CyclePolicy",
    "Phase",
    "PhasePolicy",
    "PluginEvents",
    "PluginState",
    # 日志
    "setup_logging",
    "__author__",
    "__status__",
    "__version__",
]
