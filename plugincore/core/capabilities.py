"""
能力接口

插件类通过多重继承声明参与哪些生命周期阶段：

    class SecurityPlugin(Plugin, RuntimeConfigurable, StartupAware):
        ...

协调器按 isinstance 判断插件实例是否具备某项能力，方法可以是普通函数或协程函数。
"""

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Dict

if TYPE_CHECKING:
    from ..abc.application import ApplicationContext, RuntimeConfiguration
    from .events import Event


class RuntimeConfigurable(ABC):
    """向注入容器贡献 Bean 定义"""

    @abstractmethod
    def do_with_runtime_configuration(self, runtime_config: "RuntimeConfiguration") -> Any:
        """注册 Bean 定义

        Args:
            runtime_config: 收集 Bean 定义的运行时配置
        """


class DynamicMethodsProvider(ABC):
    """向类型安装动态行为"""

    @abstractmethod
    def do_with_dynamic_methods(self, context: "ApplicationContext") -> Any:
        """安装动态方法，通常通过 application.dynamic_methods.install(...)"""


class ContextConfigurer(ABC):
    """应用上下文创建后的后置处理"""

    @abstractmethod
    def do_with_application_context(self, context: "ApplicationContext") -> Any:
        pass


class StartupAware(ABC):
    """应用启动完成时接收启动事件"""

    @abstractmethod
    def on_startup(self, event: Dict[str, Any]) -> Any:
        pass


class ChangeAware(ABC):
    """被监视的资源、类或被观察的插件发生变更时接收事件"""

    @abstractmethod
    def on_change(self, event: "Event") -> Any:
        pass


class ConfigChangeAware(ABC):
    """应用配置变更时接收事件"""

    @abstractmethod
    def on_config_change(self, event: "Event") -> Any:
        pass


class ShutdownAware(ABC):
    """管理器关闭时接收事件"""

    @abstractmethod
    def on_shutdown(self, event: "Event") -> Any:
        pass
