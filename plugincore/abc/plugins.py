"""
插件相关抽象基类

定义插件管理器、加载器和查找器的接口
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Union

from ..core.plugins import PluginDescriptor, PluginSource
from ..utils.types import ClassId, PluginName


class PluginManager(ABC):
    """插件管理器抽象基类

    负责插件的发现、注册与生命周期管理
    """

    @abstractmethod
    async def load_plugins(self) -> List[PluginDescriptor]:
        """发现并注册所有插件，重复调用不产生影响

        Returns:
            按加载顺序排列的已注册插件
        """
        pass

    @abstractmethod
    def get_plugin(
        self, name: PluginName, version: Optional[str] = None
    ) -> Optional[PluginDescriptor]:
        """获取已注册的插件

        Args:
            name: 插件名称，连字符形式会转换为驼峰形式
            version: 版本要求

        Returns:
            插件描述符，不存在或版本不满足时返回 None
        """
        pass

    @abstractmethod
    def has_plugin(self, name: PluginName) -> bool:
        pass

    @abstractmethod
    def get_plugin_for_class(self, cls: Union[type, ClassId]) -> Optional[PluginDescriptor]:
        """获取提供某个类的插件"""
        pass

    @abstractmethod
    def get_all_plugins(self) -> List[PluginDescriptor]:
        pass

    @abstractmethod
    def get_failed_plugins(self) -> List[PluginDescriptor]:
        pass

    @abstractmethod
    async def do_artefact_configuration(self) -> List[Any]:
        pass

    @abstractmethod
    async def do_runtime_configuration(
        self, runtime_config: Any, name: Optional[PluginName] = None
    ) -> List[Any]:
        """向运行时配置注册 Bean 定义

        Returns:
            尽力而为策略下收集到的阶段错误
        """
        pass

    @abstractmethod
    async def do_dynamic_methods(self) -> List[Any]:
        pass

    @abstractmethod
    async def do_post_processing(self, context: Any = None) -> List[Any]:
        pass

    @abstractmethod
    async def on_startup(self, event: Dict[str, Any]) -> List[Any]:
        pass

    @abstractmethod
    async def shutdown(self) -> List[Any]:
        """按加载逆序关闭所有插件"""
        pass


class PluginLoader(ABC):
    """插件加载器抽象基类

    负责把插件源解析为插件类
    """

    @abstractmethod
    async def load_from_source(self, source: PluginSource) -> List[type]:
        """从源加载插件类

        Args:
            source: 插件源

        Returns:
            插件类列表

        Raises:
            DiscoveryError: 插件源无法导入时
        """
        pass


class PluginFinder(ABC):
    """插件查找器抽象基类

    负责在指定目录中查找插件
    """

    @abstractmethod
    async def find_plugins(self) -> List[PluginSource]:
        """查找所有可用插件

        Returns:
            插件源列表
        """
        pass
