"""
宿主应用相关抽象基类

插件管理器依赖的外部协作者：应用模型、运行时配置（注入容器的 Bean 定义收集）
与应用上下文（注入容器本身）
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from types import ModuleType
from typing import TYPE_CHECKING, Any, Callable, Dict, FrozenSet, List, Optional, Tuple

from ..utils.types import ClassId, PluginName, PluginVersion

if TYPE_CHECKING:
    from ..implementations.application import ConfigTree
    from ..implementations.dynamic import DynamicMethodRegistry


@dataclass
class ApplicationMetadata:
    """应用元数据"""

    name: str = "application"
    version: str = "0.0.0"
    framework_version: Optional[PluginVersion] = None


@dataclass
class ArtefactHandler:
    """制品类型处理器

    描述一类制品（如 "Service"、"Controller"），由插件在制品配置阶段注册到应用

    Attributes:
        type: 制品类型名
        suffix: 类名后缀，类名以此结尾即属于该类型
        predicate: 自定义判定函数，优先于 suffix
        plugin_name: 注册该处理器的插件名
    """

    type: str
    suffix: Optional[str] = None
    predicate: Optional[Callable[[type], bool]] = None
    plugin_name: Optional[PluginName] = None

    def is_artefact(self, cls: type) -> bool:
        """判断类是否属于该制品类型"""
        if self.predicate is not None:
            return bool(self.predicate(cls))
        if self.suffix:
            return cls.__name__.endswith(self.suffix)
        return False


@dataclass
class BeanSpec:
    """声明式 Bean 定义

    Attributes:
        name: Bean 名称
        factory: 创建 Bean 的可调用对象（类或工厂函数）
        args: 位置参数
        kwargs: 关键字参数
        depends_on: 需要先创建的 Bean 名称
    """

    name: str
    factory: Callable[..., Any]
    args: Tuple[Any, ...] = ()
    kwargs: Dict[str, Any] = field(default_factory=dict)
    depends_on: List[str] = field(default_factory=list)


class Application(ABC):
    """宿主应用模型抽象基类"""

    metadata: ApplicationMetadata
    config: "ConfigTree"
    dynamic_methods: "DynamicMethodRegistry"

    @abstractmethod
    def load_class(self, class_id: ClassId) -> Optional[type]:
        """按类标识符加载类，找不到时返回 None"""
        pass

    @abstractmethod
    def module_name_for(self, path: Any) -> Optional[str]:
        """将源文件路径转换为模块名，文件不在任何源码根目录下时返回 None"""
        pass

    @abstractmethod
    def register_artefact_handler(self, handler: ArtefactHandler) -> None:
        """注册制品类型处理器"""
        pass

    @abstractmethod
    def get_artefact_type(self, cls: type) -> Optional[ArtefactHandler]:
        """获取类所属的制品类型处理器"""
        pass

    @abstractmethod
    def add_artefact(self, cls: type, plugin_name: Optional[PluginName] = None) -> None:
        """注册制品类"""
        pass

    @abstractmethod
    def is_artefact(self, cls: type) -> bool:
        """判断类是否已注册为制品"""
        pass

    @abstractmethod
    def artefacts_in_module(self, module: "str | ModuleType") -> List[type]:
        """获取某模块中已注册的制品类"""
        pass

    @abstractmethod
    def config_changed(self) -> None:
        """配置树被合并更新后调用"""
        pass


class RuntimeConfiguration(ABC):
    """运行时配置抽象基类

    在容器创建前收集各插件声明的 Bean 定义
    """

    @abstractmethod
    def register_bean(self, name: str, factory: Callable[..., Any], *args, **kwargs) -> BeanSpec:
        """注册 Bean 定义"""
        pass

    @abstractmethod
    def get_bean_spec(self, name: str) -> Optional[BeanSpec]:
        pass

    @abstractmethod
    def bean_names(self) -> List[str]:
        pass

    @abstractmethod
    def register_beans_with_context(self, context: "ApplicationContext") -> None:
        """将收集到的 Bean 定义注册到应用上下文"""
        pass


class ApplicationContext(ABC):
    """应用上下文（注入容器）抽象基类"""

    active_profiles: FrozenSet[str]
    parent: Optional["ApplicationContext"]

    @abstractmethod
    def register_bean_spec(self, spec: BeanSpec) -> None:
        pass

    @abstractmethod
    def get_bean(self, name: str) -> Any:
        """获取 Bean 实例

        Raises:
            KeyError: Bean 不存在时
        """
        pass

    @abstractmethod
    def contains_bean(self, name: str) -> bool:
        pass

    @abstractmethod
    def refresh(self) -> None:
        """按定义创建全部 Bean"""
        pass

    @abstractmethod
    def close(self) -> None:
        pass
