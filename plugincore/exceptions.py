"""
# 异常
包含插件内核中使用的所有自定义异常与警告类
"""

from pathlib import Path
from typing import List, Optional, Sequence, Union

from .utils.types import PluginName


class PluginError(Exception):
    """插件基础异常类

    Attributes:
        plugin_name: 相关的插件名称
    """

    def __init__(self, message: str, plugin_name: Optional[PluginName] = None):
        """初始化插件异常

        Args:
            message: 异常消息
            plugin_name: 相关的插件名称
        """
        self.plugin_name = plugin_name
        super().__init__(message)


class DiscoveryError(PluginError):
    """插件发现异常

    插件源无法导入（语法错误、导入错误、文件缺失）时抛出，中止整个加载过程
    """

    def __init__(
        self,
        message: str,
        source: Optional[Union[str, Path]] = None,
        plugin_name: Optional[PluginName] = None,
    ):
        self.source = source
        super().__init__(message, plugin_name)


class PluginValidationError(PluginError):
    """插件验证异常

    当插件类的声明（名称、版本等元数据）无效时抛出
    """


class PluginNotFound(PluginError):
    """插件未发现

    当按名称查找的插件不存在，或模块中没有找到插件类时抛出
    """


class PluginStateError(PluginError):
    """插件管理器状态异常

    在 load_plugins() 完成之前调用生命周期操作时抛出
    """


class PluginDependencyError(PluginError):
    """插件依赖异常

    当插件依赖解析失败时抛出
    """


class UnresolvedDependencyError(PluginDependencyError):
    """依赖无法解析

    Attributes:
        unresolved: 无法满足的依赖名称
    """

    def __init__(
        self,
        message: str,
        plugin_name: Optional[PluginName] = None,
        unresolved: Sequence[PluginName] = (),
    ):
        self.unresolved: List[PluginName] = list(unresolved)
        super().__init__(message, plugin_name)


class PluginCycleError(PluginDependencyError):
    """加载顺序图中存在环（仅在严格模式下抛出）

    Attributes:
        cycle: 构成环的插件名称，首尾相同
    """

    def __init__(self, message: str, cycle: Sequence[PluginName] = ()):
        self.cycle: List[PluginName] = list(cycle)
        super().__init__(message, cycle[0] if cycle else None)


class PhaseExecutionError(PluginError):
    """生命周期阶段执行异常

    Attributes:
        phase: 出错的阶段名称
        cause: 插件钩子抛出的原始异常
    """

    def __init__(
        self,
        message: str,
        phase: str,
        plugin_name: Optional[PluginName] = None,
        cause: Optional[BaseException] = None,
    ):
        self.phase = phase
        self.cause = cause
        super().__init__(message, plugin_name)


class ConfigReloadError(PluginError):
    """配置重新解析失败

    Attributes:
        file: 解析失败的配置文件
    """

    def __init__(self, message: str, file: Optional[Union[str, Path]] = None):
        self.file = file
        super().__init__(message)


class CompatibilityWarning(UserWarning):
    """插件声明的框架版本范围与宿主版本不兼容（仅提示，不阻止加载）"""
