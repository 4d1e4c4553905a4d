"""
类型定义

包含插件内核中使用的类型别名
"""

from typing import Any, Awaitable, Callable, Dict, TypeAlias, Union

# 基础类型定义
PluginName: TypeAlias = str
"""插件名称类型"""

PluginVersion: TypeAlias = str
"""插件版本类型"""

VersionRange: TypeAlias = str
"""版本范围类型，如 "1.0"、"1.0 > *"、"1.0 > 2.0" 或 PEP 440 说明符"""

ClassId: TypeAlias = str
"""类标识符，形如 "package.module.QualName" """

ConfigDict: TypeAlias = Dict[str, Any]
"""嵌套的配置字典"""

Hook: TypeAlias = Callable[..., Union[Any, Awaitable[Any]]]
"""插件钩子，可以是普通函数或协程函数"""
