"""
工具函数

包含插件内核中使用的各种工具函数
"""

import inspect
import re
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from .types import ClassId, ConfigDict, PluginName

_HYPHEN_RE = re.compile(r"-+([a-zA-Z0-9])")


def normalize_plugin_name(name: str) -> PluginName:
    """将连字符形式的插件名转换为驼峰形式

    "my-plugin" -> "myPlugin"，已是驼峰形式的名称保持不变。

    Args:
        name: 插件名称

    Returns:
        规范化后的插件名称
    """
    if not name or "-" not in name:
        return name
    return _HYPHEN_RE.sub(lambda m: m.group(1).upper(), name.strip("-"))


def plugin_name_from_class(class_name: str) -> PluginName:
    """由插件类名推导插件名：去掉 "Plugin" 后缀并将首字母小写

    Args:
        class_name: 插件类名，如 "HibernatePlugin"

    Returns:
        推导出的插件名，如 "hibernate"
    """
    base = class_name[: -len("Plugin")] if class_name.endswith("Plugin") else class_name
    base = base or class_name
    return base[0].lower() + base[1:]


def class_id(obj: Union[type, str]) -> ClassId:
    """获取类标识符

    Args:
        obj: 类对象或已有的类标识符

    Returns:
        "module.QualName" 形式的类标识符
    """
    if isinstance(obj, str):
        return obj
    return f"{obj.__module__}.{obj.__qualname__}"


def as_name_list(value: Any) -> List[str]:
    """将单个名称或名称集合统一为列表，保持声明顺序并去重"""
    if value is None:
        return []
    if isinstance(value, str):
        value = [value]
    names: List[str] = []
    for item in value:
        if item is None:
            continue
        name = normalize_plugin_name(str(item))
        if name not in names:
            names.append(name)
    return names


def as_dependency_map(value: Any) -> Dict[PluginName, Optional[str]]:
    """将依赖声明统一为 名称 -> 版本要求 的有序字典

    支持字典（名称 -> 版本）或名称列表（版本视为任意）两种写法。
    """
    if not value:
        return {}
    if isinstance(value, Mapping):
        return {
            normalize_plugin_name(str(name)): (None if ver is None else str(ver))
            for name, ver in value.items()
        }
    return {name: None for name in as_name_list(value)}


async def invoke_hook(func: Callable, *args, **kwargs) -> Any:
    """调用插件钩子，若返回可等待对象则等待其完成

    钩子可以是普通函数也可以是协程函数，调用顺序与声明顺序一致，
    不在线程池中执行。
    """
    result = func(*args, **kwargs)
    if inspect.isawaitable(result):
        result = await result
    return result


def deep_merge(target: Dict[str, Any], source: Mapping[str, Any]) -> Dict[str, Any]:
    """将 source 递归合并进 target（原地修改）

    两侧同名键都为字典时递归合并，否则以 source 的值覆盖。

    Returns:
        合并后的 target
    """
    for key, value in source.items():
        current = target.get(key)
        if isinstance(current, dict) and isinstance(value, Mapping):
            deep_merge(current, value)
        elif isinstance(value, Mapping):
            target[key] = deep_merge({}, value)
        else:
            target[key] = value
    return target


def flatten_config(config: Mapping[str, Any], prefix: str = "") -> ConfigDict:
    """将嵌套配置展开为点分键的平面字典

    {"a": {"b": 1}} -> {"a.b": 1}
    """
    flat: ConfigDict = {}
    for key, value in config.items():
        full_key = f"{prefix}.{key}" if prefix else str(key)
        if isinstance(value, Mapping) and value:
            flat.update(flatten_config(value, full_key))
        else:
            flat[full_key] = value
    return flat
