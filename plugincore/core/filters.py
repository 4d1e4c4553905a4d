"""
插件过滤

按配置 plugins.include / plugins.exclude 过滤候选插件
"""

from typing import Any, Iterable, List, Mapping, Sequence, Set

from ..logger import logger
from ..utils.helpers import as_name_list
from ..utils.types import PluginName
from .plugins import PluginDescriptor


class PluginFilter:
    """插件过滤器基类，保留全部候选插件"""

    def filter_plugin_list(self, plugins: Sequence[PluginDescriptor]) -> List[PluginDescriptor]:
        return list(plugins)


IdentityPluginFilter = PluginFilter


class IncludingPluginFilter(PluginFilter):
    """只保留指定插件及其（传递）依赖"""

    def __init__(self, names: Iterable[PluginName]):
        self.names = set(as_name_list(list(names)))

    def filter_plugin_list(self, plugins: Sequence[PluginDescriptor]) -> List[PluginDescriptor]:
        by_name = {p.name: p for p in plugins}
        keep: Set[PluginName] = set()
        pending = [n for n in self.names if n in by_name]
        while pending:
            name = pending.pop()
            if name in keep:
                continue
            keep.add(name)
            pending.extend(d for d in by_name[name].dependency_names if d in by_name)

        for name in self.names - set(by_name):
            logger.warning(f"包含列表中的插件 {name} 不存在")
        return [p for p in plugins if p.name in keep]


class ExcludingPluginFilter(PluginFilter):
    """排除指定插件以及（传递）依赖它们的插件"""

    def __init__(self, names: Iterable[PluginName]):
        self.names = set(as_name_list(list(names)))

    def filter_plugin_list(self, plugins: Sequence[PluginDescriptor]) -> List[PluginDescriptor]:
        excluded = set(self.names)
        changed = True
        while changed:
            changed = False
            for plugin in plugins:
                if plugin.name in excluded:
                    continue
                if excluded.intersection(plugin.dependency_names):
                    logger.info(f"插件 {plugin.name} 依赖已排除的插件，一并排除")
                    excluded.add(plugin.name)
                    changed = True
        return [p for p in plugins if p.name not in excluded]


def get_plugin_filter(config: Mapping[str, Any]) -> PluginFilter:
    """根据配置构造插件过滤器

    plugins.include 优先于 plugins.exclude；两者都未配置时不过滤。
    """
    section = config.get("plugins") if isinstance(config, Mapping) else None
    section = section if isinstance(section, Mapping) else {}

    includes = as_name_list(section.get("include"))
    if includes:
        return IncludingPluginFilter(includes)
    excludes = as_name_list(section.get("exclude"))
    if excludes:
        return ExcludingPluginFilter(excludes)
    return IdentityPluginFilter()
