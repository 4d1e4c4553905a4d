import logging
import sys
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))
from plugincore.core.plugins import Plugin, PluginDescriptor, PluginMeta
from plugincore.implementations.application import DefaultApplication
from plugincore.managers.plugin_manager import DefaultPluginManager
from plugincore.utils.constants import PluginOrigin


def make_plugin_class(
    name: str,
    version: str = "1.0",
    bases: Iterable[type] = (),
    **attrs: Any,
) -> type:
    """按给定元数据动态创建插件类"""
    namespace: Dict[str, Any] = {"name": name, "version": version, "__module__": "test_plugins"}
    namespace.update(attrs)
    class_name = name[:1].upper() + name[1:] + "Plugin"
    return PluginMeta(class_name, (Plugin, *bases), namespace)


def make_descriptor(
    name: str,
    version: str = "1.0",
    origin: PluginOrigin = PluginOrigin.USER,
    application: Optional[DefaultApplication] = None,
    **attrs: Any,
) -> PluginDescriptor:
    return PluginDescriptor(make_plugin_class(name, version, **attrs), origin=origin, application=application)


class Recorder:
    """记录钩子调用顺序"""

    def __init__(self) -> None:
        self.calls: List[tuple] = []

    def __call__(self, *entry: Any) -> None:
        self.calls.append(entry)

    def names(self, hook: Optional[str] = None) -> List[str]:
        return [c[1] for c in self.calls if hook is None or c[0] == hook]


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()


@pytest.fixture
def application() -> DefaultApplication:
    return DefaultApplication()


@pytest.fixture
def manager_factory(application):
    """创建只使用显式插件类的插件管理器"""

    def _factory(plugin_classes=(), core_plugin_classes=(), **options) -> DefaultPluginManager:
        options.setdefault("core_entry_point_group", None)
        return DefaultPluginManager(
            application,
            plugin_classes=plugin_classes,
            core_plugin_classes=core_plugin_classes,
            **options,
        )

    return _factory


@pytest.fixture(autouse=True)
def _plugincore_logging(caplog):
    caplog.set_level(logging.DEBUG, logger="PluginCore")
    yield
