import asyncio
import warnings

import pytest

from conftest import make_descriptor, make_plugin_class
from plugincore.core.filters import ExcludingPluginFilter, IncludingPluginFilter
from plugincore.exceptions import (
    CompatibilityWarning,
    PluginStateError,
    PluginValidationError,
    UnresolvedDependencyError,
)
from plugincore.utils.constants import PluginState


def _names(plugins):
    return [p.name for p in plugins]


def test_delayed_loading_orders_by_dependencies(manager_factory):
    p1 = make_plugin_class("p1")
    p2 = make_plugin_class("p2", depends_on={"p1": "1.0"})
    p3 = make_plugin_class("p3", load_after=["p2"])
    manager = manager_factory([p3, p1, p2])

    asyncio.run(manager.load_plugins())

    assert _names(manager.get_all_plugins()) == ["p1", "p2", "p3"]
    assert manager.get_failed_plugins() == []
    assert all(p.state is PluginState.INITIALIZED for p in manager.get_all_plugins())


def test_core_plugins_are_registered_before_user_plugins(manager_factory):
    user = make_plugin_class("user")
    core = make_plugin_class("core")
    manager = manager_factory([user], [core])

    asyncio.run(manager.load_plugins())

    assert _names(manager.get_all_plugins()) == ["core", "user"]
    assert manager.get_plugin("core").is_core


def test_missing_dependency_lands_in_failed_set(manager_factory, caplog):
    lonely = make_plugin_class("lonely", depends_on=["nowhere"])
    ok = make_plugin_class("ok")
    manager = manager_factory([lonely, ok])

    asyncio.run(manager.load_plugins())

    assert not manager.has_plugin("lonely")
    failed = manager.get_failed_plugin("lonely")
    assert failed.state is PluginState.FAILED
    assert isinstance(failed.error, UnresolvedDependencyError)
    assert failed.error.unresolved == ["nowhere"]
    assert "nowhere" in caplog.text
    assert _names(manager.get_all_plugins()) == ["ok"]


def test_dependency_version_mismatch_fails(manager_factory):
    base = make_plugin_class("base", version="1.0")
    needy = make_plugin_class("needy", depends_on={"base": "2.0 > *"})
    manager = manager_factory([needy, base])

    asyncio.run(manager.load_plugins())

    assert _names(manager.get_all_plugins()) == ["base"]
    assert _names(manager.get_failed_plugins()) == ["needy"]


def test_transitive_delayed_dependencies_resolve(manager_factory):
    c = make_plugin_class("c", depends_on=["b"])
    b = make_plugin_class("b", depends_on=["a"])
    a = make_plugin_class("a")
    manager = manager_factory([c, b, a])

    asyncio.run(manager.load_plugins())

    assert _names(manager.get_all_plugins()) == ["a", "b", "c"]


def test_mutual_load_after_fails_after_idle_rounds(manager_factory):
    x = make_plugin_class("x", load_after=["y"])
    y = make_plugin_class("y", load_after=["x"])
    manager = manager_factory([x, y], max_idle_rounds=2)

    asyncio.run(manager.load_plugins())

    assert manager.get_all_plugins() == []
    assert _names(manager.get_failed_plugins()) == ["x", "y"]


def test_eviction_removes_plugin_even_with_dependants(manager_factory):
    b = make_plugin_class("b")
    a = make_plugin_class("a", evicts=["b"])
    c = make_plugin_class("c", depends_on=["b"], observe=["a"])
    manager = manager_factory([b, a, c])

    asyncio.run(manager.load_plugins())

    assert not manager.has_plugin("b")
    assert "b" not in _names(manager.get_all_plugins())
    assert manager.has_plugin("c")
    evicted_class = manager.get_plugin_for_class(b)
    assert evicted_class is None


def test_duplicate_names_fail(manager_factory):
    first = make_plugin_class("twin")
    second = make_plugin_class("twin", version="2.0")
    manager = manager_factory([first, second])

    asyncio.run(manager.load_plugins())

    assert manager.get_plugin("twin").version == "1.0"
    assert isinstance(manager.get_failed_plugin("twin").error, PluginValidationError)


def test_disabled_and_environment_specific_plugins_are_skipped(manager_factory):
    off = make_plugin_class("off", enabled=False)
    prod = make_plugin_class("prod", environments=["production"])
    dev = make_plugin_class("dev", environments=["development"])
    manager = manager_factory([off, prod, dev], environment="development")

    asyncio.run(manager.load_plugins())

    assert _names(manager.get_all_plugins()) == ["dev"]
    assert manager.get_failed_plugins() == []


def test_config_can_disable_plugin(manager_factory, application):
    application.config.merge({"plugins": {"quiet": {"enabled": False}}})
    manager = manager_factory([make_plugin_class("quiet"), make_plugin_class("loud")])

    asyncio.run(manager.load_plugins())

    assert _names(manager.get_all_plugins()) == ["loud"]


def test_load_plugins_twice_is_idempotent(manager_factory):
    manager = manager_factory([make_plugin_class("a"), make_plugin_class("b", load_before=["a"])])

    first = asyncio.run(manager.load_plugins())
    second = asyncio.run(manager.load_plugins())

    assert _names(first) == ["b", "a"]
    assert [id(p) for p in first] == [id(p) for p in second]
    assert manager.is_initialised


def test_lookup_by_name_version_and_class(manager_factory):
    cls = make_plugin_class("hibernate-tools", version="3.2")
    manager = manager_factory([cls])
    asyncio.run(manager.load_plugins())

    assert manager.has_plugin("hibernateTools")
    assert manager.get_plugin("hibernate-tools") is manager.get_plugin("hibernateTools")
    assert manager.get_plugin("hibernateTools", "3.0 > *") is not None
    assert manager.get_plugin("hibernateTools", "4.0") is None
    assert manager.get_plugin_for_class(cls).name == "hibernateTools"


def test_incompatible_plugin_still_loads(manager_factory, application):
    application.metadata.framework_version = "3.0"
    cls = make_plugin_class("legacy", framework_version="2.0")
    manager = manager_factory([cls])

    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        asyncio.run(manager.load_plugins())

    assert manager.has_plugin("legacy")
    assert any(issubclass(w.category, CompatibilityWarning) for w in caught)


def test_include_filter_keeps_dependencies(manager_factory):
    a = make_plugin_class("a")
    b = make_plugin_class("b", depends_on=["a"])
    c = make_plugin_class("c")
    manager = manager_factory([a, b, c], plugin_filter=IncludingPluginFilter(["b"]))

    asyncio.run(manager.load_plugins())

    assert _names(manager.get_all_plugins()) == ["a", "b"]


def test_exclude_filter_from_config_drops_dependants(manager_factory, application):
    application.config.merge({"plugins": {"exclude": ["a"]}})
    a = make_plugin_class("a")
    b = make_plugin_class("b", depends_on=["a"])
    c = make_plugin_class("c")
    manager = manager_factory([a, b, c])

    asyncio.run(manager.load_plugins())

    assert _names(manager.get_all_plugins()) == ["c"]
    assert manager.get_failed_plugins() == []


def test_exclude_filter_direct():
    plugins = [
        make_descriptor("a"),
        make_descriptor("b", depends_on=["a"]),
        make_descriptor("c", depends_on=["b"]),
        make_descriptor("d"),
    ]
    assert _names(ExcludingPluginFilter(["a"]).filter_plugin_list(plugins)) == ["d"]


def test_lifecycle_before_load_raises(manager_factory):
    manager = manager_factory([make_plugin_class("a")])
    with pytest.raises(PluginStateError):
        asyncio.run(manager.do_artefact_configuration())


def test_missing_version_is_rejected():
    with pytest.raises(PluginValidationError):
        make_plugin_class("broken", version="")
