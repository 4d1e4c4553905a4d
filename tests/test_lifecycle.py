import asyncio

import pytest

from conftest import make_plugin_class
from plugincore.abc.application import ArtefactHandler
from plugincore.core.capabilities import (
    ContextConfigurer,
    DynamicMethodsProvider,
    RuntimeConfigurable,
    ShutdownAware,
    StartupAware,
)
from plugincore.exceptions import (
    PhaseExecutionError,
    PluginNotFound,
    UnresolvedDependencyError,
)
from plugincore.implementations.context import (
    DefaultApplicationContext,
    DefaultRuntimeConfiguration,
)
from plugincore.utils.constants import Phase, PhasePolicy, PluginState


def _configurable(name, recorder, **attrs):
    def do_with_runtime_configuration(self, runtime_config):
        recorder("runtime", self.name)
        runtime_config.register_bean(f"{self.name}Service", dict, owner=self.name)

    return make_plugin_class(
        name,
        bases=(RuntimeConfigurable,),
        do_with_runtime_configuration=do_with_runtime_configuration,
        **attrs,
    )


def _shutdown_aware(name, recorder, fail=False):
    async def on_shutdown(self, event):
        recorder("shutdown", self.name)
        if fail:
            raise RuntimeError("boom")

    return make_plugin_class(name, bases=(ShutdownAware,), on_shutdown=on_shutdown)


def test_runtime_configuration_for_all_plugins(manager_factory, recorder):
    manager = manager_factory(
        [
            _configurable("web", recorder, depends_on=["core"]),
            _configurable("core", recorder),
            make_plugin_class("plain"),
        ]
    )
    asyncio.run(manager.load_plugins())
    rc = DefaultRuntimeConfiguration()

    errors = asyncio.run(manager.do_runtime_configuration(rc))

    assert errors == []
    assert recorder.names("runtime") == ["core", "web"]
    assert rc.bean_names() == ["coreService", "webService"]


def test_runtime_configuration_for_named_plugin(manager_factory, recorder):
    manager = manager_factory(
        [
            _configurable("a", recorder),
            _configurable("b", recorder, depends_on=["a"]),
            _configurable("late", recorder),
            _configurable("c", recorder, depends_on=["b", "a"], load_after=["late"]),
            _configurable("other", recorder),
        ]
    )
    asyncio.run(manager.load_plugins())

    asyncio.run(manager.do_runtime_configuration(DefaultRuntimeConfiguration(), "c"))

    assert recorder.names("runtime") == ["a", "b", "late", "c"]


def test_runtime_configuration_unknown_or_unresolved(manager_factory, recorder):
    manager = manager_factory([_configurable("a", recorder)])
    asyncio.run(manager.load_plugins())

    with pytest.raises(PluginNotFound):
        asyncio.run(manager.do_runtime_configuration(DefaultRuntimeConfiguration(), "ghost"))

    # 依赖在注册后被驱逐时，按名称配置会发现依赖缺失
    orphan = _configurable("orphan", recorder, depends_on=["gone"])
    gone = make_plugin_class("gone")
    evictor = make_plugin_class("evictor", evicts=["gone"])
    manager = manager_factory([gone, orphan, evictor])
    asyncio.run(manager.load_plugins())
    with pytest.raises(UnresolvedDependencyError) as exc_info:
        asyncio.run(manager.do_runtime_configuration(DefaultRuntimeConfiguration(), "orphan"))
    assert exc_info.value.unresolved == ["gone"]


def test_fail_fast_phase_wraps_error(manager_factory):
    def do_with_runtime_configuration(self, runtime_config):
        raise ValueError("bad bean")

    broken = make_plugin_class(
        "broken",
        bases=(RuntimeConfigurable,),
        do_with_runtime_configuration=do_with_runtime_configuration,
    )
    manager = manager_factory([broken])
    asyncio.run(manager.load_plugins())

    with pytest.raises(PhaseExecutionError) as exc_info:
        asyncio.run(manager.do_runtime_configuration(DefaultRuntimeConfiguration()))
    assert exc_info.value.plugin_name == "broken"
    assert exc_info.value.phase == Phase.RUNTIME_CONFIGURATION.value
    assert isinstance(exc_info.value.cause, ValueError)


def test_best_effort_policy_collects_errors(manager_factory, recorder):
    def do_with_application_context(self, context):
        recorder("post", self.name)
        if self.name == "first":
            raise RuntimeError("post processing failed")

    classes = [
        make_plugin_class(
            name,
            bases=(ContextConfigurer,),
            do_with_application_context=do_with_application_context,
        )
        for name in ("first", "second")
    ]
    manager = manager_factory(classes)
    asyncio.run(manager.load_plugins())

    errors = asyncio.run(manager.do_post_processing(DefaultApplicationContext()))

    assert recorder.names("post") == ["first", "second"]
    assert [e.plugin_name for e in errors] == ["first"]


def test_phase_policy_override(manager_factory):
    def do_with_application_context(self, context):
        raise RuntimeError("nope")

    cls = make_plugin_class(
        "strict",
        bases=(ContextConfigurer,),
        do_with_application_context=do_with_application_context,
    )
    manager = manager_factory([cls], phase_policies={Phase.POST_PROCESSING: PhasePolicy.FAIL_FAST})
    asyncio.run(manager.load_plugins())

    with pytest.raises(PhaseExecutionError):
        asyncio.run(manager.do_post_processing())


def test_artefact_configuration_and_provided_artefacts(manager_factory, application):
    class ReportService:
        pass

    handler = ArtefactHandler("service", suffix="Service")
    cls = make_plugin_class("services", artefacts=[handler], provided_artefacts=[ReportService])
    manager = manager_factory([cls])
    asyncio.run(manager.load_plugins())

    asyncio.run(manager.do_artefact_configuration())
    asyncio.run(manager.register_provided_artefacts())

    assert application.get_artefact_type(ReportService) is handler
    assert handler.plugin_name == "services"
    assert application.is_artefact(ReportService)
    assert manager.get_plugin_for_class(ReportService).name == "services"


def test_dynamic_methods_reset_and_install(manager_factory, application):
    class Book:
        pass

    def do_with_dynamic_methods(self, context):
        self.application.dynamic_methods.install(Book, "describe", lambda book: "a book")
        self.application.dynamic_methods.install(str, "shout", str.upper)

    cls = make_plugin_class(
        "dyn", bases=(DynamicMethodsProvider,), do_with_dynamic_methods=do_with_dynamic_methods
    )
    application.dynamic_methods.install(str, "stale", str.lower)
    manager = manager_factory([cls])
    asyncio.run(manager.load_plugins())

    asyncio.run(manager.do_dynamic_methods())

    assert Book().describe() == "a book"
    assert application.dynamic_methods.lookup(str, "shout") is str.upper
    assert application.dynamic_methods.lookup(str, "stale") is None


def test_startup_receives_event_in_load_order(manager_factory, recorder):
    def on_startup(self, event):
        recorder("startup", self.name, event["source"])

    classes = [
        make_plugin_class("two", bases=(StartupAware,), on_startup=on_startup, depends_on=["one"]),
        make_plugin_class("one", bases=(StartupAware,), on_startup=on_startup),
        make_plugin_class("silent"),
    ]
    manager = manager_factory(classes)
    asyncio.run(manager.load_plugins())

    asyncio.run(manager.on_startup({"source": manager}))

    assert recorder.names("startup") == ["one", "two"]
    assert all(call[2] is manager for call in recorder.calls)


def test_shutdown_is_reverse_order_and_best_effort(manager_factory, recorder):
    manager = manager_factory(
        [
            _shutdown_aware("a", recorder),
            _shutdown_aware("b", recorder, fail=True),
            _shutdown_aware("c", recorder),
        ]
    )
    order = [p.name for p in asyncio.run(manager.load_plugins())]

    errors = asyncio.run(manager.shutdown())

    assert recorder.names("shutdown") == list(reversed(order))
    assert [e.plugin_name for e in errors] == ["b"]
    assert manager.is_shutdown
    assert all(p.state is PluginState.SHUTDOWN for p in manager.get_all_plugins())

    assert asyncio.run(manager.shutdown()) == []
    assert len(recorder.names("shutdown")) == 3


def test_profiles_limit_phases(manager_factory, recorder):
    def on_startup(self, event):
        recorder("startup", self.name)

    classes = [
        make_plugin_class("always", bases=(StartupAware,), on_startup=on_startup),
        make_plugin_class("cloud", bases=(StartupAware,), on_startup=on_startup, profiles=["cloud"]),
    ]
    manager = manager_factory(classes)
    asyncio.run(manager.load_plugins())
    manager.set_application_context(DefaultApplicationContext(active_profiles=["local"]))

    asyncio.run(manager.on_startup({}))

    assert recorder.names("startup") == ["always"]
