import asyncio

from conftest import make_plugin_class
from plugincore.core.capabilities import ChangeAware
from plugincore.core.events import Event
from plugincore.implementations.context import DefaultApplicationContext
from plugincore.utils.constants import PluginEvents


def _watcher(name, recorder, **attrs):
    def on_change(self, event):
        recorder("change", self.name, event)

    return make_plugin_class(name, bases=(ChangeAware,), on_change=on_change, **attrs)


def test_observers_specific_and_wildcard_exclude_subject(manager_factory, recorder):
    manager = manager_factory(
        [
            _watcher("b", recorder, observe=["*"]),
            _watcher("c", recorder, observe=["b"]),
            _watcher("d", recorder, observe="*"),
            _watcher("e", recorder),
        ]
    )
    asyncio.run(manager.load_plugins())
    b = manager.get_plugin("b")

    observers = manager.get_plugin_observers(b)
    assert sorted(p.name for p in observers) == ["c", "d"]
    observers.clear()
    assert len(manager.get_plugin_observers(b)) == 2

    delivered = asyncio.run(manager.inform_observers("b", PluginEvents.ON_CHANGE, {"k": 1}))

    assert sorted(p.name for p in delivered) == ["c", "d"]
    assert sorted(recorder.names("change")) == ["c", "d"]
    event = recorder.calls[0][2]
    assert event.data == {"k": 1}
    assert event.source is b


def test_inform_observers_accepts_event_objects(manager_factory, recorder):
    manager = manager_factory([_watcher("subject", recorder), _watcher("fan", recorder, observe=["subject"])])
    asyncio.run(manager.load_plugins())

    asyncio.run(manager.inform_observers("subject", Event(PluginEvents.ON_CHANGE, data="payload")))

    assert recorder.calls[0][1] == "fan"
    assert recorder.calls[0][2].data == "payload"
    assert asyncio.run(manager.inform_observers("ghost", PluginEvents.ON_CHANGE)) == []


def test_disabled_subject_or_observer_skips_delivery(manager_factory, recorder):
    manager = manager_factory(
        [
            _watcher("subject", recorder, profiles=["cloud"]),
            _watcher("target", recorder),
            _watcher("fan", recorder, observe=["subject", "target"]),
            _watcher("cloudFan", recorder, observe=["target"], profiles=["cloud"]),
        ]
    )
    asyncio.run(manager.load_plugins())
    manager.set_application_context(DefaultApplicationContext(active_profiles=["local"]))

    assert asyncio.run(manager.inform_observers("subject", PluginEvents.ON_CHANGE)) == []
    delivered = asyncio.run(manager.inform_observers("target", PluginEvents.ON_CHANGE))

    assert [p.name for p in delivered] == ["fan"]
    assert recorder.names("change") == ["fan"]


def test_evicted_plugin_is_no_longer_an_observer(manager_factory, recorder):
    manager = manager_factory(
        [
            _watcher("subject", recorder),
            _watcher("spy", recorder, observe=["subject"]),
            make_plugin_class("guard", evicts=["spy"]),
        ]
    )
    asyncio.run(manager.load_plugins())

    assert manager.get_plugin_observers(manager.get_plugin("subject")) == []


def test_self_observation_is_dropped():
    cls = make_plugin_class("narcissus", observe=["narcissus", "other"])
    assert cls.observe == ["other"]
