from pathlib import Path

import pytest

from conftest import make_descriptor, make_plugin_class
from plugincore.core.plugins import Plugin, PluginDescriptor, WatchPattern
from plugincore.exceptions import PluginValidationError
from plugincore.implementations.application import DefaultApplication


class HibernateToolsPlugin(Plugin):
    version = 1.5
    depends_on = {"data-source": "1.0 > *", "core": None}
    load_after = "controllers"
    profiles = ["db"]


def test_metadata_is_normalised():
    assert HibernateToolsPlugin.name == "hibernateTools"
    assert HibernateToolsPlugin.version == "1.5"
    assert HibernateToolsPlugin.depends_on == {"dataSource": "1.0 > *", "core": None}
    assert HibernateToolsPlugin.load_after == ["controllers"]
    assert HibernateToolsPlugin.profiles == frozenset({"db"})


def test_descriptor_reads_metadata_and_profiles():
    descriptor = PluginDescriptor(HibernateToolsPlugin)

    assert descriptor.dependency_names == ["dataSource", "core"]
    assert descriptor.get_dependent_version("data-source") == "1.0 > *"
    assert descriptor.class_id.endswith("HibernateToolsPlugin")
    assert descriptor.is_enabled()
    assert descriptor.is_enabled(["db", "web"])
    assert not descriptor.is_enabled(["web"])
    assert descriptor.instance.logger.name == "Plugin.hibernateTools"


def test_non_plugin_class_is_rejected():
    with pytest.raises(PluginValidationError):
        PluginDescriptor(dict)


def test_plugin_config_section():
    application = DefaultApplication(config={"plugins": {"mail": {"host": "smtp"}}})
    descriptor = make_descriptor("mail", application=application)
    assert descriptor.instance.config == {"host": "smtp"}
    assert make_descriptor("bare").instance.config == {}


def test_refresh_rereads_class_metadata():
    descriptor = make_descriptor("mutable")
    descriptor.plugin_class.load_before = ["other"]

    descriptor.refresh()
    assert descriptor.load_before_names == ["other"]

    replacement = make_plugin_class("mutable", version="2.0")
    descriptor.set_manager("manager")
    descriptor.refresh(replacement)
    assert descriptor.version == "2.0"
    assert isinstance(descriptor.instance, replacement)
    assert descriptor.instance.manager == "manager"


def test_watch_pattern_parsing(tmp_path):
    flat = WatchPattern.parse("file:./app/services/*Service.py", tmp_path)
    assert flat.directory == tmp_path / "app" / "services"
    assert flat.file_glob == "*Service.py"
    assert not flat.recursive
    assert flat.extension == ".py"
    assert flat.matches(tmp_path / "app" / "services" / "MailService.py")
    assert not flat.matches(tmp_path / "app" / "services" / "sub" / "MailService.py")
    assert flat.source_file_for("billing.InvoiceService") == (
        tmp_path / "app" / "services" / "billing" / "InvoiceService.py"
    )

    deep = WatchPattern.parse("app/views/**/*", tmp_path)
    assert deep.recursive
    assert deep.extension == ""
    assert deep.matches(tmp_path / "app" / "views" / "a" / "b.gsp")

    single = WatchPattern.parse(str(tmp_path / "conf" / "routes.txt"))
    assert single.directory == Path(tmp_path / "conf")
    assert single.matches(tmp_path / "conf" / "routes.txt")
    assert not single.matches(tmp_path / "conf" / "other.txt")
