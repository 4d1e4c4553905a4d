import asyncio
import sys
import zipfile

import pytest

from conftest import make_plugin_class
from plugincore.core.plugins import PluginSource
from plugincore.exceptions import DiscoveryError
from plugincore.implementations import plugin_finder
from plugincore.implementations.plugin_finder import CorePluginFinder, DefaultPluginFinder
from plugincore.implementations.plugin_loader import DefaultPluginLoader
from plugincore.managers.plugin_manager import DefaultPluginManager
from plugincore.utils.constants import PluginSourceType

PLUGIN_SOURCE = """\
from plugincore import Plugin


class {cls}(Plugin):
    version = "1.0"
"""


def _write_plugins(root):
    (root / "alpha_file.py").write_text(PLUGIN_SOURCE.format(cls="AlphaFilePlugin"))
    pkg = root / "beta_pkg"
    pkg.mkdir()
    (pkg / "__init__.py").write_text(PLUGIN_SOURCE.format(cls="BetaPkgPlugin"))
    with zipfile.ZipFile(root / "gamma_zip.zip", "w") as zf:
        zf.writestr("gamma_zip/__init__.py", PLUGIN_SOURCE.format(cls="GammaZipPlugin"))
    (root / "broken.zip").write_bytes(b"not a zip")
    (root / "_private.py").write_text("")
    (root / "notes.txt").write_text("")
    (root / "empty_dir").mkdir()


@pytest.fixture
def clean_modules():
    before = set(sys.modules)
    yield
    for name in set(sys.modules) - before:
        sys.modules.pop(name, None)


def test_finder_scans_packages_zips_and_files(tmp_path):
    _write_plugins(tmp_path)

    sources = asyncio.run(DefaultPluginFinder([tmp_path, tmp_path / "missing"]).find_plugins())

    assert [(s.source_type, s.module_name) for s in sources] == [
        (PluginSourceType.FILE, "alpha_file"),
        (PluginSourceType.DIRECTORY, "beta_pkg"),
        (PluginSourceType.ZIP_PACKAGE, "gamma_zip"),
    ]


def test_loader_imports_each_source_type(tmp_path, clean_modules):
    _write_plugins(tmp_path)
    finder = DefaultPluginFinder([tmp_path])
    loader = DefaultPluginLoader()

    classes = []
    for source in asyncio.run(finder.find_plugins()):
        classes.extend(asyncio.run(loader.load_from_source(source)))

    assert [c.name for c in classes] == ["alphaFile", "betaPkg", "gammaZip"]
    for source in asyncio.run(finder.find_plugins()):
        source.cleanup()
    assert str(tmp_path / "gamma_zip.zip") not in sys.path


def test_loader_honours_plugin_export_list(tmp_path, clean_modules):
    (tmp_path / "exported.py").write_text(
        PLUGIN_SOURCE.format(cls="KeptPlugin")
        + PLUGIN_SOURCE.format(cls="HiddenPlugin").split("\n", 2)[2]
        + "\n__plugin__ = ['KeptPlugin']\n"
    )
    source = PluginSource(PluginSourceType.FILE, tmp_path / "exported.py", "exported")

    classes = asyncio.run(DefaultPluginLoader().load_from_source(source))

    assert [c.__name__ for c in classes] == ["KeptPlugin"]


def test_module_without_plugins_is_skipped(tmp_path, clean_modules, caplog):
    (tmp_path / "helpers_only.py").write_text("VALUE = 1\n")
    source = PluginSource(PluginSourceType.FILE, tmp_path / "helpers_only.py", "helpers_only")

    assert asyncio.run(DefaultPluginLoader().load_from_source(source)) == []
    assert "没有找到插件类" in caplog.text


def test_import_failure_aborts_loading(tmp_path, clean_modules):
    (tmp_path / "bad_syntax.py").write_text("def broken(:\n")
    manager = DefaultPluginManager(plugin_dirs=[tmp_path], core_entry_point_group=None)

    with pytest.raises(DiscoveryError):
        asyncio.run(manager.load_plugins())
    assert "bad_syntax" not in sys.modules


def test_core_finder_uses_entry_points(monkeypatch):
    bundled = make_plugin_class("bundled")
    discovered = make_plugin_class("discovered")

    class FakeEntryPoint:
        name = "discovered"
        value = "pkg:DiscoveredPlugin"

        def load(self):
            return discovered

    class BrokenEntryPoint(FakeEntryPoint):
        def load(self):
            return object

    monkeypatch.setattr(plugin_finder, "entry_points", lambda group: [FakeEntryPoint()])
    assert CorePluginFinder([bundled]).find_plugin_classes() == [bundled, discovered]
    assert CorePluginFinder([bundled], None).find_plugin_classes() == [bundled]

    monkeypatch.setattr(plugin_finder, "entry_points", lambda group: [BrokenEntryPoint()])
    with pytest.raises(DiscoveryError):
        CorePluginFinder().find_plugin_classes()
