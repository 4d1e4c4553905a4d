import asyncio
import json

import pytest

from plugincore.exceptions import ConfigReloadError
from plugincore.implementations.application import ConfigTree
from plugincore.managers.config_manager import ConfigManager


def test_parse_yaml_with_bindings_and_environment(tmp_path):
    config_file = tmp_path / "application.yml"
    config_file.write_text(
        "app:\n"
        "  name: ${appName}\n"
        "  data: ${userHome}/data\n"
        "  keep: ${unbound}\n"
        "server:\n"
        "  port: 8080\n"
        "  host: 0.0.0.0\n"
        "environments:\n"
        "  production:\n"
        "    server:\n"
        "      port: 80\n",
        encoding="utf-8",
    )

    parsed = asyncio.run(
        ConfigManager().parse(config_file, "production", {"appName": "shop", "userHome": "/home/u"})
    )

    assert parsed["app"] == {"name": "shop", "data": "/home/u/data", "keep": "${unbound}"}
    assert parsed["server"] == {"port": 80, "host": "0.0.0.0"}
    assert "environments" not in parsed


def test_parse_json(tmp_path):
    config_file = tmp_path / "application.json"
    config_file.write_text(json.dumps({"plugins": {"include": ["a"]}}), encoding="utf-8")

    assert asyncio.run(ConfigManager().parse(config_file)) == {"plugins": {"include": ["a"]}}


@pytest.mark.parametrize("content", ["key: [unclosed\n", "- just\n- a list\n"])
def test_invalid_config_raises(tmp_path, content):
    config_file = tmp_path / "application.yml"
    config_file.write_text(content, encoding="utf-8")

    with pytest.raises(ConfigReloadError) as exc_info:
        asyncio.run(ConfigManager().parse(config_file))
    assert exc_info.value.file == config_file


def test_missing_config_raises(tmp_path):
    with pytest.raises(ConfigReloadError):
        asyncio.run(ConfigManager().parse(tmp_path / "nope.yml"))


def test_config_tree_merge_navigate_flatten():
    tree = ConfigTree({"a": {"b": 1, "c": {"d": 2}}})
    tree.merge({"a": {"c": {"e": 3}}, "f": [1, 2]})

    assert tree.navigate("a.c.d") == 2
    assert tree.navigate("a.c.e") == 3
    assert tree.navigate("a.x.y", "fallback") == "fallback"
    assert tree.flatten() == {"a.b": 1, "a.c.d": 2, "a.c.e": 3, "f": [1, 2]}
