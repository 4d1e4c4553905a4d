import warnings

import pytest

from plugincore.core.versions import (
    CompatibilityChecker,
    VersionComparator,
    get_lower_version,
    get_upper_version,
    is_valid_version,
)
from plugincore.exceptions import CompatibilityWarning


def test_comparator_numeric_segments_and_wildcard():
    c = VersionComparator()
    assert c.compare("1.10", "1.9") > 0
    assert c.compare("2.0", "2.0.0") == 0
    assert c.compare("1.0", "*") < 0
    assert c.compare("*", "99.0") > 0
    # 非 PEP 440 版本按段比较
    assert c.compare("1.0.RC1", "1.0") < 0
    assert c.compare("1.0-SNAPSHOT", "1.0") < 0
    assert c.compare("1.1-SNAPSHOT", "1.0") > 0
    assert c.sort(["1.10", "1.2", "1.9"]) == ["1.2", "1.9", "1.10"]


def test_range_bounds():
    assert get_lower_version("2.0 > *") == "2.0"
    assert get_upper_version("2.0 > *") == "*"
    assert get_lower_version("2.0 > 3.0") == "2.0"
    assert get_upper_version("2.0 > 3.0") == "3.0"
    assert get_lower_version("2.0") == get_upper_version("2.0") == "2.0"


@pytest.mark.parametrize(
    "version, required, expected",
    [
        ("1.0", None, True),
        ("1.0", "*", True),
        ("1.0", "", True),
        ("1.0", "1.0", True),
        ("1.0.0", "1.0", True),
        ("1.1", "1.0", False),
        ("2.5", "2.0 > *", True),
        ("1.9", "2.0 > *", False),
        ("3.0", "2.0 > 3.0", True),
        ("3.1", "2.0 > 3.0", False),
        ("1.5", ">=1.2,<2", True),
        ("2.0", ">=1.2,<2", False),
        (None, "1.0", False),
    ],
)
def test_is_valid_version(version, required, expected):
    assert is_valid_version(version, required) is expected


def test_exact_framework_version_compatibility():
    assert CompatibilityChecker("2.0").is_compatible("demo", "1.0", "2.0")

    with pytest.warns(CompatibilityWarning):
        assert not CompatibilityChecker("3.0").is_compatible("demo", "1.0", "2.0")


def test_range_compatibility(caplog):
    checker = CompatibilityChecker("2.5")
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", CompatibilityWarning)
        assert checker.is_compatible("a", "1.0", "2.0 > *")
        assert checker.is_compatible("a", "1.0", "2.0 > 3.0")
        assert not checker.is_compatible("a", "1.0", "3.0 > *")
        assert not checker.is_compatible("a", "1.0", "1.0 > 2.0")
    assert "可能与当前应用不兼容" in caplog.text


def test_compatibility_skips_placeholder_and_flags_malformed(caplog):
    checker = CompatibilityChecker("2.0")
    assert checker.is_compatible("a", "1.0", None)
    assert checker.is_compatible("a", "1.0", "@framework.version@")
    assert not checker.is_compatible("a", "1.0", "* > 2.0")
    assert "格式不正确" in caplog.text
