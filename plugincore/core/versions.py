"""
版本比较与兼容性检查

版本范围写法：
    "2.0"          精确版本
    "2.0 > *"      不低于 2.0，无上限
    "2.0 > 3.0"    闭区间 [2.0, 3.0]
依赖的版本要求还可以使用 PEP 440 说明符（如 ">=1.2,<2"）。
"""

import re
import warnings
from functools import cmp_to_key
from typing import List, Optional, Tuple

from packaging.specifiers import InvalidSpecifier, SpecifierSet
from packaging.version import InvalidVersion, Version

from ..exceptions import CompatibilityWarning
from ..logger import logger
from ..utils.constants import RANGE_SEPARATOR, VERSION_PLACEHOLDER, WILDCARD
from ..utils.types import PluginName, PluginVersion, VersionRange

_SEGMENT_RE = re.compile(r"(\d+|[A-Za-z]+)")
_SPECIFIER_CHARS = "<>=!~"
_SNAPSHOT_SUFFIX = "-SNAPSHOT"


class VersionComparator:
    """按段比较版本号

    两侧都能被 packaging 解析时使用 PEP 440 语义；否则逐段比较，
    数字段按数值比较（"1.10" > "1.9"），缺失段视为 0，
    "-SNAPSHOT" 版本低于同号的正式版本。
    """

    def compare(self, left: PluginVersion, right: PluginVersion) -> int:
        """比较两个版本号

        Returns:
            left < right 返回负数，相等返回 0，left > right 返回正数
        """
        left, right = str(left).strip(), str(right).strip()
        if left == right:
            return 0
        if left == WILDCARD:
            return 1
        if right == WILDCARD:
            return -1

        try:
            lv, rv = Version(left), Version(right)
        except InvalidVersion:
            return self._compare_segments(left, right)
        return (lv > rv) - (lv < rv)

    def _compare_segments(self, left: str, right: str) -> int:
        l_snapshot = left.upper().endswith(_SNAPSHOT_SUFFIX)
        r_snapshot = right.upper().endswith(_SNAPSHOT_SUFFIX)
        if l_snapshot:
            left = left[: -len(_SNAPSHOT_SUFFIX)]
        if r_snapshot:
            right = right[: -len(_SNAPSHOT_SUFFIX)]

        l_parts, r_parts = self._split(left), self._split(right)
        for index in range(max(len(l_parts), len(r_parts))):
            lp = l_parts[index] if index < len(l_parts) else 0
            rp = r_parts[index] if index < len(r_parts) else 0
            if lp == rp:
                continue
            # 数字段高于字母段（"1.0" > "1.0.RC1"）
            if isinstance(lp, int) and isinstance(rp, str):
                return 1
            if isinstance(lp, str) and isinstance(rp, int):
                return -1
            return 1 if lp > rp else -1

        if l_snapshot != r_snapshot:
            return -1 if l_snapshot else 1
        return 0

    @staticmethod
    def _split(version: str) -> List:
        return [
            int(token) if token.isdigit() else token.lower()
            for token in _SEGMENT_RE.findall(version)
        ]

    def sort(self, versions: List[PluginVersion]) -> List[PluginVersion]:
        """返回按升序排列的版本列表"""
        return sorted(versions, key=cmp_to_key(self.compare))


_comparator = VersionComparator()


def _split_range(version_range: VersionRange) -> Tuple[str, str]:
    lower, _, upper = version_range.partition(RANGE_SEPARATOR)
    lower, upper = lower.strip(), upper.strip()
    return lower, (upper if upper else lower)


def get_lower_version(version_range: VersionRange) -> str:
    """获取版本范围的下限；非范围写法返回其本身"""
    if RANGE_SEPARATOR not in version_range:
        return version_range.strip()
    return _split_range(version_range)[0]


def get_upper_version(version_range: VersionRange) -> str:
    """获取版本范围的上限；非范围写法返回其本身"""
    if RANGE_SEPARATOR not in version_range:
        return version_range.strip()
    return _split_range(version_range)[1]


def _is_specifier(required: str) -> bool:
    return required[0] in _SPECIFIER_CHARS


def is_valid_version(version: Optional[PluginVersion], required: Optional[str]) -> bool:
    """判断插件版本是否满足依赖声明的版本要求

    Args:
        version: 已注册插件的版本
        required: 版本要求，None、空串或 "*" 表示任意版本

    Returns:
        满足要求时返回 True
    """
    if required is None:
        return True
    required = str(required).strip()
    if not required or required == WILDCARD:
        return True
    if version is None:
        return False
    version = str(version).strip()

    if _is_specifier(required):
        try:
            return SpecifierSet(required).contains(Version(version), prereleases=True)
        except (InvalidSpecifier, InvalidVersion) as e:
            logger.warning(f"无法按 PEP 440 解析版本要求 {required!r}（版本 {version!r}）: {e}")
            return False

    if RANGE_SEPARATOR in required:
        lower, upper = _split_range(required)
        if lower != WILDCARD and _comparator.compare(version, lower) < 0:
            return False
        if upper != WILDCARD and _comparator.compare(version, upper) > 0:
            return False
        return True

    return _comparator.compare(version, required) == 0


class CompatibilityChecker:
    """插件与宿主框架版本的兼容性检查（仅提示）

    不兼容时记录 WARNING 并发出 CompatibilityWarning，但从不阻止注册。
    """

    def __init__(self, framework_version: Optional[PluginVersion]):
        """
        Args:
            framework_version: 宿主框架版本，为 None 时所有插件视为兼容
        """
        self.framework_version = framework_version
        self.comparator = VersionComparator()

    def is_compatible(
        self,
        plugin_name: PluginName,
        plugin_version: PluginVersion,
        version_range: Optional[VersionRange],
    ) -> bool:
        """检查插件声明的框架版本范围是否与宿主版本兼容

        Args:
            plugin_name: 插件名
            plugin_version: 插件版本
            version_range: 插件声明的框架版本范围

        Returns:
            兼容或无法判断时返回 True
        """
        if not version_range or VERSION_PLACEHOLDER in version_range:
            logger.debug(f"插件 [{plugin_name}] 未声明框架版本或包含 '@' 占位符，跳过兼容性检查")
            return True

        host = self.framework_version
        if host is None:
            return True

        lower = get_lower_version(version_range)
        upper = get_upper_version(version_range)

        if lower == WILDCARD:
            logger.error(
                f"插件 [{plugin_name}:{plugin_version}] 的框架版本范围 {version_range!r} 格式不正确，无法判断兼容性"
            )
            return False

        if RANGE_SEPARATOR not in version_range:
            if self.comparator.compare(lower, host) != 0:
                return self._incompatible(
                    plugin_name,
                    plugin_version,
                    version_range,
                    "框架版本与插件要求的版本不一致",
                )
            return True

        if self.comparator.compare(lower, host) > 0:
            return self._incompatible(
                plugin_name, plugin_version, version_range, "框架版本低于插件要求的最低版本"
            )

        if upper != WILDCARD and self.comparator.compare(upper, host) < 0:
            return self._incompatible(
                plugin_name, plugin_version, version_range, "框架版本高于插件声明的最高版本"
            )

        return True

    def _incompatible(
        self,
        plugin_name: PluginName,
        plugin_version: PluginVersion,
        version_range: VersionRange,
        reason: str,
    ) -> bool:
        message = (
            f"插件 [{plugin_name}:{plugin_version}] 可能与当前应用不兼容：{reason}。"
            f"插件兼容的框架版本为 {version_range}，当前为 {self.framework_version}"
        )
        logger.warning(message)
        warnings.warn(message, CompatibilityWarning, stacklevel=3)
        return False
