"""常量定义模块

包含插件内核的所有常量与枚举定义
"""

from decimal import Decimal
from enum import Enum, auto
from fractions import Fraction
from pathlib import PurePath
from typing import Final, Tuple

# 框架级常量
WILDCARD: Final[str] = "*"
"""观察者通配符，观察所有插件"""

VERSION_PLACEHOLDER: Final[str] = "@"
"""未展开的版本占位符（如 "@framework.version@"），出现时跳过兼容性检查"""

RANGE_SEPARATOR: Final[str] = ">"
"""版本范围分隔符，"1.0 > 2.0" 表示闭区间，"1.0 > *" 表示无上限"""

CONFIG_FILE_NAME: Final[str] = "application.yml"
"""应用配置文件名，文件变更时触发配置重新解析"""

CORE_PLUGIN_ENTRY_POINT_GROUP: Final[str] = "plugincore.core_plugins"
"""核心插件的 entry point 分组名"""

DEFAULT_MAX_IDLE_ROUNDS: Final[int] = 1
"""延迟加载队列允许的最大无进展轮数"""

DEFAULT_DEBOUNCE_INTERVAL: Final[float] = 0.6
"""文件监视的防抖间隔（秒）"""

DEFAULT_ENVIRONMENT: Final[str] = "development"
"""默认运行环境"""

COMMON_TYPES: Final[Tuple[type, ...]] = (
    bool,
    int,
    float,
    complex,
    str,
    bytes,
    list,
    dict,
    set,
    tuple,
    Decimal,
    Fraction,
    PurePath,
    type,
    object,
)
"""动态方法阶段开始前需要重置已安装行为的常用类型"""


class PluginEvents:
    """插件事件常量类

    包含管理器向插件投递的所有事件名称
    """

    ON_CHANGE = "plugin.on_change"
    """被监视的资源或类发生变更"""

    ON_CONFIG_CHANGE = "plugin.on_config_change"
    """应用配置发生变更"""

    ON_SHUTDOWN = "plugin.on_shutdown"
    """管理器正在关闭"""

    ON_STARTUP = "plugin.on_startup"
    """应用上下文刷新完成、应用启动"""


class PluginState(Enum):
    """插件状态枚举

    表示插件描述符在其生命周期中可能处于的不同状态
    """

    UNREGISTERED = auto()
    """已发现但尚未注册"""

    REGISTERED = auto()
    """已注册到注册表"""

    INITIALIZED = auto()
    """已推送应用上下文"""

    SHUTDOWN = auto()
    """已关闭"""

    FAILED = auto()
    """依赖无法解析或名称冲突，永久失败"""

    EVICTED = auto()
    """已被其他插件驱逐"""


class PluginOrigin(Enum):
    """插件来源枚举"""

    CORE = "core"
    """框架内置的核心插件"""

    USER = "user"
    """应用或第三方提供的用户插件"""


class PluginSourceType(Enum):
    """插件源类型枚举

    表示插件来源的不同类型
    """

    DIRECTORY = "directory"
    """目录类型插件源"""

    ZIP_PACKAGE = "zip"
    """ZIP包类型插件源"""

    FILE = "file"
    """文件类型插件源"""


class PhasePolicy(Enum):
    """生命周期阶段的错误处理策略"""

    FAIL_FAST = "fail_fast"
    """首个错误即包装为 PhaseExecutionError 抛出，中止该阶段"""

    BEST_EFFORT = "best_effort"
    """逐个插件捕获并记录错误，继续执行"""


class CyclePolicy(Enum):
    """加载顺序图中出现环时的处理策略"""

    TOLERATE = "tolerate"
    """按首次访问顺序排序并记录警告"""

    STRICT = "strict"
    """抛出 PluginCycleError"""


class Phase(Enum):
    """生命周期阶段"""

    ARTEFACT_CONFIGURATION = "artefact_configuration"
    RUNTIME_CONFIGURATION = "runtime_configuration"
    DYNAMIC_METHODS = "dynamic_methods"
    POST_PROCESSING = "post_processing"
    STARTUP = "startup"
    SHUTDOWN = "shutdown"
    CHANGE_NOTIFICATION = "change_notification"
