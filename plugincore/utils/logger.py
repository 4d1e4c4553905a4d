"""
# 日志配置
控制台彩色输出与按天轮转的文件日志

库代码只通过 logging.getLogger 获取记录器，从不在导入时配置日志；
由宿主程序（或 PluginApplication 的使用者）显式调用 setup_logging。
"""

import json
import logging
import os
import re
import warnings
from logging.handlers import TimedRotatingFileHandler
from typing import Dict, Optional

from .color import Color

# 针对不同目标（console/file）与不同日志级别的消息格式模板
LOG_MESSAGE_FORMATS: Dict[str, Dict[str, str]] = {
    "console": {
        "DEBUG": f"{Color.CYAN}[%(asctime)s.%(msecs)03d]{Color.RESET} "
        f"{Color.BLUE}%(colored_levelname)s{Color.RESET} "
        f"{Color.MAGENTA}%(name)s{Color.RESET} "
        f"{Color.YELLOW}%(filename)s:%(lineno)d %(funcName)s{Color.RESET} "
        f"| %(message)s",
        "INFO": f"{Color.CYAN}[%(asctime)s]{Color.RESET} "
        f"%(colored_levelname)s "
        f"{Color.MAGENTA}%(name)s{Color.RESET} ➜ %(message)s",
        "WARNING": f"{Color.CYAN}[%(asctime)s]{Color.RESET} "
        f"%(colored_levelname)s "
        f"{Color.MAGENTA}%(name)s{Color.RESET} "
        f"{Color.YELLOW}➜{Color.RESET} %(message)s",
        "ERROR": f"{Color.CYAN}[%(asctime)s]{Color.RESET} "
        f"%(colored_levelname)s "
        f"{Color.GRAY}[%(filename)s]{Color.RESET}"
        f"{Color.MAGENTA}%(name)s:%(lineno)d{Color.RESET} "
        f"{Color.RED}➜{Color.RESET} %(message)s",
        "CRITICAL": f"{Color.CYAN}[%(asctime)s]{Color.RESET} "
        f"{Color.BOLD}%(colored_levelname)s{Color.RESET} "
        f"{Color.GRAY}{{%(module)s}}{Color.RESET}"
        f"{Color.MAGENTA}%(name)s:%(lineno)d{Color.RESET} "
        f"{Color.RED}➜{Color.RESET} %(message)s",
    },
    "file": {
        "DEBUG": "[%(asctime)s] %(levelname)-8s [%(threadName)s] %(name)s (%(filename)s:%(funcName)s:%(lineno)d) | %(message)s",
        "INFO": "[%(asctime)s] %(levelname)-8s %(name)s ➜ %(message)s",
        "WARNING": "[%(asctime)s] %(levelname)-8s %(name)s ➜ %(message)s",
        "ERROR": "[%(asctime)s] %(levelname)-8s [%(filename)s]%(name)s:%(lineno)d ➜ %(message)s",
        "CRITICAL": "[%(asctime)s] %(levelname)-8s {%(module)s}[%(filename)s]%(name)s:%(lineno)d ➜ %(message)s",
    },
}

# 日志级别颜色映射
LOG_LEVEL_TO_COLOR = {
    "DEBUG": Color.CYAN,
    "INFO": Color.GREEN,
    "WARNING": Color.YELLOW,
    "ERROR": Color.RED,
    "CRITICAL": Color.MAGENTA,
}


class StripAnsiFilter(logging.Filter):
    """去除消息中的 ANSI 转义序列，用于文件日志"""

    ANSI_RE = re.compile(r"\x1B(?:[@-Z\\-_]|\[[0-?]*[ -/]*[@-~])")

    def filter(self, record: logging.LogRecord) -> bool:
        record.msg = self.ANSI_RE.sub("", str(record.msg))
        return True


class DynamicFormatter(logging.Formatter):
    """根据日志记录级别动态选择格式的格式化器"""

    def __init__(
        self,
        fmt_dict: Dict[str, str],
        datefmt: Optional[str] = None,
        use_color: bool = True,
    ):
        """初始化动态格式化器

        Args:
            fmt_dict: 不同日志级别的格式字符串，键为级别名称（如 "DEBUG"）
            datefmt: 日期时间格式字符串
            use_color: 是否使用颜色
        """
        super().__init__(datefmt=datefmt)
        self.use_color = use_color
        self._formatters = {
            level_name: logging.Formatter(fmt, datefmt=datefmt)
            for level_name, fmt in fmt_dict.items()
        }
        self._default_formatter = next(iter(self._formatters.values()))

    def format(self, record: logging.LogRecord) -> str:
        if self.use_color:
            color = LOG_LEVEL_TO_COLOR.get(record.levelname, Color.RESET)
            record.colored_levelname = f"{color}{record.levelname:8}{Color.RESET}"
        else:
            record.colored_levelname = f"{record.levelname:8}"

        formatter = self._formatters.get(record.levelname, self._default_formatter)
        try:
            return formatter.format(record)
        except (TypeError, ValueError, KeyError) as e:
            warnings.warn(f"日志格式化错误: {e}")
            return self._default_formatter.format(record)


def _get_valid_log_level(level_name: str, default: str) -> int:
    """验证并获取有效的日志级别"""
    level = getattr(logging, level_name.upper(), None)
    if not isinstance(level, int):
        warnings.warn(f"无效的日志级别: {level_name}，改用 {default}")
        return getattr(logging, default)
    return level


def _build_file_handler(path: str, level: int, backup_count: int) -> logging.Handler:
    handler = TimedRotatingFileHandler(
        filename=path,
        when="midnight",
        interval=1,
        backupCount=backup_count,
        encoding="utf-8",
        utc=True,
    )
    handler.setLevel(level)
    handler.setFormatter(
        DynamicFormatter(
            fmt_dict=LOG_MESSAGE_FORMATS["file"],
            datefmt="%Y-%m-%d %H:%M:%S",
            use_color=False,
        )
    )
    handler.addFilter(StripAnsiFilter())
    return handler


def setup_logging(console_level: Optional[str] = None) -> None:
    """配置日志系统

    读取以下环境变量：
    LOG_LEVEL / FILE_LOG_LEVEL 控制台与文件日志级别；
    LOG_FILE_PATH / LOG_FILE_NAME 日志目录与文件名；
    BACKUP_COUNT 轮转保留份数；
    LOG_REDIRECT_RULES JSON 对象，记录器名称到独立日志文件名的映射，
    例如 {"Plugin.security": "security.log"}。

    Args:
        console_level: 控制台日志级别，优先于 LOG_LEVEL
    """
    console_level = console_level or os.getenv("LOG_LEVEL", "INFO")
    file_level = os.getenv("FILE_LOG_LEVEL", "DEBUG")
    console_log_level = _get_valid_log_level(console_level, "INFO")
    file_log_level = _get_valid_log_level(file_level, "DEBUG")

    log_dir = os.getenv("LOG_FILE_PATH", "./logs")
    file_name = os.getenv("LOG_FILE_NAME", "plugincore.log")

    try:
        backup_count = int(os.getenv("BACKUP_COUNT", "7"))
    except ValueError:
        backup_count = 7
        warnings.warn("BACKUP_COUNT 为无效值，使用默认值 7")

    os.makedirs(log_dir, exist_ok=True)

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(console_log_level)
    console_handler.setFormatter(
        DynamicFormatter(
            fmt_dict=LOG_MESSAGE_FORMATS["console"],
            datefmt="%H:%M:%S",
            use_color=True,
        )
    )

    root_logger.handlers = [
        console_handler,
        _build_file_handler(
            os.path.join(log_dir, file_name), file_log_level, backup_count
        ),
    ]

    try:
        redirect_rules = json.loads(os.getenv("LOG_REDIRECT_RULES", "{}"))
    except json.JSONDecodeError:
        redirect_rules = {}
        warnings.warn("LOG_REDIRECT_RULES 格式无效，忽略重定向规则")

    for logger_name, filename in redirect_rules.items():
        redirected = logging.getLogger(logger_name)
        redirected.setLevel(file_log_level)
        redirected.addHandler(
            _build_file_handler(
                os.path.join(log_dir, filename), file_log_level, backup_count
            )
        )
        # 不再传播到根记录器，避免重复记录
        redirected.propagate = False
