"""
# 日志
插件内核共用的日志记录器
"""

import logging

logger = logging.getLogger("PluginCore")
